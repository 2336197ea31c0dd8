from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pymongo.database import Database

import config
import cart as cart_service
import catalog
import orders
import payments
import reviews
from auth import AuthUser, get_current_user, require_admin
from database import close_db, get_db, init_db
from errors import ApiError
from logs import configure_logging
from schemas import ShippingAddress

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(config.LOG_LEVEL, config.ENVIRONMENT)
    init_db(config.DATABASE_URL, config.DATABASE_NAME)
    logger.info("Stripe key loaded", configured=bool(config.STRIPE_SECRET_KEY))
    yield
    close_db()


app = FastAPI(title="Retail API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --------------------- Errors ---------------------

@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, status=exc.status_code, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", path=request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# --------------------- Models ---------------------

class AddToCartRequest(BaseModel):
    productId: str
    quantity: int = Field(1, ge=1)


class UpdateCartRequest(BaseModel):
    productId: str
    quantity: int


class OrderItemRequest(BaseModel):
    product: str
    name: str
    qty: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class CreateOrderRequest(BaseModel):
    orderItems: List[OrderItemRequest] = Field(default_factory=list)
    shippingAddress: ShippingAddress
    paymentMethod: str
    totalPrice: float = Field(..., ge=0)


class PaymentIntentRequest(BaseModel):
    totalPrice: float = Field(..., ge=0)


class ReviewRequest(BaseModel):
    rating: float
    comment: str = ""


class ReviewUpdateRequest(BaseModel):
    rating: Optional[float] = None
    comment: Optional[str] = None


# --------------------- Routes ---------------------

@app.get("/")
def root():
    return {"message": "Retail API is running"}


# Cart
@app.post("/api/cart/add")
def add_to_cart(
    body: AddToCartRequest,
    response: Response,
    user: AuthUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    result, created = cart_service.add_item(db, user.id, body.productId, body.quantity)
    response.status_code = 201 if created else 200
    return result


@app.get("/api/cart")
def get_cart(user: AuthUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return cart_service.get_cart(db, user.id)


@app.put("/api/cart/update")
def update_cart_item(
    body: UpdateCartRequest,
    user: AuthUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return cart_service.set_quantity(db, user.id, body.productId, body.quantity)


@app.delete("/api/cart/remove/{product_id}")
def remove_cart_item(product_id: str, user: AuthUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return cart_service.remove_item(db, user.id, product_id)


@app.delete("/api/cart/clear")
def clear_cart(user: AuthUser = Depends(get_current_user), db: Database = Depends(get_db)):
    cart_service.clear(db, user.id)
    return {"message": "Cart cleared successfully"}


# Orders
@app.post("/api/orders", status_code=201)
def create_order(
    body: CreateOrderRequest,
    user: AuthUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return orders.create_order(
        db,
        user,
        [item.model_dump() for item in body.orderItems],
        body.shippingAddress.model_dump(),
        body.paymentMethod,
        body.totalPrice,
    )


@app.get("/api/orders/myorders")
def my_orders(user: AuthUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return orders.list_my_orders(db, user)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: AuthUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return orders.get_order(db, order_id, user)


@app.delete("/api/orders/{order_id}")
def cancel_order(order_id: str, user: AuthUser = Depends(get_current_user), db: Database = Depends(get_db)):
    orders.cancel_order(db, order_id, user)
    return {"message": "Order cancelled successfully"}


@app.patch("/api/orders/{order_id}/pay")
def pay_order(order_id: str, user: AuthUser = Depends(get_current_user), db: Database = Depends(get_db)):
    updated = orders.mark_paid(db, order_id, user)
    return {"message": "Order marked as paid", "updatedOrder": updated}


@app.patch("/api/orders/{order_id}/deliver")
def deliver_order(order_id: str, admin: AuthUser = Depends(require_admin), db: Database = Depends(get_db)):
    return orders.mark_delivered(db, order_id)


# Payments
@app.post("/api/payments/create-payment-intent")
def create_payment_intent(body: PaymentIntentRequest, user: AuthUser = Depends(get_current_user)):
    client_secret = payments.create_payment_intent(user, body.totalPrice)
    return {"clientSecret": client_secret}


# Products and reviews
@app.get("/api/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return catalog.get_product(db, product_id)


@app.post("/api/products/{product_id}/review", status_code=201)
def add_review(
    product_id: str,
    body: ReviewRequest,
    user: AuthUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return reviews.add_review(db, product_id, user, body.rating, body.comment)


@app.patch("/api/products/{product_id}/review/{review_id}")
def edit_review(
    product_id: str,
    review_id: str,
    body: ReviewUpdateRequest,
    user: AuthUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    review = reviews.edit_review(db, product_id, review_id, user, body.rating, body.comment)
    return {"message": "Review updated", "review": review}


@app.delete("/api/products/{product_id}/review/{review_id}")
def delete_review(
    product_id: str,
    review_id: str,
    user: AuthUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    reviews.remove_review(db, product_id, review_id, user)
    return {"message": "Review deleted"}


# Favorites
@app.post("/api/users/favorites/{product_id}")
def add_favorite(product_id: str, user: AuthUser = Depends(get_current_user), db: Database = Depends(get_db)):
    catalog.add_favorite(db, user.id, product_id)
    return {"message": "Product added to favorites"}


@app.get("/api/users/favorites")
def list_favorites(user: AuthUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return catalog.list_favorites(db, user.id)


@app.delete("/api/users/favorites/{product_id}")
def remove_favorite(product_id: str, user: AuthUser = Depends(get_current_user), db: Database = Depends(get_db)):
    catalog.remove_favorite(db, user.id, product_id)
    return {"message": "Product removed from favorites"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
