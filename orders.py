"""
Order Builder and Order Lifecycle

An order is a snapshot taken at creation: line names and prices are stored as
submitted and each line carries a copy of the product image, so historical
orders stay renderable after the catalog changes. After creation only the
payment and delivery fields move:

    unpaid --mark_paid--> paid --mark_delivered--> delivered
      |                    |
      +------cancel--------+--> (document deleted)

Delivered orders cannot be cancelled.
"""

from typing import List

import structlog
from pymongo.database import Database

import config
from auth import AuthUser
from database import create_document, find_by_ids, get_documents, now, serialize, to_object_id
from errors import Forbidden, InvalidInput, InvalidState, NotFound
from schemas import Order, OrderItem

logger = structlog.get_logger(__name__)


def create_order(
    db: Database,
    user: AuthUser,
    items: List[dict],
    shipping_address: dict,
    payment_method: str,
    total_price: float,
) -> dict:
    if not items:
        raise InvalidInput("No order items")

    # Every product is looked up before anything is written, so a missing
    # product aborts the whole order.
    lines = []
    for item in items:
        product_ref = item["product"]
        try:
            product_oid = to_object_id(product_ref)
        except NotFound:
            raise NotFound(f"Product not found: {product_ref}")
        product = db["product"].find_one({"_id": product_oid}, {"image": 1})
        if not product:
            raise NotFound(f"Product not found: {product_ref}")
        lines.append(
            OrderItem(
                product=product_oid,
                name=item["name"],
                qty=item["qty"],
                price=item["price"],
                image=product.get("image"),
            )
        )

    paid_on_creation = payment_method == config.CARD_PAYMENT_METHOD
    order = Order(
        user=to_object_id(user.id, "User"),
        orderItems=lines,
        shippingAddress=shipping_address,
        paymentMethod=payment_method,
        totalPrice=total_price,
        isPaid=paid_on_creation,
        paidAt=now() if paid_on_creation else None,
    )
    order_id = create_document(db, "order", order)
    logger.info(
        "Order created",
        order_id=order_id,
        user_id=user.id,
        items=len(lines),
        payment_method=payment_method,
        is_paid=paid_on_creation,
    )
    return serialize(db["order"].find_one({"_id": to_object_id(order_id)}))


def _load_owned(db: Database, order_id: str, user: AuthUser) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise NotFound("Order not found")
    if str(order["user"]) != user.id:
        raise Forbidden("Unauthorized")
    return order


def get_order(db: Database, order_id: str, user: AuthUser) -> dict:
    return serialize(_load_owned(db, order_id, user))


def list_my_orders(db: Database, user: AuthUser) -> List[dict]:
    """Orders owned by user, with each line's product resolved to the current catalog entry.

    The resolved product may disagree with the line's name/price/image
    snapshot; the snapshot fields are the record of what was bought.
    """
    orders = get_documents(db, "order", {"user": to_object_id(user.id, "User")})
    product_ids = [line["product"] for order in orders for line in order.get("orderItems", [])]
    products = find_by_ids(db, "product", product_ids)

    out = []
    for order in orders:
        order["orderItems"] = [
            {**line, "product": products.get(line["product"])} for line in order.get("orderItems", [])
        ]
        out.append(serialize(order))
    return out


def mark_paid(db: Database, order_id: str, user: AuthUser) -> dict:
    # Marking an already paid order again refreshes paidAt
    order = _load_owned(db, order_id, user)
    paid_at = now()
    db["order"].update_one(
        {"_id": order["_id"]},
        {"$set": {"isPaid": True, "paidAt": paid_at, "updated_at": paid_at}},
    )
    order.update(isPaid=True, paidAt=paid_at, updated_at=paid_at)
    logger.info("Order marked as paid", order_id=order_id, user_id=user.id)
    return serialize(order)


def mark_delivered(db: Database, order_id: str) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise NotFound("Order not found")
    delivered_at = now()
    db["order"].update_one(
        {"_id": order["_id"]},
        {"$set": {"isDelivered": True, "deliveredAt": delivered_at, "updated_at": delivered_at}},
    )
    order.update(isDelivered=True, deliveredAt=delivered_at, updated_at=delivered_at)
    logger.info("Order marked as delivered", order_id=order_id)
    return serialize(order)


def cancel_order(db: Database, order_id: str, user: AuthUser) -> None:
    """Cancel an undelivered order by deleting it."""
    order = _load_owned(db, order_id, user)
    if order.get("isDelivered"):
        raise InvalidState("Cannot cancel delivered order")
    db["order"].delete_one({"_id": order["_id"]})
    logger.info("Order cancelled", order_id=order_id, user_id=user.id)
