"""
Cart Manager

One cart document per user, backed by a unique index on `user`. A cart is
created on the first add and deleted outright on clear; a user without a cart
document simply has an empty cart.
Each mutation is a fetch-then-save pair without a version check, so two
concurrent requests against the same cart resolve as last write wins.
"""

from typing import Tuple

import structlog
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import find_by_ids, now, serialize, to_object_id
from errors import InvalidInput, NotFound
from schemas import Cart, CartItem

logger = structlog.get_logger(__name__)


def _find_cart(db: Database, user_id: str) -> dict:
    return db["cart"].find_one({"user": to_object_id(user_id, "User")})


def _find_item(cart: dict, product_oid) -> dict:
    for item in cart.get("items", []):
        if item["product"] == product_oid:
            return item
    return None


def _save(db: Database, cart: dict) -> dict:
    cart["updated_at"] = now()
    db["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {"items": cart["items"], "updated_at": cart["updated_at"]}},
    )
    return cart


def add_item(db: Database, user_id: str, product_id: str, quantity: int) -> Tuple[dict, bool]:
    """Add quantity of a product, merging with an existing line.

    Returns the resulting cart and whether the cart document was created.
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise InvalidInput("Quantity must be a positive integer")
    product_oid = to_object_id(product_id, "Product")

    cart = _find_cart(db, user_id)
    if cart is None:
        user_oid = to_object_id(user_id, "User")
        new_cart = Cart(user=user_oid, items=[CartItem(product=product_oid, quantity=quantity)])
        stamp = now()
        try:
            result = db["cart"].update_one(
                {"user": user_oid},
                {"$setOnInsert": {**new_cart.model_dump(exclude={"user"}), "created_at": stamp, "updated_at": stamp}},
                upsert=True,
            )
        except DuplicateKeyError:
            result = None
        if result is not None and result.upserted_id is not None:
            logger.info("Cart created", user_id=user_id, product_id=product_id, quantity=quantity)
            return serialize(db["cart"].find_one({"_id": result.upserted_id})), True
        # Another request created the cart first; merge into it
        cart = _find_cart(db, user_id)

    existing = _find_item(cart, product_oid)
    if existing:
        existing["quantity"] += quantity
    else:
        cart["items"].append({"product": product_oid, "quantity": quantity})
    _save(db, cart)
    logger.info("Cart item added", user_id=user_id, product_id=product_id, quantity=quantity)
    return serialize(cart), False


def set_quantity(db: Database, user_id: str, product_id: str, quantity: int) -> dict:
    # The new quantity is written as given
    cart = _find_cart(db, user_id)
    if cart is None:
        raise NotFound("Cart not found")
    item = _find_item(cart, to_object_id(product_id, "Product"))
    if item is None:
        raise NotFound("Product not in cart")

    item["quantity"] = quantity
    _save(db, cart)
    logger.info("Cart quantity updated", user_id=user_id, product_id=product_id, quantity=quantity)
    return serialize(cart)


def remove_item(db: Database, user_id: str, product_id: str) -> dict:
    cart = _find_cart(db, user_id)
    if cart is None:
        raise NotFound("Cart not found")

    # A product id that cannot be parsed cannot be in the cart either
    cart["items"] = [item for item in cart["items"] if str(item["product"]) != product_id]
    _save(db, cart)
    logger.info("Cart item removed", user_id=user_id, product_id=product_id)
    return serialize(cart)


def clear(db: Database, user_id: str) -> None:
    result = db["cart"].delete_one({"user": to_object_id(user_id, "User")})
    if result.deleted_count:
        logger.info("Cart cleared", user_id=user_id)


def get_cart(db: Database, user_id: str) -> dict:
    """Return the cart with each item's product reference resolved to the catalog entry."""
    cart = _find_cart(db, user_id)
    if cart is None:
        return {"items": []}

    products = find_by_ids(db, "product", [item["product"] for item in cart["items"]])
    resolved = dict(cart)
    resolved["items"] = [
        {**item, "product": products.get(item["product"])} for item in cart["items"]
    ]
    return serialize(resolved)
