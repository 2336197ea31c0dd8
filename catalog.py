"""
Catalog reads and user favorites

Favorites are weak references: the user document holds product ids only, and
they are resolved against the catalog when listed. Products deleted since
being favorited are dropped from the listing.
"""

from typing import List

import structlog
from pymongo.database import Database

from database import find_by_ids, serialize, to_object_id
from errors import NotFound

logger = structlog.get_logger(__name__)


def get_product(db: Database, product_id: str) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id, "Product")})
    if not product:
        raise NotFound("Product not found")
    return serialize(product)


def add_favorite(db: Database, user_id: str, product_id: str) -> None:
    product_oid = to_object_id(product_id, "Product")
    if not db["product"].find_one({"_id": product_oid}, {"_id": 1}):
        raise NotFound("Product not found")
    result = db["user"].update_one(
        {"_id": to_object_id(user_id, "User")},
        {"$addToSet": {"favorites": product_oid}},
    )
    if not result.matched_count:
        raise NotFound("User not found")
    logger.info("Favorite added", user_id=user_id, product_id=product_id)


def list_favorites(db: Database, user_id: str) -> List[dict]:
    user = db["user"].find_one({"_id": to_object_id(user_id, "User")}, {"favorites": 1})
    if not user:
        raise NotFound("User not found")
    favorites = user.get("favorites", [])
    products = find_by_ids(db, "product", favorites)
    return [serialize(products[oid]) for oid in favorites if oid in products]


def remove_favorite(db: Database, user_id: str, product_id: str) -> None:
    try:
        product_oid = to_object_id(product_id, "Product")
    except NotFound:
        return
    db["user"].update_one(
        {"_id": to_object_id(user_id, "User")},
        {"$pull": {"favorites": product_oid}},
    )
    logger.info("Favorite removed", user_id=user_id, product_id=product_id)
