"""
Review Aggregator

Reviews live inside their product document. Every add/edit/remove rewrites the
product's `rating` (arithmetic mean of review ratings, exactly 0 with no
reviews) and `numReviews` (number of reviews) together with the collection.
"""

from typing import Dict, Iterator, List, Optional

import structlog
from pymongo.database import Database

from auth import AuthUser
from database import now, serialize, to_object_id
from errors import Conflict, Forbidden, NotFound
from schemas import Review

logger = structlog.get_logger(__name__)


class ReviewSet:
    """A product's reviews keyed by review id, newest first.

    At most one review per user is held; the user index backs that rule.
    """

    def __init__(self, reviews: List[dict]):
        self._order: List[str] = []
        self._by_id: Dict[str, dict] = {}
        self._by_user: Dict[str, str] = {}
        for review in reviews:
            self._index(review)
            self._order.append(str(review["_id"]))

    def _index(self, review: dict) -> None:
        review_id = str(review["_id"])
        self._by_id[review_id] = review
        self._by_user[str(review["user"])] = review_id

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[dict]:
        return (self._by_id[review_id] for review_id in self._order)

    def get(self, review_id: str) -> Optional[dict]:
        return self._by_id.get(review_id)

    def by_user(self, user_id: str) -> Optional[dict]:
        review_id = self._by_user.get(user_id)
        return self._by_id[review_id] if review_id else None

    def prepend(self, review: dict) -> None:
        if self.by_user(str(review["user"])):
            raise Conflict("You already reviewed this product")
        self._index(review)
        self._order.insert(0, str(review["_id"]))

    def remove(self, review_id: str) -> dict:
        review = self._by_id.pop(review_id)
        self._order.remove(review_id)
        del self._by_user[str(review["user"])]
        return review

    def average(self) -> float:
        if not self._order:
            return 0
        return sum(review["rating"] for review in self) / len(self._order)

    def to_list(self) -> List[dict]:
        return list(self)


def _load_product(db: Database, product_id: str) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id, "Product")})
    if not product:
        raise NotFound("Product not found")
    return product


def _authored_review(reviews: ReviewSet, review_id: str, user: AuthUser, action: str) -> dict:
    review = reviews.get(review_id)
    if review is None:
        raise NotFound("Review not found")
    if str(review["user"]) != user.id:
        raise Forbidden(f"Not authorized to {action} this review")
    return review


def _save(db: Database, product: dict, reviews: ReviewSet) -> None:
    product["reviews"] = reviews.to_list()
    product["numReviews"] = len(reviews)
    product["rating"] = reviews.average()
    product["updated_at"] = now()
    db["product"].update_one(
        {"_id": product["_id"]},
        {
            "$set": {
                "reviews": product["reviews"],
                "numReviews": product["numReviews"],
                "rating": product["rating"],
                "updated_at": product["updated_at"],
            }
        },
    )


def add_review(db: Database, product_id: str, user: AuthUser, rating: float, comment: str = "") -> dict:
    """Add the user's review and return the full updated product."""
    product = _load_product(db, product_id)
    reviews = ReviewSet(product.get("reviews", []))

    review = Review(user=to_object_id(user.id, "User"), name=user.name, rating=rating, comment=comment or "")
    reviews.prepend(review.model_dump(by_alias=True))
    _save(db, product, reviews)

    logger.info(
        "Review added",
        product_id=product_id,
        user_id=user.id,
        rating=rating,
        num_reviews=product["numReviews"],
    )
    return serialize(_load_product(db, product_id))


def edit_review(
    db: Database,
    product_id: str,
    review_id: str,
    user: AuthUser,
    rating: Optional[float] = None,
    comment: Optional[str] = None,
) -> dict:
    product = _load_product(db, product_id)
    reviews = ReviewSet(product.get("reviews", []))
    review = _authored_review(reviews, review_id, user, "edit")

    if rating is not None:
        review["rating"] = rating
    # An empty comment leaves the existing one in place
    if comment:
        review["comment"] = comment
    review["updatedAt"] = now()
    _save(db, product, reviews)

    logger.info("Review edited", product_id=product_id, review_id=review_id, user_id=user.id)
    return serialize(review)


def remove_review(db: Database, product_id: str, review_id: str, user: AuthUser) -> None:
    product = _load_product(db, product_id)
    reviews = ReviewSet(product.get("reviews", []))
    _authored_review(reviews, review_id, user, "delete")

    reviews.remove(review_id)
    _save(db, product, reviews)
    logger.info(
        "Review removed",
        product_id=product_id,
        review_id=review_id,
        user_id=user.id,
        num_reviews=product["numReviews"],
    )
