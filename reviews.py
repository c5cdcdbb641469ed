import logging
from typing import Any, Dict, Optional

from pymongo.database import Database

from database import create_document, get_document, get_documents, to_object_id
from errors import NotFoundError
from schemas import Review

logger = logging.getLogger(__name__)


def average_rating(db: Database, coach_profile_id: str) -> Optional[float]:
    """Mean of all ratings for a coach, or None when nobody has rated them yet."""
    ratings = [r["rating"] for r in db["review"].find({"coach_profile_id": coach_profile_id}, {"rating": 1})]
    if not ratings:
        return None
    return sum(ratings) / len(ratings)


def display_rating(value: Optional[float]) -> Optional[float]:
    return None if value is None else round(value, 2)


def add_review(db: Database, review: Review) -> Dict[str, Any]:
    if not db["coachprofile"].find_one({"_id": to_object_id(review.coach_profile_id)}, {"_id": 1}):
        raise NotFoundError("Coach profile not found")
    rid = create_document(db, "review", review)
    logger.info(f"Review {rid} ({review.rating}) added for coach profile {review.coach_profile_id}")
    return get_document(db, "review", rid)


def list_reviews(db: Database, coach_profile_id: str) -> Dict[str, Any]:
    reviews = get_documents(db, "review", {"coach_profile_id": coach_profile_id}, sort=[("created_at", -1)])
    return {
        "avg_rating": display_rating(average_rating(db, coach_profile_id)),
        "reviews": reviews,
    }
