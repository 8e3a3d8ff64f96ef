"""
Trader ratings - summary maintenance and lazy migration of legacy averages
"""
from datetime import datetime
from typing import Optional, Callable
from fastapi import HTTPException, status
import logging

from .config import settings
from .domain.models import RatingSummary, Review
from .domain.repositories import IRatingRepository
from .schemas import User

logger = logging.getLogger(__name__)


class RatingService:
    """Rating service - keeps one summary document per rated user"""

    def __init__(
        self,
        rating_repository: IRatingRepository,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.rating_repo = rating_repository
        self.clock = clock

    async def submit_rating(
        self,
        from_user: User,
        to_user_id: str,
        rating: int,
        review_text: Optional[str] = None
    ) -> RatingSummary:
        """
        Rate another user, or change an earlier rating

        Returns:
            The rated user's updated summary
        """
        if from_user.id == to_user_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You cannot rate yourself"
            )

        if not 1 <= rating <= 5:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Rating must be between 1 and 5"
            )

        existing = await self.rating_repo.get_review(to_user_id, from_user.id)
        summary = await self.rating_repo.get_summary(to_user_id)

        old_average = summary.average_rating if summary else 0.0
        old_count = summary.count if summary else 0

        if existing is not None and existing.rating is not None and old_count > 0:
            new_count = old_count
            new_average = (old_average * old_count - existing.rating + rating) / old_count
        else:
            new_count = old_count + 1
            new_average = (old_average * old_count + rating) / new_count

        now = self.clock()
        updated = RatingSummary(
            user_id=to_user_id,
            average_rating=round(new_average, 2),
            count=new_count,
            updated_at=now,
        )
        await self.rating_repo.save_summary(updated)

        trimmed = (review_text or "").strip() or None
        await self.rating_repo.save_review(Review(
            from_user_id=from_user.id,
            to_user_id=to_user_id,
            rating=rating,
            review=trimmed if trimmed is not None else (existing.review if existing else None),
            user_name=from_user.username,
            created_at=existing.created_at if existing and existing.created_at else now,
            updated_at=now,
            edited=existing is not None,
        ))

        logger.info(
            f"User {from_user.id} rated {to_user_id} {rating}; "
            f"average now {updated.average_rating} over {updated.count}"
        )
        return updated

    async def get_rating_summary(self, user_id: str) -> Optional[RatingSummary]:
        """
        Get a user's rating summary.

        Users rated before summaries existed are migrated on first read:
        from the legacy averages when present, otherwise by recomputing from
        their most recent reviews.
        """
        summary = await self.rating_repo.get_summary(user_id)
        if summary is not None:
            return summary

        legacy = await self.rating_repo.get_legacy_summary(user_id)
        if legacy is not None:
            if legacy.average_rating > 0 or legacy.count > 0:
                legacy.updated_at = self.clock()
                try:
                    await self.rating_repo.save_summary(legacy)
                    logger.info(f"Migrated legacy rating summary for user {user_id}")
                except Exception as e:
                    logger.error(f"Error migrating rating summary for user {user_id}: {e}")
            return legacy

        try:
            reviews = await self.rating_repo.list_reviews_for(
                user_id, settings.RATING_RECALC_LIMIT
            )
        except Exception as e:
            logger.error(f"Error calculating summary from reviews for user {user_id}: {e}")
            return None

        ratings = [
            r.rating for r in reviews
            if isinstance(r.rating, (int, float)) and not isinstance(r.rating, bool) and r.rating
        ]
        if not ratings:
            return None

        summary = RatingSummary(
            user_id=user_id,
            average_rating=round(sum(ratings) / len(ratings), 2),
            count=len(ratings),
            updated_at=self.clock(),
        )
        await self.rating_repo.save_summary(summary)
        logger.info(f"Rebuilt rating summary for user {user_id} from {len(ratings)} reviews")
        return summary
