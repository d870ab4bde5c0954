"""Per-user mastery tracking over flashcards."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from django.db import transaction
from django.db.models import Count, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from .models import Flashcard, StudyProgress

MASTERED_LEVEL = 4
MAX_MASTERY_LEVEL = 5
REVIEW_AFTER = timedelta(days=7)


class StudyCardNotFound(Exception):
    """Raised when a review names a card that does not exist."""


def record_review(user_id: str, card_id, is_correct: bool, now: Optional[datetime] = None) -> StudyProgress:
    """Count one review of a card; a correct answer raises mastery by one, a miss lowers it."""

    now = now or timezone.now()
    with transaction.atomic():
        if not Flashcard.objects.filter(pk=card_id).exists():
            raise StudyCardNotFound("Flashcard does not exist.")
        progress, _ = StudyProgress.objects.select_for_update().get_or_create(
            user_id=user_id,
            flashcard_id=card_id,
        )
        progress.times_reviewed += 1
        if is_correct:
            progress.times_correct += 1
            progress.mastery_level = min(MAX_MASTERY_LEVEL, progress.mastery_level + 1)
        else:
            progress.mastery_level = max(0, progress.mastery_level - 1)
        progress.last_studied_at = now
        progress.save()
    return progress


def _stale(user_id: str, now: datetime):
    return StudyProgress.objects.filter(user_id=user_id, last_studied_at__lt=now - REVIEW_AFTER)


def mastery_summary(user_id: str, now: Optional[datetime] = None) -> dict:
    now = now or timezone.now()
    progress = StudyProgress.objects.filter(user_id=user_id)

    total = progress.count()
    mastered = progress.filter(mastery_level__gte=MASTERED_LEVEL).count()
    learning = progress.filter(mastery_level__gt=0, mastery_level__lt=MASTERED_LEVEL).count()
    stale = _stale(user_id, now)

    alerts = (
        stale.values("flashcard__set_id", "flashcard__set__title")
        .annotate(card_count=Count("id"))
        .order_by("flashcard__set__title", "flashcard__set_id")
    )
    return {
        "total_cards": total,
        "mastered": mastered,
        "learning": learning,
        "needs_review": stale.count(),
        "retention_rate": round(100 * mastered / total, 1) if total else 0.0,
        "review_alerts": [
            {
                "set_id": row["flashcard__set_id"],
                "set_title": row["flashcard__set__title"],
                "card_count": row["card_count"],
            }
            for row in alerts
        ],
    }


def review_queue(user_id: str, deck_id=None, now: Optional[datetime] = None, limit: int = 50) -> list[StudyProgress]:
    """Cards not studied for a week, longest-forgotten first."""

    queue = _stale(user_id, now or timezone.now()).select_related("flashcard")
    if deck_id is not None:
        queue = queue.filter(flashcard__set_id=deck_id)
    return list(queue.order_by("last_studied_at", "id")[:limit])


def activity_heatmap(user_id: str, days: int = 90, now: Optional[datetime] = None) -> list[dict]:
    """Reviews per day over the last `days` days, keyed by the day of the latest study."""

    now = now or timezone.now()
    rows = (
        StudyProgress.objects.filter(user_id=user_id, last_studied_at__gte=now - timedelta(days=days))
        .annotate(day=TruncDate("last_studied_at"))
        .values("day")
        .annotate(count=Sum("times_reviewed"))
        .order_by("day")
    )
    return [{"date": row["day"].isoformat(), "count": row["count"]} for row in rows]
