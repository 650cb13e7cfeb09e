from __future__ import annotations

import datetime as dt
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

from hifz.logging_config import get_logger
from hifz.utils.scheduler import QUALITY_THRESHOLD, apply_update, calculate_next_review, get_due_cards
from hifz.utils.types import Card, ReviewResult, ScheduleUpdate, utcnow
from hifz.workflow.utils.request_models import ReviewRequest

if TYPE_CHECKING:
    from hifz.db.card_storage import CardStorage

logger = get_logger("hifz.session")

MIN_RESPONSE_TIME = 0.1  # seconds; clock resolution floor


def accuracy_for_quality(quality: int) -> float:
    """Estimated recitation accuracy when only a self-graded quality is available."""
    if quality >= QUALITY_THRESHOLD:
        return 85.0 + (quality - QUALITY_THRESHOLD) * 5
    return quality * 20.0


@dataclass
class SessionReview:
    card: Card  # state after the review
    result: ReviewResult
    update: ScheduleUpdate


@dataclass
class SessionSummary:
    total_cards: int
    correct_cards: int
    average_accuracy: int
    quality_distribution: Dict[int, int] = field(default_factory=dict)
    due_within_day: int = 0
    average_new_interval: int = 0


class StudySession:
    """Walks a user through today's due cards and feeds each answer to the scheduler."""

    def __init__(
        self,
        cards: Sequence[Card],
        daily_target: int = 10,
        storage: Optional["CardStorage"] = None,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self._clock = clock or utcnow
        self._storage = storage
        self.queue: List[Card] = get_due_cards(cards, limit=daily_target, now=self._clock())
        self.reviews: List[SessionReview] = []
        self._index = 0
        self._presented_at: dt.datetime | None = self._clock() if self.queue else None
        logger.info("Study session started | due=%s target=%s", len(self.queue), daily_target)

    @property
    def current_card(self) -> Card | None:
        if self.is_complete:
            return None
        return self.queue[self._index]

    @property
    def remaining(self) -> int:
        return len(self.queue) - self._index

    @property
    def is_complete(self) -> bool:
        return self._index >= len(self.queue)

    def answer(self, quality: int) -> Card:
        """Grade the current card, schedule it and move on to the next one."""
        card = self.current_card
        if card is None:
            raise RuntimeError("Study session is already complete")

        now = self._clock()
        elapsed = (now - self._presented_at).total_seconds() if self._presented_at else 0.0
        request = ReviewRequest(
            quality=quality,
            response_time=max(elapsed, MIN_RESPONSE_TIME),
            accuracy=accuracy_for_quality(quality),
            was_correct=quality >= QUALITY_THRESHOLD,
        )
        result = request.to_result()
        update = calculate_next_review(card, result, now=now)
        updated = apply_update(card, update)

        if self._storage is not None:
            self._storage.save_update(card.card_id, update)

        self.queue[self._index] = updated
        self.reviews.append(SessionReview(card=updated, result=result, update=update))
        self._index += 1
        self._presented_at = self._clock() if not self.is_complete else None
        return updated

    def summary(self) -> SessionSummary:
        total = len(self.reviews)
        if not total:
            return SessionSummary(total_cards=0, correct_cards=0, average_accuracy=0)

        distribution = Counter(review.result.quality for review in self.reviews)
        return SessionSummary(
            total_cards=total,
            correct_cards=sum(1 for review in self.reviews if review.result.was_correct),
            average_accuracy=round(sum(review.result.accuracy for review in self.reviews) / total),
            quality_distribution=dict(distribution),
            due_within_day=sum(1 for review in self.reviews if review.update.interval <= 1),
            average_new_interval=round(sum(review.update.interval for review in self.reviews) / total),
        )
