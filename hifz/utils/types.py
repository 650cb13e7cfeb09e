from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import List, Optional


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass(frozen=True)
class ReviewRecord:
    """Immutable log entry appended to a card on every review."""

    date: dt.datetime
    quality: int  # 0-5
    response_time: float  # seconds
    accuracy: float  # 0-100
    ease_factor: float  # ease factor after this review
    interval: int  # interval in days after this review
    was_correct: bool


@dataclass(frozen=True)
class ReviewResult:
    """Outcome of a single recall attempt, as reported by the session driver."""

    quality: int
    response_time: float
    accuracy: float
    was_correct: bool


@dataclass
class Card:
    """One schedulable ayah for one user."""

    card_id: str
    user_id: str
    ayah_id: str
    surah_id: str
    content: str
    ease_factor: float = 2.5
    interval: int = 1
    repetitions: int = 0
    due_date: dt.datetime = field(default_factory=utcnow)
    last_reviewed: Optional[dt.datetime] = None
    created_at: dt.datetime = field(default_factory=utcnow)
    difficulty: float = 3
    memorization_confidence: float = 0.0
    review_history: List[ReviewRecord] = field(default_factory=list)


@dataclass
class ScheduleUpdate:
    """Fields the card store writes back onto a card after a review."""

    ease_factor: float
    interval: int
    repetitions: int
    due_date: dt.datetime
    last_reviewed: dt.datetime
    memorization_confidence: float
    review_history: List[ReviewRecord]

    @property
    def new_record(self) -> ReviewRecord:
        return self.review_history[-1]


@dataclass
class StudyDay:
    """Projected workload for one calendar day."""

    date: dt.date
    cards: List[Card]
    new_cards: int
    review_cards: int


@dataclass
class StudyStats:
    total_cards: int
    due_today: int
    overdue: int
    average_confidence: float
    mastered_cards: int
    struggling_cards: int
    streak_days: int
