"""
SM-2 scheduler primitives adapted for Qur'an memorization.

The base is the classic SuperMemo SM-2 update. On top of it, successful
reviews are scaled by ayah length, response latency, rolling accuracy and the
card's static difficulty. Every function here is pure: the only ambient input
is the wall clock, and each time-dependent function takes an explicit ``now``.
"""

from __future__ import annotations

import datetime as dt
import math
import uuid
from dataclasses import replace
from typing import Iterable, List, Sequence

from hifz.logging_config import get_logger
from hifz.utils.types import Card, ReviewRecord, ReviewResult, ScheduleUpdate, StudyDay, StudyStats

logger = get_logger("hifz.scheduler")

MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
FAILED_EASE_PENALTY = 0.2
MIN_INTERVAL = 1
QUALITY_THRESHOLD = 3  # below this the card is relearned from scratch

LONG_AYAH_CHARS = 200
SHORT_AYAH_CHARS = 50
DEFAULT_RESPONSE_TIME = 10.0  # seconds, used when a card has no history
SLOW_RESPONSE_RATIO = 1.5
LOW_ACCURACY_THRESHOLD = 80.0

CURRENT_RESULT_WEIGHT = 0.4
HISTORY_WEIGHTS = (0.3, 0.15, 0.1, 0.05)  # most recent first
CONSISTENCY_WINDOW = 5
STREAK_LOOKBACK_DAYS = 30


def create_card(
    user_id: str,
    ayah_id: str,
    surah_id: str,
    content: str,
    difficulty: float = 3,
    now: dt.datetime | None = None,
) -> Card:
    """Build a fresh card that is due immediately."""
    now = _resolve_now(now)
    card_id = f"srs_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"
    return Card(
        card_id=card_id,
        user_id=user_id,
        ayah_id=ayah_id,
        surah_id=surah_id,
        content=content,
        ease_factor=DEFAULT_EASE_FACTOR,
        interval=1,
        repetitions=0,
        due_date=now,
        last_reviewed=None,
        created_at=now,
        difficulty=difficulty,
        memorization_confidence=0.0,
        review_history=[],
    )


def calculate_next_review(card: Card, result: ReviewResult, now: dt.datetime | None = None) -> ScheduleUpdate:
    """
    Compute the scheduling state that follows ``result`` on ``card``.

    The card itself is not modified; the caller persists the returned update
    (see ``apply_update``).
    """
    now = _resolve_now(now)
    quality = result.quality

    ease_factor = _next_ease_factor(card.ease_factor, quality)

    if quality < QUALITY_THRESHOLD:
        # Failed recall: hard reset, no content scaling.
        repetitions = 0
        interval = MIN_INTERVAL
    else:
        repetitions = card.repetitions + 1
        if repetitions == 1:
            interval = 1
        elif repetitions == 2:
            interval = 6
        else:
            # Fixed learning steps above are not scaled.
            interval = _round_half_up(card.interval * ease_factor)
            interval = _apply_memorization_adjustments(interval, card, result)

    confidence = _memorization_confidence(card.review_history, result)

    record = ReviewRecord(
        date=now,
        quality=quality,
        response_time=result.response_time,
        accuracy=result.accuracy,
        ease_factor=ease_factor,
        interval=interval,
        was_correct=result.was_correct,
    )
    logger.debug(
        "Scheduled card=%s quality=%s ease=%.2f interval=%s reps=%s",
        card.card_id,
        quality,
        ease_factor,
        interval,
        repetitions,
    )
    return ScheduleUpdate(
        ease_factor=ease_factor,
        interval=interval,
        repetitions=repetitions,
        due_date=now + dt.timedelta(days=interval),
        last_reviewed=now,
        memorization_confidence=confidence,
        review_history=[*card.review_history, record],
    )


def apply_update(card: Card, update: ScheduleUpdate) -> Card:
    return replace(
        card,
        ease_factor=update.ease_factor,
        interval=update.interval,
        repetitions=update.repetitions,
        due_date=update.due_date,
        last_reviewed=update.last_reviewed,
        memorization_confidence=update.memorization_confidence,
        review_history=list(update.review_history),
    )


def replay_history(card: Card) -> Card:
    """Rebuild a card's scheduling state by re-running its review history."""
    state = replace(
        card,
        ease_factor=DEFAULT_EASE_FACTOR,
        interval=1,
        repetitions=0,
        due_date=card.created_at,
        last_reviewed=None,
        memorization_confidence=0.0,
        review_history=[],
    )
    for record in card.review_history:
        result = ReviewResult(
            quality=record.quality,
            response_time=record.response_time,
            accuracy=record.accuracy,
            was_correct=record.was_correct,
        )
        state = apply_update(state, calculate_next_review(state, result, now=record.date))
    return state


def get_due_cards(cards: Iterable[Card], limit: int = 20, now: dt.datetime | None = None) -> List[Card]:
    """Cards due at ``now``: oldest due date first, harder cards first on ties."""
    now = _resolve_now(now)
    due = [card for card in cards if _as_aware(card.due_date) <= now]
    due.sort(key=lambda card: (_as_aware(card.due_date), -card.difficulty))
    return due[: max(limit, 0)]


def generate_study_schedule(
    cards: Sequence[Card],
    daily_target: int = 10,
    days_ahead: int = 7,
    now: dt.datetime | None = None,
) -> List[StudyDay]:
    """Project the per-day workload for the next ``days_ahead`` calendar days."""
    now = _resolve_now(now)
    today = now.date()
    cap = max(daily_target, 0)
    schedule: List[StudyDay] = []

    for offset in range(days_ahead):
        day = today + dt.timedelta(days=offset)
        due = [card for card in cards if _calendar_day(card.due_date, now) == day]
        review_cards = [card for card in due if card.repetitions > 0]
        new_cards = [card for card in due if card.repetitions == 0]

        selected = (review_cards + new_cards)[:cap]
        review_count = min(len(review_cards), cap)
        schedule.append(
            StudyDay(
                date=day,
                cards=selected,
                new_cards=len(selected) - review_count,
                review_cards=review_count,
            )
        )
    return schedule


def calculate_study_stats(cards: Sequence[Card], now: dt.datetime | None = None) -> StudyStats:
    now = _resolve_now(now)
    today = now.date()
    midnight = dt.datetime.combine(today, dt.time(), tzinfo=now.tzinfo)

    due_today = sum(1 for card in cards if _calendar_day(card.due_date, now) == today)
    overdue = sum(1 for card in cards if _as_aware(card.due_date) < midnight)

    average_confidence = 0.0
    if cards:
        average_confidence = sum(card.memorization_confidence for card in cards) / len(cards)

    mastered = sum(1 for card in cards if card.memorization_confidence >= 0.9 and card.repetitions >= 5)
    struggling = sum(1 for card in cards if card.memorization_confidence < 0.5 and card.repetitions >= 3)

    return StudyStats(
        total_cards=len(cards),
        due_today=due_today,
        overdue=overdue,
        average_confidence=round(average_confidence, 2),
        mastered_cards=mastered,
        struggling_cards=struggling,
        streak_days=_streak_days(cards, now),
    )


def suggest_review_quality(response_time: float, accuracy: float, expected_time: float = 10) -> int:
    """Map a measured accuracy and latency onto the 0-5 SM-2 quality scale."""
    if accuracy >= 95:
        quality = 5
    elif accuracy >= 85:
        quality = 4
    elif accuracy >= 70:
        quality = 3
    elif accuracy >= 50:
        quality = 2
    elif accuracy >= 25:
        quality = 1
    else:
        quality = 0

    if response_time <= expected_time * 0.5:
        quality = min(5, quality + 1)
    elif response_time > expected_time * 2:
        quality = max(0, quality - 1)
    return quality


def _next_ease_factor(ease_factor: float, quality: int) -> float:
    if quality >= QUALITY_THRESHOLD:
        miss = 5 - quality
        return max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))
    return max(MIN_EASE_FACTOR, ease_factor - FAILED_EASE_PENALTY)


def _apply_memorization_adjustments(interval: int, card: Card, result: ReviewResult) -> int:
    adjusted = interval

    # Longer ayahs need more frequent review.
    length = len(card.content)
    if length > LONG_AYAH_CHARS:
        adjusted = _scale(adjusted, 0.8)
    elif length < SHORT_AYAH_CHARS:
        adjusted = _scale(adjusted, 1.2)

    # Historical averages only; the current review is not part of them.
    if result.response_time > _average_response_time(card.review_history) * SLOW_RESPONSE_RATIO:
        adjusted = _scale(adjusted, 0.9)

    if _average_accuracy(card.review_history) < LOW_ACCURACY_THRESHOLD:
        adjusted = _scale(adjusted, 0.85)

    adjusted = _scale(adjusted, 1 - card.difficulty * 0.1)

    if adjusted != interval:
        logger.debug("Adjusted interval card=%s %s -> %s", card.card_id, interval, adjusted)
    return max(MIN_INTERVAL, adjusted)


def _memorization_confidence(history: Sequence[ReviewRecord], result: ReviewResult) -> float:
    recent = [record.accuracy / 100 for record in history[-CONSISTENCY_WINDOW:]]

    weighted = (result.accuracy / 100) * CURRENT_RESULT_WEIGHT
    for weight, accuracy in zip(HISTORY_WEIGHTS, reversed(recent)):
        weighted += accuracy * weight

    # Lower variance across recent reviews means steadier recall.
    consistency_bonus = max(0.0, 0.1 - _variance(recent))
    return min(1.0, max(0.0, weighted + consistency_bonus))


def _average_response_time(history: Sequence[ReviewRecord]) -> float:
    if not history:
        return DEFAULT_RESPONSE_TIME
    return sum(record.response_time for record in history) / len(history)


def _average_accuracy(history: Sequence[ReviewRecord]) -> float:
    if not history:
        return 100.0
    return sum(record.accuracy for record in history) / len(history)


def _variance(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((value - mean) ** 2 for value in values) / len(values)


def _streak_days(cards: Iterable[Card], now: dt.datetime) -> int:
    active_days = {_calendar_day(card.last_reviewed, now) for card in cards if card.last_reviewed}
    if not active_days:
        return 0

    streak = 0
    check = now.date()
    for _ in range(STREAK_LOOKBACK_DAYS):
        if check in active_days:
            streak += 1
        elif streak > 0:
            break
        check -= dt.timedelta(days=1)
    return streak


def _scale(interval: int, factor: float) -> int:
    return max(MIN_INTERVAL, _round_half_up(interval * factor))


def _round_half_up(value: float) -> int:
    # round() is banker's rounding; intervals round .5 upward.
    return int(math.floor(value + 0.5))


def _resolve_now(now: dt.datetime | None) -> dt.datetime:
    if now is None:
        return dt.datetime.now(dt.timezone.utc)
    return _as_aware(now)


def _as_aware(value: dt.datetime) -> dt.datetime:
    # Naive timestamps are treated as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


def _calendar_day(value: dt.datetime, now: dt.datetime) -> dt.date:
    """Calendar date of ``value`` in the timezone of ``now``."""
    return _as_aware(value).astimezone(now.tzinfo).date()
