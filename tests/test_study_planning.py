import copy
import datetime as dt
import pathlib
import sys

import pytest

# Ensure the repository root is on the path for direct test runs.
REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from hifz.utils.scheduler import (
    calculate_study_stats,
    generate_study_schedule,
    get_due_cards,
    suggest_review_quality,
)
from hifz.utils.types import Card

NOW = dt.datetime(2024, 3, 10, 9, 30, 0, tzinfo=dt.timezone.utc)
TODAY = NOW.date()


def _card(card_id, due_date, **overrides):
    fields = dict(
        card_id=card_id,
        user_id="user-1",
        ayah_id=card_id,
        surah_id="1",
        content="بِسْمِ اللَّهِ",
        due_date=due_date,
        created_at=NOW - dt.timedelta(days=60),
    )
    fields.update(overrides)
    return Card(**fields)


def test_due_cards_sorted_by_due_date_then_difficulty():
    cards = [
        _card("later", NOW + dt.timedelta(seconds=1)),
        _card("now", NOW, difficulty=5),
        _card("yesterday-easy", NOW - dt.timedelta(days=1), difficulty=2),
        _card("oldest", NOW - dt.timedelta(days=2), difficulty=1),
        _card("yesterday-hard", NOW - dt.timedelta(days=1), difficulty=4),
    ]

    due = get_due_cards(cards, now=NOW)

    assert [c.card_id for c in due] == ["oldest", "yesterday-hard", "yesterday-easy", "now"]


def test_due_cards_respects_limit():
    cards = [_card(f"c{i}", NOW - dt.timedelta(hours=i)) for i in range(30)]

    due = get_due_cards(cards, limit=5, now=NOW)

    assert [c.card_id for c in due] == ["c29", "c28", "c27", "c26", "c25"]
    assert len(get_due_cards(cards, now=NOW)) == 20


def test_due_cards_never_returns_future_cards():
    cards = [_card(f"c{i}", NOW + dt.timedelta(hours=i - 10)) for i in range(20)]

    due = get_due_cards(cards, limit=100, now=NOW)

    assert len(due) == 11
    assert all(c.due_date <= NOW for c in due)


def test_due_cards_keeps_input_order_for_full_ties():
    cards = [_card(name, NOW, difficulty=3) for name in ("a", "b", "c")]

    assert [c.card_id for c in get_due_cards(cards, now=NOW)] == ["a", "b", "c"]


def test_schedule_prioritizes_reviews_and_caps_daily_target():
    today_evening = NOW.replace(hour=20)
    cards = [
        _card("r1", today_evening, repetitions=2),
        _card("n1", today_evening),
        _card("n2", today_evening),
        _card("r2", today_evening, repetitions=1),
        _card("n3", today_evening + dt.timedelta(days=1)),
        _card("overdue", NOW - dt.timedelta(days=1), repetitions=4),
        _card("beyond", NOW + dt.timedelta(days=3), repetitions=4),
    ] + [_card(f"r-day2-{i}", NOW + dt.timedelta(days=2), repetitions=3) for i in range(4)]
    snapshot = copy.deepcopy(cards)

    schedule = generate_study_schedule(cards, daily_target=3, days_ahead=3, now=NOW)

    assert [day.date for day in schedule] == [TODAY + dt.timedelta(days=i) for i in range(3)]
    assert [c.card_id for c in schedule[0].cards] == ["r1", "r2", "n1"]
    assert (schedule[0].review_cards, schedule[0].new_cards) == (2, 1)
    assert [c.card_id for c in schedule[1].cards] == ["n3"]
    assert (schedule[1].review_cards, schedule[1].new_cards) == (0, 1)
    assert len(schedule[2].cards) == 3
    assert (schedule[2].review_cards, schedule[2].new_cards) == (3, 0)
    assert cards == snapshot


def test_schedule_uses_calendar_days_of_callers_timezone():
    riyadh = dt.timezone(dt.timedelta(hours=3))
    now = dt.datetime(2024, 3, 10, 12, 0, tzinfo=riyadh)
    card = _card("late", dt.datetime(2024, 3, 10, 22, 0, tzinfo=dt.timezone.utc))

    schedule = generate_study_schedule([card], daily_target=10, days_ahead=2, now=now)

    assert schedule[0].cards == []
    assert [c.card_id for c in schedule[1].cards] == ["late"]


def test_schedule_with_no_cards_has_empty_days():
    schedule = generate_study_schedule([], now=NOW)

    assert len(schedule) == 7
    assert all(day.cards == [] and day.new_cards == 0 and day.review_cards == 0 for day in schedule)


def test_study_stats_counts():
    cards = [
        _card(
            "mastered",
            NOW - dt.timedelta(days=1),
            memorization_confidence=0.95,
            repetitions=6,
            last_reviewed=NOW - dt.timedelta(days=1),
        ),
        _card(
            "struggling-today",
            NOW.replace(hour=18),
            memorization_confidence=0.4,
            repetitions=3,
            last_reviewed=NOW,
        ),
        _card(
            "struggling-early",
            NOW.replace(hour=1),
            memorization_confidence=0.45,
            repetitions=3,
            last_reviewed=NOW - dt.timedelta(days=2),
        ),
        _card(
            "almost-mastered",
            NOW + dt.timedelta(days=5),
            memorization_confidence=0.8,
            repetitions=4,
            last_reviewed=NOW - dt.timedelta(days=4),
        ),
    ]

    stats = calculate_study_stats(cards, now=NOW)

    assert stats.total_cards == 4
    assert stats.due_today == 2
    assert stats.overdue == 1
    assert stats.average_confidence == pytest.approx(0.65)
    assert stats.mastered_cards == 1
    assert stats.struggling_cards == 2
    assert stats.streak_days == 3


def test_study_stats_for_no_cards():
    stats = calculate_study_stats([], now=NOW)

    assert stats.total_cards == 0
    assert stats.average_confidence == 0
    assert stats.streak_days == 0


def test_streak_may_start_before_today():
    cards = [
        _card("a", NOW, last_reviewed=NOW - dt.timedelta(days=1)),
        _card("b", NOW, last_reviewed=NOW - dt.timedelta(days=2)),
    ]

    assert calculate_study_stats(cards, now=NOW).streak_days == 2


def test_streak_is_capped_at_lookback_window():
    cards = [_card(f"c{i}", NOW, last_reviewed=NOW - dt.timedelta(days=i)) for i in range(40)]

    assert calculate_study_stats(cards, now=NOW).streak_days == 30


def test_streak_without_reviews_is_zero():
    cards = [_card("fresh", NOW)]

    assert calculate_study_stats(cards, now=NOW).streak_days == 0


@pytest.mark.parametrize(
    "confidence, repetitions",
    [(0.0, 0), (0.49, 3), (0.5, 3), (0.9, 5), (1.0, 10), (0.95, 4), (0.2, 2)],
)
def test_mastered_and_struggling_are_disjoint(confidence, repetitions):
    card = _card("c", NOW, memorization_confidence=confidence, repetitions=repetitions)
    stats = calculate_study_stats([card], now=NOW)

    assert stats.mastered_cards + stats.struggling_cards <= 1


@pytest.mark.parametrize(
    "response_time, accuracy, expected_time, expected",
    [
        (10, 95, 10, 5),
        (4, 95, 10, 5),
        (5, 85, 10, 5),
        (10, 85, 10, 4),
        (21, 85, 10, 3),
        (10, 70, 10, 3),
        (10, 69.9, 10, 2),
        (10, 50, 10, 2),
        (10, 25, 10, 1),
        (10, 24, 10, 0),
        (25, 10, 10, 0),
        (3, 10, 10, 1),
        (10, 90, 30, 5),
    ],
)
def test_suggest_review_quality(response_time, accuracy, expected_time, expected):
    assert suggest_review_quality(response_time, accuracy, expected_time=expected_time) == expected
