from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List

# Ensure repository root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from hifz.db.card_storage import CardStorage
from hifz.utils.scheduler import calculate_study_stats, generate_study_schedule, get_due_cards
from hifz.utils.types import StudyDay
from hifz.workflow.utils.request_models import ScheduleRequest
from hifz.workflow.utils.settings import default_settings
from scripts.util.env import load_env


def parse_args(settings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print review statistics and the upcoming study schedule for a user.")
    parser.add_argument("--user-id", required=True, help="Owner of the cards")
    parser.add_argument(
        "--db-url",
        default=settings.db_url,
        help="Card store URL (Postgres or SQLite); defaults to HIFZ_DB_URL or sqlite:///data/hifz.db",
    )
    parser.add_argument("--daily-target", type=int, default=settings.daily_target, help="Cards per day")
    parser.add_argument("--days-ahead", type=int, default=settings.days_ahead, help="Days to project")
    parser.add_argument("--due-limit", type=int, default=settings.due_limit, help="Cards listed as due now")
    return parser.parse_args()


def serialize_day(day: StudyDay) -> Dict[str, Any]:
    return {
        "date": day.date.isoformat(),
        "card_ids": [card.card_id for card in day.cards],
        "new_cards": day.new_cards,
        "review_cards": day.review_cards,
    }


def build_report(
    storage: CardStorage,
    user_id: str,
    daily_target: int,
    days_ahead: int,
    due_limit: int = 20,
) -> Dict[str, Any]:
    cards = storage.load_cards(user_id)
    schedule: List[StudyDay] = generate_study_schedule(cards, daily_target=daily_target, days_ahead=days_ahead)
    return {
        "user_id": user_id,
        "stats": asdict(calculate_study_stats(cards)),
        "due_now": [card.card_id for card in get_due_cards(cards, limit=due_limit)],
        "schedule": [serialize_day(day) for day in schedule],
    }


def main() -> int:
    load_env()
    settings = default_settings()
    args = parse_args(settings)

    try:
        request = ScheduleRequest(
            daily_target=args.daily_target,
            days_ahead=args.days_ahead,
            due_limit=args.due_limit,
        )
    except ValidationError as exc:
        print(f"Invalid arguments: {exc}", file=sys.stderr)
        return 1

    try:
        storage = CardStorage(args.db_url)
    except SQLAlchemyError as exc:
        print(f"Card store error: {exc}", file=sys.stderr)
        return 1

    try:
        report = build_report(
            storage,
            args.user_id,
            request.daily_target,
            request.days_ahead,
            due_limit=request.due_limit,
        )
    except SQLAlchemyError as exc:
        print(f"Card store error: {exc}", file=sys.stderr)
        return 1
    finally:
        storage.dispose()

    print(json.dumps(report, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
