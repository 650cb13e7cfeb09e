from __future__ import annotations

import datetime as dt
from typing import Iterable, List

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from hifz.db.models import Base, ReviewRecordRow, SRSCardRecord
from hifz.logging_config import get_logger
from hifz.utils.types import Card, ReviewRecord, ScheduleUpdate
from hifz.workflow.utils.settings import ensure_sqlite_dirs, normalize_db_url

logger = get_logger("hifz.cards.db")


class CardStorage:
    """SQL-backed card store: persists cards and their append-only review history."""

    def __init__(self, db_url: str) -> None:
        self.db_url = normalize_db_url(db_url)
        ensure_sqlite_dirs(self.db_url)
        self._engine = create_engine(self.db_url, future=True, echo=False)
        self._SessionLocal = sessionmaker(bind=self._engine, autoflush=False, expire_on_commit=False, future=True)

    def init_schema(self) -> None:
        Base.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    def _session(self) -> Session:
        return self._SessionLocal()

    def add_card(self, card: Card) -> None:
        with self._session() as session:
            try:
                session.add(_card_to_model(card))
                session.flush()
                for position, record in enumerate(card.review_history):
                    session.add(_record_to_row(card.card_id, position, record))
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                logger.warning("Card insert failed | card=%s user=%s", card.card_id, card.user_id, exc_info=True)
                raise
        logger.info("Stored card=%s user=%s ayah=%s", card.card_id, card.user_id, card.ayah_id)

    def add_cards(self, cards: Iterable[Card]) -> None:
        for card in cards:
            self.add_card(card)

    def get_card(self, card_id: str) -> Card:
        with self._session() as session:
            model = session.get(SRSCardRecord, card_id)
            if model is None:
                raise KeyError(card_id)
            return _model_to_card(model, _load_rows(session, card_id))

    def load_cards(self, user_id: str) -> List[Card]:
        with self._session() as session:
            stmt = select(SRSCardRecord).where(SRSCardRecord.user_id == user_id).order_by(SRSCardRecord.created_at)
            models = session.execute(stmt).scalars().all()
            return [_model_to_card(model, _load_rows(session, model.card_id)) for model in models]

    def save_update(self, card_id: str, update: ScheduleUpdate) -> None:
        """
        Write the scheduling fields and append the update's new review record.

        The update must extend the stored history by exactly one record; an
        update computed from a stale card raises ValueError and nothing is written.
        """
        with self._session() as session:
            model = session.get(SRSCardRecord, card_id)
            if model is None:
                raise KeyError(card_id)
            try:
                stored = session.execute(
                    select(func.count()).select_from(ReviewRecordRow).where(ReviewRecordRow.card_id == card_id)
                ).scalar_one()
                if len(update.review_history) != stored + 1:
                    session.rollback()
                    logger.warning(
                        "Stale card update rejected | card=%s stored=%s update_history=%s",
                        card_id,
                        stored,
                        len(update.review_history),
                    )
                    raise ValueError(
                        f"Update for card {card_id} carries {len(update.review_history)} review(s); "
                        f"expected {stored + 1}"
                    )
                session.add(_record_to_row(card_id, stored, update.new_record))

                model.ease_factor = update.ease_factor
                model.interval_days = update.interval
                model.repetitions = update.repetitions
                model.due_at = _to_db_time(update.due_date)
                model.last_reviewed_at = _to_db_time(update.last_reviewed)
                model.memorization_confidence = update.memorization_confidence
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                logger.warning("Card update failed | card=%s", card_id, exc_info=True)
                raise
        logger.info("Saved review card=%s interval=%s reps=%s", card_id, update.interval, update.repetitions)

    def delete_card(self, card_id: str) -> None:
        with self._session() as session:
            if session.get(SRSCardRecord, card_id) is None:
                raise KeyError(card_id)
            # SQLite does not enforce ON DELETE CASCADE without a pragma.
            session.execute(delete(ReviewRecordRow).where(ReviewRecordRow.card_id == card_id))
            session.execute(delete(SRSCardRecord).where(SRSCardRecord.card_id == card_id))
            session.commit()


def _load_rows(session: Session, card_id: str) -> List[ReviewRecordRow]:
    stmt = select(ReviewRecordRow).where(ReviewRecordRow.card_id == card_id).order_by(ReviewRecordRow.position)
    return list(session.execute(stmt).scalars().all())


def _card_to_model(card: Card) -> SRSCardRecord:
    model = SRSCardRecord(card_id=card.card_id)
    model.user_id = card.user_id
    model.ayah_id = card.ayah_id
    model.surah_id = card.surah_id
    model.content = card.content
    model.ease_factor = card.ease_factor
    model.interval_days = card.interval
    model.repetitions = card.repetitions
    model.due_at = _to_db_time(card.due_date)
    model.last_reviewed_at = _to_db_time(card.last_reviewed)
    model.difficulty = card.difficulty
    model.memorization_confidence = card.memorization_confidence
    model.created_at = _to_db_time(card.created_at)
    return model


def _model_to_card(model: SRSCardRecord, rows: Iterable[ReviewRecordRow]) -> Card:
    return Card(
        card_id=model.card_id,
        user_id=model.user_id,
        ayah_id=model.ayah_id,
        surah_id=model.surah_id,
        content=model.content or "",
        ease_factor=float(model.ease_factor),
        interval=int(model.interval_days),
        repetitions=int(model.repetitions),
        due_date=_from_db_time(model.due_at),
        last_reviewed=_from_db_time(model.last_reviewed_at) if model.last_reviewed_at else None,
        created_at=_from_db_time(model.created_at),
        difficulty=float(model.difficulty),
        memorization_confidence=float(model.memorization_confidence),
        review_history=[_row_to_record(row) for row in rows],
    )


def _record_to_row(card_id: str, position: int, record: ReviewRecord) -> ReviewRecordRow:
    return ReviewRecordRow(
        card_id=card_id,
        position=position,
        reviewed_at=_to_db_time(record.date),
        quality=record.quality,
        response_time=record.response_time,
        accuracy=record.accuracy,
        ease_factor=record.ease_factor,
        interval_days=record.interval,
        was_correct=record.was_correct,
    )


def _row_to_record(row: ReviewRecordRow) -> ReviewRecord:
    return ReviewRecord(
        date=_from_db_time(row.reviewed_at),
        quality=int(row.quality),
        response_time=float(row.response_time),
        accuracy=float(row.accuracy),
        ease_factor=float(row.ease_factor),
        interval=int(row.interval_days),
        was_correct=bool(row.was_correct),
    )


def _to_db_time(value: dt.datetime | None) -> dt.datetime | None:
    # Stored as naive UTC; DateTime columns drop tzinfo on SQLite.
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(dt.timezone.utc).replace(tzinfo=None)


def _from_db_time(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)
