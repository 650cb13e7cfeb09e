from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SRSCardRecord(Base):
    __tablename__ = "srs_cards"
    __table_args__ = (UniqueConstraint("user_id", "ayah_id", name="uix_srs_card_user_ayah"),)

    card_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    ayah_id = Column(String, nullable=False)
    surah_id = Column(String, nullable=False)
    content = Column(Text, nullable=False, default="")
    ease_factor = Column(Float, nullable=False, default=2.5)
    interval_days = Column(Integer, nullable=False, default=1)
    repetitions = Column(Integer, nullable=False, default=0)
    due_at = Column(DateTime, nullable=False)
    last_reviewed_at = Column(DateTime, nullable=True)
    difficulty = Column(Float, nullable=False, default=3)
    memorization_confidence = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ReviewRecordRow(Base):
    __tablename__ = "srs_review_records"
    __table_args__ = (UniqueConstraint("card_id", "position", name="uix_srs_review_card_position"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(String, ForeignKey("srs_cards.card_id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    reviewed_at = Column(DateTime, nullable=False)
    quality = Column(Integer, nullable=False)
    response_time = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=False)
    ease_factor = Column(Float, nullable=False)
    interval_days = Column(Integer, nullable=False)
    was_correct = Column(Boolean, nullable=False)
