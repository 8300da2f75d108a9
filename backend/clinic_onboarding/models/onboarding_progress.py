"""Persisted onboarding progress, one row per onboarding attempt.

The full ProgressRecord is stored as JSON.  `sequence` is copied out of
the record so stale writes can be refused with a single conditional
UPDATE.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from clinic_onboarding.database import Base


class OnboardingProgress(Base):
    __tablename__ = "onboarding_progress"

    attempt_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    record: Mapped[dict] = mapped_column(JSON, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
