"""
SQLAlchemy models for the optional issuance log. Tokens and passwords are never stored.
"""
from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class IssuanceRecord(Base):
    """One row per issuance decision (issued or rejected). Append-only."""
    __tablename__ = "issuance_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)
    kind: Mapped[str | None] = mapped_column(String(8), nullable=True, index=True)  # rtc | rtm
    channel: Mapped[str | None] = mapped_column(String(64), nullable=True)
    identity: Mapped[str | None] = mapped_column(String(255), nullable=True)  # uid or account, as text
    expires_at: Mapped[int | None] = mapped_column(Integer, nullable=True)  # epoch seconds
    outcome: Mapped[str] = mapped_column(String(16), nullable=False, index=True)  # success | fail
    reason: Mapped[str | None] = mapped_column(String(64), nullable=True)  # rejection code
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
