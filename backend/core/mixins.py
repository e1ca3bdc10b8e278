from datetime import datetime, timezone

from sqlalchemy import Column, DateTime


def utcnow() -> datetime:
    """Naive UTC timestamp, evaluated client-side so async sessions never lazy-load it"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow,
                        onupdate=utcnow, nullable=False)


class CreatedAtMixin:
    """Mixin for append-only rows that are never updated"""
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
