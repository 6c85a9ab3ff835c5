"""SQLAlchemy ORM models for the URL shortener core.

Data Model Layout
=================
::
    urls table
    ├─ token (VARCHAR(255) PRIMARY KEY)
    ├─ id (INTEGER UNIQUE, NULL for custom tokens)
    ├─ original_url (TEXT NOT NULL)
    ├─ expires_at (TIMESTAMPTZ, NULL = never expires, INDEXED)
    └─ created_at (TIMESTAMPTZ, DEFAULT NOW())

Key Behaviours
===============
- token is the unique key used by every lookup.
- id is only set for generated tokens; the next id is max(id) + 1.
- expires_at is indexed so the sweeper's range scan stays cheap.
- Timestamps are stored in UTC and always read back timezone-aware, also on
  SQLite, which has no native timezone support.

Classes:
    UTCDateTime:  DateTime column type normalising values to UTC.
    Entry:  A token → original URL mapping with optional expiration.
"""

import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from urlshortener.database import Base

__all__ = ["Entry", "UTCDateTime", "to_utc"]


def to_utc(value: datetime.datetime) -> datetime.datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class UTCDateTime(TypeDecorator):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return to_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return to_utc(value)


class Entry(Base):
    __tablename__ = "urls"

    token: Mapped[str] = mapped_column(String(255), primary_key=True)
    id: Mapped[int | None] = mapped_column(Integer, unique=True, nullable=True)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime(), index=True, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False
    )

    @property
    def is_generated(self) -> bool:
        return self.id is not None

    def __repr__(self) -> str:
        return f"<Entry(token='{self.token}', id={self.id}, expires_at={self.expires_at})>"
