"""SQLAlchemy ORM models for the shortlink service.

Data Model Layout
=================
::
    urls table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ short_code (VARCHAR(50), UNIQUE WHERE is_active)
    ├─ original_url (TEXT NOT NULL)
    ├─ custom_alias (VARCHAR(50) NULL)
    ├─ user_id (VARCHAR(64) NULL, INDEXED)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    ├─ expires_at (TIMESTAMPTZ NULL)
    └─ is_active (BOOLEAN DEFAULT TRUE)

    clicks table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ url_id (INTEGER FK urls.id, INDEXED)
    ├─ clicked_at (TIMESTAMPTZ, DEFAULT NOW(), INDEXED)
    ├─ ip_address (VARCHAR(64) NULL)
    ├─ user_agent (TEXT NULL)
    ├─ referrer (TEXT NULL)
    ├─ country (VARCHAR(100) NULL)
    ├─ city (VARCHAR(100) NULL)
    └─ device_type (VARCHAR(20) NULL)

Key Behaviours
===============
- The partial unique index on short_code is the authoritative guard that no
  two active links share a code; application-level existence checks only
  make the common conflict case fail fast.
- Links are soft-deleted (is_active = false) and never physically removed.
- Click rows are append-only and outlive the link they reference.

Classes:
    ShortLink:  A short code mapped to an original URL.
    ClickEvent:  One recorded hit on a ShortLink.
"""

import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.database import Base

__all__ = ["ShortLink", "ClickEvent"]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class ShortLink(Base):
    __tablename__ = "urls"
    __table_args__ = (
        Index(
            "uq_urls_active_short_code",
            "short_code",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    short_code: Mapped[str] = mapped_column(String(50), nullable=False)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    custom_alias: Mapped[str | None] = mapped_column(String(50), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"), nullable=False)

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, short_code='{self.short_code}', active={self.is_active})>"


class ClickEvent(Base):
    __tablename__ = "clicks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    url_id: Mapped[int] = mapped_column(Integer, ForeignKey("urls.id"), index=True, nullable=False)
    clicked_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), index=True, nullable=False
    )
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<ClickEvent(id={self.id}, url_id={self.url_id}, device_type='{self.device_type}')>"
