"""SQLAlchemy ORM models for the link shortener application.

This module defines the database schema using SQLAlchemy declarative models
for short link records.

Data Model Layout
=================
::
    link_shorteners table
    ├─ id (VARCHAR(36) PRIMARY KEY, uuid4)
    ├─ name (VARCHAR(50) UNIQUE, INDEXED)
    ├─ url (TEXT NOT NULL)
    ├─ count_access (INTEGER DEFAULT 0)
    └─ created_at (TIMESTAMPTZ NOT NULL)

How to Use
===========
**Step 1 — Import**::
    from app.models import ShortLink

**Step 2 — Create a new link**::
    link = ShortLink(name="guide", url="https://example.com/guide")
    db.add(link)
    await db.commit()

**Step 3 — Query links**::
    result = await db.execute(select(ShortLink).where(ShortLink.name == "guide"))
    link = result.scalar_one_or_none()

Key Behaviours
===============
- name carries a unique constraint; it is both lookup key and public path segment.
- id and created_at are assigned by the application at insert time and never change.
- count_access starts at 0 and is only ever incremented by resolution.

Classes:
    ShortLink:  A short name mapped to a target URL with an access counter.
"""

import datetime
import uuid

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

__all__ = ["ShortLink", "NAME_MAX_LENGTH"]

NAME_MAX_LENGTH = 50


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class ShortLink(Base):
    __tablename__ = "link_shorteners"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), unique=True, index=True, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    count_access: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, name='{self.name}', count_access={self.count_access})>"
