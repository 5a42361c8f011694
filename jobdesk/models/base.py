"""
Base models. Every row gets a string UUID and timestamps; user-owned rows
also carry the owner's user_id, which every query filters on.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


class RecordBase(Base):
    """Abstract base with id + timestamps."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=new_uuid
    )
    # Set in Python (not server_default) so ordering keeps sub-second resolution
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class OwnedBase(RecordBase):
    """Abstract base for rows that belong to exactly one user."""

    __abstract__ = True

    user_id: Mapped[str] = mapped_column(
        String, nullable=False, index=True
    )
