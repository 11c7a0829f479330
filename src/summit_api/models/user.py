from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from summit_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    # Stable id issued by the identity provider; null until the record is linked.
    external_id = Column(String(128), nullable=True, unique=True, index=True)
    # Stored lower-cased so the unique constraint is case-insensitive.
    email = Column(String, nullable=False, unique=True, index=True)
    full_name = Column(String, nullable=True)
    phone = Column(String(32), nullable=True)
    affiliation = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
        nullable=False,
    )


def normalize_email(value: str) -> str:
    return value.strip().lower()
