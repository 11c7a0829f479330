from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from summit_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PassTier(str, Enum):
    """Closed set of pass tiers, declared lowest to highest."""

    FREE = "free"
    PIXEL = "pixel"
    SILICON = "silicon"
    QUANTUM = "quantum"


class PassStatusEnum(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


def _enum_values(enum: type[Enum]) -> list[str]:
    return [member.value for member in enum]


class Pass(Base):
    __tablename__ = "passes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    pass_code = Column(String(64), nullable=False, unique=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    tier = Column(
        SqlEnum(PassTier, name="pass_tier_enum", values_callable=_enum_values),
        nullable=False,
    )
    price = Column(Numeric(12, 2), nullable=False, server_default="0")
    status = Column(
        SqlEnum(PassStatusEnum, name="pass_status_enum", values_callable=_enum_values),
        nullable=False,
        default=PassStatusEnum.ACTIVE,
        server_default=PassStatusEnum.ACTIVE.value,
    )
    booking_id = Column(String(128), nullable=True, index=True)
    external_order_id = Column(String(128), nullable=True, index=True)
    external_ticket_id = Column(String(128), nullable=True, index=True)
    qr_payload = Column(String, nullable=True)
    ticket_details = Column(JSON, nullable=True)
    document_url = Column(String, nullable=True)
    original_tier = Column(
        SqlEnum(PassTier, name="pass_tier_enum", values_callable=_enum_values, create_type=False),
        nullable=True,
    )
    upgraded_from = Column(
        SqlEnum(PassTier, name="pass_tier_enum", values_callable=_enum_values, create_type=False),
        nullable=True,
    )
    upgraded_at = Column(DateTime(timezone=True), nullable=True)
    purchased_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
        nullable=False,
    )
    version = Column(Integer, nullable=False, default=1, server_default="1")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_passes_one_active_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )
