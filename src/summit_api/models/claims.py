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
    String,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from summit_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClaimStatusEnum(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_CLAIM_STATUSES = frozenset(
    {ClaimStatusEnum.VERIFIED, ClaimStatusEnum.EXPIRED, ClaimStatusEnum.CANCELLED}
)


class PendingClaim(Base):
    __tablename__ = "pass_claims"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    requested_tier = Column(String(64), nullable=True)
    booking_id = Column(String(128), nullable=True)
    external_order_id = Column(String(128), nullable=True)
    ticket_number = Column(String(128), nullable=True)
    qr_payload = Column(String, nullable=True)
    document_url = Column(String, nullable=True)
    extracted_data = Column(JSON, nullable=True)
    status = Column(
        SqlEnum(
            ClaimStatusEnum,
            name="pass_claim_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=ClaimStatusEnum.PENDING,
        server_default=ClaimStatusEnum.PENDING.value,
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_pass_id = Column(UUID(as_uuid=True), ForeignKey("passes.id", ondelete="SET NULL"), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_pass_claims_pending_booking",
            "user_id",
            "booking_id",
            unique=True,
            postgresql_where=text("status = 'pending' AND booking_id IS NOT NULL"),
            sqlite_where=text("status = 'pending' AND booking_id IS NOT NULL"),
        ),
    )
