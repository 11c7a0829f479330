from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from summit_api.db.base import Base
from .passes import PassTier


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionKindEnum(str, Enum):
    PURCHASE = "purchase"
    UPGRADE = "upgrade"


class TransactionStatusEnum(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"


class PassTransaction(Base):
    """Payment order raised with the ticketing provider for a purchase or upgrade."""

    __tablename__ = "pass_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    pass_id = Column(UUID(as_uuid=True), ForeignKey("passes.id", ondelete="SET NULL"), nullable=True)
    upgrade_id = Column(UUID(as_uuid=True), ForeignKey("pass_upgrades.id", ondelete="SET NULL"), nullable=True)
    kind = Column(
        SqlEnum(
            TransactionKindEnum,
            name="pass_transaction_kind_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    tier = Column(
        SqlEnum(
            PassTier,
            name="pass_tier_enum",
            values_callable=lambda enum: [member.value for member in enum],
            create_type=False,
        ),
        nullable=False,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False, server_default="INR")
    provider_order_id = Column(String(128), nullable=False, unique=True)
    provider_payment_id = Column(String(128), nullable=True, index=True)
    status = Column(
        SqlEnum(
            TransactionStatusEnum,
            name="pass_transaction_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=TransactionStatusEnum.PENDING,
        server_default=TransactionStatusEnum.PENDING.value,
    )
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
        nullable=False,
    )
