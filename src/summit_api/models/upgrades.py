from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from summit_api.db.base import Base
from .passes import PassTier


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UpgradeStatusEnum(str, Enum):
    COMPLETED = "completed"


class UpgradeRecord(Base):
    """Immutable history entry written once per successful upgrade."""

    __tablename__ = "pass_upgrades"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    pass_id = Column(UUID(as_uuid=True), ForeignKey("passes.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    from_tier = Column(
        SqlEnum(
            PassTier,
            name="pass_tier_enum",
            values_callable=lambda enum: [member.value for member in enum],
            create_type=False,
        ),
        nullable=False,
    )
    to_tier = Column(
        SqlEnum(
            PassTier,
            name="pass_tier_enum",
            values_callable=lambda enum: [member.value for member in enum],
            create_type=False,
        ),
        nullable=False,
    )
    fee = Column(Numeric(12, 2), nullable=False)
    original_price = Column(Numeric(12, 2), nullable=False)
    new_price = Column(Numeric(12, 2), nullable=False)
    status = Column(
        SqlEnum(
            UpgradeStatusEnum,
            name="pass_upgrade_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=UpgradeStatusEnum.COMPLETED,
        server_default=UpgradeStatusEnum.COMPLETED.value,
    )
    payment_reference = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
