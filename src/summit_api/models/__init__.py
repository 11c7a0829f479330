"""SQLAlchemy models package."""

from .user import User, normalize_email  # noqa: F401
from .passes import Pass, PassStatusEnum, PassTier  # noqa: F401
from .claims import ClaimStatusEnum, PendingClaim, TERMINAL_CLAIM_STATUSES  # noqa: F401
from .upgrades import UpgradeRecord, UpgradeStatusEnum  # noqa: F401
from .transactions import (  # noqa: F401
    PassTransaction,
    TransactionKindEnum,
    TransactionStatusEnum,
)
from .webhook_event import WebhookEvent, WebhookProviderEnum  # noqa: F401
