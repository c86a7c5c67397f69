"""SQLAlchemy models."""

from app.models.account_recovery_log import (
    COMPLETED_STATUSES,
    RECOVERY_MODE_OPEN_ACCOUNT,
    AccountRecoveryLog,
    RecoveryStatus,
)
from app.models.base import Base
from app.models.credit_order import CreditOrder
from app.models.gpt_account import GptAccount
from app.models.marketplace_order import XhsOrder, XianyuOrder
from app.models.purchase_order import PurchaseOrder
from app.models.redemption_code import COMMON_CHANNEL, RedemptionCode
from app.models.system_config import SystemConfig

__all__ = [
    # Base
    "Base",
    # Inventory
    "RedemptionCode",
    "COMMON_CHANNEL",
    "GptAccount",
    # Orders
    "PurchaseOrder",
    "CreditOrder",
    "XianyuOrder",
    "XhsOrder",
    # Recovery ledger
    "AccountRecoveryLog",
    "RecoveryStatus",
    "COMPLETED_STATUSES",
    "RECOVERY_MODE_OPEN_ACCOUNT",
    # Settings
    "SystemConfig",
]
