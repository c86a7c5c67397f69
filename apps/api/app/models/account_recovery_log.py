"""AccountRecoveryLog model: the append-only recovery ledger."""

import enum
from datetime import datetime

from sqlalchemy import Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, UTCDateTime


class RecoveryStatus(str, enum.Enum):
    """Status of a single recovery attempt."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


COMPLETED_STATUSES = (RecoveryStatus.SUCCESS, RecoveryStatus.SKIPPED)

RECOVERY_MODE_OPEN_ACCOUNT = "open-account"


class AccountRecoveryLog(Base):
    """One recovery attempt for an original redemption.

    Rows are only ever inserted. Readers take the row with the highest id per
    ``original_code_id`` as its current status.
    """

    __tablename__ = "account_recovery_logs"

    # Customer the recovery is for
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    # Original redemption snapshot
    original_code_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    original_redeemed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    original_account_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Substitute handed out (if any)
    recovery_mode: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )
    recovery_code_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        index=True,
    )
    recovery_code: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    recovery_account_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    status: Mapped[RecoveryStatus] = mapped_column(
        Enum(
            RecoveryStatus,
            name="recovery_status",
            values_callable=lambda x: [e.value for e in x],
            native_enum=False,
            length=16,
        ),
        nullable=False,
        default=RecoveryStatus.PENDING,
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<AccountRecoveryLog original={self.original_code_id} status={self.status}>"
