"""Recovery ledger: append-only attempt log over ``account_recovery_logs``.

Invariant: rows are inserted and never updated. The current status of an
original redemption is the row with the highest id for its
``original_code_id``; the current substitute is the highest-id row whose
status is success or skipped. Readers derive both from ``max(id)`` per key
rather than from any in-place status column.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import ColumnElement, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account_recovery_log import (
    COMPLETED_STATUSES,
    AccountRecoveryLog,
    RecoveryStatus,
)
from app.models.redemption_code import RedemptionCode

logger = logging.getLogger(__name__)


@dataclass
class RecoveryAttempt:
    """Payload for one ledger row."""

    email: str
    status: RecoveryStatus
    original_redeemed_at: datetime | None = None
    original_account_email: str | None = None
    recovery_mode: str | None = None
    recovery_code_id: int | None = None
    recovery_code: str | None = None
    recovery_account_email: str | None = None
    error_message: str | None = None


@dataclass
class LedgerSummary:
    """Read-side view of one original redemption's ledger rows."""

    attempts: int = 0
    latest: AccountRecoveryLog | None = None
    latest_completed: AccountRecoveryLog | None = None

    @property
    def latest_status(self) -> RecoveryStatus | None:
        return self.latest.status if self.latest is not None else None


class RecoveryLedger:
    """Writer and readers for the recovery attempt log."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record_attempt(
        self, original_code_id: int, attempt: RecoveryAttempt
    ) -> AccountRecoveryLog:
        """Append one attempt row and commit it."""
        row = AccountRecoveryLog(
            original_code_id=original_code_id,
            email=attempt.email,
            original_redeemed_at=attempt.original_redeemed_at,
            original_account_email=attempt.original_account_email,
            recovery_mode=attempt.recovery_mode,
            recovery_code_id=attempt.recovery_code_id,
            recovery_code=attempt.recovery_code,
            recovery_account_email=attempt.recovery_account_email,
            status=attempt.status,
            error_message=attempt.error_message,
        )
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        logger.info(
            "Recorded recovery attempt %s for original code %s: %s",
            row.id,
            original_code_id,
            row.status.value,
        )
        return row

    async def history(self, original_code_id: int) -> list[AccountRecoveryLog]:
        """All attempts for one original redemption, newest first."""
        stmt = (
            select(AccountRecoveryLog)
            .where(AccountRecoveryLog.original_code_id == original_code_id)
            .order_by(AccountRecoveryLog.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def summaries(self, original_code_ids: Iterable[int]) -> dict[int, LedgerSummary]:
        """Attempt count, latest row and latest completed row per original code."""
        ids = sorted(set(original_code_ids))
        summaries: dict[int, LedgerSummary] = {}
        if not ids:
            return summaries

        counts_stmt = (
            select(
                AccountRecoveryLog.original_code_id,
                func.count(AccountRecoveryLog.id).label("attempts"),
                func.max(AccountRecoveryLog.id).label("latest_id"),
            )
            .where(AccountRecoveryLog.original_code_id.in_(ids))
            .group_by(AccountRecoveryLog.original_code_id)
        )
        completed_stmt = (
            select(
                AccountRecoveryLog.original_code_id,
                func.max(AccountRecoveryLog.id).label("completed_id"),
            )
            .where(
                AccountRecoveryLog.original_code_id.in_(ids),
                AccountRecoveryLog.status.in_(COMPLETED_STATUSES),
            )
            .group_by(AccountRecoveryLog.original_code_id)
        )
        counts = (await self.db.execute(counts_stmt)).all()
        completed = (await self.db.execute(completed_stmt)).all()

        row_ids = {row.latest_id for row in counts} | {row.completed_id for row in completed}
        rows: dict[int, AccountRecoveryLog] = {}
        if row_ids:
            result = await self.db.execute(
                select(AccountRecoveryLog).where(AccountRecoveryLog.id.in_(row_ids))
            )
            rows = {row.id: row for row in result.scalars().all()}

        for row in counts:
            summaries[row.original_code_id] = LedgerSummary(
                attempts=row.attempts,
                latest=rows.get(row.latest_id),
            )
        for row in completed:
            summaries[row.original_code_id].latest_completed = rows.get(row.completed_id)
        return summaries

    async def summary(self, original_code_id: int) -> LedgerSummary:
        summaries = await self.summaries([original_code_id])
        return summaries.get(original_code_id) or LedgerSummary()


def used_as_substitute() -> ColumnElement[bool]:
    """The outer ``RedemptionCode`` was handed out by a completed recovery."""
    return exists(
        select(AccountRecoveryLog.id)
        .where(
            AccountRecoveryLog.recovery_code_id == RedemptionCode.id,
            AccountRecoveryLog.status.in_(COMPLETED_STATUSES),
        )
        .correlate(RedemptionCode)
    )
