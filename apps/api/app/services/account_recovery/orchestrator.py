"""Batch orchestration of account recoveries: preview and bulk recover."""

import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.integrations.redemption.client import RedemptionError, RedemptionExecutor
from app.models.account_recovery_log import RECOVERY_MODE_OPEN_ACCOUNT, RecoveryStatus
from app.services.account_recovery.eligibility import (
    EligibilityResolver,
    EligibleRedemption,
    RecoveryScope,
    RecoveryState,
    count_states,
)
from app.services.account_recovery.ledger import RecoveryAttempt, RecoveryLedger
from app.services.account_recovery.selector import RecoveryCandidate, RecoveryCandidateSelector
from app.services.account_recovery.warranty import DeadlineResolver
from app.services.keyed_lock import KeyedLockRegistry, recovery_lock_key

logger = logging.getLogger(__name__)

NO_CANDIDATE_MESSAGE = "no common-channel recovery code available"


class RecoveryOutcome(str, enum.Enum):
    """Per-item result of a recover call."""

    SUCCESS = "success"
    FAILED = "failed"
    ALREADY_DONE = "already_done"
    INVALID = "invalid"


@dataclass
class RecoveredCode:
    recovery_code_id: int
    recovery_code: str
    recovery_account_email: str


@dataclass
class RecoveryResult:
    original_code_id: int
    outcome: RecoveryOutcome
    message: str
    recovery: RecoveredCode | None = None
    status_code: int | None = None


@dataclass
class RecoveryPreview:
    source: str
    days: int
    limit: int
    pending_count: int
    failed_count: int
    need_count: int
    available_count: int
    will_process_count: int
    original_code_ids: list[int]
    generated_at: datetime


class AccountRecoveryService:
    """Runs recoveries one original redemption at a time.

    Each item is handled under the per-code lock: re-validate, resolve the
    order deadline, select a substitute, redeem it, and append the outcome
    to the ledger. Items are isolated; only infrastructure errors escape.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        locks: KeyedLockRegistry,
        selector: RecoveryCandidateSelector,
        executor: RedemptionExecutor,
        deadlines: DeadlineResolver,
        window_days: int,
    ) -> None:
        self.db = db
        self.locks = locks
        self.selector = selector
        self.executor = executor
        self.deadlines = deadlines
        self.window_days = window_days
        self.resolver = EligibilityResolver(db)
        self.ledger = RecoveryLedger(db)

    async def preview(
        self,
        *,
        source: str,
        days: int,
        limit: int,
        now: datetime | None = None,
    ) -> RecoveryPreview:
        """Estimate how many recoveries one click would run for ``source``.

        Returns the ids ``recover`` would consume, oldest redemption first.
        The availability figure is the selector's inventory estimate.
        """
        now = now or datetime.now(UTC)
        scope = RecoveryScope(days=days, sources=frozenset({source}), only_unprocessed=True)
        items = await self.resolver.resolve(scope, now=now)
        counts = count_states(items)
        need = [item for item in items if item.state != RecoveryState.DONE]
        available = await self.selector.count_available(now=now)
        will_process = min(len(need), available, limit)
        return RecoveryPreview(
            source=source,
            days=days,
            limit=limit,
            pending_count=counts[RecoveryState.PENDING],
            failed_count=counts[RecoveryState.FAILED],
            need_count=len(need),
            available_count=available,
            will_process_count=will_process,
            original_code_ids=[item.original_code_id for item in need[:will_process]],
            generated_at=now,
        )

    async def recover(self, original_code_ids: Sequence[int]) -> list[RecoveryResult]:
        """Recover each id in order; one result per id."""
        results: list[RecoveryResult] = []
        for original_code_id in original_code_ids:
            results.append(await self.recover_one(original_code_id))
        succeeded = sum(1 for r in results if r.outcome == RecoveryOutcome.SUCCESS)
        logger.info("Recovery batch finished: %s/%s succeeded", succeeded, len(results))
        return results

    async def recover_one(self, original_code_id: int) -> RecoveryResult:
        # Do not sit on a read transaction while queued behind another holder.
        await self.db.commit()
        async with self.locks.hold(recovery_lock_key(original_code_id)):
            return await self._recover_locked(original_code_id)

    async def _recover_locked(self, original_code_id: int) -> RecoveryResult:
        item = await self.resolver.resolve_one(original_code_id, days=self.window_days)
        if item is None:
            return RecoveryResult(
                original_code_id,
                RecoveryOutcome.INVALID,
                "not an eligible redemption on a banned account within the warranty window",
            )
        if not item.customer_email:
            return RecoveryResult(
                original_code_id,
                RecoveryOutcome.INVALID,
                "redemption has no valid customer email",
            )
        if item.state == RecoveryState.DONE:
            return RecoveryResult(
                original_code_id,
                RecoveryOutcome.ALREADY_DONE,
                "current account is still usable",
            )

        deadline = await self.deadlines.resolve(
            code_id=item.original_code_id,
            code=item.code,
            redeemed_at=item.redeemed_at,
            order_type=item.order_type,
        )
        candidate = await self.selector.select(min_expire_at=deadline)
        if candidate is None:
            await self.ledger.record_attempt(
                original_code_id,
                self._attempt(item, RecoveryStatus.FAILED, error_message=NO_CANDIDATE_MESSAGE),
            )
            return RecoveryResult(original_code_id, RecoveryOutcome.FAILED, NO_CANDIDATE_MESSAGE)

        try:
            return await self._execute(item, candidate)
        finally:
            self.selector.release(candidate)

    async def _execute(
        self, item: EligibleRedemption, candidate: RecoveryCandidate
    ) -> RecoveryResult:
        try:
            redemption = await self.executor.redeem(
                candidate.code, item.customer_email, candidate.channel
            )
        except Exception as e:  # noqa: BLE001
            status_code = e.status_code if isinstance(e, RedemptionError) else 500
            message = str(e) or "recovery failed"
            if isinstance(e, RedemptionError):
                logger.warning(
                    "Redemption of %s for original %s failed: %s",
                    candidate.code,
                    item.original_code_id,
                    message,
                )
            else:
                logger.exception(
                    "Unexpected redemption error for original %s", item.original_code_id
                )
            await self.ledger.record_attempt(
                item.original_code_id,
                self._attempt(
                    item,
                    RecoveryStatus.FAILED,
                    candidate=candidate,
                    account_email=candidate.account_email,
                    error_message=message,
                ),
            )
            return RecoveryResult(
                item.original_code_id, RecoveryOutcome.FAILED, message, status_code=status_code
            )

        account_email = redemption.account_email or candidate.account_email
        await self.ledger.record_attempt(
            item.original_code_id,
            self._attempt(
                item, RecoveryStatus.SUCCESS, candidate=candidate, account_email=account_email
            ),
        )
        logger.info(
            "Recovered original %s with %s on %s",
            item.original_code_id,
            candidate.code,
            account_email,
        )
        return RecoveryResult(
            item.original_code_id,
            RecoveryOutcome.SUCCESS,
            "recovered",
            recovery=RecoveredCode(candidate.code_id, candidate.code, account_email),
        )

    @staticmethod
    def _attempt(
        item: EligibleRedemption,
        status: RecoveryStatus,
        *,
        candidate: RecoveryCandidate | None = None,
        account_email: str | None = None,
        error_message: str | None = None,
    ) -> RecoveryAttempt:
        return RecoveryAttempt(
            email=item.customer_email,
            status=status,
            original_redeemed_at=item.redeemed_at,
            original_account_email=item.original_account_email,
            recovery_mode=RECOVERY_MODE_OPEN_ACCOUNT,
            recovery_code_id=candidate.code_id if candidate else None,
            recovery_code=candidate.code if candidate else None,
            recovery_account_email=account_email,
            error_message=error_message,
        )
