"""Eligibility resolver: which redemptions on banned accounts owe a recovery.

A redemption is eligible when its original account is banned, it was
redeemed inside the window, its order type is not ``no_warranty``, it was
never itself handed out as a substitute, and one origin source classifies
it. Each eligible redemption then gets a state from the ledger and the ban
flag of the account it currently lives on.
"""

import enum
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import ColumnElement, Select, false, func, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account_recovery_log import AccountRecoveryLog, RecoveryStatus
from app.models.gpt_account import GptAccount
from app.models.redemption_code import COMMON_CHANNEL, RedemptionCode
from app.services.account_recovery.ledger import (
    LedgerSummary,
    RecoveryLedger,
    used_as_substitute,
)
from app.services.account_recovery.sources import source_expression
from app.services.account_recovery.warranty import (
    is_warranty_backed,
    normalize_order_type,
    order_type_expression,
)

logger = logging.getLogger(__name__)

MIN_WINDOW_DAYS = 1
MAX_WINDOW_DAYS = 90

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
REDEEMER_EMAIL_RE = re.compile(r"email\s*:\s*([^|]+)(?:\||$)", re.IGNORECASE)


class RecoveryState(str, enum.Enum):
    """Derived recovery state of an eligible redemption."""

    PENDING = "pending"
    FAILED = "failed"
    DONE = "done"


def clamp_window_days(value: int | None, default: int) -> int:
    days = default if value is None else value
    return min(MAX_WINDOW_DAYS, max(MIN_WINDOW_DAYS, days))


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def extract_customer_email(redeemed_by: str | None) -> str:
    """Pull the customer email out of a redeemer identity string.

    Accepts ``email:<addr>`` segments (``|``-separated) or a bare address.
    Returns an empty string when no email can be found.
    """
    raw = (redeemed_by or "").strip()
    if not raw:
        return ""
    match = REDEEMER_EMAIL_RE.search(raw)
    if match and match.group(1).strip():
        return normalize_email(match.group(1))
    normalized = normalize_email(raw)
    return normalized if EMAIL_RE.match(normalized) else ""


@dataclass(frozen=True)
class RecoveryScope:
    """Typed filter for eligibility queries.

    ``sources`` of ``None`` means any source; an empty set matches nothing.
    """

    days: int
    sources: frozenset[str] | None = None
    account_ids: tuple[int, ...] | None = None
    original_code_ids: tuple[int, ...] | None = None
    only_unprocessed: bool = False
    search: str | None = None

    def since(self, now: datetime) -> datetime:
        return now - timedelta(days=self.days)


@dataclass
class EligibleRedemption:
    """One original redemption that owes (or owed) a recovery."""

    original_code_id: int
    code: str
    channel: str
    redeemed_at: datetime | None
    redeemed_by: str | None
    customer_email: str
    original_account_id: int
    original_account_email: str
    source: str
    order_type: str
    current_account_email: str
    state: RecoveryState
    attempts: int
    latest: AccountRecoveryLog | None


def _original_account_join() -> ColumnElement[bool]:
    return func.lower(GptAccount.email) == func.lower(func.trim(RedemptionCode.account_email))


def derive_state(latest_status: RecoveryStatus | None, currently_banned: bool) -> RecoveryState:
    if not currently_banned:
        return RecoveryState.DONE
    if latest_status == RecoveryStatus.FAILED:
        return RecoveryState.FAILED
    return RecoveryState.PENDING


class EligibilityResolver:
    """Read-only resolver over codes, orders, accounts and the ledger."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.ledger = RecoveryLedger(db)

    def eligible_query(self, scope: RecoveryScope, now: datetime) -> Select[Any]:
        """Eligible redemptions in scope, oldest redemption first."""
        since = scope.since(now)
        source = source_expression(since)
        stmt = (
            select(
                RedemptionCode.id,
                RedemptionCode.code,
                RedemptionCode.channel,
                RedemptionCode.redeemed_at,
                RedemptionCode.redeemed_by,
                GptAccount.id.label("account_id"),
                GptAccount.email.label("account_email"),
                source.label("source"),
                order_type_expression().label("order_type"),
            )
            .join(GptAccount, _original_account_join())
            .where(
                RedemptionCode.is_redeemed == True,  # noqa: E712
                RedemptionCode.redeemed_at.is_not(None),
                RedemptionCode.redeemed_at >= since,
                GptAccount.is_banned == True,  # noqa: E712
                is_warranty_backed(),
                not_(used_as_substitute()),
                source.is_not(None),
            )
            .order_by(RedemptionCode.redeemed_at.asc(), RedemptionCode.id.asc())
        )
        if scope.sources is not None:
            stmt = stmt.where(source.in_(sorted(scope.sources)) if scope.sources else false())
        if scope.only_unprocessed:
            stmt = stmt.where(GptAccount.ban_processed == False)  # noqa: E712
        if scope.account_ids is not None:
            stmt = stmt.where(GptAccount.id.in_(scope.account_ids))
        if scope.original_code_ids is not None:
            stmt = stmt.where(RedemptionCode.id.in_(scope.original_code_ids))
        if scope.search:
            term = scope.search.strip().lower()
            stmt = stmt.where(
                or_(
                    func.lower(RedemptionCode.code).contains(term, autoescape=True),
                    func.lower(func.coalesce(RedemptionCode.redeemed_by, "")).contains(
                        term, autoescape=True
                    ),
                )
            )
        return stmt

    async def _ban_flags(self, emails: Iterable[str]) -> dict[str, bool]:
        wanted = sorted({email for email in emails if email})
        if not wanted:
            return {}
        stmt = select(func.lower(GptAccount.email), GptAccount.is_banned).where(
            func.lower(GptAccount.email).in_(wanted)
        )
        rows = (await self.db.execute(stmt)).all()
        return {email: bool(is_banned) for email, is_banned in rows}

    async def resolve(
        self,
        scope: RecoveryScope,
        *,
        now: datetime | None = None,
    ) -> list[EligibleRedemption]:
        """All eligible redemptions in scope with their derived state."""
        now = now or datetime.now(UTC)
        rows = (await self.db.execute(self.eligible_query(scope, now))).all()
        if not rows:
            return []

        summaries = await self.ledger.summaries(row.id for row in rows)
        current_emails: dict[int, str] = {}
        for row in rows:
            summary = summaries.get(row.id) or LedgerSummary()
            completed = summary.latest_completed
            if completed is not None and normalize_email(completed.recovery_account_email):
                current_emails[row.id] = normalize_email(completed.recovery_account_email)
            else:
                current_emails[row.id] = normalize_email(row.account_email)
        ban_flags = await self._ban_flags(current_emails.values())

        results: list[EligibleRedemption] = []
        for row in rows:
            summary = summaries.get(row.id) or LedgerSummary()
            current = current_emails[row.id]
            # An account we no longer know about cannot be serving the customer.
            currently_banned = ban_flags.get(current, True)
            results.append(
                EligibleRedemption(
                    original_code_id=row.id,
                    code=row.code,
                    channel=(row.channel or "").strip() or COMMON_CHANNEL,
                    redeemed_at=row.redeemed_at,
                    redeemed_by=row.redeemed_by,
                    customer_email=extract_customer_email(row.redeemed_by),
                    original_account_id=row.account_id,
                    original_account_email=row.account_email,
                    source=row.source,
                    order_type=normalize_order_type(row.order_type),
                    current_account_email=current,
                    state=derive_state(summary.latest_status, currently_banned),
                    attempts=summary.attempts,
                    latest=summary.latest,
                )
            )
        return results

    async def resolve_one(
        self,
        original_code_id: int,
        *,
        days: int,
        now: datetime | None = None,
    ) -> EligibleRedemption | None:
        """Re-validate a single original redemption (used under the recovery lock)."""
        scope = RecoveryScope(days=days, original_code_ids=(original_code_id,))
        results = await self.resolve(scope, now=now)
        return results[0] if results else None


def count_states(items: Sequence[EligibleRedemption]) -> dict[RecoveryState, int]:
    counts = dict.fromkeys(RecoveryState, 0)
    for item in items:
        counts[item.state] += 1
    return counts
