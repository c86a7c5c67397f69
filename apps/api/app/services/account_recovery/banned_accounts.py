"""Admin views over banned accounts and the redemptions they affect."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.gpt_account import GptAccount
from app.services.account_recovery.eligibility import (
    EligibilityResolver,
    EligibleRedemption,
    RecoveryScope,
    RecoveryState,
)

logger = logging.getLogger(__name__)

# Redemption list filter values; anything else means no state filter
STATE_FILTERS = {state.value: state for state in RecoveryState}


@dataclass
class BannedAccountSummary:
    account: GptAccount
    impacted_count: int = 0
    done_count: int = 0
    failed_count: int = 0
    pending_count: int = 0
    latest_redeemed_at: datetime | None = None

    def add(self, item: EligibleRedemption) -> None:
        self.impacted_count += 1
        if item.state == RecoveryState.DONE:
            self.done_count += 1
        elif item.state == RecoveryState.FAILED:
            self.failed_count += 1
        else:
            self.pending_count += 1
        if item.redeemed_at is not None and (
            self.latest_redeemed_at is None or item.redeemed_at > self.latest_redeemed_at
        ):
            self.latest_redeemed_at = item.redeemed_at


def _sort_key(summary: BannedAccountSummary) -> tuple[int, float, int]:
    latest = summary.latest_redeemed_at
    # Newest first, accounts without redemptions last
    return (
        0 if latest is not None else 1,
        -latest.timestamp() if latest is not None else 0.0,
        -summary.account.id,
    )


class BannedAccountService:
    """Lists banned accounts and their eligible redemptions."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.resolver = EligibilityResolver(db)

    async def get_account(self, account_id: int) -> GptAccount | None:
        return await self.db.get(GptAccount, account_id)

    async def list_accounts(
        self,
        *,
        days: int,
        sources: frozenset[str] | None,
        search: str | None,
        pending_only: bool,
        page: int,
        page_size: int,
        now: datetime | None = None,
    ) -> tuple[list[BannedAccountSummary], int]:
        """Banned, unprocessed accounts with redemption counts, latest redemption first.

        Paging happens after the counts are built: the pending and source filters
        depend on recovery states, which are derived in Python from the ledger
        and the ban flag of each current account. Cost grows with the number of
        banned, unprocessed accounts, not with the page size.
        """
        stmt = select(GptAccount).where(
            GptAccount.is_banned == True,  # noqa: E712
            GptAccount.ban_processed == False,  # noqa: E712
        )
        if search and search.strip():
            stmt = stmt.where(
                func.lower(GptAccount.email).contains(search.strip().lower(), autoescape=True)
            )
        accounts = list((await self.db.execute(stmt)).scalars().all())
        if not accounts:
            return [], 0

        summaries = {account.id: BannedAccountSummary(account) for account in accounts}
        scope = RecoveryScope(
            days=days,
            sources=sources,
            account_ids=tuple(summaries),
            only_unprocessed=True,
        )
        for item in await self.resolver.resolve(scope, now=now or datetime.now(UTC)):
            summaries[item.original_account_id].add(item)

        rows = list(summaries.values())
        if pending_only:
            rows = [s for s in rows if s.pending_count + s.failed_count > 0]
        if sources is not None:
            rows = [s for s in rows if s.impacted_count > 0]
        rows.sort(key=_sort_key)

        total = len(rows)
        offset = (page - 1) * page_size
        return rows[offset : offset + page_size], total

    async def set_processed(self, account: GptAccount, processed: bool) -> GptAccount:
        """Flip the administrative ban-processed flag."""
        account.ban_processed = processed
        await self.db.commit()
        await self.db.refresh(account)
        logger.info("Account %s ban_processed=%s", account.email, processed)
        return account

    async def list_redeems(
        self,
        account: GptAccount,
        *,
        days: int,
        sources: frozenset[str] | None,
        state: str | None,
        search: str | None,
        page: int,
        page_size: int,
        now: datetime | None = None,
    ) -> tuple[list[EligibleRedemption], int]:
        """Eligible redemptions on one banned account, newest first."""
        scope = RecoveryScope(
            days=days,
            sources=sources,
            account_ids=(account.id,),
            search=search.strip() if search and search.strip() else None,
        )
        items = await self.resolver.resolve(scope, now=now or datetime.now(UTC))
        wanted = STATE_FILTERS.get((state or "").strip().lower())
        if wanted is not None:
            items = [item for item in items if item.state == wanted]
        items.reverse()

        total = len(items)
        offset = (page - 1) * page_size
        return items[offset : offset + page_size], total
