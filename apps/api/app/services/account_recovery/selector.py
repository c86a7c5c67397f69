"""Recovery candidate selection from the common-channel inventory pool."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import ColumnElement, and_, case, func, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.gpt_account import GptAccount
from app.models.redemption_code import COMMON_CHANNEL, RedemptionCode
from app.services.account_recovery.ledger import used_as_substitute

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecoveryCandidate:
    """An unredeemed common-channel code whose account can take one more seat."""

    code_id: int
    code: str
    channel: str
    account_id: int
    account_email: str
    expire_at: datetime
    occupancy: int
    is_today: bool


class CandidateClaims:
    """Codes currently handed to an in-flight recovery in this process.

    ``claim`` is synchronous, so check-and-claim cannot interleave with
    another coroutine. Cross-process races are settled by the redemption
    service, which refuses a code that is already bound.
    """

    def __init__(self) -> None:
        self._claimed: set[int] = set()

    def __contains__(self, code_id: object) -> bool:
        return code_id in self._claimed

    def __len__(self) -> int:
        return len(self._claimed)

    def snapshot(self) -> frozenset[int]:
        return frozenset(self._claimed)

    def claim(self, code_id: int) -> bool:
        if code_id in self._claimed:
            return False
        self._claimed.add(code_id)
        return True

    def release(self, code_id: int) -> None:
        self._claimed.discard(code_id)


def _not_blank(column: object) -> ColumnElement[bool]:
    return and_(column.is_not(None), func.trim(column) != "")  # type: ignore[attr-defined]


def occupancy_expression() -> ColumnElement[int]:
    return func.coalesce(GptAccount.user_count, 0) + func.coalesce(GptAccount.invite_count, 0)


def pool_filters(*, capacity_limit: int, min_expire_at: datetime) -> list[ColumnElement[bool]]:
    """Predicates every recovery candidate must satisfy."""
    channel = func.coalesce(
        func.nullif(func.lower(func.trim(RedemptionCode.channel)), ""), COMMON_CHANNEL
    )
    return [
        RedemptionCode.is_redeemed == False,  # noqa: E712
        _not_blank(RedemptionCode.account_email),
        channel == COMMON_CHANNEL,
        # Not reserved by a waiting-room entry, an order, or a user
        or_(
            RedemptionCode.reserved_for_entry_id.is_(None),
            RedemptionCode.reserved_for_entry_id == 0,
        ),
        or_(
            RedemptionCode.reserved_for_order_no.is_(None),
            RedemptionCode.reserved_for_order_no == "",
        ),
        or_(RedemptionCode.reserved_for_uid.is_(None), RedemptionCode.reserved_for_uid == ""),
        occupancy_expression() < max(1, capacity_limit),
        GptAccount.is_open == True,  # noqa: E712
        GptAccount.is_banned == False,  # noqa: E712
        _not_blank(GptAccount.token),
        _not_blank(GptAccount.chatgpt_account_id),
        GptAccount.expire_at.is_not(None),
        GptAccount.expire_at >= min_expire_at,
        not_(used_as_substitute()),
    ]


def _pool_join() -> ColumnElement[bool]:
    return func.lower(GptAccount.email) == func.lower(func.trim(RedemptionCode.account_email))


class RecoveryCandidateSelector:
    """Picks at most one substitute code for a recovery.

    Accounts created today (business timezone) are used only when no older
    account qualifies, so fresh stock is not drained by recoveries. Ties are
    broken by earliest expiry, lowest occupancy, then code id.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        capacity_limit: int = 6,
        timezone: str = "Asia/Shanghai",
        prefer_non_today: bool = True,
        scan_limit: int = 200,
        claims: CandidateClaims | None = None,
    ) -> None:
        self.db = db
        self.capacity_limit = max(1, capacity_limit)
        self.tz = ZoneInfo(timezone)
        self.prefer_non_today = prefer_non_today
        self.scan_limit = min(500, max(1, scan_limit))
        self.claims = claims if claims is not None else CandidateClaims()

    def _today_bounds(self, now: datetime) -> tuple[datetime, datetime]:
        local_day = now.astimezone(self.tz).date()
        start = datetime.combine(local_day, time.min, tzinfo=self.tz).astimezone(UTC)
        return start, start + timedelta(days=1)

    async def select(
        self,
        *,
        min_expire_at: datetime | None = None,
        now: datetime | None = None,
    ) -> RecoveryCandidate | None:
        """Return and claim the best candidate, or None when nothing qualifies.

        The caller must ``release`` the claim once the redemption call returns.
        """
        now = now or datetime.now(UTC)
        effective_min = max(now, min_expire_at) if min_expire_at is not None else now
        day_start, day_end = self._today_bounds(now)
        is_today = case(
            (and_(GptAccount.created_at >= day_start, GptAccount.created_at < day_end), 1),
            else_=0,
        )
        occupancy = occupancy_expression()

        stmt = (
            select(
                RedemptionCode.id,
                RedemptionCode.code,
                RedemptionCode.account_email,
                GptAccount.id.label("account_id"),
                GptAccount.expire_at,
                occupancy.label("occupancy"),
                is_today.label("is_today"),
            )
            .join(GptAccount, _pool_join())
            .where(*pool_filters(capacity_limit=self.capacity_limit, min_expire_at=effective_min))
        )
        claimed = self.claims.snapshot()
        if claimed:
            stmt = stmt.where(RedemptionCode.id.not_in(claimed))

        ordering = [GptAccount.expire_at.asc(), occupancy.asc(), RedemptionCode.id.asc()]
        if self.prefer_non_today:
            ordering.insert(0, is_today.asc())
        stmt = stmt.order_by(*ordering).limit(self.scan_limit)

        rows = (await self.db.execute(stmt)).all()
        for row in rows:
            # Another coroutine may have claimed it while the query ran.
            if not self.claims.claim(row.id):
                continue
            candidate = RecoveryCandidate(
                code_id=row.id,
                code=row.code.strip(),
                channel=COMMON_CHANNEL,
                account_id=row.account_id,
                account_email=row.account_email.strip(),
                expire_at=row.expire_at,
                occupancy=int(row.occupancy or 0),
                is_today=bool(row.is_today),
            )
            logger.debug(
                "Selected recovery candidate %s on %s", candidate.code, candidate.account_email
            )
            return candidate

        logger.info("No recovery candidate expiring after %s", effective_min.isoformat())
        return None

    def release(self, candidate: RecoveryCandidate) -> None:
        self.claims.release(candidate.code_id)

    async def count_available(self, *, now: datetime | None = None) -> int:
        """Approximate number of substitutes that could be handed out.

        Only checks expiry against now, not against any order deadline, and
        ignores in-flight claims, so it can overstate but never understate
        what ``select`` will return.
        """
        now = now or datetime.now(UTC)
        stmt = (
            select(func.count(RedemptionCode.id))
            .select_from(RedemptionCode)
            .join(GptAccount, _pool_join())
            .where(*pool_filters(capacity_limit=self.capacity_limit, min_expire_at=now))
        )
        return int((await self.db.execute(stmt)).scalar_one())
