"""Pytest configuration and fixtures for the Seatdesk API test suite.

Provides:
- A file-backed SQLite database per test (aiosqlite), schema from the models
- Mock authentication (admin JWT bypass)
- Mock Redis (fakeredis)
- A fake redemption executor in place of the redemption service
- Disabled rate limiting
- Model factory fixtures for GptAccount, RedemptionCode, the order tables and
  AccountRecoveryLog
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.auth import get_current_admin, get_current_user
from app.core.database import get_async_session
from app.core.deps import (
    get_candidate_claims,
    get_db,
    get_lock_registry,
    get_redemption_executor,
    get_redis,
)
from app.core.rate_limit import limiter
from app.integrations.redemption.client import RedemptionError, RedemptionResult
from app.main import app
from app.models.account_recovery_log import AccountRecoveryLog, RecoveryStatus
from app.models.base import Base
from app.models.credit_order import CreditOrder
from app.models.gpt_account import GptAccount
from app.models.marketplace_order import XhsOrder, XianyuOrder
from app.models.purchase_order import PurchaseOrder
from app.models.redemption_code import RedemptionCode
from app.services.account_recovery.orchestrator import AccountRecoveryService
from app.services.account_recovery.selector import CandidateClaims, RecoveryCandidateSelector
from app.services.account_recovery.warranty import OrderDeadlineResolver
from app.services.keyed_lock import KeyedLockRegistry

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
TEST_ADMIN_ID = "admin-1"
TEST_ADMIN_EMAIL = "admin@example.com"
BANNED_EMAIL = "a@x.com"
CUSTOMER_EMAIL = "buyer@example.com"

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


def utc_now() -> datetime:
    return datetime.now(UTC)


def days_ago(days: float) -> datetime:
    return utc_now() - timedelta(days=days)


def days_ahead(days: float) -> datetime:
    return utc_now() + timedelta(days=days)


# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[Any, None]:
    """Fresh SQLite database file per test with all tables created.

    NullPool gives every session its own connection, so concurrent sessions
    behave like separate database clients.
    """
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        future=True,
        poolclass=NullPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: Any) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session for test setup (factory fixtures) and service-level tests."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Fake Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


# ---------------------------------------------------------------------------
# Fake redemption executor
# ---------------------------------------------------------------------------


class FakeRedemptionExecutor:
    """In-memory stand-in for the redemption service.

    ``failures`` maps a code to the exception its redemption raises.
    ``delay`` yields to the event loop mid-call so concurrent recoveries
    overlap the way they would against a real network service.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []
        self.failures: dict[str, Exception] = {}
        self.account_emails: dict[str, str] = {}
        self.delay = 0.0

    def fail(self, code: str, status_code: int = 409, message: str = "code already used") -> None:
        self.failures[code] = RedemptionError(status_code, message)

    async def redeem(self, code: str, email: str, channel: str) -> RedemptionResult:
        self.calls.append((code, email, channel))
        if self.delay:
            await asyncio.sleep(self.delay)
        if code in self.failures:
            raise self.failures[code]
        metadata: dict[str, Any] = {}
        if code in self.account_emails:
            metadata["accountEmail"] = self.account_emails[code]
        return RedemptionResult(metadata=metadata)

    @property
    def redeemed_codes(self) -> list[str]:
        return [code for code, _, _ in self.calls if code not in self.failures]


@pytest.fixture
def fake_executor() -> FakeRedemptionExecutor:
    return FakeRedemptionExecutor()


# ---------------------------------------------------------------------------
# Recovery services wired to the test database
# ---------------------------------------------------------------------------


@pytest.fixture
def lock_registry() -> KeyedLockRegistry:
    return KeyedLockRegistry()


@pytest.fixture
def candidate_claims() -> CandidateClaims:
    return CandidateClaims()


@pytest.fixture
def recovery_service_factory(
    fake_executor: FakeRedemptionExecutor,
    lock_registry: KeyedLockRegistry,
    candidate_claims: CandidateClaims,
) -> Callable[..., AccountRecoveryService]:
    """Build an orchestrator for a session; services built here share locks and claims."""

    def _create(
        session: AsyncSession,
        *,
        window_days: int = 30,
        capacity_limit: int = 6,
        prefer_non_today: bool = True,
        service_days: int = 30,
    ) -> AccountRecoveryService:
        return AccountRecoveryService(
            session,
            locks=lock_registry,
            selector=RecoveryCandidateSelector(
                session,
                capacity_limit=capacity_limit,
                prefer_non_today=prefer_non_today,
                claims=candidate_claims,
            ),
            executor=fake_executor,
            deadlines=OrderDeadlineResolver(
                session,
                service_days=service_days,
                no_warranty_service_days=service_days,
            ),
            window_days=window_days,
        )

    return _create


@pytest.fixture
def recovery_service(
    db_session: AsyncSession,
    recovery_service_factory: Callable[..., AccountRecoveryService],
) -> AccountRecoveryService:
    return recovery_service_factory(db_session)


# ---------------------------------------------------------------------------
# Auth mock
# ---------------------------------------------------------------------------


@pytest.fixture
def admin_user() -> dict[str, Any]:
    """Return the default authenticated admin payload (mimics decoded JWT)."""
    return {
        "sub": TEST_ADMIN_ID,
        "email": TEST_ADMIN_EMAIL,
        "roles": ["super_admin"],
    }


def _override_infrastructure(
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
    fake_executor: FakeRedemptionExecutor,
    lock_registry: KeyedLockRegistry,
    candidate_claims: CandidateClaims,
) -> None:
    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    async def _override_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
        yield fake_redis

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_redis] = _override_redis
    app.dependency_overrides[get_redemption_executor] = lambda: fake_executor
    app.dependency_overrides[get_lock_registry] = lambda: lock_registry
    app.dependency_overrides[get_candidate_claims] = lambda: candidate_claims


# ---------------------------------------------------------------------------
# Authenticated admin client (overrides DB, Redis, Auth, Executor)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
    fake_executor: FakeRedemptionExecutor,
    lock_registry: KeyedLockRegistry,
    candidate_claims: CandidateClaims,
    admin_user: dict[str, Any],
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated admin test client with all dependencies overridden."""
    _override_infrastructure(
        session_factory, fake_redis, fake_executor, lock_registry, candidate_claims
    )

    async def _override_user() -> dict[str, Any]:
        return admin_user

    app.dependency_overrides[get_current_user] = _override_user
    app.dependency_overrides[get_current_admin] = _override_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Unauthenticated client (overrides infrastructure only, no auth bypass)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def unauthed_client(
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
    fake_executor: FakeRedemptionExecutor,
    lock_registry: KeyedLockRegistry,
    candidate_claims: CandidateClaims,
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated async test client. Auth is NOT overridden."""
    _override_infrastructure(
        session_factory, fake_redis, fake_executor, lock_registry, candidate_claims
    )

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Lightweight client (no DB, no auth, for stateless endpoint tests)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def account_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates GptAccount instances.

    Defaults describe a healthy account with spare seats that was created
    well before today.
    """

    async def _create(
        *,
        email: str,
        is_banned: bool = False,
        ban_processed: bool = False,
        is_open: bool = True,
        token: str | None = "tok",
        chatgpt_account_id: str | None = "acct",
        expire_at: datetime | None = None,
        user_count: int = 1,
        invite_count: int = 0,
        created_at: datetime | None = None,
    ) -> GptAccount:
        account = GptAccount(
            email=email,
            is_banned=is_banned,
            ban_processed=ban_processed,
            is_open=is_open,
            token=token,
            chatgpt_account_id=chatgpt_account_id,
            expire_at=expire_at if expire_at is not None else days_ahead(60),
            user_count=user_count,
            invite_count=invite_count,
            created_at=created_at if created_at is not None else days_ago(5),
        )
        db_session.add(account)
        await db_session.commit()
        await db_session.refresh(account)
        return account

    return _create


@pytest.fixture
def code_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates RedemptionCode instances.

    Pass ``redeemed_at`` to create an original redemption; without it the
    code is unredeemed stock.
    """

    async def _create(
        *,
        code: str,
        account_email: str,
        channel: str | None = "common",
        redeemed_at: datetime | None = None,
        redeemed_by: str | None = None,
        order_type: str | None = None,
        reserved_for_entry_id: int | None = None,
        reserved_for_order_no: str | None = None,
        reserved_for_uid: str | None = None,
    ) -> RedemptionCode:
        is_redeemed = redeemed_at is not None
        row = RedemptionCode(
            code=code,
            account_email=account_email,
            channel=channel,
            order_type=order_type,
            is_redeemed=is_redeemed,
            redeemed_at=redeemed_at,
            redeemed_by=(
                redeemed_by
                if redeemed_by is not None
                else (f"email:{CUSTOMER_EMAIL} | uid:42" if is_redeemed else None)
            ),
            reserved_for_entry_id=reserved_for_entry_id,
            reserved_for_order_no=reserved_for_order_no,
            reserved_for_uid=reserved_for_uid,
        )
        db_session.add(row)
        await db_session.commit()
        await db_session.refresh(row)
        return row

    return _create


@pytest.fixture
def purchase_order_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates PurchaseOrder instances."""
    counter = {"n": 0}

    async def _create(
        *,
        code: RedemptionCode,
        link_by_id: bool = True,
        created_at: datetime | None = None,
        order_type: str | None = "warranty",
        service_days: int | None = None,
        status: str = "paid",
        paid_at: datetime | None = None,
        refunded_at: datetime | None = None,
    ) -> PurchaseOrder:
        counter["n"] += 1
        order = PurchaseOrder(
            order_no=f"PO-{counter['n']:04d}",
            code_id=code.id if link_by_id else None,
            code=code.code,
            order_type=order_type,
            service_days=service_days,
            status=status,
            paid_at=paid_at,
            refunded_at=refunded_at,
            created_at=created_at if created_at is not None else code.redeemed_at,
        )
        db_session.add(order)
        await db_session.commit()
        await db_session.refresh(order)
        return order

    return _create


@pytest.fixture
def credit_order_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates CreditOrder instances."""
    counter = {"n": 0}

    async def _create(
        *,
        code: RedemptionCode,
        created_at: datetime | None = None,
        status: str = "paid",
        refunded_at: datetime | None = None,
    ) -> CreditOrder:
        counter["n"] += 1
        order = CreditOrder(
            order_no=f"CO-{counter['n']:04d}",
            code_id=code.id,
            code=code.code,
            status=status,
            refunded_at=refunded_at,
            created_at=created_at if created_at is not None else code.redeemed_at,
        )
        db_session.add(order)
        await db_session.commit()
        await db_session.refresh(order)
        return order

    return _create


@pytest.fixture
def marketplace_order_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates XianyuOrder (default) or XhsOrder instances."""
    counter = {"n": 0}

    async def _create(
        *,
        code: RedemptionCode,
        model: type[XianyuOrder] | type[XhsOrder] = XianyuOrder,
        order_time: datetime | None = None,
        created_at: datetime | None = None,
        order_status: str | None = "completed",
        link_by_id: bool = True,
    ) -> XianyuOrder | XhsOrder:
        counter["n"] += 1
        order = model(
            order_id=f"MO-{counter['n']:04d}",
            assigned_code_id=code.id if link_by_id else None,
            assigned_code=code.code,
            order_status=order_status,
            order_time=order_time,
            created_at=created_at if created_at is not None else code.redeemed_at,
        )
        db_session.add(order)
        await db_session.commit()
        await db_session.refresh(order)
        return order

    return _create


@pytest.fixture
def recovery_log_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that appends AccountRecoveryLog rows directly."""

    async def _create(
        *,
        original: RedemptionCode,
        status: RecoveryStatus,
        recovery_code: RedemptionCode | None = None,
        recovery_account_email: str | None = None,
        error_message: str | None = None,
    ) -> AccountRecoveryLog:
        row = AccountRecoveryLog(
            email=CUSTOMER_EMAIL,
            original_code_id=original.id,
            original_redeemed_at=original.redeemed_at,
            original_account_email=original.account_email,
            recovery_mode="open-account",
            recovery_code_id=recovery_code.id if recovery_code else None,
            recovery_code=recovery_code.code if recovery_code else None,
            recovery_account_email=(
                recovery_account_email
                if recovery_account_email is not None
                else (recovery_code.account_email if recovery_code else None)
            ),
            status=status,
            error_message=error_message,
        )
        db_session.add(row)
        await db_session.commit()
        await db_session.refresh(row)
        return row

    return _create


# ---------------------------------------------------------------------------
# Composite fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def banned_scenario(
    account_factory: Callable[..., Any],
    code_factory: Callable[..., Any],
    purchase_order_factory: Callable[..., Any],
) -> dict[str, Any]:
    """Banned ``a@x.com`` with one paid warranty redemption ``ORIG-1`` (10 days old)
    and one usable common-channel candidate ``CAND-9``."""
    banned = await account_factory(email=BANNED_EMAIL, is_banned=True)
    spare = await account_factory(email="spare@x.com", expire_at=days_ahead(60))
    original = await code_factory(
        code="ORIG-1", account_email=BANNED_EMAIL, redeemed_at=days_ago(10)
    )
    await purchase_order_factory(code=original, order_type="warranty")
    candidate = await code_factory(code="CAND-9", account_email=spare.email)
    return {
        "banned": banned,
        "spare": spare,
        "original": original,
        "candidate": candidate,
    }
