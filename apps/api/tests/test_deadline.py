"""Tests for the order deadline resolver."""

from collections.abc import Callable
from datetime import timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.account_recovery.warranty import OrderDeadlineResolver, normalize_code
from tests.conftest import BANNED_EMAIL, days_ago


def make_resolver(db_session: AsyncSession) -> OrderDeadlineResolver:
    return OrderDeadlineResolver(db_session, service_days=30, no_warranty_service_days=7)


class TestOrderDeadlineResolver:
    async def test_uses_order_service_days_and_created_at(
        self,
        db_session: AsyncSession,
        code_factory: Callable[..., Any],
        purchase_order_factory: Callable[..., Any],
    ) -> None:
        code = await code_factory(code="C1", account_email=BANNED_EMAIL, redeemed_at=days_ago(2))
        order = await purchase_order_factory(code=code, created_at=days_ago(3), service_days=90)

        deadline = await make_resolver(db_session).resolve(
            code_id=code.id, code=code.code, redeemed_at=code.redeemed_at
        )

        assert deadline == order.created_at + timedelta(days=90)

    async def test_default_days_when_order_has_none(
        self,
        db_session: AsyncSession,
        code_factory: Callable[..., Any],
        purchase_order_factory: Callable[..., Any],
    ) -> None:
        code = await code_factory(code="C1", account_email=BANNED_EMAIL, redeemed_at=days_ago(2))
        order = await purchase_order_factory(code=code, created_at=days_ago(3))

        deadline = await make_resolver(db_session).resolve(
            code_id=code.id, code=code.code, redeemed_at=code.redeemed_at
        )

        assert deadline == order.created_at + timedelta(days=30)

    async def test_latest_order_wins(
        self,
        db_session: AsyncSession,
        code_factory: Callable[..., Any],
        purchase_order_factory: Callable[..., Any],
    ) -> None:
        code = await code_factory(code="C1", account_email=BANNED_EMAIL, redeemed_at=days_ago(2))
        await purchase_order_factory(code=code, created_at=days_ago(10), service_days=5)
        latest = await purchase_order_factory(
            code=code, created_at=days_ago(4), service_days=60, link_by_id=False
        )

        deadline = await make_resolver(db_session).resolve(
            code_id=code.id, code=code.code, redeemed_at=code.redeemed_at
        )

        assert deadline == latest.created_at + timedelta(days=60)

    async def test_without_order_runs_from_redemption(
        self, db_session: AsyncSession, code_factory: Callable[..., Any]
    ) -> None:
        code = await code_factory(code="C1", account_email=BANNED_EMAIL, redeemed_at=days_ago(2))
        resolver = make_resolver(db_session)

        warranty = await resolver.resolve(
            code_id=code.id, code=code.code, redeemed_at=code.redeemed_at
        )
        no_warranty = await resolver.resolve(
            code_id=code.id,
            code=code.code,
            redeemed_at=code.redeemed_at,
            order_type="no_warranty",
        )

        assert warranty == code.redeemed_at + timedelta(days=30)
        assert no_warranty == code.redeemed_at + timedelta(days=7)

    async def test_no_start_instant(self, db_session: AsyncSession) -> None:
        deadline = await make_resolver(db_session).resolve(
            code_id=999, code="NOPE", redeemed_at=None
        )
        assert deadline is None

    async def test_unlinked_order_matches_normalized_code(
        self,
        db_session: AsyncSession,
        code_factory: Callable[..., Any],
        purchase_order_factory: Callable[..., Any],
    ) -> None:
        code = await code_factory(code="C1", account_email=BANNED_EMAIL, redeemed_at=days_ago(2))
        order = await purchase_order_factory(
            code=code, created_at=days_ago(3), service_days=45, link_by_id=False
        )

        deadline = await make_resolver(db_session).resolve(
            code_id=code.id, code="  c1 ", redeemed_at=code.redeemed_at
        )

        assert deadline == order.created_at + timedelta(days=45)

    async def test_blank_code_falls_back_to_stored_code(
        self,
        db_session: AsyncSession,
        code_factory: Callable[..., Any],
        purchase_order_factory: Callable[..., Any],
    ) -> None:
        code = await code_factory(code="C1", account_email=BANNED_EMAIL, redeemed_at=days_ago(2))
        order = await purchase_order_factory(
            code=code, created_at=days_ago(3), service_days=45, link_by_id=False
        )

        deadline = await make_resolver(db_session).resolve(
            code_id=code.id, code="", redeemed_at=code.redeemed_at
        )

        assert deadline == order.created_at + timedelta(days=45)


def test_normalize_code() -> None:
    assert normalize_code("  ab-12 ") == "AB-12"
    assert normalize_code(None) == ""
