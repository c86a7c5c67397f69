"""Warranty policy: order-type resolution and order deadlines."""

import logging
from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import ColumnElement, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.purchase_order import PurchaseOrder
from app.models.redemption_code import RedemptionCode
from app.services.account_recovery.sources import references_code

logger = logging.getLogger(__name__)

ORDER_TYPE_WARRANTY = "warranty"
ORDER_TYPE_NO_WARRANTY = "no_warranty"
ORDER_TYPE_ANTI_BAN = "anti_ban"
ORDER_TYPES = frozenset({ORDER_TYPE_WARRANTY, ORDER_TYPE_NO_WARRANTY, ORDER_TYPE_ANTI_BAN})


def normalize_code(value: str | None) -> str:
    """Codes are stored trimmed and upper-case."""
    return (value or "").strip().upper()


def normalize_order_type(value: str | None) -> str:
    """Map a stored order type to a known one; anything unknown is warranty."""
    normalized = (value or "").strip().lower()
    return normalized if normalized in ORDER_TYPES else ORDER_TYPE_WARRANTY


def order_type_expression() -> ColumnElement[Any]:
    """Raw order type for the outer ``RedemptionCode``.

    Latest referencing purchase order's type, else the code's own type.
    NULL means the default (warranty).
    """
    latest_type = (
        select(func.nullif(func.trim(PurchaseOrder.order_type), ""))
        .where(references_code(PurchaseOrder.code_id, PurchaseOrder.code))
        .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .limit(1)
        .correlate(RedemptionCode)
        .scalar_subquery()
    )
    return func.coalesce(latest_type, func.nullif(func.trim(RedemptionCode.order_type), ""))


def is_warranty_backed() -> ColumnElement[bool]:
    """SQL mirror of ``normalize_order_type(...) != no_warranty``."""
    return func.lower(func.coalesce(order_type_expression(), "")) != ORDER_TYPE_NO_WARRANTY


class DeadlineResolver(Protocol):
    """Gives the instant a substitute must stay valid until."""

    async def resolve(
        self,
        *,
        code_id: int,
        code: str,
        redeemed_at: datetime | None,
        order_type: str | None = None,
    ) -> datetime | None: ...


class OrderDeadlineResolver:
    """Resolves the instant until which an original sale is owed service.

    The latest purchase order referencing the code supplies the service days
    and start instant. Without one, the default period runs from redemption.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        service_days: int,
        no_warranty_service_days: int,
    ) -> None:
        self.db = db
        self.service_days = max(1, service_days)
        self.no_warranty_service_days = max(1, no_warranty_service_days)

    def default_service_days(self, order_type: str | None) -> int:
        if normalize_order_type(order_type) == ORDER_TYPE_NO_WARRANTY:
            return self.no_warranty_service_days
        return self.service_days

    async def resolve(
        self,
        *,
        code_id: int,
        code: str,
        redeemed_at: datetime | None,
        order_type: str | None = None,
    ) -> datetime | None:
        """Deadline for the sale behind ``code``, or None without any start instant."""
        sanitized = normalize_code(code)
        # Unlinked orders are matched by code text; fall back to the stored code
        code_text: Any = (
            sanitized
            if sanitized
            else select(RedemptionCode.code).where(RedemptionCode.id == code_id).scalar_subquery()
        )
        stmt = (
            select(
                PurchaseOrder.service_days,
                PurchaseOrder.created_at,
                PurchaseOrder.paid_at,
                PurchaseOrder.redeemed_at,
            )
            .where(
                or_(
                    PurchaseOrder.code_id == code_id,
                    and_(PurchaseOrder.code_id.is_(None), PurchaseOrder.code == code_text),
                )
            )
            .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
            .limit(1)
        )
        row = (await self.db.execute(stmt)).first()

        days = self.default_service_days(order_type)
        start = redeemed_at
        if row is not None:
            if row.service_days is not None:
                days = row.service_days
            start = row.created_at or row.paid_at or row.redeemed_at or redeemed_at

        if start is None:
            logger.warning("No start instant for code %s; deadline unknown", code_id)
            return None
        return start + timedelta(days=max(1, days))
