"""Origin source classification for original redemptions.

A redemption's origin is decided by an ordered list of named classifiers,
evaluated first-match-wins. Each classifier is a SQL predicate correlated to
``RedemptionCode`` so the whole classification runs inside one query.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import ColumnElement, and_, case, exists, func, not_, or_, select

from app.models.credit_order import CreditOrder
from app.models.marketplace_order import XhsOrder, XianyuOrder
from app.models.purchase_order import PurchaseOrder
from app.models.redemption_code import RedemptionCode

SOURCE_PAYMENT = "payment"
SOURCE_CREDIT = "credit"
SOURCE_XIANYU = "xianyu"
SOURCE_XHS = "xhs"
SOURCE_MANUAL = "manual"

ORIGIN_SOURCES: tuple[str, ...] = (
    SOURCE_PAYMENT,
    SOURCE_CREDIT,
    SOURCE_XIANYU,
    SOURCE_XHS,
    SOURCE_MANUAL,
)

# Order statuses that void an order as a recovery origin
VOID_ORDER_STATUSES = ("refunded", "cancelled")


def references_code(code_id_column: Any, code_column: Any) -> ColumnElement[bool]:
    """Order row points at the outer redemption code by id, or by code text when unlinked."""
    return or_(
        code_id_column == RedemptionCode.id,
        and_(code_id_column.is_(None), code_column == RedemptionCode.code),
    )


def _not_void(status_column: Any) -> ColumnElement[bool]:
    return func.lower(func.coalesce(status_column, "")).not_in(VOID_ORDER_STATUSES)


def _paid_order_in_window(model: Any, since: datetime) -> ColumnElement[bool]:
    return exists(
        select(model.id)
        .where(
            references_code(model.code_id, model.code),
            model.created_at >= since,
            model.refunded_at.is_(None),
            _not_void(model.status),
        )
        .correlate(RedemptionCode)
    )


def _marketplace_order_in_window(model: Any, since: datetime) -> ColumnElement[bool]:
    return exists(
        select(model.id)
        .where(
            references_code(model.assigned_code_id, model.assigned_code),
            func.coalesce(model.order_time, model.created_at) >= since,
            _not_void(model.order_status),
        )
        .correlate(RedemptionCode)
    )


def any_order_references_code() -> ColumnElement[bool]:
    """True when any order table references the code, regardless of time or status."""
    return or_(
        exists(
            select(PurchaseOrder.id)
            .where(references_code(PurchaseOrder.code_id, PurchaseOrder.code))
            .correlate(RedemptionCode)
        ),
        exists(
            select(CreditOrder.id)
            .where(references_code(CreditOrder.code_id, CreditOrder.code))
            .correlate(RedemptionCode)
        ),
        exists(
            select(XianyuOrder.id)
            .where(references_code(XianyuOrder.assigned_code_id, XianyuOrder.assigned_code))
            .correlate(RedemptionCode)
        ),
        exists(
            select(XhsOrder.id)
            .where(references_code(XhsOrder.assigned_code_id, XhsOrder.assigned_code))
            .correlate(RedemptionCode)
        ),
    )


def redeemer_looks_like_email() -> ColumnElement[bool]:
    redeemer = func.lower(func.coalesce(RedemptionCode.redeemed_by, ""))
    return and_(
        func.trim(redeemer) != "",
        or_(redeemer.contains("@"), redeemer.contains("email:")),
    )


def _manual(since: datetime) -> ColumnElement[bool]:  # noqa: ARG001
    # Only when nothing references the code; an order that fell outside the
    # window must not be reclassified as a manual handout.
    return and_(redeemer_looks_like_email(), not_(any_order_references_code()))


@dataclass(frozen=True)
class SourceClassifier:
    """A named origin predicate over ``RedemptionCode`` for a window start."""

    name: str
    matches: Callable[[datetime], ColumnElement[bool]]


SOURCE_CLASSIFIERS: tuple[SourceClassifier, ...] = (
    SourceClassifier(SOURCE_PAYMENT, lambda since: _paid_order_in_window(PurchaseOrder, since)),
    SourceClassifier(SOURCE_CREDIT, lambda since: _paid_order_in_window(CreditOrder, since)),
    SourceClassifier(SOURCE_XIANYU, lambda since: _marketplace_order_in_window(XianyuOrder, since)),
    SourceClassifier(SOURCE_XHS, lambda since: _marketplace_order_in_window(XhsOrder, since)),
    SourceClassifier(SOURCE_MANUAL, _manual),
)


def source_expression(
    since: datetime,
    classifiers: Iterable[SourceClassifier] = SOURCE_CLASSIFIERS,
) -> ColumnElement[Any]:
    """CASE expression yielding the first matching source name, or NULL."""
    whens = [(classifier.matches(since), classifier.name) for classifier in classifiers]
    return case(*whens, else_=None)


def parse_sources(raw: str | Iterable[str] | None) -> frozenset[str] | None:
    """Normalize a source filter.

    Returns ``None`` for "no filter" (absent, blank, or every source listed)
    and an empty set when values were given but none is a known source.
    """
    if raw is None:
        return None
    values = [raw] if isinstance(raw, str) else list(raw)
    tokens = [
        token.strip().lower()
        for value in values
        for token in str(value).split(",")
        if token.strip()
    ]
    if not tokens:
        return None
    selected = frozenset(token for token in tokens if token in ORIGIN_SOURCES)
    if selected == frozenset(ORIGIN_SOURCES):
        return None
    return selected
