"""Marketplace order models (Xianyu and Xiaohongshu)."""

from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, UTCDateTime


class MarketplaceOrderMixin:
    """Columns shared by orders imported from external marketplaces.

    Codes are assigned to these orders after import, so the reference lives in
    ``assigned_code_id`` / ``assigned_code`` rather than ``code_id`` / ``code``.
    """

    order_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    assigned_code_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        index=True,
    )
    assigned_code: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    order_status: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )
    # Marketplace-side order time; falls back to created_at when missing
    order_time: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )


class XianyuOrder(MarketplaceOrderMixin, Base):
    """Order imported from Xianyu."""

    __tablename__ = "xianyu_orders"

    def __repr__(self) -> str:
        return f"<XianyuOrder {self.order_id}>"


class XhsOrder(MarketplaceOrderMixin, Base):
    """Order imported from Xiaohongshu."""

    __tablename__ = "xhs_orders"

    def __repr__(self) -> str:
        return f"<XhsOrder {self.order_id}>"
