"""PurchaseOrder model for direct paid orders."""

from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, UTCDateTime


class PurchaseOrder(Base):
    """An order paid through the panel's own checkout.

    Written by the sales subsystem; the recovery engine only reads it to
    classify the origin of a code and to resolve its service period.
    """

    __tablename__ = "purchase_orders"

    order_no: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    code_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        index=True,
    )
    code: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    order_type: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )
    service_days: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="paid",
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    redeemed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    refunded_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.order_no} status={self.status}>"
