"""CreditOrder model for orders paid with store credit."""

from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, UTCDateTime


class CreditOrder(Base):
    """An order settled with account credit instead of a payment provider."""

    __tablename__ = "credit_orders"

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
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="paid",
    )
    refunded_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<CreditOrder {self.order_no} status={self.status}>"
