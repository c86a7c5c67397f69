"""RedemptionCode model for sold and stocked activation codes."""

from datetime import datetime

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, UTCDateTime

COMMON_CHANNEL = "common"


class RedemptionCode(Base):
    """An activation code bound to a provisioned account.

    Rows are issued by inventory replenishment. A redeemed row is an original
    redemption; an unredeemed row in the common channel is recovery stock.
    """

    __tablename__ = "redemption_codes"

    code: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    # NULL or empty string both mean the common pool
    channel: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        default=COMMON_CHANNEL,
        index=True,
    )
    order_type: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )

    # Redemption state
    is_redeemed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True,
    )
    redeemed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        index=True,
    )
    # e.g. "email:buyer@example.com | uid:42" or a bare email
    redeemed_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    account_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    # Reservations held by other flows
    reserved_for_entry_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    reserved_for_order_no: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    reserved_for_uid: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<RedemptionCode {self.code} redeemed={self.is_redeemed}>"
