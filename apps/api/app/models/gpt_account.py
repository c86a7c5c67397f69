"""GptAccount model for provisioned team accounts."""

from datetime import datetime

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, UTCDateTime


class GptAccount(Base):
    """A provisioned upstream account that activation codes seat users into."""

    __tablename__ = "gpt_accounts"

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    # Credentials
    token: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    refresh_token: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    chatgpt_account_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    expire_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    # Seat occupancy
    user_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    invite_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # Flags
    is_open: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    is_banned: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True,
    )
    ban_processed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    @property
    def occupancy(self) -> int:
        return (self.user_count or 0) + (self.invite_count or 0)

    def __repr__(self) -> str:
        return f"<GptAccount {self.email} banned={self.is_banned}>"
