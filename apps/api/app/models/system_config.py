"""SystemConfig model for persisted key/value settings."""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class SystemConfig(Base):
    """A named JSON settings document."""

    __tablename__ = "system_config"

    key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )
    value: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    def __repr__(self) -> str:
        return f"<SystemConfig {self.key}>"
