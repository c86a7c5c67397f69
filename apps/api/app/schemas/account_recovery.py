"""Pydantic schemas for the account recovery admin API."""

from datetime import datetime
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator

from app.core.config import settings
from app.models.account_recovery_log import RecoveryStatus
from app.models.base import MAX_ROW_ID
from app.schemas.common import BaseSchema

# --- Settings ---


class AccountRecoverySettings(BaseSchema):
    """Persisted recovery settings (system_config key ``account_recovery``)."""

    window_days: int = Field(default=30, ge=1, le=90)
    capacity_limit: int = Field(default=6, ge=1, le=100)
    prefer_non_today: bool = True


class AccountRecoverySettingsUpdate(BaseSchema):
    """Partial update; omitted fields keep their current value."""

    window_days: int | None = Field(default=None, ge=1, le=90)
    capacity_limit: int | None = Field(default=None, ge=1, le=100)
    prefer_non_today: bool | None = None


# --- Banned accounts ---


class BannedAccountItem(BaseSchema):
    """A banned account with counts of the redemptions it affects."""

    id: int
    email: str
    ban_processed: bool
    expire_at: datetime | None
    created_at: datetime
    updated_at: datetime
    impacted_count: int
    done_count: int
    failed_count: int
    pending_count: int
    latest_redeemed_at: datetime | None


class ProcessedUpdate(BaseSchema):
    processed: bool = Field(
        default=True,
        validation_alias=AliasChoices("processed", "value"),
    )


class ProcessedAccount(BaseSchema):
    id: int
    email: str
    ban_processed: bool
    updated_at: datetime


class ProcessedResponse(BaseSchema):
    account: ProcessedAccount


# --- Ledger ---


class LatestAttempt(BaseSchema):
    """Most recent ledger row for an original redemption."""

    id: int
    status: RecoveryStatus
    error_message: str | None
    recovery_mode: str | None
    recovery_code_id: int | None
    recovery_code: str | None
    recovery_account_email: str | None
    created_at: datetime


class RecoveryLogEntry(BaseSchema):
    """A full ledger row."""

    id: int
    email: str
    original_code_id: int
    original_redeemed_at: datetime | None
    original_account_email: str | None
    recovery_mode: str | None
    recovery_code_id: int | None
    recovery_code: str | None
    recovery_account_email: str | None
    status: RecoveryStatus
    error_message: str | None
    created_at: datetime
    updated_at: datetime


class RecoveryLogsResponse(BaseSchema):
    logs: list[RecoveryLogEntry]


# --- Redemptions of one banned account ---


class RedeemItem(BaseSchema):
    """An eligible original redemption with its recovery state."""

    original_code_id: int
    code: str
    channel: str
    redeemed_at: datetime | None
    user_email: str
    original_account_email: str
    current_account_email: str
    source: str
    order_type: str
    state: str
    attempts: int
    latest: LatestAttempt | None


# --- One-click preview & recover ---


class RecoveryPreviewResponse(BaseSchema):
    source: str
    days: int
    limit: int
    pending_count: int
    failed_count: int
    need_count: int
    available_count: int
    will_process_count: int
    original_code_ids: list[int]
    generated_at: datetime


class RecoverRequest(BaseSchema):
    """Original code ids to recover, processed in the given order."""

    original_code_ids: list[Annotated[int, Field(le=MAX_ROW_ID)]]

    @field_validator("original_code_ids")
    @classmethod
    def validate_ids(cls, ids: list[int]) -> list[int]:
        # Non-positive ids are dropped and repeats collapse to the first occurrence.
        cleaned = list(dict.fromkeys(i for i in ids if i > 0))
        if not cleaned:
            raise ValueError("originalCodeIds must contain at least one positive id")
        if len(cleaned) > settings.recovery_max_batch_size:
            raise ValueError(
                f"At most {settings.recovery_max_batch_size} ids can be recovered per call"
            )
        return cleaned


class RecoveredCodeResponse(BaseSchema):
    recovery_code_id: int
    recovery_code: str
    recovery_account_email: str


class RecoverResultItem(BaseSchema):
    original_code_id: int
    outcome: str
    message: str
    recovery: RecoveredCodeResponse | None = None
    status_code: int | None = None


class RecoverResponse(BaseSchema):
    results: list[RecoverResultItem]
