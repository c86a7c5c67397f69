"""Account recovery admin API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.deps import (
    AccountRecoveryServiceDep,
    CurrentAdmin,
    RecoverySettingsDep,
    get_db,
    get_recovery_settings_service,
)
from app.core.rate_limit import limiter
from app.models.base import MAX_ROW_ID
from app.models.gpt_account import GptAccount
from app.schemas.account_recovery import (
    AccountRecoverySettings,
    AccountRecoverySettingsUpdate,
    BannedAccountItem,
    LatestAttempt,
    ProcessedAccount,
    ProcessedResponse,
    ProcessedUpdate,
    RecoverRequest,
    RecoverResponse,
    RecoverResultItem,
    RecoveredCodeResponse,
    RecoveryLogEntry,
    RecoveryLogsResponse,
    RecoveryPreviewResponse,
    RedeemItem,
)
from app.schemas.common import PaginatedResponse
from app.services.account_recovery.banned_accounts import BannedAccountService
from app.services.account_recovery.eligibility import EligibleRedemption, clamp_window_days
from app.services.account_recovery.ledger import RecoveryLedger
from app.services.account_recovery.settings import RecoverySettingsService
from app.services.account_recovery.sources import ORIGIN_SOURCES, parse_sources

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_PREVIEW_LIMIT = 200


def _redeem_item(item: EligibleRedemption) -> RedeemItem:
    return RedeemItem(
        original_code_id=item.original_code_id,
        code=item.code,
        channel=item.channel,
        redeemed_at=item.redeemed_at,
        user_email=item.customer_email,
        original_account_email=item.original_account_email,
        current_account_email=item.current_account_email,
        source=item.source,
        order_type=item.order_type,
        state=item.state.value,
        attempts=item.attempts,
        latest=LatestAttempt.model_validate(item.latest) if item.latest is not None else None,
    )


async def _banned_account_or_404(service: BannedAccountService, account_id: int) -> GptAccount:
    account = await service.get_account(account_id)
    if not account:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Account not found")
    return account


# --- Banned accounts ---


@router.get("/banned-accounts", response_model=PaginatedResponse[BannedAccountItem])
async def list_banned_accounts(
    admin: CurrentAdmin,  # noqa: ARG001
    recovery_settings: RecoverySettingsDep,
    search: str | None = Query(None, max_length=255),
    days: int | None = Query(None),
    pending_only: bool = Query(False, alias="pendingOnly"),
    sources: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[BannedAccountItem]:
    """Banned, not-yet-processed accounts with impacted redemption counts."""
    service = BannedAccountService(db)
    summaries, total = await service.list_accounts(
        days=clamp_window_days(days, recovery_settings.window_days),
        sources=parse_sources(sources),
        search=search,
        pending_only=pending_only,
        page=page,
        page_size=page_size,
    )
    items = [
        BannedAccountItem(
            id=s.account.id,
            email=s.account.email,
            ban_processed=s.account.ban_processed,
            expire_at=s.account.expire_at,
            created_at=s.account.created_at,
            updated_at=s.account.updated_at,
            impacted_count=s.impacted_count,
            done_count=s.done_count,
            failed_count=s.failed_count,
            pending_count=s.pending_count,
            latest_redeemed_at=s.latest_redeemed_at,
        )
        for s in summaries
    ]
    pages = (total + page_size - 1) // page_size if total > 0 else 1
    return PaginatedResponse(items=items, total=total, page=page, page_size=page_size, pages=pages)


@router.patch("/banned-accounts/{account_id}/processed", response_model=ProcessedResponse)
async def mark_banned_account_processed(
    admin: CurrentAdmin,  # noqa: ARG001
    account_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    data: ProcessedUpdate | None = None,
    db: AsyncSession = Depends(get_db),
) -> ProcessedResponse:
    """Mark a banned account as administratively handled (or unmark it)."""
    service = BannedAccountService(db)
    account = await _banned_account_or_404(service, account_id)
    if not account.is_banned:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Account is not banned")

    processed = data.processed if data is not None else True
    account = await service.set_processed(account, processed)
    return ProcessedResponse(account=ProcessedAccount.model_validate(account))


@router.get(
    "/banned-accounts/{account_id}/redeems",
    response_model=PaginatedResponse[RedeemItem],
)
async def list_account_redeems(
    admin: CurrentAdmin,  # noqa: ARG001
    recovery_settings: RecoverySettingsDep,
    account_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    state: str = Query("pending", alias="status"),
    search: str | None = Query(None, max_length=255),
    days: int | None = Query(None),
    sources: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[RedeemItem]:
    """Eligible redemptions on one banned account with their recovery state."""
    service = BannedAccountService(db)
    account = await _banned_account_or_404(service, account_id)
    if not account.is_banned:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Account is not banned")

    items, total = await service.list_redeems(
        account,
        days=clamp_window_days(days, recovery_settings.window_days),
        sources=parse_sources(sources),
        state=state,
        search=search,
        page=page,
        page_size=page_size,
    )
    pages = (total + page_size - 1) // page_size if total > 0 else 1
    return PaginatedResponse(
        items=[_redeem_item(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
        pages=pages,
    )


# --- Ledger ---


@router.get("/logs", response_model=RecoveryLogsResponse)
async def list_recovery_logs(
    admin: CurrentAdmin,  # noqa: ARG001
    original_code_id: int | None = Query(None, alias="originalCodeId", le=MAX_ROW_ID),
    db: AsyncSession = Depends(get_db),
) -> RecoveryLogsResponse:
    """Full attempt history for one original code, newest first."""
    if original_code_id is None or original_code_id <= 0:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "originalCodeId is required")
    logs = await RecoveryLedger(db).history(original_code_id)
    return RecoveryLogsResponse(logs=[RecoveryLogEntry.model_validate(log) for log in logs])


# --- One-click recovery ---


@router.get("/one-click/preview", response_model=RecoveryPreviewResponse)
async def preview_recovery(
    admin: CurrentAdmin,  # noqa: ARG001
    recovery_settings: RecoverySettingsDep,
    service: AccountRecoveryServiceDep,
    source: str = Query(...),
    days: int | None = Query(None),
    limit: int | None = Query(None),
) -> RecoveryPreviewResponse:
    """How many recoveries one click would run for a source, and which ids."""
    normalized = source.strip().lower()
    if normalized not in ORIGIN_SOURCES:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            f"Unsupported source; expected one of: {', '.join(ORIGIN_SOURCES)}",
        )
    preview = await service.preview(
        source=normalized,
        days=clamp_window_days(days, recovery_settings.window_days),
        limit=MAX_PREVIEW_LIMIT if limit is None else min(MAX_PREVIEW_LIMIT, max(1, limit)),
    )
    return RecoveryPreviewResponse.model_validate(preview)


@router.post("/recover", response_model=RecoverResponse, response_model_exclude_none=True)
@limiter.limit(settings.recover_rate_limit)
async def recover_accounts(
    request: Request,  # noqa: ARG001
    data: RecoverRequest,
    admin: CurrentAdmin,
    service: AccountRecoveryServiceDep,
) -> RecoverResponse:
    """Recover the given original codes sequentially, one result per id."""
    logger.info(
        "Recovery of %s original codes requested by %s",
        len(data.original_code_ids),
        admin.get("sub") or admin.get("email"),
    )
    results = await service.recover(data.original_code_ids)
    return RecoverResponse(
        results=[
            RecoverResultItem(
                original_code_id=r.original_code_id,
                outcome=r.outcome.value,
                message=r.message,
                recovery=(
                    RecoveredCodeResponse.model_validate(r.recovery)
                    if r.recovery is not None
                    else None
                ),
                status_code=r.status_code,
            )
            for r in results
        ]
    )


# --- Settings ---


@router.get("/settings", response_model=AccountRecoverySettings)
async def get_account_recovery_settings(
    admin: CurrentAdmin,  # noqa: ARG001
    recovery_settings: RecoverySettingsDep,
) -> AccountRecoverySettings:
    """Current account recovery settings."""
    return recovery_settings


@router.patch("/settings", response_model=AccountRecoverySettings)
async def update_account_recovery_settings(
    data: AccountRecoverySettingsUpdate,
    admin: CurrentAdmin,  # noqa: ARG001
    service: RecoverySettingsService = Depends(get_recovery_settings_service),
) -> AccountRecoverySettings:
    """Update account recovery settings."""
    return await service.update(data)
