"""Client for the code redemption service that performs account handouts."""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class RedemptionError(Exception):
    """Redemption was refused or could not be performed."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class RedemptionResult:
    """Successful handout as reported by the redemption service."""

    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def account_email(self) -> str | None:
        email = self.metadata.get("accountEmail") or self.metadata.get("account_email")
        return str(email).strip() if email else None


class RedemptionExecutor(Protocol):
    """Binds a code to a customer email and delivers account access."""

    async def redeem(self, code: str, email: str, channel: str) -> RedemptionResult: ...


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or f"Redemption failed with HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                return str(body[key])
    return f"Redemption failed with HTTP {response.status_code}"


class RedemptionClient:
    """Async HTTP client for the internal redemption endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.redemption_service_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.redemption_timeout_seconds
        self.headers = {"Content-Type": "application/json"}
        token = token if token is not None else settings.redemption_service_token
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    async def redeem(self, code: str, email: str, channel: str) -> RedemptionResult:
        """Redeem ``code`` for ``email`` on ``channel``.

        Raises:
            RedemptionError: On transport failure (502) or a non-2xx reply.
        """
        payload = {"code": code, "email": email, "channel": channel}
        try:
            async with httpx.AsyncClient(headers=self.headers, timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/internal/redeem", json=payload)
        except httpx.HTTPError as e:
            logger.warning("Redemption service unreachable for code %s: %s", code, e)
            raise RedemptionError(502, f"Redemption service unavailable: {e}") from e

        if response.is_error:
            message = _error_message(response)
            logger.info(
                "Redemption of %s refused with %s: %s", code, response.status_code, message
            )
            raise RedemptionError(response.status_code, message)

        data = response.json() if response.content else {}
        metadata = data.get("metadata") if isinstance(data, dict) else None
        return RedemptionResult(metadata=metadata if isinstance(metadata, dict) else {})
