"""Async HTTP client for the ledger API.

Responses are parsed into the same pydantic models the API serves. Failures
that matter to the claim flow surface as ``ClaimError`` so callers handle one
exception type: 401 becomes ``unauthenticated``, any transport failure
(timeout, reset, refused connection) becomes ``network_timeout`` and error
bodies carrying a ``kind`` keep that kind. Other HTTP errors raise
``httpx.HTTPStatusError``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from uticoins.config import get_settings
from uticoins.rewards.errors import ClaimError, ClaimErrorKind
from uticoins.rewards.schemas import (
    BalanceResponse,
    ClaimResponse,
    CodeStateResponse,
    ScheduleResponse,
    StreakResponse,
)

logger = logging.getLogger(__name__)

_KNOWN_KINDS = {kind.value: kind for kind in ClaimErrorKind}


class LedgerClient:
    """Thin wrapper over ``httpx.AsyncClient`` bound to one user's token."""

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.client_base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout if timeout is not None else settings.client_request_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> LedgerClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def current_state(self) -> CodeStateResponse:
        data = await self._request("GET", "/api/v1/daily-codes/current")
        return CodeStateResponse.model_validate(data)

    async def claim(self, code: str | None = None) -> ClaimResponse:
        data = await self._request("POST", "/api/v1/daily-codes/claim", json={"code": code})
        return ClaimResponse.model_validate(data)

    async def streak(self) -> StreakResponse:
        data = await self._request("GET", "/api/v1/daily-codes/streak")
        return StreakResponse.model_validate(data)

    async def schedule(self) -> ScheduleResponse:
        data = await self._request("GET", "/api/v1/daily-codes/schedule")
        return ScheduleResponse.model_validate(data)

    async def balance(self) -> BalanceResponse:
        data = await self._request("GET", "/api/v1/coins/balance")
        return BalanceResponse.model_validate(data)

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = await self._http.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            # The server may or may not have applied the request.
            logger.warning("Ledger request %s %s timed out", method, path)
            raise ClaimError(ClaimErrorKind.NETWORK_TIMEOUT, f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            # A reset mid-response leaves the outcome just as unknown as a timeout.
            logger.warning("Ledger request %s %s failed: %s", method, path, exc)
            raise ClaimError(ClaimErrorKind.NETWORK_TIMEOUT, f"{method} {path} failed: {exc}") from exc

        if response.status_code == 401:
            raise ClaimError(ClaimErrorKind.UNAUTHENTICATED, _detail(response) or "Authentication required")

        if response.is_error:
            body = _json_or_none(response)
            kind = _KNOWN_KINDS.get(body.get("kind", "")) if isinstance(body, dict) else None
            if kind is not None:
                raise ClaimError(kind, str(body.get("detail", "")))
            response.raise_for_status()

        return response.json()


def _json_or_none(response: httpx.Response) -> Any:  # noqa: ANN401
    try:
        return response.json()
    except ValueError:
        return None


def _detail(response: httpx.Response) -> str | None:
    body = _json_or_none(response)
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return None
