from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.services.exceptions import (
    AuthenticationRejectedError,
    MalformedResponseError,
    TransportError,
)

logger = get_logger("storefront.api")


@dataclass(frozen=True)
class ApiEnvelope:
    """Decoded ``{"success": ..., "message": ..., "data": ...}`` response body."""

    status_code: int
    success: bool | None
    message: str | None
    code: str | None
    data: Any

    @property
    def is_success(self) -> bool:
        # Solo `success: true` explícito cuenta como éxito
        return self.success is True and self.status_code < 400


class ApiClient:
    """Thin async JSON client over httpx.

    The bearer token is passed per request; the client keeps no credential of
    its own, so one call can never mix identities.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            timeout=timeout or settings.REQUEST_TIMEOUT_SECONDS,
            headers={"User-Agent": settings.USER_AGENT},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _headers(token: str | None) -> dict:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: dict | None = None,
    ) -> ApiEnvelope:
        try:
            response = await self._client.request(method, path, json=json, headers=self._headers(token))
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request to {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Connection error calling {path}: {exc}") from exc

        if response.status_code == 401 and token:
            raise AuthenticationRejectedError("Credential rejected by backend")
        if response.status_code >= 500:
            raise TransportError(f"Backend error {response.status_code} on {method} {path}")

        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"Non-JSON response from {path}") from exc
        if not isinstance(body, dict):
            raise MalformedResponseError(f"Unexpected response body from {path}")

        success = body.get("success")
        envelope = ApiEnvelope(
            status_code=response.status_code,
            success=success if isinstance(success, bool) else None,
            message=body.get("message") if isinstance(body.get("message"), str) else None,
            code=body.get("code") if isinstance(body.get("code"), str) else None,
            data=body.get("data"),
        )
        logger.debug(
            "API response",
            extra={"method": method, "path": path, "status_code": response.status_code, "success": envelope.success},
        )
        return envelope

    async def get(self, path: str, *, token: str | None = None) -> ApiEnvelope:
        return await self.request("GET", path, token=token)

    async def post(self, path: str, data: dict | None = None, *, token: str | None = None) -> ApiEnvelope:
        return await self.request("POST", path, token=token, json=data if data is not None else {})

    async def put(self, path: str, data: dict, *, token: str | None = None) -> ApiEnvelope:
        return await self.request("PUT", path, token=token, json=data)

    async def delete(self, path: str, *, token: str | None = None) -> ApiEnvelope:
        return await self.request("DELETE", path, token=token)
