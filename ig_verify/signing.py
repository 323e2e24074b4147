from __future__ import annotations

from typing import Any

import httpx

from .config_schema import SignerConfig
from .errors import SigningError
from .run_log import RunLogger


def _error_message(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if isinstance(message, str) and message.strip():
            return message.strip()

    text = (resp.text or "").strip()
    return text[:500] if text else f"HTTP {resp.status_code}"


class SigningTokenClient:
    """
    Client for the backend endpoint that signs short-lived zkFetch sessions.

    The backend keeps the application secret; this side only ever sees the token.
    """

    def __init__(
        self,
        api_url: str,
        *,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self._api_url = (api_url or "").strip().rstrip("/")
        if not self._api_url:
            raise ValueError("api_url must be non-empty")
        self._timeout = float(timeout_seconds)
        self._client = client
        self._logger = logger

    @classmethod
    def from_config(
        cls,
        signer: SignerConfig,
        *,
        client: httpx.AsyncClient | None = None,
        logger: RunLogger | None = None,
    ) -> "SigningTokenClient":
        return cls(
            signer.api_url,
            timeout_seconds=signer.timeout_seconds,
            client=client,
            logger=logger,
        )

    @property
    def api_url(self) -> str:
        return self._api_url

    async def _get(self, path: str) -> httpx.Response:
        url = f"{self._api_url}{path}"
        try:
            if self._client is not None:
                return await self._client.get(url, timeout=self._timeout)
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.get(url)
        except httpx.HTTPError as e:
            raise SigningError(f"Signing service request failed ({url}): {e}") from e

    async def get_signing_token(self) -> str:
        resp = await self._get("/sign")

        if resp.status_code >= 400:
            message = _error_message(resp)
            if self._logger is not None:
                self._logger.error(
                    "signing_token_rejected",
                    url=str(resp.request.url),
                    status_code=resp.status_code,
                    message=message,
                )
            raise SigningError(f"Failed to generate session signature: {message}")

        try:
            payload: Any = resp.json()
        except ValueError as e:
            raise SigningError("Signing service returned invalid JSON") from e

        token = payload.get("token") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token.strip():
            raise SigningError("Signing service response is missing a token")

        if self._logger is not None:
            self._logger.info("signing_token_issued", url=str(resp.request.url))
        return token.strip()

    async def health_check(self) -> str:
        resp = await self._get("/")
        if resp.status_code >= 400:
            raise SigningError(f"Signing service is unhealthy: {_error_message(resp)}")
        return (resp.text or "").strip()
