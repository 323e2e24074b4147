from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from .collaborators import ProofFetcherFactory
from .config_schema import FetchConfig
from .errors import FetchProofError, SigningError
from .run_log import RunLogger
from .urls import is_allowed_post_url, normalize_post_url


class TokenSource(Protocol):
    async def get_signing_token(self) -> str: ...


@dataclass(frozen=True)
class FetchedIdentity:
    """Owner of a post as attested by zkFetch, together with the raw proof."""

    url: str
    username: str | None
    raw_proof: Mapping[str, Any] = field(default_factory=dict, repr=False)


def build_request_options(fetch: FetchConfig) -> dict[str, Any]:
    return {
        "method": "GET",
        "headers": fetch.request_headers(),
        "context": {
            "contextAddress": fetch.context_address,
            "contextMessage": fetch.context_message,
        },
    }


def build_extraction_rules(fetch: FetchConfig) -> dict[str, Any]:
    return {
        "responseMatches": [
            {"type": "regex", "value": fetch.username_pattern},
        ]
    }


def _extracted_username(data: Mapping[str, Any]) -> str | None:
    values = data.get("extractedParameterValues")
    if not isinstance(values, Mapping):
        return None
    username = values.get("username")
    if isinstance(username, str) and username.strip():
        return username.strip()
    return None


class OwnerIdentityFetcher:
    """
    Fetch the embed page of a post through zkFetch and read the owner's username.

    Every call performs a fresh token request followed by the proof-producing
    fetch. Nothing is cached between calls.
    """

    def __init__(
        self,
        token_source: TokenSource,
        fetcher_factory: ProofFetcherFactory,
        *,
        app_id: str,
        fetch: FetchConfig | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self._token_source = token_source
        self._fetcher_factory = fetcher_factory
        self._app_id = app_id
        self._fetch = fetch or FetchConfig()
        self._logger = logger

    async def fetch_owner_identity(self, raw_url: str) -> FetchedIdentity:
        if not (raw_url or "").strip():
            raise FetchProofError("Please enter an Instagram URL")

        try:
            token = await self._token_source.get_signing_token()
        except SigningError as e:
            raise FetchProofError(str(e)) from e
        except Exception as e:
            raise FetchProofError(f"Failed to obtain a session token: {e}") from e

        url = normalize_post_url(raw_url)
        if self._logger is not None:
            if not is_allowed_post_url(url):
                # The signer only issues tokens for these URL patterns.
                self._logger.warning("post_url_not_allowed", url=url)
            self._logger.info("zkfetch_started", url=url)

        try:
            client = self._fetcher_factory(self._app_id, token)
            data = await client.fetch_with_proof(
                url,
                build_request_options(self._fetch),
                build_extraction_rules(self._fetch),
            )
        except Exception as e:
            if self._logger is not None:
                self._logger.exception("zkfetch_failed", exc=e, url=url)
            raise FetchProofError(str(e) or f"zkFetch failed for {url}") from e

        if not isinstance(data, Mapping):
            raise FetchProofError(f"zkFetch returned an unexpected response for {url}")

        username = _extracted_username(data)
        if self._logger is not None:
            self._logger.info("zkfetch_completed", url=url, username=username)

        return FetchedIdentity(url=url, username=username, raw_proof=data)
