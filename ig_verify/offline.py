from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Mapping, Sequence

from .collaborators import CollaboratorSet, ErrorCallback, SuccessCallback

_OFFLINE_USERNAME = "offline_athlete"
_OFFLINE_CAPTION = (
    "Front lever progression, week 6. Tuck to advanced tuck, holding 12s clean."
)
_OFFLINE_IMAGE = "https://scontent.example.com/offline/front-lever.jpg"


def _count_payload(n: int) -> str:
    return json.dumps({"value": {"results": [{"total_value": n}]}}, separators=(",", ":"))


def _embed_html(username: str) -> str:
    return (
        "<html><body><div class=\"Header\">"
        f"<span class=\"UsernameText\">{username}</span>"
        "</div></body></html>"
    )


def _to_python_regex(pattern: str) -> re.Pattern[str]:
    # zkFetch patterns use JavaScript named groups and escaped quotes.
    translated = pattern.replace("(?<", "(?P<").replace("(?P<=", "(?<=").replace("(?P<!", "(?<!")
    translated = translated.replace('\\"', '"')
    return re.compile(translated)


def default_offline_proofs(media_code: str | None) -> list[dict[str, Any]]:
    """Two proofs that together describe one post, as the provider returns them."""
    context_1 = {
        "contextAddress": "0x0",
        "contextMessage": "instagram_verification",
        "extractedParameters": {
            "username": _OFFLINE_USERNAME,
            "media_code": media_code or "",
            "like_count": _count_payload(128),
        },
    }
    context_2 = {
        "extractedParameters": {
            "comment_count": _count_payload(14),
        },
    }
    return [
        {
            "identifier": "0xoffline1",
            "claimData": {"provider": "http", "context": json.dumps(context_1)},
            "publicData": {"caption": _OFFLINE_CAPTION, "image": _OFFLINE_IMAGE},
        },
        {
            "identifier": "0xoffline2",
            "claimData": {"provider": "http", "context": json.dumps(context_2)},
        },
    ]


class OfflineProofFetcher:
    """zkFetch stand-in that evaluates extraction rules against a stub embed page."""

    def __init__(self, app_id: str, token: str, *, username: str = _OFFLINE_USERNAME) -> None:
        self.app_id = app_id
        self.token = token
        self._username = username
        self.calls: list[dict[str, Any]] = []

    async def fetch_with_proof(
        self,
        url: str,
        request_options: Mapping[str, Any],
        extraction_rules: Mapping[str, Any],
    ) -> Mapping[str, Any]:
        self.calls.append(
            {"url": url, "request_options": request_options, "extraction_rules": extraction_rules}
        )
        await asyncio.sleep(0)

        body = _embed_html(self._username)
        values: dict[str, str] = {}
        for rule in extraction_rules.get("responseMatches") or []:
            if rule.get("type") != "regex":
                continue
            match = _to_python_regex(str(rule.get("value") or "")).search(body)
            if match:
                values.update({k: v for k, v in match.groupdict().items() if v is not None})

        return {
            "claimData": {
                "provider": "http",
                "parameters": json.dumps({"url": url, "method": "GET"}),
                "context": json.dumps(dict(request_options.get("context") or {})),
            },
            "extractedParameterValues": values,
            "signatures": ["0xoffline"],
            "witnesses": [{"id": "0xoffline", "url": "offline://attestor"}],
        }


class OfflineSigningClient:
    def __init__(self, token: str = "offline-token") -> None:
        self._token = token
        self.calls = 0

    async def get_signing_token(self) -> str:
        self.calls += 1
        await asyncio.sleep(0)
        return self._token


class OfflineVerificationSession:
    """Proof request that reports success shortly after listen() is called."""

    def __init__(self, proofs: Sequence[Mapping[str, Any]] | None = None) -> None:
        self.parameters: dict[str, str] = {}
        self._proofs = proofs

    def set_parameter(self, name: str, value: str) -> None:
        self.parameters[name] = value

    async def get_verification_url(self) -> str:
        await asyncio.sleep(0)
        code = self.parameters.get("media_code", "")
        return f"https://share.reclaimprotocol.org/verify/?media_code={code}"

    async def listen(self, on_success: SuccessCallback, on_error: ErrorCallback) -> None:
        proofs = self._proofs
        if proofs is None:
            proofs = default_offline_proofs(self.parameters.get("media_code"))
        asyncio.get_running_loop().call_soon(on_success, list(proofs))


async def offline_session_factory(
    app_id: str,
    app_secret: str,
    provider_id: str,
    options: Mapping[str, Any],
) -> OfflineVerificationSession:
    await asyncio.sleep(0)
    return OfflineVerificationSession()


class OfflineSurface:
    def __init__(self) -> None:
        self._open = True
        self.visited: list[str] = []

    def is_open(self) -> bool:
        return self._open

    def navigate(self, url: str) -> None:
        self.visited.append(url)

    def close(self) -> None:
        self._open = False


def offline_collaborators() -> CollaboratorSet:
    return CollaboratorSet(
        fetcher_factory=OfflineProofFetcher,
        session_factory=offline_session_factory,
        surface_opener=OfflineSurface,
    )
