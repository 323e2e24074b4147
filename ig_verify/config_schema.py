from __future__ import annotations

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DEFAULT_PROVIDER_ID = "af480885-d01c-4e35-89c7-207cd0f70b11"

# Sent to zkFetch as-is; the attestor evaluates it with JavaScript regex syntax.
DEFAULT_USERNAME_PATTERN = 'span class=\\"UsernameText\\">(?<username>[^/]+?)</span>'


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveFloat = Annotated[float, Field(gt=0.0)]


class ReclaimConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    app_id_env: str = "RECLAIM_APP_ID"
    app_secret_env: str = "RECLAIM_APP_SECRET"
    provider_id: str = DEFAULT_PROVIDER_ID
    use_app_clip: bool = False
    log: bool = True
    custom_share_page_url: str | None = None

    @field_validator("app_id_env", "app_secret_env")
    @classmethod
    def _env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)

    @field_validator("provider_id")
    @classmethod
    def _provider_id_non_empty(cls, v: str) -> str:
        value = (v or "").strip()
        if not value:
            raise ValueError("must be non-empty")
        return value

    @field_validator("custom_share_page_url")
    @classmethod
    def _share_page_must_be_http(cls, v: str | None) -> str | None:
        if v is None:
            return None
        url = v.strip()
        if not url:
            return None
        if not url.startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
        return url

    def session_options(self) -> dict[str, object]:
        """Options passed to the proof-request session constructor."""
        options: dict[str, object] = {
            "useAppClip": self.use_app_clip,
            "log": self.log,
        }
        if self.custom_share_page_url:
            options["customSharePageUrl"] = self.custom_share_page_url
        return options


class SignerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api_url: str = "http://localhost:8080"
    timeout_seconds: PositiveFloat = 30.0

    @field_validator("api_url")
    @classmethod
    def _api_url_must_be_http(cls, v: str) -> str:
        url = (v or "").strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
        return url


class FetchConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    accept: str = (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8"
    )
    accept_language: str = "en-US,en;q=0.9"
    context_address: str = "0x0"
    context_message: str = "instagram_verification"
    username_pattern: str = DEFAULT_USERNAME_PATTERN

    @field_validator("username_pattern")
    @classmethod
    def _pattern_must_capture_username(cls, v: str) -> str:
        if "(?<username>" not in (v or "") and "(?P<username>" not in (v or ""):
            raise ValueError("must contain a named capture group 'username'")
        return v

    def request_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": self.accept,
            "Accept-Language": self.accept_language,
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "none",
            "Upgrade-Insecure-Requests": "1",
        }


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    reclaim: ReclaimConfig = Field(default_factory=ReclaimConfig)
    signer: SignerConfig = Field(default_factory=SignerConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
