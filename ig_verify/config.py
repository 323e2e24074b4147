from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError

# Deployment overrides, read after the YAML file. The frontend of the
# original service took the same two values from its build environment.
SIGNER_URL_ENV = "IG_VERIFY_API_URL"
SHARE_PAGE_URL_ENV = "RECLAIM_CUSTOM_SHARE_PAGE_URL"

OFFLINE_SECRETS_APP_ID = "offline-app"
OFFLINE_SECRETS_APP_SECRET = "offline-secret"


@dataclass(frozen=True)
class RuntimeSecrets:
    app_id: str
    app_secret: str


def _read_yaml_mapping(p: Path) -> dict[str, Any]:
    if not p.is_file():
        raise ConfigError(f"Config file not found: {p}")

    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping with reclaim/signer/fetch sections")
    return data


def _apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> list[str]:
    applied: list[str] = []
    for env_name, section, key in (
        (SIGNER_URL_ENV, "signer", "api_url"),
        (SHARE_PAGE_URL_ENV, "reclaim", "custom_share_page_url"),
    ):
        value = (env.get(env_name) or "").strip()
        if not value:
            continue
        block = data.get(section)
        if block is None:
            block = {}
        if not isinstance(block, dict):
            raise ConfigError(f"Config section '{section}' must be a mapping")
        data[section] = {**block, key: value}
        applied.append(env_name)
    return applied


def load_config(path: str | Path, *, environ: Mapping[str, str] | None = None) -> AppConfig:
    """
    Load the YAML config, apply the signer and share-page URL overrides from
    the environment, and validate the result into an AppConfig.
    """
    p = Path(path)
    env = os.environ if environ is None else environ

    data = _read_yaml_mapping(p)
    overrides = _apply_env_overrides(data, env)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_describe_validation_error(e, p, overrides)) from e


def resolve_runtime_secrets(
    config: AppConfig,
    *,
    environ: Mapping[str, str] | None = None,
    offline: bool = False,
) -> RuntimeSecrets:
    """
    Read the Reclaim application id and secret from the environment.

    Offline runs never reach Reclaim, so missing credentials fall back to
    placeholders there instead of failing.
    """
    env = os.environ if environ is None else environ

    id_env = config.reclaim.app_id_env
    secret_env = config.reclaim.app_secret_env
    app_id = (env.get(id_env) or "").strip()
    app_secret = (env.get(secret_env) or "").strip()

    if offline:
        return RuntimeSecrets(
            app_id=app_id or OFFLINE_SECRETS_APP_ID,
            app_secret=app_secret or OFFLINE_SECRETS_APP_SECRET,
        )

    missing = [name for name, value in ((id_env, app_id), (secret_env, app_secret)) if not value]
    if missing:
        raise ConfigError(
            "Missing Reclaim application credentials: set " + ", ".join(missing) + " (or use --offline)"
        )
    return RuntimeSecrets(app_id=app_id, app_secret=app_secret)


def config_sha256(config: AppConfig) -> str:
    """SHA-256 of the validated config, logged so runs can be tied to a config."""
    return hashlib.sha256(config.model_dump_json().encode("utf-8")).hexdigest()


def _describe_validation_error(err: ValidationError, path: Path, overrides: list[str]) -> str:
    source = str(path)
    if overrides:
        source += " (with " + ", ".join(overrides) + " from the environment)"
    lines = [f"Invalid configuration in {source}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
        lines.append(f"- {loc}: {item.get('msg', 'invalid value')}")
    return "\n".join(lines)
