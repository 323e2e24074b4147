from __future__ import annotations

from .aggregate import extract_post_data
from .config import load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError, FetchProofError, SigningError, VerificationError
from .flow import FlowState, VerificationFlow
from .post import PostData
from .urls import extract_media_code, normalize_post_url
from .verification import Phase, VerificationStage

__all__ = [
    "AppConfig",
    "ConfigError",
    "FetchProofError",
    "FlowState",
    "Phase",
    "PostData",
    "SigningError",
    "VerificationError",
    "VerificationFlow",
    "VerificationStage",
    "extract_media_code",
    "extract_post_data",
    "load_config",
    "normalize_post_url",
    "resolve_runtime_secrets",
]
