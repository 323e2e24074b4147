from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class SigningError(RuntimeError):
    """Raised when the backend signing endpoint fails to issue a session token."""


class FetchProofError(RuntimeError):
    """Raised when the zkFetch request for the post owner fails."""


class VerificationError(RuntimeError):
    """Raised when the ownership verification session cannot proceed."""


class PopupError(VerificationError):
    """Raised when the verification popup is blocked or closed too early."""
