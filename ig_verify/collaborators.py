from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

from .surface import open_browser_surface

# Capabilities provided by the Reclaim SDKs and the host environment. The
# package only ever talks to them through these shapes.


class ProofFetcher(Protocol):
    """A zkFetch client bound to one application id and session token."""

    async def fetch_with_proof(
        self,
        url: str,
        request_options: Mapping[str, Any],
        extraction_rules: Mapping[str, Any],
    ) -> Mapping[str, Any]: ...


ProofFetcherFactory = Callable[[str, str], ProofFetcher]

SuccessCallback = Callable[[Any], None]
ErrorCallback = Callable[[BaseException], None]


class VerificationSession(Protocol):
    """A proof request bound to a single post."""

    def set_parameter(self, name: str, value: str) -> None: ...

    async def get_verification_url(self) -> str: ...

    async def listen(self, on_success: SuccessCallback, on_error: ErrorCallback) -> None: ...


class SessionFactory(Protocol):
    async def __call__(
        self,
        app_id: str,
        app_secret: str,
        provider_id: str,
        options: Mapping[str, Any],
    ) -> VerificationSession: ...


class Surface(Protocol):
    """An out-of-band browser window used for the interactive login step."""

    def is_open(self) -> bool: ...

    def navigate(self, url: str) -> None: ...

    def close(self) -> None: ...


SurfaceOpener = Callable[[], "Surface | None"]


@dataclass(frozen=True)
class CollaboratorSet:
    """The SDK-backed capabilities a live verification run needs."""

    fetcher_factory: ProofFetcherFactory
    session_factory: SessionFactory
    surface_opener: SurfaceOpener = open_browser_surface


def load_collaborators(target: str) -> CollaboratorSet:
    """
    Resolve "package.module:factory" and call it to build a CollaboratorSet.
    """
    module_name, sep, attr = (target or "").strip().partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"collaborators must look like 'module:factory', got {target!r}")

    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"{target!r} does not name a callable")

    built = factory()
    if not isinstance(built, CollaboratorSet):
        raise ValueError(f"{target!r} must return a CollaboratorSet, got {type(built).__name__}")
    return built
