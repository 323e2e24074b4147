from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Mapping, Sequence, Union

from .collaborators import SessionFactory, Surface, SurfaceOpener, VerificationSession
from .config import RuntimeSecrets
from .config_schema import ReclaimConfig
from .errors import PopupError
from .run_log import RunLogger
from .urls import extract_media_code

MSG_NO_MEDIA_CODE = "Could not extract media code from URL."
MSG_INIT_FAILED = "Failed to initialize verification. Please try again."
MSG_NOT_INITIALIZED = "Verification not initialized. Please refresh the page."
MSG_POPUP_BLOCKED = "Popup was blocked. Please allow popups for this site and try again."
MSG_POPUP_CLOSED = "Popup window was closed before loading. Please try again."
MSG_INVALID_PROOF = "Received invalid proof response."
MSG_START_FAILED = "Failed to start verification. Please try again."

MEDIA_CODE_PARAM = "media_code"


class Phase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    AWAITING_POPUP = "awaiting_popup"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Uninitialized:
    phase: ClassVar[Phase] = Phase.UNINITIALIZED


@dataclass(frozen=True)
class Initializing:
    media_code: str
    phase: ClassVar[Phase] = Phase.INITIALIZING


@dataclass(frozen=True)
class Ready:
    session: VerificationSession = field(repr=False)
    media_code: str
    phase: ClassVar[Phase] = Phase.READY


@dataclass(frozen=True)
class AwaitingPopup:
    session: VerificationSession = field(repr=False)
    media_code: str
    surface: Surface = field(repr=False)
    phase: ClassVar[Phase] = Phase.AWAITING_POPUP


@dataclass(frozen=True)
class Verifying:
    session: VerificationSession = field(repr=False)
    media_code: str
    surface: Surface = field(repr=False)
    phase: ClassVar[Phase] = Phase.VERIFYING


@dataclass(frozen=True)
class Succeeded:
    proofs: tuple[Mapping[str, Any], ...]
    phase: ClassVar[Phase] = Phase.SUCCEEDED


@dataclass(frozen=True)
class Failed:
    error: str
    phase: ClassVar[Phase] = Phase.FAILED


VerificationState = Union[
    Uninitialized, Initializing, Ready, AwaitingPopup, Verifying, Succeeded, Failed
]

StageListener = Callable[["VerificationStage"], None]


def normalize_proof_payload(proof: Any) -> tuple[Mapping[str, Any], ...] | None:
    """
    Turn a success-callback payload into a non-empty tuple of proof mappings.

    A single proof object becomes a one-element tuple. Returns None for anything
    that is not a proof (missing, bare strings, empty lists, non-mapping items).
    """
    if proof is None or isinstance(proof, (str, bytes)):
        return None
    if isinstance(proof, Mapping):
        return (proof,)
    if isinstance(proof, Sequence):
        items = tuple(proof)
        if not items or not all(isinstance(p, Mapping) for p in items):
            return None
        return items
    return None


def _error_text(error: Any) -> str:
    message = getattr(error, "message", None)
    if isinstance(message, str) and message.strip():
        return message.strip()
    text = str(error or "").strip()
    return text or type(error).__name__


class VerificationStage:
    """
    Drives the post ownership proof request.

    The stage holds exactly one state value at a time. It owns the session
    handle and the popup surface of the current attempt, and it is the only
    component that closes that surface. Callbacks that arrive for an attempt
    discarded by reset() or a new initialize() are ignored.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        surface_opener: SurfaceOpener,
        *,
        secrets: RuntimeSecrets,
        reclaim: ReclaimConfig | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._surface_opener = surface_opener
        self._secrets = secrets
        self._reclaim = reclaim or ReclaimConfig()
        self._logger = logger

        self._state: VerificationState = Uninitialized()
        self._notice: str | None = None
        self._attempt = 0
        self._listeners: list[StageListener] = []

    @property
    def state(self) -> VerificationState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def error(self) -> str | None:
        if isinstance(self._state, Failed):
            return self._state.error
        return self._notice

    @property
    def proofs(self) -> tuple[Mapping[str, Any], ...] | None:
        if isinstance(self._state, Succeeded):
            return self._state.proofs
        return None

    @property
    def has_session(self) -> bool:
        return isinstance(self._state, (Ready, AwaitingPopup, Verifying))

    def subscribe(self, listener: StageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def initialize(self, post_url: str) -> None:
        """
        Create a fresh proof request bound to the media code of post_url.

        Any previous session is discarded first.
        """
        self._attempt += 1
        attempt = self._attempt
        self._notice = None
        if not isinstance(self._state, Uninitialized):
            self._transition(Uninitialized())

        media_code = extract_media_code(post_url)
        if not media_code:
            self._transition(Failed(MSG_NO_MEDIA_CODE), url=post_url)
            return

        self._transition(Initializing(media_code), url=post_url)

        try:
            session = await self._session_factory(
                self._secrets.app_id,
                self._secrets.app_secret,
                self._reclaim.provider_id,
                self._reclaim.session_options(),
            )
            session.set_parameter(MEDIA_CODE_PARAM, media_code)
        except Exception as e:
            if self._is_stale(attempt, "initialize"):
                return
            if self._logger is not None:
                self._logger.exception("verification_init_failed", exc=e, url=post_url)
            self._transition(Failed(MSG_INIT_FAILED))
            return

        if self._is_stale(attempt, "initialize"):
            return
        self._transition(Ready(session=session, media_code=media_code))

    async def start(self) -> None:
        """
        Open the popup, point it at the verification URL and wait for the result.

        The popup is opened before the URL is requested so that browsers which
        only allow popups from a direct user action do not block it.
        """
        state = self._state
        if not isinstance(state, Ready):
            self._notice = MSG_NOT_INITIALIZED
            if self._logger is not None:
                self._logger.warning("verification_not_ready", phase=state.phase.value)
            self._notify()
            return

        attempt = self._attempt
        self._notice = None
        surface: Surface | None = None

        try:
            surface = self._surface_opener()
            if surface is None or not surface.is_open():
                raise PopupError(MSG_POPUP_BLOCKED)

            self._transition(
                AwaitingPopup(session=state.session, media_code=state.media_code, surface=surface)
            )

            url = await state.session.get_verification_url()

            if self._is_stale(attempt, "get_verification_url"):
                return
            if not surface.is_open():
                raise PopupError(MSG_POPUP_CLOSED)

            surface.navigate(url)
            self._transition(
                Verifying(session=state.session, media_code=state.media_code, surface=surface),
                url=url,
            )

            await state.session.listen(
                lambda proof: self._on_success(attempt, proof),
                lambda error: self._on_error(attempt, surface, error),
            )
        except Exception as e:
            if self._is_stale(attempt, "start"):
                return
            message = str(e) if isinstance(e, PopupError) else MSG_START_FAILED
            if self._logger is not None:
                self._logger.exception("verification_start_failed", exc=e)
            self._close_surface(surface)
            if isinstance(self._state, (Succeeded, Failed)):
                return
            self._transition(Failed(message))

    def reset(self) -> None:
        """Forget the current attempt; a pending remote session is left alone."""
        self._attempt += 1
        self._transition(Uninitialized())

    def _on_success(self, attempt: int, proof: Any) -> None:
        if self._is_stale(attempt, "on_success") or not self._awaiting_result():
            return

        proofs = normalize_proof_payload(proof)
        if proofs is None:
            if self._logger is not None:
                self._logger.warning("verification_invalid_proof", payload_type=type(proof).__name__)
            self._transition(Failed(MSG_INVALID_PROOF))
            return

        self._transition(Succeeded(proofs))

    def _on_error(self, attempt: int, surface: Surface | None, error: Any) -> None:
        if self._is_stale(attempt, "on_error") or not self._awaiting_result():
            return

        self._transition(Failed(f"Verification error: {_error_text(error)}"))
        self._close_surface(surface)

    def _awaiting_result(self) -> bool:
        return isinstance(self._state, (AwaitingPopup, Verifying))

    def _is_stale(self, attempt: int, where: str) -> bool:
        if attempt == self._attempt:
            return False
        if self._logger is not None:
            self._logger.info("stale_verification_callback", where=where, attempt=attempt)
        return True

    def _close_surface(self, surface: Surface | None) -> None:
        if surface is None:
            return
        try:
            if surface.is_open():
                surface.close()
        except Exception as e:
            if self._logger is not None:
                self._logger.exception("surface_close_failed", exc=e, level="WARN")

    def _transition(self, new_state: VerificationState, *, url: str | None = None) -> None:
        old = self._state
        self._state = new_state
        self._notice = None
        if self._logger is not None:
            data: dict[str, Any] = {
                "from_phase": old.phase.value,
                "to_phase": new_state.phase.value,
            }
            if isinstance(new_state, Failed):
                data["error"] = new_state.error
            if isinstance(new_state, Succeeded):
                data["proof_count"] = len(new_state.proofs)
            self._logger.info("verification_state_changed", url=url, **data)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
