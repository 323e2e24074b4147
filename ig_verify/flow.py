from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal, Union

from .aggregate import extract_post_data
from .errors import FetchProofError
from .fetch_proof import FetchedIdentity, OwnerIdentityFetcher
from .post import PostData
from .run_log import RunLogger
from .verification import Phase, VerificationStage

FlowPhase = Literal["idle", "fetching", "fetched", "verifying", "verified", "error"]

MSG_EMPTY_URL = "Please enter an Instagram URL"


@dataclass(frozen=True)
class FetchIdle:
    pass


@dataclass(frozen=True)
class FetchInFlight:
    url: str


@dataclass(frozen=True)
class FetchDone:
    identity: FetchedIdentity


@dataclass(frozen=True)
class FetchFailed:
    error: str


FetchState = Union[FetchIdle, FetchInFlight, FetchDone, FetchFailed]


@dataclass(frozen=True)
class FlowState:
    """Read-only projection of the flow handed to the rendering layer."""

    phase: FlowPhase
    url: str
    username: str | None
    verification: str
    post: PostData | None
    error: str | None
    fetching: bool
    verifying: bool


FlowListener = Callable[[FlowState], None]


class VerificationFlow:
    """
    End-to-end ownership check: fetch the post owner, then verify ownership.

    The flow owns the URL input and the fetch state; the verification stage
    owns the session and popup. Each change of either publishes a FlowState.
    """

    def __init__(
        self,
        fetcher: OwnerIdentityFetcher,
        stage: VerificationStage,
        *,
        logger: RunLogger | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._stage = stage
        self._logger = logger

        self._url = ""
        self._fetch: FetchState = FetchIdle()
        self._listeners: list[FlowListener] = []

        stage.subscribe(lambda _stage: self._publish())

    @property
    def url(self) -> str:
        return self._url

    @property
    def identity(self) -> FetchedIdentity | None:
        if isinstance(self._fetch, FetchDone):
            return self._fetch.identity
        return None

    @property
    def username(self) -> str | None:
        identity = self.identity
        return identity.username if identity is not None else None

    @property
    def stage(self) -> VerificationStage:
        return self._stage

    @property
    def post_data(self) -> PostData | None:
        # Recomputed from the current proofs every time; never cached.
        return extract_post_data(self._stage.proofs, logger=self._logger)

    def subscribe(self, listener: FlowListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set_url(self, url: str) -> None:
        self._url = url or ""
        self._publish()

    async def fetch_owner(self) -> FetchedIdentity | None:
        """
        Run the zkFetch stage for the current URL.

        Returns the identity on success and None otherwise; failures land in
        the error slot of the flow state. Calls made while a fetch is already
        running are ignored.
        """
        if isinstance(self._fetch, FetchInFlight):
            if self._logger is not None:
                self._logger.warning("fetch_already_running", url=self._fetch.url)
            return None

        url = self._url
        if not url.strip():
            self._set_fetch(FetchFailed(MSG_EMPTY_URL))
            return None

        in_flight = FetchInFlight(url)
        self._set_fetch(in_flight)
        try:
            identity = await self._fetcher.fetch_owner_identity(url)
        except FetchProofError as e:
            if not self._fetch_is_current(in_flight):
                return None
            self._set_fetch(FetchFailed(str(e)))
            return None
        except BaseException:
            # Cancellation must not leave the in-flight guard behind.
            if self._fetch is in_flight:
                self._set_fetch(FetchIdle())
            raise

        if not self._fetch_is_current(in_flight):
            return None

        self._set_fetch(FetchDone(identity))

        if identity.username:
            await self._stage.initialize(url)
        elif self._logger is not None:
            self._logger.warning("owner_username_not_found", url=identity.url)

        return identity

    async def start_verification(self) -> None:
        await self._stage.start()

    def reset(self) -> None:
        """Return the whole flow, including the URL input, to its initial condition."""
        self._url = ""
        self._fetch = FetchIdle()
        if self._logger is not None:
            self._logger.info("flow_reset")
        self._stage.reset()

    def snapshot(self) -> FlowState:
        stage_phase = self._stage.phase
        fetching = isinstance(self._fetch, FetchInFlight)
        verifying = stage_phase in (Phase.AWAITING_POPUP, Phase.VERIFYING)

        error = self._fetch.error if isinstance(self._fetch, FetchFailed) else self._stage.error

        phase: FlowPhase
        if fetching:
            phase = "fetching"
        elif stage_phase is Phase.SUCCEEDED:
            phase = "verified"
        elif verifying:
            phase = "verifying"
        elif error is not None:
            phase = "error"
        elif isinstance(self._fetch, FetchDone):
            phase = "fetched"
        else:
            phase = "idle"

        return FlowState(
            phase=phase,
            url=self._url,
            username=self.username,
            verification=stage_phase.value,
            post=self.post_data,
            error=error,
            fetching=fetching,
            verifying=verifying,
        )

    def _fetch_is_current(self, in_flight: FetchInFlight) -> bool:
        if self._fetch is in_flight:
            return True
        if self._logger is not None:
            self._logger.info("stale_fetch_result", url=in_flight.url)
        return False

    def _set_fetch(self, state: FetchState) -> None:
        self._fetch = state
        if self._logger is not None:
            self._logger.info("fetch_state_changed", state=type(state).__name__)
        stage_dirty = self._stage.phase is not Phase.UNINITIALIZED or self._stage.error is not None
        if isinstance(state, FetchInFlight) and stage_dirty:
            # A new fetch invalidates the session bound to the previous URL.
            # The stage publishes through its listener.
            self._stage.reset()
            return
        self._publish()

    def _publish(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
