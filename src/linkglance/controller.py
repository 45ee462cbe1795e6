"""Observable preview state for presentation code.

A PreviewController tracks one URL and moves through
Idle → Loading → Loaded | Failed, notifying subscribers on every transition.
Results that arrive after a newer request (or ``clear``/``aclose``) are
dropped: every fetch carries a generation number and only the latest
generation may write state.
"""

from __future__ import annotations

from contextlib import suppress
from typing import TYPE_CHECKING

import structlog

from linkglance.coordinator import PreviewFetcher
from linkglance.errors import error_code_for
from linkglance.models.state import Failed, Idle, Loaded, Loading

if TYPE_CHECKING:
    from collections.abc import Callable

    from linkglance.config import Settings
    from linkglance.models.metadata import LinkMetadata
    from linkglance.models.state import PreviewState
    from linkglance.protocols import ExtractorProtocol

    Listener = Callable[[PreviewState], None]

log = structlog.get_logger()


class PreviewController:
    """State machine around a PreviewFetcher.

    Pass a shared ``fetcher`` to reuse its cache across controllers; it is
    then left open by ``aclose``. Use ``for_extractor`` to give the controller
    a private fetcher that it closes itself.
    """

    def __init__(self, fetcher: PreviewFetcher, *, owns_fetcher: bool = False) -> None:
        self._fetcher = fetcher
        self._owns_fetcher = owns_fetcher
        self._state: PreviewState = Idle()
        self._url: str | None = None
        self._generation = 0
        self._listeners: list[Listener] = []
        self._disposed = False

    @classmethod
    def for_extractor(
        cls, extractor: ExtractorProtocol, *, settings: Settings | None = None
    ) -> PreviewController:
        return cls(PreviewFetcher(extractor, settings=settings), owns_fetcher=True)

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> PreviewState:
        return self._state

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def data(self) -> LinkMetadata | None:
        return self._state.metadata if isinstance(self._state, Loaded) else None

    @property
    def error(self) -> Exception | None:
        return self._state.error if isinstance(self._state, Failed) else None

    @property
    def is_loading(self) -> bool:
        return isinstance(self._state, Loading)

    @property
    def has_data(self) -> bool:
        return self.data is not None

    @property
    def has_image(self) -> bool:
        data = self.data
        return data is not None and data.has_image

    @property
    def has_favicon(self) -> bool:
        data = self.data
        return data is not None and data.has_favicon

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with each new state. Returns an unsubscribe callable."""
        self._check_usable()
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        """Stop notifying ``listener``. Unknown listeners are ignored."""
        with suppress(ValueError):
            self._listeners.remove(listener)

    def _transition(self, state: PreviewState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                log.error(
                    "preview_listener_error",
                    state=type(state).__name__,
                    exc_info=True,
                )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def set_url(self, url: str | None, force_refresh: bool = False) -> None:
        """Track ``url`` and load it.

        No-op for an empty URL, and for the URL already tracked unless
        ``force_refresh`` is set.
        """
        self._check_usable()
        if not url or (url == self._url and not force_refresh):
            return
        self._url = url
        await self.fetch_data(force_refresh=force_refresh)

    async def fetch_data(self, force_refresh: bool = False) -> None:
        """(Re)load the tracked URL. Failures end in ``Failed``, never raise."""
        self._check_usable()
        url = self._url
        if not url:
            return

        self._generation += 1
        generation = self._generation
        self._transition(Loading(url=url))

        try:
            metadata = await self._fetcher.get_metadata(url, force_refresh=force_refresh)
        except Exception as exc:
            if self._is_stale(generation, url):
                return
            code = error_code_for(exc)
            log.info("preview_failed", url=url, code=code)
            self._transition(Failed(url=url, error=exc, code=code))
            return

        if self._is_stale(generation, url):
            return
        self._transition(Loaded(url=url, metadata=metadata))

    def clear(self) -> None:
        """Forget the URL and return to ``Idle``. Pending results are discarded."""
        self._check_usable()
        self._generation += 1
        self._url = None
        self._transition(Idle())

    def _is_stale(self, generation: int, url: str) -> bool:
        if generation == self._generation:
            return False
        log.debug(
            "stale_result_discarded",
            url=url,
            generation=generation,
            current_generation=self._generation,
        )
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _check_usable(self) -> None:
        if self._disposed:
            raise RuntimeError("PreviewController has been closed")

    async def aclose(self) -> None:
        """Dispose the controller. In-flight fetches finish but are ignored."""
        if self._disposed:
            return
        self._disposed = True
        self._generation += 1
        self._listeners.clear()
        if self._owns_fetcher:
            await self._fetcher.aclose()
