from __future__ import annotations

import webbrowser
from typing import Callable


class BrowserSurface:
    """
    Verification surface backed by the system web browser.

    A desktop browser tab cannot be observed or closed from here, so the
    surface only tracks whether this process still considers it usable.
    """

    def __init__(self, controller: webbrowser.BaseBrowser) -> None:
        self._controller = controller
        self._open = True
        self._url: str | None = None

    @property
    def url(self) -> str | None:
        return self._url

    def is_open(self) -> bool:
        return self._open

    def navigate(self, url: str) -> None:
        if not self._open:
            raise RuntimeError("surface is closed")
        if not self._controller.open(url, new=2):
            self._open = False
            raise RuntimeError(f"browser refused to open {url}")
        self._url = url

    def close(self) -> None:
        self._open = False


def open_browser_surface() -> BrowserSurface | None:
    """Return a surface for the default browser, or None when none is available."""
    try:
        controller = webbrowser.get()
    except webbrowser.Error:
        return None
    return BrowserSurface(controller)


class ConsoleSurface:
    """Surface for headless hosts: the verification URL is handed to a printer."""

    def __init__(self, printer: Callable[[str], None]) -> None:
        self._printer = printer
        self._open = True
        self.url: str | None = None

    def is_open(self) -> bool:
        return self._open

    def navigate(self, url: str) -> None:
        self.url = url
        self._printer(f"verification_url={url}")

    def close(self) -> None:
        self._open = False
