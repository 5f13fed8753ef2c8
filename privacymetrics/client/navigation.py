"""
Navigation observer abstraction.

Single-page applications report route changes through an observer the
embedding application owns, instead of the tracker patching any global
history API.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)

NavigationListener = Callable[[str, str | None], None]


class NavigationObserver(Protocol):
    def subscribe(self, listener: NavigationListener) -> Callable[[], None]:
        """Register listener(url, previous_url); returns an unsubscribe callable."""
        ...


class NavigationHistory:
    """Minimal history stack that notifies listeners on push/replace."""

    def __init__(self, initial_url: str | None = None) -> None:
        self._entries: list[str] = [initial_url] if initial_url else []
        self._listeners: list[NavigationListener] = []
        self._lock = threading.Lock()

    @property
    def current(self) -> str | None:
        return self._entries[-1] if self._entries else None

    def subscribe(self, listener: NavigationListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def push(self, url: str) -> None:
        previous = self.current
        self._entries.append(url)
        self._notify(url, previous)

    def replace(self, url: str) -> None:
        previous = self.current
        if self._entries:
            self._entries[-1] = url
        else:
            self._entries.append(url)
        self._notify(url, previous)

    def _notify(self, url: str, previous: str | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(url, previous)
            except Exception:
                logger.exception("Navigation listener failed")
