"""Host lifecycle signals (foreground/background) the engine can follow."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)

VisibilityListener = Callable[[bool], None]


class HostLifecycle(Protocol):
    """Source of foreground/background transitions.

    Listeners receive ``True`` when the host enters the foreground and
    ``False`` when it goes to the background.
    """

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]: ...


class NullLifecycle:
    """Host that is always in the foreground."""

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]:
        return lambda: None


class ManualLifecycle:
    """Lifecycle driven by explicit ``set_foreground`` calls."""

    def __init__(self, foreground: bool = True) -> None:
        self._foreground = foreground
        self._listeners: list[VisibilityListener] = []

    @property
    def foreground(self) -> bool:
        return self._foreground

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_foreground(self, foreground: bool) -> None:
        """Record a transition and notify listeners; repeated values are ignored."""
        if foreground == self._foreground:
            return
        self._foreground = foreground
        for listener in list(self._listeners):
            try:
                listener(foreground)
            except Exception:
                logger.warning("Lifecycle listener failed", exc_info=True)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
