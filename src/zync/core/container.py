"""Minimal state container: the single serialization point for shared state.

Every transition is applied synchronously, so under asyncio no two
transitions interleave. Hosts with their own reactive store can wrap it
behind the same three methods.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

logger = logging.getLogger(__name__)

State = dict[str, Any]
Updater = Callable[[State], Mapping[str, Any] | None]
Listener = Callable[[State, State], None]


class StateContainer:
    """Dict-backed store with shallow-merge updates and change listeners."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._state: State = dict(initial or {})
        self._listeners: list[Listener] = []

    def get_state(self) -> State:
        return self._state

    def set_state(self, partial: Mapping[str, Any] | Updater) -> None:
        """Apply a partial update (or an updater returning one) as one transition.

        Args:
            partial: Mapping merged into the top level of the state, or a
                function receiving the current state and returning such a
                mapping. ``None`` from an updater means "no change".
        """
        previous = self._state
        patch = partial(previous) if callable(partial) else partial
        if not patch:
            return
        self._state = {**previous, **patch}
        for listener in list(self._listeners):
            try:
                listener(self._state, previous)
            except Exception:
                logger.warning("State listener failed", exc_info=True)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
