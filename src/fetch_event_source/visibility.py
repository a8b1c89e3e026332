"""
Page-visibility signal consumed by `EventSourceConnection`.

A connection that is not opened with `open_when_hidden=True` closes its request while
the page is hidden and reconnects as soon as it becomes visible again. Anything that
exposes a `hidden` flag and lets listeners subscribe to its changes can act as the
signal; `PageVisibility` is the in-memory implementation an application toggles itself
(e.g. when its window is minimized or the process goes to background).
"""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

VisibilityListener = Callable[[bool], None]


@runtime_checkable
class Visibility(Protocol):
    @property
    def hidden(self) -> bool: ...

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]:
        """Register `listener(hidden)` and return a function that unregisters it."""
        ...


class PageVisibility:
    def __init__(self, hidden: bool = False) -> None:
        self._hidden = hidden
        self._listeners: list[VisibilityListener] = []

    @property
    def hidden(self) -> bool:
        return self._hidden

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_hidden(self, hidden: bool) -> None:
        """Update the flag and notify listeners when it actually changes."""
        if hidden == self._hidden:
            return
        self._hidden = hidden
        for listener in list(self._listeners):
            listener(hidden)
