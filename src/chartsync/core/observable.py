"""chartsync.core.observable — Push-based data source."""

from __future__ import annotations

from typing import Any, Callable


class Observable:
    """A value that notifies watchers when it is replaced.

    Usage::

        prices = Observable()
        unwatch = prices.watch(print)   # prints None right away
        prices.set([{"id": "a", "data": [1, 2]}])
    """

    def __init__(self, value: Any = None):
        self._value = value
        self._listeners: list[Callable[[Any], None]] = []

    @property
    def value(self) -> Any:
        return self._value

    @value.setter
    def value(self, new: Any) -> None:
        self.set(new)

    def set(self, value: Any) -> None:
        """Replace the value and notify watchers in subscription order."""
        self._value = value
        for listener in list(self._listeners):
            listener(value)

    def watch(
        self,
        listener: Callable[[Any], None],
        immediate: bool = True,
    ) -> Callable[[], None]:
        """Subscribe to changes.

        Args:
            listener: Called with the new value
            immediate: Also call it now with the current value

        Returns:
            Callable that unsubscribes
        """
        self._listeners.append(listener)

        def unwatch() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        if immediate:
            listener(self._value)
        return unwatch

    @property
    def watcher_count(self) -> int:
        return len(self._listeners)
