"""
chartsync.core.scope — Reactive data scope.

A Scope holds template/transform variables and dirty-checked
watchers. Scopes form a tree:

- Constructed inside `with parent:` → attached to parent
- Variable lookup reads through to the parent chain
- assign() writes locally, replace() swaps the local variables
- flush() runs watchers of the scope and its descendants
  synchronously until nothing changes
- dispose() detaches the scope and everything below it

    with Scope(currency="EUR") as page:
        tooltip = Scope(point={"y": 42})    # child of page
        tooltip.watch(lambda s: s["point"], on_point)
        tooltip.flush()
"""

from __future__ import annotations

import copy
from collections import ChainMap
from collections.abc import Mapping
from typing import Any, Callable

from chartsync.config import get_settings
from chartsync.core.context import current_scope, _push, _pop
from chartsync.errors import ChartsyncError, DigestError

Getter = Callable[["Scope"], Any]
Listener = Callable[[Any, Any, "Scope"], None]

# Sentinel: "attach to the active scope, if any"
_CURRENT = object()


class _Watcher:
    __slots__ = ("getter", "listener", "last", "primed", "active")

    def __init__(self, getter: Getter, listener: Listener):
        self.getter = getter
        self.listener = listener
        self.last: Any = None
        self.primed = False
        self.active = True


def _snapshot(value: Any) -> Any:
    """Copy a watched value so in-place mutation is detected."""
    try:
        return copy.deepcopy(value)
    except (TypeError, copy.Error):
        return value


class Scope:
    """Hierarchical variable scope with synchronous flush."""

    def __init__(self, parent: Any = _CURRENT, **variables: Any):
        if parent is _CURRENT:
            parent = current_scope()
        self.parent: Scope | None = parent
        self.children: list[Scope] = []
        self.disposed = False
        self._locals: dict[str, Any] = dict(variables)
        self._watchers: list[_Watcher] = []
        self._flushing = False

        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: Scope) -> None:
        self.children.append(child)

    # ── variables ──────────────────────────────
    @property
    def variables(self) -> ChainMap:
        """Read-through view: own variables first, then ancestors."""
        maps = [self._locals]
        node = self.parent
        while node is not None:
            maps.append(node._locals)
            node = node.parent
        return ChainMap(*maps)

    @property
    def local_variables(self) -> dict[str, Any]:
        return dict(self._locals)

    def __getitem__(self, name: str) -> Any:
        return self.variables[name]

    def __contains__(self, name: object) -> bool:
        return name in self.variables

    def get(self, name: str, default: Any = None) -> Any:
        return self.variables.get(name, default)

    def assign(self, **variables: Any) -> None:
        """Set variables on this scope. Picked up by the next flush()."""
        if self.disposed:
            raise ChartsyncError("Cannot assign to a disposed scope")
        self._locals.update(variables)

    def replace(self, variables: Mapping[str, Any]) -> None:
        """Drop this scope's own variables and set variables instead."""
        if self.disposed:
            raise ChartsyncError("Cannot assign to a disposed scope")
        self._locals.clear()
        self._locals.update(variables)

    def new_child(self, **variables: Any) -> Scope:
        """Create a child scope that reads through to this one."""
        return Scope(parent=self, **variables)

    # ── watches ────────────────────────────────
    def watch(self, getter: Getter, listener: Listener) -> Callable[[], None]:
        """Register a dirty-checked watcher.

        listener(new, old, scope) is called on the first flush and on
        every flush where getter(scope) differs from the last value.

        Returns:
            Callable that removes the watcher
        """
        watcher = _Watcher(getter, listener)
        self._watchers.append(watcher)

        def unwatch() -> None:
            watcher.active = False
            if watcher in self._watchers:
                self._watchers.remove(watcher)

        return unwatch

    def expression(self, getter: Getter) -> ScopeExpression:
        """Wrap getter as a data source that can be observed."""
        return ScopeExpression(self, getter)

    def flush(self, ttl: int | None = None) -> int:
        """Run watchers of this scope and its descendants until stable.

        Args:
            ttl: Maximum number of passes (default: Settings.digest_ttl)

        Returns:
            Number of listener calls

        Raises:
            DigestError: Re-entered, or still changing after ttl passes
        """
        if self.disposed:
            return 0
        if self._flushing:
            raise DigestError("flush() already in progress on this scope")

        if ttl is None:
            ttl = get_settings().digest_ttl

        self._flushing = True
        fired = 0
        try:
            for _ in range(ttl):
                changed = self._digest_once()
                fired += changed
                if not changed:
                    return fired
            raise DigestError(f"Scope did not stabilize after {ttl} passes")
        finally:
            self._flushing = False

    def _digest_once(self) -> int:
        fired = 0
        for watcher in list(self._watchers):
            if self.disposed:
                return fired
            if not watcher.active:
                continue
            value = watcher.getter(self)
            if watcher.primed and value == watcher.last:
                continue
            old = watcher.last if watcher.primed else value
            watcher.last = _snapshot(value)
            watcher.primed = True
            watcher.listener(value, old, self)
            fired += 1

        for child in list(self.children):
            # A child mid-flush is handled by its own loop
            if not child.disposed and not child._flushing:
                fired += child._digest_once()
        return fired

    # ── lifecycle ──────────────────────────────
    def dispose(self) -> None:
        """Detach from the parent and release children, watchers, variables."""
        if self.disposed:
            return
        for child in list(self.children):
            child.dispose()
        if self.parent is not None and self in self.parent.children:
            self.parent.children.remove(self)
        for watcher in self._watchers:
            watcher.active = False
        self._watchers.clear()
        self._locals.clear()
        self.disposed = True

    def __enter__(self):
        _push(self)
        return self

    def __exit__(self, *exc: Any) -> bool:
        _pop()
        return False

    def __repr__(self) -> str:
        state = " disposed" if self.disposed else ""
        return f"<Scope vars={sorted(self._locals)}{state}>"


class ScopeExpression:
    """Data source backed by a scope watcher.

    watch(listener) fires listener(value) from the scope's flush().
    """

    def __init__(self, scope: Scope, getter: Getter):
        self.scope = scope
        self.getter = getter

    def watch(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        return self.scope.watch(self.getter, lambda new, old, scope: listener(new))
