"""
chartsync.core.context — Thread-local scope stack.

`with scope:` pushes the scope, exit pops it. A Scope or
ChartComponent constructed inside the block finds its
parent through current_scope().
"""

from __future__ import annotations

import threading
from typing import Any

_local = threading.local()


def _scope_stack() -> list[Any]:
    """Return this thread's active scope stack."""
    if not hasattr(_local, "scopes"):
        _local.scopes = []
    return _local.scopes


def current_scope() -> Any | None:
    """Return the innermost active scope, or None."""
    scopes = _scope_stack()
    return scopes[-1] if scopes else None


def _push(scope: Any) -> None:
    _scope_stack().append(scope)


def _pop() -> Any:
    return _scope_stack().pop()


def _reset() -> None:
    """Drop every active scope. For testing."""
    _local.scopes = []
