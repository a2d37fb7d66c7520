"""chartsync.core — Host framework primitives: scopes and watches."""

from chartsync.core.context import current_scope
from chartsync.core.observable import Observable
from chartsync.core.scope import Scope

__all__ = [
    "current_scope",
    "Observable",
    "Scope",
]
