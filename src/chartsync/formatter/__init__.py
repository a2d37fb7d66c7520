"""chartsync.formatter — Template formatters for chart callbacks."""

from chartsync.formatter.bridge import (
    CompiledTemplateInstance,
    FormatterBridge,
    FormatterDescriptor,
    Fragment,
    bridge,
    callback_variables,
)
from chartsync.formatter.resolver import FormatterResolver, resolve_formatter

__all__ = [
    "CompiledTemplateInstance",
    "FormatterBridge",
    "FormatterDescriptor",
    "Fragment",
    "bridge",
    "callback_variables",
    "FormatterResolver",
    "resolve_formatter",
]
