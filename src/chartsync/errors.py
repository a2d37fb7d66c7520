"""
chartsync.errors — Error taxonomy.

ConfigurationError   misuse detected at setup, fatal
TemplateError        compile/resolve failure, recovered with a fallback fragment
ReconciliationError  one malformed series, that series is skipped
TransformError       user transform raised, that tick is dropped
"""

from __future__ import annotations


class ChartsyncError(Exception):
    """Base class for all chartsync errors."""
    pass


class ConfigurationError(ChartsyncError):
    """Chart or formatter misconfiguration detected at setup."""
    pass


class TemplateError(ChartsyncError):
    """Template compilation, resolution or render failure.

    Attributes:
        source: Identity of the template source (URL or inline hash)
    """

    def __init__(self, message: str, source: str | None = None):
        super().__init__(message)
        self.source = source


class TemplatePendingError(TemplateError):
    """Referenced template is still being resolved."""
    pass


class ReconciliationError(ChartsyncError):
    """A single series descriptor could not be reconciled.

    Attributes:
        series_id: Offending series id (None when the id itself is missing)
    """

    def __init__(self, message: str, series_id: str | None = None):
        super().__init__(message)
        self.series_id = series_id


class TransformError(ChartsyncError):
    """User transform raised; the tick is dropped.

    Attributes:
        tick: Sequence number of the failed tick
    """

    def __init__(self, message: str, tick: int | None = None):
        super().__init__(message)
        self.tick = tick


class ChartDestroyedError(ChartsyncError):
    """Chart handle used after destroy()."""
    pass


class DigestError(ChartsyncError):
    """Scope flush did not stabilize or was re-entered."""
    pass
