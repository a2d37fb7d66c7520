"""
chartsync.config — Settings and global chart defaults.

~/.chartsync/config.yaml (or $CHARTSYNC_CONFIG):

    markup_flag: useHTML
    formatter_keys: [formatter, pointFormatter, labelFormatter]
    fallback_fragment: ""
    loading_text: Loading...
    digest_ttl: 10
    template_dirs:
      - ./templates
    log_level: WARNING

Global chart defaults are separate: init(defaults) is called once,
before any chart is built, and they are read-only afterwards.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from chartsync.errors import ConfigurationError


CHARTSYNC_HOME = Path.home() / ".chartsync"

DEFAULT_FORMATTER_KEYS = (
    "formatter",
    "pointFormatter",
    "headerFormatter",
    "footerFormatter",
    "labelFormatter",
)


@dataclass
class Settings:
    """Process settings."""
    markup_flag: str = "useHTML"
    formatter_keys: tuple[str, ...] = DEFAULT_FORMATTER_KEYS
    fallback_fragment: str = ""
    loading_text: str = "Loading..."
    digest_ttl: int = 10
    template_dirs: list[str] = field(default_factory=list)
    log_level: str = "WARNING"


def config_path() -> Path:
    env = os.environ.get("CHARTSYNC_CONFIG")
    if env:
        return Path(env)
    return CHARTSYNC_HOME / "config.yaml"


def load_settings(path: str | Path | None = None) -> Settings:
    """Read settings from YAML. A missing file yields defaults.

    Raises:
        ConfigurationError: Malformed file or invalid value
    """
    p = Path(path) if path is not None else config_path()
    if not p.exists():
        return Settings()

    with open(p) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file must be a YAML mapping: {p}")

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown settings in {p}: {', '.join(unknown)}")

    cfg = Settings(**data)

    if isinstance(cfg.formatter_keys, str):
        cfg.formatter_keys = (cfg.formatter_keys,)
    cfg.formatter_keys = tuple(cfg.formatter_keys)
    if not all(isinstance(k, str) and k for k in cfg.formatter_keys):
        raise ConfigurationError("formatter_keys must be a list of non-empty strings")

    if not isinstance(cfg.digest_ttl, int) or cfg.digest_ttl < 1:
        raise ConfigurationError(f"digest_ttl must be a positive integer, got {cfg.digest_ttl!r}")

    if cfg.fallback_fragment is None:
        cfg.fallback_fragment = ""

    return cfg


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the active settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def configure(settings: Settings) -> None:
    """Replace the active settings."""
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Forget the active settings. For testing."""
    global _settings
    _settings = None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# GLOBAL CHART DEFAULTS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
_defaults: dict[str, Any] = {}
_initialized = False
_frozen = False


def init(defaults: dict[str, Any]) -> None:
    """Set process-wide default chart options.

    Must be called at most once and before the first chart reads
    the defaults.

    Raises:
        ConfigurationError: Called twice, too late, or with a non-mapping
    """
    global _defaults, _initialized
    if not isinstance(defaults, dict):
        raise ConfigurationError(
            f"Chart defaults must be a mapping, got {type(defaults).__name__}"
        )
    if _initialized:
        raise ConfigurationError("chartsync.init() has already been called")
    if _frozen:
        raise ConfigurationError(
            "chartsync.init() must be called before any chart is constructed"
        )
    _defaults = copy.deepcopy(defaults)
    _initialized = True


def get_defaults() -> dict[str, Any]:
    """Return a copy of the global defaults. Freezes them."""
    global _frozen
    _frozen = True
    return copy.deepcopy(_defaults)


def reset_defaults() -> None:
    """Clear global defaults and unfreeze. For testing."""
    global _defaults, _initialized, _frozen
    _defaults = {}
    _initialized = False
    _frozen = False
