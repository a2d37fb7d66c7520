"""
chartsync.formatter.resolver — Formatter resolution over option trees.

A formatter-capable field holds either a function or a template
descriptor. The resolver walks a chart (or series) option tree
once at setup and turns every descriptor into a FormatterBridge:

    tooltip:
      useHTML: true
      formatter:
        templateUrl: tooltip.html      → FormatterBridge
    yAxis:
      labels:
        formatter: <function>          → kept as is

Bridges are grouped by owner: None for chart-level options, the
series id for series options, so removing a series disposes
exactly the template instances created under it.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Hashable

from chartsync.config import Settings, get_settings
from chartsync.formatter.bridge import (
    FormatterBridge,
    FormatterDescriptor,
    HostContextFactory,
    check_markup_enabled,
)
from chartsync.template.compiler import TemplateCompiler

logger = logging.getLogger(__name__)

OptionPath = tuple


def resolve_formatter(
    value: Any,
    option: Any,
    host_context_factory: HostContextFactory | None = None,
    *,
    compiler: TemplateCompiler | None = None,
    settings: Settings | None = None,
    name: str | None = None,
) -> Callable[..., Any] | None:
    """Resolve one formatter value into a uniform callback.

    function           → returned unchanged
    template descriptor → FormatterBridge
    anything else       → None
    """
    if callable(value):
        return value
    descriptor = FormatterDescriptor.from_value(value)
    if descriptor is None:
        return None
    return FormatterBridge(
        descriptor,
        host_context_factory,
        option=option,
        compiler=compiler,
        settings=settings,
        name=name,
    )


class FormatterResolver:
    """Resolve and own the template formatters of one chart."""

    def __init__(
        self,
        host_context_factory: HostContextFactory | None = None,
        compiler: TemplateCompiler | None = None,
        settings: Settings | None = None,
    ):
        self.host_context_factory = host_context_factory
        self.settings = settings or get_settings()
        self.compiler = compiler or TemplateCompiler()
        self._groups: dict[Hashable, dict[OptionPath, FormatterBridge]] = {}

    def resolve(self, options: Any, owner: Hashable = None) -> Any:
        """Return a copy of options with template descriptors replaced by bridges.

        Re-resolving the same owner reuses bridges whose path and
        descriptor are unchanged and disposes the rest.

        Raises:
            ConfigurationError: A descriptor is malformed or its option
                does not enable markup rendering
        """
        staged = self.stage(options, owner)
        staged.commit()
        return staged.options

    def stage(self, options: Any, owner: Hashable = None) -> StagedOptions:
        """Resolve options without touching the owner's current bridges.

        commit() makes the result current and disposes bridges it no
        longer uses; discard() disposes only the bridges it created.
        """
        previous = self._groups.get(owner, {})
        fresh: dict[OptionPath, FormatterBridge] = {}
        try:
            resolved = self._walk(options, (), owner, previous, fresh)
        except Exception:
            for path, created in fresh.items():
                if previous.get(path) is not created:
                    created.dispose()
            raise
        return StagedOptions(self, owner, resolved, previous, fresh)

    def _commit(
        self,
        owner: Hashable,
        previous: dict[OptionPath, FormatterBridge],
        fresh: dict[OptionPath, FormatterBridge],
    ) -> None:
        for path, old in previous.items():
            if fresh.get(path) is not old:
                old.dispose()
        if fresh:
            self._groups[owner] = fresh
        else:
            self._groups.pop(owner, None)

    def bridges(self, owner: Hashable = None) -> list[FormatterBridge]:
        return list(self._groups.get(owner, {}).values())

    def all_bridges(self) -> list[FormatterBridge]:
        return [b for group in self._groups.values() for b in group.values()]

    @property
    def owners(self) -> list[Hashable]:
        return list(self._groups)

    @property
    def instance_count(self) -> int:
        """Live CompiledTemplateInstances across every owner."""
        return sum(len(b.instances) for b in self.all_bridges())

    def release(self, owner: Hashable) -> int:
        """Dispose the bridges of one owner. Returns how many were disposed."""
        group = self._groups.pop(owner, {})
        for b in group.values():
            b.dispose()
        if group:
            logger.debug("Released %d formatter(s) owned by %r", len(group), owner)
        return len(group)

    def release_all(self) -> int:
        count = 0
        for owner in list(self._groups):
            count += self.release(owner)
        return count

    # ── walk ───────────────────────────────────
    def _walk(
        self,
        node: Any,
        path: OptionPath,
        owner: Hashable,
        previous: dict[OptionPath, FormatterBridge],
        fresh: dict[OptionPath, FormatterBridge],
    ) -> Any:
        if isinstance(node, dict):
            result = {}
            for key, value in node.items():
                child_path = path + (key,)
                if key in self.settings.formatter_keys:
                    descriptor = FormatterDescriptor.from_value(value)
                    if descriptor is not None:
                        result[key] = self._bridge_for(
                            descriptor, node, child_path, owner, previous, fresh
                        )
                        continue
                result[key] = self._walk(value, child_path, owner, previous, fresh)
            return result
        if isinstance(node, list):
            return [
                self._walk(item, path + (i,), owner, previous, fresh)
                for i, item in enumerate(node)
            ]
        return node

    def _bridge_for(
        self,
        descriptor: FormatterDescriptor,
        option: dict,
        path: OptionPath,
        owner: Hashable,
        previous: dict[OptionPath, FormatterBridge],
        fresh: dict[OptionPath, FormatterBridge],
    ) -> FormatterBridge:
        existing = previous.get(path)
        if existing is not None and not existing.disposed and existing.descriptor == descriptor:
            check_markup_enabled(option, self.settings)
            fresh[path] = existing
            return existing

        label = ".".join(str(p) for p in path)
        if owner is not None:
            label = f"{owner}:{label}"
        created = FormatterBridge(
            descriptor,
            self.host_context_factory,
            option=option,
            compiler=self.compiler,
            settings=self.settings,
            name=label,
        )
        fresh[path] = created
        return created


class StagedOptions:
    """Resolved options waiting for the chart library to accept them."""

    def __init__(
        self,
        resolver: FormatterResolver,
        owner: Hashable,
        options: Any,
        previous: dict[OptionPath, FormatterBridge],
        fresh: dict[OptionPath, FormatterBridge],
    ):
        self.options = options
        self._resolver = resolver
        self._owner = owner
        self._previous = previous
        self._fresh = fresh
        self._done = False

    def commit(self) -> None:
        if self._done:
            return
        self._done = True
        self._resolver._commit(self._owner, self._previous, self._fresh)

    def discard(self) -> None:
        if self._done:
            return
        self._done = True
        for path, created in self._fresh.items():
            if self._previous.get(path) is not created:
                created.dispose()
