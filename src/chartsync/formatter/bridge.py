"""
chartsync.formatter.bridge — Template-backed chart formatters.

Chart libraries ask for tooltip/label markup through synchronous
callbacks. A bridge satisfies that contract with a compiled
template:

    tooltip = {"useHTML": True}
    tooltip["formatter"] = bridge(
        {"template": "<b>{{ point.y }}</b>"},
        lambda: page_scope,
        option=tooltip,
    )
    tooltip["formatter"]({"point": {"y": 42}})      # Markup('<b>42</b>')

Lifecycle of one call site:

  setup        → descriptor validated, markup flag checked,
                 templateUrl prefetch started
  first call   → template compiled, isolated child scope created
                 under the host scope, CompiledTemplateInstance built
  every call   → callback args assigned to the isolated scope,
                 scope flushed synchronously, markup returned
  dispose      → instances disposed, scopes detached, fragments released

Formatter calls never raise into the chart library: failures are
logged and the fallback fragment is returned.
"""

from __future__ import annotations

import logging
from collections import ChainMap
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from markupsafe import Markup

from chartsync.config import Settings, get_settings
from chartsync.core.scope import Scope
from chartsync.errors import ConfigurationError, TemplateError, TemplatePendingError
from chartsync.template.compiler import RenderFn, TemplateCompiler, TemplateSource

logger = logging.getLogger(__name__)

HostContextFactory = Callable[[], "Scope | None"]

# Attributes copied from a callback context object (Highcharts `this`)
_CALLBACK_ATTRS = (
    "point", "points", "series", "x", "y", "key",
    "value", "axis", "percentage", "total", "chart",
)


@dataclass(frozen=True)
class FormatterDescriptor:
    """`{template: ...}` or `{templateUrl: ...}` in place of a formatter function."""
    template: str | None = None
    template_url: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> FormatterDescriptor | None:
        """Recognise a formatter descriptor. Returns None for anything else.

        Raises:
            ConfigurationError: Both keys given, or a non-string template
        """
        if isinstance(value, FormatterDescriptor):
            return value
        if not isinstance(value, Mapping):
            return None

        has_inline = "template" in value
        has_url = "templateUrl" in value
        if not has_inline and not has_url:
            return None
        if has_inline and has_url:
            raise ConfigurationError(
                "Formatter descriptor cannot specify both 'template' and 'templateUrl'"
            )

        key = "template" if has_inline else "templateUrl"
        text = value[key]
        if not isinstance(text, str) or (has_url and not text):
            raise ConfigurationError(f"Formatter '{key}' must be a non-empty string")

        if has_inline:
            return cls(template=text)
        return cls(template_url=text)

    @property
    def source(self) -> TemplateSource:
        if self.template is not None:
            return TemplateSource.inline(self.template)
        return TemplateSource.ref(self.template_url)


def check_markup_enabled(option: Any, settings: Settings | None = None) -> None:
    """Fail fast unless the owning option enables raw markup rendering."""
    flag = (settings or get_settings()).markup_flag
    if not isinstance(option, Mapping) or not option.get(flag):
        raise ConfigurationError(
            f"Template formatters require '{flag}: true' on the owning option"
        )


def callback_variables(context: Any, extra: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Variables exposed to the template for one formatter call."""
    variables: dict[str, Any] = {}
    if isinstance(context, Mapping):
        variables.update((k, v) for k, v in context.items() if isinstance(k, str))
    elif context is not None:
        for name in _CALLBACK_ATTRS:
            if hasattr(context, name):
                variables[name] = getattr(context, name)
    if context is not None:
        variables["this"] = context
    if extra:
        variables.update(extra)
    return variables


class Fragment:
    """DOM insertion point of one instance: holds its current markup."""

    def __init__(self):
        self.markup = Markup("")
        self.attached = True

    def write(self, markup: Markup) -> None:
        self.markup = markup

    def release(self) -> None:
        self.markup = Markup("")
        self.attached = False


class CompiledTemplateInstance:
    """A compiled template bound to one isolated scope and one fragment.

    Re-rendered on every update without recompiling.
    """

    def __init__(self, render_fn: RenderFn, scope: Scope):
        self.render_fn = render_fn
        self.scope = scope
        self.element = Fragment()
        self.renders = 0
        self.disposed = False
        self._revision = 0
        self._unwatch = scope.watch(lambda s: self._revision, self._render)

    def _render(self, *_: Any) -> None:
        self.element.write(self.render_fn(self.scope.variables))
        self.renders += 1

    def update(self, variables: Mapping[str, Any]) -> Markup:
        """Replace the callback variables, flush the scope, return the markup."""
        self.scope.replace(variables)
        self._revision += 1
        self.scope.flush()
        return self.element.markup

    def dispose(self) -> None:
        if self.disposed:
            return
        self._unwatch()
        self.scope.dispose()
        self.element.release()
        self.disposed = True


class FormatterBridge:
    """Chart formatter callback backed by a template.

    Args:
        descriptor: FormatterDescriptor or `{template|templateUrl}` mapping
        host_context_factory: Returns the owning component's scope (or None)
        option: The chart option that owns the formatter (markup flag checked here)
        compiler: Shared TemplateCompiler
        settings: Settings override
        name: Label used in log messages
    """

    def __init__(
        self,
        descriptor: FormatterDescriptor | Mapping[str, Any],
        host_context_factory: HostContextFactory | None = None,
        *,
        option: Any = None,
        compiler: TemplateCompiler | None = None,
        settings: Settings | None = None,
        name: str | None = None,
    ):
        resolved = FormatterDescriptor.from_value(descriptor)
        if resolved is None:
            raise ConfigurationError(
                "Formatter descriptor needs a 'template' or 'templateUrl' key"
            )
        self.settings = settings or get_settings()
        check_markup_enabled(option, self.settings)

        self.descriptor = resolved
        self.name = name or resolved.source.identity
        self.compiler = compiler or TemplateCompiler()
        self.instances: list[CompiledTemplateInstance] = []
        self.disposed = False
        self._host_context_factory = host_context_factory
        self._render_fn: RenderFn | None = None
        self._instance: CompiledTemplateInstance | None = None
        self._rendering = False

        if not resolved.source.is_inline:
            self.compiler.prefetch(resolved.source, self._resolved)

    @property
    def fallback(self) -> Markup:
        return Markup(self.settings.fallback_fragment or "")

    def __call__(self, context: Any = None, **kwargs: Any) -> Markup:
        if self.disposed:
            logger.warning("Formatter %s called after it was disposed", self.name)
            return self.fallback

        variables = callback_variables(context, kwargs)
        try:
            if self._rendering:
                return self._render_detached(variables)
            instance = self._ensure_instance()
            self._rendering = True
            try:
                return instance.update(variables)
            finally:
                self._rendering = False
        except TemplatePendingError:
            logger.debug("Formatter %s: template not resolved yet", self.name)
        except TemplateError as e:
            logger.warning("Formatter %s: template %s failed: %s", self.name, e.source, e)
        except Exception:
            logger.exception("Formatter %s failed", self.name)
        return self.fallback

    async def ready(self) -> None:
        """Wait until the template is compiled (templateUrl resolution)."""
        render_fn = await self.compiler.compile_async(self.descriptor.source)
        self._resolved(render_fn)

    def dispose(self) -> None:
        """Dispose every instance created by this call site."""
        if self.disposed:
            return
        for instance in self.instances:
            instance.dispose()
        self.instances.clear()
        self._instance = None
        self._render_fn = None
        self.disposed = True

    # ── internals ──────────────────────────────
    def _resolved(self, render_fn: RenderFn) -> None:
        if self.disposed:
            logger.debug("Formatter %s disposed; discarding resolved template", self.name)
            return
        self._render_fn = render_fn

    def _ensure_instance(self) -> CompiledTemplateInstance:
        if self._instance is not None:
            return self._instance
        if self._render_fn is None:
            self._render_fn = self.compiler.compile(self.descriptor.source)

        parent = self._host_context_factory() if self._host_context_factory else None
        instance = CompiledTemplateInstance(self._render_fn, Scope(parent=parent))
        self._instance = instance
        self.instances.append(instance)
        return instance

    def _render_detached(self, variables: dict[str, Any]) -> Markup:
        # Nested call during our own render: leave the live scope alone
        instance = self._instance
        return instance.render_fn(ChainMap(variables, instance.scope.variables))

    def __repr__(self) -> str:
        state = " disposed" if self.disposed else ""
        return f"<FormatterBridge {self.name} instances={len(self.instances)}{state}>"


def bridge(
    descriptor: FormatterDescriptor | Mapping[str, Any],
    host_context_factory: HostContextFactory | None = None,
    *,
    option: Any = None,
    compiler: TemplateCompiler | None = None,
    settings: Settings | None = None,
    name: str | None = None,
) -> FormatterBridge:
    """Wrap a template descriptor into a chart formatter callback."""
    return FormatterBridge(
        descriptor,
        host_context_factory,
        option=option,
        compiler=compiler,
        settings=settings,
        name=name,
    )
