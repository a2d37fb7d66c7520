"""
chartsync.template.compiler — Template compiler.

Turns a template source into a reusable render function:

    compiler = TemplateCompiler(loader=FileTemplateLoader("templates"))
    render = compiler.compile(TemplateSource.ref("tooltip.html"))
    render({"point": {"y": 42}})        # Markup('<b>42</b>')

Sources:
- inline text     → compiled immediately
- reference (url) → resolved through the injected loader, which may
                    return the text or an awaitable of it

Compiled functions are cached by source identity, so the same
templateUrl is fetched and compiled once per compiler.
"""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Union

from jinja2 import ChainableUndefined, Environment, TemplateError as JinjaTemplateError
from jinja2 import select_autoescape
from markupsafe import Markup

from chartsync.errors import TemplateError, TemplatePendingError

logger = logging.getLogger(__name__)

RenderFn = Callable[[Mapping[str, Any]], Markup]
Loader = Callable[[str], Union[str, Awaitable[str]]]


@dataclass(frozen=True)
class TemplateSource:
    """Inline template text or a reference resolved by a loader."""
    text: str | None = None
    url: str | None = None

    def __post_init__(self):
        if (self.text is None) == (self.url is None):
            raise ValueError("TemplateSource needs exactly one of text or url")

    @classmethod
    def inline(cls, text: str) -> TemplateSource:
        return cls(text=text)

    @classmethod
    def ref(cls, url: str) -> TemplateSource:
        return cls(url=url)

    @property
    def is_inline(self) -> bool:
        return self.text is not None

    @property
    def identity(self) -> str:
        """Cache key: the URL, or a digest of the inline text."""
        if self.url is not None:
            return self.url
        digest = hashlib.sha1(self.text.encode("utf-8")).hexdigest()
        return f"inline:{digest}"


def default_environment() -> Environment:
    """Jinja2 environment used for formatter templates."""
    return Environment(
        autoescape=select_autoescape(default_for_string=True, default=True),
        undefined=ChainableUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )


class TemplateCompiler:
    """Compile template sources into cached render functions.

    Args:
        loader: Resolves a templateUrl to template text (sync or async)
        environment: Jinja2 environment (default: default_environment())
    """

    def __init__(
        self,
        loader: Loader | None = None,
        environment: Environment | None = None,
    ):
        self.loader = loader
        self.environment = environment or default_environment()
        self._cache: dict[str, RenderFn] = {}
        self._inflight: dict[str, asyncio.Future] = {}

    def is_cached(self, source: TemplateSource) -> bool:
        return source.identity in self._cache

    def clear(self) -> None:
        self._cache.clear()

    def compile(self, source: TemplateSource) -> RenderFn:
        """Return the render function for source, synchronously.

        Raises:
            TemplatePendingError: Async loader has not resolved the reference yet
            TemplateError: Resolution or compilation failed
        """
        key = source.identity
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if source.is_inline:
            return self._store(source, source.text)

        if key in self._inflight:
            raise TemplatePendingError(f"Template '{key}' is still resolving", source=key)

        text = self._load(source)
        if inspect.isawaitable(text):
            self._schedule(source, text)
            raise TemplatePendingError(f"Template '{key}' is still resolving", source=key)
        return self._store(source, text)

    async def compile_async(self, source: TemplateSource) -> RenderFn:
        """Return the render function for source, awaiting the loader if needed.

        Concurrent calls for the same reference share one resolution.
        """
        key = source.identity
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if source.is_inline:
            return self._store(source, source.text)

        future = self._inflight.get(key)
        if future is None:
            text = self._load(source)
            if not inspect.isawaitable(text):
                return self._store(source, text)
            future = self._schedule(source, text)
        return await asyncio.shield(future)

    def prefetch(
        self,
        source: TemplateSource,
        callback: Callable[[RenderFn], None] | None = None,
    ) -> asyncio.Future | None:
        """Start resolving source without blocking.

        A synchronous loader (or a cached/inline source) is compiled
        right away and callback is invoked immediately. An async
        loader is scheduled on the running event loop; callback runs
        when it resolves. Failures are logged, never raised.

        Returns:
            The in-flight future, or None when nothing is pending
        """
        try:
            render = self.compile(source)
        except TemplatePendingError:
            future = self._inflight.get(source.identity)
            if future is not None and callback is not None:
                future.add_done_callback(lambda f: _deliver(f, callback))
            return future
        except TemplateError as e:
            logger.warning("Template prefetch failed for %s: %s", e.source, e)
            return None

        if callback is not None:
            callback(render)
        return None

    # ── internals ──────────────────────────────
    def _load(self, source: TemplateSource) -> str | Awaitable[str]:
        key = source.identity
        if self.loader is None:
            raise TemplateError(f"No template loader configured for '{key}'", source=key)
        try:
            return self.loader(source.url)
        except TemplateError:
            raise
        except Exception as e:
            raise TemplateError(f"Could not resolve template '{key}': {e}", source=key) from e

    def _schedule(self, source: TemplateSource, pending: Awaitable[str]) -> asyncio.Future:
        key = source.identity
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(pending):
                pending.close()
            raise TemplateError(
                f"Template '{key}' needs an event loop to resolve", source=key
            ) from None

        async def resolve() -> RenderFn:
            try:
                text = await pending
            except Exception as e:
                raise TemplateError(
                    f"Could not resolve template '{key}': {e}", source=key
                ) from e
            return self._store(source, text)

        def done(f: asyncio.Future) -> None:
            self._inflight.pop(key, None)
            if not f.cancelled() and f.exception() is not None:
                logger.warning("Template resolution failed for %s: %s", key, f.exception())

        future = asyncio.ensure_future(resolve())
        self._inflight[key] = future
        future.add_done_callback(done)
        return future

    def _store(self, source: TemplateSource, text: Any) -> RenderFn:
        key = source.identity
        if not isinstance(text, str):
            raise TemplateError(
                f"Loader returned {type(text).__name__} for '{key}', expected str",
                source=key,
            )
        try:
            template = self.environment.from_string(text)
        except JinjaTemplateError as e:
            raise TemplateError(f"Could not compile template '{key}': {e}", source=key) from e

        def render(context: Mapping[str, Any]) -> Markup:
            try:
                return Markup(template.render(dict(context)))
            except Exception as e:
                raise TemplateError(f"Could not render template '{key}': {e}", source=key) from e

        render.source = key  # type: ignore[attr-defined]
        self._cache[key] = render
        logger.debug("Compiled template %s", key)
        return render


def _deliver(future: asyncio.Future, callback: Callable[[RenderFn], None]) -> None:
    """Done-callback: hand a resolved render function to callback."""
    if future.cancelled():
        return
    if future.exception() is not None:
        return
    callback(future.result())
