"""
tests/test_template.py — Template compiler tests.

Inline compile, caching, loaders (file, mapping, HTTP),
async resolution.
"""

import asyncio
import os
import sys

import httpx
import pytest
from markupsafe import Markup

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from chartsync.errors import TemplateError, TemplatePendingError
from chartsync.template.compiler import TemplateCompiler, TemplateSource
from chartsync.template.loaders import (
    FileTemplateLoader,
    HttpTemplateLoader,
    MappingTemplateLoader,
)


# ─────────────────────────────────────────────
# SOURCES
# ─────────────────────────────────────────────
class TestTemplateSource:
    def test_inline_identity_is_digest(self):
        a = TemplateSource.inline("<b>{{ x }}</b>")
        b = TemplateSource.inline("<b>{{ x }}</b>")
        assert a.identity == b.identity
        assert a.identity.startswith("inline:")

    def test_ref_identity_is_url(self):
        assert TemplateSource.ref("tooltip.html").identity == "tooltip.html"

    def test_needs_exactly_one(self):
        with pytest.raises(ValueError):
            TemplateSource()
        with pytest.raises(ValueError):
            TemplateSource(text="a", url="b")


# ─────────────────────────────────────────────
# INLINE COMPILE
# ─────────────────────────────────────────────
class TestInlineCompile:
    def test_render(self):
        render = TemplateCompiler().compile(TemplateSource.inline("<b>{{ point.y }}</b>"))
        out = render({"point": {"y": 42}})
        assert out == "<b>42</b>"
        assert isinstance(out, Markup)

    def test_values_are_escaped(self):
        render = TemplateCompiler().compile(TemplateSource.inline("<i>{{ name }}</i>"))
        assert render({"name": "<script>"}) == "<i>&lt;script&gt;</i>"

    def test_missing_variables_render_empty(self):
        render = TemplateCompiler().compile(TemplateSource.inline("[{{ point.y }}]"))
        assert render({}) == "[]"

    def test_cached_by_identity(self):
        compiler = TemplateCompiler()
        src = TemplateSource.inline("{{ x }}")
        assert compiler.compile(src) is compiler.compile(TemplateSource.inline("{{ x }}"))
        assert compiler.is_cached(src)
        compiler.clear()
        assert not compiler.is_cached(src)

    def test_syntax_error(self):
        with pytest.raises(TemplateError) as exc:
            TemplateCompiler().compile(TemplateSource.inline("{% if %}"))
        assert exc.value.source.startswith("inline:")

    def test_render_error_wrapped(self):
        def fail():
            raise RuntimeError("boom")

        render = TemplateCompiler().compile(TemplateSource.inline("{{ fail() }}"))
        with pytest.raises(TemplateError, match="boom"):
            render({"fail": fail})


# ─────────────────────────────────────────────
# SYNC LOADERS
# ─────────────────────────────────────────────
class TestSyncLoaders:
    def test_mapping_loader(self):
        compiler = TemplateCompiler(loader=MappingTemplateLoader({"t.html": "<u>{{ x }}</u>"}))
        render = compiler.compile(TemplateSource.ref("t.html"))
        assert render({"x": 1}) == "<u>1</u>"

    def test_file_loader(self, tmp_path):
        (tmp_path / "tooltip.html").write_text("<b>{{ point.name }}</b>")
        compiler = TemplateCompiler(loader=FileTemplateLoader(tmp_path))
        render = compiler.compile(TemplateSource.ref("tooltip.html"))
        assert render({"point": {"name": "EUR"}}) == "<b>EUR</b>"

    def test_not_found(self):
        compiler = TemplateCompiler(loader=MappingTemplateLoader({}))
        with pytest.raises(TemplateError, match="not found") as exc:
            compiler.compile(TemplateSource.ref("missing.html"))
        assert exc.value.source == "missing.html"

    def test_no_loader(self):
        with pytest.raises(TemplateError, match="No template loader"):
            TemplateCompiler().compile(TemplateSource.ref("t.html"))

    def test_loader_exception_wrapped(self):
        def loader(url):
            raise OSError("disk gone")

        with pytest.raises(TemplateError, match="disk gone"):
            TemplateCompiler(loader=loader).compile(TemplateSource.ref("t.html"))

    def test_loader_returns_non_string(self):
        with pytest.raises(TemplateError, match="expected str"):
            TemplateCompiler(loader=lambda url: 42).compile(TemplateSource.ref("t.html"))

    def test_loader_called_once(self):
        calls = []

        def loader(url):
            calls.append(url)
            return "{{ x }}"

        compiler = TemplateCompiler(loader=loader)
        compiler.compile(TemplateSource.ref("t.html"))
        compiler.compile(TemplateSource.ref("t.html"))
        assert calls == ["t.html"]

    def test_prefetch_sync_calls_back_now(self):
        compiler = TemplateCompiler(loader=MappingTemplateLoader({"t.html": "{{ x }}"}))
        got = []
        assert compiler.prefetch(TemplateSource.ref("t.html"), got.append) is None
        assert len(got) == 1
        assert got[0]({"x": 3}) == "3"

    def test_prefetch_failure_is_logged(self, caplog):
        compiler = TemplateCompiler(loader=MappingTemplateLoader({}))
        got = []
        assert compiler.prefetch(TemplateSource.ref("missing.html"), got.append) is None
        assert got == []
        assert "prefetch failed" in caplog.text


# ─────────────────────────────────────────────
# ASYNC LOADERS
# ─────────────────────────────────────────────
class TestAsyncLoaders:
    def test_pending_then_resolved(self):
        calls = []

        async def loader(url):
            calls.append(url)
            await asyncio.sleep(0)
            return "<i>{{ x }}</i>"

        async def scenario():
            compiler = TemplateCompiler(loader=loader)
            src = TemplateSource.ref("t.html")
            with pytest.raises(TemplatePendingError):
                compiler.compile(src)
            # Still in flight: no second fetch
            with pytest.raises(TemplatePendingError):
                compiler.compile(src)
            render = await compiler.compile_async(src)
            return compiler, render

        compiler, render = asyncio.run(scenario())
        assert render({"x": 5}) == "<i>5</i>"
        assert calls == ["t.html"]
        assert compiler.compile(TemplateSource.ref("t.html")) is render

    def test_concurrent_compile_shares_fetch(self):
        calls = []

        async def loader(url):
            calls.append(url)
            await asyncio.sleep(0.01)
            return "{{ x }}"

        async def scenario():
            compiler = TemplateCompiler(loader=loader)
            src = TemplateSource.ref("t.html")
            return await asyncio.gather(compiler.compile_async(src), compiler.compile_async(src))

        a, b = asyncio.run(scenario())
        assert a is b
        assert calls == ["t.html"]

    def test_no_event_loop(self):
        async def loader(url):
            return "{{ x }}"

        with pytest.raises(TemplateError, match="event loop"):
            TemplateCompiler(loader=loader).compile(TemplateSource.ref("t.html"))

    def test_async_failure(self):
        async def loader(url):
            raise OSError("offline")

        async def scenario():
            compiler = TemplateCompiler(loader=loader)
            with pytest.raises(TemplateError, match="offline"):
                await compiler.compile_async(TemplateSource.ref("t.html"))
            return compiler

        compiler = asyncio.run(scenario())
        assert not compiler.is_cached(TemplateSource.ref("t.html"))

    def test_prefetch_async_callback(self):
        async def loader(url):
            await asyncio.sleep(0)
            return "{{ x }}"

        async def scenario():
            compiler = TemplateCompiler(loader=loader)
            got = []
            future = compiler.prefetch(TemplateSource.ref("t.html"), got.append)
            assert future is not None
            assert got == []
            await future
            await asyncio.sleep(0)
            return got

        got = asyncio.run(scenario())
        assert len(got) == 1


# ─────────────────────────────────────────────
# HTTP LOADER
# ─────────────────────────────────────────────
def _client(routes):
    def handler(request):
        body = routes.get(request.url.path)
        if body is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=body)

    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="https://cdn.example.test",
    )


class TestHttpLoader:
    def test_fetch(self):
        async def scenario():
            async with _client({"/tpl/tooltip.html": "<b>{{ point.y }}</b>"}) as client:
                compiler = TemplateCompiler(loader=HttpTemplateLoader(client=client))
                render = await compiler.compile_async(TemplateSource.ref("/tpl/tooltip.html"))
                return render({"point": {"y": 7}})

        assert asyncio.run(scenario()) == "<b>7</b>"

    def test_http_error_status(self):
        async def scenario():
            async with _client({}) as client:
                loader = HttpTemplateLoader(client=client)
                with pytest.raises(TemplateError, match="HTTP 404"):
                    await loader("/tpl/missing.html")

        asyncio.run(scenario())

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async def scenario():
            async with httpx.AsyncClient(
                transport=httpx.MockTransport(handler), base_url="https://cdn.example.test"
            ) as client:
                loader = HttpTemplateLoader(client=client)
                with pytest.raises(TemplateError, match="Could not fetch"):
                    await loader("/tpl/x.html")

        asyncio.run(scenario())
