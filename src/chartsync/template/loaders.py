"""
chartsync.template.loaders — templateUrl resolvers.

A loader is any callable `loader(url) -> str | Awaitable[str]`.
Three are provided:

  FileTemplateLoader("templates")       — files on disk (sync)
  MappingTemplateLoader({...})          — in-memory templates (sync)
  HttpTemplateLoader("https://cdn/...") — fetched over HTTP (async)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Sequence

import httpx
from jinja2 import BaseLoader, DictLoader, Environment, FileSystemLoader, TemplateNotFound

from chartsync.errors import TemplateError

logger = logging.getLogger(__name__)


class _JinjaLoaderAdapter:
    """Expose a Jinja2 loader through the url → text contract."""

    def __init__(self, loader: BaseLoader):
        self._loader = loader
        self._env = Environment(loader=loader)

    def __call__(self, url: str) -> str:
        try:
            text, _filename, _uptodate = self._loader.get_source(self._env, url)
        except TemplateNotFound:
            raise TemplateError(f"Template not found: '{url}'", source=url) from None
        return text


class FileTemplateLoader(_JinjaLoaderAdapter):
    """Resolve templateUrl values relative to one or more directories."""

    def __init__(self, search_path: str | Path | Sequence[str | Path]):
        if isinstance(search_path, (str, Path)):
            search_path = [search_path]
        self.search_path = [str(p) for p in search_path]
        super().__init__(FileSystemLoader(self.search_path))


class MappingTemplateLoader(_JinjaLoaderAdapter):
    """Resolve templateUrl values from a dict (pre-registered templates)."""

    def __init__(self, templates: Mapping[str, str]):
        super().__init__(DictLoader(dict(templates)))


class HttpTemplateLoader:
    """Fetch templates over HTTP.

    Relative URLs are joined to base_url. Pass a preconfigured
    httpx.AsyncClient to share connection pools or inject a
    transport in tests.
    """

    def __init__(
        self,
        base_url: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._client = client

    async def __call__(self, url: str) -> str:
        if self._client is not None:
            return await self._fetch(self._client, url)
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
            return await self._fetch(client, url)

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> str:
        logger.debug("Fetching template %s", url)
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TemplateError(
                f"Template '{url}' returned HTTP {e.response.status_code}", source=url
            ) from e
        except httpx.HTTPError as e:
            raise TemplateError(f"Could not fetch template '{url}': {e}", source=url) from e
        return response.text
