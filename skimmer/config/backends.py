"""Feed subscriptions pulled from Miniflux and FreshRSS servers.

Configured under ``backends:`` in the config file::

    backends:
      miniflux:
        - host: https://miniflux.example.com
          api_key: secret
      freshrss:
        - host: https://freshrss.example.com
          user: me
          password: secret
          prefixcats: true

Each backend accepts a single mapping or a list of them.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Union

import aiohttp
import structlog

from .settings import settings
from ..errors import ConfigError
from ..ingestion.interfaces import Feed

logger = structlog.get_logger()


@dataclass
class MinifluxBackend:
    host: str
    api_key: str = ""


@dataclass
class FreshRSSBackend:
    host: str
    user: str = ""
    password: str = ""
    prefix_cats: bool = False


Backend = Union[MinifluxBackend, FreshRSSBackend]


def _entries(section, name: str) -> List[dict]:
    if section is None:
        return []
    if isinstance(section, dict):
        section = [section]
    if not isinstance(section, list) or not all(isinstance(e, dict) and e.get("host") for e in section):
        raise ConfigError(f"every backends.{name} entry needs a host")
    return section


def parse_backends(data: dict) -> List[Backend]:
    """Backends declared in the raw config."""
    section = data.get("backends") or {}
    if not isinstance(section, dict):
        raise ConfigError("backends must be a mapping")

    backends: List[Backend] = []
    for entry in _entries(section.get("miniflux"), "miniflux"):
        backends.append(MinifluxBackend(
            host=str(entry["host"]).rstrip("/"),
            api_key=str(entry.get("api_key") or ""),
        ))
    for entry in _entries(section.get("freshrss"), "freshrss"):
        backends.append(FreshRSSBackend(
            host=str(entry["host"]).rstrip("/"),
            user=str(entry.get("user") or ""),
            password=str(entry.get("password") or ""),
            prefix_cats=bool(entry.get("prefixcats", False)),
        ))
    return backends


def _auth_token(body: str) -> str:
    """Token from a Google Reader ClientLogin response (``Key=value`` lines)."""
    pairs = dict(line.split("=", 1) for line in body.splitlines() if "=" in line)
    token = pairs.get("Auth") or pairs.get("SID")
    if not token:
        raise ConfigError("FreshRSS login returned no auth token")
    return token


class BackendClient:
    """Reads subscription lists from aggregator servers."""

    def __init__(self, timeout_seconds: float = None, user_agent: str = None):
        self.session = None
        self.timeout_seconds = timeout_seconds or settings.fetch_timeout_seconds
        self.user_agent = user_agent or settings.user_agent

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            headers={"User-Agent": self.user_agent},
        )
        return self

    async def __aexit__(self, *args):
        if self.session:
            await self.session.close()
            self.session = None

    async def _get_json(self, url: str, params: dict = None, headers: dict = None):
        async with self.session.get(url, params=params, headers=headers) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def _get_text(self, url: str, params: dict = None) -> str:
        async with self.session.get(url, params=params) as response:
            response.raise_for_status()
            return await response.text()

    async def miniflux_feeds(self, backend: MinifluxBackend) -> List[Feed]:
        data = await self._get_json(
            f"{backend.host}/v1/feeds",
            headers={"X-Auth-Token": backend.api_key},
        )
        feeds = []
        for entry in data:
            category = (entry.get("category") or {}).get("title")
            feeds.append(Feed(url=entry["feed_url"], tags=[category] if category else []))
        return feeds

    async def freshrss_feeds(self, backend: FreshRSSBackend) -> List[Feed]:
        body = await self._get_text(
            f"{backend.host}/api/greader.php/accounts/ClientLogin",
            params={"Email": backend.user, "Passwd": backend.password},
        )
        data = await self._get_json(
            f"{backend.host}/api/greader.php/reader/api/0/subscription/list",
            params={"output": "json"},
            headers={"Authorization": f"GoogleLogin auth={_auth_token(body)}"},
        )
        feeds = []
        for entry in data.get("subscriptions", []):
            labels = [c["label"] for c in entry.get("categories") or [] if c.get("label")]
            feeds.append(Feed(
                url=entry["url"],
                name=",".join(labels) if backend.prefix_cats else "",
                tags=labels,
            ))
        return feeds

    async def feeds_for(self, backend: Backend) -> List[Feed]:
        """Subscriptions of one backend. Raises ConfigError when it cannot be read."""
        try:
            if isinstance(backend, MinifluxBackend):
                feeds = await self.miniflux_feeds(backend)
            else:
                feeds = await self.freshrss_feeds(backend)
        except (aiohttp.ClientError, asyncio.TimeoutError, AttributeError, KeyError, TypeError, ValueError) as e:
            raise ConfigError(
                f"unable to read feeds from {backend.host}: {str(e) or e.__class__.__name__}"
            ) from e

        logger.info("backend_feeds_loaded", host=backend.host, feeds=len(feeds))
        return feeds

    async def fetch_feeds(self, backends: List[Backend]) -> List[Feed]:
        """Subscriptions of every backend, in declaration order."""
        results = await asyncio.gather(*(self.feeds_for(b) for b in backends))
        return [feed for feeds in results for feed in feeds]


async def fetch_backend_feeds(backends: List[Backend], app_settings=None) -> List[Feed]:
    """Open a client, read every backend, close the client."""
    app_settings = app_settings or settings
    client = BackendClient(
        timeout_seconds=app_settings.fetch_timeout_seconds,
        user_agent=app_settings.user_agent,
    )
    async with client:
        return await client.fetch_feeds(backends)
