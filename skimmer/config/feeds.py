"""Config file loader.

The config file is YAML::

    feeds:
      - url: https://go.dev/blog/feed.atom
        name: Go blog
        tags: [golang, programming]
    ordering: desc
    showread: false
    showfavourites: false
    autoread: true
    refreshinterval: 30
    defaultincludefeedname: false
    http:
      mintls: TLS 1.2
      useragent: skimmer
    backends:
      miniflux:
        - host: https://miniflux.example.com
          api_key: secret

See ``backends`` for the backend section.
"""

import asyncio
from pathlib import Path
from typing import List

import yaml
from pydantic import ValidationError

from .backends import fetch_backend_feeds, parse_backends
from .settings import Settings, settings as default_settings
from ..errors import ConfigError
from ..ingestion.interfaces import Feed

# config file key -> Settings field
FILE_KEYS = {
    "ordering": "ordering",
    "showread": "show_read",
    "showfavourites": "show_favourites",
    "autoread": "auto_read",
    "refreshinterval": "refresh_interval_minutes",
    "defaultincludefeedname": "default_include_feed_name",
    "database": "database_path",
}

HTTP_KEYS = {
    "mintls": "min_tls_version",
    "useragent": "user_agent",
}


def read_config_file(config_path: Path = None) -> dict:
    """Raw config file contents; an empty config when the file is missing."""
    if config_path is None:
        config_path = default_settings.config_path
    config_path = Path(config_path).expanduser()

    if not config_path.exists():
        return {"feeds": []}

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"unable to read config {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"config {config_path} must be a mapping")
    data.setdefault("feeds", [])
    if data["feeds"] is None:
        data["feeds"] = []
    return data


def parse_feeds(data: dict) -> List[Feed]:
    feeds = []
    for entry in data.get("feeds", []):
        if isinstance(entry, str):
            entry = {"url": entry}
        if not isinstance(entry, dict) or not entry.get("url"):
            raise ConfigError(f"feed entry needs a url: {entry!r}")
        tags = entry.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]
        feeds.append(Feed(
            url=str(entry["url"]),
            name=str(entry.get("name") or ""),
            tags=[str(t) for t in tags],
        ))
    return feeds


def merge_feeds(feeds: List[Feed], extra: List[Feed]) -> List[Feed]:
    """Append ``extra`` feeds whose URL is not configured yet."""
    merged = list(feeds)
    seen = {f.url for f in feeds}
    for feed in extra:
        if feed.url not in seen:
            seen.add(feed.url)
            merged.append(feed)
    return merged


def load_feeds(config_path: Path = None, app_settings: Settings = None) -> List[Feed]:
    """Load feed configurations from the YAML config.

    Subscriptions of any configured Miniflux or FreshRSS backend are fetched
    and appended after the file's own feeds. Runs its own event loop, so call
    it from synchronous code.
    """
    data = read_config_file(config_path)
    feeds = parse_feeds(data)
    backends = parse_backends(data)
    if backends:
        feeds = merge_feeds(feeds, asyncio.run(fetch_backend_feeds(backends, app_settings)))
    return feeds


def load_settings(config_path: Path = None) -> Settings:
    """Settings from the environment, with config file values filling the rest.

    Values given through ``SKIMMER_*`` environment variables win over the
    config file.
    """
    try:
        base = Settings() if config_path is None else Settings(config_path=config_path)
    except ValidationError as e:
        raise ConfigError(f"invalid environment settings: {e}") from e
    data = read_config_file(base.config_path)

    overrides = {}
    for key, field_name in FILE_KEYS.items():
        if key in data and data[key] is not None:
            overrides[field_name] = data[key]
    for key, field_name in HTTP_KEYS.items():
        value = (data.get("http") or {}).get(key)
        if value is not None:
            overrides[field_name] = value

    overrides = {k: v for k, v in overrides.items() if k not in base.model_fields_set}
    try:
        return Settings(config_path=base.config_path, **overrides)
    except ValidationError as e:
        raise ConfigError(f"invalid config {base.config_path}: {e}") from e
