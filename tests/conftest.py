"""Pytest configuration and shared fixtures."""

import pytest
import tempfile
import os
from datetime import datetime
from pathlib import Path

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))


RSS_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Tech Blog</title>
    <link>https://tech.example.com</link>
    <description>Posts about programming</description>
    <item>
      <title>Introduction to Golang</title>
      <link>https://tech.example.com/golang</link>
      <guid>tech-1</guid>
      <author>gopher@example.com (Gopher)</author>
      <category>programming</category>
      <category>golang</category>
      <pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>
      <description>A short introduction.</description>
    </item>
    <item>
      <title>Advanced Go topics</title>
      <link>https://tech.example.com/advanced</link>
      <guid>tech-2</guid>
      <pubDate>not a date at all</pubDate>
      <description></description>
    </item>
  </channel>
</rss>
"""

ATOM_FEED = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Dev Blog</title>
  <id>urn:dev-blog</id>
  <updated>2024-02-01T10:00:00Z</updated>
  <entry>
    <title>Python tutorial</title>
    <id>urn:dev-blog:1</id>
    <link href="https://dev.example.com/python"/>
    <updated>2024-02-01T10:00:00Z</updated>
    <summary>Summary text</summary>
    <content type="html">&lt;p&gt;Full content&lt;/p&gt;</content>
  </entry>
</feed>
"""


@pytest.fixture
def temp_db():
    """Provide a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    os.unlink(db_path)
    yield f"sqlite:///{db_path}"
    # Cleanup
    try:
        os.unlink(db_path)
    except FileNotFoundError:
        pass


@pytest.fixture
def storage(temp_db):
    """A SQLite store on a temporary file."""
    from skimmer.storage.database import SQLiteItemStorage
    store = SQLiteItemStorage(temp_db)
    yield store
    store.close()


@pytest.fixture(params=["sqlite", "memory"])
def any_storage(request, temp_db):
    """Each storage backend in turn."""
    if request.param == "sqlite":
        from skimmer.storage.database import SQLiteItemStorage
        store = SQLiteItemStorage(temp_db)
    else:
        from skimmer.storage.memory import MemoryItemStorage
        store = MemoryItemStorage()
    yield store
    store.close()


@pytest.fixture
def sample_feed():
    """Provide a sample feed."""
    from skimmer.ingestion.interfaces import Feed
    return Feed(
        url="https://tech.example.com/feed.xml",
        name="Tech Blog",
        tags=["programming"],
    )


@pytest.fixture
def sample_item(sample_feed):
    """Provide a sample NormalizedItem."""
    from skimmer.ingestion.interfaces import NormalizedItem
    return NormalizedItem(
        feed_url=sample_feed.url,
        feed_name=sample_feed.name,
        title="Introduction to Golang",
        link="https://tech.example.com/golang",
        guid="tech-1",
        author="Gopher",
        content="<p>Go is a language.</p>",
        categories=["programming", "golang"],
        published_at=datetime(2024, 1, 1, 12, 0, 0),
    )


@pytest.fixture
def make_item(sample_feed):
    """Factory for NormalizedItems on the sample feed."""
    from skimmer.ingestion.interfaces import NormalizedItem

    def _make(n, feed_url=None, **kwargs):
        defaults = dict(
            feed_url=feed_url or sample_feed.url,
            title=f"Item {n}",
            link=f"https://tech.example.com/{n}",
            content=f"content {n}",
            published_at=datetime(2024, 1, 1, 12, 0, n),
        )
        defaults.update(kwargs)
        return NormalizedItem(**defaults)

    return _make


@pytest.fixture
def config_file(tmp_path):
    """Write a YAML config and return its path."""
    def _write(text):
        path = tmp_path / "config.yml"
        path.write_text(text)
        return path
    return _write
