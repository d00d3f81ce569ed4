"""Unit tests for storage module."""

import pytest
from dataclasses import replace
from datetime import datetime

from skimmer.errors import NotFoundError, StoreError
from skimmer.storage.database import SQLiteItemStorage


class TestUpsert:
    """Tests for idempotent upsert on both backends."""

    def test_save_and_retrieve_item(self, any_storage, sample_item):
        """Should save and retrieve an item."""
        item_id = any_storage.upsert_item(sample_item)
        assert item_id > 0

        item = any_storage.get_item_by_id(item_id)
        assert item.title == sample_item.title
        assert item.link == sample_item.link
        assert item.guid == "tech-1"
        assert item.categories == ["programming", "golang"]
        assert item.published_at == datetime(2024, 1, 1, 12, 0, 0)
        assert item.created_at is not None
        assert item.read_at is None
        assert item.read is False
        assert item.favourite is False

    def test_refetch_does_not_duplicate(self, any_storage, sample_item):
        """Fetching the same item twice should keep one row."""
        first = any_storage.upsert_item(sample_item)
        second = any_storage.upsert_item(sample_item)

        assert first == second
        assert len(any_storage.get_all_items()) == 1

    def test_refetch_preserves_flags(self, any_storage, sample_item):
        """Read and favourite flags should survive a re-upsert."""
        item_id = any_storage.upsert_item(sample_item)
        before = any_storage.get_item_by_id(item_id)
        any_storage.toggle_read(item_id)
        any_storage.toggle_favourite(item_id)

        any_storage.upsert_item(replace(sample_item, title="Updated title", content="new"))

        after = any_storage.get_item_by_id(item_id)
        assert after.read is True
        assert after.favourite is True
        assert after.title == "Updated title"
        assert after.content == "new"
        assert after.updated_at >= before.updated_at
        assert after.created_at == before.created_at

    def test_conflict_keeps_author_and_categories(self, any_storage, sample_item):
        """Only title, content and updated_at change on conflict."""
        item_id = any_storage.upsert_item(sample_item)
        any_storage.upsert_item(replace(sample_item, author="Someone else", categories=["other"]))

        item = any_storage.get_item_by_id(item_id)
        assert item.author == "Gopher"
        assert item.categories == ["programming", "golang"]

    def test_guid_is_dedup_key_when_link_changes(self, any_storage, sample_item):
        """A new link for a known GUID should update the existing row."""
        item_id = any_storage.upsert_item(sample_item)
        moved = replace(sample_item, link="https://tech.example.com/2024/golang?utm=x")

        assert any_storage.upsert_item(moved) == item_id
        assert len(any_storage.get_all_items()) == 1

    def test_link_is_dedup_key_without_guid(self, any_storage, sample_item):
        """Without a GUID, the link identifies the item."""
        no_guid = replace(sample_item, guid=None)
        first = any_storage.upsert_item(no_guid)
        second = any_storage.upsert_item(replace(no_guid, title="Retitled"))

        assert first == second
        assert any_storage.get_item_by_id(first).title == "Retitled"

    def test_guid_adopted_by_row_stored_without_one(self, any_storage, sample_item):
        """A row stored by link should be matched once the feed adds GUIDs."""
        item_id = any_storage.upsert_item(replace(sample_item, guid=None))

        assert any_storage.upsert_item(sample_item) == item_id
        assert any_storage.get_item_by_id(item_id).guid == "tech-1"

        # and then survives a link change
        assert any_storage.upsert_item(replace(sample_item, link="https://elsewhere")) == item_id
        assert len(any_storage.get_all_items()) == 1

    def test_different_guids_same_link_are_distinct(self, any_storage, sample_item):
        """Two GUIDs sharing a link are two items."""
        any_storage.upsert_item(sample_item)
        any_storage.upsert_item(replace(sample_item, guid="tech-1b"))

        assert len(any_storage.get_all_items()) == 2

    def test_same_link_in_different_feeds(self, any_storage, sample_item):
        """Identity is scoped to the feed."""
        any_storage.upsert_item(sample_item)
        any_storage.upsert_item(replace(sample_item, feed_url="https://other.example.com/rss"))

        assert len(any_storage.get_all_items()) == 2


class TestFlags:
    """Tests for read and favourite flags."""

    def test_toggle_favourite_twice(self, any_storage, sample_item):
        """Favourite should return to its starting value."""
        item_id = any_storage.upsert_item(sample_item)
        any_storage.toggle_favourite(item_id)
        assert any_storage.get_item_by_id(item_id).favourite is True
        any_storage.toggle_favourite(item_id)
        assert any_storage.get_item_by_id(item_id).favourite is False

    def test_toggle_read_twice(self, any_storage, sample_item):
        """Read should round-trip through a stamped timestamp."""
        item_id = any_storage.upsert_item(sample_item)

        any_storage.toggle_read(item_id)
        read_item = any_storage.get_item_by_id(item_id)
        assert read_item.read is True
        assert isinstance(read_item.read_at, datetime)

        any_storage.toggle_read(item_id)
        assert any_storage.get_item_by_id(item_id).read is False
        assert any_storage.get_item_by_id(item_id).read_at is None

    def test_mark_all_read_then_new_item(self, any_storage, make_item):
        """Unread count should be 0 after mark-all, then 1 for a new item."""
        for n in range(3):
            any_storage.upsert_item(make_item(n))
        assert any_storage.count_unread() == 3

        any_storage.mark_all_read()
        assert any_storage.count_unread() == 0

        any_storage.upsert_item(make_item(10))
        assert any_storage.count_unread() == 1

    def test_mark_all_read_keeps_existing_timestamps(self, any_storage, make_item):
        """Already read items keep their read_at."""
        first = any_storage.upsert_item(make_item(1))
        any_storage.upsert_item(make_item(2))
        any_storage.toggle_read(first)
        stamped = any_storage.get_item_by_id(first).read_at

        any_storage.mark_all_read()

        assert any_storage.get_item_by_id(first).read_at == stamped

    def test_unknown_id_raises_not_found(self, any_storage):
        """Missing ids should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            any_storage.get_item_by_id(999)
        with pytest.raises(NotFoundError):
            any_storage.toggle_read(999)
        with pytest.raises(NotFoundError):
            any_storage.toggle_favourite(999)

    def test_not_found_is_a_store_error(self, any_storage):
        """Callers catching StoreError also see NotFoundError."""
        with pytest.raises(StoreError):
            any_storage.get_item_by_id(42)


class TestQueries:
    """Tests for ordering, feed URLs and deletion."""

    def test_ordering_ascending_and_descending(self, any_storage, make_item):
        """Items should be ordered by published time."""
        any_storage.upsert_item(make_item(3))
        any_storage.upsert_item(make_item(1))
        any_storage.upsert_item(make_item(2))

        assert [i.title for i in any_storage.get_all_items("asc")] == ["Item 1", "Item 2", "Item 3"]
        assert [i.title for i in any_storage.get_all_items("desc")] == ["Item 3", "Item 2", "Item 1"]

    def test_missing_published_date_uses_created_at(self, any_storage, make_item):
        """Items without a date sort by when they were stored."""
        any_storage.upsert_item(make_item(1, published_at=datetime(2099, 1, 1)))
        any_storage.upsert_item(make_item(2, published_at=None))

        titles = [i.title for i in any_storage.get_all_items("asc")]
        assert titles == ["Item 2", "Item 1"]

    def test_get_all_items_does_not_filter(self, any_storage, make_item):
        """Read and favourite items are returned too."""
        read_id = any_storage.upsert_item(make_item(1))
        any_storage.upsert_item(make_item(2))
        any_storage.toggle_read(read_id)

        assert len(any_storage.get_all_items()) == 2

    def test_get_all_feed_urls(self, any_storage, make_item):
        """Should list distinct feed URLs."""
        any_storage.upsert_item(make_item(1, feed_url="https://a.example.com/rss"))
        any_storage.upsert_item(make_item(2, feed_url="https://a.example.com/rss"))
        any_storage.upsert_item(make_item(3, feed_url="https://b.example.com/rss"))

        assert any_storage.get_all_feed_urls() == {
            "https://a.example.com/rss", "https://b.example.com/rss"
        }

    def test_delete_preserves_favourites(self, any_storage, make_item, sample_feed):
        """Deleting without include_favourites should keep the favourite."""
        ids = [any_storage.upsert_item(make_item(n)) for n in range(3)]
        any_storage.toggle_favourite(ids[1])

        removed = any_storage.delete_by_feed_url(sample_feed.url, include_favourites=False)

        assert removed == 2
        remaining = any_storage.get_all_items()
        assert [i.id for i in remaining] == [ids[1]]

    def test_delete_including_favourites(self, any_storage, make_item, sample_feed):
        """include_favourites should delete everything for the feed."""
        ids = [any_storage.upsert_item(make_item(n)) for n in range(3)]
        any_storage.toggle_favourite(ids[0])
        any_storage.upsert_item(make_item(9, feed_url="https://keep.example.com/rss"))

        any_storage.delete_by_feed_url(sample_feed.url, include_favourites=True)

        assert any_storage.get_all_feed_urls() == {"https://keep.example.com/rss"}


class TestBatch:
    """Tests for batched transactions."""

    def test_batch_commits_together(self, any_storage, make_item):
        """All upserts inside a batch should be visible afterwards."""
        with any_storage.batch():
            for n in range(5):
                any_storage.upsert_item(make_item(n))

        assert len(any_storage.get_all_items()) == 5

    def test_batch_rolls_back_on_error(self, any_storage, make_item):
        """An exception inside the batch should discard every upsert."""
        any_storage.upsert_item(make_item(0))

        with pytest.raises(RuntimeError):
            with any_storage.batch():
                any_storage.upsert_item(make_item(1))
                any_storage.upsert_item(make_item(2))
                raise RuntimeError("network went away")

        assert [i.title for i in any_storage.get_all_items()] == ["Item 0"]

    def test_duplicate_inside_batch(self, any_storage, make_item):
        """The same item twice in one batch is still one row."""
        with any_storage.batch():
            any_storage.upsert_item(make_item(1))
            any_storage.upsert_item(make_item(1, title="Retitled"))

        items = any_storage.get_all_items()
        assert len(items) == 1
        assert items[0].title == "Retitled"

    def test_nested_batch_rejected(self, any_storage):
        """Only one batch may be open at a time."""
        any_storage.begin_batch()
        try:
            with pytest.raises(StoreError):
                any_storage.begin_batch()
        finally:
            any_storage.end_batch()

    def test_store_usable_after_rollback(self, any_storage, make_item):
        """A rolled back batch should not poison later writes."""
        any_storage.begin_batch()
        any_storage.upsert_item(make_item(1))
        any_storage.rollback_batch()

        any_storage.upsert_item(make_item(2))
        assert [i.title for i in any_storage.get_all_items()] == ["Item 2"]


class TestSQLitePersistence:
    """Tests specific to the file-backed store."""

    def test_items_survive_reopen(self, temp_db, sample_item):
        """Data should persist across store instances."""
        first = SQLiteItemStorage(temp_db)
        item_id = first.upsert_item(sample_item)
        first.toggle_favourite(item_id)
        first.close()

        second = SQLiteItemStorage(temp_db)
        item = second.get_item_by_id(item_id)
        second.close()

        assert item.favourite is True
        assert item.title == sample_item.title

    def test_in_memory_url(self, sample_item):
        """sqlite:// should give a working throwaway store."""
        store = SQLiteItemStorage("sqlite://")
        item_id = store.upsert_item(sample_item)
        assert store.get_item_by_id(item_id).title == sample_item.title
        store.close()


class TestFactory:
    """Tests for storage construction."""

    def test_preview_uses_memory(self):
        """Preview sessions never touch disk."""
        from skimmer.storage.factory import create_item_storage
        from skimmer.storage.memory import MemoryItemStorage
        assert isinstance(create_item_storage(preview=True), MemoryItemStorage)

    def test_explicit_url(self, temp_db):
        """A given URL builds a SQLite store."""
        from skimmer.storage.factory import create_item_storage
        store = create_item_storage(temp_db)
        assert isinstance(store, SQLiteItemStorage)
        assert store.database_url == temp_db
        store.close()

    def test_environment_url(self, monkeypatch, temp_db):
        """SKIMMER_DATABASE_URL overrides the settings path."""
        from skimmer.storage.factory import get_database_url
        monkeypatch.setenv("SKIMMER_DATABASE_URL", temp_db)
        assert get_database_url() == temp_db
