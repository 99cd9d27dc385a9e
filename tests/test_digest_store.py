from __future__ import annotations

import pytest

from core import ProcessedNewsItem, SourceKind
from storage import UNKNOWN_SOURCE_NAME, InMemoryDigestStore, SqliteDigestStore
from utils.exceptions import StoreError


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryDigestStore()
    return SqliteDigestStore(tmp_path / "digest.db")


def _item(item_id: str, link: str, source_id: str) -> ProcessedNewsItem:
    return ProcessedNewsItem(
        id=item_id,
        title=f"title {item_id}",
        original_link=link,
        pub_date="2026-01-02T00:00:00+00:00",
        source_id=source_id,
        summary="summary",
        outline="- point",
    )


def test_source_crud(store) -> None:
    source = store.add_source("AI Blog", "https://example.com/feed.xml", "feed")
    assert source.kind == SourceKind.RSS
    assert store.get_source(source.id) == source

    updated = store.update_source(source.id, "AI Blog 2", "https://example.com/atom.xml", SourceKind.BLOG)
    assert updated.name == "AI Blog 2"
    assert updated.kind == SourceKind.BLOG
    assert [src.id for src in store.list_sources()] == [source.id]

    assert store.update_source("src_missing", "x", "https://x", "rss") is None
    assert store.delete_source(source.id) is True
    assert store.delete_source(source.id) is False
    assert store.list_sources() == []


def test_summary_record_is_get_or_create(store) -> None:
    first = store.create_summary_record("Digest", 2, record_id="summary_task_1", task_id="task_1")
    again = store.create_summary_record("Digest (replay)", 9, record_id="summary_task_1", task_id="task_1")

    assert again.id == first.id
    assert again.title == "Digest"
    assert again.items_count == 2
    assert len(store.list_summary_records()) == 1


def test_save_items_is_insert_or_ignore_and_feeds_dedup(store) -> None:
    source = store.add_source("Feed", "https://example.com/feed", "rss")
    store.create_summary_record("Digest", 2, record_id="rec_1")
    items = [_item("n1", "https://example.com/1", source.id), _item("n2", "https://example.com/2", "src_gone")]

    assert store.save_processed_items("rec_1", items) == 2
    assert store.save_processed_items("rec_1", items) == 0
    assert store.get_processed_links() == {"https://example.com/1", "https://example.com/2"}

    record, details = store.get_summary_record_details("rec_1")
    assert record.id == "rec_1"
    assert [item.id for item in details] == ["n1", "n2"]
    assert details[0].source_name == "Feed"
    assert details[1].source_name == UNKNOWN_SOURCE_NAME


def test_save_items_requires_existing_record(store) -> None:
    with pytest.raises(StoreError):
        store.save_processed_items("rec_missing", [_item("n1", "https://example.com/1", "s")])


def test_missing_record_details(store) -> None:
    assert store.get_summary_record_details("nope") == (None, [])


def test_news_by_source(store) -> None:
    store.create_summary_record("Digest", 2, record_id="rec_1")
    store.save_processed_items("rec_1", [_item("n1", "https://a/1", "s1"), _item("n2", "https://a/2", "s2")])

    assert [item.id for item in store.get_news_by_source("s1")] == ["n1"]


def test_config_round_trip(store) -> None:
    assert store.get_config("llm_config") is None
    store.set_config("llm_config", {"default_provider": "grok", "provider_order": ["grok"]})
    store.set_config("llm_config", {"default_provider": "deepseek", "provider_order": ["deepseek", "grok"]})

    assert store.get_config("llm_config") == {"default_provider": "deepseek", "provider_order": ["deepseek", "grok"]}


def test_add_source_accepts_enum_and_default_kind(store) -> None:
    default = store.add_source("Default", "https://example.com/rss")
    blog = store.add_source("Blog", "https://example.com/blog", SourceKind.BLOG)

    assert default.kind == SourceKind.RSS
    assert blog.kind == SourceKind.BLOG
    assert store.get_source(blog.id).kind == SourceKind.BLOG

    moved = store.update_source(default.id, "Default", "https://example.com/api", SourceKind.API)
    assert moved.kind == SourceKind.API
    assert store.get_source(default.id).kind == SourceKind.API
