from __future__ import annotations

from fakes import make_item
from pipeline.dedup import cap_per_source, filter_unprocessed, select_news_to_process


def test_filter_is_exact_set_difference_preserving_order() -> None:
    batch = [make_item("https://a/1"), make_item("https://a/2"), make_item("https://a/3")]
    processed = {"https://a/2", "https://elsewhere/9"}

    out = filter_unprocessed(batch, processed)

    assert [item.link for item in out] == ["https://a/1", "https://a/3"]
    assert filter_unprocessed(out, processed) == out


def test_cap_keeps_first_n_per_source_grouped_by_first_appearance() -> None:
    batch = [
        make_item("https://b/1", "src_b"),
        make_item("https://a/1", "src_a"),
        make_item("https://b/2", "src_b"),
        make_item("https://b/3", "src_b"),
        make_item("https://a/2", "src_a"),
    ]

    out = cap_per_source(batch, max_per_source=2)

    assert [item.link for item in out] == ["https://b/1", "https://b/2", "https://a/1", "https://a/2"]


def test_source_with_more_than_cap_keeps_exactly_cap() -> None:
    batch = [make_item(f"https://a/{i}", "src_a") for i in range(8)] + [make_item("https://b/1", "src_b")]

    result = select_news_to_process(batch, processed_links=set(), max_per_source=5)

    assert result.per_source_counts == {"src_a": 5, "src_b": 1}
    assert len(result.selected) == 6
    assert len(result.unprocessed) == 9


def test_select_with_everything_processed_is_empty() -> None:
    batch = [make_item("https://a/1")]
    result = select_news_to_process(batch, processed_links={"https://a/1"})

    assert result.selected == []
    assert result.per_source_counts == {}


def test_link_repeated_across_sources_is_kept_once() -> None:
    batch = [
        make_item("https://shared/1", "src_a"),
        make_item("https://shared/1", "src_b"),
        make_item("https://b/2", "src_b"),
    ]

    result = select_news_to_process(batch, processed_links=set(), max_per_source=5)

    assert [(item.link, item.source_id) for item in result.selected] == [
        ("https://shared/1", "src_a"),
        ("https://b/2", "src_b"),
    ]
    assert result.per_source_counts == {"src_a": 1, "src_b": 1}
