"""Source adapters for candidate ingestion."""

from .feeds import (
    FeedSourceAdapter,
    fetch_all_latest_news,
    fetch_rss_feed,
    fetch_source,
    parse_feed,
)

__all__ = [
    "FeedSourceAdapter",
    "fetch_all_latest_news",
    "fetch_rss_feed",
    "fetch_source",
    "parse_feed",
]
