"""Dedup filter: drop already-processed candidates and cap each source's share."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, Iterable, List, Sequence

from core import RawNewsItem


logger = logging.getLogger(__name__)

MAX_NEWS_PER_SOURCE = 5


@dataclass
class DedupResult:
    unprocessed: List[RawNewsItem] = field(default_factory=list)
    selected: List[RawNewsItem] = field(default_factory=list)
    per_source_counts: Dict[str, int] = field(default_factory=dict)


def filter_unprocessed(candidates: Sequence[RawNewsItem], processed_links: Iterable[str]) -> List[RawNewsItem]:
    """
    Candidates whose link is not in ``processed_links``, in input order.

    A link repeated within the batch is kept once, at its first occurrence.
    """
    seen = set(processed_links or ())
    fresh: List[RawNewsItem] = []
    for item in candidates:
        if item.link in seen:
            continue
        seen.add(item.link)
        fresh.append(item)
    return fresh


def cap_per_source(items: Sequence[RawNewsItem], max_per_source: int = MAX_NEWS_PER_SOURCE) -> List[RawNewsItem]:
    """
    Keep at most ``max_per_source`` items per ``source_id``.

    Output is grouped by source in order of each source's first appearance;
    within a source the input order is kept.
    """
    limit = max(0, int(max_per_source))
    grouped: Dict[str, List[RawNewsItem]] = {}
    for item in items:
        grouped.setdefault(item.source_id, []).append(item)

    capped: List[RawNewsItem] = []
    for source_items in grouped.values():
        capped.extend(source_items[:limit])
    return capped


def select_news_to_process(
    candidates: Sequence[RawNewsItem],
    processed_links: Iterable[str],
    max_per_source: int = MAX_NEWS_PER_SOURCE,
) -> DedupResult:
    unprocessed = filter_unprocessed(candidates, processed_links)
    selected = cap_per_source(unprocessed, max_per_source)

    counts: Dict[str, int] = {}
    for item in selected:
        counts[item.source_id] = counts.get(item.source_id, 0) + 1

    for source_id, kept in counts.items():
        total = sum(1 for item in unprocessed if item.source_id == source_id)
        logger.info("dedup_source source_id=%s unprocessed=%d selected=%d", source_id, total, kept)
    logger.info(
        "dedup_summary candidates=%d unprocessed=%d selected=%d",
        len(candidates),
        len(unprocessed),
        len(selected),
    )
    return DedupResult(unprocessed=unprocessed, selected=selected, per_source_counts=counts)
