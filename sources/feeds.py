"""Feed source adapter: fan-out over configured sources, bounded per source."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
import html as html_lib
import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import get_general_settings
from core import NewsSource, RawNewsItem, SourceKind
from utils.exceptions import SourceFetchError


logger = logging.getLogger(__name__)

FeedFetcher = Callable[[NewsSource, int], Awaitable[List[RawNewsItem]]]

DEFAULT_FETCH_LIMIT = 20


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _parse_datetime(value: Any) -> Optional[datetime]:
    text = str(value or "").strip()
    if not text:
        return None

    normalized = text.replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(normalized)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except ValueError:
        pass

    try:
        dt2 = parsedate_to_datetime(text)
        if dt2.tzinfo is None:
            dt2 = dt2.replace(tzinfo=timezone.utc)
        return dt2.astimezone(timezone.utc)
    except (TypeError, ValueError):
        return None


def _normalize_pub_date(value: str) -> str:
    parsed = _parse_datetime(value)
    if parsed is not None:
        return parsed.isoformat(timespec="seconds")
    return str(value or "").strip() or _utc_iso()


def _safe_truncate(text: str, max_len: int = 9000) -> str:
    value = str(text or "")
    value = value.replace("\r\n", "\n").replace("\r", "\n")
    value = re.sub(r"[ \t\f\v]+", " ", value)
    value = re.sub(r"\n{3,}", "\n\n", value).strip()
    if len(value) <= max_len:
        return value
    return value[: max_len - 3].rstrip() + "..."


def _strip_html(value: str) -> str:
    text = str(value or "")
    text = re.sub(r"<script[^>]*>.*?</script>", " ", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<style[^>]*>.*?</style>", " ", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html_lib.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


@retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
async def _http_get_text(url: str, *, headers: Optional[Dict[str, str]] = None) -> str:
    settings = get_general_settings()
    timeout = httpx.Timeout(float(settings.request_timeout))
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        response = await client.get(url, headers=headers)
        response.raise_for_status()
        return str(response.text or "")


def _local(tag: str) -> str:
    """Tag name without its XML namespace."""
    return str(tag or "").rsplit("}", 1)[-1]


def _child_text(node: ET.Element, *names: str) -> str:
    wanted = set(names)
    for child in list(node):
        if _local(child.tag) in wanted:
            return str(child.text or "").strip()
    return ""


def _atom_link(node: ET.Element) -> str:
    fallback = ""
    for child in list(node):
        if _local(child.tag) != "link":
            continue
        href = str(child.attrib.get("href") or "").strip()
        rel = str(child.attrib.get("rel") or "alternate").strip()
        if href and rel == "alternate":
            return href
        fallback = fallback or href or str(child.text or "").strip()
    return fallback


def parse_feed(xml_text: str, *, source_id: str, max_results: int = DEFAULT_FETCH_LIMIT) -> List[RawNewsItem]:
    """Parse RSS 2.0 ``<item>`` or Atom ``<entry>`` elements into candidate items."""
    root = ET.fromstring(xml_text)
    entries = [node for node in root.iter() if _local(node.tag) in {"item", "entry"}]

    items: List[RawNewsItem] = []
    for entry in entries[: max(1, int(max_results))]:
        is_atom = _local(entry.tag) == "entry"
        title = _strip_html(_child_text(entry, "title"))
        link = _atom_link(entry) if is_atom else _child_text(entry, "link")
        published = _child_text(entry, "pubDate", "published", "updated", "date")
        content = _child_text(entry, "encoded") or (_child_text(entry, "content") if is_atom else "")
        snippet = _child_text(entry, "description", "summary")
        guid = _child_text(entry, "guid", "id") or link or None

        items.append(
            RawNewsItem(
                title=title,
                link=link,
                pub_date=_normalize_pub_date(published),
                content=_safe_truncate(_strip_html(content)),
                content_snippet=_safe_truncate(_strip_html(snippet), max_len=4000),
                guid=guid,
                source_id=source_id,
            )
        )
    return items


async def fetch_rss_feed(feed_url: str, source_id: str, max_results: int = DEFAULT_FETCH_LIMIT) -> List[RawNewsItem]:
    """Fetch one feed and return at most ``max_results`` entries in feed order."""
    settings = get_general_settings()
    xml_text = await _http_get_text(feed_url, headers={"User-Agent": settings.user_agent})
    try:
        return parse_feed(xml_text, source_id=source_id, max_results=max_results)
    except ET.ParseError as exc:
        raise SourceFetchError(f"unparseable feed: {exc}", source=feed_url) from exc


async def fetch_source(source: NewsSource, max_results: int = DEFAULT_FETCH_LIMIT) -> List[RawNewsItem]:
    """Fetch one configured source. Non-feed kinds are accepted but yield nothing yet."""
    if source.kind != SourceKind.RSS:
        logger.debug("source_kind_unsupported source_id=%s kind=%s", source.id, source.kind.value)
        return []
    return await fetch_rss_feed(source.url, source.id, max_results=max_results)


async def _fetch_source_safely(fetcher: FeedFetcher, source: NewsSource, max_results: int) -> List[RawNewsItem]:
    try:
        items = await fetcher(source, max_results)
    except Exception as exc:
        logger.warning("source_fetch_failed source_id=%s url=%s error=%s", source.id, source.url, exc)
        return []
    logger.info("source_fetched source_id=%s count=%d", source.id, len(items))
    return list(items)[: max(1, int(max_results))]


async def fetch_all_latest_news(
    sources: Sequence[NewsSource],
    *,
    per_source_cap: int = DEFAULT_FETCH_LIMIT,
    fetcher: Optional[FeedFetcher] = None,
) -> List[RawNewsItem]:
    """
    Fetch every source concurrently.

    A failing source is logged and contributes zero items. Output is the
    concatenation in ``sources`` order, each source keeping its own order.
    """
    if not sources:
        return []
    run = fetcher or fetch_source
    batches = await asyncio.gather(*[_fetch_source_safely(run, source, per_source_cap) for source in sources])
    merged: List[RawNewsItem] = []
    for batch in batches:
        merged.extend(batch)
    return merged


class FeedSourceAdapter:
    """Reads configured sources from the digest store and fetches their candidates."""

    def __init__(
        self,
        digest_store,
        *,
        per_source_cap: int = DEFAULT_FETCH_LIMIT,
        fetcher: Optional[FeedFetcher] = None,
    ) -> None:
        self._digest_store = digest_store
        self._per_source_cap = max(1, int(per_source_cap))
        self._fetcher = fetcher

    async def fetch_latest(self) -> List[RawNewsItem]:
        sources = self._digest_store.list_sources()
        return await fetch_all_latest_news(sources, per_source_cap=self._per_source_cap, fetcher=self._fetcher)
