"""
Digest Store
Persistence for news sources, summary records, enriched items and runtime config.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from core import NewsSource, ProcessedNewsItem, SourceKind, SummaryRecord
from utils.exceptions import StoreError
from .sqlite import connect, dump_json, ensure_parent, from_iso, load_json, to_iso


logger = logging.getLogger(__name__)

UNKNOWN_SOURCE_NAME = "unknown source"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseDigestStore(ABC):
    """Storage contract for everything the pipeline reads or writes besides job records."""

    # sources
    @abstractmethod
    def list_sources(self) -> List[NewsSource]:
        """Newest first."""

    @abstractmethod
    def get_source(self, source_id: str) -> Optional[NewsSource]:
        pass

    @abstractmethod
    def add_source(self, name: str, url: str, kind: SourceKind | str = SourceKind.RSS) -> NewsSource:
        pass

    @abstractmethod
    def update_source(self, source_id: str, name: str, url: str, kind: SourceKind | str) -> Optional[NewsSource]:
        pass

    @abstractmethod
    def delete_source(self, source_id: str) -> bool:
        pass

    # dedup identities
    @abstractmethod
    def get_processed_links(self) -> Set[str]:
        """Every ``original_link`` already saved."""

    # grouping records
    @abstractmethod
    def create_summary_record(
        self,
        title: str,
        items_count: int,
        *,
        record_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> SummaryRecord:
        """Get-or-create: an existing ``record_id`` is returned unchanged."""

    @abstractmethod
    def save_processed_items(self, record_id: str, items: Sequence[ProcessedNewsItem]) -> int:
        """Insert items and their record relation, ignoring ids already saved. Returns rows inserted."""

    @abstractmethod
    def list_summary_records(self, limit: int = 20) -> List[SummaryRecord]:
        pass

    @abstractmethod
    def get_summary_record(self, record_id: str) -> Optional[SummaryRecord]:
        pass

    @abstractmethod
    def get_record_items(self, record_id: str) -> List[ProcessedNewsItem]:
        pass

    @abstractmethod
    def get_news_by_source(self, source_id: str, limit: int = 50) -> List[ProcessedNewsItem]:
        pass

    # key/value config
    @abstractmethod
    def get_config(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set_config(self, key: str, value: Any) -> None:
        pass

    def get_summary_record_details(self, record_id: str) -> Tuple[Optional[SummaryRecord], List[ProcessedNewsItem]]:
        """Record plus its items, each labelled with its source name."""
        record = self.get_summary_record(record_id)
        if record is None:
            return None, []
        return record, self._with_source_names(self.get_record_items(record_id))

    def _with_source_names(self, items: Sequence[ProcessedNewsItem]) -> List[ProcessedNewsItem]:
        names = {source.id: source.name for source in self.list_sources()}
        return [
            item.model_copy(update={"source_name": names.get(item.source_id, UNKNOWN_SOURCE_NAME)})
            for item in items
        ]

    @staticmethod
    def _new_source_id() -> str:
        return f"src_{uuid4().hex[:12]}"


class InMemoryDigestStore(BaseDigestStore):
    """Dictionary-backed store for tests and throwaway runs."""

    def __init__(self, sources: Optional[Sequence[NewsSource]] = None) -> None:
        self._sources: Dict[str, NewsSource] = {}
        self._records: Dict[str, SummaryRecord] = {}
        self._items: Dict[str, ProcessedNewsItem] = {}
        self._relations: Dict[str, str] = {}
        self._config: Dict[str, Any] = {}
        self._lock = Lock()
        for source in list(sources or []):
            self._sources[source.id] = source

    def list_sources(self) -> List[NewsSource]:
        with self._lock:
            return sorted(self._sources.values(), key=lambda src: src.created_at, reverse=True)

    def get_source(self, source_id: str) -> Optional[NewsSource]:
        with self._lock:
            return self._sources.get(source_id)

    def add_source(self, name: str, url: str, kind: SourceKind | str = SourceKind.RSS) -> NewsSource:
        source = NewsSource(id=self._new_source_id(), name=name, url=url, kind=kind)
        with self._lock:
            self._sources[source.id] = source
        return source

    def update_source(self, source_id: str, name: str, url: str, kind: SourceKind | str) -> Optional[NewsSource]:
        with self._lock:
            current = self._sources.get(source_id)
            if current is None:
                return None
            updated = NewsSource(id=source_id, name=name, url=url, kind=kind, created_at=current.created_at)
            self._sources[source_id] = updated
            return updated

    def delete_source(self, source_id: str) -> bool:
        with self._lock:
            return self._sources.pop(source_id, None) is not None

    def get_processed_links(self) -> Set[str]:
        with self._lock:
            return {item.original_link for item in self._items.values()}

    def create_summary_record(
        self,
        title: str,
        items_count: int,
        *,
        record_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> SummaryRecord:
        with self._lock:
            if record_id and record_id in self._records:
                return self._records[record_id]
            record = SummaryRecord(
                id=record_id or f"rec_{uuid4().hex[:12]}",
                title=title,
                items_count=int(items_count),
                task_id=task_id,
            )
            self._records[record.id] = record
            return record

    def save_processed_items(self, record_id: str, items: Sequence[ProcessedNewsItem]) -> int:
        with self._lock:
            if record_id not in self._records:
                raise StoreError(f"summary record {record_id} does not exist", operation="save_processed_items")
            inserted = 0
            for item in items:
                if item.id in self._items:
                    continue
                self._items[item.id] = item.model_copy(deep=True)
                self._relations[item.id] = record_id
                inserted += 1
            return inserted

    def list_summary_records(self, limit: int = 20) -> List[SummaryRecord]:
        with self._lock:
            records = sorted(self._records.values(), key=lambda rec: rec.created_at, reverse=True)
            return records[: max(1, int(limit))]

    def get_summary_record(self, record_id: str) -> Optional[SummaryRecord]:
        with self._lock:
            return self._records.get(record_id)

    def get_record_items(self, record_id: str) -> List[ProcessedNewsItem]:
        with self._lock:
            return [self._items[news_id] for news_id, rec in self._relations.items() if rec == record_id]

    def get_news_by_source(self, source_id: str, limit: int = 50) -> List[ProcessedNewsItem]:
        with self._lock:
            items = [item for item in self._items.values() if item.source_id == source_id]
        items.sort(key=lambda item: item.pub_date, reverse=True)
        return self._with_source_names(items[: max(1, int(limit))])

    def get_config(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._config.get(key)

    def set_config(self, key: str, value: Any) -> None:
        with self._lock:
            self._config[key] = value


_ITEM_COLUMNS = "id, title, original_link, pub_date, source_id, summary, outline, enrichment_status, created_at"


class SqliteDigestStore(BaseDigestStore):
    """SQLite-backed digest tables sharing the task store's database file."""

    def __init__(self, db_path: str | Path = "./data/feed_digest.db") -> None:
        self.db_path = ensure_parent(db_path)
        self._init_database()

    def _init_database(self) -> None:
        with connect(self.db_path, operation="init_digest_tables") as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS news_sources (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    url TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS summary_records (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    items_count INTEGER NOT NULL DEFAULT 0,
                    task_id TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS processed_news (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    original_link TEXT NOT NULL,
                    pub_date TEXT,
                    source_id TEXT,
                    summary TEXT,
                    outline TEXT,
                    enrichment_status TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS news_record_relations (
                    news_id TEXT PRIMARY KEY,
                    record_id TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS system_config (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_processed_news_link ON processed_news(original_link)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_relations_record ON news_record_relations(record_id)")
        logger.info("digest_store_ready path=%s", self.db_path)

    def list_sources(self) -> List[NewsSource]:
        with connect(self.db_path, operation="list_sources") as conn:
            rows = conn.execute("SELECT * FROM news_sources ORDER BY created_at DESC").fetchall()
        return [self._row_to_source(row) for row in rows]

    def get_source(self, source_id: str) -> Optional[NewsSource]:
        with connect(self.db_path, operation="get_source") as conn:
            row = conn.execute("SELECT * FROM news_sources WHERE id = ?", (source_id,)).fetchone()
        return self._row_to_source(row) if row else None

    def add_source(self, name: str, url: str, kind: SourceKind | str = SourceKind.RSS) -> NewsSource:
        source = NewsSource(id=self._new_source_id(), name=name, url=url, kind=kind)
        with connect(self.db_path, operation="add_source") as conn:
            conn.execute(
                "INSERT INTO news_sources (id, name, url, kind, created_at) VALUES (?, ?, ?, ?, ?)",
                (source.id, source.name, source.url, source.kind.value, to_iso(source.created_at)),
            )
        return source

    def update_source(self, source_id: str, name: str, url: str, kind: SourceKind | str) -> Optional[NewsSource]:
        current = self.get_source(source_id)
        if current is None:
            return None
        updated = NewsSource(id=source_id, name=name, url=url, kind=kind, created_at=current.created_at)
        with connect(self.db_path, operation="update_source") as conn:
            conn.execute(
                "UPDATE news_sources SET name = ?, url = ?, kind = ? WHERE id = ?",
                (updated.name, updated.url, updated.kind.value, source_id),
            )
        return updated

    def delete_source(self, source_id: str) -> bool:
        with connect(self.db_path, operation="delete_source") as conn:
            cursor = conn.execute("DELETE FROM news_sources WHERE id = ?", (source_id,))
            return cursor.rowcount > 0

    def get_processed_links(self) -> Set[str]:
        with connect(self.db_path, operation="get_processed_links") as conn:
            rows = conn.execute("SELECT DISTINCT original_link FROM processed_news").fetchall()
        return {row["original_link"] for row in rows}

    def create_summary_record(
        self,
        title: str,
        items_count: int,
        *,
        record_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> SummaryRecord:
        record = SummaryRecord(
            id=record_id or f"rec_{uuid4().hex[:12]}",
            title=title,
            items_count=int(items_count),
            task_id=task_id,
        )
        with connect(self.db_path, operation="create_summary_record") as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO summary_records (id, title, items_count, task_id, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (record.id, record.title, record.items_count, record.task_id, to_iso(record.created_at)),
            )
            row = conn.execute("SELECT * FROM summary_records WHERE id = ?", (record.id,)).fetchone()
        return self._row_to_record(row)

    def save_processed_items(self, record_id: str, items: Sequence[ProcessedNewsItem]) -> int:
        inserted = 0
        with connect(self.db_path, operation="save_processed_items") as conn:
            exists = conn.execute("SELECT 1 FROM summary_records WHERE id = ?", (record_id,)).fetchone()
            if not exists:
                raise StoreError(f"summary record {record_id} does not exist", operation="save_processed_items")
            for item in items:
                cursor = conn.execute(
                    f"INSERT OR IGNORE INTO processed_news ({_ITEM_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        item.id,
                        item.title,
                        item.original_link,
                        item.pub_date,
                        item.source_id,
                        item.summary,
                        item.outline,
                        item.enrichment_status,
                        item.created_at,
                    ),
                )
                inserted += cursor.rowcount
                conn.execute(
                    "INSERT OR IGNORE INTO news_record_relations (news_id, record_id) VALUES (?, ?)",
                    (item.id, record_id),
                )
        return inserted

    def list_summary_records(self, limit: int = 20) -> List[SummaryRecord]:
        with connect(self.db_path, operation="list_summary_records") as conn:
            rows = conn.execute(
                "SELECT * FROM summary_records ORDER BY created_at DESC LIMIT ?",
                (max(1, int(limit)),),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_summary_record(self, record_id: str) -> Optional[SummaryRecord]:
        with connect(self.db_path, operation="get_summary_record") as conn:
            row = conn.execute("SELECT * FROM summary_records WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_record(row) if row else None

    def get_record_items(self, record_id: str) -> List[ProcessedNewsItem]:
        with connect(self.db_path, operation="get_record_items") as conn:
            rows = conn.execute(
                f"""
                SELECT {', '.join('n.' + col.strip() for col in _ITEM_COLUMNS.split(','))}
                FROM processed_news n
                JOIN news_record_relations r ON r.news_id = n.id
                WHERE r.record_id = ?
                ORDER BY n.rowid ASC
                """,
                (record_id,),
            ).fetchall()
        return [self._row_to_item(row) for row in rows]

    def get_news_by_source(self, source_id: str, limit: int = 50) -> List[ProcessedNewsItem]:
        with connect(self.db_path, operation="get_news_by_source") as conn:
            rows = conn.execute(
                f"SELECT {_ITEM_COLUMNS} FROM processed_news WHERE source_id = ? ORDER BY pub_date DESC LIMIT ?",
                (source_id, max(1, int(limit))),
            ).fetchall()
        return self._with_source_names([self._row_to_item(row) for row in rows])

    def get_config(self, key: str) -> Optional[Any]:
        with connect(self.db_path, operation="get_config") as conn:
            row = conn.execute("SELECT value FROM system_config WHERE key = ?", (key,)).fetchone()
        return load_json(row["value"]) if row else None

    def set_config(self, key: str, value: Any) -> None:
        with connect(self.db_path, operation="set_config") as conn:
            conn.execute(
                """
                INSERT INTO system_config (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, dump_json(value), to_iso(_utcnow())),
            )

    @staticmethod
    def _row_to_source(row) -> NewsSource:
        return NewsSource(
            id=row["id"],
            name=row["name"],
            url=row["url"],
            kind=row["kind"],
            created_at=from_iso(row["created_at"]),
        )

    @staticmethod
    def _row_to_record(row) -> SummaryRecord:
        return SummaryRecord(
            id=row["id"],
            title=row["title"],
            items_count=int(row["items_count"] or 0),
            task_id=row["task_id"],
            created_at=from_iso(row["created_at"]),
        )

    @staticmethod
    def _row_to_item(row) -> ProcessedNewsItem:
        return ProcessedNewsItem(
            id=row["id"],
            title=row["title"],
            original_link=row["original_link"],
            pub_date=row["pub_date"] or "",
            source_id=row["source_id"] or "",
            summary=row["summary"] or "",
            outline=row["outline"] or "",
            enrichment_status=row["enrichment_status"] or "ok",
            created_at=row["created_at"],
        )
