"""SQLite connection helpers shared by the task and digest stores."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import sqlite3
from typing import Any, Iterator, Optional

from utils.exceptions import StoreError


logger = logging.getLogger(__name__)


def ensure_parent(db_path: str | Path) -> Path:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


@contextmanager
def connect(db_path: str | Path, *, operation: str = "sqlite") -> Iterator[sqlite3.Connection]:
    """Open a short-lived connection; commit on success, roll back and raise StoreError on failure."""
    try:
        conn = sqlite3.connect(str(db_path), timeout=30.0)
    except sqlite3.Error as exc:
        raise StoreError(f"cannot open database: {exc}", operation=operation) from exc
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        logger.error("sqlite_error operation=%s error=%s", operation, exc)
        raise StoreError(f"{operation} failed: {exc}", operation=operation) from exc
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json")
    return json.dumps(value, ensure_ascii=False)


def load_json(value: Optional[str]) -> Any:
    if not value:
        return None
    return json.loads(value)
