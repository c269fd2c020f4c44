# pagesweep/db.py
from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from . import config

# -------------------------------------------------------------------
# Engine / connection helpers
# -------------------------------------------------------------------

_ENGINES: Dict[str, Engine] = {}


def get_engine(db_url: str | None = None) -> Engine:
    """Return a cached SQLAlchemy Engine (SQLite by default)."""
    url = db_url or config.DB_URL
    eng = _ENGINES.get(url)
    if eng is None:
        if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        eng = create_engine(url, future=True, echo=False)
        _ENGINES[url] = eng
    return eng


@contextmanager
def begin(engine: Engine | None = None):
    """Yield a connection inside a transaction (SQLAlchemy 2.x style)."""
    eng = engine or get_engine()
    with eng.begin() as conn:
        yield conn


# -------------------------------------------------------------------
# Schema bootstrap (idempotent, additive-only)
# -------------------------------------------------------------------

def _table_exists(conn, table: str) -> bool:
    row = conn.execute(
        text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
        {"name": table},
    ).fetchone()
    return bool(row)


def _table_columns(conn, table: str) -> Set[str]:
    """
    Return existing column names for `table`.

    NOTE: SQLite PRAGMA does **not** accept bound parameters reliably,
    so we must inline the table name here. We still validate it to avoid injection.
    """
    if not table.replace("_", "").isalnum():
        raise ValueError(f"Invalid table name: {table!r}")
    rows = conn.execute(text(f"PRAGMA table_info({table})")).fetchall()
    return {r[1] for r in rows}


def init_kv_tables(engine: Engine | None = None) -> None:
    """
    Ensure the two key/value tables exist.

    - meta(k, v): small JSON documents (capture index, signature registry, line norms)
    - blobs(k, body): full capture bodies keyed by '<captureId>:<kind>'
    """
    eng = engine or get_engine()
    with eng.begin() as conn:
        if not _table_exists(conn, "meta"):
            conn.execute(text("CREATE TABLE meta (k TEXT PRIMARY KEY, v TEXT)"))
        else:
            cols = _table_columns(conn, "meta")
            if "k" not in cols:
                conn.execute(text("ALTER TABLE meta ADD COLUMN k TEXT"))
            if "v" not in cols:
                conn.execute(text("ALTER TABLE meta ADD COLUMN v TEXT"))
        if not _table_exists(conn, "blobs"):
            conn.execute(text("CREATE TABLE blobs (k TEXT PRIMARY KEY, body TEXT)"))


# -------------------------------------------------------------------
# Key/value stores
# -------------------------------------------------------------------

class KeyValueStore(Protocol):
    def get_json(self, key: str) -> Any: ...
    def set_json(self, key: str, value: Any) -> None: ...
    def get_blob(self, key: str) -> Optional[str]: ...
    def set_blob(self, key: str, body: str) -> None: ...
    def delete_blobs(self, keys: Iterable[str]) -> None: ...


class SqlKeyValueStore:
    """JSON documents in meta(k, v), bodies in blobs(k, body)."""

    def __init__(self, engine: Engine | None = None):
        self.engine = engine or get_engine()
        init_kv_tables(self.engine)

    def get_json(self, key: str) -> Any:
        with self.engine.begin() as conn:
            row = conn.execute(text("SELECT v FROM meta WHERE k = :k"), {"k": key}).fetchone()
        if not row or row[0] is None:
            return None
        return json.loads(row[0])

    def set_json(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO meta (k, v) VALUES (:k, :v)
                    ON CONFLICT(k) DO UPDATE SET v = excluded.v
                    """
                ),
                {"k": key, "v": payload},
            )

    def get_blob(self, key: str) -> Optional[str]:
        with self.engine.begin() as conn:
            row = conn.execute(text("SELECT body FROM blobs WHERE k = :k"), {"k": key}).fetchone()
        return row[0] if row else None

    def set_blob(self, key: str, body: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO blobs (k, body) VALUES (:k, :body)
                    ON CONFLICT(k) DO UPDATE SET body = excluded.body
                    """
                ),
                {"k": key, "body": body},
            )

    def delete_blobs(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        with self.engine.begin() as conn:
            conn.execute(text("DELETE FROM blobs WHERE k = :k"), [{"k": k} for k in keys])


class MemoryKeyValueStore:
    """In-process store with the same surface; values round-trip through JSON like the SQL one."""

    def __init__(self):
        self.docs: Dict[str, str] = {}
        self.blobs: Dict[str, str] = {}

    def get_json(self, key: str) -> Any:
        raw = self.docs.get(key)
        return json.loads(raw) if raw is not None else None

    def set_json(self, key: str, value: Any) -> None:
        self.docs[key] = json.dumps(value, ensure_ascii=False)

    def get_blob(self, key: str) -> Optional[str]:
        return self.blobs.get(key)

    def set_blob(self, key: str, body: str) -> None:
        self.blobs[key] = body

    def delete_blobs(self, keys: Iterable[str]) -> None:
        for k in keys:
            self.blobs.pop(k, None)

    def blob_keys(self) -> List[str]:
        return sorted(self.blobs)
