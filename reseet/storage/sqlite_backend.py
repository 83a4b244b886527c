"""
SQLite persistence backend: a durable local mirror of the working set.

Blocking sqlite3 calls run in a worker thread so the event loop never waits
on disk I/O.
"""

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, List

from reseet.storage.backend import PersistenceBackend, Row
from reseet.storage.rows import CATEGORY_COLUMNS, RECEIPT_COLUMNS
from reseet.utils.logging_config import logger

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS receipts (
      id TEXT PRIMARY KEY,
      user_id TEXT NOT NULL,
      merchant TEXT NOT NULL,
      date TEXT NOT NULL,
      category TEXT,
      amount TEXT NOT NULL,
      score INTEGER NOT NULL,
      items TEXT NOT NULL,
      subtotal TEXT NOT NULL,
      tax TEXT NOT NULL,
      discount TEXT,
      tip TEXT,
      payment_method TEXT,
      image_url TEXT,
      notes TEXT,
      needs_review INTEGER NOT NULL DEFAULT 0,
      folder_id TEXT,
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
      id TEXT PRIMARY KEY,
      user_id TEXT NOT NULL,
      label TEXT NOT NULL,
      color TEXT NOT NULL,
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_receipts_user ON receipts(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_categories_user ON categories(user_id);",
)


def _placeholders(columns) -> str:
    return ",".join("?" for _ in columns)


class SQLiteBackend(PersistenceBackend):
    """Row store on a single SQLite file."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self):
        con = sqlite3.connect(self.db_path)
        con.row_factory = sqlite3.Row
        try:
            yield con
            con.commit()
        except Exception:
            con.rollback()
            raise
        finally:
            con.close()

    def _init_db(self) -> None:
        with self._conn() as con:
            for statement in SCHEMA:
                con.execute(statement)
        logger.debug(f"SQLite backend ready at {self.db_path}")

    # --- sync implementations (run in a worker thread) ---

    def _fetch(self, table: str, user_id: str) -> List[Row]:
        with self._conn() as con:
            cur = con.execute(
                f"SELECT * FROM {table} WHERE user_id=? ORDER BY created_at, rowid",
                (user_id,),
            )
            return [dict(row) for row in cur.fetchall()]

    def _upsert(self, table: str, columns, row: Row) -> None:
        values = [row.get(column) for column in columns]
        with self._conn() as con:
            con.execute(
                f"INSERT OR REPLACE INTO {table}({','.join(columns)}) VALUES ({_placeholders(columns)})",
                values,
            )

    def _delete(self, table: str, user_id: str, entity_id: str) -> None:
        with self._conn() as con:
            con.execute(f"DELETE FROM {table} WHERE id=? AND user_id=?", (entity_id, user_id))

    def _delete_category_cascade(self, user_id: str, category_id: str, updated_at: str) -> None:
        # One connection, one transaction: the cascade and the delete commit together
        with self._conn() as con:
            con.execute(
                "UPDATE receipts SET folder_id=NULL, updated_at=? WHERE user_id=? AND folder_id=?",
                (updated_at, user_id, category_id),
            )
            con.execute("DELETE FROM categories WHERE id=? AND user_id=?", (category_id, user_id))

    # --- async interface ---

    async def fetch_receipts(self, user_id: str) -> List[Row]:
        rows = await asyncio.to_thread(self._fetch, "receipts", user_id)
        for row in rows:
            row['items'] = json.loads(row['items'] or "[]")
        return rows

    async def fetch_categories(self, user_id: str) -> List[Row]:
        return await asyncio.to_thread(self._fetch, "categories", user_id)

    async def upsert_receipt(self, user_id: str, row: Row) -> None:
        stored: Dict[str, Any] = dict(row, user_id=user_id)
        stored['items'] = json.dumps(row.get('items') or [], ensure_ascii=False)
        await asyncio.to_thread(self._upsert, "receipts", RECEIPT_COLUMNS, stored)

    async def delete_receipt(self, user_id: str, receipt_id: str) -> None:
        await asyncio.to_thread(self._delete, "receipts", user_id, receipt_id)

    async def upsert_category(self, user_id: str, row: Row) -> None:
        await asyncio.to_thread(self._upsert, "categories", CATEGORY_COLUMNS, dict(row, user_id=user_id))

    async def delete_category(self, user_id: str, category_id: str, updated_at: str) -> None:
        await asyncio.to_thread(self._delete_category_cascade, user_id, category_id, updated_at)
