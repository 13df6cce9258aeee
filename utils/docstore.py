"""
Document store adapters: the write contract the catalog engine relies on.

Documents live in named collections and are keyed by id. The engine needs
four primitives:

  merge(collection, id, fields)    upsert; unspecified fields are untouched
  update(collection, id, fields)   partial update; fails if the doc is missing
  commit(writes)                   atomic multi-document write, capped at
                                   STORE_BATCH_LIMIT operations
  get / list_documents             reads for loading the in-memory state

A field set to DELETE_FIELD is removed from the stored document.

Two backends: MemoryDocumentStore (tests, local runs without a database) and
PostgresDocumentStore (JSONB rows in a single table).
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import psycopg2
import psycopg2.extras
from psycopg2 import sql

import config

log = logging.getLogger(__name__)


class StoreError(Exception):
    """The store is unreachable or rejected the write."""


class DocumentNotFound(StoreError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"Document not found: {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


class BatchTooLarge(ValueError):
    """A commit exceeded the per-commit operation ceiling."""


class _DeleteField:
    _instance: _DeleteField | None = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE_FIELD"

    def __deepcopy__(self, memo):
        return self


DELETE_FIELD = _DeleteField()


class WriteKind(str, Enum):
    UPDATE = "update"
    MERGE = "merge"


@dataclass(frozen=True)
class FieldUpdate:
    """One write inside a batched commit."""
    collection: str
    doc_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    kind: WriteKind = WriteKind.UPDATE


def apply_fields(data: dict, fields: dict[str, Any]) -> dict:
    """Return a copy of `data` with `fields` merged in and DELETE_FIELD keys dropped."""
    merged = dict(data)
    for key, value in fields.items():
        if value is DELETE_FIELD:
            merged.pop(key, None)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _split_fields(fields: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    to_set = {k: v for k, v in fields.items() if v is not DELETE_FIELD}
    to_delete = [k for k, v in fields.items() if v is DELETE_FIELD]
    return to_set, to_delete


class DocumentStore:
    """Interface shared by the store backends."""

    max_batch_ops = config.STORE_BATCH_LIMIT

    async def get(self, collection: str, doc_id: str) -> dict | None:
        raise NotImplementedError

    async def list_documents(self, collection: str) -> list[dict]:
        """Return every document in a collection, each with its `id` field set."""
        raise NotImplementedError

    async def merge(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        raise NotImplementedError

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        raise NotImplementedError

    async def commit(self, writes: list[FieldUpdate]) -> None:
        raise NotImplementedError

    def _check_batch(self, writes: list[FieldUpdate]) -> None:
        if len(writes) > self.max_batch_ops:
            raise BatchTooLarge(
                f"Commit of {len(writes)} operations exceeds the limit of {self.max_batch_ops}"
            )


# ── In-memory backend ─────────────────────────────────────────────────

class MemoryDocumentStore(DocumentStore):
    """Process-local store with the same contract as the database backend."""

    def __init__(self, seed: dict[str, dict[str, dict]] | None = None):
        self._collections: dict[str, dict[str, dict]] = {}
        for collection, docs in (seed or {}).items():
            for doc_id, data in docs.items():
                self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def snapshot(self) -> dict[str, dict[str, dict]]:
        return copy.deepcopy(self._collections)

    async def get(self, collection: str, doc_id: str) -> dict | None:
        data = self._collections.get(collection, {}).get(doc_id)
        return {**copy.deepcopy(data), "id": doc_id} if data is not None else None

    async def list_documents(self, collection: str) -> list[dict]:
        docs = self._collections.get(collection, {})
        return [{**copy.deepcopy(data), "id": doc_id} for doc_id, data in docs.items()]

    async def merge(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self._apply(FieldUpdate(collection, doc_id, fields, WriteKind.MERGE))

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self._require(collection, doc_id)
        self._apply(FieldUpdate(collection, doc_id, fields, WriteKind.UPDATE))

    async def commit(self, writes: list[FieldUpdate]) -> None:
        self._check_batch(writes)
        # Updates may target docs created by an earlier merge in the same batch
        pending = {(c, d) for c, docs in self._collections.items() for d in docs}
        for write in writes:
            key = (write.collection, write.doc_id)
            if write.kind is WriteKind.UPDATE and key not in pending:
                raise DocumentNotFound(write.collection, write.doc_id)
            pending.add(key)
        for write in writes:
            self._apply(write)

    def _require(self, collection: str, doc_id: str) -> None:
        if doc_id not in self._collections.get(collection, {}):
            raise DocumentNotFound(collection, doc_id)

    def _apply(self, write: FieldUpdate) -> None:
        docs = self._collections.setdefault(write.collection, {})
        docs[write.doc_id] = apply_fields(docs.get(write.doc_id, {}), write.fields)


# ── Postgres backend ──────────────────────────────────────────────────

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    collection      TEXT NOT NULL,
    doc_id          TEXT NOT NULL,
    data            JSONB NOT NULL DEFAULT '{{}}'::jsonb,
    created_at      TIMESTAMPTZ DEFAULT now(),
    updated_at      TIMESTAMPTZ DEFAULT now(),
    PRIMARY KEY (collection, doc_id)
);
"""


class PostgresDocumentStore(DocumentStore):
    """Documents stored as JSONB rows keyed by (collection, doc_id).

    Every call runs in its own transaction; commit() writes all of its
    operations in a single transaction so the batch lands atomically.
    """

    def __init__(self, dsn: str | None = None, table: str | None = None):
        self.dsn = dsn or config.DATABASE_URL
        self.table = sql.Identifier(table or config.DOCUMENTS_TABLE)
        self._conn = None

    def _get_conn(self):
        """Get a Postgres connection (simple single-connection reuse)."""
        if self._conn is not None and not self._conn.closed:
            return self._conn
        self._conn = psycopg2.connect(self.dsn)
        self._conn.autocommit = False
        return self._conn

    def _reset(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except psycopg2.Error:
                pass
        self._conn = None

    def init_db(self) -> None:
        """Create the documents table if it doesn't exist."""
        self._run(lambda cur: cur.execute(sql.SQL(SCHEMA_SQL).format(table=self.table)))
        log.info("Document table %s ready", self.table.string)

    def _run(self, fn):
        conn = self._get_conn()
        try:
            with conn:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    return fn(cur)
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
            self._reset()
            raise StoreError(f"Database unavailable: {e}") from e
        except psycopg2.Error as e:
            raise StoreError(f"Write rejected: {e}") from e

    # ── statements ──

    def _merge_stmt(self, cur, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        to_set, to_delete = _split_fields(fields)
        cur.execute(
            sql.SQL("""
                INSERT INTO {table} (collection, doc_id, data)
                VALUES (%s, %s, %s)
                ON CONFLICT (collection, doc_id) DO UPDATE SET
                    data = ({table}.data || EXCLUDED.data) - %s::text[],
                    updated_at = now()
            """).format(table=self.table),
            (collection, doc_id, psycopg2.extras.Json(to_set), to_delete),
        )

    def _update_stmt(self, cur, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        to_set, to_delete = _split_fields(fields)
        cur.execute(
            sql.SQL("""
                UPDATE {table}
                SET data = (data || %s) - %s::text[], updated_at = now()
                WHERE collection = %s AND doc_id = %s
            """).format(table=self.table),
            (psycopg2.extras.Json(to_set), to_delete, collection, doc_id),
        )
        if cur.rowcount == 0:
            raise DocumentNotFound(collection, doc_id)

    def _get_sync(self, collection: str, doc_id: str) -> dict | None:
        def fn(cur):
            cur.execute(
                sql.SQL("SELECT data FROM {table} WHERE collection = %s AND doc_id = %s")
                .format(table=self.table),
                (collection, doc_id),
            )
            row = cur.fetchone()
            return {**row["data"], "id": doc_id} if row else None
        return self._run(fn)

    def _list_sync(self, collection: str) -> list[dict]:
        def fn(cur):
            cur.execute(
                sql.SQL("SELECT doc_id, data FROM {table} WHERE collection = %s ORDER BY doc_id")
                .format(table=self.table),
                (collection,),
            )
            return [{**row["data"], "id": row["doc_id"]} for row in cur.fetchall()]
        return self._run(fn)

    def _commit_sync(self, writes: list[FieldUpdate]) -> None:
        def fn(cur):
            for write in writes:
                if write.kind is WriteKind.MERGE:
                    self._merge_stmt(cur, write.collection, write.doc_id, write.fields)
                else:
                    self._update_stmt(cur, write.collection, write.doc_id, write.fields)
        self._run(fn)

    # ── async interface ──

    async def get(self, collection: str, doc_id: str) -> dict | None:
        return await asyncio.to_thread(self._get_sync, collection, doc_id)

    async def list_documents(self, collection: str) -> list[dict]:
        return await asyncio.to_thread(self._list_sync, collection)

    async def merge(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        await self.commit([FieldUpdate(collection, doc_id, fields, WriteKind.MERGE)])

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        await self.commit([FieldUpdate(collection, doc_id, fields, WriteKind.UPDATE)])

    async def commit(self, writes: list[FieldUpdate]) -> None:
        self._check_batch(writes)
        if writes:
            await asyncio.to_thread(self._commit_sync, writes)


def build_store() -> DocumentStore:
    """Postgres when DATABASE_URL is configured, otherwise an in-memory store."""
    if not config.DATABASE_URL:
        log.warning("DATABASE_URL not set, using in-memory document store")
        return MemoryDocumentStore()
    store = PostgresDocumentStore()
    store.init_db()
    return store
