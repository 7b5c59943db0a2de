"""
SQLAlchemy-backed storage backend.

Each record is a JSON document in the ``records`` table. The engine is
synchronous, so every call runs in a worker thread to keep the event loop
free while the database does I/O.
"""
import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from careroute.core.exceptions import ConditionalCheckFailedError, StorageError
from careroute.core.storage import (
    Condition,
    Predicate,
    Record,
    StorageBackend,
    apply_patch,
    matches,
    order_records,
)
from careroute.db.connection import RecordRow, init_db, session_scope

logger = logging.getLogger(__name__)


class SQLStorage(StorageBackend):
    """StorageBackend over a relational database."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        key_attributes: Optional[Dict[str, str]] = None
    ):
        super().__init__(key_attributes)
        self.engine, self._session_factory = init_db(database_url)
        # SQLite shares one connection across worker threads
        self._serial_lock = threading.Lock() if self.engine.dialect.name == "sqlite" else None
        logger.info("SQLStorage initialized")

    def _call(self, func, *args):
        if self._serial_lock is None:
            return func(*args)
        with self._serial_lock:
            return func(*args)

    async def _run(self, operation: str, func, *args):
        try:
            return await asyncio.to_thread(self._call, func, *args)
        except SQLAlchemyError as e:
            logger.error(f"Database error during {operation}: {e}")
            raise StorageError(f"Database error during {operation}", operation=operation) from e

    # ========================
    # Sync implementations
    # ========================

    def _get_sync(self, table: str, key: str) -> Optional[Record]:
        with session_scope(self._session_factory) as db:
            row = db.get(RecordRow, (table, key))
            return dict(row.data) if row is not None else None

    def _put_sync(self, table: str, key: str, record: Record) -> None:
        stored = dict(record)
        stored[self.key_attribute(table)] = key
        with session_scope(self._session_factory) as db:
            db.merge(RecordRow(
                table_name=table,
                record_key=key,
                data=stored,
                updated_at=datetime.now()
            ))

    def _update_sync(
        self,
        table: str,
        key: str,
        patch: Mapping[str, Any],
        remove: List[str],
        condition: Optional[Condition]
    ) -> Record:
        with session_scope(self._session_factory) as db:
            row = db.execute(
                select(RecordRow)
                .where(RecordRow.table_name == table, RecordRow.record_key == key)
                .with_for_update()
            ).scalar_one_or_none()
            current = dict(row.data) if row is not None else None

            if condition is not None and not condition(current):
                raise ConditionalCheckFailedError(table, key)

            updated = apply_patch(current, self.key_attribute(table), key, patch, remove)
            if row is None:
                db.add(RecordRow(
                    table_name=table,
                    record_key=key,
                    data=updated,
                    updated_at=datetime.now()
                ))
            else:
                row.data = updated
                row.updated_at = datetime.now()
            return updated

    def _load_table_sync(self, table: str) -> List[Record]:
        with session_scope(self._session_factory) as db:
            rows = db.execute(
                select(RecordRow).where(RecordRow.table_name == table)
            ).scalars().all()
            return [dict(row.data) for row in rows]

    def _batch_get_sync(self, table: str, keys: List[str]) -> List[Record]:
        with session_scope(self._session_factory) as db:
            rows = db.execute(
                select(RecordRow).where(
                    RecordRow.table_name == table,
                    RecordRow.record_key.in_(keys)
                )
            ).scalars().all()
            return [dict(row.data) for row in rows]

    # ========================
    # StorageBackend API
    # ========================

    async def get(self, table: str, key: str) -> Optional[Record]:
        return await self._run("get", self._get_sync, table, key)

    async def put(self, table: str, key: str, record: Record) -> None:
        await self._run("put", self._put_sync, table, key, record)
        logger.debug(f"Stored {table}/{key}")

    async def update(
        self,
        table: str,
        key: str,
        patch: Mapping[str, Any],
        remove: Iterable[str] = (),
        condition: Optional[Condition] = None
    ) -> Record:
        updated = await self._run(
            "update", self._update_sync, table, key, patch, list(remove), condition
        )
        logger.debug(f"Updated {table}/{key}: {sorted(patch)}")
        return updated

    async def query(
        self,
        table: str,
        where: Mapping[str, Any],
        filter: Optional[Predicate] = None,
        limit: Optional[int] = None,
        sort_by: Optional[str] = None,
        descending: bool = False
    ) -> List[Record]:
        records = await self._run("query", self._load_table_sync, table)
        results = order_records([
            record for record in records
            if matches(record, where) and (filter is None or filter(record))
        ], sort_by, descending)
        return results[:limit] if limit is not None else results

    async def batch_get(self, table: str, keys: List[str]) -> List[Record]:
        self._check_batch_size(table, keys)
        if not keys:
            return []
        return await self._run("batch_get", self._batch_get_sync, table, list(keys))

    async def scan(self, table: str, filter: Optional[Predicate] = None) -> List[Record]:
        records = await self._run("scan", self._load_table_sync, table)
        return [record for record in records if filter is None or filter(record)]
