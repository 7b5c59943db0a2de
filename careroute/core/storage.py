"""
Storage interface for the CareRoute core.

Services issue abstract key-value requests against a StorageBackend and
never see a wire format. Records are plain dicts; patches address nested
attributes with dotted paths ("capacity.current_load").
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from careroute.core.config import Config
from careroute.core.exceptions import ConditionalCheckFailedError, StorageError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Predicate = Callable[[Record], bool]
Condition = Callable[[Optional[Record]], bool]

_MISSING = object()


def record_exists(record: Optional[Record]) -> bool:
    """Precondition: the record is already stored."""
    return record is not None


def get_path(record: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted attribute path from a record."""
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


def set_path(record: Record, path: str, value: Any) -> None:
    """Write a dotted attribute path, creating intermediate maps."""
    parts = path.split(".")
    current = record
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def delete_path(record: Record, path: str) -> None:
    """Remove a dotted attribute path if present."""
    parts = path.split(".")
    current: Any = record
    for part in parts[:-1]:
        current = current.get(part) if isinstance(current, dict) else None
        if current is None:
            return
    if isinstance(current, dict):
        current.pop(parts[-1], None)


def apply_patch(
    record: Optional[Record],
    key_attribute: str,
    key: str,
    patch: Mapping[str, Any],
    remove: Iterable[str] = ()
) -> Record:
    """Return a new record with the patch applied (upsert semantics)."""
    updated = copy.deepcopy(record) if record is not None else {key_attribute: key}
    for path, value in patch.items():
        set_path(updated, path, copy.deepcopy(value))
    for path in remove:
        delete_path(updated, path)
    return updated


def order_records(records: List[Record], sort_by: Optional[str], descending: bool = False) -> List[Record]:
    """Sort records by a dotted attribute, records missing it last."""
    if not sort_by:
        return records
    present = [r for r in records if get_path(r, sort_by) is not None]
    missing = [r for r in records if get_path(r, sort_by) is None]
    present.sort(key=lambda r: get_path(r, sort_by), reverse=descending)
    return present + missing


def matches(record: Record, where: Optional[Mapping[str, Any]]) -> bool:
    """Equality match on (dotted) attributes."""
    if not where:
        return True
    return all(get_path(record, path, _MISSING) == value for path, value in where.items())


class StorageBackend(ABC):
    """
    Abstract key-value/query store.

    Tables are addressed by name; each table has a key attribute that is
    written into every record (e.g. "provider_id").
    """

    max_batch_size: int = 100

    def __init__(self, key_attributes: Optional[Dict[str, str]] = None):
        self.key_attributes: Dict[str, str] = key_attributes or {
            Config.EPISODE_TABLE: "episode_id",
            Config.PROVIDER_TABLE: "provider_id",
        }

    def key_attribute(self, table: str) -> str:
        return self.key_attributes.get(table, "id")

    def _check_batch_size(self, table: str, keys: List[str]) -> None:
        if len(keys) > self.max_batch_size:
            raise StorageError(
                f"Batch get of {len(keys)} keys exceeds limit of {self.max_batch_size}",
                operation="batch_get",
                details={"table": table}
            )

    @abstractmethod
    async def get(self, table: str, key: str) -> Optional[Record]:
        """Get a record by key, or None."""

    @abstractmethod
    async def put(self, table: str, key: str, record: Record) -> None:
        """Store a whole record, replacing any existing one."""

    @abstractmethod
    async def update(
        self,
        table: str,
        key: str,
        patch: Mapping[str, Any],
        remove: Iterable[str] = (),
        condition: Optional[Condition] = None
    ) -> Record:
        """
        Apply a patch to a record and return the result.

        Creates the record when absent, unless ``condition`` rejects the
        current record, in which case ConditionalCheckFailedError is raised
        and nothing is written.
        """

    @abstractmethod
    async def query(
        self,
        table: str,
        where: Mapping[str, Any],
        filter: Optional[Predicate] = None,
        limit: Optional[int] = None,
        sort_by: Optional[str] = None,
        descending: bool = False
    ) -> List[Record]:
        """
        Records whose attributes equal ``where`` and pass ``filter``.

        ``sort_by`` orders by a (dotted) attribute before ``limit`` applies;
        records without the attribute come last.
        """

    @abstractmethod
    async def batch_get(self, table: str, keys: List[str]) -> List[Record]:
        """Get up to ``max_batch_size`` records; absent keys are skipped."""

    @abstractmethod
    async def scan(self, table: str, filter: Optional[Predicate] = None) -> List[Record]:
        """All records in a table passing ``filter``."""


class InMemoryStorage(StorageBackend):
    """
    Process-local store for development and tests.

    Writes are serialized with an asyncio lock; reads hand out deep copies
    so callers never mutate stored state.
    """

    def __init__(
        self,
        key_attributes: Optional[Dict[str, str]] = None,
        max_batch_size: Optional[int] = None
    ):
        super().__init__(key_attributes)
        self._tables: Dict[str, Dict[str, Record]] = {}
        self._lock = asyncio.Lock()
        if max_batch_size is not None:
            self.max_batch_size = max_batch_size
        logger.info("InMemoryStorage initialized")

    def _table(self, table: str) -> Dict[str, Record]:
        return self._tables.setdefault(table, {})

    async def get(self, table: str, key: str) -> Optional[Record]:
        record = self._table(table).get(key)
        return copy.deepcopy(record) if record is not None else None

    async def put(self, table: str, key: str, record: Record) -> None:
        async with self._lock:
            stored = copy.deepcopy(record)
            stored[self.key_attribute(table)] = key
            self._table(table)[key] = stored
            logger.debug(f"Stored {table}/{key}")

    async def update(
        self,
        table: str,
        key: str,
        patch: Mapping[str, Any],
        remove: Iterable[str] = (),
        condition: Optional[Condition] = None
    ) -> Record:
        async with self._lock:
            current = self._table(table).get(key)
            if condition is not None and not condition(current):
                raise ConditionalCheckFailedError(table, key)
            updated = apply_patch(current, self.key_attribute(table), key, patch, remove)
            self._table(table)[key] = updated
            logger.debug(f"Updated {table}/{key}: {sorted(patch)}")
            return copy.deepcopy(updated)

    async def query(
        self,
        table: str,
        where: Mapping[str, Any],
        filter: Optional[Predicate] = None,
        limit: Optional[int] = None,
        sort_by: Optional[str] = None,
        descending: bool = False
    ) -> List[Record]:
        results = order_records([
            record
            for record in self._table(table).values()
            if matches(record, where) and (filter is None or filter(record))
        ], sort_by, descending)
        if limit is not None:
            results = results[:limit]
        return [copy.deepcopy(record) for record in results]

    async def batch_get(self, table: str, keys: List[str]) -> List[Record]:
        self._check_batch_size(table, keys)
        records = self._table(table)
        return [copy.deepcopy(records[key]) for key in keys if key in records]

    async def scan(self, table: str, filter: Optional[Predicate] = None) -> List[Record]:
        return [
            copy.deepcopy(record)
            for record in self._table(table).values()
            if filter is None or filter(record)
        ]

    async def clear_all(self) -> None:
        """Drop every table (for testing/reset)."""
        async with self._lock:
            self._tables.clear()
            logger.info("All storage cleared")


# Singleton instance
_storage: Optional[StorageBackend] = None


def get_storage() -> StorageBackend:
    """Get the process-wide storage backend selected by Config.STORAGE_BACKEND."""
    global _storage
    if _storage is None:
        if Config.STORAGE_BACKEND == "sql":
            from careroute.db.sql_storage import SQLStorage
            _storage = SQLStorage(Config.DATABASE_URL)
        else:
            _storage = InMemoryStorage(max_batch_size=Config.BATCH_GET_LIMIT)
        logger.info(f"Using {type(_storage).__name__} storage backend")
    return _storage


def set_storage(storage: Optional[StorageBackend]) -> None:
    """Replace the process-wide backend (tests, alternative deployments)."""
    global _storage
    _storage = storage
