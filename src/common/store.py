# ABOUTME: Abstract keyed-record store used by every analytics service.
# ABOUTME: Ships an in-memory implementation with per-collection atomic merge and upsert.

from __future__ import annotations

import copy
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Protocol

from .errors import NotFoundError, StoreConflictError

logger = logging.getLogger(__name__)

Predicate = Callable[[Any], bool]
Mutator = Callable[[Any], None]

CONFUSION = "confusion"
DROPOUT = "dropout"
ENGAGEMENT = "engagement"
MOMENTUM = "momentum"
PRODUCTIVITY = "productivity"
LECTURE_QUALITY = "lecture_quality"
LEADERBOARD = "leaderboard"


class RecordStore(Protocol):
    """Durable keyed storage as seen by the engine.

    Records expose a ``key`` attribute. Implementations must make
    ``find_one_and_update`` and ``update`` atomic for concurrent callers and may
    raise :class:`StoreConflictError` when they cannot.
    """

    def get(self, collection: str, key: Hashable) -> Optional[Any]:
        ...

    def find(self, collection: str, where: Optional[Predicate] = None) -> List[Any]:
        ...

    def put(self, collection: str, record: Any) -> Any:
        ...

    def put_many(self, collection: str, records: Iterable[Any]) -> List[Any]:
        ...

    def find_one_and_update(
        self,
        collection: str,
        where: Predicate,
        update: Mutator,
        upsert: Optional[Callable[[], Any]] = None,
        choose: Optional[Callable[[List[Any]], Any]] = None,
    ) -> Optional[Any]:
        ...

    def update(self, collection: str, key: Hashable, update: Mutator) -> Any:
        ...

    def replace_all(self, collection: str, records: Iterable[Any]) -> List[Any]:
        ...


class InMemoryRecordStore:
    """Thread-safe dictionary-backed store.

    Every read returns a deep copy, so a caller holding a record can never
    change stored state without going through ``put`` or an atomic update.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[Hashable, Any]] = defaultdict(dict)
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._registry_lock = threading.Lock()

    def _lock(self, collection: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks[collection]

    def get(self, collection: str, key: Hashable) -> Optional[Any]:
        with self._lock(collection):
            record = self._collections[collection].get(key)
            return copy.deepcopy(record) if record is not None else None

    def find(self, collection: str, where: Optional[Predicate] = None) -> List[Any]:
        with self._lock(collection):
            records = list(self._collections[collection].values())
            return [copy.deepcopy(r) for r in records if where is None or where(r)]

    def put(self, collection: str, record: Any) -> Any:
        stored = copy.deepcopy(record)
        with self._lock(collection):
            self._collections[collection][stored.key] = stored
        return copy.deepcopy(stored)

    def put_many(self, collection: str, records: Iterable[Any]) -> List[Any]:
        staged = [copy.deepcopy(r) for r in records]
        keys = [r.key for r in staged]
        if len(set(keys)) != len(keys):
            raise StoreConflictError(f"Duplicate keys in batch write to '{collection}'")
        with self._lock(collection):
            for record in staged:
                self._collections[collection][record.key] = record
        return [copy.deepcopy(r) for r in staged]

    def find_one_and_update(
        self,
        collection: str,
        where: Predicate,
        update: Mutator,
        upsert: Optional[Callable[[], Any]] = None,
        choose: Optional[Callable[[List[Any]], Any]] = None,
    ) -> Optional[Any]:
        """Atomically mutate the matching record, creating it when ``upsert`` is given.

        ``choose`` picks among several matches; the first inserted wins otherwise.
        """

        with self._lock(collection):
            table = self._collections[collection]
            matches = [r for r in table.values() if where(r)]
            if matches:
                target = copy.deepcopy(choose(matches) if choose else matches[0])
            elif upsert is not None:
                target = upsert()
                if target.key in table:
                    raise StoreConflictError(
                        f"Upsert into '{collection}' collided with existing key {target.key!r}"
                    )
                logger.debug("Inserting %s record %r", collection, target.key)
            else:
                return None
            update(target)
            table[target.key] = target
            return copy.deepcopy(target)

    def update(self, collection: str, key: Hashable, update: Mutator) -> Any:
        with self._lock(collection):
            current = self._collections[collection].get(key)
            if current is None:
                raise NotFoundError(f"{collection} record", key)
            target = copy.deepcopy(current)
            update(target)
            self._collections[collection][key] = target
            return copy.deepcopy(target)

    def replace_all(self, collection: str, records: Iterable[Any]) -> List[Any]:
        """Swap the whole collection for ``records`` in one step."""

        staged = [copy.deepcopy(r) for r in records]
        table = {r.key: r for r in staged}
        if len(table) != len(staged):
            raise StoreConflictError(f"Duplicate keys in batch write to '{collection}'")
        with self._lock(collection):
            self._collections[collection] = table
        return [copy.deepcopy(r) for r in staged]
