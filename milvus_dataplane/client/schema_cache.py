import logging
import threading
from typing import Callable, Optional, Tuple

from cachetools import LRUCache

from .schema import CollectionSchema

logger = logging.getLogger(__name__)


class SchemaCache:
    """
    Thread-safe LRU cache of loaded collection schemas.

    Key: (db_name, collection_name)
    Value: CollectionSchema

    Cached schemas are immutable, so the same instance may be handed to several
    concurrent calls.
    """

    DEFAULT_CAPACITY = 4096

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self._cache: LRUCache = LRUCache(maxsize=capacity)
        self._lock = threading.Lock()

    @staticmethod
    def _make_key(collection_name: str, db_name: str = "") -> Tuple[str, str]:
        return (db_name or "default", collection_name)

    def get(self, collection_name: str, db_name: str = "") -> Optional[CollectionSchema]:
        with self._lock:
            return self._cache.get(self._make_key(collection_name, db_name))

    def set(self, collection_name: str, schema: CollectionSchema, db_name: str = "") -> None:
        """Set value in cache. Evicts LRU entry if over capacity."""
        with self._lock:
            self._cache[self._make_key(collection_name, db_name)] = schema

    def get_or_load(
        self,
        collection_name: str,
        loader: Callable[[str], CollectionSchema],
        db_name: str = "",
    ) -> CollectionSchema:
        """Return the cached schema, calling ``loader`` on a miss.

        The loader runs outside the lock; two racing misses both load and the
        last one wins, which is harmless for identical schemas.
        """
        schema = self.get(collection_name, db_name)
        if schema is not None:
            return schema
        logger.debug(f"schema cache miss for collection {collection_name!r}")
        schema = loader(collection_name)
        self.set(collection_name, schema, db_name)
        return schema

    def invalidate(self, collection_name: str, db_name: str = "") -> None:
        """Remove a specific collection from cache, e.g. after a schema mismatch."""
        with self._lock:
            self._cache.pop(self._make_key(collection_name, db_name), None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
