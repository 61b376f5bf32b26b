"""
Versioned cache over the Django cache framework.

Entries are grouped per entity (``booking:42``, ``driver:7``). Each entity has
a version token stored under ``<namespace>:<id>:ver``; its data keys embed the
token, so invalidating an entity is a single write of a fresh token and every
older key becomes unreachable. This works on any cache backend, including ones
without pattern deletes.

The cache is an accelerator only. Every operation is fail-open: errors are
logged and reported as a miss or a no-op, never raised.
"""

import logging
import uuid
from typing import Any, Callable, Optional

from django.core.cache import caches

logger = logging.getLogger(__name__)

_MISSING = object()

# Version tokens live this many data TTLs
TOKEN_TTL_FACTOR = 2


class CacheKeys:
    BOOKING = "booking"
    DRIVER = "driver"

    @staticmethod
    def version(namespace: str, entity_id) -> str:
        return f"{namespace}:{entity_id}:ver"

    @staticmethod
    def data(namespace: str, entity_id, token: str, suffix: str) -> str:
        return f"{namespace}:{entity_id}:{token}:{suffix}"


class CacheTTL:
    SHORT = 300
    MEDIUM = 1800
    LONG = 3600


class VersionedCache:
    """Read-through/write-through helper with per-entity invalidation."""

    def __init__(self, alias: str = "default", default_ttl: int = CacheTTL.MEDIUM):
        self.alias = alias
        self.default_ttl = default_ttl

    @property
    def backend(self):
        return caches[self.alias]

    @property
    def token_ttl(self) -> int:
        # Outlives the data it versions; an expired token only orphans entries
        return self.default_ttl * TOKEN_TTL_FACTOR

    def _token(self, namespace: str, entity_id, create: bool) -> Optional[str]:
        key = CacheKeys.version(namespace, entity_id)
        token = self.backend.get(key)
        if token is None and create:
            # add() keeps a token written concurrently by another worker
            self.backend.add(key, uuid.uuid4().hex, self.token_ttl)
            token = self.backend.get(key)
        return token

    def token(self, namespace: str, entity_id) -> Optional[str]:
        """
        Current version token of an entity, created if missing.

        Read it before loading from the database and pass it to :meth:`set`:
        an invalidation that lands in between then orphans the loaded value
        instead of publishing it. Returns ``None`` when the cache is down.
        """
        try:
            return self._token(namespace, entity_id, create=True)
        except Exception:
            logger.warning("Cache token read failed for %s:%s", namespace, entity_id, exc_info=True)
            return None

    def get(self, namespace: str, entity_id, suffix: str = "detail", default: Any = None) -> Any:
        try:
            token = self._token(namespace, entity_id, create=False)
            if token is None:
                return default
            value = self.backend.get(CacheKeys.data(namespace, entity_id, token, suffix), _MISSING)
        except Exception:
            logger.warning("Cache get failed for %s:%s", namespace, entity_id, exc_info=True)
            return default
        if value is _MISSING:
            logger.debug("Cache miss for %s:%s:%s", namespace, entity_id, suffix)
            return default
        logger.debug("Cache hit for %s:%s:%s", namespace, entity_id, suffix)
        return value

    def set(
        self,
        namespace: str,
        entity_id,
        value: Any,
        suffix: str = "detail",
        ttl: Optional[int] = None,
        token: Optional[str] = None,
    ) -> bool:
        """Store ``value`` under ``token``, or under the current token when none is given."""
        try:
            if token is None:
                token = self._token(namespace, entity_id, create=True)
            if token is None:
                return False
            self.backend.set(
                CacheKeys.data(namespace, entity_id, token, suffix),
                value,
                self.default_ttl if ttl is None else ttl,
            )
            return True
        except Exception:
            logger.warning("Cache set failed for %s:%s", namespace, entity_id, exc_info=True)
            return False

    def invalidate(self, namespace: str, entity_id) -> bool:
        """Orphan every cached entry of one entity."""
        try:
            self.backend.set(CacheKeys.version(namespace, entity_id), uuid.uuid4().hex, self.token_ttl)
            logger.debug("Cache invalidated for %s:%s", namespace, entity_id)
            return True
        except Exception:
            logger.warning("Cache invalidation failed for %s:%s", namespace, entity_id, exc_info=True)
            return False

    def get_or_set(
        self,
        namespace: str,
        entity_id,
        loader: Callable[[], Any],
        suffix: str = "detail",
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Return the cached value or load, cache and return it.

        ``loader`` errors propagate; cache errors never do. A loader result of
        ``None`` is returned but not cached.
        """
        value = self.get(namespace, entity_id, suffix, default=_MISSING)
        if value is not _MISSING:
            return value
        token = self.token(namespace, entity_id)
        value = loader()
        if value is not None and token is not None:
            self.set(namespace, entity_id, value, suffix=suffix, ttl=ttl, token=token)
        return value
