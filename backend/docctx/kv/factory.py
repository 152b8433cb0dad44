"""Backend selection for the context store."""

import logging
from functools import lru_cache

from backend.docctx.config import Settings, get_settings
from backend.docctx.kv.base import KeyValueStore
from backend.docctx.kv.inmemory import InMemoryKeyValueStore
from backend.docctx.kv.redis_store import RedisKeyValueStore

logger = logging.getLogger(__name__)


def create_kv_store(settings: Settings) -> KeyValueStore | None:
    """Create the key-value backend described by settings.

    Returns:
        Redis store when REDIS_URL is set, an in-memory store when the memory
        fallback is enabled, otherwise None (unavailable mode)
    """
    if settings.redis_url:
        logger.info("Context store using Redis backend")
        return RedisKeyValueStore.from_url(settings.redis_url)

    if settings.kv_memory_fallback:
        logger.warning("REDIS_URL not set - context store using in-memory fallback")
        return InMemoryKeyValueStore()

    logger.warning("REDIS_URL not set and memory fallback disabled - context store unavailable")
    return None


@lru_cache
def get_kv_store() -> KeyValueStore | None:
    """Get the process-scoped key-value backend.

    Resolved once at first use; an unavailable backend stays unavailable for
    the lifetime of the process.
    """
    return create_kv_store(get_settings())
