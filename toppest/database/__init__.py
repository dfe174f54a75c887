import logging

from .base import BaseStore
from .memory import MemoryStore

logger = logging.getLogger(__name__)

# Process-wide store, selected once by initialize_store()
_store = None


def initialize_store(backend=None, uri=None, db_name=None):
    """Create the configured store backend and make it the process default"""
    from config import config

    backend = (backend or config.STORE_BACKEND).lower()
    if backend == 'mongo':
        from .mongo import MongoStore
        store = MongoStore(uri or config.MONGO_URI, db_name or config.MONGO_DB_NAME)
        store.initialize()
    elif backend == 'memory':
        store = MemoryStore()
    else:
        raise ValueError(f"Unknown store backend: {backend}")

    set_store(store)
    return store


def set_store(store):
    global _store
    if _store is not None and _store is not store:
        raise RuntimeError(f"Store already initialized with the {_store.name} backend")
    _store = store
    logger.info(f"Using {store.name} store")


def get_store():
    if _store is None:
        raise RuntimeError("Store not initialized - call initialize_store() at startup")
    return _store


def reset_store():
    global _store
    _store = None


__all__ = ['BaseStore', 'MemoryStore', 'initialize_store', 'set_store', 'get_store', 'reset_store']
