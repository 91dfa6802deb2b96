from skillbridge.store.base import (  # noqa: F401
    Change, DocumentExists, DocumentNotFound, EntityStore, Increment,
    StoreError, StoreUnavailable, WriteOp,
)

_store = None


def init_store(app_config=None):
    """Select the store backend named by ``STORE_BACKEND``."""
    global _store

    backend = (app_config or {}).get('STORE_BACKEND', 'firestore')
    if backend == 'memory':
        from skillbridge.store.memory import InMemoryStore
        _store = InMemoryStore()
    elif backend == 'firestore':
        from skillbridge.firebase_init import get_db
        from skillbridge.store.firestore import FirestoreStore
        _store = FirestoreStore(get_db())
    else:
        raise ValueError(f'Unknown STORE_BACKEND: {backend}')
    return _store


def get_store():
    global _store
    if _store is None:
        init_store()
    return _store
