"""Entity store backed by Google Cloud Firestore (firebase-admin client)."""

import logging
from functools import wraps

from google.api_core import exceptions as gexc
from google.cloud.firestore_v1 import FieldFilter, Increment as FirestoreIncrement, Query, transactional

from skillbridge.store.base import (
    CHANGE_ADDED, CHANGE_MODIFIED, CHANGE_REMOVED,
    OP_CREATE, OP_DELETE, OP_SET, OP_UPDATE,
    Change, DocumentExists, DocumentNotFound, EntityStore, Increment,
    StoreUnavailable, Transaction,
)

logger = logging.getLogger(__name__)

_TRANSIENT = (gexc.ServiceUnavailable, gexc.DeadlineExceeded, gexc.Aborted, gexc.InternalServerError)

# Firestore batches are limited to 500 writes
MAX_BATCH_WRITES = 500


def _doc_to_dict(doc_snapshot):
    """Convert a Firestore DocumentSnapshot to a dict with 'id' field."""
    if not doc_snapshot.exists:
        return None
    d = doc_snapshot.to_dict()
    d['id'] = doc_snapshot.id
    return d


def _encode(data):
    """Translate adapter sentinels into Firestore field transforms."""
    encoded = {}
    for key, value in data.items():
        if key == 'id':
            continue
        if isinstance(value, Increment):
            value = FirestoreIncrement(value.amount)
        encoded[key] = value
    return encoded


def _translate_errors(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except _TRANSIENT as e:
            raise StoreUnavailable(str(e)) from e
    return decorated


class _FirestoreTransaction(Transaction):

    def __init__(self, store, transaction):
        self._store = store
        self._txn = transaction

    def get(self, collection, doc_id):
        return _doc_to_dict(self._store._ref(collection, doc_id).get(transaction=self._txn))

    def query(self, collection, filters=()):
        q = self._store._query(collection, filters)
        return [_doc_to_dict(doc) for doc in q.stream(transaction=self._txn)]

    def create(self, collection, doc_id, data):
        self._txn.create(self._store._ref(collection, doc_id), _encode(data))

    def set(self, collection, doc_id, data, merge=False):
        self._txn.set(self._store._ref(collection, doc_id), _encode(data), merge=merge)

    def update(self, collection, doc_id, data):
        self._txn.update(self._store._ref(collection, doc_id), _encode(data))

    def delete(self, collection, doc_id):
        self._txn.delete(self._store._ref(collection, doc_id))


class FirestoreStore(EntityStore):

    def __init__(self, client):
        self._db = client

    def _ref(self, collection, doc_id):
        return self._db.collection(collection).document(doc_id)

    def _query(self, collection, filters=()):
        q = self._db.collection(collection)
        for field, op, value in filters:
            q = q.where(filter=FieldFilter(field, op, value))
        return q

    @_translate_errors
    def get(self, collection, doc_id):
        return _doc_to_dict(self._ref(collection, doc_id).get())

    @_translate_errors
    def query(self, collection, filters=(), order_by=None, descending=False, limit=None):
        q = self._query(collection, filters)
        if order_by:
            q = q.order_by(order_by, direction=Query.DESCENDING if descending else Query.ASCENDING)
        if limit:
            q = q.limit(limit)
        return [_doc_to_dict(doc) for doc in q.stream()]

    @_translate_errors
    def add(self, collection, data):
        _, doc_ref = self._db.collection(collection).add(_encode(data))
        return doc_ref.id

    @_translate_errors
    def create(self, collection, doc_id, data):
        try:
            self._ref(collection, doc_id).create(_encode(data))
        except gexc.AlreadyExists as e:
            raise DocumentExists(collection, doc_id) from e

    @_translate_errors
    def set(self, collection, doc_id, data, merge=False):
        self._ref(collection, doc_id).set(_encode(data), merge=merge)

    @_translate_errors
    def update(self, collection, doc_id, data):
        try:
            self._ref(collection, doc_id).update(_encode(data))
        except gexc.NotFound as e:
            raise DocumentNotFound(collection, doc_id) from e

    @_translate_errors
    def delete(self, collection, doc_id):
        self._ref(collection, doc_id).delete()

    @_translate_errors
    def batch_write(self, ops):
        if len(ops) > MAX_BATCH_WRITES:
            raise ValueError(f'A batch may hold at most {MAX_BATCH_WRITES} writes')
        batch = self._db.batch()
        for op in ops:
            ref = self._ref(op.collection, op.doc_id)
            if op.kind == OP_SET:
                batch.set(ref, _encode(op.data), merge=op.merge)
            elif op.kind == OP_UPDATE:
                batch.update(ref, _encode(op.data))
            elif op.kind == OP_CREATE:
                batch.create(ref, _encode(op.data))
            elif op.kind == OP_DELETE:
                batch.delete(ref)
        try:
            batch.commit()
        except gexc.AlreadyExists as e:
            raise DocumentExists(None, None) from e
        except gexc.NotFound as e:
            raise DocumentNotFound(None, None) from e

    @_translate_errors
    def run_transaction(self, fn):
        @transactional
        def _run(transaction):
            return fn(_FirestoreTransaction(self, transaction))

        try:
            return _run(self._db.transaction())
        except gexc.AlreadyExists as e:
            raise DocumentExists(None, None) from e
        except gexc.NotFound as e:
            raise DocumentNotFound(None, None) from e

    def watch(self, collection, callback, filters=()):
        def on_snapshot(col_snapshot, changes, read_time):
            delivered = []
            for change in changes:
                doc = _doc_to_dict(change.document) or {'id': change.document.id}
                kind = {
                    'ADDED': CHANGE_ADDED,
                    'MODIFIED': CHANGE_MODIFIED,
                    'REMOVED': CHANGE_REMOVED,
                }[change.type.name]
                delivered.append(Change(kind, doc))
            if delivered:
                try:
                    callback(delivered)
                except Exception:
                    # The listener thread dies on an uncaught exception
                    logger.exception('Watch callback failed for %s', collection)

        watch = self._query(collection, filters).on_snapshot(on_snapshot)
        return watch.unsubscribe
