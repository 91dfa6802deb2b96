"""InMemoryStore - process-local entity store.

[DEV_MODE] Used by the test suite and by ``STORE_BACKEND=memory`` local runs.
It keeps Firestore's observable contract: composite-id documents, atomic
increments, all-or-nothing batches, serialisable transactions and push
notifications delivered after each commit. Not suitable for production: data
lives only as long as the process.
"""

import copy
import logging
import threading
import uuid
from collections import defaultdict

from skillbridge.store.base import (
    CHANGE_ADDED, CHANGE_MODIFIED, CHANGE_REMOVED,
    OP_CREATE, OP_DELETE, OP_SET, OP_UPDATE,
    Change, DocumentExists, DocumentNotFound, EntityStore, Increment,
    Transaction, WriteOp,
)

logger = logging.getLogger(__name__)

_MISSING = object()


def _matches_one(value, op, expected):
    try:
        if op == '==':
            return value == expected
        if op == '!=':
            return value != expected
        if op == 'in':
            return value in expected
        if op == 'not-in':
            return value not in expected
        if op == 'array_contains':
            return isinstance(value, list) and expected in value
        if value is None:
            return False
        if op == '<':
            return value < expected
        if op == '<=':
            return value <= expected
        if op == '>':
            return value > expected
        if op == '>=':
            return value >= expected
    except TypeError:
        return False
    raise ValueError(f'Unsupported filter operator: {op}')


def _matches(doc, filters):
    if doc is None:
        return False
    return all(_matches_one(doc.get(field), op, value) for field, op, value in filters)


def _resolve(data, current):
    """Apply field values (including Increment sentinels) over ``current``."""
    resolved = dict(current or {})
    for key, value in data.items():
        if key == 'id':
            continue
        if isinstance(value, Increment):
            base = resolved.get(key) or 0
            value = base + value.amount
        resolved[key] = copy.deepcopy(value)
    return resolved


class _MemoryTransaction(Transaction):

    def __init__(self, store):
        self._store = store
        self.ops = []

    def _check_reads_allowed(self):
        if self.ops:
            raise RuntimeError('Transactions require all reads to be executed before all writes.')

    def get(self, collection, doc_id):
        self._check_reads_allowed()
        return self._store._read(collection, doc_id)

    def query(self, collection, filters=()):
        self._check_reads_allowed()
        return self._store._select(collection, filters)

    def create(self, collection, doc_id, data):
        self.ops.append(WriteOp.create(collection, doc_id, data))

    def set(self, collection, doc_id, data, merge=False):
        self.ops.append(WriteOp.set(collection, doc_id, data, merge=merge))

    def update(self, collection, doc_id, data):
        self.ops.append(WriteOp.update(collection, doc_id, data))

    def delete(self, collection, doc_id):
        self.ops.append(WriteOp.delete(collection, doc_id))


class InMemoryStore(EntityStore):

    DEV_MODE = True

    def __init__(self):
        self._collections = defaultdict(dict)
        # One lock for the whole store makes every transaction serialisable
        self._lock = threading.RLock()
        self._watchers = {}

    # -- reads --------------------------------------------------------------

    def _read(self, collection, doc_id):
        doc = self._collections[collection].get(doc_id)
        if doc is None:
            return None
        d = copy.deepcopy(doc)
        d['id'] = doc_id
        return d

    def _select(self, collection, filters=()):
        results = []
        for doc_id in list(self._collections[collection]):
            d = self._read(collection, doc_id)
            if _matches(d, filters):
                results.append(d)
        return results

    def get(self, collection, doc_id):
        with self._lock:
            return self._read(collection, doc_id)

    def query(self, collection, filters=(), order_by=None, descending=False, limit=None):
        with self._lock:
            results = self._select(collection, filters)
        if order_by:
            # Firestore drops documents missing the ordered field
            results = [d for d in results if d.get(order_by) is not None]
            results.sort(key=lambda d: d[order_by], reverse=descending)
        if limit:
            results = results[:limit]
        return results

    # -- writes -------------------------------------------------------------

    def _commit(self, ops):
        """Apply ``ops`` all-or-nothing. Caller holds the lock."""
        staged = {}
        for op in ops:
            key = (op.collection, op.doc_id)
            if key not in staged:
                current = self._collections[op.collection].get(op.doc_id)
                staged[key] = (copy.deepcopy(current), copy.deepcopy(current))
            before, current = staged[key]
            if op.kind == OP_CREATE:
                if current is not None:
                    raise DocumentExists(op.collection, op.doc_id)
                current = _resolve(op.data, None)
            elif op.kind == OP_SET:
                current = _resolve(op.data, current if op.merge else None)
            elif op.kind == OP_UPDATE:
                if current is None:
                    raise DocumentNotFound(op.collection, op.doc_id)
                current = _resolve(op.data, current)
            elif op.kind == OP_DELETE:
                current = None
            else:
                raise ValueError(f'Unknown write operation: {op.kind}')
            staged[key] = (before, current)

        changes = []
        for (collection, doc_id), (before, after) in staged.items():
            if after is None:
                self._collections[collection].pop(doc_id, None)
            else:
                self._collections[collection][doc_id] = after
            changes.append((collection, doc_id, before, after))
        return changes

    def _write(self, ops):
        with self._lock:
            changes = self._commit(ops)
        self._dispatch(changes)

    def add(self, collection, data):
        doc_id = uuid.uuid4().hex[:20]
        self._write([WriteOp.create(collection, doc_id, data)])
        return doc_id

    def create(self, collection, doc_id, data):
        self._write([WriteOp.create(collection, doc_id, data)])

    def set(self, collection, doc_id, data, merge=False):
        self._write([WriteOp.set(collection, doc_id, data, merge=merge)])

    def update(self, collection, doc_id, data):
        self._write([WriteOp.update(collection, doc_id, data)])

    def delete(self, collection, doc_id):
        self._write([WriteOp.delete(collection, doc_id)])

    def batch_write(self, ops):
        self._write(list(ops))

    def run_transaction(self, fn):
        with self._lock:
            txn = _MemoryTransaction(self)
            result = fn(txn)
            changes = self._commit(txn.ops)
        self._dispatch(changes)
        return result

    # -- push notifications -------------------------------------------------

    def watch(self, collection, callback, filters=()):
        token = uuid.uuid4().hex
        with self._lock:
            self._watchers[token] = (collection, tuple(filters), callback)

        def unsubscribe():
            with self._lock:
                self._watchers.pop(token, None)

        return unsubscribe

    def _dispatch(self, changes):
        if not changes:
            return
        with self._lock:
            watchers = list(self._watchers.values())
        for collection, filters, callback in watchers:
            delivered = []
            for changed_collection, doc_id, before, after in changes:
                if changed_collection != collection:
                    continue
                old = dict(before, id=doc_id) if before is not None else None
                new = dict(after, id=doc_id) if after is not None else None
                was_in, is_in = _matches(old, filters), _matches(new, filters)
                if is_in:
                    delivered.append(Change(CHANGE_MODIFIED if was_in else CHANGE_ADDED, copy.deepcopy(new)))
                elif was_in:
                    delivered.append(Change(CHANGE_REMOVED, copy.deepcopy(old)))
            if delivered:
                try:
                    callback(delivered)
                except Exception:
                    logger.exception('Watch callback failed for %s', collection)
