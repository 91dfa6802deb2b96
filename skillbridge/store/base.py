"""
Entity store adapter contract.

The workflows only need per-document reads and writes, atomic single-field
increments, small atomic batches, transactions (used for compare-and-set on
``status`` and for ledger writes), and push notifications on collection
changes. Documents travel as plain dicts carrying their id under ``'id'``.
"""


class StoreError(Exception):
    pass


class DocumentExists(StoreError):
    def __init__(self, collection, doc_id):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f'{collection}/{doc_id} already exists')


class DocumentNotFound(StoreError):
    def __init__(self, collection, doc_id):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f'{collection}/{doc_id} does not exist')


class StoreUnavailable(StoreError):
    """Transient failure; the operation may be retried."""


class Increment:
    """Field value applied as an atomic numeric increment on write."""

    def __init__(self, amount=1):
        self.amount = amount

    def __repr__(self):
        return f'Increment({self.amount})'

    def __eq__(self, other):
        return isinstance(other, Increment) and other.amount == self.amount


# Write operations accepted by batch_write()
OP_SET = 'set'
OP_UPDATE = 'update'
OP_DELETE = 'delete'
OP_CREATE = 'create'


class WriteOp:
    def __init__(self, kind, collection, doc_id, data=None, merge=False):
        self.kind = kind
        self.collection = collection
        self.doc_id = doc_id
        self.data = data
        self.merge = merge

    @classmethod
    def set(cls, collection, doc_id, data, merge=False):
        return cls(OP_SET, collection, doc_id, data, merge=merge)

    @classmethod
    def update(cls, collection, doc_id, data):
        return cls(OP_UPDATE, collection, doc_id, data)

    @classmethod
    def create(cls, collection, doc_id, data):
        return cls(OP_CREATE, collection, doc_id, data)

    @classmethod
    def delete(cls, collection, doc_id):
        return cls(OP_DELETE, collection, doc_id)


# Change types delivered to watch() callbacks
CHANGE_ADDED = 'ADDED'
CHANGE_MODIFIED = 'MODIFIED'
CHANGE_REMOVED = 'REMOVED'


class Change:
    def __init__(self, type, document):
        self.type = type
        self.document = document

    def __repr__(self):
        return f'Change({self.type}, {self.document.get("id")})'


class Transaction:
    """Reads must happen before writes, as in Firestore transactions."""

    def get(self, collection, doc_id):
        raise NotImplementedError

    def query(self, collection, filters=()):
        raise NotImplementedError

    def create(self, collection, doc_id, data):
        raise NotImplementedError

    def set(self, collection, doc_id, data, merge=False):
        raise NotImplementedError

    def update(self, collection, doc_id, data):
        raise NotImplementedError

    def delete(self, collection, doc_id):
        raise NotImplementedError


class EntityStore:
    """Interface implemented by FirestoreStore and InMemoryStore.

    ``filters`` are ``(field, op, value)`` triples with Firestore operators
    (``==``, ``!=``, ``<``, ``<=``, ``>``, ``>=``, ``in``, ``array_contains``).
    """

    def get(self, collection, doc_id):
        raise NotImplementedError

    def query(self, collection, filters=(), order_by=None, descending=False, limit=None):
        raise NotImplementedError

    def add(self, collection, data):
        raise NotImplementedError

    def create(self, collection, doc_id, data):
        raise NotImplementedError

    def set(self, collection, doc_id, data, merge=False):
        raise NotImplementedError

    def update(self, collection, doc_id, data):
        raise NotImplementedError

    def delete(self, collection, doc_id):
        raise NotImplementedError

    def batch_write(self, ops):
        raise NotImplementedError

    def run_transaction(self, fn):
        """Run ``fn(transaction)`` atomically and return its result.

        ``fn`` may be called more than once on contention, so it must not
        have side effects outside the transaction.
        """
        raise NotImplementedError

    def watch(self, collection, callback, filters=()):
        """Subscribe ``callback(changes)``; returns an unsubscribe function.

        Delivery is at-least-once, so callbacks must be idempotent.
        """
        raise NotImplementedError
