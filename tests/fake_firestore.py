"""In-memory stand-in for ``google.cloud.firestore.Client`` used by the service tests."""

import copy
import itertools
import operator


_OPS = {
    "==": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_ids = itertools.count(1)


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocumentReference:
    def __init__(self, store, collection, doc_id):
        self._store = store
        self._collection = collection
        self.id = doc_id

    def get(self):
        return FakeSnapshot(self, self._store.get(self._collection, {}).get(self.id))

    def set(self, data, merge=False):
        docs = self._store.setdefault(self._collection, {})
        if merge and self.id in docs:
            docs[self.id].update(copy.deepcopy(data))
        else:
            docs[self.id] = copy.deepcopy(data)

    def update(self, data):
        docs = self._store.setdefault(self._collection, {})
        if self.id not in docs:
            raise KeyError(self.id)
        docs[self.id].update(copy.deepcopy(data))

    def delete(self):
        self._store.get(self._collection, {}).pop(self.id, None)


class FakeQuery:
    def __init__(self, store, collection, filters=()):
        self._store = store
        self._collection = collection
        self._filters = tuple(filters)

    def where(self, *, filter):
        return FakeQuery(self._store, self._collection, self._filters + (filter,))

    def stream(self):
        docs = self._store.get(self._collection, {})
        for doc_id, data in list(docs.items()):
            if all(self._matches(data, item) for item in self._filters):
                yield FakeSnapshot(FakeDocumentReference(self._store, self._collection, doc_id), data)

    @staticmethod
    def _matches(data, field_filter):
        if field_filter.field_path not in data:
            return False
        value = data[field_filter.field_path]
        try:
            return _OPS[field_filter.op_string](value, field_filter.value)
        except TypeError:
            return False


class FakeCollectionReference(FakeQuery):
    def document(self, doc_id=None):
        return FakeDocumentReference(self._store, self._collection, doc_id or f"auto{next(_ids)}")


class FakeWriteBatch:
    def __init__(self):
        self._ops = []
        self.committed = False

    def delete(self, reference):
        self._ops.append(reference.delete)

    def set(self, reference, data, merge=False):
        self._ops.append(lambda: reference.set(data, merge=merge))

    def commit(self):
        for op in self._ops:
            op()
        self.committed = True


class FakeClient:
    def __init__(self):
        self.store = {}
        self.batches = []

    def collection(self, name):
        return FakeCollectionReference(self.store, name)

    def batch(self):
        batch = FakeWriteBatch()
        self.batches.append(batch)
        return batch

    def docs(self, name):
        return self.store.get(name, {})
