"""In-memory stand-ins for Firestore, Firebase Auth and Stripe used by the test suite."""

import copy
import itertools
from datetime import datetime, timezone
from types import SimpleNamespace

from google.api_core.exceptions import AlreadyExists

_ids = itertools.count(1)


class _Sentinel:
    def __init__(self, name):
        self.name = name

    def __repr__(self):
        return f"<{self.name}>"


SERVER_TIMESTAMP = _Sentinel('SERVER_TIMESTAMP')
DELETE_FIELD = _Sentinel('DELETE_FIELD')


class Increment:
    def __init__(self, value):
        self.value = value


class ArrayUnion:
    def __init__(self, values):
        self.values = list(values)


def transactional(func):
    def wrapper(transaction, *args, **kwargs):
        return func(transaction, *args, **kwargs)

    return wrapper


firestore_module = SimpleNamespace(
    SERVER_TIMESTAMP=SERVER_TIMESTAMP,
    DELETE_FIELD=DELETE_FIELD,
    Increment=Increment,
    ArrayUnion=ArrayUnion,
    transactional=transactional,
    Query=SimpleNamespace(ASCENDING='ASCENDING', DESCENDING='DESCENDING'),
)


def _resolve(current, value):
    if value is SERVER_TIMESTAMP:
        return datetime.now(timezone.utc)
    if isinstance(value, Increment):
        base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
        return base + value.value
    if isinstance(value, ArrayUnion):
        existing = list(current) if isinstance(current, list) else []
        return existing + [item for item in value.values if item not in existing]
    if isinstance(value, dict):
        return {k: _resolve(None, v) for k, v in value.items() if v is not DELETE_FIELD}
    if isinstance(value, list):
        return [_resolve(None, v) for v in value]
    return copy.deepcopy(value)


def _apply(target, updates, merge_nested):
    for key, value in updates.items():
        if value is DELETE_FIELD:
            target.pop(key, None)
        elif merge_nested and isinstance(value, dict) and isinstance(target.get(key), dict):
            _apply(target[key], value, merge_nested)
        else:
            target[key] = _resolve(target.get(key), value)


class FakeNotFound(Exception):
    pass


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = copy.deepcopy(data) if data is not None else None

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None

    def get(self, field_name):
        return (self._data or {}).get(field_name)


class FakeDocumentRef:
    def __init__(self, db, path):
        self._db = db
        self.path = path
        self.id = path.rsplit('/', 1)[-1]

    def get(self, transaction=None):
        return FakeSnapshot(self, self._db.store.get(self.path))

    def set(self, data, merge=False):
        current = self._db.store.get(self.path)
        if merge and current is not None:
            _apply(current, data, merge_nested=True)
        else:
            fresh = {}
            _apply(fresh, data, merge_nested=False)
            self._db.store[self.path] = fresh
        self._db.writes.append(('set', self.path))

    def create(self, data):
        if self.path in self._db.store:
            raise AlreadyExists(f"Document already exists: {self.path}")
        self.set(data)

    def update(self, data):
        current = self._db.store.get(self.path)
        if current is None:
            raise FakeNotFound(f"No document to update: {self.path}")
        for key, value in data.items():
            if '.' in key:
                head, tail = key.split('.', 1)
                nested = current.setdefault(head, {})
                _apply(nested, {tail: value}, merge_nested=False)
            else:
                _apply(current, {key: value}, merge_nested=False)
        self._db.writes.append(('update', self.path))

    def delete(self):
        self._db.store.pop(self.path, None)
        self._db.writes.append(('delete', self.path))

    def collection(self, name):
        return FakeCollection(self._db, f"{self.path}/{name}")


_OPS = {
    '==': lambda a, b: a == b,
    '!=': lambda a, b: a != b,
    '<': lambda a, b: a is not None and a < b,
    '<=': lambda a, b: a is not None and a <= b,
    '>': lambda a, b: a is not None and a > b,
    '>=': lambda a, b: a is not None and a >= b,
    'in': lambda a, b: a in b,
    'array_contains': lambda a, b: isinstance(a, list) and b in a,
}


class FakeQuery:
    def __init__(self, db, path, filters=(), order=None, limit_count=None):
        self._db = db
        self._path = path
        self._filters = list(filters)
        self._order = order
        self._limit = limit_count

    def where(self, *args, **kwargs):
        if 'filter' in kwargs:
            field_filter = kwargs['filter']
            condition = (field_filter.field_path, field_filter.op_string, field_filter.value)
        else:
            condition = tuple(args)
        return FakeQuery(self._db, self._path, self._filters + [condition], self._order, self._limit)

    def order_by(self, field_name, direction='ASCENDING'):
        return FakeQuery(self._db, self._path, self._filters, (field_name, direction), self._limit)

    def limit(self, count):
        return FakeQuery(self._db, self._path, self._filters, self._order, count)

    def _matches(self, data):
        for field_name, op, value in self._filters:
            try:
                if not _OPS[op](data.get(field_name), value):
                    return False
            except TypeError:
                return False
        return True

    def stream(self):
        prefix = self._path + '/'
        docs = []
        for path, data in list(self._db.store.items()):
            if not path.startswith(prefix) or '/' in path[len(prefix):]:
                continue
            if self._matches(data):
                docs.append(FakeSnapshot(FakeDocumentRef(self._db, path), data))
        if self._order:
            field_name, direction = self._order
            docs.sort(key=lambda snap: (snap.to_dict().get(field_name) is None, snap.to_dict().get(field_name)),
                      reverse=direction == 'DESCENDING')
        if self._limit is not None:
            docs = docs[:self._limit]
        return iter(docs)

    def get(self):
        return list(self.stream())

    def count(self):
        total = len(list(self.stream()))
        return SimpleNamespace(get=lambda: [[SimpleNamespace(value=total)]])


class FakeCollection(FakeQuery):
    def __init__(self, db, path):
        super().__init__(db, path)

    def document(self, doc_id=None):
        return FakeDocumentRef(self._db, f"{self._path}/{doc_id or f'auto{next(_ids)}'}")

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return datetime.now(timezone.utc), ref


class FakeBatch:
    def __init__(self, db):
        self._db = db
        self._ops = []
        self._creates = []

    def set(self, ref, data, merge=False):
        self._ops.append(lambda: ref.set(data, merge=merge))

    def create(self, ref, data):
        self._creates.append(ref.path)
        self._ops.append(lambda: ref.create(data))

    def update(self, ref, data):
        self._ops.append(lambda: ref.update(data))

    def delete(self, ref):
        self._ops.append(ref.delete)

    def commit(self):
        for path in self._creates:
            if path in self._db.store:
                raise AlreadyExists(f"Document already exists: {path}")
        for op in self._ops:
            op()
        self._db.commits += 1


class FakeFirestore:
    def __init__(self):
        self.store = {}
        self.writes = []
        self.commits = 0
        self.transactions = 0

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeBatch(self)

    def transaction(self):
        self.transactions += 1
        return _ImmediateTransaction(self)

    def seed(self, path, data):
        self.store[path] = copy.deepcopy(data)

    def data(self, path):
        return copy.deepcopy(self.store.get(path))

    def paths(self, collection_path):
        prefix = collection_path + '/'
        return sorted(p for p in self.store if p.startswith(prefix) and '/' not in p[len(prefix):])


class _ImmediateTransaction:
    """Writes apply as soon as they are issued; the transactional decorator is a pass-through."""

    def __init__(self, db):
        self._db = db

    def set(self, ref, data, merge=False):
        ref.set(data, merge=merge)

    def create(self, ref, data):
        ref.create(data)

    def update(self, ref, data):
        ref.update(data)

    def delete(self, ref):
        ref.delete()


class UserNotFoundError(Exception):
    pass


class FakeAuth:
    UserNotFoundError = UserNotFoundError

    def __init__(self, users=None):
        self.users = dict(users or {})
        self.created = []
        self.revoked = []
        self.id_tokens = {}
        self.session_cookies = {}

    def verify_id_token(self, token):
        if token not in self.id_tokens:
            raise ValueError('invalid id token')
        return dict(self.id_tokens[token])

    def create_session_cookie(self, id_token, expires_in):
        cookie = f"cookie-{id_token}"
        self.session_cookies[cookie] = dict(self.id_tokens[id_token], sub=self.id_tokens[id_token]['uid'])
        return cookie

    def verify_session_cookie(self, cookie, check_revoked=False):
        if cookie not in self.session_cookies:
            raise ValueError('invalid session cookie')
        return dict(self.session_cookies[cookie])

    def get_user(self, uid):
        if uid not in self.users:
            raise UserNotFoundError(uid)
        return self.users[uid]

    def get_user_by_email(self, email):
        for user in self.users.values():
            if user.email == email:
                return user
        raise UserNotFoundError(email)

    def create_user(self, email, password, display_name=None, email_verified=False):
        user = SimpleNamespace(uid=f"guest-uid-{len(self.created) + 1}", email=email, display_name=display_name)
        self.users[user.uid] = user
        self.created.append({'email': email, 'password': password, 'display_name': display_name})
        return user

    def revoke_refresh_tokens(self, uid):
        self.revoked.append(uid)


def auth_user(uid, email, display_name=None):
    return SimpleNamespace(uid=uid, email=email, display_name=display_name)


class StripeError(Exception):
    pass


class SignatureVerificationError(StripeError):
    pass


class APIConnectionError(StripeError):
    pass


class RateLimitError(StripeError):
    pass


class APIError(StripeError):
    pass


class InvalidRequestError(StripeError):
    pass


class StripeObject(dict):
    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError as exc:
            raise AttributeError(name) from exc


class _Recorder:
    def __init__(self, name, calls, handlers):
        self._name = name
        self._calls = calls
        self._handlers = handlers

    def __getattr__(self, method):
        key = f"{self._name}.{method}"

        def _call(*args, **kwargs):
            self._calls.append((key, args, kwargs))
            handler = self._handlers.get(key)
            if handler is None:
                return StripeObject(id=f"{method}_{len(self._calls)}")
            if isinstance(handler, Exception):
                raise handler
            return handler(*args, **kwargs) if callable(handler) else handler

        return _call


class FakeStripe:
    """Records every ``stripe.<Resource>.<method>`` call; ``handlers`` maps ``'Resource.method'`` to a result."""

    error = SimpleNamespace(
        StripeError=StripeError,
        SignatureVerificationError=SignatureVerificationError,
        APIConnectionError=APIConnectionError,
        RateLimitError=RateLimitError,
        APIError=APIError,
        InvalidRequestError=InvalidRequestError,
    )

    def __init__(self, handlers=None):
        self.calls = []
        self.handlers = dict(handlers or {})
        for resource in ('Product', 'Price', 'Account', 'OAuth', 'Customer', 'Balance', 'Webhook'):
            setattr(self, resource, _Recorder(resource, self.calls, self.handlers))
        self.checkout = SimpleNamespace(Session=_Recorder('checkout.Session', self.calls, self.handlers))

    def called(self, key):
        return [call for call in self.calls if call[0] == key]
