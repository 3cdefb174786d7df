import os

# Avant tout import backend: pas de Redis, pas de SMTP, secrets factices
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-test-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-test-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")

import copy
import itertools
import re
import threading
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

from backend import config
from backend.app import app as fastapi_app
from backend.utils.security import require_user, require_admin


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


# --- Supabase en mémoire ---------------------------------------------------
# Sous-ensemble du query builder PostgREST utilisé par les repositories.
# Chaque execute() est sérialisé par un verrou: une mise à jour filtrée (eq sur la valeur
# attendue) se comporte comme un UPDATE ... WHERE atomique, ce qui permet de tester les
# courses réelles entre threads.

UNIQUE_KEYS = {
    "orders": [("order_number",)],
    "cart_items": [("user_id", "product_id")],
}


class _Query:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.fields = "*"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters: List = []
        self.order_by: Optional[tuple] = None
        self.limit_n: Optional[int] = None
        self.range_: Optional[tuple] = None
        self.count_mode: Optional[str] = None
        self.total: Optional[int] = None

    # opérations
    def select(self, fields: str = "*", count: Optional[str] = None):
        self.fields = fields
        self.count_mode = count
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def update(self, values: Dict[str, Any]):
        self.op, self.payload = "update", values
        return self

    def upsert(self, payload, on_conflict: Optional[str] = None):
        self.op, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filtres
    def eq(self, col, value):
        self.filters.append(lambda r: r.get(col) == value)
        return self

    def neq(self, col, value):
        self.filters.append(lambda r: r.get(col) != value)
        return self

    def in_(self, col, values):
        values = list(values)
        self.filters.append(lambda r: r.get(col) in values)
        return self

    def is_(self, col, value):
        expected = None if value in (None, "null") else value
        self.filters.append(lambda r: r.get(col) is expected)
        return self

    def ilike(self, col, pattern):
        # % et _ au sens SQL, insensible à la casse
        regex = re.compile(
            "".join(".*" if ch == "%" else "." if ch == "_" else re.escape(ch) for ch in pattern),
            re.IGNORECASE | re.DOTALL,
        )
        self.filters.append(lambda r: r.get(col) is not None and regex.fullmatch(str(r.get(col))) is not None)
        return self

    def order(self, col, desc: bool = False):
        self.order_by = (col, desc)
        return self

    def limit(self, n: int):
        self.limit_n = n
        return self

    def range(self, start: int, end: int):
        self.range_ = (start, end)
        return self

    def _matches(self, row) -> bool:
        return all(f(row) for f in self.filters)

    def _project(self, row):
        if self.fields.strip() == "*":
            return copy.deepcopy(row)
        cols = [c.strip() for c in self.fields.split(",") if c.strip()]
        return {c: copy.deepcopy(row.get(c)) for c in cols}

    def execute(self):
        with self.db.lock:
            self.db.calls.append((self.table_name, self.op))
            hook = self.db.failures.pop((self.table_name, self.op), None)
            if hook:
                raise hook
            rows = self.db.tables.setdefault(self.table_name, [])
            handler = getattr(self, f"_exec_{self.op}")
            data = handler(rows)
            return SimpleNamespace(data=data, count=self.total if self.count_mode else None)

    def _exec_select(self, rows):
        found = [r for r in rows if self._matches(r)]
        self.total = len(found)
        if self.order_by:
            col, desc = self.order_by
            found.sort(key=lambda r: (r.get(col) is None, r.get(col) or ""), reverse=desc)
        if self.range_:
            found = found[self.range_[0]:self.range_[1] + 1]
        if self.limit_n is not None:
            found = found[: self.limit_n]
        return [self._project(r) for r in found]

    def _check_unique(self, rows, candidate, ignore=None):
        for cols in UNIQUE_KEYS.get(self.table_name, []):
            for r in rows:
                if r is ignore:
                    continue
                if all(r.get(c) == candidate.get(c) for c in cols):
                    raise APIError({"code": "23505", "message": f"duplicate key {cols}", "details": None, "hint": None})

    def _new_row(self, rows, item):
        row = copy.deepcopy(item)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", self.db.next_timestamp())
        self._check_unique(rows, row)
        rows.append(row)
        return copy.deepcopy(row)

    def _exec_insert(self, rows):
        items = self.payload if isinstance(self.payload, list) else [self.payload]
        return [self._new_row(rows, it) for it in items]

    def _exec_update(self, rows):
        updated = []
        for r in rows:
            if self._matches(r):
                r.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(r))
        return updated

    def _exec_upsert(self, rows):
        items = self.payload if isinstance(self.payload, list) else [self.payload]
        keys = [c.strip() for c in (self.on_conflict or "id").split(",")]
        out = []
        for it in items:
            existing = next((r for r in rows if all(r.get(k) == it.get(k) for k in keys)), None)
            if existing is not None:
                existing.update(copy.deepcopy(it))
                out.append(copy.deepcopy(existing))
            else:
                out.append(self._new_row(rows, it))
        return out

    def _exec_delete(self, rows):
        removed = [r for r in rows if self._matches(r)]
        self.db.tables[self.table_name] = [r for r in rows if not self._matches(r)]
        return [copy.deepcopy(r) for r in removed]


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.lock = threading.RLock()
        self.calls: List[tuple] = []
        self.failures: Dict[tuple, Exception] = {}
        self._clock = itertools.count()
        self._base = datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp()

    def table(self, name: str) -> _Query:
        return _Query(self, name)

    def next_timestamp(self) -> str:
        # Horodatages strictement croissants: tri stable par created_at
        tick = next(self._clock)
        return datetime.fromtimestamp(self._base + tick, tz=timezone.utc).isoformat()

    def fail_next(self, table: str, op: str, exc: Exception) -> None:
        self.failures[(table, op)] = exc

    # helpers de test
    def rows(self, table: str) -> List[Dict[str, Any]]:
        with self.lock:
            return copy.deepcopy(self.tables.get(table, []))

    def row(self, table: str, **match) -> Optional[Dict[str, Any]]:
        for r in self.rows(table):
            if all(r.get(k) == v for k, v in match.items()):
                return r
        return None

    def add_product(self, product_id: str, *, name: str = "Produit", price: float = 10.0, stock: int = 5, status: str = "active"):
        with self.lock:
            row = {"id": product_id, "name": name, "price": price, "stock": stock, "status": status}
            self.tables.setdefault("products", []).append(row)
            return copy.deepcopy(row)

    def add_user(self, user_id: str, *, email: str = "client@example.com", name: str = "Client", membership=None, membership_ref=None):
        with self.lock:
            row = {"id": user_id, "email": email, "name": name, "membership": membership, "membership_ref": membership_ref}
            self.tables.setdefault("users", []).append(row)
            return copy.deepcopy(row)

    def stock(self, product_id: str) -> int:
        return self.row("products", id=product_id)["stock"]


@pytest.fixture(autouse=True)
def fake_db(monkeypatch) -> FakeSupabase:
    """Toutes les lectures/écritures Supabase passent par une base en mémoire."""
    db = FakeSupabase()
    monkeypatch.setattr("backend.infra.supabase_client.get_service_supabase", lambda: db)
    monkeypatch.setattr("backend.infra.supabase_client.get_supabase", lambda: db)
    return db


# --- Stripe factice ----------------------------------------------------------

class FakeStripe:
    def __init__(self):
        self.intents: Dict[str, Dict[str, Any]] = {}
        self.created: List[Dict[str, Any]] = []
        self._ids = itertools.count(1)
        self.error: Optional[Exception] = None

    def create_payment_intent(self, *, amount, currency, metadata, description=None, idempotency_key=None):
        if self.error:
            raise self.error
        intent_id = f"pi_test_{next(self._ids)}"
        intent = {
            "id": intent_id,
            "object": "payment_intent",
            "amount": amount,
            "currency": currency,
            "status": "requires_payment_method",
            "client_secret": f"{intent_id}_secret",
            "metadata": dict(metadata),
            "description": description,
        }
        self.intents[intent_id] = intent
        self.created.append({"idempotency_key": idempotency_key, **copy.deepcopy(intent)})
        return copy.deepcopy(intent)

    def retrieve_payment_intent(self, payment_intent_id):
        if self.error:
            raise self.error
        return copy.deepcopy(self.intents[payment_intent_id])

    def succeed(self, intent_id: str) -> Dict[str, Any]:
        intent = self.intents[intent_id]
        intent.update({"status": "succeeded", "amount_received": intent["amount"]})
        return copy.deepcopy(intent)

    def fail(self, intent_id: str, message: str = "Your card was declined.") -> Dict[str, Any]:
        intent = self.intents[intent_id]
        intent.update({"status": "requires_payment_method", "last_payment_error": {"message": message}})
        return copy.deepcopy(intent)

    def add_intent(self, intent: Dict[str, Any]) -> Dict[str, Any]:
        self.intents[intent["id"]] = copy.deepcopy(intent)
        return copy.deepcopy(intent)


@pytest.fixture
def fake_stripe(monkeypatch) -> FakeStripe:
    stripe_fake = FakeStripe()
    monkeypatch.setattr("backend.payments.stripe_client.create_payment_intent", stripe_fake.create_payment_intent)
    monkeypatch.setattr("backend.payments.stripe_client.retrieve_payment_intent", stripe_fake.retrieve_payment_intent)
    return stripe_fake


def make_event(event_type: str, intent: Dict[str, Any], event_id: str = "evt_test_1") -> Dict[str, Any]:
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": copy.deepcopy(intent)}}


@pytest.fixture
def event_factory():
    return make_event


# --- SMTP factice ------------------------------------------------------------

@pytest.fixture
def sent_emails(monkeypatch) -> List[Dict[str, Any]]:
    outbox: List[Dict[str, Any]] = []

    def _send(to, subject, html, text=None):
        outbox.append({"to": to, "subject": subject, "html": html})

    monkeypatch.setattr("backend.infra.mailer.is_configured", lambda: True)
    monkeypatch.setattr("backend.infra.mailer.send_email", _send)
    return outbox


# --- Application / authentification -------------------------------------------

TEST_USER: Dict[str, Any] = {
    "id": "test-user",
    "email": "test@example.com",
    "role": "user",
    "metadata": {"full_name": "Test User"},
    "token": "fake-token",
}


@pytest.fixture(scope="session")
def app():
    return fastapi_app


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    app.dependency_overrides[require_user] = lambda: dict(TEST_USER)
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)


@pytest.fixture
def authenticated_admin_client(app, client):
    def _override_require_admin():
        return {"id": "admin-user-id", "role": "admin", "email": "admin@example.com"}
    app.dependency_overrides[require_admin] = _override_require_admin
    yield client
    app.dependency_overrides.pop(require_admin, None)


@pytest.fixture
def webhook_secret(monkeypatch) -> str:
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
    return "whsec_test_secret"


SHIPPING_ADDRESS = {
    "fullName": "Jeanne Martin",
    "streetAddress": "12 rue des Lilas",
    "city": "Lyon",
    "postalCode": "69003",
    "phone": "0601020304",
    "email": "jeanne@example.com",
}


@pytest.fixture
def shipping_address() -> Dict[str, str]:
    return dict(SHIPPING_ADDRESS)


@pytest.fixture
def current_user() -> Dict[str, Any]:
    """Utilisateur injecté par _override_require_user."""
    return dict(TEST_USER)
