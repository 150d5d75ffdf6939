import itertools
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Minimal stand-in for the supabase-py query builder."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.action = "select"
        self.payload = None
        self.filters = []
        self.order_by = None
        self.limit_n = None

    def select(self, columns="*", count=None):
        self.action = "select"
        return self

    def insert(self, payload):
        self.action = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.action = "update"
        self.payload = payload
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def _matches(self, row):
        return all(str(row.get(c)) == str(v) for c, v in self.filters)

    def execute(self):
        if self.table in self.db.failing:
            raise self.db.failing[self.table]
        rows = self.db.tables.setdefault(self.table, [])
        self.db.calls.append((self.table, self.action, self.payload, list(self.filters)))

        if self.action == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in items:
                row = {"id": next(self.db.ids), "created_at": datetime.now(timezone.utc).isoformat(), **item}
                rows.append(row)
                inserted.append(dict(row))
            return FakeResponse(inserted)

        matched = [r for r in rows if self._matches(r)]
        if self.action == "update":
            for r in matched:
                r.update(self.payload)
            return FakeResponse([dict(r) for r in matched])
        if self.action == "delete":
            self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResponse([dict(r) for r in matched])

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda r: str(r.get(column) or ""), reverse=desc)
        if self.limit_n is not None:
            matched = matched[:self.limit_n]
        return FakeResponse([dict(r) for r in matched], count=len(matched))


class FakeAuth:
    def __init__(self):
        self.users = {}
        self.signed_out = False

    def _user(self, user_id, email, full_name=None):
        return SimpleNamespace(id=user_id, email=email, user_metadata={"full_name": full_name} if full_name else {})

    def sign_up(self, credentials):
        email = credentials["email"]
        if email in self.users:
            raise Exception("User already registered")
        full_name = credentials.get("options", {}).get("data", {}).get("full_name")
        user = self._user(f"user-{len(self.users) + 1}", email, full_name)
        self.users[email] = (credentials["password"], user)
        return SimpleNamespace(user=user, session=None)

    def sign_in_with_password(self, credentials):
        entry = self.users.get(credentials["email"])
        if not entry or entry[0] != credentials["password"]:
            raise Exception("Invalid login credentials")
        return SimpleNamespace(user=entry[1], session=SimpleNamespace(access_token=f"token-{entry[1].id}"))

    def sign_out(self):
        self.signed_out = True

    def get_user(self, token):
        if token != "valid-token":
            raise Exception("invalid JWT")
        return SimpleNamespace(user=self._user("user-1", "asha@example.com", "Asha Rao"))


class FakeSupabase:
    def __init__(self, tables=None):
        self.tables = tables or {}
        self.failing = {}
        self.calls = []
        self.ids = itertools.count(1)
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def app_module(monkeypatch):
    import app as main_app
    from services.issue_service import new_feed_state

    monkeypatch.setitem(main_app.APP_STATE, "issue_feed", new_feed_state())
    monkeypatch.setattr(main_app, "payments_db", None)
    return main_app


@pytest.fixture
def client(app_module):
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as client:
        yield client


@pytest.fixture
def db_client(app_module, fake_db, monkeypatch):
    monkeypatch.setattr(app_module, "supabase", fake_db)
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as client:
        yield client


def sign_in(client, user_id="user-1", name="Asha Rao"):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["user_name"] = name
        sess["user_email"] = "asha@example.com"


def issue_row(id, status="pending", priority="medium", created_at="2025-01-01T10:00:00+00:00", **extra):
    row = {
        "id": id,
        "title": f"Issue {id}",
        "description": "Something is broken",
        "category": "Maintenance",
        "priority": priority,
        "status": status,
        "submitted_by": "Ravi",
        "unit": "B2",
        "created_at": created_at,
    }
    row.update(extra)
    return row
