import copy
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.database import init_db
from services.storage import MemoryKeyValueStore


class FakeQuery:
    """Mimics the chained postgrest builder: table(...).select(...).eq(...).execute()."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.filters = []
        self.update_values = None
        self.single_row = False

    def select(self, *_):
        return self

    def update(self, values):
        self.update_values = values
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def single(self):
        self.single_row = True
        return self

    def execute(self):
        if self.table in self.client.failing_tables:
            raise RuntimeError(f"{self.table} unavailable")
        rows = [r for r in self.client.tables.get(self.table, [])
                if all(r.get(c) == v for c, v in self.filters)]
        if self.update_values is not None:
            for row in rows:
                row.update(self.update_values)
        if self.single_row:
            if len(rows) != 1:
                raise RuntimeError("JSON object requested, multiple (or no) rows returned")
            return SimpleNamespace(data=rows[0])
        return SimpleNamespace(data=rows)


class FakeAuth:
    def __init__(self, client):
        self.client = client
        self.admin = SimpleNamespace(list_users=self._list_users, sign_out=self._revoke)
        self.listeners = []
        self.current = None

    def _list_users(self):
        if not self.client.admin_api:
            raise RuntimeError("User not allowed")
        return list(self.client.users.values())

    def _revoke(self, jwt):
        if self.client.fail_sign_out:
            raise RuntimeError("network down")
        self.client.revoked.add(jwt)

    def sign_in_with_password(self, credentials):
        user = self.client.users.get(credentials["email"])
        if user is None or self.client.passwords.get(credentials["email"]) != credentials["password"]:
            raise RuntimeError("Invalid login credentials")
        self.current = SimpleNamespace(user=user, access_token=f"token-{user.id}")
        return SimpleNamespace(user=user, session=self.current)

    def sign_up(self, payload):
        if payload["email"] in self.client.users:
            raise RuntimeError("User already registered")
        user = SimpleNamespace(id=f"u-{len(self.client.users) + 1}", email=payload["email"])
        self.client.users[payload["email"]] = user
        self.client.passwords[payload["email"]] = payload["password"]
        self.client.signup_metadata[payload["email"]] = payload["options"]["data"]
        return SimpleNamespace(user=user, session=None)

    def get_user(self, token):
        if token in self.client.revoked:
            raise RuntimeError("session revoked")
        for user in self.client.users.values():
            if token == f"token-{user.id}":
                return SimpleNamespace(user=user)
        raise RuntimeError("invalid JWT")

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        return SimpleNamespace(unsubscribe=lambda: self.listeners.remove(callback))


class FakeSupabase:
    def __init__(self):
        self.users = {}
        self.passwords = {}
        self.signup_metadata = {}
        self.admins = set()
        self.tables = {"profiles": [], "user_roles": []}
        self.failing_tables = set()
        self.rpc_fails = False
        self.admin_api = True
        self.fail_sign_out = False
        self.revoked = set()
        self.auth = FakeAuth(self)

    def fork(self):
        """A second client over the same backend data, with its own auth session."""
        forked = copy.copy(self)
        forked.auth = FakeAuth(forked)
        return forked

    def add_user(self, user_id, email, password="secret", admin=False, **profile):
        user = SimpleNamespace(id=user_id, email=email)
        self.users[email] = user
        self.passwords[email] = password
        if admin:
            self.admins.add(user_id)
        row = {"id": user_id, "plan": "free", "created_at": "2026-01-01T00:00:00"}
        row.update(profile)
        self.tables["profiles"].append(row)
        return user

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        assert name == "has_role"

        def execute():
            if self.rpc_fails:
                raise RuntimeError("rpc failed")
            return SimpleNamespace(data=params["role"] == "admin" and params["user_id"] in self.admins)

        return SimpleNamespace(execute=execute)


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def now():
    return datetime(2026, 10, 19, 12, 0, 0)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
