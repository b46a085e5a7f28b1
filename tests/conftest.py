import copy
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from electrix.backend.service import (
    AuthFailure,
    AuthSession,
    AuthUser,
    BackendError,
    BackendFactory,
    BackendService,
)
from electrix.main import create_app
from electrix.schemas.auth import Profile
from electrix.utils import format_rut, rut_to_email


PUBLIC_BASE = "http://backend.test/storage/v1/object/public"

# Rows removed together with their parent, like the database's ON DELETE CASCADE
CASCADES = {
    "clients": ("projects", "client_id"),
    "projects": ("housing_units", "project_id"),
}


class FakeWorld:
    """Shared state of the in-memory backend: auth users, tables and stored objects."""

    def __init__(self):
        self.users: Dict[str, dict] = {}
        self.refresh_tokens: Dict[str, str] = {}
        self.tables: Dict[str, List[dict]] = {}
        self.objects: Dict[tuple, bytes] = {}
        self.rpc_calls: List[tuple] = []
        self.calls: List[tuple] = []
        self.failures: Dict[str, BackendError] = {}
        self.ephemeral_clients = 0
        self._clock = datetime(2024, 1, 1)

    def now(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def rows(self, table: str) -> List[dict]:
        return self.tables.setdefault(table, [])

    def add_user(self, rut: str, password: str = "secret1", role: str = "trabajador",
                 full_name: str = "Usuario", is_active: bool = True, with_profile: bool = True) -> dict:
        user_id = uuid.uuid4().hex
        self.users[rut_to_email(rut)] = {"id": user_id, "password": password, "metadata": {"role": role}}
        profile = {
            "id": user_id,
            "rut": format_rut(rut),
            "full_name": full_name,
            "role": role,
            "is_active": is_active,
            "created_at": self.now(),
        }
        if with_profile:
            self.rows("profiles").append(profile)
        return profile

    def add_row(self, table: str, **values) -> dict:
        row = {"id": uuid.uuid4().hex, "created_at": self.now(), **values}
        self.rows(table).append(row)
        return copy.deepcopy(row)

    def find(self, table: str, row_id: str) -> Optional[dict]:
        return next((r for r in self.rows(table) if r["id"] == row_id), None)


class FakeBackend(BackendService):
    def __init__(self, world: FakeWorld):
        self.world = world
        self.session: Optional[AuthSession] = None
        self.listeners: List[Callable] = []

    def _check(self, op: str, target: str = "") -> None:
        self.world.calls.append((op, target))
        error = self.world.failures.get(f"{op}:{target}") or self.world.failures.get(op)
        if error is not None:
            raise error

    def _emit(self, event: str) -> None:
        for listener in list(self.listeners):
            listener(event, self.session)

    def _open_session(self, user_id: str, email: str, refresh_token: Optional[str] = None) -> AuthSession:
        refresh_token = refresh_token or f"rt-{uuid.uuid4().hex}"
        self.world.refresh_tokens[refresh_token] = email
        user = self.world.users[email]
        return AuthSession(
            access_token=f"at-{uuid.uuid4().hex}",
            refresh_token=refresh_token,
            user=AuthUser(id=user_id, email=email, metadata=dict(user["metadata"])),
        )

    # Auth
    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        self._check("sign_in")
        user = self.world.users.get(email)
        if user is None or user["password"] != password:
            raise AuthFailure("Invalid login credentials")
        self.session = self._open_session(user["id"], email)
        self._emit("SIGNED_IN")
        return self.session

    def sign_up(self, email: str, password: str, metadata: Optional[dict] = None) -> AuthUser:
        self._check("sign_up")
        if email in self.world.users:
            raise AuthFailure("User already registered")
        user_id = uuid.uuid4().hex
        self.world.users[email] = {"id": user_id, "password": password, "metadata": dict(metadata or {})}
        return AuthUser(id=user_id, email=email, metadata=dict(metadata or {}))

    def sign_out(self, scope: str = "global") -> None:
        self._check("sign_out", scope)
        self.session = None
        self._emit("SIGNED_OUT")

    def restore_session(self, access_token: str, refresh_token: str) -> AuthSession:
        self._check("restore")
        email = self.world.refresh_tokens.get(refresh_token)
        if email is None or email not in self.world.users:
            raise AuthFailure("Invalid Refresh Token")
        self.session = self._open_session(self.world.users[email]["id"], email, refresh_token)
        self._emit("SIGNED_IN")
        return self.session

    def on_session_change(self, listener):
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    # Records
    def select(self, table, eq=None, order=None, ascending=True):
        self._check("select", table)
        rows = [r for r in self.world.rows(table) if all(r.get(k) == v for k, v in (eq or {}).items())]
        if order:
            rows = sorted(rows, key=lambda r: r.get(order) or "", reverse=not ascending)
        return copy.deepcopy(rows)

    def insert(self, table, values):
        self._check("insert", table)
        if "id" in values and self.world.find(table, values["id"]):
            raise BackendError("duplicate key value violates unique constraint", code="23505")
        row = {"id": uuid.uuid4().hex, "created_at": self.world.now(), **copy.deepcopy(values)}
        self.world.rows(table).append(row)
        return copy.deepcopy(row)

    def update(self, table, values, eq):
        self._check("update", table)
        updated = []
        for row in self.world.rows(table):
            if all(row.get(k) == v for k, v in eq.items()):
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return updated

    def delete(self, table, eq):
        self._check("delete", table)
        doomed = [r for r in self.world.rows(table) if all(r.get(k) == v for k, v in eq.items())]
        self.world.tables[table] = [r for r in self.world.rows(table) if r not in doomed]
        if table in CASCADES:
            child, column = CASCADES[table]
            for row in doomed:
                self.world.tables[child] = [r for r in self.world.rows(child) if r.get(column) != row["id"]]

    def rpc(self, name, args=None):
        self._check("rpc", name)
        self.world.rpc_calls.append((name, dict(args or {})))
        return None

    # Object storage
    def upload(self, bucket, path, content, content_type):
        self._check("upload", bucket)
        self.world.objects[(bucket, path)] = content
        return path

    def public_url(self, bucket, path):
        return f"{PUBLIC_BASE}/{bucket}/{path}"

    def remove(self, bucket, paths):
        self._check("remove", bucket)
        for path in paths:
            self.world.objects.pop((bucket, path), None)


class FakeBackendFactory(BackendFactory):
    def __init__(self, world: FakeWorld):
        self.world = world
        self.created: List[FakeBackend] = []

    def create(self) -> BackendService:
        backend = FakeBackend(self.world)
        self.created.append(backend)
        return backend

    def create_ephemeral(self) -> BackendService:
        self.world.ephemeral_clients += 1
        return FakeBackend(self.world)


@pytest.fixture
def world():
    return FakeWorld()


@pytest.fixture
def factory(world):
    return FakeBackendFactory(world)


@pytest.fixture
def backend(world):
    return FakeBackend(world)


@pytest.fixture
def supervisor(world) -> Profile:
    return Profile(**world.add_user("11.111.111-1", role="supervisor", full_name="Sofía Supervisora"))


@pytest.fixture
def worker(world) -> Profile:
    return Profile(**world.add_user("22.222.222-2", role="trabajador", full_name="Tomás Trabajador"))


@pytest.fixture
def app(factory):
    return create_app(factory)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def login(client):
    def _login(rut: str, password: str = "secret1", **kwargs) -> Any:
        return client.post("/login", data={"rut": rut, "password": password}, **kwargs)

    return _login
