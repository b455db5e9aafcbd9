import asyncio
import os
import sys
from datetime import UTC, datetime, timedelta
from types import ModuleType

import fastapi.dependencies.utils as fastapi_deps_utils
import fastapi.routing as fastapi_routing
import httpx
import jwt
import pytest
import starlette.concurrency as starlette_concurrency
import starlette.routing as starlette_routing
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import DeclarativeBase, sessionmaker


async def _patched_run_in_threadpool(func, *args, **kwargs):
    """Run inline in tests to avoid cross-thread sqlite/session deadlocks."""
    return func(*args, **kwargs)


starlette_concurrency.run_in_threadpool = _patched_run_in_threadpool
starlette_routing.run_in_threadpool = _patched_run_in_threadpool
fastapi_routing.run_in_threadpool = _patched_run_in_threadpool
fastapi_deps_utils.run_in_threadpool = _patched_run_in_threadpool


class SyncASGIClient:
    def __init__(self, app):
        self._app = app

    async def _request(self, method: str, url: str, **kwargs):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=self._app, raise_app_exceptions=False),
            base_url="http://testserver",
        ) as client:
            return await client.request(method, url, **kwargs)

    def request(self, method: str, url: str, **kwargs):
        return asyncio.run(self._request(method, url, **kwargs))

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def close(self) -> None:
        return None


# Create a test engine BEFORE any app imports
_test_engine = create_engine(
    "sqlite+pysqlite:///file:dealer_provisioning_test?mode=memory&cache=shared",
    connect_args={"check_same_thread": False, "uri": True},
)


class TestBase(DeclarativeBase):
    __test__ = False


_TestSessionLocal = sessionmaker(bind=_test_engine, autoflush=False, autocommit=False)

mock_db_module = ModuleType("app.db")
mock_db_module.Base = TestBase  # type: ignore[attr-defined]
mock_db_module.SessionLocal = _TestSessionLocal  # type: ignore[attr-defined]
mock_db_module.get_engine = lambda: _test_engine  # type: ignore[attr-defined]

# Also mock app.config to prevent .env loading
mock_config_module = ModuleType("app.config")


class MockSettings:
    database_url = "sqlite+pysqlite:///:memory:"
    db_pool_size = 5
    db_max_overflow = 10
    db_pool_timeout = 30
    db_pool_recycle = 1800
    brand_name = "The Das Board"
    app_url = "http://testserver"
    record_store_backend = "sql"
    identity_backend = "local"
    notifier_backend = "disabled"
    smtp_host = "localhost"
    smtp_port = 587
    smtp_username = None
    smtp_password = None
    smtp_use_tls = True
    smtp_use_ssl = False
    smtp_from_email = "noreply@example.com"
    smtp_from_name = None
    supabase_url = None
    supabase_secret_key = None
    supabase_service_role_key = None
    jwt_secret = "test-secret"
    jwt_algorithm = "HS256"
    lookup_retries = 1
    lookup_retry_delay_seconds = 0.0
    log_level = "WARNING"
    log_json = False
    testing = True


mock_config_module.settings = MockSettings()  # type: ignore[attr-defined]
mock_config_module.Settings = MockSettings  # type: ignore[attr-defined]

# Insert mocks before any app imports
sys.modules["app.config"] = mock_config_module
sys.modules["app.db"] = mock_db_module

os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"

# Now import the models - they'll use our mocked db module
from app.models.auth_identity import AuthIdentity
from app.models.dealership import Dealership
from app.models.profile import Profile
from app.models.signup_request import SignupRequest
from app.services.identity_provider import ALREADY_REGISTERED_MESSAGE, IdentityUser, SignUpResult
from app.services.notification_service import NotificationError
from app.services.provisioning_service import ProvisioningService
from app.services.record_store import SqlRecordStore, StoreError, StoreResult

TestBase.metadata.create_all(_test_engine)

Base = TestBase


@pytest.fixture(scope="session")
def engine():
    return _test_engine


@pytest.fixture()
def db_session(engine):
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _clean_tables(engine):
    """Every store call commits, so wipe rows after each test."""
    yield
    with engine.begin() as conn:
        for model in (AuthIdentity, SignupRequest, Profile, Dealership):
            conn.execute(delete(model))


# ============ Collaborator doubles ============


class FakeIdentityProvider:
    """In-memory identity provider; ``fail_with`` makes every sign-up fail with that message."""

    def __init__(self):
        self.accounts: dict[str, str] = {}
        self.calls: list[dict] = []
        self.fail_with: str | None = None
        self._next = 0

    def register(self, email: str, user_id: str) -> None:
        self.accounts[email.lower()] = user_id

    def sign_up(self, email, password, metadata):
        self.calls.append({"email": email, "password": password, "metadata": dict(metadata)})
        if self.fail_with:
            return SignUpResult(error=self.fail_with)
        if email.lower() in self.accounts:
            return SignUpResult(error=ALREADY_REGISTERED_MESSAGE, already_registered=True)
        self._next += 1
        user_id = f"user-{self._next:04d}"
        self.accounts[email.lower()] = user_id
        return SignUpResult(user=IdentityUser(id=user_id, email=email, metadata=dict(metadata)))


class RecordingNotifier:
    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    def send_temp_password_email(self, name, email, temp_password, role, schema_name=None):
        if self.fail:
            raise NotificationError("smtp down")
        self.sent.append(
            {"name": name, "email": email, "temp_password": temp_password, "role": role, "schema_name": schema_name}
        )


class FlakyStore:
    """Wraps a real store; scripted failures are keyed by ``(operation, table)``.

    ``fail[(op, table)] = n`` fails the next ``n`` matching calls (``-1`` fails forever).
    """

    def __init__(self, inner):
        self.inner = inner
        self.fail: dict[tuple[str, str], int] = {}
        self.calls: list[tuple[str, str]] = []

    def _should_fail(self, op: str, table: str) -> bool:
        self.calls.append((op, table))
        remaining = self.fail.get((op, table), 0)
        if remaining == 0:
            return False
        if remaining > 0:
            self.fail[(op, table)] = remaining - 1
        return True

    def select(self, table, query=None):
        if self._should_fail("select", table):
            return StoreResult(error=StoreError("connection reset", code="timeout"))
        return self.inner.select(table, query)

    def insert(self, table, row):
        if self._should_fail("insert", table):
            return StoreResult(error=StoreError("insert rejected", code="conflict"))
        return self.inner.insert(table, row)

    def update(self, table, patch, filters):
        if self._should_fail("update", table):
            return StoreResult(error=StoreError("update rejected"))
        return self.inner.update(table, patch, filters)

    def delete(self, table, filters):
        if self._should_fail("delete", table):
            return StoreResult(error=StoreError("delete rejected"))
        return self.inner.delete(table, filters)


@pytest.fixture()
def store(db_session):
    return FlakyStore(SqlRecordStore(db_session))


@pytest.fixture()
def identity():
    return FakeIdentityProvider()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def clock():
    """Epoch-millis clock that advances one second per reading."""
    state = {"now": 1_700_000_000_000}

    def _tick() -> int:
        state["now"] += 1000
        return state["now"]

    return _tick


@pytest.fixture()
def provisioning(store, identity, notifier, clock):
    return ProvisioningService(store, identity, notifier, clock=clock, lookup_retries=1, retry_delay=0)


# ============ FastAPI Test Client Fixtures ============


@pytest.fixture()
def client(db_session):
    """Create a test client with database dependency override."""
    from app.api.deps import get_db
    from app.main import app

    def override_get_db():
        return db_session

    app.dependency_overrides[get_db] = override_get_db
    test_client = SyncASGIClient(app)
    try:
        yield test_client
    finally:
        test_client.close()
        app.dependency_overrides.clear()


def _create_access_token(user_id: str, role: str | None = "master_admin", expires_minutes: int = 15) -> str:
    """Create a JWT access token for testing."""
    secret = os.getenv("JWT_SECRET", "test-secret")
    algorithm = os.getenv("JWT_ALGORITHM", "HS256")
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "email": f"{user_id}@example.com",
        "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
        "iat": int(now.timestamp()),
    }
    if role:
        payload["role"] = role
    return str(jwt.encode(payload, secret, algorithm=algorithm))


@pytest.fixture()
def admin_headers():
    return {"Authorization": f"Bearer {_create_access_token('admin-1')}"}


@pytest.fixture()
def user_headers():
    return {"Authorization": f"Bearer {_create_access_token('dealer-1', role='single_dealer_admin')}"}
