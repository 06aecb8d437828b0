"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import io
import json
import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of onsweb.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import httpx  # noqa: E402
import pytest  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy import BigInteger, Engine, create_engine, event  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from onsweb.config import OnsConfig  # noqa: E402
from onsweb.database.engine import get_session  # noqa: E402
from onsweb.database.models import Base, User, UserRole  # noqa: E402
from onsweb.services.identity_bridge import IdentityBridge  # noqa: E402
from onsweb.services.image_cdn import ImageCdn  # noqa: E402
from onsweb.services.media_service import MediaService  # noqa: E402
from onsweb.services.storage import ObjectStorage  # noqa: E402
from onsweb.services.token_service import TokenService  # noqa: E402


# BigInteger → INTEGER so autoincrement works on SQLite.
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


CDN_ENDPOINT = "https://ik.example.com/ons"
TEST_PASSWORD = "Passw0rd!"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every onsweb table.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in async routes and the rate
    limiter).  Foreign keys are enforced so ``ON DELETE`` rules apply.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_fks(dbapi_conn, _record):
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    return engine


def make_user(
    engine: Engine,
    *,
    email: str = "member@example.org",
    name: str = "Test Member",
    role: UserRole = UserRole.MEMBER,
    password: str | None = TEST_PASSWORD,
    is_active: bool = True,
) -> User:
    """Insert a user.  Usable from fixtures and directly inside tests."""
    from onsweb.services.auth_service import hash_password

    with get_session(engine) as session:
        user = User(
            email=email,
            name=name,
            role=role,
            password_hash=hash_password(password) if password else None,
            is_active=is_active,
            email_verified=is_active,
        )
        session.add(user)
        session.flush()
        return user


@pytest.fixture
def member(db_engine) -> User:
    return make_user(db_engine)


@pytest.fixture
def editor(db_engine) -> User:
    return make_user(
        db_engine, email="editor@example.org", name="Test Editor", role=UserRole.EDITOR
    )


@pytest.fixture
def admin(db_engine) -> User:
    return make_user(
        db_engine, email="admin@example.org", name="Test Admin", role=UserRole.ADMIN
    )


@pytest.fixture
def visitor(db_engine) -> User:
    return make_user(
        db_engine, email="visitor@example.org", name="Test Visitor", role=UserRole.VISITOR
    )


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
@pytest.fixture
def token_service() -> TokenService:
    return TokenService(os.environ["JWT_SECRET"])


def make_token(user: User) -> str:
    """Access token signed with the same secret the API verifies with."""
    from onsweb.api.deps import JWT_REFRESH_SECRET, JWT_SECRET

    tokens = TokenService(JWT_SECRET, JWT_REFRESH_SECRET)
    return tokens.generate_token_pair(user.id, user.email, user.role).access_token


def auth_header(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user)}"}


# ---------------------------------------------------------------------------
# Object storage & CDN
# ---------------------------------------------------------------------------
class FakeS3Client:
    """Records objects in memory; mimics the boto3 calls ObjectStorage makes."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}

    def put_object(self, *, Bucket, Key, Body, ContentType):
        self.objects[Key] = (Body, ContentType)

    def delete_object(self, *, Bucket, Key):
        self.objects.pop(Key, None)

    def generate_presigned_url(self, method, *, Params, ExpiresIn):
        return f"https://r2.example.com/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def storage(s3_client) -> ObjectStorage:
    return ObjectStorage(s3_client, "ons-media")


@pytest.fixture
def cdn(storage) -> ImageCdn:
    return ImageCdn(CDN_ENDPOINT, storage)


@pytest.fixture
def media_service(db_engine, storage, cdn) -> MediaService:
    return MediaService(db_engine, storage, cdn)


def png_bytes(size: tuple[int, int] = (64, 48), color: str = "red") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Identity provider
# ---------------------------------------------------------------------------
WORKOS_USER = {
    "id": "user_01HXYZ",
    "email": "Social.User@Example.org",
    "first_name": "Social",
    "last_name": "User",
    "profile_picture_url": "https://cdn.example.org/avatar.png",
}


def _workos_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/user_management/authenticate"):
        body = json.loads(request.content)
        if body.get("code") == "good-code":
            return httpx.Response(200, json={"user": WORKOS_USER})
        return httpx.Response(400, json={"error": "invalid_grant"})
    return httpx.Response(404)


@pytest.fixture
def identity_bridge() -> IdentityBridge:
    return IdentityBridge(
        "sk_test_key",
        "client_test",
        "http://testserver/api/auth/callback",
        base_url="https://workos.test",
        transport=httpx.MockTransport(_workos_handler),
    )


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------
@pytest.fixture
def app_config() -> OnsConfig:
    return OnsConfig(community_name="Test Community", frontend_url="http://frontend.test")


@pytest.fixture
def client(db_engine, storage, cdn, identity_bridge, app_config):
    """TestClient wired to the in-memory DB and fake external services.

    The lifespan is not run, so nothing touches DATABASE_URL.
    """
    from fastapi.testclient import TestClient

    from onsweb.api.deps import (
        get_cdn,
        get_config,
        get_engine,
        get_identity_bridge,
        get_storage,
    )
    from onsweb.api.main import app
    from onsweb.api.rate_limit import RateLimiter, get_rate_limiter

    limiter = RateLimiter(engine=db_engine)
    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: app_config
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_cdn] = lambda: cdn
    app.dependency_overrides[get_identity_bridge] = lambda: identity_bridge
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()
