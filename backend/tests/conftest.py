import os

# Settings are read at import time; pin them before the app is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-session-secret-with-more-than-32-bytes"
os.environ["JWT_EXPIRES_IN"] = "3600"
os.environ["SUPABASE_URL"] = "https://storage.test"
os.environ["SUPABASE_SERVICE_KEY"] = "service-key"
os.environ["SUPABASE_BUCKET_NAME"] = "files"
os.environ["SUPABASE_JWT_SECRET"] = "test-federated-secret-with-more-than-32-bytes"

import time
import uuid
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import MagicMock
from urllib.parse import unquote

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.dependencies import get_auth_service, get_file_service
from app.core import security
from app.core.database import Base, get_db
from app.core.federated import ExternalTokenVerifier
from app.core.security import get_password_hash, token_signer
from app.main import app
from app.models.file import File
from app.models.user import AuthProvider, User
from app.services.auth_service import AuthService
from app.services.email_service import EmailService
from app.services.file_service import FileService
from app.services.reset_tokens import ResetTokenLedger
from app.storage.object_store import ObjectStoreClient

# Production uses 12 rounds, too slow for tests
security.pwd_context.update(bcrypt__rounds=4)

FEDERATED_SECRET = os.environ["SUPABASE_JWT_SECRET"]
STORAGE_URL = "https://storage.test"
BUCKET = "files"

# A PNG signature padded to 1234 bytes
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 1226


class FakeStorageBackend:
    """In-memory stand-in for the object store, served through httpx.MockTransport"""

    def __init__(self):
        self.objects = {}
        self.requests = []
        # HTTP method -> status code to answer with instead of the normal behaviour
        self.fail_methods = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        failure = self.fail_methods.get(request.method)
        if failure:
            return httpx.Response(failure, text="simulated storage failure")

        path = unquote(request.url.path)
        object_prefix = f"/storage/v1/object/{BUCKET}/"
        info_prefix = f"/storage/v1/object/info/public/{BUCKET}/"

        if request.method == "HEAD" and path.startswith(info_prefix):
            key = path[len(info_prefix):]
            return httpx.Response(200 if key in self.objects else 404)

        if path.startswith(object_prefix):
            key = path[len(object_prefix):]
            if request.method == "POST":
                if key in self.objects:
                    return httpx.Response(400, json={"error": "Duplicate", "message": "The resource already exists"})
                self.objects[key] = (request.headers.get("content-type"), request.content)
                return httpx.Response(200, json={"Key": f"{BUCKET}/{key}"})
            if request.method == "DELETE":
                if self.objects.pop(key, None) is None:
                    return httpx.Response(404, json={"error": "not_found"})
                return httpx.Response(200, json={"message": "Successfully deleted"})

        return httpx.Response(404, json={"error": "not_found"})


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage_backend():
    return FakeStorageBackend()


@pytest.fixture
def object_store(storage_backend):
    client = ObjectStoreClient(
        STORAGE_URL,
        "service-key",
        BUCKET,
        timeout=5,
        transport=httpx.MockTransport(storage_backend.handler),
    )
    yield client
    client.close()


@pytest.fixture
def ledger():
    return ResetTokenLedger(ttl_seconds=3600)


@pytest.fixture
def mailer():
    return MagicMock(spec=EmailService)


@pytest.fixture
def auth_service(object_store, ledger, mailer):
    return AuthService(
        token_signer,
        ExternalTokenVerifier(FEDERATED_SECRET),
        object_store,
        ledger,
        mailer,
        "http://frontend.test",
    )


@pytest.fixture
def file_service(object_store):
    return FileService(object_store, max_file_size=1024 * 1024)


@pytest.fixture
def client(session_factory, auth_service, file_service):
    """TestClient against the app with the test database and fake collaborators"""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_service] = lambda: auth_service
    app.dependency_overrides[get_file_service] = lambda: file_service
    # No context manager: the lifespan would touch the configured database
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(
    db,
    email: str = "ada@example.com",
    name: str = "Ada",
    password: Optional[str] = "Secret#1",
    provider: AuthProvider = AuthProvider.LOCAL,
) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=get_password_hash(password) if password else None,
        auth_provider=provider,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_file(
    db,
    user: User,
    filename: str = "notes.txt",
    mime_type: str = "text/plain",
    size_bytes: int = 100,
    uploaded_at: Optional[datetime] = None,
    deleted: bool = False,
) -> File:
    file_id = uuid.uuid4()
    record = File(
        id=file_id,
        user_id=user.id,
        filename=filename,
        storage_path=f"{user.email}/{file_id}",
        url=f"{STORAGE_URL}/storage/v1/object/public/{BUCKET}/{user.email}/{file_id}",
        mime_type=mime_type,
        size_bytes=size_bytes,
        uploaded_at=uploaded_at or datetime.now(timezone.utc),
        is_deleted=deleted,
        deleted_at=datetime.now(timezone.utc) if deleted else None,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def federated_token(
    email: Optional[str] = "grace@example.com",
    metadata: Optional[dict] = None,
    secret: str = FEDERATED_SECRET,
    expires_in: int = 3600,
) -> str:
    now = int(time.time())
    claims = {
        "sub": str(uuid.uuid4()),
        "aud": "authenticated",
        "role": "authenticated",
        "iat": now,
        "exp": now + expires_in,
        "user_metadata": metadata or {},
    }
    if email is not None:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
