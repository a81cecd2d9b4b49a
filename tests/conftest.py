import os
import tempfile

# Configure the app before it is imported anywhere
os.environ["CLERK_JWT_KEY"] = "test-signing-secret"
os.environ["CLERK_JWT_ALGORITHM"] = "HS256"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOCAL_UPLOAD_DIR"] = tempfile.mkdtemp(prefix="adlume-uploads-")
os.environ["PROVIDER_RETRY_BASE_DELAY"] = "0"
os.environ.pop("REDIS_URL", None)

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app, get_image_service, get_video_service, get_speech_service, get_storage
from app.models.user import User
from app.services.redis_service import RedisService, get_credit_cache
from app.services.storage_service import LocalStorage


class FakeRedis:
    """Just enough of the redis client for the credit cache."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def ping(self):
        return True

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, key):
        self.store.pop(key, None)
        self.ttls.pop(key, None)
        return 1


class FakeImageService:
    def __init__(self, b64="aGVsbG8=", errors=None):
        self.b64 = b64
        self.errors = list(errors or [])
        self.calls = []

    async def _answer(self, call):
        self.calls.append(call)
        if self.errors:
            raise self.errors.pop(0)
        return self.b64

    async def generate(self, prompt, size, output_format, background, quality):
        return await self._answer(("generate", prompt, size, output_format, background, quality))

    async def edit(self, prompt, image, mask, size, background):
        return await self._answer(("edit", prompt, image, mask, size, background))


class FakeVideoService:
    def __init__(self, url="https://replicate.delivery/abc/video.mp4", errors=None):
        self.url = url
        self.errors = list(errors or [])
        self.inputs = []

    async def generate(self, model_input):
        self.inputs.append(model_input)
        if self.errors:
            raise self.errors.pop(0)
        return self.url


class FakeSpeechService:
    def __init__(self, audio=b"ID3-fake-mp3", errors=None):
        self.audio = audio
        self.errors = list(errors or [])
        self.calls = []

    async def synthesize(self, text, voice=None, model=None):
        self.calls.append((text, voice, model))
        if self.errors:
            raise self.errors.pop(0)
        return self.audio


def make_token(user_id="user_123", name="Test User", email=None, **claims):
    payload = {"sub": user_id, "name": name, **claims}
    if email:
        payload["email"] = email
    return jwt.encode(payload, os.environ["CLERK_JWT_KEY"], algorithm="HS256")


def auth_headers(user_id="user_123", **kwargs):
    return {"Authorization": f"Bearer {make_token(user_id, **kwargs)}"}


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
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def seed(session_factory):
    """Insert rows in their own committed session and return them detached."""
    def _seed(*objects):
        db = session_factory()
        try:
            db.add_all(objects)
            db.commit()
            return objects[0] if len(objects) == 1 else objects
        finally:
            db.close()
    return _seed


@pytest.fixture
def fetch(session_factory):
    def _fetch(model, ident):
        db = session_factory()
        try:
            return db.get(model, ident)
        finally:
            db.close()
    return _fetch


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "uploads"))


@pytest.fixture
def credit_cache():
    return RedisService(client=FakeRedis())


@pytest.fixture
def image_service():
    return FakeImageService()


@pytest.fixture
def video_service():
    return FakeVideoService()


@pytest.fixture
def speech_service():
    return FakeSpeechService()


@pytest.fixture
def client(engine, storage, credit_cache, image_service, video_service, speech_service):
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_credit_cache] = lambda: credit_cache
    app.dependency_overrides[get_image_service] = lambda: image_service
    app.dependency_overrides[get_video_service] = lambda: video_service
    app.dependency_overrides[get_speech_service] = lambda: speech_service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def user(seed):
    return seed(User(id="user_123", name="Test User", email="test@example.com", credits=100))
