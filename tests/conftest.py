import os

# must be in place before config.get_settings() is first called
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_ID"] = "chef"
os.environ["ADMIN_PASSWORD"] = "s3cret"
os.environ["JWT_SECRET"] = "test-signing-secret-0123456789abcdef0123"
os.environ["RATING_POLICY"] = "fallback"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app as app_module  # noqa: E402
import models  # noqa: E402,F401
from auth import create_admin_token  # noqa: E402
from config import get_settings  # noqa: E402
from database import Base, get_db  # noqa: E402
from metadata import PageMetadata  # noqa: E402
from validators import extract_domain  # noqa: E402

# Use StaticPool so the same in-memory database is shared across connections
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeFetcher:
    """Stands in for MetadataFetcher so no test touches the network."""

    def __init__(self):
        self.result = None
        self.error = None
        self.calls = []

    def fetch(self, url):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return PageMetadata(domain=extract_domain(url))


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def client(fetcher):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app_module.app.dependency_overrides[get_db] = override_get_db
    app_module.app.dependency_overrides[app_module.get_fetcher] = lambda: fetcher
    yield TestClient(app_module.app)
    app_module.app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    token = create_admin_token(get_settings())
    return {"Authorization": f"Bearer {token}"}
