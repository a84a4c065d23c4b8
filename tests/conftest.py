"""
Shared fixtures: an in-memory SQLite database, repositories bound to it, and
fake extraction/generation services so no test reaches the network.
"""
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.session import get_db
from app.dependencies.services import get_content_extractor, get_generation_service
from app.main import app
from app.services.content_extractor import ExtractionResult
from app.services.repository import AccountRepository, ArticleRepository
from app.services.usage_tracker import QuotaLedger
from app.utils.auth import create_access_token

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeExtractor:
    """Returns canned results per URL; unknown URLs yield `default`."""

    def __init__(self, results=None, default=None):
        self.results = results or {}
        self.default = default or ExtractionResult(content="", requires_subscription=False)
        self.calls = []

    def extract(self, url):
        self.calls.append(url)
        return self.results.get(url, self.default)


class FakeGenerator:
    """Deterministic translation/commentary with configurable output sizes."""

    def __init__(self, translation="t" * 400, insights="i" * 400, error=None):
        self.translation = translation
        self.insights = insights
        self.error = error
        self.translate_calls = []
        self.commentary_calls = []

    def translate(self, text):
        self.translate_calls.append(text)
        if self.error:
            raise self.error
        return self.translation

    def generate_commentary(self, translated_text, style=None):
        self.commentary_calls.append((translated_text, style))
        return self.insights


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def accounts(db_session):
    return AccountRepository(db_session)


@pytest.fixture
def articles(db_session):
    return ArticleRepository(db_session)


@pytest.fixture
def ledger(accounts):
    return QuotaLedger(accounts, clock=lambda: FIXED_NOW)


@pytest.fixture
def trial_user(accounts):
    return accounts.create_account(email="reader@example.com", name="Reader")


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def client(session_factory, fake_extractor, fake_generator):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_content_extractor] = lambda: fake_extractor
    app.dependency_overrides[get_generation_service] = lambda: fake_generator
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}
