"""Shared fixtures. The database URL must be set before app.database is imported."""
import os
import random
import tempfile
from types import SimpleNamespace

_TMP_DIR = tempfile.mkdtemp(prefix="safemenu-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["SAFEMENU_UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")

import pytest

from app.config import AISettings
from app.database import Base, engine
from app.models import UserProfile


class FakeCompletions:
    """Stands in for AsyncOpenAI().chat.completions."""

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        content = self.replies.pop(0) if self.replies else None
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeOpenAI:
    def __init__(self, replies=None, error=None):
        self.chat = SimpleNamespace(completions=FakeCompletions(replies, error))

    @property
    def calls(self):
        return self.chat.completions.calls


@pytest.fixture
def db_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def ai_settings():
    return AISettings(available=True, api_key="test-key")


@pytest.fixture
def offline_settings():
    return AISettings(available=False)


@pytest.fixture
def peanut_profile():
    return UserProfile.from_raw({"allergies": ["Peanuts"]})


@pytest.fixture
def make_fake_client():
    return FakeOpenAI
