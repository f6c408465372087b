import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./adstudio-test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("GEMINI_API_KEY", "")

from dataclasses import replace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from adstudio.models.base import Base
from adstudio.models.credit import CreditAccount, LedgerEntry  # noqa: F401
from adstudio.models.generation import Generation  # noqa: F401
from adstudio.models.project import Project, PromptRecord, ReferenceAnalysisRecord  # noqa: F401
from adstudio.models.user import User  # noqa: F401
from adstudio.pricing import price_for
from adstudio.services import generation_service

from fakes import RecordingEnqueuer


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    db_path = tmp_path / "adstudio.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def enqueuer():
    return RecordingEnqueuer()


@pytest.fixture
def three_credit_price(monkeypatch):
    """Price every catalog model at 3 credits."""
    def fake_price_for(model_id, resolution="1K"):
        price = price_for(model_id, resolution)
        return replace(price, credits_required=3) if price else None

    monkeypatch.setattr(generation_service, "price_for", fake_price_for)
