"""
Providers for the generation collaborators.

Routes depend on these so tests can swap in fakes with
app.dependency_overrides.
"""
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adstudio.database import AsyncSessionLocal
from adstudio.services.asset_store import AssetStore, LocalAssetStore
from adstudio.services.fidelity_scorer import FidelityScorer, GeminiFidelityScorer
from adstudio.services.generation_backend import GeminiImageBackend, GenerationBackend


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that must outlive the request's own session."""
    return AsyncSessionLocal


@lru_cache
def get_generation_backend() -> GenerationBackend:
    return GeminiImageBackend()


@lru_cache
def get_fidelity_scorer() -> FidelityScorer:
    return GeminiFidelityScorer()


@lru_cache
def get_asset_store() -> AssetStore:
    return LocalAssetStore()
