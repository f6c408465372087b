"""
Studio generation API routes.

POST /api/studio/generate runs one metered generation request.
GET /api/studio/generations lists the caller's generations.
"""
import asyncio
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adstudio.database import get_db
from adstudio.dependencies.auth import TokenPayload, get_current_user
from adstudio.dependencies.generation import (
    get_asset_store,
    get_fidelity_scorer,
    get_generation_backend,
    get_session_factory,
)
from adstudio.errors import StudioError
from adstudio.logging_config import get_logger
from adstudio.models.generation import Generation
from adstudio.services.asset_store import AssetStore
from adstudio.services.compensation import CompensationService
from adstudio.services.fidelity_scorer import FidelityScorer
from adstudio.services.generation_backend import GenerationBackend
from adstudio.services.generation_service import (
    GenerationCoordinator,
    GenerationOutcome,
    serialize_generation,
)


router = APIRouter(prefix="/api/studio", tags=["generate"])

# Strong references to running requests; the event loop only keeps weak ones
_inflight: set[asyncio.Task] = set()


async def run_generation(
    user_id: str,
    payload: Any,
    session_factory: async_sessionmaker[AsyncSession],
    backend: GenerationBackend,
    scorer: FidelityScorer,
    store: AssetStore,
) -> GenerationOutcome:
    """Run the coordinator with a session it owns for its whole lifetime."""
    async with session_factory() as db:
        coordinator = GenerationCoordinator(
            db,
            backend,
            scorer,
            store,
            compensation=CompensationService(session_factory=session_factory),
        )
        return await coordinator.handle(user_id, payload)


def _finish_generation(task: asyncio.Task) -> None:
    """Drop the task and retrieve its outcome even if nobody awaited it."""
    _inflight.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None and not isinstance(exc, StudioError):
        get_logger().error("generation_task_failed", error=repr(exc))


@router.post("/generate")
async def generate(
    request: Request,
    current_user: TokenPayload = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    backend: GenerationBackend = Depends(get_generation_backend),
    scorer: FidelityScorer = Depends(get_fidelity_scorer),
    store: AssetStore = Depends(get_asset_store),
):
    """
    Generate one image for a stored prompt.

    The work runs in its own task behind asyncio.shield: a client
    disconnect stops waiting for the result but never interrupts a
    reservation, its refund, or the final write.

    Returns:
        200 with the generation, balanceAfter and creditsUsed. Errors are
        JSON {"error": ...} with 400/401/402/404/500.
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    task = asyncio.create_task(
        run_generation(current_user.sub, payload, session_factory, backend, scorer, store)
    )
    _inflight.add(task)
    task.add_done_callback(_finish_generation)

    outcome = await asyncio.shield(task)
    return outcome.to_payload()


@router.get("/generations")
async def list_generations(
    project_id: str | None = Query(default=None, alias="projectId"),
    limit: int = Query(default=30, ge=1, le=100),
    current_user: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's generations, most recent first."""
    stmt = select(Generation).where(Generation.user_id == current_user.sub)
    if project_id:
        stmt = stmt.where(Generation.project_id == project_id)
    stmt = stmt.order_by(Generation.created_at.desc()).limit(limit)

    result = await db.execute(stmt)
    return {
        "generations": [serialize_generation(g) for g in result.scalars().all()],
    }
