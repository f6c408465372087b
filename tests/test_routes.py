import asyncio
import gc

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from adstudio.config import settings
from adstudio.database import get_db
from adstudio.dependencies.generation import (
    get_asset_store,
    get_fidelity_scorer,
    get_generation_backend,
    get_session_factory,
)
from adstudio.errors import GENERIC_GENERATION_FAILURE, UpstreamGenerationError
from adstudio.main import app
from adstudio.routes import generate as generate_routes
from adstudio.services.jwt_service import JWTService

from fakes import FakeBackend, FakeScorer, FakeStore, generate_payload, seed_studio


@pytest_asyncio.fixture
async def studio(session_factory):
    """App wired to the test database and fake collaborators."""
    backend = FakeBackend()
    store = FakeStore()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_generation_backend] = lambda: backend
    app.dependency_overrides[get_fidelity_scorer] = lambda: FakeScorer([88])
    app.dependency_overrides[get_asset_store] = lambda: store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, backend

    app.dependency_overrides.clear()


def _auth(user_id):
    token = JWTService().create_token(user_id, f"{user_id}@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
async def test_generate_returns_generation_and_balance(studio, session_factory):
    client, backend = studio
    seed = await seed_studio(session_factory, balance=10)

    response = await client.post(
        "/api/studio/generate", json=generate_payload(seed), headers=_auth(seed["user_id"]),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["balanceAfter"] == 9
    assert body["creditsUsed"] == 1
    assert body["message"] == "Image generation completed."
    assert body["generation"]["projectId"] == seed["project_id"]
    assert body["generation"]["textFidelityScore"] == 88
    assert body["generation"]["sellKrw"] == 100
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_generate_requires_login(studio, session_factory):
    client, _ = studio
    seed = await seed_studio(session_factory, balance=10)

    response = await client.post("/api/studio/generate", json=generate_payload(seed))

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.json() == {"error": "Login required."}


@pytest.mark.asyncio
async def test_generate_rejects_bad_token(studio):
    client, _ = studio

    response = await client.post(
        "/api/studio/generate", json={}, headers={"Authorization": "Bearer not-a-token"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_generate_without_credits_is_402(studio, session_factory):
    client, backend = studio
    seed = await seed_studio(session_factory, balance=0)

    response = await client.post(
        "/api/studio/generate", json=generate_payload(seed), headers=_auth(seed["user_id"]),
    )

    assert response.status_code == 402
    body = response.json()
    assert body["code"] == "INSUFFICIENT_CREDIT"
    assert body["balance"] == 0
    assert body["requiredCredits"] == 1
    assert backend.calls == []


@pytest.mark.asyncio
async def test_generate_validation_error_is_400(studio, session_factory):
    client, _ = studio
    seed = await seed_studio(session_factory, balance=10)

    response = await client.post(
        "/api/studio/generate",
        json=generate_payload(seed, textMode="loud"),
        headers=_auth(seed["user_id"]),
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid generate request. (textMode")


@pytest.mark.asyncio
async def test_generate_non_json_body_is_400(studio, session_factory):
    client, _ = studio
    seed = await seed_studio(session_factory, balance=10)

    response = await client.post(
        "/api/studio/generate", content=b"not json", headers=_auth(seed["user_id"]),
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_generate_upstream_failure_is_500_and_refunded(studio, session_factory):
    client, backend = studio
    backend.fail_all = True
    seed = await seed_studio(session_factory, balance=10)

    response = await client.post(
        "/api/studio/generate", json=generate_payload(seed), headers=_auth(seed["user_id"]),
    )

    assert response.status_code == 500
    assert response.json() == {"error": GENERIC_GENERATION_FAILURE}

    credits = await client.get("/api/studio/credits", headers=_auth(seed["user_id"]))
    assert credits.json()["globalBalance"] == 10


@pytest.mark.asyncio
async def test_generate_unknown_project_is_404(studio, session_factory):
    client, _ = studio
    seed = await seed_studio(session_factory, balance=10)

    response = await client.post(
        "/api/studio/generate",
        json=generate_payload(seed, projectId="nope"),
        headers=_auth(seed["user_id"]),
    )

    assert response.status_code == 404
    assert response.json() == {"error": "Project not found."}


@pytest.mark.asyncio
async def test_list_generations_is_scoped_to_caller(studio, session_factory):
    client, _ = studio
    seed = await seed_studio(session_factory, balance=10)
    other = await seed_studio(session_factory, balance=10)
    await client.post("/api/studio/generate", json=generate_payload(seed), headers=_auth(seed["user_id"]))

    mine = await client.get(
        "/api/studio/generations", params={"projectId": seed["project_id"]}, headers=_auth(seed["user_id"]),
    )
    theirs = await client.get("/api/studio/generations", headers=_auth(other["user_id"]))

    assert len(mine.json()["generations"]) == 1
    assert theirs.json()["generations"] == []


@pytest.mark.asyncio
async def test_get_credits(studio, session_factory):
    client, _ = studio
    seed = await seed_studio(session_factory, balance=10)

    response = await client.get("/api/studio/credits", headers=_auth(seed["user_id"]))

    assert response.status_code == 200
    body = response.json()
    assert body["globalBalance"] == 10
    assert body["bucketId"] == settings.UNIFIED_CREDIT_BUCKET_ID
    assert body["creditWonUnit"] == 100
    assert "imagen-4.0-fast-generate-001" in body["supportedModelIds"]
    assert all(model["balance"] == 10 for model in body["models"])
    assert [(e["reason"], e["delta"]) for e in body["ledger"]] == [("TOPUP", 10)]


@pytest.mark.asyncio
async def test_dev_topup_is_disabled_by_default(studio, session_factory):
    client, _ = studio
    seed = await seed_studio(session_factory, balance=0)

    response = await client.post(
        "/api/studio/credits/dev-topup", json={"amount": 5}, headers=_auth(seed["user_id"]),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_dev_topup_when_enabled(studio, session_factory, monkeypatch):
    client, _ = studio
    monkeypatch.setattr(settings, "ENABLE_DEV_TOPUP", True)
    monkeypatch.setattr(settings, "ENVIRONMENT", "development")
    seed = await seed_studio(session_factory, balance=0)

    response = await client.post(
        "/api/studio/credits/dev-topup", json={"amount": 5}, headers=_auth(seed["user_id"]),
    )
    invalid = await client.post(
        "/api/studio/credits/dev-topup", json={"amount": "5"}, headers=_auth(seed["user_id"]),
    )

    assert response.status_code == 200
    assert response.json()["balance"] == 5
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_health_and_metrics(studio):
    client, _ = studio

    health = await client.get("/health", headers={"X-Request-ID": "req-123"})
    metrics = await client.get("/metrics")

    assert health.json()["status"] == "healthy"
    assert health.headers["x-request-id"] == "req-123"
    assert metrics.headers["x-request-id"]
    assert metrics.status_code == 200
    assert "credits_reserved_total" in metrics.text


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [UpstreamGenerationError("boom"), RuntimeError("boom")])
async def test_abandoned_generation_task_error_is_retrieved(error):
    loop = asyncio.get_running_loop()
    reported = []
    loop.set_exception_handler(lambda _loop, context: reported.append(context))

    async def fail():
        raise error

    try:
        task = asyncio.create_task(fail())
        generate_routes._inflight.add(task)
        task.add_done_callback(generate_routes._finish_generation)
        await asyncio.wait({task})

        assert task not in generate_routes._inflight
        del task
        gc.collect()
    finally:
        loop.set_exception_handler(None)

    assert reported == []
