from datetime import timedelta

import pytest
from sqlalchemy import update

from adstudio.models.base import utcnow
from adstudio.models.credit import CreditAccount, LedgerReason
from adstudio.models.generation import Generation
from adstudio.services.credit_service import CreditService
from adstudio.services.reconciliation_service import ReconciliationService

from fakes import seed_studio


LATER = timedelta(hours=2)


async def _seed_debits(session_factory):
    """One orphaned debit, one settled by a generation, one already refunded."""
    seed = await seed_studio(session_factory, balance=20)
    user_id = seed["user_id"]
    async with session_factory() as session:
        credits = CreditService(session)
        await credits.reserve(user_id, 3, "ref-orphan")
        await credits.reserve(user_id, 2, "ref-done")
        await credits.reserve(user_id, 4, "ref-refunded")
        await credits.refund(user_id, 4, "ref-refunded")
        session.add(Generation(
            id="ref-done",
            user_id=user_id,
            project_id=seed["project_id"],
            prompt_id=seed["prompt_id"],
            image_model_id="imagen-4.0-fast-generate-001",
            runtime_model_id="gemini-2.0-flash-exp-image-generation",
            image_url="https://assets.test/done.png",
            aspect_ratio="1:1",
            cost_usd=0.02,
            cost_krw=29,
            sell_krw=100,
            credits_used=2,
        ))
        await session.commit()
    return user_id


@pytest.mark.asyncio
async def test_reconcile_refunds_only_orphaned_debits(session_factory):
    user_id = await _seed_debits(session_factory)

    async with session_factory() as session:
        summary = await ReconciliationService(session).reconcile(now=utcnow() + LATER)

    assert [item["ref_id"] for item in summary["orphaned_debits_refunded"]] == ["ref-orphan"]
    assert summary["orphaned_debits_refunded"][0]["amount"] == 3
    assert summary["balance_drift"] == []

    async with session_factory() as session:
        credits = CreditService(session)
        assert await credits.get_balance(user_id) == 18
        entries = await credits.get_entries_for_ref(user_id, "ref-orphan")
        refund = [e for e in entries if e.reason == LedgerReason.REFUND]
        assert refund[0].meta_json["source"] == "reconcile-refund"


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(session_factory):
    user_id = await _seed_debits(session_factory)

    async with session_factory() as session:
        await ReconciliationService(session).reconcile(now=utcnow() + LATER)
    async with session_factory() as session:
        second = await ReconciliationService(session).reconcile(now=utcnow() + LATER)

    assert second["orphaned_debits_refunded"] == []
    async with session_factory() as session:
        assert await CreditService(session).get_balance(user_id) == 18


@pytest.mark.asyncio
async def test_recent_debits_are_left_alone(session_factory):
    user_id = await _seed_debits(session_factory)

    async with session_factory() as session:
        summary = await ReconciliationService(session).reconcile()

    assert summary["orphaned_debits_refunded"] == []
    async with session_factory() as session:
        assert await CreditService(session).get_balance(user_id) == 15


@pytest.mark.asyncio
async def test_dry_run_reports_without_refunding(session_factory):
    user_id = await _seed_debits(session_factory)

    async with session_factory() as session:
        summary = await ReconciliationService(session).reconcile(now=utcnow() + LATER, dry_run=True)

    assert summary["dry_run"] is True
    assert len(summary["orphaned_debits_refunded"]) == 1
    async with session_factory() as session:
        assert await CreditService(session).get_balance(user_id) == 15


@pytest.mark.asyncio
async def test_balance_drift_is_detected_not_fixed(session_factory):
    user_id = await _seed_debits(session_factory)
    async with session_factory() as session:
        await session.execute(
            update(CreditAccount).where(CreditAccount.user_id == user_id).values(balance=99)
        )
        await session.commit()

    async with session_factory() as session:
        drift = await ReconciliationService(session).detect_balance_drift()

    assert drift == [{"user_id": user_id, "balance": 99, "ledger_sum": 15}]
    async with session_factory() as session:
        assert await CreditService(session).get_balance(user_id) == 99


def _settled_generation(seed, ref_id):
    return Generation(
        id=ref_id,
        user_id=seed["user_id"],
        project_id=seed["project_id"],
        prompt_id=seed["prompt_id"],
        image_model_id="imagen-4.0-fast-generate-001",
        runtime_model_id="gemini-2.0-flash-exp-image-generation",
        image_url=f"https://assets.test/{ref_id}.png",
        aspect_ratio="1:1",
        cost_usd=0.02,
        cost_krw=29,
        sell_krw=100,
        credits_used=1,
    )


@pytest.mark.asyncio
async def test_orphan_behind_a_full_page_of_settled_debits_is_refunded(session_factory):
    seed = await seed_studio(session_factory, balance=200)
    user_id = seed["user_id"]
    settled = [f"ref-done-{i}" for i in range(ReconciliationService.MAX_FIXES_PER_RUN + 1)]
    async with session_factory() as session:
        credits = CreditService(session)
        for ref_id in settled:
            await credits.reserve(user_id, 1, ref_id)
        session.add_all([_settled_generation(seed, ref_id) for ref_id in settled])
        await session.commit()
        await credits.reserve(user_id, 3, "ref-orphan")

    async with session_factory() as session:
        summary = await ReconciliationService(session).reconcile(now=utcnow() + LATER)

    assert [item["ref_id"] for item in summary["orphaned_debits_refunded"]] == ["ref-orphan"]
    async with session_factory() as session:
        assert await CreditService(session).get_balance(user_id) == 200 - len(settled)
