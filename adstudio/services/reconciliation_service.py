"""
Reconciliation sweep.

Safety net behind inline compensation and the refund queue. Runs
periodically and:
1. Refunds GENERATE debits that are older than the reconcile window and
   have neither a generation row nor a REFUND for the same ref_id
2. Reports accounts whose balance differs from their ledger sum
   (detection only, never auto-fixed)

All fixes are idempotent, so overlapping runs are safe.
"""
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adstudio.config import settings
from adstudio.logging_config import get_logger
from adstudio.models.base import utcnow
from adstudio.models.credit import CreditAccount
from adstudio.services.credit_service import CreditService


class ReconciliationService:
    """Detects and fixes charges that were never settled."""

    MAX_FIXES_PER_RUN = 100

    def __init__(self, db: AsyncSession, bucket_id: Optional[str] = None):
        self.db = db
        self.credits = CreditService(db, bucket_id)

    async def refund_orphaned_debits(
        self,
        now: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> list[dict[str, Any]]:
        """Refund debits whose request never produced a generation."""
        cutoff = (now or utcnow()) - timedelta(minutes=settings.RECONCILE_AFTER_MINUTES)
        debits = await self.credits.find_unsettled_debits(cutoff, limit=self.MAX_FIXES_PER_RUN)

        fixed = []
        for debit in debits:
            amount = -debit.delta
            item = {"user_id": debit.user_id, "ref_id": debit.ref_id, "amount": amount}
            if not dry_run:
                await self.credits.refund(
                    debit.user_id,
                    amount,
                    debit.ref_id,
                    {"source": "reconcile-refund"},
                )
            fixed.append(item)
        return fixed

    async def detect_balance_drift(self) -> list[dict[str, Any]]:
        stmt = (
            select(CreditAccount)
            .where(CreditAccount.bucket_id == self.credits.bucket_id)
            .limit(self.MAX_FIXES_PER_RUN * 10)
        )
        result = await self.db.execute(stmt)
        drift = []
        for account in result.scalars().all():
            ledger_total = await self.credits.ledger_sum(account.user_id)
            if ledger_total != account.balance:
                drift.append({
                    "user_id": account.user_id,
                    "balance": account.balance,
                    "ledger_sum": ledger_total,
                })
        return drift

    async def reconcile(self, now: Optional[datetime] = None, dry_run: bool = False) -> dict[str, Any]:
        """
        Run all checks.

        Returns:
            Summary with the refunds applied and any drift found
        """
        log = get_logger(dry_run=dry_run)
        started_at = now or utcnow()

        refunded = await self.refund_orphaned_debits(now=started_at, dry_run=dry_run)
        drift = await self.detect_balance_drift()

        if refunded:
            log.warning("reconcile_refunds_applied", count=len(refunded), refs=[r["ref_id"] for r in refunded])
        if drift:
            log.error("reconcile_balance_drift", count=len(drift), accounts=drift)
        log.info("reconcile_completed", refunded=len(refunded), drift=len(drift))

        return {
            "run_at": started_at.isoformat(),
            "dry_run": dry_run,
            "orphaned_debits_refunded": refunded,
            "balance_drift": drift,
        }
