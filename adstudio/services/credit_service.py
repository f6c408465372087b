"""
Credit account service.

Owns every balance mutation. Each mutation is a single conditional UPDATE
plus exactly one ledger row, committed together.

SECURITY: All queries MUST include the user_id filter.
"""
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from adstudio.config import settings
from adstudio.errors import InsufficientCreditError
from adstudio.logging_config import get_logger
from adstudio.models.credit import CreditAccount, LedgerEntry, LedgerReason
from adstudio.models.generation import Generation
from adstudio.routes.metrics import (
    track_credit_insufficient,
    track_credit_refund,
    track_credit_reserved,
)


class CreditService:
    """Service for credit balances and the credit ledger."""

    def __init__(self, db: AsyncSession, bucket_id: str | None = None):
        self.db = db
        self.bucket_id = bucket_id or settings.UNIFIED_CREDIT_BUCKET_ID

    async def get_account(self, user_id: str) -> CreditAccount | None:
        stmt = select(CreditAccount).where(
            CreditAccount.user_id == user_id,
            CreditAccount.bucket_id == self.bucket_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_balance(self, user_id: str) -> int:
        """
        Get the current balance for a user.

        Returns:
            Credit balance (0 if the account does not exist yet)
        """
        stmt = select(CreditAccount.balance).where(
            CreditAccount.user_id == user_id,
            CreditAccount.bucket_id == self.bucket_id,
        )
        result = await self.db.execute(stmt)
        balance = result.scalar_one_or_none()
        return int(balance) if balance is not None else 0

    async def ensure_account(self, user_id: str) -> CreditAccount:
        """
        Get or create the user's account in this bucket with a zero balance.

        A concurrent creator winning the unique constraint is treated as
        success.
        """
        account = await self.get_account(user_id)
        if account:
            return account

        self.db.add(CreditAccount(user_id=user_id, bucket_id=self.bucket_id, balance=0))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
        account = await self.get_account(user_id)
        if account is None:
            raise RuntimeError(f"Credit account for {user_id} could not be created")
        return account

    async def reserve(
        self,
        user_id: str,
        amount: int,
        ref_id: str,
        meta: dict[str, Any] | None = None,
    ) -> int:
        """
        Debit credits for a request.

        The sufficiency check and the decrement are one statement, so two
        concurrent requests can never both spend the same credits.

        Args:
            user_id: Account owner
            amount: Credits to debit (non-negative)
            ref_id: Request correlation id written to the ledger
            meta: Extra ledger metadata (requested model, ...)

        Returns:
            Balance after the debit

        Raises:
            InsufficientCreditError: balance < amount. A zero-delta GENERATE
                row marked status="insufficient" is written; the balance is
                untouched.
        """
        if amount < 0:
            raise ValueError("amount must be non-negative")
        log = get_logger(user_id=user_id, ref_id=ref_id)
        meta = dict(meta or {})

        await self.ensure_account(user_id)

        stmt = (
            update(CreditAccount)
            .where(
                CreditAccount.user_id == user_id,
                CreditAccount.bucket_id == self.bucket_id,
                CreditAccount.balance >= amount,
            )
            .values(balance=CreditAccount.balance - amount)
            .returning(CreditAccount.balance)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        new_balance = result.scalar_one_or_none()

        if new_balance is None:
            await self.db.rollback()
            balance = await self.get_balance(user_id)
            self.db.add(LedgerEntry(
                user_id=user_id,
                bucket_id=self.bucket_id,
                delta=0,
                reason=LedgerReason.GENERATE,
                ref_id=ref_id,
                meta_json={**meta, "status": "insufficient", "required_credits": amount},
            ))
            await self.db.commit()
            log.info("credits_insufficient", balance=balance, required=amount)
            track_credit_insufficient(self.bucket_id)
            raise InsufficientCreditError(balance=balance, required=amount)

        self.db.add(LedgerEntry(
            user_id=user_id,
            bucket_id=self.bucket_id,
            delta=-amount,
            reason=LedgerReason.GENERATE,
            ref_id=ref_id,
            meta_json={
                **meta,
                "unit_krw": settings.CREDIT_WON_UNIT,
                "credits_used": amount,
            },
        ))
        try:
            await self.db.commit()
        except Exception:
            # Neither the debit nor its ledger row survive
            await self.db.rollback()
            raise
        log.info("credits_reserved", amount=amount, balance_after=int(new_balance))
        track_credit_reserved(self.bucket_id, amount)
        return int(new_balance)

    async def refund(
        self,
        user_id: str,
        amount: int,
        ref_id: str,
        meta: dict[str, Any] | None = None,
    ) -> int:
        """
        Return credits reserved for ref_id.

        Idempotent: a second refund for the same ref_id writes nothing and
        returns the current balance, so callers may retry freely.

        Returns:
            Balance after the refund
        """
        if amount < 0:
            raise ValueError("amount must be non-negative")
        log = get_logger(user_id=user_id, ref_id=ref_id)

        if await self.has_entry(user_id, ref_id, LedgerReason.REFUND):
            log.info("refund_already_applied")
            return await self.get_balance(user_id)

        await self.ensure_account(user_id)

        stmt = (
            update(CreditAccount)
            .where(
                CreditAccount.user_id == user_id,
                CreditAccount.bucket_id == self.bucket_id,
            )
            .values(balance=CreditAccount.balance + amount)
            .returning(CreditAccount.balance)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        new_balance = result.scalar_one()

        self.db.add(LedgerEntry(
            user_id=user_id,
            bucket_id=self.bucket_id,
            delta=amount,
            reason=LedgerReason.REFUND,
            ref_id=ref_id,
            meta_json={"source": "generate-refund", **(meta or {})},
        ))
        try:
            await self.db.commit()
        except IntegrityError:
            # Another worker refunded the same ref_id first
            await self.db.rollback()
            log.info("refund_already_applied")
            return await self.get_balance(user_id)
        except Exception:
            await self.db.rollback()
            raise
        log.info("credits_refunded", amount=amount, balance_after=int(new_balance))
        track_credit_refund(self.bucket_id, amount)
        return int(new_balance)

    async def grant(
        self,
        user_id: str,
        amount: int,
        source: str,
        ref_id: str | None = None,
    ) -> int:
        """Add purchased or promotional credits (TOPUP ledger row)."""
        if amount <= 0:
            raise ValueError("amount must be positive")
        await self.ensure_account(user_id)

        stmt = (
            update(CreditAccount)
            .where(
                CreditAccount.user_id == user_id,
                CreditAccount.bucket_id == self.bucket_id,
            )
            .values(balance=CreditAccount.balance + amount)
            .returning(CreditAccount.balance)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        new_balance = result.scalar_one()
        self.db.add(LedgerEntry(
            user_id=user_id,
            bucket_id=self.bucket_id,
            delta=amount,
            reason=LedgerReason.TOPUP,
            ref_id=ref_id,
            meta_json={"source": source},
        ))
        await self.db.commit()
        return int(new_balance)

    async def has_entry(self, user_id: str, ref_id: str, reason: LedgerReason) -> bool:
        stmt = select(LedgerEntry.id).where(
            LedgerEntry.user_id == user_id,
            LedgerEntry.bucket_id == self.bucket_id,
            LedgerEntry.reason == reason,
            LedgerEntry.ref_id == ref_id,
        ).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def get_entries_for_ref(self, user_id: str, ref_id: str) -> list[LedgerEntry]:
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.user_id == user_id,
                LedgerEntry.bucket_id == self.bucket_id,
                LedgerEntry.ref_id == ref_id,
            )
            .order_by(LedgerEntry.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_ledger(self, user_id: str, limit: int = 30) -> list[LedgerEntry]:
        """
        Get ledger rows for a user.

        Returns:
            List of ledger entries (most recent first)
        """
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.user_id == user_id,
                LedgerEntry.bucket_id == self.bucket_id,
            )
            .order_by(LedgerEntry.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def ledger_sum(self, user_id: str) -> int:
        """Sum of all ledger deltas; equals the balance for a consistent account."""
        stmt = select(func.coalesce(func.sum(LedgerEntry.delta), 0)).where(
            LedgerEntry.user_id == user_id,
            LedgerEntry.bucket_id == self.bucket_id,
        )
        result = await self.db.execute(stmt)
        return int(result.scalar() or 0)

    async def find_unsettled_debits(self, older_than: datetime, limit: int = 100) -> list[LedgerEntry]:
        """
        GENERATE debits older than the cutoff that have neither a generation
        row nor a REFUND for the same ref_id.
        """
        refund = select(LedgerEntry.ref_id).where(
            LedgerEntry.bucket_id == self.bucket_id,
            LedgerEntry.reason == LedgerReason.REFUND,
            LedgerEntry.ref_id.is_not(None),
        )
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.bucket_id == self.bucket_id,
                LedgerEntry.reason == LedgerReason.GENERATE,
                LedgerEntry.delta < 0,
                LedgerEntry.created_at < older_than,
                LedgerEntry.ref_id.not_in(refund),
                ~select(Generation.id).where(Generation.id == LedgerEntry.ref_id).exists(),
            )
            .order_by(LedgerEntry.created_at)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
