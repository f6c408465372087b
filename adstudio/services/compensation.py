"""
Compensation path for failed generation requests.

Returns reserved credits after a post-reservation failure. Every refund is
keyed by the request's ref_id, so retries here, in the refund queue and in
the reconciliation sweep can never double-credit.
"""
import asyncio
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adstudio.config import settings
from adstudio.database import AsyncSessionLocal
from adstudio.errors import CompensationError
from adstudio.logging_config import get_logger
from adstudio.routes.metrics import track_compensation_failure
from adstudio.sentry_config import capture_exception
from adstudio.services.credit_service import CreditService
from adstudio.worker import enqueue_refund


RefundEnqueuer = Callable[[str, int, str, str, str], Awaitable[bool]]


class CompensationService:
    """Refunds a reservation without ever raising."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        bucket_id: Optional[str] = None,
        attempts: Optional[int] = None,
        enqueue: RefundEnqueuer = enqueue_refund,
        retry_delay: float = 0.2,
    ):
        self.session_factory = session_factory
        self.bucket_id = bucket_id or settings.UNIFIED_CREDIT_BUCKET_ID
        self.attempts = max(1, attempts if attempts is not None else settings.REFUND_RETRY_ATTEMPTS)
        self.enqueue = enqueue
        self.retry_delay = retry_delay

    async def refund_reservation(self, user_id: str, amount: int, ref_id: str, failure: str) -> bool:
        """
        Refund `amount` credits reserved under ref_id.

        Each try runs in a fresh session, since the request's session may be
        unusable after the original failure. When every try fails the refund
        is queued for the worker.

        Returns:
            True if the refund was written inline
        """
        log = get_logger(user_id=user_id, ref_id=ref_id)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.attempts + 1):
            try:
                async with self.session_factory() as db:
                    balance = await CreditService(db, self.bucket_id).refund(
                        user_id,
                        amount,
                        ref_id,
                        {"failure": failure},
                    )
            except Exception as e:
                last_error = e
                log.warning("compensation_retry", attempt=attempt, error=str(e))
                if attempt < self.attempts:
                    await asyncio.sleep(self.retry_delay * attempt)
                continue
            log.info("compensation_succeeded", amount=amount, balance_after=balance, failure=failure)
            return True

        error = CompensationError(ref_id, amount, last_error)
        log.error("compensation_failed", amount=amount, failure=failure, error=str(error))
        track_compensation_failure()
        capture_exception(error, ref_id=ref_id, user_id=user_id)

        queued = await self.enqueue(user_id, amount, ref_id, self.bucket_id, failure)
        if not queued:
            log.error("compensation_not_queued", amount=amount)
        return False
