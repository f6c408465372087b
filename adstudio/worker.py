"""
ARQ background worker for AdStudio.

Finishes refunds that could not be written inline and runs the periodic
reconciliation sweep. Start with: arq adstudio.worker.WorkerSettings
"""
import asyncio

from arq import Retry, create_pool
from arq.connections import RedisSettings
from arq.cron import cron

from adstudio.config import settings
from adstudio.database import AsyncSessionLocal
from adstudio.logging_config import get_logger
from adstudio.sentry_config import capture_exception
from adstudio.services.credit_service import CreditService
from adstudio.services.reconciliation_service import ReconciliationService


REFUND_JOB_MAX_TRIES = 5


async def process_refund_job(
    ctx: dict,
    user_id: str,
    amount: int,
    ref_id: str,
    bucket_id: str,
    failure: str = "",
) -> dict:
    """Apply a refund handed over by the request path. Idempotent per ref_id."""
    # ARQ uses job_try (starts at 1) in context
    job_try = ctx.get("job_try", 1)
    log = get_logger(user_id=user_id, ref_id=ref_id, job_try=job_try)
    log.info("refund_job_started", amount=amount)

    try:
        async with AsyncSessionLocal() as db:
            balance = await CreditService(db, bucket_id).refund(
                user_id,
                amount,
                ref_id,
                {"source": "refund-queue", "failure": failure},
            )
    except Exception as e:
        if job_try >= REFUND_JOB_MAX_TRIES:
            log.error("refund_job_exhausted", error=str(e))
            capture_exception(e, ref_id=ref_id)
            # Left for the reconciliation sweep
            raise
        log.warning("refund_job_retry", error=str(e), defer=job_try * 10)
        raise Retry(defer=job_try * 10)

    log.info("refund_job_completed", balance_after=balance)
    return {"status": "refunded", "ref_id": ref_id, "balance": balance}


async def reconcile_reservations(ctx: dict) -> dict:
    """Cron: refund orphaned debits and report balance drift."""
    async with AsyncSessionLocal() as db:
        return await ReconciliationService(db).reconcile()


async def enqueue_refund(
    user_id: str,
    amount: int,
    ref_id: str,
    bucket_id: str,
    failure: str = "",
) -> bool:
    """
    Hand a refund to the worker.

    The job id is derived from ref_id so a refund is queued at most once.
    """
    log = get_logger(user_id=user_id, ref_id=ref_id)
    try:
        redis = await create_pool(RedisSettings.from_dsn(settings.REDIS_URL))
        try:
            await redis.enqueue_job(
                "process_refund_job",
                user_id,
                amount,
                ref_id,
                bucket_id,
                failure,
                _job_id=f"refund:{ref_id}",
            )
        finally:
            await redis.aclose()
    except Exception as e:
        log.error("refund_enqueue_failed", error=str(e))
        return False

    log.info("refund_enqueued", amount=amount)
    return True


async def main():
    """Print how to run the worker."""
    print("Use: arq adstudio.worker.WorkerSettings")
    print(f"Redis: {settings.REDIS_URL}")


class WorkerSettings:
    """Settings for ARQ worker - use with 'arq adstudio.worker.WorkerSettings'"""
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    job_timeout = 300
    max_tries = REFUND_JOB_MAX_TRIES
    functions = [process_refund_job]
    cron_jobs = [
        cron(reconcile_reservations, minute={0, 15, 30, 45}, run_at_startup=True),
    ]


if __name__ == "__main__":
    asyncio.run(main())
