"""
Credit API routes.

Provides endpoints for the credit balance, the model price list and the
recent ledger.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from adstudio.config import settings
from adstudio.database import get_db
from adstudio.dependencies.auth import TokenPayload, get_current_user
from adstudio.errors import ForbiddenError
from adstudio.models.credit import LedgerEntry
from adstudio.pricing import STUDIO_IMAGE_MODELS, priced_catalog
from adstudio.services.credit_service import CreditService


router = APIRouter(prefix="/api/studio/credits", tags=["credits"])


class TopupRequest(BaseModel):
    amount: int = Field(gt=0, strict=True)


def serialize_entry(entry: LedgerEntry) -> dict:
    return {
        "id": str(entry.id),
        "bucketId": entry.bucket_id,
        "delta": entry.delta,
        "reason": entry.reason.value if hasattr(entry.reason, "value") else str(entry.reason),
        "refId": entry.ref_id,
        "createdAt": entry.created_at.isoformat() if entry.created_at else None,
    }


@router.get("", response_model=dict)
async def get_credits(
    current_user: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the caller's balance, the priced model catalog and the latest 30 ledger rows."""
    credit_service = CreditService(db)

    balance = await credit_service.get_balance(current_user.sub)
    ledger = await credit_service.get_ledger(current_user.sub, limit=30)

    return {
        "globalBalance": balance,
        "bucketId": credit_service.bucket_id,
        "creditWonUnit": settings.CREDIT_WON_UNIT,
        "models": [{**model, "balance": balance} for model in priced_catalog()],
        "supportedModelIds": [model.id for model in STUDIO_IMAGE_MODELS],
        "ledger": [serialize_entry(entry) for entry in ledger],
    }


@router.post("/dev-topup", response_model=dict)
async def dev_topup(
    body: TopupRequest,
    current_user: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Add credits without payment.

    Only for local development; disabled unless ENABLE_DEV_TOPUP is set and
    never available in production.
    """
    if not settings.ENABLE_DEV_TOPUP or settings.ENVIRONMENT == "production":
        raise ForbiddenError("Dev top-up is disabled in this environment.")

    balance = await CreditService(db).grant(current_user.sub, body.amount, source="dev-topup")

    return {
        "ok": True,
        "bucketId": settings.UNIFIED_CREDIT_BUCKET_ID,
        "amount": body.amount,
        "balance": balance,
    }
