"""
Credit models.

Manages per-user credit balances and the append-only credit ledger.
"""
import uuid
from datetime import datetime
from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
import enum
from adstudio.models.base import Base, TimestampMixin, utcnow


class LedgerReason(str, enum.Enum):
    """Why a ledger row was written."""
    GENERATE = "GENERATE"
    REFUND = "REFUND"
    TOPUP = "TOPUP"


class CreditAccount(Base, TimestampMixin):
    """
    Credit balance for one (user, bucket) pair.

    Only CreditService mutates the balance, and always together with
    exactly one LedgerEntry.
    """
    __tablename__ = "user_model_credits"
    __table_args__ = (
        UniqueConstraint("user_id", "bucket_id", name="uq_user_model_credits_user_bucket"),
        CheckConstraint("balance >= 0", name="ck_user_model_credits_balance_non_negative"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    bucket_id: Mapped[str] = mapped_column(String(64), nullable=False)
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<CreditAccount(user_id={self.user_id}, bucket={self.bucket_id}, balance={self.balance})>"


class LedgerEntry(Base):
    """
    Immutable audit record of a balance change or attempted change.

    The sum of delta for an account always equals its balance. A ref_id
    can be debited once and refunded once.
    """
    __tablename__ = "credit_ledger"
    __table_args__ = (
        UniqueConstraint("user_id", "bucket_id", "reason", "ref_id", name="uq_credit_ledger_ref"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    bucket_id: Mapped[str] = mapped_column(String(64), nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[LedgerReason] = mapped_column(
        SQLEnum(LedgerReason, native_enum=False, create_type=False),
        nullable=False
    )
    ref_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    meta_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self):
        return f"<LedgerEntry(user_id={self.user_id}, delta={self.delta}, reason={self.reason}, ref_id={self.ref_id})>"
