"""
Error taxonomy for the generation flow.

Every error carries the HTTP status the API returns for it. Services raise
these; main.py turns them into JSON responses.
"""
from typing import Any, Optional


class StudioError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str, *, detail: Any = None, **extra: Any):
        super().__init__(message)
        self.message = message
        self.detail = detail
        self.extra = extra

    def to_payload(self) -> dict:
        payload: dict = {"error": self.message}
        if self.detail is not None:
            payload["detail"] = self.detail
        payload.update(self.extra)
        return payload


class ValidationError(StudioError):
    """Malformed or missing request fields."""
    status_code = 400


class AuthError(StudioError):
    """Missing or invalid credentials."""
    status_code = 401


class InsufficientCreditError(StudioError):
    """Balance check failed. Audited with a zero-delta ledger row."""
    status_code = 402

    def __init__(self, balance: int, required: int):
        super().__init__(
            "Insufficient credits.",
            code="INSUFFICIENT_CREDIT",
            balance=balance,
            requiredCredits=required,
        )
        self.balance = balance
        self.required = required


class ForbiddenError(StudioError):
    """Authenticated, but the operation is not allowed."""
    status_code = 403


class NotFoundError(StudioError):
    """Referenced entity is absent or not owned by the caller."""
    status_code = 404


class UpstreamGenerationError(StudioError):
    """
    A generation backend call failed.

    Recovered locally by moving to the next candidate model; only fatal
    when every candidate failed on every attempt.
    """
    status_code = 500

    def __init__(self, message: str, *, model: Optional[str] = None, retryable: bool = True):
        super().__init__(message)
        self.model = model
        self.retryable = retryable


class PersistenceError(StudioError):
    """Asset upload or result-record write failed after a successful generation."""
    status_code = 500


class CompensationError(Exception):
    """
    The refund for a failed request could not be written.

    Never surfaced to callers; the durable refund queue and the
    reconciliation sweep pick these up.
    """

    def __init__(self, ref_id: str, amount: int, cause: Optional[BaseException] = None):
        super().__init__(f"Refund of {amount} credits for {ref_id} failed: {cause}")
        self.ref_id = ref_id
        self.amount = amount
        self.cause = cause


GENERIC_GENERATION_FAILURE = "Image generation failed. Please try again in a moment."
GENERIC_PERSISTENCE_FAILURE = "Saving the generated image failed. Please try again in a moment."
