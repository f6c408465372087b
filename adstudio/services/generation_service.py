"""
Generation request coordinator.

Owns the lifecycle of one generate request:

    validate -> price -> load project/prompt/analysis -> reserve credits
    -> resolve reference assets -> orchestrate attempts -> store asset
    -> score -> write generation row -> respond

Nothing before the reservation has side effects. Any failure after it is
compensated by refunding exactly the reserved amount under the same ref_id,
and the original error is re-raised unchanged.

SECURITY: Projects are always looked up with the caller's user_id.
"""
import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adstudio.errors import (
    GENERIC_PERSISTENCE_FAILURE,
    NotFoundError,
    PersistenceError,
    StudioError,
    ValidationError,
)
from adstudio.logging_config import get_logger
from adstudio.models.generation import Generation
from adstudio.models.project import Project, PromptRecord, ReferenceAnalysisRecord
from adstudio.pricing import ModelPrice, price_for
from adstudio.routes.metrics import track_generation_completed, track_generation_failed
from adstudio.sentry_config import capture_exception
from adstudio.services.asset_store import AssetStore, StoredAsset
from adstudio.services.compensation import CompensationService
from adstudio.services.credit_service import CreditService
from adstudio.services.fidelity_scorer import FidelityScorer
from adstudio.services.generation_backend import GenerationBackend
from adstudio.services.generation_request import GenerateRequest, parse_generate_request
from adstudio.services.model_fallback import resolve_runtime_models
from adstudio.services.orchestrator import AttemptOrchestrator, AttemptPolicy, OrchestrationOutcome
from adstudio.services.prompt_builder import build_image_prompt
from adstudio.services.prompt_drafts import PromptDraft, extract_prompt_draft, merge_prompt_override
from adstudio.services.reference_assets import InlineAssets, ReferenceAssetResolver


SUCCESS_MESSAGE = "Image generation completed."


@dataclass(frozen=True)
class GenerationOutcome:
    generation: Generation
    balance_after: int
    credits_used: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "generation": serialize_generation(self.generation),
            "balanceAfter": self.balance_after,
            "creditsUsed": self.credits_used,
            "message": SUCCESS_MESSAGE,
        }


def serialize_generation(generation: Generation) -> dict[str, Any]:
    return {
        "id": generation.id,
        "projectId": generation.project_id,
        "promptId": generation.prompt_id,
        "imageModelId": generation.image_model_id,
        "runtimeModelId": generation.runtime_model_id,
        "imageUrl": generation.image_url,
        "aspectRatio": generation.aspect_ratio,
        "costUsd": generation.cost_usd,
        "costKrw": generation.cost_krw,
        "sellKrw": generation.sell_krw,
        "textFidelityScore": generation.text_fidelity_score,
        "createdAt": generation.created_at.isoformat() if generation.created_at else None,
    }


class GenerationCoordinator:
    """Runs generate requests against one database session."""

    def __init__(
        self,
        db: AsyncSession,
        backend: GenerationBackend,
        scorer: FidelityScorer,
        store: AssetStore,
        resolver: Optional[ReferenceAssetResolver] = None,
        compensation: Optional[CompensationService] = None,
        orchestrator: Optional[AttemptOrchestrator] = None,
        bucket_id: Optional[str] = None,
    ):
        self.db = db
        self.credits = CreditService(db, bucket_id)
        self.store = store
        self.resolver = resolver or ReferenceAssetResolver()
        self.compensation = compensation or CompensationService(bucket_id=self.credits.bucket_id)
        self.orchestrator = orchestrator or AttemptOrchestrator(backend, scorer)

    # ------------------------------------------------------------------
    # Pre-reservation steps (no side effects)
    # ------------------------------------------------------------------

    async def _load_project(self, user_id: str, project_id: str) -> Project:
        stmt = select(Project).where(Project.id == project_id, Project.user_id == user_id)
        result = await self.db.execute(stmt)
        project = result.scalar_one_or_none()
        if project is None:
            raise NotFoundError("Project not found.")
        return project

    async def _load_prompt(self, project_id: str, prompt_id: str) -> PromptRecord:
        stmt = select(PromptRecord).where(
            PromptRecord.id == prompt_id,
            PromptRecord.project_id == project_id,
        )
        result = await self.db.execute(stmt)
        prompt = result.scalar_one_or_none()
        if prompt is None:
            raise NotFoundError("Prompt not found.")
        return prompt

    async def _load_latest_analysis(self, project_id: str) -> ReferenceAnalysisRecord:
        stmt = (
            select(ReferenceAnalysisRecord)
            .where(ReferenceAnalysisRecord.project_id == project_id)
            .order_by(ReferenceAnalysisRecord.created_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        analysis = result.scalar_one_or_none()
        if analysis is None:
            raise ValidationError("No reference analysis found. Run reference analysis first.")
        return analysis

    # ------------------------------------------------------------------
    # Post-reservation steps
    # ------------------------------------------------------------------

    async def _resolve_assets(self, project: Project, style_transfer_mode: str) -> InlineAssets:
        product_context = project.product_context or {}
        reference_url = project.reference_image_url
        if style_transfer_mode == "reference_retext":
            reference = await self.resolver.resolve_required(reference_url, "reference image")
        else:
            reference = await self.resolver.resolve_optional(reference_url, "reference image")

        product, logo = await asyncio.gather(
            self.resolver.resolve_optional(product_context.get("productImageUrl"), "product image"),
            self.resolver.resolve_optional(product_context.get("logoImageUrl"), "logo image"),
        )
        return InlineAssets(reference=reference, product=product, logo=logo)

    async def _write_generation(
        self,
        ref_id: str,
        user_id: str,
        request: GenerateRequest,
        price: ModelPrice,
        credits_used: int,
        outcome: OrchestrationOutcome,
        stored: StoredAsset,
        score: Optional[int],
    ) -> Generation:
        generation = Generation(
            id=ref_id,
            user_id=user_id,
            project_id=request.project_id,
            prompt_id=request.prompt_id,
            image_model_id=request.image_model_id,
            runtime_model_id=outcome.model,
            image_url=stored.url,
            aspect_ratio=request.aspect_ratio,
            cost_usd=price.cost_usd,
            cost_krw=price.cost_krw,
            sell_krw=price.sell_krw,
            credits_used=credits_used,
            text_fidelity_score=score,
            attempts_used=outcome.attempts_used,
        )
        self.db.add(generation)
        try:
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            # Uncharged assets must not stay retrievable
            try:
                await self.store.delete(stored.storage_path)
            except OSError as cleanup_error:
                get_logger(ref_id=ref_id).warning(
                    "asset_cleanup_failed",
                    storage_path=stored.storage_path,
                    error=str(cleanup_error),
                )
            raise PersistenceError(GENERIC_PERSISTENCE_FAILURE) from e
        return generation

    async def _generate(
        self,
        ref_id: str,
        user_id: str,
        request: GenerateRequest,
        price: ModelPrice,
        credits_used: int,
        project: Project,
        draft: PromptDraft,
        analysis: ReferenceAnalysisRecord,
        log,
    ) -> Generation:
        prompt_text = build_image_prompt(
            analysis.analysis_json or {},
            draft,
            project.product_context or {},
            request.aspect_ratio,
            request.text_mode,
            request.style_transfer_mode,
            request.text_accuracy_mode,
        )
        assets = await self._resolve_assets(project, request.style_transfer_mode)

        policy = AttemptPolicy.for_request(request.text_accuracy_mode, request.text_mode, draft)
        candidates = resolve_runtime_models(request.image_model_id, prefer_quality=policy.strict)
        outcome = await self.orchestrator.run(
            prompt_text,
            candidates,
            request.aspect_ratio,
            assets,
            policy,
            intended_headline=draft.copy.headline,
            intended_cta=draft.copy.cta,
            auto_fix_rules=draft.auto_fix_rules,
            ref_id=ref_id,
        )

        image = outcome.attempt.image
        stored = await self.store.upload(user_id, request.project_id, ref_id, image.data, image.mime_type)

        score = None
        if request.text_mode != "no_text":
            score = outcome.score
            if score is None:
                score = await self.orchestrator.score_image(image, draft.copy.headline, draft.copy.cta, log)

        generation = await self._write_generation(
            ref_id, user_id, request, price, credits_used, outcome, stored, score,
        )
        log.info(
            "generation_completed",
            runtime_model=outcome.model,
            attempts_used=outcome.attempts_used,
            backend_calls=outcome.backend_calls,
            accepted=outcome.accepted,
            score=score,
        )
        track_generation_completed(outcome.model)
        return generation

    async def _release_session(self, log):
        try:
            await self.db.rollback()
        except Exception as e:
            log.warning("session_rollback_failed", error=str(e))

    async def handle(self, user_id: str, payload: Union[GenerateRequest, dict]) -> GenerationOutcome:
        """
        Process one generate request.

        Raises:
            StudioError: ValidationError, NotFoundError and
                InsufficientCreditError before any charge; anything after the
                reservation is raised only after the refund was attempted
        """
        request = payload if isinstance(payload, GenerateRequest) else parse_generate_request(payload)

        price = price_for(request.image_model_id, "1K")
        if price is None:
            raise ValidationError("Unsupported image model.")

        project = await self._load_project(user_id, request.project_id)
        prompt_record = await self._load_prompt(request.project_id, request.prompt_id)
        analysis = await self._load_latest_analysis(request.project_id)
        override = request.prompt_override.as_override() if request.prompt_override else None
        draft = merge_prompt_override(extract_prompt_draft(prompt_record), override)

        ref_id = str(uuid.uuid4())
        credits_used = max(1, price.credits_required)
        log = get_logger(user_id=user_id, ref_id=ref_id, project_id=request.project_id)

        balance_after = await self.credits.reserve(
            user_id,
            credits_used,
            ref_id,
            {
                "source": "consume-unified",
                "requested_model": request.image_model_id,
                "project_id": request.project_id,
                "prompt_id": request.prompt_id,
            },
        )

        try:
            generation = await self._generate(
                ref_id, user_id, request, price, credits_used, project, draft, analysis, log,
            )
        except (Exception, asyncio.CancelledError) as e:
            failure = type(e).__name__
            log.error("generation_failed", failure=failure, error=str(e))
            track_generation_failed(failure)
            if not isinstance(e, StudioError):
                capture_exception(e, ref_id=ref_id)
            await self._release_session(log)
            await self.compensation.refund_reservation(user_id, credits_used, ref_id, failure)
            raise

        return GenerationOutcome(
            generation=generation,
            balance_after=balance_after,
            credits_used=credits_used,
        )
