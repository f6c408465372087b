"""
Retry/attempt orchestrator.

Runs up to max_attempts attempts. Each attempt walks the runtime model
candidates in order until one returns an image, then (in strict mode)
scores it and either accepts it or folds it into the best-so-far and tries
again with a retry directive.

Backend calls made by one run are bounded by max_attempts * len(candidates).
"""
import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

from adstudio.config import settings
from adstudio.errors import GENERIC_GENERATION_FAILURE, UpstreamGenerationError
from adstudio.logging_config import get_logger
from adstudio.routes.metrics import track_attempt, track_candidate_failure
from adstudio.services.fidelity_scorer import FidelityScorer
from adstudio.services.generation_backend import GenerationBackend, GeneratedImage
from adstudio.services.prompt_builder import build_retry_prompt
from adstudio.services.prompt_drafts import PromptDraft, has_text_targets
from adstudio.services.reference_assets import InlineAsset, InlineAssets


@dataclass(frozen=True)
class AttemptPolicy:
    """How many attempts a request gets and when a result is good enough."""
    max_attempts: int = 1
    threshold: int = 80
    strict: bool = False

    @classmethod
    def for_request(cls, text_accuracy_mode: str, text_mode: str, draft: PromptDraft) -> "AttemptPolicy":
        """
        Strict retry applies only when accuracy is strict, text is rendered
        in the image, and there is some text to render.
        """
        strict = (
            text_accuracy_mode == "strict"
            and text_mode == "in_image"
            and has_text_targets(draft)
        )
        return cls(
            max_attempts=settings.STRICT_MAX_ATTEMPTS if strict else 1,
            threshold=settings.FIDELITY_THRESHOLD,
            strict=strict,
        )


@dataclass(frozen=True)
class GenerationAttempt:
    index: int
    prompt: str
    model: str
    image: InlineAsset
    score: Optional[int] = None


@dataclass(frozen=True)
class OrchestrationOutcome:
    attempt: GenerationAttempt
    accepted: bool
    attempts_used: int
    backend_calls: int

    @property
    def model(self) -> str:
        return self.attempt.model

    @property
    def score(self) -> Optional[int]:
        return self.attempt.score


def _rank(score: Optional[int]) -> int:
    # Unknown scores rank below every known score
    return -1 if score is None else score


def select_best(
    best: Optional[GenerationAttempt],
    candidate: GenerationAttempt,
) -> GenerationAttempt:
    """Keep the higher-scored attempt; ties keep the earlier one."""
    if best is None:
        return candidate
    return candidate if _rank(candidate.score) > _rank(best.score) else best


class AttemptOrchestrator:
    """Drives backend calls and scoring for one request."""

    def __init__(
        self,
        backend: GenerationBackend,
        scorer: FidelityScorer,
        generation_timeout: Optional[float] = None,
        scoring_timeout: Optional[float] = None,
    ):
        self.backend = backend
        self.scorer = scorer
        self.generation_timeout = (
            generation_timeout if generation_timeout is not None else settings.GENERATION_TIMEOUT_SECONDS
        )
        self.scoring_timeout = (
            scoring_timeout if scoring_timeout is not None else settings.SCORING_TIMEOUT_SECONDS
        )

    async def _call_candidates(
        self,
        candidates: Sequence[str],
        prompt: str,
        aspect_ratio: str,
        assets: InlineAssets,
        log,
    ) -> tuple[Optional[GeneratedImage], int, Optional[Exception]]:
        """First successful candidate wins. Returns (image, calls made, last error)."""
        calls = 0
        last_error: Optional[Exception] = None
        for model in candidates:
            calls += 1
            try:
                generated = await asyncio.wait_for(
                    self.backend.generate(model, prompt, aspect_ratio, assets),
                    timeout=self.generation_timeout,
                )
                return generated, calls, last_error
            except asyncio.TimeoutError:
                last_error = UpstreamGenerationError(
                    f"Model {model} timed out after {self.generation_timeout}s", model=model
                )
            except Exception as e:
                last_error = e
            log.warning("candidate_failed", model=model, error=str(last_error))
            track_candidate_failure(model)
        return None, calls, last_error

    async def score_image(self, image: InlineAsset, headline: str, cta: str, log=None) -> Optional[int]:
        """Score with the configured timeout; a timeout counts as unknown."""
        if log is None:
            log = get_logger()
        try:
            return await asyncio.wait_for(
                self.scorer.score(image, headline, cta),
                timeout=self.scoring_timeout,
            )
        except asyncio.TimeoutError:
            log.warning("scoring_timed_out", timeout=self.scoring_timeout)
            return None

    async def run(
        self,
        base_prompt: str,
        candidates: Sequence[str],
        aspect_ratio: str,
        assets: InlineAssets,
        policy: AttemptPolicy,
        intended_headline: str = "",
        intended_cta: str = "",
        auto_fix_rules: Sequence[str] = (),
        ref_id: Optional[str] = None,
    ) -> OrchestrationOutcome:
        """
        Produce the accepted (or best available) attempt.

        Raises:
            UpstreamGenerationError: no attempt produced any image
        """
        log = get_logger(ref_id=ref_id, strict=policy.strict)
        best: Optional[GenerationAttempt] = None
        last_error: Optional[Exception] = None
        backend_calls = 0
        attempts_used = 0

        for index in range(1, policy.max_attempts + 1):
            attempts_used = index
            prompt = base_prompt if index == 1 else build_retry_prompt(base_prompt, index, auto_fix_rules)
            log.info("attempt_started", attempt=index, max_attempts=policy.max_attempts)
            track_attempt(policy.strict)

            generated, calls, error = await self._call_candidates(candidates, prompt, aspect_ratio, assets, log)
            backend_calls += calls
            if error is not None:
                last_error = error
            if generated is None:
                continue

            if not policy.strict:
                attempt = GenerationAttempt(index, prompt, generated.model, generated.image)
                log.info("attempt_accepted", attempt=index, model=generated.model)
                return OrchestrationOutcome(attempt, True, attempts_used, backend_calls)

            score = await self.score_image(generated.image, intended_headline, intended_cta, log)
            attempt = GenerationAttempt(index, prompt, generated.model, generated.image, score)
            log.info("attempt_scored", attempt=index, model=generated.model, score=score)
            best = select_best(best, attempt)

            if score is not None and score >= policy.threshold:
                log.info("attempt_accepted", attempt=index, model=generated.model, score=score)
                return OrchestrationOutcome(attempt, True, attempts_used, backend_calls)

        if best is not None:
            log.info("best_attempt_used", attempt=best.index, model=best.model, score=best.score)
            return OrchestrationOutcome(best, False, attempts_used, backend_calls)

        log.error("generation_exhausted", backend_calls=backend_calls, error=str(last_error))
        model = getattr(last_error, "model", None)
        raise UpstreamGenerationError(GENERIC_GENERATION_FAILURE, model=model) from last_error
