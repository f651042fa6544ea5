"""Narrative AI content: preview, full report, per-model insights, characteristics.

Each operation asks the content gate first. A stored record is returned as-is;
otherwise the LLM is called once and its output parsed. Anything short of a
complete, parseable answer is replaced by a template built from the user's
answers. Generated and template results are both saved through the gate so the
next request short-circuits.
"""

import asyncio
import re
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from bizfit_api import fallback_content
from bizfit_api.catalog import get_catalog
from bizfit_api.config import Settings
from bizfit_api.content_cache import ContentGate
from bizfit_api.json_repair import repair_json
from bizfit_api.models import (
    BusinessFitDescriptions,
    BusinessModelDefinition,
    Characteristics,
    ContentType,
    FitType,
    FullReportInsights,
    LoadingStep,
    ModelInsights,
    PreviewInsights,
    QuizAnswers,
    ReportBundle,
    model_content_type,
)
from bizfit_api.observability import record_narrative_fallback
from bizfit_api.openai_client import OpenAIClient
from bizfit_api.prompts import (
    COACH_JSON_SYSTEM_PROMPT,
    COACH_MARKDOWN_SYSTEM_PROMPT,
    build_business_fit_descriptions_prompt,
    build_characteristics_prompt,
    build_model_insights_prompt,
    build_personalized_insights_prompt,
    build_results_preview_prompt,
)
from bizfit_api.rate_limiter import RateLimiter, RateLimitExceeded
from bizfit_api.scoring import ScoredModel, UnknownBusinessModelError, calculate_fit_score, score_all

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)
StepStatus = str

MIN_NARRATIVE_LENGTH = 100
MAX_CHARACTERISTICS = 6
TOP_COUNT = 3
BOTTOM_COUNT = 3
NARRATIVE_TEMPERATURE = 0.7

_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.*\S)\s*$")


def extract_section(content: str, heading: str) -> str:
    """Text under a ``### heading`` up to the next ``###`` heading."""
    pattern = re.compile(
        rf"^#{{2,4}}\s*{re.escape(heading)}\s*:?\s*$(.*?)(?=^#{{2,4}}\s|\Z)",
        re.MULTILINE | re.DOTALL | re.IGNORECASE,
    )
    match = pattern.search(content)
    return match.group(1).strip() if match else ""


def extract_bullets(section: str) -> list[str]:
    """Bullet or numbered list items of a section, markers removed."""
    items = []
    for line in section.splitlines():
        match = _BULLET_RE.match(line)
        if match:
            items.append(match.group(1).strip())
    return items


def fit_type_for_rank(index: int, score: int) -> FitType:
    """Fit type for a model at ``index`` in the ranking."""
    if index == 0:
        return "best"
    if score >= 70:
        return "strong"
    if score >= 50:
        return "possible"
    return "poor"


class _NarrativeUnavailable(Exception):
    """Internal signal that a narrative must come from the template."""

    pass


class InsightsService:
    """Generates and caches narrative AI content for a quiz attempt."""

    def __init__(
        self,
        gate: ContentGate,
        llm_client: OpenAIClient | None = None,
        rate_limiter: RateLimiter | None = None,
        llm_timeout: float = 15.0,
        catalog: Sequence[BusinessModelDefinition] | None = None,
    ):
        self._gate = gate
        self._llm_client = llm_client
        self._rate_limiter = rate_limiter
        self._llm_timeout = llm_timeout
        self._catalog = tuple(catalog if catalog is not None else get_catalog())
        self._catalog_by_id = {model.id: model for model in self._catalog}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        gate: ContentGate,
        llm_client: OpenAIClient | None,
        rate_limiter: RateLimiter | None,
        catalog: Sequence[BusinessModelDefinition] | None = None,
    ) -> "InsightsService":
        return cls(
            gate=gate,
            llm_client=llm_client,
            rate_limiter=rate_limiter,
            llm_timeout=settings.llm_timeout_seconds,
            catalog=catalog,
        )

    def rank_models(
        self, answers: QuizAnswers, ranked_ids: Sequence[str] | None = None
    ) -> list[ScoredModel]:
        """Models best-first, either as given by id or by algorithmic score.

        Raises:
            UnknownBusinessModelError: If a given id is not in the catalog.
        """
        if not ranked_ids:
            return score_all(answers, self._catalog)
        ranked = []
        for model_id in ranked_ids:
            model = self._catalog_by_id.get(model_id)
            if model is None:
                raise UnknownBusinessModelError(model_id)
            ranked.append((model, calculate_fit_score(model, answers)))
        return ranked

    # =========================================================================
    # LLM call and gate plumbing
    # =========================================================================

    async def _complete(
        self,
        system_prompt: str,
        prompt: str,
        *,
        max_tokens: int,
        json_response: bool,
        purpose: str,
    ) -> str:
        if self._llm_client is None:
            raise _NarrativeUnavailable("LLM not configured")

        if self._rate_limiter is not None:
            try:
                await self._rate_limiter.wait_for_slot()
            except RateLimitExceeded as e:
                raise _NarrativeUnavailable(str(e)) from e

        try:
            response = await asyncio.wait_for(
                self._llm_client.complete(
                    system_prompt,
                    prompt,
                    max_tokens=max_tokens,
                    temperature=NARRATIVE_TEMPERATURE,
                    json_response=json_response,
                    timeout=self._llm_timeout,
                    purpose=purpose,
                ),
                timeout=self._llm_timeout,
            )
        except asyncio.TimeoutError:
            raise _NarrativeUnavailable(f"timed out after {self._llm_timeout}s") from None
        except Exception as e:
            raise _NarrativeUnavailable(f"{type(e).__name__}: {e}") from e

        content = response.content if response is not None else ""
        if not content or not content.strip():
            raise _NarrativeUnavailable("empty response content")
        return content

    async def _generate(
        self,
        content_type: str,
        answers: QuizAnswers,
        quiz_attempt_id: int | None,
        model_cls: type[T],
        produce: Callable[[], Awaitable[T]],
        fallback: Callable[[], T],
    ) -> tuple[T, StepStatus]:
        decision = await self._gate.should_generate(content_type, answers, quiz_attempt_id)
        if decision.existing_content is not None:
            try:
                return model_cls.model_validate(decision.existing_content), "cached"
            except ValidationError:
                logger.warning(
                    "Stored AI content is invalid, regenerating",
                    quiz_attempt_id=quiz_attempt_id,
                    content_type=content_type,
                )

        try:
            if decision.existing_content is None and not decision.should_generate:
                raise _NarrativeUnavailable(decision.reason)
            result = await produce()
            status = "completed"
        except _NarrativeUnavailable as e:
            logger.warning(
                "Using fallback AI content",
                content_type=content_type,
                quiz_attempt_id=quiz_attempt_id,
                reason=str(e),
            )
            record_narrative_fallback(content_type)
            result = fallback()
            status = "fallback"

        await self._gate.save(quiz_attempt_id, content_type, result.model_dump(mode="json"))
        return result, status

    # =========================================================================
    # Results preview
    # =========================================================================

    async def _preview(
        self, answers: QuizAnswers, top_paths: Sequence[ScoredModel], quiz_attempt_id: int | None
    ) -> tuple[PreviewInsights, StepStatus]:
        async def produce() -> PreviewInsights:
            if not top_paths:
                raise _NarrativeUnavailable("no business models to preview")
            content = await self._complete(
                COACH_MARKDOWN_SYSTEM_PROMPT,
                build_results_preview_prompt(answers, top_paths),
                max_tokens=1200,
                json_response=False,
                purpose="preview",
            )
            return self._parse_preview(content)

        return await self._generate(
            ContentType.PREVIEW,
            answers,
            quiz_attempt_id,
            PreviewInsights,
            produce,
            lambda: fallback_content.fallback_preview(answers, top_paths),
        )

    @staticmethod
    def _parse_preview(content: str) -> PreviewInsights:
        if len(content.strip()) < MIN_NARRATIVE_LENGTH:
            raise _NarrativeUnavailable("preview content too short")

        preview = extract_section(content, "Preview Insights")
        if not preview:
            raise _NarrativeUnavailable("missing Preview Insights section")

        return PreviewInsights(
            preview_insights=preview,
            key_insights=extract_bullets(extract_section(content, "Key Insights")),
            success_predictors=extract_bullets(extract_section(content, "Success Predictors")),
        )

    async def generate_results_preview(
        self,
        answers: QuizAnswers,
        top_paths: Sequence[ScoredModel],
        quiz_attempt_id: int | None = None,
    ) -> PreviewInsights:
        result, _ = await self._preview(answers, top_paths, quiz_attempt_id)
        return result

    # =========================================================================
    # Full report
    # =========================================================================

    async def _full_report(
        self,
        answers: QuizAnswers,
        top_paths: Sequence[ScoredModel],
        bottom_paths: Sequence[ScoredModel],
        quiz_attempt_id: int | None,
    ) -> tuple[FullReportInsights, StepStatus]:
        async def produce() -> FullReportInsights:
            content = await self._complete(
                COACH_MARKDOWN_SYSTEM_PROMPT,
                build_personalized_insights_prompt(answers, top_paths, bottom_paths),
                max_tokens=1200,
                json_response=False,
                purpose="full_report",
            )
            return self._parse_full_report(content)

        return await self._generate(
            ContentType.FULL_REPORT,
            answers,
            quiz_attempt_id,
            FullReportInsights,
            produce,
            lambda: fallback_content.fallback_full_report(answers, top_paths, bottom_paths),
        )

    @staticmethod
    def _parse_full_report(content: str) -> FullReportInsights:
        if len(content.strip()) < MIN_NARRATIVE_LENGTH:
            raise _NarrativeUnavailable("full report content too short")

        sections = {
            "personalized_recommendations": extract_section(content, "Personalized Recommendations"),
            "potential_challenges": extract_section(content, "Potential Challenges"),
            "top_fit_explanation": extract_section(content, "Top Fit Explanation"),
            "bottom_fit_explanation": extract_section(content, "Bottom Fit Explanation"),
        }
        missing = [name for name, text in sections.items() if not text]
        if missing:
            raise _NarrativeUnavailable(f"missing sections: {', '.join(missing)}")
        return FullReportInsights(**sections)

    async def generate_personalized_insights(
        self,
        answers: QuizAnswers,
        top_paths: Sequence[ScoredModel],
        bottom_paths: Sequence[ScoredModel],
        quiz_attempt_id: int | None = None,
    ) -> FullReportInsights:
        result, _ = await self._full_report(answers, top_paths, bottom_paths, quiz_attempt_id)
        return result

    # =========================================================================
    # Per-model insights
    # =========================================================================

    async def _model_insights(
        self,
        answers: QuizAnswers,
        model_name: str,
        fit_type: FitType,
        quiz_attempt_id: int | None,
    ) -> tuple[ModelInsights, StepStatus]:
        async def produce() -> ModelInsights:
            content = await self._complete(
                COACH_JSON_SYSTEM_PROMPT,
                build_model_insights_prompt(answers, model_name, fit_type),
                max_tokens=400,
                json_response=True,
                purpose="model_insights",
            )
            data = repair_json(content)
            reason = data.get("modelFitReason") if data else None
            if not isinstance(reason, str) or not reason.strip():
                logger.error("Unparseable model insights", content=content[:500])
                raise _NarrativeUnavailable("missing modelFitReason")
            return ModelInsights(model_fit_reason=reason.strip())

        return await self._generate(
            model_content_type(model_name),
            answers,
            quiz_attempt_id,
            ModelInsights,
            produce,
            lambda: fallback_content.fallback_model_insights(answers, model_name, fit_type),
        )

    async def generate_model_insights(
        self,
        answers: QuizAnswers,
        model_name: str,
        fit_type: FitType,
        quiz_attempt_id: int | None = None,
    ) -> ModelInsights:
        result, _ = await self._model_insights(answers, model_name, fit_type, quiz_attempt_id)
        return result

    # =========================================================================
    # Characteristics
    # =========================================================================

    async def _characteristics(
        self, answers: QuizAnswers, quiz_attempt_id: int | None
    ) -> tuple[Characteristics, StepStatus]:
        async def produce() -> Characteristics:
            content = await self._complete(
                COACH_JSON_SYSTEM_PROMPT,
                build_characteristics_prompt(answers),
                max_tokens=200,
                json_response=True,
                purpose="characteristics",
            )
            data = repair_json(content)
            raw = data.get("characteristics") if data else None
            if not isinstance(raw, list):
                logger.error("Unparseable characteristics", content=content[:500])
                raise _NarrativeUnavailable("missing characteristics array")
            traits = [item.strip() for item in raw if isinstance(item, str) and item.strip()]
            if not traits:
                raise _NarrativeUnavailable("empty characteristics")
            return Characteristics(characteristics=traits[:MAX_CHARACTERISTICS])

        return await self._generate(
            ContentType.CHARACTERISTICS,
            answers,
            quiz_attempt_id,
            Characteristics,
            produce,
            lambda: fallback_content.fallback_characteristics(answers),
        )

    async def generate_characteristics(
        self, answers: QuizAnswers, quiz_attempt_id: int | None = None
    ) -> Characteristics:
        result, _ = await self._characteristics(answers, quiz_attempt_id)
        return result

    # =========================================================================
    # Business fit descriptions
    # =========================================================================

    async def generate_business_fit_descriptions(
        self,
        answers: QuizAnswers,
        matches: Sequence[ScoredModel],
        quiz_attempt_id: int | None = None,
    ) -> BusinessFitDescriptions:
        """One "why this fits you" paragraph per match, keyed by model id."""

        def fallback() -> BusinessFitDescriptions:
            return fallback_content.fallback_fit_descriptions(answers, matches)

        async def produce() -> BusinessFitDescriptions:
            if not matches:
                raise _NarrativeUnavailable("no business models to describe")
            content = await self._complete(
                COACH_JSON_SYSTEM_PROMPT,
                build_business_fit_descriptions_prompt(answers, matches),
                max_tokens=800,
                json_response=True,
                purpose="fit_descriptions",
            )
            data = repair_json(content)
            raw = data.get("businessFitDescriptions") if data else None
            if not isinstance(raw, dict):
                logger.error("Unparseable business fit descriptions", content=content[:500])
                raise _NarrativeUnavailable("missing businessFitDescriptions")

            wanted = [model.id for model, _ in matches]
            generated = {
                model_id: raw[model_id].strip()
                for model_id in wanted
                if isinstance(raw.get(model_id), str) and raw[model_id].strip()
            }
            if not generated:
                raise _NarrativeUnavailable("no descriptions for the requested models")

            # Fill any model the LLM skipped from the template
            templates = fallback().descriptions
            return BusinessFitDescriptions(
                descriptions={model_id: generated.get(model_id, templates[model_id]) for model_id in wanted}
            )

        result, _ = await self._generate(
            ContentType.FIT_DESCRIPTIONS,
            answers,
            quiz_attempt_id,
            BusinessFitDescriptions,
            produce,
            fallback,
        )
        return result

    # =========================================================================
    # Full loading sequence
    # =========================================================================

    async def generate_report(
        self,
        answers: QuizAnswers,
        quiz_attempt_id: int | None = None,
        on_step: Callable[[LoadingStep], None] | None = None,
        ranked: Sequence[ScoredModel] | None = None,
    ) -> ReportBundle:
        """Run preview, full report, per-model insights and characteristics in order."""
        ranked = list(ranked) if ranked else score_all(answers, self._catalog)
        top_paths = ranked[:TOP_COUNT]
        bottom_paths = list(reversed(ranked[-BOTTOM_COUNT:]))
        steps: list[LoadingStep] = []

        def report(key: str, label: str, status: StepStatus) -> None:
            step = LoadingStep(key=key, label=label, status=status)
            steps.append(step)
            if on_step is not None:
                on_step(step)

        preview, status = await self._preview(answers, top_paths, quiz_attempt_id)
        report(ContentType.PREVIEW.value, "Analyzing your quiz responses", status)

        full_report, status = await self._full_report(
            answers, top_paths, bottom_paths, quiz_attempt_id
        )
        report(ContentType.FULL_REPORT.value, "Generating personalized insights", status)

        model_insights: dict[str, ModelInsights] = {}
        for index, (model, score) in enumerate(top_paths):
            insights, status = await self._model_insights(
                answers, model.name, fit_type_for_rank(index, score), quiz_attempt_id
            )
            model_insights[model.id] = insights
            report(model_content_type(model.name), f"Evaluating {model.name}", status)

        characteristics, status = await self._characteristics(answers, quiz_attempt_id)
        report(ContentType.CHARACTERISTICS.value, "Identifying your key characteristics", status)

        logger.info(
            "Report generated",
            quiz_attempt_id=quiz_attempt_id,
            steps={step.key: step.status for step in steps},
        )

        return ReportBundle(
            preview=preview,
            full_report=full_report,
            model_insights=model_insights,
            characteristics=characteristics,
            steps=steps,
        )
