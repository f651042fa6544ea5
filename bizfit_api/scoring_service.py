"""LLM-backed business fit analysis with an algorithmic fallback.

``AIScoringService.analyze_business_fit`` makes at most one LLM call per
request. Any failure along the way (no credential, rate limit, timeout,
provider error, unparseable or incomplete output, no usable matches) ends in
the algorithmic fallback, which cannot fail for a non-empty catalog.
"""

import asyncio
from collections.abc import Sequence
from enum import StrEnum
from typing import Any

import structlog
from pydantic import ValidationError

from bizfit_api.catalog import get_catalog
from bizfit_api.config import Settings
from bizfit_api.content_cache import ContentGate
from bizfit_api.json_repair import repair_json
from bizfit_api.models import (
    BusinessFitAnalysis,
    BusinessMatch,
    BusinessModelDefinition,
    ComprehensiveFitAnalysis,
    ContentType,
    FitScore,
    LLMBusinessAnalysisEntry,
    LLMPersonalityProfile,
    PersonalityProfile,
    QuizAnswers,
)
from bizfit_api.observability import record_analysis_fallback
from bizfit_api.openai_client import OpenAIClient
from bizfit_api.prompts import ANALYSIS_SYSTEM_PROMPT, build_analysis_prompt
from bizfit_api.rate_limiter import RateLimiter, RateLimitExceeded
from bizfit_api.scoring import (
    describe_fit,
    get_development_areas,
    get_general_recommendations,
    get_path_challenges,
    get_path_strengths,
    get_personality_strengths,
    get_risk_profile_description,
    get_work_style_description,
    score_all,
)

logger = structlog.get_logger()

REQUIRED_KEYS = ("personalityProfile", "businessAnalysis", "recommendations")
FALLBACK_CONFIDENCE = 0.7


class AnalysisStage(StrEnum):
    """Where an analysis got to before it succeeded or fell back."""

    NOT_ATTEMPTED = "not_attempted"
    RATE_LIMITING = "rate_limiting"
    CALLING = "calling"
    PARSING = "parsing"
    VALIDATING = "validating"
    SUCCESS = "success"
    FALLBACK = "fallback"


class _AnalysisFailed(Exception):
    """Internal signal carrying the stage an analysis failed in."""

    def __init__(self, stage: AnalysisStage, detail: str):
        self.stage = stage
        self.detail = detail
        super().__init__(f"{stage}: {detail}")


class AIScoringService:
    """Scores business models for a user, preferring the LLM when available."""

    def __init__(
        self,
        catalog: Sequence[BusinessModelDefinition] | None = None,
        llm_client: OpenAIClient | None = None,
        rate_limiter: RateLimiter | None = None,
        llm_timeout: float = 15.0,
        shortlist_size: int = 5,
        max_tokens: int = 800,
        temperature: float = 0.3,
    ):
        self._catalog = tuple(catalog if catalog is not None else get_catalog())
        if not self._catalog:
            raise ValueError("Business model catalog is empty")
        self._catalog_by_id = {model.id: model for model in self._catalog}
        self._llm_client = llm_client
        self._rate_limiter = rate_limiter
        self._llm_timeout = llm_timeout
        self._shortlist_size = shortlist_size
        self._max_tokens = max_tokens
        self._temperature = temperature

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        llm_client: OpenAIClient | None,
        rate_limiter: RateLimiter | None,
        catalog: Sequence[BusinessModelDefinition] | None = None,
    ) -> "AIScoringService":
        return cls(
            catalog=catalog,
            llm_client=llm_client,
            rate_limiter=rate_limiter,
            llm_timeout=settings.llm_timeout_seconds,
            shortlist_size=settings.analysis_shortlist_size,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )

    @property
    def ai_enabled(self) -> bool:
        return self._llm_client is not None

    @property
    def catalog(self) -> tuple[BusinessModelDefinition, ...]:
        return self._catalog

    def fit_scores(self, answers: QuizAnswers) -> list[FitScore]:
        """Instant algorithmic scores for every catalog model, best first."""
        return [
            FitScore(business_model_id=model.id, name=model.name, fit_score=score)
            for model, score in score_all(answers, self._catalog)
        ]

    async def analyze_business_fit(self, answers: QuizAnswers) -> ComprehensiveFitAnalysis:
        """Analyze business fit, falling back to the algorithm on any failure."""
        if self._llm_client is None:
            return self._fallback(answers, AnalysisStage.NOT_ATTEMPTED, "LLM not configured")

        try:
            analysis = await self._analyze_with_llm(answers)
        except _AnalysisFailed as e:
            return self._fallback(answers, e.stage, e.detail)

        logger.info(
            "Business fit analysis completed",
            stage=AnalysisStage.SUCCESS.value,
            matches=len(analysis.top_matches),
        )
        return analysis

    async def analyze_for_attempt(
        self,
        answers: QuizAnswers,
        quiz_attempt_id: int | None,
        gate: ContentGate,
    ) -> ComprehensiveFitAnalysis:
        """Like ``analyze_business_fit`` but reuses and stores per-attempt results."""
        cached = await gate.lookup(quiz_attempt_id, ContentType.FIT_ANALYSIS)
        if cached is not None:
            try:
                return ComprehensiveFitAnalysis.model_validate(cached)
            except ValidationError:
                logger.warning(
                    "Stored fit analysis is invalid, regenerating",
                    quiz_attempt_id=quiz_attempt_id,
                )

        analysis = await self.analyze_business_fit(answers)
        await gate.save(quiz_attempt_id, ContentType.FIT_ANALYSIS, analysis.model_dump(mode="json"))
        return analysis

    async def _analyze_with_llm(self, answers: QuizAnswers) -> ComprehensiveFitAnalysis:
        stage = AnalysisStage.RATE_LIMITING
        if self._rate_limiter is not None:
            try:
                await self._rate_limiter.wait_for_slot()
            except RateLimitExceeded as e:
                raise _AnalysisFailed(stage, str(e)) from e

        stage = AnalysisStage.CALLING
        shortlist = score_all(answers, self._catalog)[: self._shortlist_size]
        prompt = build_analysis_prompt(answers, shortlist)
        try:
            response = await asyncio.wait_for(
                self._llm_client.complete(
                    ANALYSIS_SYSTEM_PROMPT,
                    prompt,
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                    json_response=True,
                    timeout=self._llm_timeout,
                    purpose="fit_analysis",
                ),
                timeout=self._llm_timeout,
            )
        except asyncio.TimeoutError:
            raise _AnalysisFailed(stage, f"timed out after {self._llm_timeout}s") from None
        except Exception as e:
            raise _AnalysisFailed(stage, f"{type(e).__name__}: {e}") from e

        content = response.content if response is not None else ""
        if not content or not content.strip():
            raise _AnalysisFailed(stage, "empty response content")

        stage = AnalysisStage.PARSING
        data = repair_json(content)
        if data is None:
            logger.error("Unparseable fit analysis response", content=content[:500])
            raise _AnalysisFailed(stage, "response is not a JSON object")

        stage = AnalysisStage.VALIDATING
        missing = [key for key in REQUIRED_KEYS if key not in data]
        if missing:
            logger.error("Incomplete fit analysis response", missing=missing, content=content[:500])
            raise _AnalysisFailed(stage, f"missing keys: {', '.join(missing)}")

        try:
            profile = LLMPersonalityProfile.model_validate(data["personalityProfile"])
        except ValidationError as e:
            logger.error("Invalid personality profile", content=content[:500])
            raise _AnalysisFailed(stage, f"invalid personalityProfile ({e.error_count()} errors)") from e

        recommendations = data["recommendations"]
        entries = data["businessAnalysis"]
        if not isinstance(recommendations, list) or not isinstance(entries, list):
            raise _AnalysisFailed(stage, "businessAnalysis and recommendations must be arrays")

        matches = self._map_matches(entries, answers)
        if not matches:
            raise _AnalysisFailed(stage, "no business analysis entries matched the catalog")

        return ComprehensiveFitAnalysis(
            top_matches=matches,
            personality_profile=PersonalityProfile(
                strengths=profile.strengths,
                development_areas=profile.development_areas,
                work_style=profile.work_style,
                risk_profile=profile.risk_profile,
            ),
            recommendations=[str(r) for r in recommendations if isinstance(r, str) and r.strip()],
            source="ai",
        )

    def _map_matches(self, entries: list[Any], answers: QuizAnswers) -> list[BusinessMatch]:
        """Map LLM entries to catalog models; unknown ids and bad entries are dropped."""
        matches: list[BusinessMatch] = []
        seen: set[str] = set()
        for raw in entries:
            try:
                entry = LLMBusinessAnalysisEntry.model_validate(raw)
            except ValidationError:
                logger.debug("Dropping malformed business analysis entry", entry=str(raw)[:200])
                continue

            model = self._catalog_by_id.get(entry.business_id)
            if model is None:
                logger.debug("Dropping unknown business model id", business_id=entry.business_id)
                continue
            if model.id in seen:
                continue
            seen.add(model.id)

            matches.append(
                BusinessMatch(
                    business_model=model,
                    analysis=BusinessFitAnalysis(
                        fit_score=round(entry.fit_score),
                        reasoning=entry.reasoning or describe_fit(model, answers),
                        strengths=entry.strengths,
                        challenges=entry.challenges,
                        confidence=entry.confidence,
                    ),
                )
            )

        matches.sort(key=lambda match: match.analysis.fit_score, reverse=True)
        return matches

    def _fallback(
        self, answers: QuizAnswers, stage: AnalysisStage, detail: str
    ) -> ComprehensiveFitAnalysis:
        logger.warning(
            "Using algorithmic fit analysis",
            stage=AnalysisStage.FALLBACK.value,
            failed_stage=stage.value,
            detail=detail,
        )
        record_analysis_fallback(stage.value)
        return self.fallback_analysis(answers, reason=f"{stage.value}: {detail}")

    def fallback_analysis(
        self, answers: QuizAnswers, reason: str | None = None
    ) -> ComprehensiveFitAnalysis:
        """Algorithmic analysis of every catalog model, best first."""
        matches = [
            BusinessMatch(
                business_model=model,
                analysis=BusinessFitAnalysis(
                    fit_score=score,
                    reasoning=describe_fit(model, answers),
                    strengths=get_path_strengths(model, answers),
                    challenges=get_path_challenges(model, answers),
                    confidence=FALLBACK_CONFIDENCE,
                ),
            )
            for model, score in score_all(answers, self._catalog)
        ]
        return ComprehensiveFitAnalysis(
            top_matches=matches,
            personality_profile=PersonalityProfile(
                strengths=get_personality_strengths(answers),
                development_areas=get_development_areas(answers),
                work_style=get_work_style_description(answers),
                risk_profile=get_risk_profile_description(answers),
            ),
            recommendations=get_general_recommendations(answers),
            source="algorithmic",
            fallback_reason=reason,
        )
