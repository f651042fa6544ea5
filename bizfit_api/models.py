"""Pydantic models for quiz answers, the business model catalog, and API payloads."""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# =============================================================================
# Quiz Models
# =============================================================================

DEFAULT_RATING = 3
DEFAULT_INCOME_GOAL = 1000
DEFAULT_UPFRONT_INVESTMENT = 500
DEFAULT_WEEKLY_HOURS = 10

# 1-5 self-assessment ratings the scoring and prompts may reference
RATING_FIELDS = frozenset(
    {
        "passion_identity_alignment",
        "passive_income_importance",
        "long_term_consistency",
        "trial_error_comfort",
        "systems_routines_enjoyment",
        "discouragement_resilience",
        "tool_learning_willingness",
        "organization_level",
        "self_motivation_level",
        "uncertainty_handling",
        "repetitive_tasks_feeling",
        "brand_face_comfort",
        "competitiveness_level",
        "creative_work_enjoyment",
        "direct_communication_enjoyment",
        "tech_skills_rating",
        "risk_comfort_level",
        "feedback_rejection_response",
        "sales_comfort",
        "inventory_comfort",
        "digital_content_comfort",
        "control_importance",
        "online_presence_comfort",
        "client_calls_comfort",
        "social_media_interest",
        "promoting_others_openness",
        "meaningful_contribution_importance",
    }
)

Rating = Annotated[int, Field(ge=1, le=5)]


class QuizAnswers(BaseModel):
    """A completed quiz submission.

    Accepts the camelCase keys sent by the frontend as well as snake_case.
    Missing or null answers fall back to the documented defaults: ratings are
    a neutral 3, income goal $1000/month, investment $500, 10 hours/week.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    # Goals and constraints
    main_motivation: str = "financial-freedom"
    first_income_timeline: str = "3-6-months"
    success_income_goal: int = Field(default=DEFAULT_INCOME_GOAL, ge=0)
    upfront_investment: int = Field(default=DEFAULT_UPFRONT_INVESTMENT, ge=0)
    weekly_time_commitment: int = Field(default=DEFAULT_WEEKLY_HOURS, ge=0, le=168)
    business_exit_plan: str = "not-sure"
    business_growth_size: str = "full-time-income"
    passion_identity_alignment: Rating = DEFAULT_RATING
    passive_income_importance: Rating = DEFAULT_RATING

    # Work habits
    long_term_consistency: Rating = DEFAULT_RATING
    trial_error_comfort: Rating = DEFAULT_RATING
    learning_preference: str = "hands-on"
    systems_routines_enjoyment: Rating = DEFAULT_RATING
    discouragement_resilience: Rating = DEFAULT_RATING
    tool_learning_willingness: Rating = DEFAULT_RATING
    organization_level: Rating = DEFAULT_RATING
    self_motivation_level: Rating = DEFAULT_RATING
    uncertainty_handling: Rating = DEFAULT_RATING
    repetitive_tasks_feeling: Rating = DEFAULT_RATING
    work_collaboration_preference: str = "mostly-solo"
    work_structure_preference: str = "some-structure"
    decision_making_style: str = "after-research"

    # Personality and skills
    brand_face_comfort: Rating = DEFAULT_RATING
    competitiveness_level: Rating = DEFAULT_RATING
    creative_work_enjoyment: Rating = DEFAULT_RATING
    direct_communication_enjoyment: Rating = DEFAULT_RATING
    tech_skills_rating: Rating = DEFAULT_RATING
    risk_comfort_level: Rating = DEFAULT_RATING
    feedback_rejection_response: Rating = DEFAULT_RATING
    sales_comfort: Rating = DEFAULT_RATING
    familiar_tools: list[str] = Field(default_factory=list)

    # Adaptive and preference questions
    inventory_comfort: Rating = DEFAULT_RATING
    digital_content_comfort: Rating = DEFAULT_RATING
    path_preference: str = "proven-path"
    control_importance: Rating = DEFAULT_RATING
    online_presence_comfort: Rating = DEFAULT_RATING
    client_calls_comfort: Rating = DEFAULT_RATING
    physical_shipping_openness: str = "maybe"
    work_style_preference: str = "mix"
    social_media_interest: Rating = DEFAULT_RATING
    ecosystem_participation: str = "maybe"
    existing_audience: str = "no"
    promoting_others_openness: Rating = DEFAULT_RATING
    teach_vs_solve_preference: str = "both"
    meaningful_contribution_importance: Rating = DEFAULT_RATING

    @model_validator(mode="before")
    @classmethod
    def _drop_null_answers(cls, data: Any) -> Any:
        """Treat explicit nulls from partially completed quizzes as missing."""
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data

    def rating(self, field_name: str) -> int:
        """Return a 1-5 rating by field name."""
        if field_name not in RATING_FIELDS:
            raise KeyError(f"Unknown rating field: {field_name}")
        return getattr(self, field_name)


# =============================================================================
# Business Model Catalog Models
# =============================================================================


class ModelRequirements(BaseModel):
    """Requirement bands a user's answers are compared against."""

    model_config = ConfigDict(frozen=True)

    min_monthly_income: int = Field(..., ge=0, description="Typical monthly income at maturity (low end)")
    max_monthly_income: int = Field(..., ge=0, description="Typical monthly income ceiling")
    months_to_first_income: float = Field(..., gt=0, description="Typical months until first income")
    min_startup_budget: int = Field(..., ge=0, description="Minimum realistic upfront investment (USD)")
    min_weekly_hours: int = Field(..., gt=0, description="Minimum weekly hours to make progress")
    risk_level: int = Field(..., ge=1, le=5, description="Risk tolerance the model demands")
    skill_levels: dict[str, int] = Field(default_factory=dict, description="Required skill ratings")
    personality_targets: dict[str, int] = Field(
        default_factory=dict, description="Ideal personality trait ratings"
    )

    @field_validator("skill_levels", "personality_targets")
    @classmethod
    def _known_rating_fields(cls, value: dict[str, int]) -> dict[str, int]:
        for field_name, level in value.items():
            if field_name not in RATING_FIELDS:
                raise ValueError(f"Unknown quiz rating field: {field_name}")
            if not 1 <= level <= 5:
                raise ValueError(f"Rating level for {field_name} must be 1-5, got {level}")
        return value

    @model_validator(mode="after")
    def _income_range_ordered(self) -> "ModelRequirements":
        if self.max_monthly_income < self.min_monthly_income:
            raise ValueError("max_monthly_income must be >= min_monthly_income")
        return self


class BusinessModelDefinition(BaseModel):
    """Static catalog entry describing one business model."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable business model identifier")
    name: str = Field(..., description="Display name")
    description: str = Field(..., description="Short description")
    difficulty: Literal["Easy", "Medium", "Hard"] = Field(..., description="Difficulty")
    time_to_profit: str = Field(..., description="Typical time to profit")
    startup_cost: str = Field(..., description="Startup cost range")
    potential_income: str = Field(..., description="Potential income range")
    skills: list[str] = Field(default_factory=list, description="Required skills")
    best_fit_personality: list[str] = Field(default_factory=list, description="Personality fit tags")
    requirements: ModelRequirements


# =============================================================================
# Fit Analysis Models
# =============================================================================


class BusinessFitAnalysis(BaseModel):
    """Fit score and narrative for one business model."""

    fit_score: int = Field(..., ge=0, le=100, description="Compatibility score")
    reasoning: str = Field(..., description="Why the score was given")
    strengths: list[str] = Field(default_factory=list, description="Strengths for this model")
    challenges: list[str] = Field(default_factory=list, description="Challenges for this model")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence in the score")


class BusinessMatch(BaseModel):
    """A catalog entry paired with its fit analysis."""

    business_model: BusinessModelDefinition
    analysis: BusinessFitAnalysis


class PersonalityProfile(BaseModel):
    """Summary of the user's entrepreneurial personality."""

    strengths: list[str] = Field(default_factory=list)
    development_areas: list[str] = Field(default_factory=list)
    work_style: str = ""
    risk_profile: str = ""


class ComprehensiveFitAnalysis(BaseModel):
    """Ranked business model matches plus profile and recommendations."""

    top_matches: list[BusinessMatch]
    personality_profile: PersonalityProfile
    recommendations: list[str] = Field(default_factory=list)
    source: Literal["ai", "algorithmic"] = Field(..., description="Which scoring path produced this")
    fallback_reason: str | None = Field(default=None, description="Why the AI path was not used")


class FitScore(BaseModel):
    """Algorithmic score for one business model."""

    business_model_id: str
    name: str
    fit_score: int = Field(..., ge=0, le=100)


# =============================================================================
# LLM Output Models (internal)
# =============================================================================


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class LLMPersonalityProfile(_CamelModel):
    """Personality profile as returned by the LLM; every field is required."""

    strengths: list[str]
    development_areas: list[str]
    work_style: str
    risk_profile: str


class LLMBusinessAnalysisEntry(_CamelModel):
    """One businessAnalysis entry as returned by the LLM.

    ``json.loads`` accepts ``NaN`` and ``Infinity``; such entries fail validation.
    """

    model_config = ConfigDict(allow_inf_nan=False)

    business_id: str
    fit_score: float
    reasoning: str = ""
    strengths: list[str] = Field(default_factory=list)
    challenges: list[str] = Field(default_factory=list)
    confidence: float = 0.7

    @field_validator("fit_score")
    @classmethod
    def _clamp_score(cls, value: float) -> float:
        return min(max(value, 0.0), 100.0)

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        # Some models answer on a 0-100 scale
        if value > 1.0:
            value = value / 100.0
        return min(max(value, 0.0), 1.0)


# =============================================================================
# AI Content Models
# =============================================================================


class ContentType(StrEnum):
    """Fixed AI content types; per-model content uses ``model_<name>``."""

    PREVIEW = "preview"
    FULL_REPORT = "fullReport"
    CHARACTERISTICS = "characteristics"
    FIT_ANALYSIS = "fitAnalysis"
    FIT_DESCRIPTIONS = "fitDescriptions"


MODEL_CONTENT_PREFIX = "model_"


def model_content_type(model_name: str) -> str:
    """Content type key for per-business-model insights."""
    return f"{MODEL_CONTENT_PREFIX}{model_name}"


def is_valid_content_type(content_type: str) -> bool:
    """Check whether a string names a known content type."""
    if content_type in {member.value for member in ContentType}:
        return True
    return content_type.startswith(MODEL_CONTENT_PREFIX) and len(content_type) > len(
        MODEL_CONTENT_PREFIX
    )


class AIContentRecord(BaseModel):
    """Stored AI content for one (quiz attempt, content type) key."""

    quiz_attempt_id: int
    content_type: str
    content: Any
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class GenerationDecision(BaseModel):
    """Outcome of the content gate check."""

    should_generate: bool
    reason: str
    existing_content: Any | None = None


class PreviewInsights(BaseModel):
    """Results-page preview narrative."""

    preview_insights: str
    key_insights: list[str] = Field(default_factory=list)
    success_predictors: list[str] = Field(default_factory=list)


class FullReportInsights(BaseModel):
    """Full-report narrative sections."""

    personalized_recommendations: str
    potential_challenges: str
    top_fit_explanation: str
    bottom_fit_explanation: str


FitType = Literal["best", "strong", "possible", "poor"]


class ModelInsights(BaseModel):
    """Why a single business model does or does not fit."""

    model_config = ConfigDict(protected_namespaces=())

    model_fit_reason: str


class Characteristics(BaseModel):
    """Short entrepreneurial characteristics."""

    characteristics: list[str]


class BusinessFitDescriptions(BaseModel):
    """Per-model "why this fits you" descriptions keyed by business model id."""

    descriptions: dict[str, str]


class LoadingStep(BaseModel):
    """One user-visible step of report generation."""

    key: str
    label: str
    status: Literal["completed", "cached", "fallback"]


class ReportBundle(BaseModel):
    """Everything generated for a full report, in loading order."""

    model_config = ConfigDict(protected_namespaces=())

    preview: PreviewInsights
    full_report: FullReportInsights
    model_insights: dict[str, ModelInsights]
    characteristics: Characteristics
    steps: list[LoadingStep]


# =============================================================================
# API Request/Response Models
# =============================================================================


class FitScoresRequest(BaseModel):
    """Request body for algorithmic fit scores."""

    quiz_data: QuizAnswers


class FitAnalysisRequest(BaseModel):
    """Request body for the AI business fit analysis."""

    quiz_data: QuizAnswers
    quiz_attempt_id: int | None = Field(default=None, ge=1)


class ShouldGenerateRequest(BaseModel):
    """Request body for the content gate check."""

    content_type: str = Field(..., min_length=1)
    quiz_data: QuizAnswers | None = None
    quiz_attempt_id: int | None = Field(default=None, ge=1)


class SaveContentRequest(BaseModel):
    """Request body for storing AI content."""

    content_type: str = Field(..., min_length=1)
    content: Any = Field(...)

    @field_validator("content")
    @classmethod
    def _content_present(cls, value: Any) -> Any:
        if value is None or value == "" or value == {} or value == []:
            raise ValueError("AI content is required")
        return value


class AIContentResponse(BaseModel):
    """Response for stored AI content lookups."""

    success: bool = True
    ai_content: AIContentRecord | None = None


class ClearContentResponse(BaseModel):
    """Response for clearing stored AI content."""

    deleted_count: int


class InsightsRequest(BaseModel):
    """Request body for narrative insight generation."""

    quiz_data: QuizAnswers
    quiz_attempt_id: int | None = Field(default=None, ge=1)
    ranked_business_model_ids: list[str] | None = Field(
        default=None, description="Business model ids best-first; defaults to algorithmic ranking"
    )


class ModelInsightsRequest(BaseModel):
    """Request body for per-model insights."""

    model_config = ConfigDict(protected_namespaces=())

    quiz_data: QuizAnswers
    model_name: str = Field(..., min_length=1, max_length=200)
    fit_type: FitType
    quiz_attempt_id: int | None = Field(default=None, ge=1)


class ChatMessage(BaseModel):
    """A single chat message for the completion proxy."""

    role: Literal["system", "user", "assistant"]
    content: str


class ChatCompletionRequest(BaseModel):
    """Request body for the chat-completion proxy."""

    messages: list[ChatMessage] = Field(..., min_length=1)
    max_tokens: int = Field(default=1200, ge=1, le=4000)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    json_response: bool = False


class ChatCompletionResponse(BaseModel):
    """Response from the chat-completion proxy."""

    content: str
    tokens_used: int
    model: str


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: Literal["healthy", "degraded", "unhealthy"] = Field(..., description="Service status")
    llm_configured: bool = Field(..., description="Whether an LLM credential is configured")
    database_connected: bool = Field(..., description="Persistent content store reachable")
    rate_limiter: dict[str, Any] = Field(default_factory=dict, description="Outbound LLM limiter stats")
    content_cache: dict[str, Any] = Field(default_factory=dict, description="In-memory content cache stats")
    catalog_size: int = Field(..., description="Number of business models")
    version: str = Field(..., description="API version")


class OpenAIStatusResponse(BaseModel):
    """Response for the OpenAI key status endpoint. The key itself is never echoed."""

    configured: bool = Field(..., description="Whether a well-formed key is configured")
    status: Literal["ready", "not_configured", "invalid_key"] = Field(..., description="Key status")
    key_check: Literal["not_set", "valid", "bad_prefix", "bad_length", "bad_characters"] = Field(
        ..., description="Result of the key format check"
    )
