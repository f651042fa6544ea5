"""FastAPI application entrypoint for the BizFit API."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded as RequestRateLimitExceeded
from slowapi.util import get_remote_address

from bizfit_api import __version__
from bizfit_api.config import API_KEY_CHECKS, get_settings
from bizfit_api.content_cache import (
    ContentGate,
    ContentStoreError,
    InMemoryContentCache,
    SQLContentStore,
    TieredContentCache,
)
from bizfit_api.database import check_connection, create_db_engine, create_session_factory, init_db
from bizfit_api.insights_service import TOP_COUNT, InsightsService
from bizfit_api.models import (
    AIContentResponse,
    BusinessFitDescriptions,
    BusinessModelDefinition,
    Characteristics,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ClearContentResponse,
    ComprehensiveFitAnalysis,
    FitAnalysisRequest,
    FitScore,
    FitScoresRequest,
    FullReportInsights,
    GenerationDecision,
    HealthResponse,
    InsightsRequest,
    ModelInsights,
    ModelInsightsRequest,
    OpenAIStatusResponse,
    PreviewInsights,
    ReportBundle,
    SaveContentRequest,
    ShouldGenerateRequest,
    is_valid_content_type,
)
from bizfit_api.observability import generate_trace_id, set_trace_id
from bizfit_api.openai_client import (
    OpenAIAuthError,
    OpenAIClient,
    OpenAIError,
    OpenAIRateLimitError,
    OpenAITimeoutError,
    create_openai_client,
)
from bizfit_api.rate_limiter import RateLimiter, RateLimitExceeded
from bizfit_api.scoring import UnknownBusinessModelError
from bizfit_api.scoring_service import AIScoringService

# Configure structlog
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()
settings = get_settings()

# Inbound HTTP rate limiter (per client IP)
limiter = Limiter(key_func=get_remote_address)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting BizFit API", version=__version__, environment=settings.environment)

    rate_limiter = RateLimiter(
        max_requests=settings.ai_max_requests_per_window,
        window_seconds=settings.ai_window_seconds,
        max_wait_seconds=settings.ai_max_wait_seconds,
        max_history=settings.ai_max_history,
        cleanup_interval_seconds=settings.ai_cleanup_interval_seconds,
    )
    rate_limiter.start()

    llm_client = create_openai_client(settings)
    if llm_client is not None:
        await llm_client.connect()

    engine = create_db_engine(settings.database_url)
    init_db(engine)
    fast_cache = InMemoryContentCache(
        ttl_seconds=settings.content_cache_ttl,
        max_entries=settings.content_cache_max_entries,
    )
    cache = TieredContentCache(
        fast=fast_cache,
        persistent=SQLContentStore(create_session_factory(engine)),
    )
    gate = ContentGate(cache)

    app.state.rate_limiter = rate_limiter
    app.state.llm_client = llm_client
    app.state.engine = engine
    app.state.fast_cache = fast_cache
    app.state.content_gate = gate
    app.state.scoring_service = AIScoringService.from_settings(settings, llm_client, rate_limiter)
    app.state.insights_service = InsightsService.from_settings(settings, gate, llm_client, rate_limiter)

    yield

    # Cleanup on shutdown
    logger.info("Shutting down BizFit API")
    await rate_limiter.destroy()
    if llm_client is not None:
        await llm_client.close()
    engine.dispose()


# Create FastAPI app
app = FastAPI(
    title="BizFit API",
    description="Business model fit scoring and AI-generated quiz insights",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Trace ID middleware for request correlation
@app.middleware("http")
async def trace_id_middleware(request: Request, call_next):
    """Add trace ID to every request for log correlation."""
    trace_id = request.headers.get("X-Trace-ID", generate_trace_id())
    set_trace_id(trace_id)

    # Bind trace ID to structlog context for all logs in this request
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(trace_id=trace_id)

    response = await call_next(request)

    response.headers["X-Trace-ID"] = trace_id
    return response


# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RequestRateLimitExceeded, _rate_limit_exceeded_handler)

# Add Prometheus metrics
Instrumentator().instrument(app).expose(app)


@app.exception_handler(UnknownBusinessModelError)
async def unknown_business_model_handler(
    request: Request, exc: UnknownBusinessModelError
) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"detail": f"Unknown business model: {exc.args[0]}"},
    )


@app.exception_handler(ContentStoreError)
async def content_store_error_handler(request: Request, exc: ContentStoreError) -> JSONResponse:
    logger.error("Content store unavailable", error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "AI content store unavailable"})


# =============================================================================
# Dependencies
# =============================================================================


def get_scoring_service(request: Request) -> AIScoringService:
    return request.app.state.scoring_service


def get_insights_service(request: Request) -> InsightsService:
    return request.app.state.insights_service


def get_content_gate(request: Request) -> ContentGate:
    return request.app.state.content_gate


def get_llm_client(request: Request) -> OpenAIClient | None:
    return request.app.state.llm_client


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def _require_content_type(content_type: str) -> str:
    if not is_valid_content_type(content_type):
        raise HTTPException(status_code=400, detail=f"Invalid content type: {content_type}")
    return content_type


# =============================================================================
# Health Endpoints
# =============================================================================


@app.get("/health", response_model=HealthResponse)
@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Check the health of the API and its dependencies."""
    database_connected = await asyncio.to_thread(check_connection, request.app.state.engine)
    scoring_service = get_scoring_service(request)

    # The algorithmic path keeps scoring available without the LLM or database
    status = "healthy" if database_connected else "degraded"

    return HealthResponse(
        status=status,
        llm_configured=scoring_service.ai_enabled,
        database_connected=database_connected,
        rate_limiter=get_rate_limiter(request).stats(),
        content_cache=request.app.state.fast_cache.get_stats(),
        catalog_size=len(scoring_service.catalog),
        version=__version__,
    )


@app.get("/api/v1/openai-status", response_model=OpenAIStatusResponse)
async def openai_status() -> OpenAIStatusResponse:
    """Report whether an OpenAI key is configured, without calling OpenAI."""
    key_check = API_KEY_CHECKS[settings.validate_openai_api_key()]
    if key_check == "valid":
        status = "ready"
    elif key_check == "not_set":
        status = "not_configured"
    else:
        status = "invalid_key"
        logger.warning("OpenAI API key is malformed", key_check=key_check)

    return OpenAIStatusResponse(configured=status == "ready", status=status, key_check=key_check)


# =============================================================================
# Scoring Endpoints
# =============================================================================


@app.get("/api/v1/business-models", response_model=list[BusinessModelDefinition])
async def list_business_models(
    scoring_service: AIScoringService = Depends(get_scoring_service),
) -> list[BusinessModelDefinition]:
    """Return the business model catalog."""
    return list(scoring_service.catalog)


@app.post("/api/v1/fit-scores", response_model=list[FitScore])
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def fit_scores(
    request: Request,
    scores_request: FitScoresRequest,
    scoring_service: AIScoringService = Depends(get_scoring_service),
) -> list[FitScore]:
    """Instant algorithmic fit scores for every business model, best first."""
    return scoring_service.fit_scores(scores_request.quiz_data)


@app.post("/api/v1/ai-business-fit-analysis", response_model=ComprehensiveFitAnalysis)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def ai_business_fit_analysis(
    request: Request,
    analysis_request: FitAnalysisRequest,
    scoring_service: AIScoringService = Depends(get_scoring_service),
    gate: ContentGate = Depends(get_content_gate),
) -> ComprehensiveFitAnalysis:
    """
    Analyze business model fit.

    Never fails for LLM problems: the response degrades to the algorithmic
    analysis (``source="algorithmic"``) instead.
    """
    logger.info(
        "Business fit analysis requested",
        quiz_attempt_id=analysis_request.quiz_attempt_id,
        ai_enabled=scoring_service.ai_enabled,
    )
    if analysis_request.quiz_attempt_id is not None:
        return await scoring_service.analyze_for_attempt(
            analysis_request.quiz_data, analysis_request.quiz_attempt_id, gate
        )
    return await scoring_service.analyze_business_fit(analysis_request.quiz_data)


# =============================================================================
# AI Content Endpoints
# =============================================================================


@app.post("/api/v1/ai-content/should-generate", response_model=GenerationDecision)
async def should_generate_ai_content(
    decision_request: ShouldGenerateRequest,
    gate: ContentGate = Depends(get_content_gate),
) -> GenerationDecision:
    """Decide whether AI content needs to be generated for a quiz attempt."""
    content_type = _require_content_type(decision_request.content_type)
    return await gate.should_generate(
        content_type, decision_request.quiz_data, decision_request.quiz_attempt_id
    )


@app.get("/api/v1/quiz-attempts/{quiz_attempt_id}/ai-content", response_model=AIContentResponse)
async def get_ai_content(
    quiz_attempt_id: int = Path(..., ge=1),
    content_type: str = Query(..., min_length=1),
    gate: ContentGate = Depends(get_content_gate),
) -> AIContentResponse:
    """Get stored AI content; ``ai_content`` is null when none exists."""
    record = await gate.get(quiz_attempt_id, _require_content_type(content_type))
    return AIContentResponse(ai_content=record)


@app.post("/api/v1/quiz-attempts/{quiz_attempt_id}/ai-content", response_model=AIContentResponse)
async def save_ai_content(
    save_request: SaveContentRequest,
    quiz_attempt_id: int = Path(..., ge=1),
    gate: ContentGate = Depends(get_content_gate),
) -> AIContentResponse:
    """Store AI content, replacing any existing record for the content type."""
    content_type = _require_content_type(save_request.content_type)
    record = await gate.put(quiz_attempt_id, content_type, save_request.content)
    logger.info("AI content saved", quiz_attempt_id=quiz_attempt_id, content_type=content_type)
    return AIContentResponse(ai_content=record)


@app.delete(
    "/api/v1/quiz-attempts/{quiz_attempt_id}/ai-content", response_model=ClearContentResponse
)
async def clear_ai_content(
    quiz_attempt_id: int = Path(..., ge=1),
    prefix: str | None = Query(default=None, min_length=1),
    gate: ContentGate = Depends(get_content_gate),
) -> ClearContentResponse:
    """Delete stored AI content, optionally only content types with ``prefix``."""
    return ClearContentResponse(deleted_count=await gate.clear(quiz_attempt_id, prefix))


# =============================================================================
# Insights Endpoints
# =============================================================================


@app.post("/api/v1/insights/preview", response_model=PreviewInsights)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def insights_preview(
    request: Request,
    insights_request: InsightsRequest,
    insights_service: InsightsService = Depends(get_insights_service),
) -> PreviewInsights:
    """Results-page preview for the top business models."""
    answers = insights_request.quiz_data
    ranked = insights_service.rank_models(answers, insights_request.ranked_business_model_ids)
    return await insights_service.generate_results_preview(
        answers, ranked[:TOP_COUNT], insights_request.quiz_attempt_id
    )


@app.post("/api/v1/insights/full-report", response_model=FullReportInsights)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def insights_full_report(
    request: Request,
    insights_request: InsightsRequest,
    insights_service: InsightsService = Depends(get_insights_service),
) -> FullReportInsights:
    """Full-report narrative for the top and bottom business models."""
    answers = insights_request.quiz_data
    ranked = insights_service.rank_models(answers, insights_request.ranked_business_model_ids)
    return await insights_service.generate_personalized_insights(
        answers,
        ranked[:TOP_COUNT],
        list(reversed(ranked[-TOP_COUNT:])),
        insights_request.quiz_attempt_id,
    )


@app.post("/api/v1/insights/model", response_model=ModelInsights)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def insights_model(
    request: Request,
    model_request: ModelInsightsRequest,
    insights_service: InsightsService = Depends(get_insights_service),
) -> ModelInsights:
    """Why one business model does or does not fit."""
    return await insights_service.generate_model_insights(
        model_request.quiz_data,
        model_request.model_name,
        model_request.fit_type,
        model_request.quiz_attempt_id,
    )


@app.post("/api/v1/insights/characteristics", response_model=Characteristics)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def insights_characteristics(
    request: Request,
    insights_request: InsightsRequest,
    insights_service: InsightsService = Depends(get_insights_service),
) -> Characteristics:
    """Six short entrepreneurial characteristics."""
    return await insights_service.generate_characteristics(
        insights_request.quiz_data, insights_request.quiz_attempt_id
    )


@app.post("/api/v1/insights/business-fit-descriptions", response_model=BusinessFitDescriptions)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def insights_business_fit_descriptions(
    request: Request,
    insights_request: InsightsRequest,
    insights_service: InsightsService = Depends(get_insights_service),
) -> BusinessFitDescriptions:
    """One "why this fits you" paragraph per top business model."""
    answers = insights_request.quiz_data
    ranked = insights_service.rank_models(answers, insights_request.ranked_business_model_ids)
    return await insights_service.generate_business_fit_descriptions(
        answers, ranked[:TOP_COUNT], insights_request.quiz_attempt_id
    )


@app.post("/api/v1/insights/report", response_model=ReportBundle)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def insights_report(
    request: Request,
    insights_request: InsightsRequest,
    insights_service: InsightsService = Depends(get_insights_service),
) -> ReportBundle:
    """Run the full report loading sequence and return every section."""
    answers = insights_request.quiz_data
    ranked = insights_service.rank_models(answers, insights_request.ranked_business_model_ids)
    return await insights_service.generate_report(
        answers, insights_request.quiz_attempt_id, ranked=ranked
    )


# =============================================================================
# Chat Completion Proxy
# =============================================================================


@app.post("/api/v1/openai-chat", response_model=ChatCompletionResponse)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def openai_chat(
    request: Request,
    chat_request: ChatCompletionRequest,
    llm_client: OpenAIClient | None = Depends(get_llm_client),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> ChatCompletionResponse:
    """Proxy a chat completion to the configured LLM."""
    if llm_client is None:
        raise HTTPException(
            status_code=503,
            detail="AI service not configured. Please contact the administrator.",
        )

    try:
        await rate_limiter.wait_for_slot()
    except RateLimitExceeded as e:
        raise HTTPException(
            status_code=429,
            detail="AI service is busy, please retry shortly",
            headers={"Retry-After": str(max(1, round(e.wait_seconds)))},
        ) from e

    try:
        response = await llm_client.chat(
            [message.model_dump() for message in chat_request.messages],
            max_tokens=chat_request.max_tokens,
            temperature=chat_request.temperature,
            json_response=chat_request.json_response,
            purpose="chat_proxy",
        )
    except OpenAIAuthError as e:
        raise HTTPException(
            status_code=503,
            detail="AI service not configured. Please contact the administrator.",
        ) from e
    except OpenAIRateLimitError as e:
        raise HTTPException(status_code=429, detail=str(e)) from e
    except OpenAITimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e)) from e
    except OpenAIError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    return ChatCompletionResponse(
        content=response.content,
        tokens_used=response.tokens_used,
        model=response.model or llm_client.model,
    )


def run() -> None:
    """Run the API with uvicorn."""
    uvicorn.run(
        "bizfit_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
