"""Observability utilities: trace IDs, LLM metrics, and payload logging.

This module provides:
- Trace ID generation and propagation via context vars
- Prometheus metrics for LLM calls (tokens, latency, errors)
- Prometheus counters for fallbacks and content-cache lookups
- Structured logging helpers for LLM request/response correlation
"""

import time
import secrets
from contextvars import ContextVar
from dataclasses import dataclass

import structlog
from prometheus_client import Counter, Histogram, Gauge

from bizfit_api.models import MODEL_CONTENT_PREFIX

logger = structlog.get_logger()

# =============================================================================
# Trace ID Context
# =============================================================================

# Context variable for trace ID propagation across async calls
trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")


def generate_trace_id() -> str:
    """Generate cryptographically secure trace ID for request tracking."""
    return secrets.token_hex(16)


def get_trace_id() -> str:
    """Get current trace ID from context, or empty string if not set."""
    return trace_id_ctx.get()


def set_trace_id(trace_id: str) -> None:
    """Set trace ID in context."""
    trace_id_ctx.set(trace_id)


# =============================================================================
# Prometheus Metrics for LLM
# =============================================================================

llm_requests_total = Counter(
    "llm_requests_total",
    "Total LLM API requests",
    ["model", "status", "purpose"],
)

# Token counters (for cost tracking)
llm_tokens_total = Counter(
    "llm_tokens_total",
    "Total tokens used in LLM calls",
    ["model", "type"],  # values: prompt, completion, total
)

llm_latency_seconds = Histogram(
    "llm_latency_seconds",
    "LLM response latency in seconds",
    ["model", "purpose"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 15.0, 30.0],
)

llm_active_requests = Gauge(
    "llm_active_requests",
    "Currently active LLM requests",
    ["model"],
)

# =============================================================================
# Prometheus Metrics for fallbacks and caching
# =============================================================================

analysis_fallbacks_total = Counter(
    "analysis_fallbacks_total",
    "Fit analyses served by the algorithmic fallback",
    ["reason"],
)

narrative_fallbacks_total = Counter(
    "narrative_fallbacks_total",
    "Narrative content served from fallback templates",
    ["content_type"],
)

content_cache_lookups_total = Counter(
    "content_cache_lookups_total",
    "AI content cache lookups",
    ["content_type", "result"],  # result: hit, miss, error
)


def content_type_label(content_type: str) -> str:
    """Collapse per-model content types into one label to bound cardinality."""
    if content_type.startswith(MODEL_CONTENT_PREFIX):
        return "model"
    return content_type


def record_cache_lookup(content_type: str, result: str) -> None:
    content_cache_lookups_total.labels(
        content_type=content_type_label(content_type),
        result=result,
    ).inc()


def record_analysis_fallback(reason: str) -> None:
    analysis_fallbacks_total.labels(reason=reason).inc()


def record_narrative_fallback(content_type: str) -> None:
    narrative_fallbacks_total.labels(content_type=content_type_label(content_type)).inc()


# =============================================================================
# LLM Payload Logging
# =============================================================================


@dataclass
class LLMRequestLog:
    """Structured log data for LLM requests."""

    trace_id: str
    model: str
    purpose: str
    system_prompt_chars: int
    user_prompt_chars: int
    user_prompt_preview: str  # First 100 chars
    max_tokens: int
    json_response: bool
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        if self.timestamp == 0.0:
            self.timestamp = time.time()


@dataclass
class LLMResponseLog:
    """Structured log data for LLM responses."""

    trace_id: str
    model: str
    purpose: str
    tokens_prompt: int
    tokens_completion: int
    tokens_total: int
    latency_ms: int
    finish_reason: str
    error: str | None = None


def log_llm_request(
    model: str,
    purpose: str,
    system_prompt: str,
    user_prompt: str,
    max_tokens: int,
    json_response: bool = False,
) -> LLMRequestLog:
    """Log an LLM request with full context for debugging.

    Returns LLMRequestLog for correlation with response.
    """
    log_data = LLMRequestLog(
        trace_id=get_trace_id(),
        model=model,
        purpose=purpose,
        system_prompt_chars=len(system_prompt),
        user_prompt_chars=len(user_prompt),
        user_prompt_preview=user_prompt[:100] + ("..." if len(user_prompt) > 100 else ""),
        max_tokens=max_tokens,
        json_response=json_response,
    )

    logger.info(
        "llm_request",
        trace_id=log_data.trace_id,
        model=log_data.model,
        purpose=log_data.purpose,
        system_prompt_chars=log_data.system_prompt_chars,
        user_prompt_chars=log_data.user_prompt_chars,
        user_prompt_preview=log_data.user_prompt_preview,
        max_tokens=log_data.max_tokens,
        json_response=log_data.json_response,
    )

    llm_active_requests.labels(model=model).inc()

    return log_data


def log_llm_response(
    request_log: LLMRequestLog,
    tokens_prompt: int = 0,
    tokens_completion: int = 0,
    tokens_total: int = 0,
    finish_reason: str = "unknown",
    error: str | None = None,
) -> None:
    """Log an LLM response with metrics and correlation."""
    latency_ms = int((time.time() - request_log.timestamp) * 1000)

    log_data = LLMResponseLog(
        trace_id=request_log.trace_id,
        model=request_log.model,
        purpose=request_log.purpose,
        tokens_prompt=tokens_prompt,
        tokens_completion=tokens_completion,
        tokens_total=tokens_total,
        latency_ms=latency_ms,
        finish_reason=finish_reason,
        error=error,
    )

    if error:
        logger.error(
            "llm_response",
            trace_id=log_data.trace_id,
            model=log_data.model,
            purpose=log_data.purpose,
            latency_ms=log_data.latency_ms,
            error=log_data.error,
        )
        status = "error"
    else:
        logger.info(
            "llm_response",
            trace_id=log_data.trace_id,
            model=log_data.model,
            purpose=log_data.purpose,
            tokens_prompt=log_data.tokens_prompt,
            tokens_completion=log_data.tokens_completion,
            tokens_total=log_data.tokens_total,
            latency_ms=log_data.latency_ms,
            finish_reason=log_data.finish_reason,
        )
        status = "success"

    llm_active_requests.labels(model=request_log.model).dec()
    llm_requests_total.labels(
        model=request_log.model,
        status=status,
        purpose=request_log.purpose,
    ).inc()

    if tokens_total > 0:
        llm_tokens_total.labels(model=request_log.model, type="prompt").inc(tokens_prompt)
        llm_tokens_total.labels(model=request_log.model, type="completion").inc(tokens_completion)
        llm_tokens_total.labels(model=request_log.model, type="total").inc(tokens_total)

    llm_latency_seconds.labels(
        model=request_log.model,
        purpose=request_log.purpose,
    ).observe(latency_ms / 1000.0)
