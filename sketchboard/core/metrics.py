from __future__ import annotations

from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

registry = CollectorRegistry(auto_describe=True)

PROMPT_COMPOSITIONS_TOTAL = Counter(
    "sketchboard_prompt_compositions_total",
    "Panel prompts produced, partitioned by grammar and the path that produced them.",
    ["grammar", "source"],
    registry=registry,
)

BUDGET_TRIMS_TOTAL = Counter(
    "sketchboard_budget_trims_total",
    "Clauses dropped to fit a grammar budget, by section kind.",
    ["grammar", "section"],
    registry=registry,
)

VOCABULARY_STRIPS_TOTAL = Counter(
    "sketchboard_vocabulary_strips_total",
    "Deny-listed terms removed from composed text.",
    ["grammar", "term"],
    registry=registry,
)

FALLBACK_USES_TOTAL = Counter(
    "sketchboard_fallback_uses_total",
    "Number of times the fallback composer produced a panel prompt, by reason.",
    ["reason"],
    registry=registry,
)

DESCRIPTION_FAILURES_TOTAL = Counter(
    "sketchboard_description_failures_total",
    "Vision-description failures by classified kind.",
    ["kind"],
    registry=registry,
)

COLLABORATOR_CALL_DURATION = Histogram(
    "sketchboard_collaborator_call_duration_seconds",
    "Latency for external model calls per operation.",
    ["operation"],
    registry=registry,
)

COLLABORATOR_CALLS_TOTAL = Counter(
    "sketchboard_collaborator_calls_total",
    "External model calls partitioned by operation and status.",
    ["operation", "status"],
    registry=registry,
)


def record_composition(grammar: str, source: str) -> None:
    PROMPT_COMPOSITIONS_TOTAL.labels(grammar=grammar, source=source).inc()


def record_budget_trim(grammar: str, section: str) -> None:
    BUDGET_TRIMS_TOTAL.labels(grammar=grammar, section=section).inc()


def record_vocabulary_strips(grammar: str, terms: list[str]) -> None:
    for term in terms:
        VOCABULARY_STRIPS_TOTAL.labels(grammar=grammar, term=term).inc()


def record_fallback_use(reason: str) -> None:
    FALLBACK_USES_TOTAL.labels(reason=reason).inc()


def record_description_failure(kind: str) -> None:
    DESCRIPTION_FAILURES_TOTAL.labels(kind=kind).inc()


@contextmanager
def track_collaborator_call(operation: str):
    timer = COLLABORATOR_CALL_DURATION.labels(operation=operation).time()
    timer.__enter__()
    try:
        yield
        COLLABORATOR_CALLS_TOTAL.labels(operation=operation, status="success").inc()
    except Exception:
        COLLABORATOR_CALLS_TOTAL.labels(operation=operation, status="error").inc()
        raise
    finally:
        timer.__exit__(None, None, None)


def get_metrics_payload() -> bytes:
    return generate_latest(registry)
