from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

ordering_batches_total = Counter(
    "ordering_batches_total",
    "Lane/ticket reorder batches by outcome",
    ["entity", "status"],
)

identity_sync_failures_total = Counter(
    "identity_sync_failures_total",
    "Identity provider metadata writes that failed and were skipped",
    ["operation"],
)

invitations_accepted_total = Counter(
    "invitations_accepted_total",
    "Invitations turned into team users",
)

access_decisions_total = Counter(
    "access_decisions_total",
    "Authorization decisions by scope and outcome",
    ["scope", "outcome"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        for attr in ("path_format", "path"):
            value = getattr(route, attr, None)
            if isinstance(value, str) and value:
                return _PATH_PARAM_RE.sub("{id}", value)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_ordering_batch(entity: str, status: str) -> None:
    ordering_batches_total.labels(entity=entity, status=status).inc()


def observe_identity_sync_failure(operation: str) -> None:
    identity_sync_failures_total.labels(operation=operation).inc()


def observe_invitation_accepted() -> None:
    invitations_accepted_total.inc()


def observe_access_decision(scope: str, allowed: bool) -> None:
    access_decisions_total.labels(scope=scope, outcome="allowed" if allowed else "denied").inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
