"""
Prometheus metrics for stability and the main business operations.

- Stability: exceptions_total, db_errors_total, external_request_errors_total
- HA: ready gauge (1=up, 0=shutting down)
- Business: album/file operations, image transforms, task runs, logins
- Exposed at /metrics (per worker process)
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from prometheus_client import REGISTRY, Counter, Gauge, Histogram, make_asgi_app

from gallery_api.config import get_settings

logger = logging.getLogger(__name__)

# --- Stability ---
exceptions_total = Counter(
    "gallery_api_exceptions_total",
    "Total unhandled exceptions",
    registry=REGISTRY,
)
db_errors_total = Counter(
    "gallery_api_db_errors_total",
    "Total database session/transaction errors",
    registry=REGISTRY,
)
external_request_errors_total = Counter(
    "gallery_api_external_request_errors_total",
    "Total external API request failures",
    ["service"],
    registry=REGISTRY,
)
external_request_duration_seconds = Histogram(
    "gallery_api_external_request_duration_seconds",
    "External API request duration in seconds",
    ["service", "result"],
    registry=REGISTRY,
)

# --- HA ---
ready = Gauge(
    "gallery_api_ready",
    "Application readiness (1=ready, 0=starting or shutting down)",
    registry=REGISTRY,
)

app_info = Gauge(
    "gallery_api_app_info",
    "Application identity (labels only, value is 1)",
    ["app", "version", "environment"],
    registry=REGISTRY,
)

# --- Rate limiting ---
rate_limit_hits_total = Counter(
    "gallery_api_rate_limit_hits_total",
    "Requests rejected by the rate limiter",
    ["endpoint"],
    registry=REGISTRY,
)

# --- Auth ---
user_login_total = Counter(
    "gallery_api_user_login_total",
    "Login attempts by result",
    ["result"],
    registry=REGISTRY,
)
login_duration_seconds = Histogram(
    "gallery_api_login_duration_seconds",
    "Login handling duration in seconds",
    ["result"],
    registry=REGISTRY,
)

# --- Albums / files ---
album_operations_total = Counter(
    "gallery_api_album_operations_total",
    "Album operations by type and result",
    ["operation", "result"],
    registry=REGISTRY,
)
file_operations_total = Counter(
    "gallery_api_file_operations_total",
    "File operations by type and result",
    ["operation", "result"],
    registry=REGISTRY,
)
file_upload_size_bytes = Histogram(
    "gallery_api_file_upload_size_bytes",
    "Uploaded file sizes in bytes",
    buckets=(64 * 1024, 256 * 1024, 1024 * 1024, 4 * 1024 * 1024, 16 * 1024 * 1024),
    registry=REGISTRY,
)
image_transform_duration_seconds = Histogram(
    "gallery_api_image_transform_duration_seconds",
    "Resize/convert duration in seconds",
    ["format"],
    registry=REGISTRY,
)

# --- Tasks ---
task_runs_total = Counter(
    "gallery_api_task_runs_total",
    "Scheduled task runs by task and result",
    ["task", "result"],
    registry=REGISTRY,
)
task_duration_seconds = Histogram(
    "gallery_api_task_duration_seconds",
    "Scheduled task duration in seconds",
    ["task"],
    registry=REGISTRY,
)


@asynccontextmanager
async def record_external_request(service: str) -> AsyncGenerator[None, None]:
    """
    Context manager to record external request duration and errors.
    Use around third-party HTTP calls (analytics).
    """
    start = time.perf_counter()
    result = "success"
    try:
        yield
    except Exception:
        result = "failure"
        external_request_errors_total.labels(service=service).inc()
        raise
    finally:
        duration = time.perf_counter() - start
        external_request_duration_seconds.labels(service=service, result=result).observe(duration)


def setup_prometheus(app) -> None:
    """Publish app identity and mount the /metrics endpoint."""
    settings = get_settings()
    app_info.labels(
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
    ).set(1)
    app.mount("/metrics", make_asgi_app(registry=REGISTRY))
