"""
FastAPI application factory.

Configures:
- CORS, rate limiting and request logging middlewares
- error handlers producing {"error": {"status", "message"}} bodies
- route modules discovered under gallery_api.routers
- static file mounts
- scheduled tasks discovered under gallery_api.tasks
- database lifecycle and Prometheus metrics
"""
import importlib
import inspect
import logging
import pkgutil
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional, Tuple

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from gallery_api import routers as routers_package
from gallery_api import tasks as tasks_package
from gallery_api.config import STATIC_DIRECTORIES, Settings, get_settings
from gallery_api.database import close_db, get_db_context, init_db
from gallery_api.dependencies.auth import MIDDLEWARES
from gallery_api.middlewares.logging_middleware import LoggingMiddleware
from gallery_api.middlewares.rate_limit_middleware import setup_rate_limit
from gallery_api.structures import Route, Task
from gallery_api.utils.logger import get_request_id, log_error, log_info, log_warning
from gallery_api.utils.prometheus_metrics import exceptions_total, ready, setup_prometheus

logger = logging.getLogger("gallery_api")

ALLOWED_HEADERS = [
    "Accept",
    "Origin",
    "Authorization",
    "Cache-Control",
    "X-Requested-With",
    "Content-Type",
]

STATIC_CACHE_CONTROL = "public, max-age=31536000, immutable"


class CachedStaticFiles(StaticFiles):
    """Static files served cross-origin with a one year immutable cache."""

    def file_response(self, *args, **kwargs):
        response = super().file_response(*args, **kwargs)
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Cache-Control"] = STATIC_CACHE_CONTROL
        return response


def error_body(status_code: int, message, **extra) -> dict:
    return {"error": {"status": status_code, "message": message, **extra}}


def discover_routes(package=routers_package) -> List[Tuple[str, Route]]:
    """
    Collect every ``route`` exposed by the modules of a package, recursively.

    Modules inside sub-packages are mounted under the sub-package name, e.g.
    routers/admin/stats.py with path "/stats" becomes "/admin/stats".

    Returns:
        (mount path, route) pairs sorted by route position
    """
    found = []
    base = package.__name__
    for module_info in pkgutil.walk_packages(package.__path__, prefix=f"{base}."):
        module = importlib.import_module(module_info.name)
        route = getattr(module, "route", None)
        if not isinstance(route, Route):
            continue
        parents = module_info.name[len(base) + 1:].split(".")[:-1]
        prefix = "".join(f"/{part}" for part in parents)
        found.append((prefix + route.path, route))
    return sorted(found, key=lambda item: item[1].position)


def discover_tasks(settings: Settings, package=tasks_package) -> List[Task]:
    """Instantiate every Task subclass defined in the package; failures are logged and skipped."""
    candidates = []
    for module_info in pkgutil.walk_packages(package.__path__, prefix=f"{package.__name__}."):
        try:
            module = importlib.import_module(module_info.name)
        except Exception as e:
            log_error(f"Task module {module_info.name} failed to import", event="tasks", error=str(e)[:200], exc_info=True)
            candidates.append(None)
            continue
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if issubclass(obj, Task) and obj is not Task and obj.__module__ == module.__name__:
                candidates.append(obj)

    loaded = []
    for task_class in candidates:
        if task_class is None:
            continue
        try:
            loaded.append(task_class(get_db_context, settings))
        except Exception as e:
            log_error(f"Task {task_class.__name__} failed to load", event="tasks", error=str(e)[:200], exc_info=True)

    log_info(f"Loaded {len(loaded)}/{len(candidates)} tasks", event="tasks")
    return loaded


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else first.get("msg")
        else:
            message = "Invalid request."
        log_warning("Request validation failed", event="validation", http_path=request.url.path, errors=len(errors))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(status.HTTP_400_BAD_REQUEST, message),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Unhandled exception handler: ERROR log with stack trace, 500 response
        carrying the request id.
        """
        exceptions_total.inc()
        rid = get_request_id()

        log_error(
            "Unhandled exception occurred",
            error_type=type(exc).__name__,
            error_message=str(exc),
            error_code="INTERNAL_SERVER_ERROR",
            http_method=request.method,
            http_path=request.url.path,
            request_id=rid,
            event="exception",
            exc_info=True,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
                request_id=rid,
            ),
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        settings.ensure_static_dirs()
        await init_db()

        tasks: List[Task] = discover_tasks(settings) if settings.tasks_enabled else []
        for task in tasks:
            task.start()
            log_info(f"[Task] {task.name} scheduled, next run {task.time_until()}", event="tasks")
        app.state.tasks = tasks

        ready.set(1)
        log_info(
            "Application startup completed",
            event="lifecycle",
            version=settings.app_version,
            environment=settings.environment.value,
        )

        yield

        ready.set(0)
        log_info("Application shutdown initiated", event="lifecycle")
        for task in tasks:
            await task.stop()
        await close_db()
        log_info("Graceful shutdown completed", event="lifecycle")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Photo gallery API: albums, image files, users and site analytics.",
        lifespan=lifespan,
    )

    setup_prometheus(app)
    register_exception_handlers(app)

    # Middlewares, innermost first
    setup_rate_limit(app)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=ALLOWED_HEADERS,
    )

    for path, route in discover_routes():
        dependencies = []
        for name in route.middlewares:
            if name not in MIDDLEWARES:
                raise ValueError(f"Unknown middleware {name!r} on route {path}")
            dependencies.append(Depends(MIDDLEWARES[name]))
        app.include_router(route.router, prefix=path, dependencies=dependencies)
        logger.debug("Route %s mounted (position %s)", path, route.position)

    for name in STATIC_DIRECTORIES:
        app.mount(
            f"/{name}",
            CachedStaticFiles(directory=settings.static_dir(name), check_dir=False),
            name=name,
        )

    @app.get("/", tags=["Root"], summary="API information")
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
        }

    return app
