"""
Neural Relay: FastAPI Application Entry Point

This module initializes the FastAPI application and defines the endpoints:
- /health: Health check endpoint
- /config: Non-sensitive configuration values
- /providers: Provider listing, active provider and best-provider lookup
- /dispatch: Capability-ranked dispatch with fallback
- /analyze: Structured code analysis
- /analytics: Usage log analytics
- /metrics: Per-attempt latency and cost statistics

The application uses a lifespan context manager to:
1. Load configuration and configure logging
2. Build the provider registry from the configured credentials
3. Construct the one ProviderManager the process uses and store it on
   app.state (there is no global manager)

Every outward response carries the brand identity. Endpoints, upstream
model names and vendor names never leave the process.
"""

import asyncio
from collections.abc import Awaitable
from contextlib import asynccontextmanager
import logging
import time
from typing import TypeVar

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relay import __version__
from relay.config import Settings, configure_logging, get_settings
from relay.dispatcher.errors import (
    ConfigurationError,
    FallbackExhaustedError,
    RelayError,
    UnsupportedTaskError,
)
from relay.dispatcher.handlers import build_adapters
from relay.manager import (
    BrandedDispatcher,
    BrandIdentity,
    ProviderManager,
    analyze_code,
)
from relay.metrics.cost import CostCalculator
from relay.metrics.reporter import MetricsReporter
from relay.registry.models import ProviderRegistry
from relay.schemas.api import (
    ActiveProviderResponse,
    AnalyticsResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    BestProviderResponse,
    ComponentHealth,
    DispatchRequest,
    DispatchResponse,
    ErrorCodes,
    ErrorResponse,
    HealthResponse,
    MetricsResponse,
    ProviderListResponse,
    SwitchProviderRequest,
    analytics_response_from_usage,
    provider_summary_from_descriptor,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# How often an in-flight dispatch checks whether its client went away
DISCONNECT_POLL_SECONDS = 0.25

CLIENT_CLOSED_REQUEST = 499


def build_manager(settings: Settings) -> ProviderManager:
    """
    Construct the provider manager from settings.

    Args:
        settings: Application settings

    Returns:
        ProviderManager over the configured providers with the default adapters
    """
    registry = ProviderRegistry.from_settings(settings)
    return ProviderManager(
        registry,
        build_adapters(),
        cost_calculator=CostCalculator.for_registry(registry),
        timeout_seconds=settings.provider_timeout_seconds,
        track_costs=settings.track_costs,
        identity=BrandIdentity.from_settings(settings),
    )


def create_app(manager: ProviderManager | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        manager: Pre-built manager to serve. When omitted the lifespan
                 builds one from settings at startup.

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler for startup/shutdown events.

        On startup:
        - Loads configuration from environment
        - Configures logging
        - Builds the registry and the provider manager

        On shutdown:
        - Logs shutdown message
        """
        settings = get_settings()
        configure_logging(settings)

        logger.info("=" * 60)
        logger.info("Neural Relay starting up...")
        logger.info("=" * 60)
        logger.info(f"Provider timeout: {settings.provider_timeout_seconds}s")
        logger.info(f"Cost tracking: {'enabled' if settings.track_costs else 'disabled'}")
        logger.info(f"Debug mode: {'enabled' if settings.debug else 'disabled'}")

        for slot, configured in settings.provider_keys_configured().items():
            logger.info(f"{slot} API key: {'configured' if configured else 'not configured'}")

        relay_manager = manager or build_manager(settings)
        app.state.manager = relay_manager
        app.state.dispatcher = BrandedDispatcher(relay_manager, relay_manager.identity)
        app.state.started_at = time.time()

        if not relay_manager.has_provider():
            logger.warning("No provider configured; every dispatch will fail fast")

        logger.info("=" * 60)
        logger.info(f"{relay_manager.get_model_info()} ready to accept requests")

        yield  # Application runs here

        logger.info("Neural Relay shutting down...")

    app = FastAPI(
        title="Neural Relay",
        description="Capability-ranked AI dispatch with automatic fallback",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_routes(app)
    _register_exception_handlers(app)
    return app


# =============================================================================
# DEPENDENCIES
# =============================================================================


def get_manager(request: Request) -> ProviderManager:
    """The manager built at startup."""
    return request.app.state.manager


def get_dispatcher(request: Request) -> BrandedDispatcher:
    """The branded wrapper around the startup manager."""
    return request.app.state.dispatcher


async def _wait_for_disconnect(http_request: Request) -> None:
    while not await http_request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def run_until_disconnected(http_request: Request, work: Awaitable[T]) -> T:
    """
    Await work, cancelling it if the client disconnects first.

    Raises:
        HTTPException: 499 when the client went away before completion
    """
    work_task = asyncio.ensure_future(work)
    watch_task = asyncio.ensure_future(_wait_for_disconnect(http_request))
    try:
        done, _ = await asyncio.wait(
            {work_task, watch_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if work_task in done:
            return work_task.result()

        work_task.cancel()
        try:
            await work_task
        except asyncio.CancelledError:
            pass
        logger.info("Client disconnected, dispatch cancelled")
        raise HTTPException(
            status_code=CLIENT_CLOSED_REQUEST,
            detail={
                "code": ErrorCodes.CLIENT_DISCONNECTED,
                "message": "Client closed request",
            },
        )
    finally:
        watch_task.cancel()
        work_task.cancel()


# =============================================================================
# ROUTES
# =============================================================================


def _register_routes(app: FastAPI) -> None:
    @app.get("/")
    async def root(manager: ProviderManager = Depends(get_manager)):
        """
        Root endpoint with API information.
        """
        capabilities = manager.get_detailed_capabilities()
        return {
            "name": manager.get_display_name(),
            "model": manager.get_model_info(),
            "version": __version__,
            "supported_languages": capabilities.supported_languages,
            "supported_frameworks": capabilities.supported_frameworks,
            "docs": "/docs",
            "health": "/health",
            "config": "/config",
        }

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health check",
        description="Check system health and component status.",
    )
    async def health_check(request: Request):
        """
        Health check endpoint for monitoring and orchestration.

        Checks:
        - Provider manager construction
        - Number of configured providers
        - System uptime

        A service without providers still answers, but reports degraded
        because every dispatch would fail.
        """
        components = []
        overall_status = "healthy"

        manager: ProviderManager | None = getattr(request.app.state, "manager", None)
        if manager is None:
            components.append(
                ComponentHealth(
                    name="manager",
                    status="unhealthy",
                    message="Provider manager not initialized",
                )
            )
            overall_status = "unhealthy"
        else:
            components.append(
                ComponentHealth(name="manager", status="healthy", message="Ready")
            )

            provider_count = len(manager.registry)
            if provider_count:
                components.append(
                    ComponentHealth(
                        name="registry",
                        status="healthy",
                        message=f"{provider_count} providers configured",
                    )
                )
            else:
                components.append(
                    ComponentHealth(
                        name="registry",
                        status="unhealthy",
                        message="No provider configured",
                    )
                )
                overall_status = "degraded"

        started_at = getattr(request.app.state, "started_at", 0.0)
        uptime = time.time() - started_at if started_at > 0 else 0.0

        return HealthResponse(
            status=overall_status,
            service="neural-relay",
            version=__version__,
            components=components,
            uptime_seconds=uptime,
        )

    @app.get("/config")
    async def show_config(settings: Settings = Depends(get_settings)):
        """
        Returns non-sensitive configuration values.

        API keys are SecretStr and are NOT exposed in this endpoint.
        Override entries are listed by provider key only.
        """
        return {
            "dispatch": {
                "provider_timeout_seconds": settings.provider_timeout_seconds,
                "overridden_providers": sorted(settings.provider_overrides),
            },
            "brand": {
                "name": settings.brand_name,
                "model": settings.brand_model_name,
                "provider": settings.brand_provider_name,
                "capabilities": settings.brand_capabilities,
            },
            "cost_tracking": {"enabled": settings.track_costs},
            "server": {
                "host": settings.host,
                "port": settings.port,
                "debug": settings.debug,
            },
            "logging": {"level": settings.log_level},
            "api_keys_configured": settings.provider_keys_configured(),
        }

    @app.get(
        "/providers",
        response_model=ProviderListResponse,
        summary="List providers",
    )
    async def list_providers(manager: ProviderManager = Depends(get_manager)):
        """
        List configured providers with their declared capabilities.

        Returns branded display names, pricing tier and live performance
        metrics. Endpoints and upstream model names are never included.
        """
        descriptors = manager.registry.list_available()
        return ProviderListResponse(
            active=manager.get_active_provider_key(),
            providers=[provider_summary_from_descriptor(d) for d in descriptors],
            total_providers=len(descriptors),
        )

    @app.get("/providers/active", response_model=ActiveProviderResponse)
    async def get_active_provider(manager: ProviderManager = Depends(get_manager)):
        """Return the active provider, or configured=false when there is none."""
        descriptor = manager.get_active_provider()
        return ActiveProviderResponse(
            configured=descriptor is not None,
            provider=provider_summary_from_descriptor(descriptor) if descriptor else None,
        )

    @app.post(
        "/providers/active",
        response_model=ActiveProviderResponse,
        responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    )
    async def switch_provider(
        body: SwitchProviderRequest, manager: ProviderManager = Depends(get_manager)
    ):
        """
        Switch the active provider.

        Unknown keys leave the active provider unchanged and answer 404.
        """
        if not manager.switch_provider(body.key):
            raise HTTPException(
                status_code=404,
                detail={
                    "code": ErrorCodes.UNKNOWN_PROVIDER,
                    "message": f"Unknown provider: {body.key}",
                },
            )
        descriptor = manager.get_active_provider()
        return ActiveProviderResponse(
            configured=True,
            provider=provider_summary_from_descriptor(descriptor),
        )

    @app.get("/providers/best", response_model=BestProviderResponse)
    async def best_provider(
        task_type: str = Query(..., min_length=1, examples=["code_generation"]),
        language: str | None = Query(default=None, examples=["typescript"]),
        framework: str | None = Query(default=None, examples=["react"]),
        manager: ProviderManager = Depends(get_manager),
    ):
        """
        Look up the top-ranked provider for a task.

        The provider field is null when no provider declares the task
        (or the requested language/framework).
        """
        key = manager.get_best_provider_for_task(task_type, language, framework)
        descriptor = manager.registry.get(key) if key else None
        return BestProviderResponse(
            task_type=task_type,
            language=language,
            framework=framework,
            provider=provider_summary_from_descriptor(descriptor) if descriptor else None,
        )

    @app.post(
        "/dispatch",
        response_model=DispatchResponse,
        responses={
            400: {"model": ErrorResponse},
            422: {"model": ErrorResponse},
            499: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
            503: {"model": ErrorResponse},
        },
        summary="Dispatch a task",
        description="Execute a task on the best available provider with automatic fallback.",
    )
    async def dispatch(
        body: DispatchRequest,
        http_request: Request,
        dispatcher: BrandedDispatcher = Depends(get_dispatcher),
    ):
        """
        Main dispatch endpoint.

        Flow:
        1. Rank providers for the task type
        2. Try them in order until one succeeds
        3. Brand the raw response

        The dispatch is cancelled if the client disconnects.
        """
        return await run_until_disconnected(
            http_request, dispatcher.dispatch(body.to_payload(), body.task_type)
        )

    @app.post(
        "/analyze",
        response_model=AnalyzeResponse,
        responses={
            422: {"model": ErrorResponse},
            499: {"model": ErrorResponse},
            503: {"model": ErrorResponse},
        },
        summary="Analyze code",
    )
    async def analyze(
        body: AnalyzeRequest,
        http_request: Request,
        manager: ProviderManager = Depends(get_manager),
    ):
        """
        Return completion, refactoring, fixes, optimization and documentation
        for a piece of code.
        """
        return await run_until_disconnected(
            http_request,
            analyze_code(manager, body.code, body.language, body.file_path),
        )

    @app.get("/analytics", response_model=AnalyticsResponse)
    async def get_analytics(manager: ProviderManager = Depends(get_manager)):
        """Usage counters and the full usage log."""
        return analytics_response_from_usage(manager.get_usage_analytics())

    @app.delete("/analytics", status_code=204)
    async def clear_analytics(manager: ProviderManager = Depends(get_manager)):
        """Clear the usage log."""
        manager.tracker.clear_logs()
        return Response(status_code=204)

    @app.get(
        "/metrics",
        response_model=MetricsResponse,
        summary="Get metrics",
        description="Retrieve aggregated per-attempt latency and cost metrics.",
    )
    async def get_metrics(manager: ProviderManager = Depends(get_manager)):
        """
        Return aggregated metrics for monitoring and cost analysis.

        Includes:
        - Attempt counts by provider and task type
        - Cost tracking with savings against the most expensive provider
        - Latency percentiles
        """
        reporter = MetricsReporter(manager.metrics_store, manager.cost_calculator)
        return reporter.generate_report()


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================


def _error_identity(request: Request) -> BrandIdentity:
    manager: ProviderManager | None = getattr(request.app.state, "manager", None)
    return manager.identity if manager else BrandIdentity()


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """
        Handle Pydantic validation errors.

        Returns a consistent error response format with the first validation
        error's details for client-side error handling.
        """
        errors = exc.errors()
        first_error = errors[0] if errors else {}

        return JSONResponse(
            status_code=422,
            content={
                "error": {
                    "code": ErrorCodes.VALIDATION_ERROR,
                    "message": first_error.get("msg", "Validation failed"),
                    "field": ".".join(str(loc) for loc in first_error.get("loc", [])),
                }
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        """
        Handle HTTP exceptions with consistent format.

        Ensures all HTTP errors return a consistent error response structure
        for predictable client-side error handling.
        """
        detail = exc.detail
        if isinstance(detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"error": detail})
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": {"code": "HTTP_ERROR", "message": str(detail)}},
        )

    @app.exception_handler(RelayError)
    async def relay_exception_handler(request: Request, exc: RelayError) -> JSONResponse:
        """
        Map dispatch failures to branded error responses.

        The underlying provider error is logged but never returned, since
        it may name a vendor.
        """
        status_code, code = _relay_error_status(exc)
        if isinstance(exc, FallbackExhaustedError):
            logger.error(f"Dispatch failed after trying {', '.join(exc.attempted)}: {exc}")

        return JSONResponse(
            status_code=status_code,
            content={
                "error": {
                    "code": code,
                    "message": _error_identity(request).error_message(exc),
                }
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """
        Handle unexpected exceptions.

        Logs the full exception for debugging and returns a generic error
        response to avoid leaking implementation details.
        """
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": ErrorCodes.INTERNAL_ERROR,
                    "message": "An unexpected error occurred",
                }
            },
        )


def _relay_error_status(exc: RelayError) -> tuple[int, str]:
    if isinstance(exc, ConfigurationError):
        return 503, ErrorCodes.NOT_CONFIGURED
    if isinstance(exc, UnsupportedTaskError):
        return 400, ErrorCodes.UNSUPPORTED_TASK
    if isinstance(exc, FallbackExhaustedError):
        return 503, ErrorCodes.PROVIDERS_EXHAUSTED
    return 500, ErrorCodes.INTERNAL_ERROR


app = create_app()
