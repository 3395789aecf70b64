# app/main.py
"""
Application entry point with service lifecycle management.
Shared state (reservation table, call registry) is created once per process
in the lifespan and handed to routes through app.state.
"""

import asyncio
import time
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request

from app.config import Settings, settings
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.jobs.maintenance_job import start_maintenance_scheduler
from app.middleware.request_context import RequestContextMiddleware
from app.models.domain.calendar_domain import BusinessHours
from app.routes import calls, health, scheduling
from app.routes.errors import register_exception_handlers
from app.services.calendar.credentials import GoogleTokenSource
from app.services.calendar.google_client import GoogleCalendarProvider
from app.services.calendar.provider import CalendarProvider
from app.services.calls.call_tracker import CallLifecycleTracker, CallRegistry
from app.services.calls.retell_client import RetellCallService
from app.services.notifications.webhook_notifier import WebhookNotifier
from app.services.scheduling.availability import AvailabilityOracle
from app.services.scheduling.booking import BookingOrchestrator
from app.services.scheduling.reservations import ReservationStore

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


def build_services(
    app: FastAPI,
    app_settings: Settings,
    provider: CalendarProvider | None = None,
    notifier: WebhookNotifier | None = None,
    call_service: RetellCallService | None = None,
) -> None:
    """Wire the scheduling core and its collaborators onto app.state."""
    if provider is None:
        provider = GoogleCalendarProvider(GoogleTokenSource(app_settings))
    if notifier is None:
        notifier = WebhookNotifier(
            app_settings.NOTIFICATION_WEBHOOK_URL,
            timeout_seconds=app_settings.NOTIFICATION_TIMEOUT_SECONDS,
            retry_delay_seconds=app_settings.NOTIFICATION_RETRY_DELAY_SECONDS,
        )
    if call_service is None:
        call_service = RetellCallService(
            app_settings.RETELL_API_KEY,
            base_url=app_settings.RETELL_API_BASE_URL,
            webhook_url=app_settings.call_webhook_url(),
        )

    business_hours = BusinessHours(**app_settings.get_business_hours_config())
    oracle = AvailabilityOracle(
        provider,
        app_settings.GOOGLE_CALENDAR_ID,
        business_hours,
        slot_duration_minutes=app_settings.SLOT_DURATION_MINUTES,
        granularity_minutes=app_settings.SLOT_GRANULARITY_MINUTES,
    )
    store = ReservationStore(default_ttl_seconds=app_settings.RESERVATION_TTL_SECONDS)
    tracker = CallLifecycleTracker(
        CallRegistry(),
        notifier,
        call_service=call_service,
        from_number=app_settings.RETELL_FROM_NUMBER,
        agent_id=app_settings.RETELL_AGENT_ID,
        scheduling_link=app_settings.SCHEDULING_LINK,
        retention_hours=app_settings.CALL_RETENTION_HOURS,
    )

    app.state.settings = app_settings
    app.state.provider = provider
    app.state.notifier = notifier
    app.state.call_service = call_service
    app.state.store = store
    app.state.tracker = tracker
    app.state.orchestrator = BookingOrchestrator(
        store,
        oracle,
        provider,
        notifier,
        tracker=tracker,
        summary=app_settings.MEETING_SUMMARY,
    )


def create_app(
    app_settings: Settings = settings,
    provider: CalendarProvider | None = None,
    notifier: WebhookNotifier | None = None,
    call_service: RetellCallService | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application startup and shutdown with proper resource management."""
        logger.info(
            "Application starting",
            environment=app_settings.environment,
            debug=app_settings.debug,
            calendar_configured=app_settings.has_calendar_credentials(),
            notifications_configured=bool(app_settings.NOTIFICATION_WEBHOOK_URL),
        )

        build_services(app, app_settings, provider, notifier, call_service)
        maintenance_task = asyncio.create_task(
            start_maintenance_scheduler(
                app.state.store,
                app.state.tracker,
                app_settings.MAINTENANCE_INTERVAL_SECONDS,
            )
        )
        logger.info("All services initialized successfully")

        yield

        # Shutdown sequence (reverse order)
        logger.info("Application shutting down")
        shutdown_errors = []

        maintenance_task.cancel()
        with suppress(asyncio.CancelledError):
            await maintenance_task

        try:
            await app.state.notifier.drain()
        except Exception as e:
            logger.error("Error draining notifications", error=str(e))
            shutdown_errors.append(f"Notifier: {e}")

        for name in ("notifier", "call_service", "provider"):
            try:
                await getattr(app.state, name).close()
            except Exception as e:
                logger.error("Error closing client", client=name, error=str(e))
                shutdown_errors.append(f"{name}: {e}")

        if shutdown_errors:
            logger.warning("Some services had shutdown errors", errors=shutdown_errors)
        else:
            logger.info("All services closed successfully")

    app = FastAPI(
        title="Slot Scheduler",
        description="Appointment scheduling with slot reservations and call-lifecycle tracking",
        version="0.1.0",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(health.router)
    app.include_router(scheduling.router)
    app.include_router(calls.router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
        )
        return response

    # Added last so it wraps the request logger and the request id is bound first
    app.add_middleware(RequestContextMiddleware)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
