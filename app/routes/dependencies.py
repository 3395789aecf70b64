"""
Route dependencies.
Shared services are built once in the lifespan and live on app.state.
"""

from fastapi import Request

from app.config import Settings
from app.services.calls.call_tracker import CallLifecycleTracker
from app.services.scheduling.booking import BookingOrchestrator


def get_orchestrator(request: Request) -> BookingOrchestrator:
    return request.app.state.orchestrator


def get_tracker(request: Request) -> CallLifecycleTracker:
    return request.app.state.tracker


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
