"""FastAPI dependency injection helpers."""

from fastapi import Request

from ridehail.services.fleet import FleetService
from ridehail.services.lifecycle import OrderLifecycle


def get_lifecycle(request: Request) -> OrderLifecycle:
    """The engine instance built by ``create_app``."""
    return request.app.state.lifecycle


def get_fleet(request: Request) -> FleetService:
    return request.app.state.fleet
