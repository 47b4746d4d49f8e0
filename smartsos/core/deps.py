"""FastAPI dependencies."""

from fastapi import Request

from smartsos.services.container import SosServices
from smartsos.services.coordinator import SosCoordinator
from smartsos.services.contact_book import ContactBook
from smartsos.services.location_registry import LocationRegistry


def get_services(request: Request) -> SosServices:
    return request.app.state.services


def get_coordinator(request: Request) -> SosCoordinator:
    return get_services(request).coordinator


def get_locations(request: Request) -> LocationRegistry:
    return get_services(request).locations


def get_contacts(request: Request) -> ContactBook:
    return get_services(request).contacts
