"""FastAPI dependencies resolving the service graph from application state."""

from fastapi import Request

from invoice_delivery.bootstrap import ServiceContainer
from invoice_delivery.services.delivery_service import DeliveryService


def get_container(request: Request) -> ServiceContainer:
    container: ServiceContainer = request.app.state.container
    return container


def get_delivery_service(request: Request) -> DeliveryService:
    return get_container(request).delivery_service
