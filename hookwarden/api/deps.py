"""
FastAPI dependencies - hand out the components built by create_app().
"""
from fastapi import Request

from hookwarden.services.providers import ProviderRegistry
from hookwarden.services.validation import ValidationOrchestrator
from hookwarden.services.webhook_log_store import WebhookLogStore


def get_registry(request: Request) -> ProviderRegistry:
    return request.app.state.registry


def get_orchestrator(request: Request) -> ValidationOrchestrator:
    return request.app.state.orchestrator


def get_log_store(request: Request) -> WebhookLogStore:
    return request.app.state.log_store
