"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from hookwarden.api.webhooks import router as webhooks_router
from hookwarden.api.webhook_logs import router as webhook_logs_router
from hookwarden.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(webhooks_router)
api_router.include_router(webhook_logs_router)
api_router.include_router(health_router)
