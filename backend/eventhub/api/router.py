"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from eventhub.api.routes import events, reservations, users

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events.router)
api_router.include_router(reservations.router)
api_router.include_router(users.router)
