"""Workspace API routers, mounted under /api/v1 by main.py."""

from fastapi import APIRouter

from .conversations import router as conversations_router
from .health import router as health_router
from .projects import router as projects_router
from .sources import router as sources_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(projects_router)
api_router.include_router(conversations_router)
api_router.include_router(sources_router)
