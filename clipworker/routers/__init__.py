"""Routers package initialization"""
from .jobs import router as jobs_router
from .clips import router as clips_router
from .games import router as games_router
from .settings import router as settings_router

__all__ = ["jobs_router", "clips_router", "games_router", "settings_router"]
