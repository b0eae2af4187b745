"""
API Routes Module

This module exports all API routers for the Vibe Coding Tracker application.
All routes are prefixed with /api/v1 when included in main.py.
"""

from app.routes.admin import admin_router
from app.routes.auth import auth_router
from app.routes.repositories import repositories_router
from app.routes.users import users_router

__all__ = [
    "admin_router",
    "auth_router",
    "repositories_router",
    "users_router",
]
