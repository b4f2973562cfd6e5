"""
API routes initialization.

This module aggregates all API routers and provides a single router
to include in the main application.
"""

from fastapi import APIRouter

from app.api.routes import content

# Create main API router
api_router = APIRouter()

# Include ingestion and reconciliation routes
api_router.include_router(content.router)
