"""API routes package."""

from fastapi import APIRouter

from parkflow.api.routes import admin, entries, exits, reservations, spots

# Main API router
api_router = APIRouter(prefix="/api/v1")

# Include route modules
api_router.include_router(entries.router)
api_router.include_router(exits.router)
api_router.include_router(spots.router)
api_router.include_router(reservations.router)
api_router.include_router(admin.router)
