"""vidstore API Router - aggregates all API routes."""

from fastapi import APIRouter

from vidstore.api import checkout, sessions, setup

# Main API router - all routes will be prefixed with /api
api_router = APIRouter(prefix="/api")

api_router.include_router(setup.router)
api_router.include_router(sessions.router)
api_router.include_router(checkout.router)
