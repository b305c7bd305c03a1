"""Health check endpoint."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vidstore.core import settings
from vidstore.services.credentials import CredentialsManager, get_credentials_manager

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    appwrite: str


@router.get("/health", response_model=HealthResponse)
async def health_check(
    credentials: CredentialsManager = Depends(get_credentials_manager),
) -> HealthResponse:
    """Service status, and whether Appwrite credentials are available."""
    configured = credentials.has_credentials() or credentials.has_environment_credentials()
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        appwrite="configured" if configured else "not_configured",
    )
