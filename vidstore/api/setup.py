"""Setup wizard API endpoints.

``POST /setup`` runs one provisioning action at a time, the way the wizard
drives it step by step. ``POST /setup/run`` runs the whole pipeline and
streams its progress as server-sent events.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable

import httpx
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse

from vidstore.schemas.setup import (
    SetupActionRequest,
    SetupActionResponse,
    SetupProgressEvent,
    SetupResultEvent,
    SetupRunRequest,
)
from vidstore.services.appwrite import AppwriteAPIError, AppwriteClient, close_appwrite_client
from vidstore.services.credentials import CredentialsManager, get_credentials_manager
from vidstore.services.provisioning import (
    ActionResult,
    Provisioner,
    SetupOrchestrator,
    SetupProgress,
)
from vidstore.services.session import reset_session_store
from vidstore.utils.sse import format_sse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/setup", tags=["setup"])

ClientFactory = Callable[[str, str], AppwriteClient]


def get_client_factory() -> ClientFactory:
    """Dependency returning how to build a client for the submitted project."""
    return AppwriteClient


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


async def _run_action(provisioner: Provisioner, request: SetupActionRequest) -> ActionResult:
    action = request.action
    if action == "test-connection":
        return await provisioner.test_connection()
    if action == "create-database":
        return await provisioner.create_database()
    if action == "create-collection":
        if not (request.collection_id and request.collection_name and request.collection_type):
            raise ValueError("collectionId, collectionName and collectionType are required")
        return await provisioner.create_collection(
            request.collection_id, request.collection_name, request.collection_type
        )
    if action == "create-bucket":
        if not (request.bucket_id and request.bucket_name):
            raise ValueError("bucketId and bucketName are required")
        return await provisioner.create_bucket(request.bucket_id, request.bucket_name)
    if action == "create-initial-data":
        return await provisioner.create_initial_data()
    raise ValueError("Unrecognized action")


@router.post(
    "",
    response_model=SetupActionResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"description": "Invalid request or connection failed"},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"description": "Appwrite rejected the action"},
    },
)
async def setup_action(
    request: SetupActionRequest,
    client_factory: ClientFactory = Depends(get_client_factory),
) -> SetupActionResponse | JSONResponse:
    """Run one setup action against the submitted Appwrite project."""
    logger.info("Setup action requested: %s", request.action)
    client = client_factory(request.project_id, request.api_key)
    try:
        result = await _run_action(Provisioner(client), request)
    except ValueError as e:
        return _message(status.HTTP_400_BAD_REQUEST, str(e))
    except (AppwriteAPIError, httpx.HTTPError) as e:
        logger.error("Setup action %s failed: %s", request.action, e)
        return _message(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Internal error: {e}")
    finally:
        await client.close()

    if request.action == "test-connection" and not result.success:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": result.message},
        )
    return SetupActionResponse(
        success=result.success, message=result.message, warnings=result.warnings
    )


@router.post("/run")
async def run_setup(
    request: SetupRunRequest,
    client_factory: ClientFactory = Depends(get_client_factory),
    credentials: CredentialsManager = Depends(get_credentials_manager),
) -> StreamingResponse:
    """Run the full setup, streaming ``progress`` events and a final ``result``."""

    async def events() -> AsyncIterator[str]:
        queue: asyncio.Queue[SetupProgress | None] = asyncio.Queue()
        client = client_factory(request.project_id, request.api_key)
        orchestrator = SetupOrchestrator(
            Provisioner(client),
            request.project_id,
            request.api_key,
            credentials=credentials,
            on_progress=queue.put_nowait,
        )
        task = asyncio.create_task(orchestrator.run())
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while (progress := await queue.get()) is not None:
                yield format_sse(
                    "progress", SetupProgressEvent.model_validate(progress, from_attributes=True)
                )
            result = task.result()
            if result.success:
                # Shared client and store were built from the previous credentials
                await close_appwrite_client()
                reset_session_store()
            yield format_sse(
                "result", SetupResultEvent.model_validate(result, from_attributes=True)
            )
        finally:
            if not task.done():
                task.cancel()
            await client.close()

    return StreamingResponse(events(), media_type="text/event-stream")
