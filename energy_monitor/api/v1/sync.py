"""
Vendor sync API endpoints.

Streams a sync session as newline-delimited JSON events.
"""
import asyncio
import logging
from contextlib import AsyncExitStack
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..dependencies import VendorSyncProvider, get_vendor_sync_provider
from ..schemas import SyncRequestSchema
from ..streaming import NDJSON_MEDIA_TYPE, encode_ndjson
from ...domain.entities.sync_event import SyncEvent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Sync"])

DISCONNECT_POLL_SECONDS = 0.5


async def watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    """Set cancel_event once the client goes away."""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info("Sync client disconnected, cancelling")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@router.post(
    "/sync",
    summary="Sync vendor data",
    description="Run a vendor sync and stream progress, stage, complete and error events.",
    response_class=StreamingResponse,
)
async def sync_vendor_data(
    body: SyncRequestSchema,
    request: Request,
    provider: VendorSyncProvider = Depends(get_vendor_sync_provider),
) -> StreamingResponse:
    """
    Start a sync.

    Bad requests and unknown systems are rejected before the stream starts.
    The service and its database session stay open until the stream ends.
    """
    cancel_event = asyncio.Event()
    stack = AsyncExitStack()
    service = await stack.enter_async_context(provider())

    try:
        events = await service.run(body.to_domain(), cancel_event)
    except BaseException:
        await stack.aclose()
        raise

    async def stream() -> AsyncIterator[str]:
        watcher = asyncio.create_task(watch_disconnect(request, cancel_event))
        try:
            event: SyncEvent
            async for event in events:
                yield encode_ndjson(event)
        finally:
            watcher.cancel()
            await events.aclose()
            await stack.aclose()

    return StreamingResponse(
        stream(),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
