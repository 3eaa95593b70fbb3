"""SSE (Server-Sent Events) endpoint for real-time admin notifications.

Usage in the dashboard:
    const source = new EventSource("/api/sse");
    source.addEventListener("update", (e) => showToast(JSON.parse(e.data)));
"""

import json
import logging

from fastapi import APIRouter
from sse_starlette.sse import EventSourceResponse

from account_lifecycle.core.broadcaster import broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sse"])


@router.get("/sse")
async def sse_endpoint():
    """
    SSE endpoint for real-time updates.

    Clients connect here and receive an event after every committed transition:
    deleted, scheduled, cancelled_schedule, restored, executed.

    Event format:
        event: update
        data: {"event_type": "deleted", "account_id": "...", "account": {...}}
    """

    async def event_generator():
        """Generate SSE events from broadcaster."""
        logger.info("SSE client connecting...")

        # Send initial keepalive (helps with proxy timeouts)
        yield {
            "event": "connected",
            "data": json.dumps({"status": "connected"}),
        }

        async for message in broadcaster.subscribe():
            if message is None:
                # Heartbeat
                yield {"comment": "keepalive"}
                continue

            yield {
                "event": message["event"],
                "data": json.dumps(message["data"]),
            }

    return EventSourceResponse(event_generator())


@router.get("/sse/status")
async def sse_status():
    """Check SSE connection status and client count."""
    return {
        "connected_clients": broadcaster.client_count,
        "status": "healthy",
    }
