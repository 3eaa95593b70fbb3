"""SSE broadcasting for real-time updates.

Manages connected admin dashboards and broadcasts committed lifecycle
transitions (deletions, schedules, cancellations, restorations).
"""

import asyncio
import logging
from typing import TYPE_CHECKING, AsyncGenerator, Optional

from account_lifecycle.schemas import AccountResponse, SSEUpdate

if TYPE_CHECKING:
    from account_lifecycle.models import Account

logger = logging.getLogger(__name__)

# Heartbeat interval to keep SSE connections alive (seconds)
# Proxies/browsers may timeout idle connections - this prevents that
SSE_HEARTBEAT_INTERVAL = 15

# Per-client backlog before messages are dropped for that client
CLIENT_QUEUE_SIZE = 100


class Broadcaster:
    """
    Manages SSE connections and broadcasts updates to all clients.

    Usage:
        # In SSE endpoint
        async for data in broadcaster.subscribe():
            yield data

        # After a committed transition
        await broadcaster.broadcast_update(account, "deleted")
    """

    def __init__(self):
        self._clients: list[asyncio.Queue] = []

    async def subscribe(self) -> AsyncGenerator[Optional[dict], None]:
        """
        Subscribe to updates. Returns an async generator for SSE endpoint.

        Yields dicts like:
            {"event": "update", "data": {...}}

        Or None for heartbeats (SSE endpoint handles these).
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=CLIENT_QUEUE_SIZE)
        self._clients.append(queue)
        logger.info(f"Client connected. Total clients: {len(self._clients)}")

        try:
            while True:
                try:
                    data = await asyncio.wait_for(
                        queue.get(), timeout=SSE_HEARTBEAT_INTERVAL
                    )
                    yield data
                except asyncio.TimeoutError:
                    yield None
                    logger.debug("Sent SSE heartbeat")
        finally:
            self._clients.remove(queue)
            logger.info(f"Client disconnected. Total clients: {len(self._clients)}")

    async def broadcast(self, event_type: str, data: dict) -> None:
        """
        Broadcast an event to all connected clients.

        Args:
            event_type: SSE event name (e.g., 'update')
            data: Dictionary to send
        """
        if not self._clients:
            logger.debug(f"No SSE clients connected for '{event_type}'")
            return

        logger.info(f"Broadcasting '{event_type}' to {len(self._clients)} clients")
        message = {"event": event_type, "data": data}

        for queue in self._clients:
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("Client queue full, skipping message")

    async def broadcast_update(self, account: "Account", event_type: str) -> None:
        """
        Broadcast an account transition to all connected clients.

        Never raises: a broken feed must not fail a committed transition.
        """
        try:
            update = SSEUpdate(
                event_type=event_type,
                account_id=account.id,
                account=AccountResponse.model_validate(account),
            )
            await self.broadcast("update", update.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"broadcast_update failed for account {account.id}: {e}", exc_info=True)

    @property
    def client_count(self) -> int:
        """Number of connected clients."""
        return len(self._clients)


# Global instance
broadcaster = Broadcaster()
