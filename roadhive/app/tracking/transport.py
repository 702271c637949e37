"""
Location transport.

Publish/subscribe bus carrying ``location_update`` events between the
participants of a trip. Remote changes are discovered by polling the load
list and diffing a per-load signature; local fixes are echoed to local
subscribers straight away. One transport belongs to one trip session.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from roadhive.app.core.config import settings
from roadhive.app.models.load_enums import LoadStatus
from roadhive.app.schemas.load import Coordinates
from roadhive.app.tracking.api_client import TripApiClient, TripApiError

logger = logging.getLogger("roadhive.tracking.transport")

LOCATION_UPDATE = "location_update"

Handler = Callable[[Any], None]
Signature = Tuple[str, Optional[datetime], LoadStatus]


class LocationUpdate(BaseModel):
    load_id: str
    coordinates: Coordinates
    status: LoadStatus


class LocationTransport:

    def __init__(self, api: TripApiClient, poll_interval: Optional[float] = None):
        self._api = api
        self._poll_interval = settings.transport_poll_interval_seconds if poll_interval is None else poll_interval
        self._handlers: Dict[str, List[Handler]] = {}
        self._signatures: Dict[str, Signature] = {}
        self._task: Optional[asyncio.Task] = None
        self.scope_id: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self._task is not None and not self._task.done()

    def connect(self, scope_id: str) -> None:
        """Start polling for ``scope_id``. Connecting again is a no-op."""
        if self.connected:
            return
        self.scope_id = scope_id
        self._task = asyncio.get_running_loop().create_task(self._poll_loop())
        logger.info("Connected to channel tenant:%s", scope_id)

    def disconnect(self) -> None:
        """Stop polling and forget subscriptions and seen signatures."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._handlers.clear()
        self._signatures.clear()
        if self.scope_id is not None:
            logger.info("Disconnected from channel tenant:%s", self.scope_id)
        self.scope_id = None

    def subscribe(self, event: str, handler: Handler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if handlers is None:
            return
        remaining = [h for h in handlers if h is not handler]
        if remaining:
            self._handlers[event] = remaining
        else:
            del self._handlers[event]

    def emit(self, event: str, payload: Any) -> None:
        """Deliver to local subscribers. A failing handler does not stop the others."""
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", event)

    async def poll_once(self) -> int:
        """
        Fetch visible loads and publish the ones whose position or status moved.

        The signature includes the status so a status change is published
        even when the server did not move ``last_updated``.

        Returns:
            Number of updates published
        """
        loads = await self._api.list_loads()
        published = 0
        for load in loads:
            if load.current_location is None:
                continue
            signature = (load.id, load.last_updated, load.status)
            if self._signatures.get(load.id) == signature:
                continue
            self._signatures[load.id] = signature
            self.emit(LOCATION_UPDATE, LocationUpdate(
                load_id=load.id,
                coordinates=load.current_location,
                status=load.status,
            ))
            published += 1
        return published

    async def _poll_loop(self):
        while True:
            # Nobody listening, nothing to fetch
            if self._handlers.get(LOCATION_UPDATE):
                try:
                    await self.poll_once()
                except TripApiError as exc:
                    logger.warning("Location poll failed: %s", exc)
            await asyncio.sleep(self._poll_interval)
