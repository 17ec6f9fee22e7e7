"""
Sync API routes.

Version, delta, snapshot, client event ingestion and the live Server-Sent
Events stream consumed by remote clients.
"""

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Callable, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from chatledger.api.deps import get_store, get_sync
from chatledger.api.schemas import (
    ClientEventRequest,
    ClientEventResponse,
    DeltaResponse,
    EventResponse,
    SnapshotResponse,
    VersionResponse,
)
from chatledger.config import settings
from chatledger.db.store import Store
from chatledger.exceptions import SubscriberDisconnected
from chatledger.sync.broadcast import Subscription
from chatledger.sync.engine import SyncEngine
from chatledger.sync.ingest import ClientEvent, ingest_client_event

logger = logging.getLogger(__name__)

router = APIRouter()

# Upper bound on how long a stream waits before checking for disconnects
_POLL_SECONDS = 1.0


def format_sse(event: dict[str, Any]) -> str:
    """Encode one event as an SSE message (id = version)."""
    payload = EventResponse.model_validate(event).model_dump(by_alias=True)
    return (
        f"id: {event['version']}\n"
        f"event: {event['event_type']}\n"
        f"data: {json.dumps(payload, separators=(',', ':'))}\n\n"
    )


async def event_stream(
    request: Request,
    subscription: Subscription,
    heartbeat_seconds: float,
    max_events_per_second: int,
    limit: Optional[int] = None,
    on_idle: Optional[Callable[[], Any]] = None,
) -> AsyncIterator[str]:
    """
    SSE response generator.

    Emits events in version order, a `: heartbeat` comment whenever the
    stream has been idle for `heartbeat_seconds`, and a final
    `disconnected` event if the server drops the subscriber. `on_idle` runs
    in a worker thread before each heartbeat.
    """
    min_interval = 1.0 / max_events_per_second if max_events_per_second > 0 else 0.0
    poll = min(_POLL_SECONDS, heartbeat_seconds)
    last_sent = time.monotonic()
    delivered = 0
    try:
        yield ": connected\n\n"
        while limit is None or delivered < limit:
            if await request.is_disconnected():
                logger.debug(f"Subscriber {subscription.id} went away")
                break
            try:
                event = await asyncio.to_thread(subscription.get, poll)
            except SubscriberDisconnected as e:
                yield f"event: disconnected\ndata: {json.dumps(e.to_dict())}\n\n"
                break

            if event is None:
                if time.monotonic() - last_sent >= heartbeat_seconds:
                    if on_idle is not None:
                        await asyncio.to_thread(on_idle)
                    yield ": heartbeat\n\n"
                    last_sent = time.monotonic()
                continue

            yield format_sse(event)
            delivered += 1
            last_sent = time.monotonic()
            if min_interval:
                await asyncio.sleep(min_interval)
    finally:
        subscription.close()


@router.get("/version", response_model=VersionResponse)
def get_version(sync: SyncEngine = Depends(get_sync)) -> VersionResponse:
    """Current version (version of the most recently committed event)."""
    return VersionResponse(version=sync.current_version())


@router.get("/delta", response_model=DeltaResponse)
def get_delta(
    from_version: int = Query(0, alias="from", description="Client cursor"),
    limit: Optional[int] = Query(None, ge=1, le=10_000),
    sync: SyncEngine = Depends(get_sync),
) -> DeltaResponse:
    """
    Events with version > `from`, oldest first.

    Responds 410 with `action: "snapshot"` when the cursor predates retained
    history or is ahead of the current version.
    """
    delta = sync.delta(from_version, limit)
    return DeltaResponse(
        from_version=delta.from_version,
        to_version=delta.to_version,
        current_version=delta.current_version,
        has_more=delta.has_more,
        events=[EventResponse.model_validate(e) for e in delta.events],
    )


@router.get("/snapshot", response_model=SnapshotResponse)
def get_snapshot(sync: SyncEngine = Depends(get_sync)) -> SnapshotResponse:
    """Full bootstrap payload at the current version."""
    return SnapshotResponse(**sync.snapshot())


@router.post("/event", response_model=ClientEventResponse, status_code=201)
def post_event(
    body: ClientEventRequest,
    store: Store = Depends(get_store),
) -> ClientEventResponse:
    """Apply a client-originated event through the storage engine."""
    events = ingest_client_event(
        store,
        ClientEvent(
            event_type=body.event_type,
            entity_type=body.entity_type,
            entity_id=body.entity_id,
            data=body.data,
            actor=body.actor,
            base_version=body.base_version,
        ),
    )
    return ClientEventResponse(
        accepted=True,
        version=store.sync.current_version(),
        events=[EventResponse.model_validate(e) for e in events],
    )


@router.get("/subscribe")
async def subscribe(
    request: Request,
    from_version: Optional[int] = Query(
        None, alias="from", description="Replay events after this version first"
    ),
    limit: Optional[int] = Query(
        None, ge=1, description="Close the stream after this many events"
    ),
    sync: SyncEngine = Depends(get_sync),
) -> StreamingResponse:
    """
    Live Server-Sent Events stream of committed events.

    SSE Format:
    - id: event version (resume with `from=<id>` or a delta request)
    - event: event type (e.g. "message.created")
    - data: JSON event payload
    """
    subscription = await asyncio.to_thread(sync.subscribe, from_version)
    logger.info(
        f"Subscriber {subscription.id} connected (from={from_version}, "
        f"{len(sync.subscribers)} active)"
    )
    return StreamingResponse(
        event_stream(
            request,
            subscription,
            settings.sync_heartbeat_seconds,
            settings.sync_max_events_per_second,
            limit,
            # Picks up events committed by other processes
            on_idle=sync.refresh,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
