# app/routers/live.py
import asyncio
import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from pydantic import ValidationError
from sqlmodel import Session

from app.core.auth import user_from_token
from app.core.change_feed import ChangeEvent, get_change_feed
from app.core.config import get_settings
from app.core.sound import SoundCue, SoundPlayer, synthesize_wav
from app.database import engine
from app.routers.orders import service as order_service
from app.schemas.order import OrderFilterParams
from app.services.notification_service import NotificationDispatcher
from app.services.transition_policy import Actor
from app.sync.filters import OrderFilter
from app.sync.order_store import OrderStore
from app.sync.sources import ServiceOrderSource

settings = get_settings()
logger = logging.getLogger(__name__)

router = APIRouter(tags=["Live"])


def _session() -> Session:
    return Session(engine)


def _resolve_actor(token: str) -> Actor:
    with _session() as session:
        user = user_from_token(token, session)
        return order_service.actor_for(session, user)


async def _authenticate(websocket: WebSocket, token: str) -> Actor | None:
    """
    Authenticate a websocket from its `token` query parameter.

    Browsers cannot set an Authorization header on websockets, so the
    Supabase access token travels in the URL instead. Refused sockets
    are closed with 1008 before the handshake completes.
    """
    try:
        return await run_in_threadpool(_resolve_actor, token)
    except HTTPException as exc:
        logger.info("Websocket refused: %s", exc.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None


async def _drain(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        await websocket.send_json(await outbox.get())


@router.get("/notifications/sounds/{cue}")
def get_sound(cue: SoundCue):
    """
    WAV rendering of an alert sound ("new_order" | "assigned").
    """
    return Response(content=synthesize_wav(cue), media_type="audio/wav")


@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, token: str = ""):
    """
    Alert stream for the connected user.

    Server -> client:
      {"type": "alert", "message", "tone", "order_id", "sound"}
      {"type": "sound", "cue", "url"}   (only after unlock)

    Client -> server:
      {"type": "unlock"}  first user gesture; flushes sounds queued so far
    """
    actor = await _authenticate(websocket, token)
    if actor is None:
        return

    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue[dict] = asyncio.Queue()

    def push(message: dict) -> None:
        loop.call_soon_threadsafe(outbox.put_nowait, message)

    player = SoundPlayer(
        output=lambda cue, _wav: push(
            {
                "type": "sound",
                "cue": cue.value,
                "url": f"{settings.API_V1_STR}/notifications/sounds/{cue.value}",
            }
        )
    )
    dispatcher = NotificationDispatcher(actor, sink=lambda alert: push(alert.to_dict()), player=player)
    # Subscribe before the handshake so no event slips in between.
    unsubscribe = dispatcher.attach(get_change_feed())
    await websocket.accept()

    sender = asyncio.create_task(_drain(websocket, outbox))
    try:
        while True:
            message = await websocket.receive_json()
            if message.get("type") == "unlock":
                player.unlock()
    except WebSocketDisconnect:
        logger.info("Notifications socket closed for %s", actor.name)
    finally:
        unsubscribe()
        sender.cancel()


def _snapshot_message(store: OrderStore, order_filter: OrderFilter) -> dict:
    return {
        "type": "snapshot",
        "orders": [o.model_dump(mode="json") for o in store.visible(order_filter)],
        "consolidated": [line.model_dump(mode="json") for line in store.consolidated(order_filter)],
        "has_more": store.has_more,
        "can_load_more": store.can_load_more(order_filter),
        "error": store.error,
    }


def _filter_errors(exc: ValidationError) -> list[str]:
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]


@router.websocket("/ws/orders")
async def orders_socket(websocket: WebSocket, token: str = ""):
    """
    Live order list for the connected user.

    Snapshots only carry orders the user may see, narrowed by the
    socket's current filter. Load-more is refused while a filter is set,
    since filters only narrow the already loaded window.

    Server -> client:
      {"type": "snapshot", "orders": [...], "consolidated": [...],
       "has_more": bool, "can_load_more": bool, "error": str | null}
      {"type": "error", "detail": ...}

    Client -> server:
      {"type": "load_more"} | {"type": "refetch"}
      {"type": "filter", "search", "city", "status", "order_type",
       "seller_id", "date_start", "date_end"}   all optional
    """
    actor = await _authenticate(websocket, token)
    if actor is None:
        return

    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue[dict] = asyncio.Queue()
    events: asyncio.Queue[ChangeEvent] = asyncio.Queue()
    current = {"filter": OrderFilter()}

    store = OrderStore(
        ServiceOrderSource(order_service, _session, actor),
        page_size=settings.ORDER_PAGE_SIZE,
        viewer=actor,
    )
    store.subscribe(
        lambda _snapshot: loop.call_soon_threadsafe(
            outbox.put_nowait, _snapshot_message(store, current["filter"])
        )
    )
    unsubscribe = get_change_feed().subscribe(
        lambda event: loop.call_soon_threadsafe(events.put_nowait, event)
    )
    await websocket.accept()

    async def reconcile() -> None:
        # INSERT handling reads from the database, keep it off the loop.
        while True:
            await run_in_threadpool(store.apply, await events.get())

    tasks = [
        asyncio.create_task(_drain(websocket, outbox)),
        asyncio.create_task(reconcile()),
    ]
    try:
        await run_in_threadpool(store.fetch, 0)
        while True:
            message = await websocket.receive_json()
            kind = message.pop("type", None)
            if kind == "load_more":
                if current["filter"].active:
                    outbox.put_nowait(
                        {"type": "error", "detail": "Clear the filters to load more orders"}
                    )
                    continue
                await run_in_threadpool(store.load_more)
            elif kind == "refetch":
                await run_in_threadpool(store.refetch)
            elif kind == "filter":
                try:
                    params = OrderFilterParams.model_validate(message)
                except ValidationError as exc:
                    outbox.put_nowait({"type": "error", "detail": _filter_errors(exc)})
                    continue
                current["filter"] = OrderFilter(**params.model_dump())
                outbox.put_nowait(_snapshot_message(store, current["filter"]))
    except WebSocketDisconnect:
        logger.info("Orders socket closed for %s", actor.name)
    finally:
        unsubscribe()
        for task in tasks:
            task.cancel()
