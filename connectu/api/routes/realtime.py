"""
Realtime socket route for the ConnectU API.

One websocket per client session at ``/ws``. Frames are JSON objects
``{"event": <name>, "data": <payload>}`` in both directions.

Client events:
- join-chat (chatId)
- typing-start / typing-stop (chatId)
- message_delivered ({messageId, chatId})
- mark_messages_read ({chatId})

The token may come in the ``token`` query parameter or an Authorization
header. Without a valid one the session is anonymous: it can join rooms
but is not presence-tracked and cannot acknowledge messages.
"""

import json
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from connectu.api.routes.dependencies import AppContext, bearer_token, context_for
from connectu.core.errors import ConnectUError
from connectu.core.logger import get_logger
from connectu.core.realtime import Session


router = APIRouter()
log = get_logger("connectu.api.realtime")


def _str_id(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _chat_id(data: Any) -> Optional[str]:
    """join-chat and typing events carry either the bare id or {chatId}"""
    if isinstance(data, dict):
        return _str_id(data.get("chatId"))
    return _str_id(data)


def _authenticate(ctx: AppContext, websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token") or bearer_token(
        websocket.headers.get("authorization")
    )
    if not token:
        return None
    try:
        user_id = ctx.tokens.verify(token)
    except ConnectUError as e:
        log.warning("socket auth error: %s", e.message)
        return None
    if ctx.db.get_user(user_id) is None:
        log.warning("socket auth error: unknown user %s", user_id)
        return None
    return user_id


async def handle_event(ctx: AppContext, session: Session, event: str, data: Any) -> None:
    """Dispatch one client frame"""
    if event == "join-chat":
        chat_id = _chat_id(data)
        if ctx.hub.join(session, chat_id):
            log.info("socket %s joined room %s", session.id, chat_id)

    elif event in ("typing-start", "typing-stop"):
        await ctx.chats.typing(session, _chat_id(data), active=event == "typing-start")

    elif event == "message_delivered":
        if not isinstance(data, dict):
            return
        message_id = _str_id(data.get("messageId"))
        if message_id is None:
            return
        await ctx.chats.mark_delivered(session, message_id, _chat_id(data))

    elif event == "mark_messages_read":
        if not session.authenticated:
            return
        user = ctx.db.get_user(session.user_id)
        if user is not None:
            await ctx.chats.mark_read(user, _chat_id(data), origin=session)

    else:
        log.info("ignoring unknown socket event %r", event)


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket):
    ctx = context_for(websocket.app)
    user_id = _authenticate(ctx, websocket)

    await websocket.accept()
    session = Session(websocket, user_id)
    await ctx.hub.connect(session)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                log.warning("dropping non-JSON frame from session %s", session.id)
                continue
            if not isinstance(frame, dict):
                continue
            try:
                await handle_event(ctx, session, frame.get("event"), frame.get("data"))
            except ConnectUError as e:
                log.warning(
                    "socket event %s rejected session=%s: %s",
                    frame.get("event"),
                    session.id,
                    e.message,
                )
            except Exception:
                log.exception(
                    "socket event %s failed session=%s", frame.get("event"), session.id
                )
    except WebSocketDisconnect:
        pass
    finally:
        await ctx.hub.disconnect(session)
