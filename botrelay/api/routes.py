from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from botrelay.admin import parse_intent
from botrelay.api.deps import get_relay
from botrelay.api.models import (
    AdminActionRequest,
    ChatMessage,
    ConnectRequest,
    ErrorNotice,
    OperationResult,
    PlayerRecord,
    SendChatRequest,
    StatusPayload,
    VitalsSnapshot,
)
from botrelay.config import build_session_config
from botrelay.errors import (
    AdapterConstructionError,
    ConfigError,
    NotConnectedError,
    PrivilegeError,
    RelayError,
    UnknownIntentError,
)
from botrelay.relay import Relay
from botrelay.websocket_hub import Subscriber, WebSocketSubscriber

logger = logging.getLogger(__name__)

router = APIRouter()


def _http_status_for(e: RelayError) -> int:
    if isinstance(e, NotConnectedError):
        return status.HTTP_409_CONFLICT
    if isinstance(e, PrivilegeError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(e, (ConfigError, UnknownIntentError)):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    return status.HTTP_502_BAD_GATEWAY


async def _connect(relay: Relay, payload: ConnectRequest) -> None:
    config = build_session_config(
        settings=relay.ctx.settings,
        host=payload.server_ip,
        port=payload.server_port,
        username=payload.username,
        auth=payload.auth,
    )
    await relay.connect(config)


async def handle_viewer_message(relay: Relay, sub: Subscriber, data: dict[str, Any]) -> None:
    """Dispatch one inbound WebSocket message.

    Failures are reported to the sending viewer only.
    """

    msg_type = data.get("type")
    try:
        if msg_type == "connect":
            await _connect(relay, ConnectRequest.model_validate(data))
        elif msg_type == "disconnect":
            await relay.disconnect()
        elif msg_type == "sendMessage":
            relay.send_chat(SendChatRequest.model_validate(data).message)
        elif msg_type == "adminAction":
            req = AdminActionRequest.model_validate(data)
            relay.admin_action(
                parse_intent(action=req.action, target=req.target, reason=req.reason, game_mode=req.game_mode)
            )
        elif msg_type == "requestPlayerList":
            roster = relay.request_player_list_refresh()
            if not relay.session.is_connected:
                relay.hub.send_to(sub, "playerList", roster)
        elif msg_type == "requestVitals":
            vitals = relay.request_vitals_refresh()
            if not relay.session.is_connected:
                relay.hub.send_to(sub, "vitals", vitals)
        else:
            raise UnknownIntentError(f"Unknown message type: {msg_type}")
    except AdapterConstructionError:
        # Already broadcast to every viewer by the session.
        return
    except (RelayError, ValidationError) as e:
        relay.hub.send_to(sub, "errorNotice", ErrorNotice(message=str(e)))


@router.websocket("/ws")
async def relay_ws(websocket: WebSocket, relay: Relay = Depends(get_relay)) -> None:
    await websocket.accept()
    sub = WebSocketSubscriber(websocket)
    relay.hub.attach(sub)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                relay.hub.send_to(sub, "errorNotice", ErrorNotice(message="Messages must be JSON objects"))
                continue
            if not isinstance(data, dict):
                relay.hub.send_to(sub, "errorNotice", ErrorNotice(message="Messages must be JSON objects"))
                continue
            await handle_viewer_message(relay, sub, data)
    except WebSocketDisconnect:
        relay.hub.detach(sub)
    except Exception:
        relay.hub.detach(sub)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/api/status", response_model=StatusPayload)
async def status_route(relay: Relay = Depends(get_relay)) -> StatusPayload:
    return relay.status()


@router.get("/api/players", response_model=list[PlayerRecord])
async def players_route(refresh: bool = False, relay: Relay = Depends(get_relay)) -> list[PlayerRecord]:
    if refresh:
        return relay.request_player_list_refresh()
    return list(relay.ctx.store.roster)


@router.get("/api/vitals", response_model=VitalsSnapshot)
async def vitals_route(refresh: bool = False, relay: Relay = Depends(get_relay)) -> VitalsSnapshot:
    if refresh:
        return relay.request_vitals_refresh()
    return relay.ctx.store.vitals


@router.get("/api/messages", response_model=list[ChatMessage])
async def messages_route(relay: Relay = Depends(get_relay)) -> list[ChatMessage]:
    return relay.chat_history()


@router.post("/api/connect", response_model=OperationResult)
async def connect_route(payload: ConnectRequest, relay: Relay = Depends(get_relay)) -> OperationResult:
    try:
        await _connect(relay, payload)
    except RelayError as e:
        raise HTTPException(status_code=_http_status_for(e), detail=str(e)) from e
    return OperationResult(success=True, message="Connecting bot...")


@router.post("/api/disconnect", response_model=OperationResult)
async def disconnect_route(relay: Relay = Depends(get_relay)) -> OperationResult:
    changed = await relay.disconnect()
    return OperationResult(success=True, message="Disconnected" if changed else "Already disconnected")


@router.post("/api/send-message", response_model=OperationResult)
async def send_message_route(payload: SendChatRequest, relay: Relay = Depends(get_relay)) -> OperationResult:
    try:
        relay.send_chat(payload.message)
    except RelayError as e:
        raise HTTPException(status_code=_http_status_for(e), detail=str(e)) from e
    return OperationResult(success=True)


@router.post("/api/admin-action", response_model=ChatMessage)
async def admin_action_route(payload: AdminActionRequest, relay: Relay = Depends(get_relay)) -> ChatMessage:
    try:
        intent = parse_intent(
            action=payload.action,
            target=payload.target,
            reason=payload.reason,
            game_mode=payload.game_mode,
        )
        return relay.admin_action(intent)
    except RelayError as e:
        raise HTTPException(status_code=_http_status_for(e), detail=str(e)) from e
