"""
Realtime WebSocket Endpoint

One persistent connection per client at ``/ws``. Clients subscribe to
topics and may also issue enrollment operations over the same connection.

Inbound messages (JSON, see ``RealtimeCommand``):
    {"action": "subscribe", "topic": "class:cls-101"}
    {"action": "unsubscribe", "topic": "class:cls-101"}
    {"action": "request-enrollment", "student_id": "...", "class_id": "...", "request_id": "1"}
    {"action": "drop-enrollment", "student_id": "...", "class_id": "..."}
    {"action": "waitlist-response", "student_id": "...", "class_id": "...", "response": "accept"}

Outbound messages:
    {"type": "subscribed" | "unsubscribed", "topic": ...}
    {"type": "result", "request_id": ..., "result": {OperationResult}}
    {"type": "error", "request_id": ..., "error": ..., "message": ...}
    {"topic": ..., "event": ..., "payload": {...}}   (published events)

Disconnecting removes every subscription of the connection.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from enrollment_hub.core.broadcast import BroadcastHub, get_hub
from enrollment_hub.core.rate_limit import RateLimitExceeded, enforce_student_rate_limit
from enrollment_hub.modules.enrollments.coordinator import (
    EnrollmentCoordinator,
    get_coordinator,
)
from enrollment_hub.modules.enrollments.events import is_valid_topic
from enrollment_hub.modules.enrollments.schemas import OperationResult, RealtimeCommand

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(request_id: str | None, error: str, message: str) -> dict[str, Any]:
    return {"type": "error", "request_id": request_id, "error": error, "message": message}


async def _run_operation(
    command: RealtimeCommand,
    coordinator: EnrollmentCoordinator,
) -> dict[str, Any]:
    if not command.student_id or not command.class_id:
        return _error(command.request_id, "INVALID_COMMAND", "student_id and class_id are required")

    try:
        await enforce_student_rate_limit(command.student_id)
    except RateLimitExceeded as e:
        return _error(command.request_id, e.detail["error"], e.detail["message"])

    result: OperationResult
    if command.action == "request-enrollment":
        result = await coordinator.request_enrollment(
            command.student_id, command.class_id, command.justification
        )
    elif command.action == "drop-enrollment":
        result = await coordinator.drop_enrollment(command.student_id, command.class_id)
    else:
        if command.response is None:
            return _error(command.request_id, "INVALID_COMMAND", "response is required")
        result = await coordinator.respond_to_waitlist_offer(
            command.student_id, command.class_id, command.response
        )

    return {
        "type": "result",
        "request_id": command.request_id,
        "result": result.model_dump(mode="json"),
    }


async def handle_command(
    websocket: WebSocket,
    raw: str,
    hub: BroadcastHub,
    coordinator: EnrollmentCoordinator,
) -> dict[str, Any]:
    """Execute one inbound message and build the reply."""
    try:
        command = RealtimeCommand.model_validate_json(raw)
    except ValidationError as e:
        return _error(None, "INVALID_COMMAND", f"Malformed message: {e.error_count()} error(s)")

    if command.action in ("subscribe", "unsubscribe"):
        if not command.topic or not is_valid_topic(command.topic):
            return _error(
                command.request_id,
                "INVALID_TOPIC",
                "topic must be class:<id>, student:<id> or teacher:<id>",
            )
        if command.action == "subscribe":
            await hub.subscribe(command.topic, websocket)
            return {"type": "subscribed", "request_id": command.request_id, "topic": command.topic}
        await hub.unsubscribe(command.topic, websocket)
        return {"type": "unsubscribed", "request_id": command.request_id, "topic": command.topic}

    return await _run_operation(command, coordinator)


@router.websocket("/ws")
async def realtime_endpoint(
    websocket: WebSocket,
    hub: BroadcastHub = Depends(get_hub),
    coordinator: EnrollmentCoordinator = Depends(get_coordinator),
) -> None:
    await websocket.accept()
    try:
        while True:
            raw = await websocket.receive_text()
            reply = await handle_command(websocket, raw, hub, coordinator)
            await websocket.send_json(reply)
    except WebSocketDisconnect:
        logger.debug("Realtime client disconnected")
    finally:
        await hub.unsubscribe_all(websocket)
