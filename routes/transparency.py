# Copyright (c) Microsoft. All rights reserved.

"""Transparency session hub and message broadcast endpoints."""

import json
import logging

import azure.functions as func

from routes.responses import (
    ALL_METHODS,
    error_response,
    method_not_allowed,
    preflight_response,
    read_json_object,
    success_response,
)
from routes.tools import SIGNALR_CONNECTION_SETTING, deliver_pending_messages
from services import TransparencyLogger, create_signalr_message, http_request_span
from services.transparency import HUB_NAME, MESSAGE_TYPES

bp = func.Blueprint()

HUB_METHODS = ["GET", "POST", "DELETE", "OPTIONS"]
BROADCAST_METHODS = ["POST", "OPTIONS"]

HUB_ENDPOINTS = {
    "negotiate": "/api/websocket-negotiate",
    "hub": "/api/transparency-hub",
    "broadcast": "/api/transparency-broadcast",
}

# Message type -> (broadcast method, [(data field, argument name, required)])
BROADCAST_FIELDS = {
    "agent_thought": ("broadcast_agent_thought", [
        ("agentName", "agent_name", True),
        ("step", "step", True),
        ("thought", "thought", True),
        ("toolCalled", "tool_called", False),
    ]),
    "tool_execution": ("broadcast_tool_execution", [
        ("toolName", "tool_name", True),
        ("status", "status", True),
        ("duration", "duration", False),
        ("result", "result", False),
    ]),
    "processing_step": ("broadcast_processing_step", [
        ("currentStep", "current_step", True),
        ("totalSteps", "total_steps", True),
        ("stepName", "step_name", True),
        ("progress", "progress", True),
    ]),
    "decision_point": ("broadcast_decision_point", [
        ("agentName", "agent_name", True),
        ("decision", "decision", True),
        ("reasoning", "reasoning", True),
        ("alternatives", "alternatives", True),
        ("confidence", "confidence", True),
    ]),
    "collaboration": ("broadcast_collaboration", [
        ("fromAgent", "from_agent", True),
        ("toAgent", "to_agent", True),
        ("message", "message", True),
        ("collaborationType", "collaboration_type", True),
    ]),
}


def session_stats_summary(session) -> dict:
    return {
        "totalMessages": session.totalMessages if session else 0,
        "activeAgents": len(session.agents) if session else 0,
        "activeTools": len(session.tools) if session else 0,
    }


@bp.route(route="transparency-hub", methods=ALL_METHODS, auth_level=func.AuthLevel.ANONYMOUS)
async def transparency_hub(req: func.HttpRequest) -> func.HttpResponse:
    """
    Transparency session hub.

    Request:
        GET /api/transparency-hub                   hub status
        GET /api/transparency-hub?sessionId=...     session stats
        POST /api/transparency-hub                  create a session
            Body: {"userId": "..."} (or x-user-id header)
        DELETE /api/transparency-hub?sessionId=...  end a session

    Response:
        201 Created (POST)
        {"success": true, "sessionId": "...", "websocketUrl": "/api/websocket-negotiate?..."}
    """
    if req.method == "OPTIONS":
        return preflight_response(HUB_METHODS)
    if req.method not in HUB_METHODS:
        return method_not_allowed(req.method, HUB_METHODS)

    transparency = TransparencyLogger.get_instance()
    session_id = req.params.get("sessionId")

    async with http_request_span(
        req.method, "/transparency-hub", session_id=session_id, user_id=req.headers.get("x-user-id")
    ) as span:
        try:
            if req.method == "GET":
                if session_id:
                    session = transparency.get_session_stats(session_id)
                    if session is None:
                        span.set_attribute("http.status_code", 404)
                        return error_response(
                            "Session not found", 404, methods=HUB_METHODS, sessionId=session_id
                        )
                    span.set_attribute("http.status_code", 200)
                    return success_response(
                        message="Session stats retrieved",
                        session=session.to_dict(),
                        methods=HUB_METHODS,
                    )

                span.set_attribute("http.status_code", 200)
                return success_response(
                    message="Transparency Hub is active",
                    activeSessionCount=transparency.get_active_session_count(),
                    hubName=HUB_NAME,
                    endpoints=HUB_ENDPOINTS,
                    methods=HUB_METHODS,
                )

            if req.method == "POST":
                try:
                    body = read_json_object(req, default={})
                except ValueError:
                    span.set_attribute("http.status_code", 400)
                    return error_response("Invalid JSON body", 400, methods=HUB_METHODS)

                user_id = body.get("userId") or req.headers.get("x-user-id")
                new_session_id = transparency.create_session(user_id)
                logging.info(f"Created new transparency session: {new_session_id} for user: {user_id}")

                websocket_url = f"/api/websocket-negotiate?sessionId={new_session_id}"
                if user_id:
                    websocket_url += f"&userId={user_id}"

                span.set_attribute("http.status_code", 201)
                return success_response(
                    status_code=201,
                    message="Transparency session created",
                    sessionId=new_session_id,
                    userId=user_id,
                    websocketUrl=websocket_url,
                    methods=HUB_METHODS,
                )

            # DELETE
            if not session_id:
                span.set_attribute("http.status_code", 400)
                return error_response(
                    "sessionId query parameter is required", 400, methods=HUB_METHODS
                )
            if not transparency.end_session(session_id):
                span.set_attribute("http.status_code", 404)
                return error_response(
                    "Session not found", 404, methods=HUB_METHODS, sessionId=session_id
                )

            logging.info(f"Ended transparency session: {session_id}")
            span.set_attribute("http.status_code", 200)
            return success_response(
                message="Transparency session ended",
                session=transparency.get_session(session_id).to_dict(),
                methods=HUB_METHODS,
            )

        except Exception as e:
            logging.exception(f"Transparency Hub error: {e}")
            span.set_attribute("http.status_code", 500)
            return error_response(f"Transparency Hub error: {e}", 500, methods=HUB_METHODS)


@bp.route(route="transparency-broadcast", methods=ALL_METHODS, auth_level=func.AuthLevel.ANONYMOUS)
@bp.generic_output_binding(
    arg_name="signalRMessages",
    type="signalR",
    hub_name=HUB_NAME,
    connection_string_setting=SIGNALR_CONNECTION_SETTING,
)
async def transparency_broadcast(
    req: func.HttpRequest, signalRMessages: func.Out[str]
) -> func.HttpResponse:
    """
    Broadcast a transparency message to a session.

    Request:
        POST /api/transparency-broadcast
        Body: {"messageType": "agent_thought", "sessionId": "...", "data": {...}}

    Response:
        200 OK
        {"success": true, "sessionStats": {"totalMessages": 1, "activeAgents": 1, "activeTools": 0}}
    """
    if req.method == "OPTIONS":
        return preflight_response(BROADCAST_METHODS)
    if req.method != "POST":
        return method_not_allowed(req.method, BROADCAST_METHODS)

    try:
        body = read_json_object(req)
    except ValueError:
        return error_response("Invalid JSON body", 400, methods=BROADCAST_METHODS)

    message_type = body.get("messageType")
    session_id = body.get("sessionId")
    data = body.get("data")

    async with http_request_span("POST", "/transparency-broadcast", session_id=session_id) as span:
        if not message_type or not session_id or not data:
            span.set_attribute("http.status_code", 400)
            return error_response(
                "Missing required fields: messageType, sessionId, and data are required",
                400,
                methods=BROADCAST_METHODS,
            )

        transparency = TransparencyLogger.get_instance()
        if not transparency.is_session_active(session_id):
            span.set_attribute("http.status_code", 404)
            return error_response(
                "Session not found or inactive", 404, methods=BROADCAST_METHODS, sessionId=session_id
            )

        if message_type not in BROADCAST_FIELDS:
            span.set_attribute("http.status_code", 400)
            return error_response(
                f"Unknown message type: {message_type}",
                400,
                methods=BROADCAST_METHODS,
                supportedTypes=list(MESSAGE_TYPES),
            )

        if not isinstance(data, dict):
            span.set_attribute("http.status_code", 400)
            return error_response("data must be an object", 400, methods=BROADCAST_METHODS)

        method_name, fields = BROADCAST_FIELDS[message_type]
        missing = [field for field, _, required in fields if required and data.get(field) is None]
        if missing:
            span.set_attribute("http.status_code", 400)
            return error_response(
                f"Missing required data fields for {message_type}: {', '.join(missing)}",
                400,
                methods=BROADCAST_METHODS,
                requiredFields=[field for field, _, required in fields if required],
            )

        try:
            arguments = {argument: data.get(field) for field, argument, _ in fields}
            await getattr(transparency, method_name)(session_id, **arguments)
            logging.info(f"Transparency message broadcast: {message_type} for session {session_id}")

            span.set_attribute("http.status_code", 200)
            return success_response(
                message="Transparency message broadcast successfully",
                messageType=message_type,
                sessionId=session_id,
                sessionStats=session_stats_summary(transparency.get_session_stats(session_id)),
                methods=BROADCAST_METHODS,
            )
        except Exception as e:
            logging.exception(f"Transparency broadcast error: {e}")
            span.set_attribute("http.status_code", 500)
            return error_response(
                f"Transparency broadcast failed: {e}", 500, methods=BROADCAST_METHODS
            )
        finally:
            deliver_pending_messages(signalRMessages, transparency, session_id)


@bp.route(route="signalr-broadcast", methods=ALL_METHODS)
@bp.generic_output_binding(
    arg_name="signalRMessages",
    type="signalR",
    hub_name=HUB_NAME,
    connection_string_setting=SIGNALR_CONNECTION_SETTING,
)
async def signalr_broadcast(
    req: func.HttpRequest, signalRMessages: func.Out[str]
) -> func.HttpResponse:
    """
    Forward a raw transparency message to the SignalR hub.

    Request:
        POST /api/signalr-broadcast
        Body: {"type": "agent_thought", "sessionId": "...", ...}
    """
    allowed = ["POST", "OPTIONS"]
    if req.method == "OPTIONS":
        return preflight_response(allowed)
    if req.method != "POST":
        return method_not_allowed(req.method, allowed)

    try:
        message = read_json_object(req)
    except ValueError:
        return error_response("Invalid JSON body", 400, methods=allowed)

    if message.get("type") not in MESSAGE_TYPES or not message.get("sessionId"):
        return error_response(
            "Message must carry a supported type and a sessionId",
            400,
            methods=allowed,
            supportedTypes=list(MESSAGE_TYPES),
        )

    signalRMessages.set(json.dumps([create_signalr_message(message)], default=str))
    logging.info(f"Broadcasting to SignalR: {message['type']} for session {message['sessionId']}")

    return success_response(
        message="Message broadcast to SignalR",
        messageType=message["type"],
        sessionId=message["sessionId"],
        methods=allowed,
    )
