# Copyright (c) Microsoft. All rights reserved.

"""SignalR connection negotiation for the transparency hub."""

import json
import logging
import time

import azure.functions as func

from routes.responses import (
    ALL_METHODS,
    error_response,
    method_not_allowed,
    preflight_response,
    success_response,
)
from routes.tools import SIGNALR_CONNECTION_SETTING
from services.transparency import HUB_NAME

bp = func.Blueprint()

NEGOTIATE_METHODS = ["GET", "POST", "OPTIONS"]


@bp.route(route="websocket-negotiate", methods=ALL_METHODS, auth_level=func.AuthLevel.ANONYMOUS)
@bp.generic_input_binding(
    arg_name="connectionInfo",
    type="signalRConnectionInfo",
    hub_name=HUB_NAME,
    connection_string_setting=SIGNALR_CONNECTION_SETTING,
)
async def websocket_negotiate(req: func.HttpRequest, connectionInfo: str) -> func.HttpResponse:
    """
    Negotiate a SignalR connection.

    Request:
        GET|POST /api/websocket-negotiate?sessionId=...&userId=...

    Response:
        200 OK
        {"success": true, "sessionId": "...", "userId": "...",
         "connectionInfo": {"url": "...", "accessToken": "..."}}
    """
    if req.method == "OPTIONS":
        return preflight_response(NEGOTIATE_METHODS)
    if req.method not in NEGOTIATE_METHODS:
        return method_not_allowed(req.method, NEGOTIATE_METHODS)

    user_id = req.params.get("userId") or req.headers.get("x-user-id")
    session_id = req.params.get("sessionId") or f"session_{int(time.time() * 1000)}"
    logging.info(f"Negotiating connection for user: {user_id}, session: {session_id}")

    try:
        info = json.loads(connectionInfo) if connectionInfo else {}
    except (TypeError, ValueError) as e:
        logging.exception(f"WebSocket negotiation failed: {e}")
        return error_response(f"WebSocket negotiation failed: {e}", 500, methods=NEGOTIATE_METHODS)

    return success_response(
        message="WebSocket negotiation completed",
        sessionId=session_id,
        userId=user_id,
        connectionInfo={"url": info.get("url"), "accessToken": info.get("accessToken")},
        endpoints={
            "transparency": "/api/transparency-hub",
            "negotiate": "/api/websocket-negotiate",
        },
        methods=NEGOTIATE_METHODS,
    )
