# Copyright (c) Microsoft. All rights reserved.

"""Tool listing, tool invocation and API description endpoints."""

import json
import logging
import time

import azure.functions as func

from routes.responses import (
    ALL_METHODS,
    error_response,
    method_not_allowed,
    preflight_response,
    read_json_object,
    success_response,
)
from services import (
    AnalysisResultStore,
    TransparencyLogger,
    UtilitiesMcpAttr,
    http_request_span,
    tool_span,
)
from services.transparency import HUB_NAME
from tools import ToolInputError, ToolProgress, get_tool, list_tools, run_tool
from tools.pdf_processor import NOT_CONFIGURED

bp = func.Blueprint()

SIGNALR_CONNECTION_SETTING = "AzureSignalRConnectionString"
SERVICE_VERSION = "1.0.0"

# Analysis result store (lazy singleton)
_result_store: AnalysisResultStore | None = None


def get_result_store() -> AnalysisResultStore:
    """Get or create the analysis result store instance."""
    global _result_store
    if _result_store is None:
        _result_store = AnalysisResultStore()
        logging.info("Initialized analysis result store")
    return _result_store


def reset_result_store() -> None:
    global _result_store
    _result_store = None


def deliver_pending_messages(
    signalr_messages: func.Out[str],
    transparency: TransparencyLogger,
    session_id: str | None,
) -> None:
    """Hand a session's queued transparency messages to the SignalR output binding."""
    if not session_id:
        return
    messages = transparency.drain_signalr_messages(session_id)
    if messages:
        signalr_messages.set(json.dumps(messages, default=str))


def tool_status_code(result: dict) -> int:
    if result.get("status") != "error":
        return 200
    if result.get("azure_integration") == NOT_CONFIGURED:
        return 503
    return 500


@bp.route(route="tools", methods=ALL_METHODS)
async def get_tools(req: func.HttpRequest) -> func.HttpResponse:
    """
    List available tools.

    Request:
        GET /api/tools

    Response:
        200 OK
        {"success": true, "data": {"tools": [{"name", "description", "inputSchema"}], "count": 6}}
    """
    if req.method == "OPTIONS":
        return preflight_response(["GET", "OPTIONS"])
    if req.method != "GET":
        return method_not_allowed(req.method, ["GET", "OPTIONS"])

    async with http_request_span("GET", "/tools") as span:
        tools = list_tools()
        span.set_attribute("http.status_code", 200)
        return success_response(data={"tools": tools, "count": len(tools)}, methods=["GET", "OPTIONS"])


@bp.route(route="tools/{name}", methods=ALL_METHODS)
@bp.generic_output_binding(
    arg_name="signalRMessages",
    type="signalR",
    hub_name=HUB_NAME,
    connection_string_setting=SIGNALR_CONNECTION_SETTING,
)
async def call_tool(req: func.HttpRequest, signalRMessages: func.Out[str]) -> func.HttpResponse:
    """
    Run a tool.

    Request:
        POST /api/tools/{name}
        Headers: x-session-id (optional transparency session)
        Body: {"query": "..."} or {"arguments": {"query": "..."}}

    Response:
        200 OK
        {"success": true, "status": "success", "tool": "search_knowledge", "result": {...}}
    """
    allowed = ["POST", "OPTIONS"]
    if req.method == "OPTIONS":
        return preflight_response(allowed)
    if req.method != "POST":
        return method_not_allowed(req.method, allowed)

    name = req.route_params.get("name")
    header_session_id = req.headers.get("x-session-id")

    async with http_request_span(
        "POST", "/tools/{name}", session_id=header_session_id, user_id=req.headers.get("x-user-id")
    ) as span:
        tool = get_tool(name)
        if tool is None:
            span.set_attribute("http.status_code", 404)
            return error_response(
                f"Tool '{name}' not found",
                404,
                methods=allowed,
                available_tools=[t["name"] for t in list_tools()],
            )

        try:
            body = read_json_object(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return error_response("Invalid JSON body", 400, methods=allowed)

        params = body.get("arguments") if isinstance(body.get("arguments"), dict) else body
        session_id = header_session_id or body.get("session_id")

        transparency = TransparencyLogger.get_instance()
        progress = ToolProgress(session_id, transparency)
        reporting = progress.enabled
        started = time.monotonic()

        try:
            if reporting:
                await transparency.broadcast_tool_execution(session_id, name, "starting")

            async with tool_span(name, session_id=session_id if reporting else None) as t_span:
                result = await run_tool(name, params, progress)
                t_span.set_attribute(UtilitiesMcpAttr.TOOL_STATUS, result.get("status", "unknown"))

            status_code = tool_status_code(result)
            if reporting:
                await transparency.broadcast_tool_execution(
                    session_id,
                    name,
                    "complete" if status_code == 200 else "error",
                    duration=round((time.monotonic() - started) * 1000),
                    result=result,
                )

            if status_code == 200:
                await get_result_store().save_result(name, result)
                logging.info(f"Tool {name} completed")
                span.set_attribute("http.status_code", 200)
                return success_response(tool=name, result=result, methods=allowed)

            logging.warning(f"Tool {name} returned an error result: {result.get('message')}")
            span.set_attribute("http.status_code", status_code)
            return error_response(
                result.get("error_message") or result.get("message") or "Tool execution failed",
                status_code,
                methods=allowed,
                tool=name,
                result=result,
            )

        except ToolInputError as e:
            if reporting:
                await transparency.broadcast_tool_execution(
                    session_id, name, "error", result={"error": str(e)}
                )
            span.set_attribute("http.status_code", 400)
            return error_response(str(e), 400, methods=allowed, tool=name)

        except Exception as e:
            logging.exception(f"Tool {name} failed: {e}")
            if reporting:
                await transparency.broadcast_tool_execution(
                    session_id, name, "error", result={"error": str(e)}
                )
            span.set_attribute("http.status_code", 500)
            return error_response(f"Tool execution failed: {e}", 500, methods=allowed, tool=name)

        finally:
            deliver_pending_messages(signalRMessages, transparency, session_id if reporting else None)


@bp.route(route="results/{tool_name}/{item_id}", methods=ALL_METHODS)
async def get_result(req: func.HttpRequest) -> func.HttpResponse:
    """
    Get a stored analysis result.

    Request:
        GET /api/results/{tool_name}/{item_id}

    Response:
        200 OK
        {"success": true, "result": {...}}
    """
    allowed = ["GET", "OPTIONS"]
    if req.method == "OPTIONS":
        return preflight_response(allowed)
    if req.method != "GET":
        return method_not_allowed(req.method, allowed)

    tool_name = req.route_params.get("tool_name")
    item_id = req.route_params.get("item_id")

    async with http_request_span("GET", "/results/{tool_name}/{item_id}") as span:
        if get_tool(tool_name) is None:
            span.set_attribute("http.status_code", 404)
            return error_response(
                f"Tool '{tool_name}' not found",
                404,
                methods=allowed,
                available_tools=[t["name"] for t in list_tools()],
            )

        try:
            result = await get_result_store().get_result(tool_name, item_id)
        except Exception as e:
            logging.exception(f"Could not read {tool_name} result {item_id}: {e}")
            span.set_attribute("http.status_code", 500)
            return error_response(f"Could not read result: {e}", 500, methods=allowed)

        if result is None:
            span.set_attribute("http.status_code", 404)
            return error_response(
                "Result not found", 404, methods=allowed, tool=tool_name, id=item_id
            )

        span.set_attribute("http.status_code", 200)
        return success_response(tool=tool_name, result=result, methods=allowed)


@bp.route(route="docs", methods=ALL_METHODS)
async def get_docs(req: func.HttpRequest) -> func.HttpResponse:
    """
    Describe the HTTP API and every tool's input schema.

    Request:
        GET /api/docs
    """
    allowed = ["GET", "OPTIONS"]
    if req.method == "OPTIONS":
        return preflight_response(allowed)
    if req.method != "GET":
        return method_not_allowed(req.method, allowed)

    return success_response(data={
        "name": "Utilities MCP Server",
        "version": SERVICE_VERSION,
        "endpoints": [
            {"method": "GET", "path": "/api/health", "description": "Service and Azure client health"},
            {"method": "GET", "path": "/api/docs", "description": "This document"},
            {"method": "GET", "path": "/api/tools", "description": "List available tools"},
            {
                "method": "POST",
                "path": "/api/tools/{name}",
                "description": "Run a tool; send x-session-id to stream progress to a transparency session",
            },
            {
                "method": "GET",
                "path": "/api/results/{tool_name}/{id}",
                "description": "Read a stored analysis result",
            },
            {
                "method": "GET, POST, DELETE",
                "path": "/api/transparency-hub",
                "description": "Hub status, create a session, end a session (?sessionId=)",
            },
            {
                "method": "POST",
                "path": "/api/transparency-broadcast",
                "description": "Broadcast a transparency message: {messageType, sessionId, data}",
            },
            {
                "method": "POST",
                "path": "/api/signalr-broadcast",
                "description": "Forward a raw transparency message to the SignalR hub",
            },
            {
                "method": "GET, POST",
                "path": "/api/websocket-negotiate",
                "description": "SignalR connection info for the transparency hub",
            },
        ],
        "tools": list_tools(),
    }, methods=allowed)
