# Copyright (c) Microsoft. All rights reserved.

"""Health check endpoint."""

import logging

import azure.functions as func

from routes.responses import (
    ALL_METHODS,
    json_response,
    method_not_allowed,
    preflight_response,
    timestamp,
)
from routes.tools import SERVICE_VERSION
from services import AzureClientsManager, TransparencyLogger

bp = func.Blueprint()


@bp.route(route="health", methods=ALL_METHODS)
async def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """
    Health check endpoint for monitoring.

    Request:
        GET /api/health

    Response:
        200 OK
        {
            "status": "healthy",
            "version": "1.0.0",
            "azure_services": {"keyVault": false, "search": true, ...},
            "active_transparency_sessions": 0
        }
    """
    allowed = ["GET", "OPTIONS"]
    if req.method == "OPTIONS":
        return preflight_response(allowed)
    if req.method != "GET":
        return method_not_allowed(req.method, allowed)

    azure_services = {}
    try:
        azure_services = AzureClientsManager.get_instance().health_check()
    except Exception as e:
        logging.warning(f"Azure clients health check failed: {e}")

    return json_response({
        "success": True,
        "status": "healthy",
        "service": "utilities-mcp-server",
        "version": SERVICE_VERSION,
        "azure_services": azure_services,
        "active_transparency_sessions": TransparencyLogger.get_instance().get_active_session_count(),
        "timestamp": timestamp(),
    }, methods=allowed)
