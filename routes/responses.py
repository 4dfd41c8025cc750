# Copyright (c) Microsoft. All rights reserved.

"""JSON envelope and CORS helpers shared by every route."""

import json
from datetime import datetime, timezone

import azure.functions as func

# Registered on routes that dispatch on req.method so that other methods get
# a 405 envelope instead of a host-level 404.
ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

ALLOWED_HEADERS = "Content-Type, Authorization, x-session-id, x-user-id"


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def cors_headers(methods: list[str] | None = None) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": ", ".join(methods or ALL_METHODS),
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
    }


def json_response(
    body: dict,
    status_code: int = 200,
    methods: list[str] | None = None,
) -> func.HttpResponse:
    return func.HttpResponse(
        body=json.dumps(body, default=str),
        status_code=status_code,
        mimetype="application/json",
        headers=cors_headers(methods),
    )


def success_response(
    status_code: int = 200,
    methods: list[str] | None = None,
    **fields,
) -> func.HttpResponse:
    """{"success": true, "status": "success", **fields, "timestamp": ...}"""
    return json_response(
        {"success": True, "status": "success", **fields, "timestamp": timestamp()},
        status_code=status_code,
        methods=methods,
    )


def error_response(
    error: str,
    status_code: int,
    methods: list[str] | None = None,
    **extra,
) -> func.HttpResponse:
    """{"success": false, "status": "error", "error": ..., **extra, "timestamp": ...}"""
    return json_response(
        {
            "success": False,
            "status": "error",
            "error": error,
            **extra,
            "timestamp": timestamp(),
        },
        status_code=status_code,
        methods=methods,
    )


def preflight_response(methods: list[str] | None = None) -> func.HttpResponse:
    return func.HttpResponse(status_code=200, headers=cors_headers(methods))


def method_not_allowed(method: str, allowed: list[str]) -> func.HttpResponse:
    return error_response(
        f"Method {method} not allowed",
        405,
        methods=allowed,
        allowedMethods=allowed,
    )


def read_json_object(req: func.HttpRequest, default: dict | None = None) -> dict:
    """
    Parse the request body as a JSON object.

    An empty body yields `default` when one is given.

    Raises:
        ValueError: If the body is not valid JSON or not an object.
    """
    if not req.get_body() and default is not None:
        return default
    body = req.get_json()
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body
