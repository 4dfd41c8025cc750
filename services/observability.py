# Copyright (c) Microsoft. All rights reserved.

"""
Observability module for the Utilities MCP Server.

Provides spans for the layers of a tool invocation:
- HTTP request lifecycle
- Tool execution
- Azure dependency calls (Search, OpenAI, Cosmos DB, Blob, Document Intelligence)

Tracing is a no-op until init_observability() installs a TracerProvider.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, SpanKind, Status, StatusCode

logger = logging.getLogger(__name__)

TRACER_NAME = "utilities_mcp_server"


class UtilitiesMcpAttr:
    """Custom semantic attributes for the tool server."""

    # Transparency context
    SESSION_ID = "utilities_mcp.session.id"
    USER_ID = "utilities_mcp.user.id"

    # Tool attributes
    TOOL_NAME = "utilities_mcp.tool.name"
    TOOL_STATUS = "utilities_mcp.tool.status"

    # Azure dependency attributes
    AZURE_SERVICE = "azure.service"
    AZURE_OPERATION = "azure.operation"
    AZURE_RESOURCE = "azure.resource"


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def init_observability() -> None:
    """Initialize OpenTelemetry tracing.

    Call once at Azure Functions app startup.

    Environment variables used:
    - ENABLE_OTEL: Enable OpenTelemetry (default: false)
    - OTLP_ENDPOINT: OTLP/HTTP collector endpoint for span export
    - OTEL_SERVICE_NAME: Service name (default: utilities_mcp_server)
    """
    if not _env_flag("ENABLE_OTEL"):
        logger.info("OpenTelemetry disabled (set ENABLE_OTEL=true to enable)")
        return

    try:
        resource = Resource.create(
            {"service.name": os.environ.get("OTEL_SERVICE_NAME", TRACER_NAME)}
        )
        provider = TracerProvider(resource=resource)

        otlp_endpoint = os.environ.get("OTLP_ENDPOINT")
        if otlp_endpoint:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                OTLPSpanExporter,
            )

            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )

        trace.set_tracer_provider(provider)
        logger.info("Observability initialized successfully")
    except Exception as e:
        logger.warning(f"Failed to initialize observability: {e}")


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


@asynccontextmanager
async def http_request_span(
    method: str,
    path: str,
    session_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> AsyncIterator[Span]:
    """Create a top-level HTTP request span.

    Wraps the entire request lifecycle. Tool and Azure dependency spans
    are nested under this span.

    The span is yielded so callers can set http.status_code before exiting.

    Args:
        method: HTTP method (GET, POST, DELETE, etc.)
        path: Route pattern (e.g., "/tools/{name}")
        session_id: Transparency session identifier for correlation
        user_id: User identifier for correlation

    Yields:
        The active span for setting additional attributes like status code.
    """
    attributes = {
        "http.method": method,
        "http.route": path,
    }
    if session_id:
        attributes[UtilitiesMcpAttr.SESSION_ID] = session_id
    if user_id:
        attributes[UtilitiesMcpAttr.USER_ID] = user_id

    with get_tracer().start_as_current_span(
        f"http.request {method} {path}",
        kind=SpanKind.SERVER,
        attributes=attributes,
    ) as span:
        try:
            yield span
            status_code = span.attributes.get("http.status_code") if hasattr(
                span, "attributes"
            ) and span.attributes else None
            if status_code and status_code >= 400:
                span.set_status(Status(StatusCode.ERROR))
            else:
                span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


@asynccontextmanager
async def tool_span(
    tool_name: str,
    session_id: Optional[str] = None,
) -> AsyncIterator[Span]:
    """Create a tool execution span.

    Args:
        tool_name: Registered tool name (e.g., "analyze_csv")
        session_id: Transparency session the tool reports progress to
    """
    attributes = {UtilitiesMcpAttr.TOOL_NAME: tool_name}
    if session_id:
        attributes[UtilitiesMcpAttr.SESSION_ID] = session_id

    with get_tracer().start_as_current_span(
        f"tool.execute {tool_name}",
        kind=SpanKind.INTERNAL,
        attributes=attributes,
    ) as span:
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


@asynccontextmanager
async def azure_dependency_span(
    service: str,
    operation: str,
    resource: Optional[str] = None,
) -> AsyncIterator[None]:
    """Create an Azure dependency span.

    Args:
        service: Azure service ("search", "openai", "cosmosdb", "blob", "documentintelligence")
        operation: Operation name (e.g., "embeddings.create", "upload_blob")
        resource: Index, container or model the operation targets
    """
    attributes = {
        UtilitiesMcpAttr.AZURE_SERVICE: service,
        UtilitiesMcpAttr.AZURE_OPERATION: operation,
    }
    if resource:
        attributes[UtilitiesMcpAttr.AZURE_RESOURCE] = resource

    with get_tracer().start_as_current_span(
        f"{service}.{operation}",
        kind=SpanKind.CLIENT,
        attributes=attributes,
    ) as span:
        try:
            yield
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise
