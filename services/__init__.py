# Copyright (c) Microsoft. All rights reserved.

"""
Core modules for the Utilities MCP Server.

This package contains foundational components:
- azure_clients: shared Azure SDK clients resolved from Key Vault
- transparency: transparency sessions and real-time progress messages
- result_store: Azure Cosmos DB storage for analysis results
- observability: OpenTelemetry instrumentation for tracing
"""

from services.azure_clients import AzureClientsManager
from services.transparency import TransparencyLogger, create_signalr_message
from services.result_store import AnalysisResultStore
from services.observability import (
    init_observability,
    http_request_span,
    tool_span,
    azure_dependency_span,
    UtilitiesMcpAttr,
)

__all__ = [
    "AzureClientsManager",
    "TransparencyLogger",
    "create_signalr_message",
    "AnalysisResultStore",
    "init_observability",
    "http_request_span",
    "tool_span",
    "azure_dependency_span",
    "UtilitiesMcpAttr",
]
