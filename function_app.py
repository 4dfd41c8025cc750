# Copyright (c) Microsoft. All rights reserved.

"""
Utilities MCP Server - Azure Functions Application

HTTP endpoints that expose utilities-industry analysis tools backed by Azure
AI services, with real-time transparency updates pushed over SignalR.

Key Features:
- Azure Functions HTTP triggers for the tool API
- Document Intelligence, Azure OpenAI embeddings and Azure AI Search tools
- Cosmos DB persistence of analysis results
- Transparency sessions delivered through SignalR output bindings
- OpenTelemetry observability with custom spans
"""

import azure.functions as func

from services import init_observability
from routes import tools_bp, transparency_bp, negotiate_bp, health_bp

# Initialize observability once at startup
init_observability()

# Create the Function App and register blueprints
app = func.FunctionApp()
app.register_functions(tools_bp)
app.register_functions(transparency_bp)
app.register_functions(negotiate_bp)
app.register_functions(health_bp)
