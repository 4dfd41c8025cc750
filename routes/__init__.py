# Copyright (c) Microsoft. All rights reserved.

"""
Route blueprints for the Utilities MCP Server.

This package contains Azure Functions blueprints organized by resource:
- tools: tool listing, invocation, stored results and API docs
- transparency: transparency session hub and message broadcast
- negotiate: SignalR connection negotiation
- health: Health check endpoint
"""

from routes.tools import bp as tools_bp
from routes.transparency import bp as transparency_bp
from routes.negotiate import bp as negotiate_bp
from routes.health import bp as health_bp

__all__ = ["tools_bp", "transparency_bp", "negotiate_bp", "health_bp"]
