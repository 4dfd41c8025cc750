"""
Utilities MCP Server - Tools

Analysis tools exposed over HTTP by POST /tools/{name}:
- process_pdf: Document Intelligence extraction
- analyze_csv: CSV statistics and utilities context
- search_knowledge: embeddings + Azure AI Search
- index_document: embed and upload a document to the search index
- analyze_omnichannel_journey: customer journey aggregation
- analyze_compliance: regulatory rule matching
"""

from tools.base import ToolInputError, ToolProgress
from tools.registry import TOOLS, ToolDefinition, get_tool, list_tools, run_tool

__all__ = [
    "TOOLS",
    "ToolDefinition",
    "ToolInputError",
    "ToolProgress",
    "get_tool",
    "list_tools",
    "run_tool",
]
