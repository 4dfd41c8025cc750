# Copyright (c) Microsoft. All rights reserved.
"""
Tool registry: the tool definitions advertised by GET /tools and the
dispatch used by POST /tools/{name}.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tools.base import ToolInputError, ToolProgress
from tools.compliance_analyzer import COMPLIANCE_DOMAINS, analyze_compliance
from tools.csv_analyzer import ANALYSIS_TYPES as CSV_ANALYSIS_TYPES
from tools.csv_analyzer import analyze_csv
from tools.knowledge_search import SEARCH_TYPES, index_document, search_knowledge
from tools.omnichannel_analyzer import analyze_omnichannel_journey
from tools.pdf_processor import ANALYSIS_TYPES as PDF_ANALYSIS_TYPES
from tools.pdf_processor import process_pdf


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: dict
    handler: Callable[..., Awaitable[dict]]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


TOOLS: dict[str, ToolDefinition] = {
    tool.name: tool
    for tool in [
        ToolDefinition(
            name="process_pdf",
            description=(
                "Extract text, tables and key-value pairs from PDF documents "
                "using Azure AI Document Intelligence"
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "file_path": {
                        "type": "string",
                        "description": "URL of the document or a base64 data URI",
                    },
                    "analysis_type": {
                        "type": "string",
                        "enum": list(PDF_ANALYSIS_TYPES),
                        "default": "text",
                    },
                },
                "required": ["file_path"],
            },
            handler=process_pdf,
        ),
        ToolDefinition(
            name="analyze_csv",
            description=(
                "Statistical analysis and data quality assessment of CSV data "
                "with utilities industry context detection"
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "csv_data": {"type": "string", "description": "CSV content with a header row"},
                    "file_url": {"type": "string", "description": "URL to download the CSV from"},
                    "analysis_type": {
                        "type": "string",
                        "enum": list(CSV_ANALYSIS_TYPES),
                        "default": "comprehensive",
                    },
                    "include_recommendations": {"type": "boolean", "default": False},
                },
                "required": [],
            },
            handler=analyze_csv,
        ),
        ToolDefinition(
            name="search_knowledge",
            description=(
                "Search the knowledge base with Azure OpenAI embeddings, "
                "keyword search, or both"
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "query": {"type": "string"},
                    "search_type": {
                        "type": "string",
                        "enum": list(SEARCH_TYPES),
                        "default": "hybrid",
                    },
                    "max_results": {"type": "integer", "default": 10},
                    "similarity_threshold": {"type": "number", "default": 0.7},
                    "document_types": {"type": "array", "items": {"type": "string"}},
                    "include_metadata": {"type": "boolean", "default": True},
                },
                "required": ["query"],
            },
            handler=search_knowledge,
        ),
        ToolDefinition(
            name="index_document",
            description=(
                "Add a document to the knowledge base with an Azure OpenAI "
                "embedding so it can be found by search_knowledge"
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "document_id": {"type": "string"},
                    "title": {"type": "string"},
                    "content": {"type": "string"},
                    "document_type": {"type": "string"},
                    "metadata": {"type": "object"},
                },
                "required": ["document_id", "title", "content", "document_type"],
            },
            handler=index_document,
        ),
        ToolDefinition(
            name="analyze_omnichannel_journey",
            description=(
                "Analyze customer journeys across web, phone, chat, email, "
                "mobile and in-person channels"
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "customer_interactions": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "customer_id": {"type": "string"},
                                "channel": {
                                    "type": "string",
                                    "enum": ["web", "phone", "chat", "email", "mobile", "in_person"],
                                },
                                "interaction_type": {"type": "string"},
                                "timestamp": {"type": "string", "format": "date-time"},
                                "sentiment": {
                                    "type": "string",
                                    "enum": ["positive", "neutral", "negative"],
                                },
                                "outcome": {"type": "string"},
                                "metadata": {"type": "object"},
                            },
                            "required": ["customer_id", "channel", "interaction_type", "timestamp"],
                        },
                    },
                    "analysis_period": {
                        "type": "object",
                        "properties": {
                            "start_date": {"type": "string", "format": "date-time"},
                            "end_date": {"type": "string", "format": "date-time"},
                        },
                    },
                    "include_journey_mapping": {"type": "boolean", "default": True},
                    "include_sentiment_analysis": {"type": "boolean", "default": True},
                },
                "required": ["customer_interactions"],
            },
            handler=analyze_omnichannel_journey,
        ),
        ToolDefinition(
            name="analyze_compliance",
            description=(
                "Check documents against NERC CIP, EPA environmental and state "
                "utility commission requirements"
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "compliance_domain": {
                        "type": "string",
                        "enum": list(COMPLIANCE_DOMAINS),
                        "default": "comprehensive",
                    },
                    "document_content": {"type": "string"},
                    "document_url": {"type": "string"},
                    "audit_scope": {"type": "array", "items": {"type": "string"}},
                    "include_remediation": {"type": "boolean", "default": True},
                },
                "required": [],
            },
            handler=analyze_compliance,
        ),
    ]
}


def list_tools() -> list[dict]:
    return [tool.to_dict() for tool in TOOLS.values()]


def get_tool(name: str) -> ToolDefinition | None:
    return TOOLS.get(name)


def missing_required(tool: ToolDefinition, params: dict) -> list[str]:
    """Required schema fields absent (or null) in the parameters."""
    return [
        field for field in tool.input_schema.get("required", [])
        if params.get(field) is None
    ]


def tool_arguments(tool: ToolDefinition, params: dict) -> dict[str, Any]:
    """Keep only the parameters declared in the tool's input schema."""
    accepted = tool.input_schema.get("properties", {})
    return {key: value for key, value in params.items() if key in accepted}


async def run_tool(name: str, params: dict, progress: ToolProgress | None = None) -> dict:
    """
    Validate parameters and run a registered tool.

    Raises:
        KeyError: If no tool has this name.
        ToolInputError: If a required parameter is missing or invalid.
    """
    tool = TOOLS[name]
    missing = missing_required(tool, params)
    if missing:
        raise ToolInputError(f"Missing required parameter(s): {', '.join(missing)}")

    arguments = tool_arguments(tool, params)
    if "progress" in inspect.signature(tool.handler).parameters:
        arguments["progress"] = progress

    logging.info(f"Running tool {name} with parameters: {sorted(arguments)}")
    return await tool.handler(**arguments)
