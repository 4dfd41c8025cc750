"""Shared fixtures for the Utilities MCP Server test suite.

Every test starts from fresh singletons and an environment without Azure
credentials, so nothing reaches a real Azure service.
"""

import json
import os
from unittest.mock import MagicMock

import azure.functions as func
import pytest

from routes.tools import reset_result_store
from services.azure_clients import AzureClientsManager
from services.transparency import TransparencyLogger

AZURE_ENV_VARS = [
    "KEY_VAULT_URL",
    "SEARCH_SERVICE_ENDPOINT",
    "SEARCH_SERVICE_KEY",
    "SEARCH_INDEX_NAME",
    "OPENAI_ENDPOINT",
    "OPENAI_KEY",
    "COSMOS_ENDPOINT",
    "COSMOS_KEY",
    "STORAGE_CONNECTION_STRING",
    "AZURE_STORAGE_CONNECTION_STRING",
    "DOCUMENT_INTELLIGENCE_ENDPOINT",
    "DOCUMENT_INTELLIGENCE_KEY",
    "AZURE_FORM_RECOGNIZER_ENDPOINT",
    "AZURE_FORM_RECOGNIZER_KEY",
    "AzureSignalRConnectionString",
    "AZURE_SIGNALR_CONNECTION_STRING",
    "PERSIST_ANALYSIS_RESULTS",
    "ENABLE_OTEL",
]


# ============================================================================
# Test Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Clear Azure settings and reset process-wide singletons."""
    for name in AZURE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("TRANSPARENCY_"):
            monkeypatch.delenv(name, raising=False)

    AzureClientsManager.reset_instance()
    TransparencyLogger.reset_instance()
    reset_result_store()
    yield
    AzureClientsManager.reset_instance()
    TransparencyLogger.reset_instance()
    reset_result_store()


# ============================================================================
# HTTP Helpers
# ============================================================================


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def signalr_out():
    """Stand-in for the signalRMessages output binding."""
    return MagicMock(spec=func.Out)


def make_request(
    method: str,
    url: str,
    body=None,
    headers: dict | None = None,
    params: dict | None = None,
    route_params: dict | None = None,
) -> func.HttpRequest:
    if body is None:
        raw = b""
    elif isinstance(body, (bytes, str)):
        raw = body.encode() if isinstance(body, str) else body
    else:
        raw = json.dumps(body).encode()
    return func.HttpRequest(
        method=method,
        url=url,
        headers=headers or {},
        params=params or {},
        route_params=route_params or {},
        body=raw,
    )


def response_json(response: func.HttpResponse) -> dict:
    return json.loads(response.get_body())


def sent_signalr_messages(signalr_out) -> list[dict]:
    """All messages handed to the output binding, in order."""
    messages = []
    for call in signalr_out.set.call_args_list:
        messages.extend(json.loads(call.args[0]))
    return messages
