# Copyright (c) Microsoft. All rights reserved.
"""
Shared helpers for the tool implementations.
"""

import logging
import random
import string
import time
from datetime import datetime, timezone

import requests

from services.transparency import TransparencyLogger

URL_FETCH_TIMEOUT_SECONDS = 30


class ToolInputError(ValueError):
    """Raised when a tool is called with missing or invalid parameters."""


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    """Build ids like 'csv_1717171717171_k3j9x0a2b'."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def error_id() -> str:
    return f"error_{int(time.time() * 1000)}"


def fetch_text(url: str, what: str = "document") -> str:
    """
    Download a text resource over HTTP(S).

    Raises:
        RuntimeError: If the request fails or returns a non-2xx status.
    """
    try:
        response = requests.get(url, timeout=URL_FETCH_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response.text
    except requests.RequestException as e:
        raise RuntimeError(f"Failed to fetch {what} from URL: {e}") from e


class ToolProgress:
    """
    Reports tool progress to a transparency session.

    Every method is a no-op when no active session is attached, so tools can
    report unconditionally.
    """

    def __init__(
        self,
        session_id: str | None = None,
        transparency: TransparencyLogger | None = None,
    ):
        self.session_id = session_id
        self.transparency = transparency or TransparencyLogger.get_instance()

    @property
    def enabled(self) -> bool:
        return self.transparency.is_session_active(self.session_id)

    async def step(self, current: int, total: int, name: str) -> None:
        logging.info(f"[{current}/{total}] {name}")
        if self.enabled:
            await self.transparency.broadcast_processing_step(
                self.session_id,
                current,
                total,
                name,
                round(current / total * 100, 2) if total else 100.0,
            )

    async def thought(self, agent_name: str, step: str, thought: str, tool: str | None = None) -> None:
        if self.enabled:
            await self.transparency.broadcast_agent_thought(
                self.session_id, agent_name, step, thought, tool
            )
