# Copyright (c) Microsoft. All rights reserved.
"""
Real-time transparency logging.

Tracks transparency sessions in process memory and turns progress events
(agent thoughts, tool execution status, processing steps, decision points,
agent collaboration) into messages for the SignalR "transparency" hub.

Delivery itself is done by the Functions runtime: handlers drain the queued
messages with drain_signalr_messages() and hand them to a signalRMessages
output binding.
"""

import logging
import os
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

HUB_NAME = "transparency"
SIGNALR_TARGET = "transparencyUpdate"

# Completed sessions stay queryable this long before removal
SESSION_GRACE_PERIOD_SECONDS = 60

SENSITIVE_RESULT_FIELDS = ("password", "key", "secret", "token", "connectionString")
MAX_RESULT_CONTENT_LENGTH = 1000
TRUNCATED_RESULT_FIELDS = ("content", "extracted_text")

# Oldest undelivered messages are dropped past this size
MAX_QUEUED_MESSAGES = 1000

TOOL_STATUSES = ("starting", "processing", "complete", "error")
COLLABORATION_TYPES = ("request", "response", "handoff", "consultation")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _env_flag(name: str, default: bool = True) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------


@dataclass
class AgentThoughtMessage:
    sessionId: str
    agentName: str
    step: str
    thought: str
    toolCalled: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    timestamp: str = field(default_factory=_now_iso)
    type: str = "agent_thought"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ToolExecutionMessage:
    sessionId: str
    toolName: str
    status: str
    duration: Optional[float] = None
    result: Any = None
    metadata: dict = field(default_factory=dict)
    timestamp: str = field(default_factory=_now_iso)
    type: str = "tool_execution"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProcessingStepMessage:
    sessionId: str
    currentStep: int
    totalSteps: int
    stepName: str
    progress: float
    metadata: dict = field(default_factory=dict)
    timestamp: str = field(default_factory=_now_iso)
    type: str = "processing_step"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DecisionPointMessage:
    sessionId: str
    agentName: str
    decision: str
    reasoning: str
    alternatives: list = field(default_factory=list)
    confidence: float = 0.0
    timestamp: str = field(default_factory=_now_iso)
    type: str = "decision_point"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CollaborationMessage:
    sessionId: str
    fromAgent: str
    toAgent: str
    message: str
    collaborationType: str
    timestamp: str = field(default_factory=_now_iso)
    type: str = "collaboration"

    def to_dict(self) -> dict:
        return asdict(self)


MESSAGE_TYPES = {
    "agent_thought": AgentThoughtMessage,
    "tool_execution": ToolExecutionMessage,
    "processing_step": ProcessingStepMessage,
    "decision_point": DecisionPointMessage,
    "collaboration": CollaborationMessage,
}


# -----------------------------------------------------------------------------
# Sessions and configuration
# -----------------------------------------------------------------------------


@dataclass
class TransparencySession:
    sessionId: str
    userId: Optional[str] = None
    startTime: str = field(default_factory=_now_iso)
    endTime: Optional[str] = None
    status: str = "active"
    totalMessages: int = 0
    agents: list = field(default_factory=list)
    tools: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TransparencyConfig:
    log_level: str = "detailed"
    enable_agent_thoughts: bool = True
    enable_tool_execution: bool = True
    enable_processing_steps: bool = True
    enable_decision_points: bool = True
    enable_collaboration: bool = True
    max_session_duration_minutes: int = 60
    throttling_enabled: bool = True
    max_messages_per_second: int = 10

    @classmethod
    def from_env(cls) -> "TransparencyConfig":
        return cls(
            log_level=os.environ.get("TRANSPARENCY_LOG_LEVEL", "detailed"),
            enable_agent_thoughts=_env_flag("TRANSPARENCY_ENABLE_AGENT_THOUGHTS"),
            enable_tool_execution=_env_flag("TRANSPARENCY_ENABLE_TOOL_EXECUTION"),
            enable_processing_steps=_env_flag("TRANSPARENCY_ENABLE_PROCESSING_STEPS"),
            enable_decision_points=_env_flag("TRANSPARENCY_ENABLE_DECISION_POINTS"),
            enable_collaboration=_env_flag("TRANSPARENCY_ENABLE_COLLABORATION"),
        )


def sanitize_result(result: Any) -> Any:
    """Strip credentials and truncate large content before broadcasting."""
    if not result or not isinstance(result, dict):
        return result

    sanitized = {k: v for k, v in result.items() if k not in SENSITIVE_RESULT_FIELDS}
    for field in TRUNCATED_RESULT_FIELDS:
        text = sanitized.get(field)
        if isinstance(text, str) and len(text) > MAX_RESULT_CONTENT_LENGTH:
            sanitized[field] = text[:MAX_RESULT_CONTENT_LENGTH] + "... (truncated)"
    return sanitized


def create_signalr_message(message: dict) -> dict:
    """Wrap a transparency message for the signalRMessages output binding."""
    return {"target": SIGNALR_TARGET, "arguments": [message]}


class TransparencyLogger:
    """
    In-memory session registry and transparency message broadcaster.

    Use get_instance(); the registry is shared by every invocation handled
    by the worker process.
    """

    _instance: "TransparencyLogger | None" = None

    def __init__(
        self,
        config: TransparencyConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or TransparencyConfig.from_env()
        self._clock = clock
        self._sessions: dict[str, TransparencySession] = {}
        self._expires_at: dict[str, float] = {}
        self._message_queue: list[dict] = []
        self.signalr_connection_string = os.environ.get(
            "AzureSignalRConnectionString"
        ) or os.environ.get("AZURE_SIGNALR_CONNECTION_STRING")
        if not self.signalr_connection_string:
            logger.warning(
                "Azure SignalR connection string not found. "
                "Transparency messages will be queued but not delivered."
            )

    @classmethod
    def get_instance(cls) -> "TransparencyLogger":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    # -------------------------------------------------------------------------
    # Session Management
    # -------------------------------------------------------------------------

    def _purge_expired(self) -> None:
        now = self._clock()
        for session_id, expires_at in list(self._expires_at.items()):
            if now >= expires_at:
                self._sessions.pop(session_id, None)
                del self._expires_at[session_id]
                logger.info(f"Removed completed transparency session {session_id}")

    def create_session(self, user_id: str | None = None) -> str:
        """Register a new active session and return its id."""
        self._purge_expired()
        session_id = str(uuid.uuid4())
        self._sessions[session_id] = TransparencySession(
            sessionId=session_id, userId=user_id
        )
        logger.info(f"Created transparency session {session_id} for user {user_id}")
        return session_id

    def end_session(self, session_id: str) -> bool:
        """
        Mark a session completed.

        The session remains readable for SESSION_GRACE_PERIOD_SECONDS and is
        then dropped from the registry.

        Returns:
            True if the session existed, False otherwise.
        """
        self._purge_expired()
        session = self._sessions.get(session_id)
        if session is None:
            return False

        session.status = "completed"
        session.endTime = _now_iso()
        self._expires_at[session_id] = self._clock() + SESSION_GRACE_PERIOD_SECONDS
        return True

    def get_session(self, session_id: str) -> TransparencySession | None:
        self._purge_expired()
        return self._sessions.get(session_id)

    get_session_stats = get_session

    def is_session_active(self, session_id: str | None) -> bool:
        if not session_id:
            return False
        session = self.get_session(session_id)
        return session is not None and session.status == "active"

    def get_active_session_count(self) -> int:
        self._purge_expired()
        return len(self._sessions)

    # -------------------------------------------------------------------------
    # Message Broadcasting
    # -------------------------------------------------------------------------

    def _metadata(self) -> dict:
        return {"logLevel": self.config.log_level}

    async def broadcast_agent_thought(
        self,
        session_id: str,
        agent_name: str,
        step: str,
        thought: str,
        tool_called: str | None = None,
    ) -> None:
        if not self.config.enable_agent_thoughts:
            return

        message = AgentThoughtMessage(
            sessionId=session_id,
            agentName=agent_name,
            step=step,
            thought=thought,
            toolCalled=tool_called,
            metadata=self._metadata(),
        )
        await self._broadcast(message.to_dict())
        self._update_session_stats(session_id, agent_name=agent_name)

    async def broadcast_tool_execution(
        self,
        session_id: str,
        tool_name: str,
        status: str,
        duration: float | None = None,
        result: Any = None,
    ) -> None:
        if not self.config.enable_tool_execution:
            return

        message = ToolExecutionMessage(
            sessionId=session_id,
            toolName=tool_name,
            status=status,
            duration=duration,
            result=sanitize_result(result),
            metadata=self._metadata(),
        )
        await self._broadcast(message.to_dict())
        self._update_session_stats(session_id, tool_name=tool_name)

    async def broadcast_processing_step(
        self,
        session_id: str,
        current_step: int,
        total_steps: int,
        step_name: str,
        progress: float,
    ) -> None:
        if not self.config.enable_processing_steps:
            return

        message = ProcessingStepMessage(
            sessionId=session_id,
            currentStep=current_step,
            totalSteps=total_steps,
            stepName=step_name,
            progress=progress,
            metadata=self._metadata(),
        )
        await self._broadcast(message.to_dict())

    async def broadcast_decision_point(
        self,
        session_id: str,
        agent_name: str,
        decision: str,
        reasoning: str,
        alternatives: list[str],
        confidence: float,
    ) -> None:
        if not self.config.enable_decision_points:
            return

        message = DecisionPointMessage(
            sessionId=session_id,
            agentName=agent_name,
            decision=decision,
            reasoning=reasoning,
            alternatives=list(alternatives or []),
            confidence=confidence,
        )
        await self._broadcast(message.to_dict())
        self._update_session_stats(session_id, agent_name=agent_name)

    async def broadcast_collaboration(
        self,
        session_id: str,
        from_agent: str,
        to_agent: str,
        message: str,
        collaboration_type: str,
    ) -> None:
        if not self.config.enable_collaboration:
            return

        collab = CollaborationMessage(
            sessionId=session_id,
            fromAgent=from_agent,
            toAgent=to_agent,
            message=message,
            collaborationType=collaboration_type,
        )
        await self._broadcast(collab.to_dict())
        self._update_session_stats(session_id, agent_name=from_agent)
        self._update_session_stats(session_id, agent_name=to_agent)

    # -------------------------------------------------------------------------
    # Internal Broadcasting Logic
    # -------------------------------------------------------------------------

    def _should_allow_message(self) -> bool:
        # TODO: enforce max_messages_per_second per session
        return True

    async def _broadcast(self, message: dict) -> None:
        try:
            if self.config.throttling_enabled and not self._should_allow_message():
                logger.info(f"Message throttled: {message['type']}")
                return

            self._message_queue.append(message)
            if len(self._message_queue) > MAX_QUEUED_MESSAGES:
                del self._message_queue[: len(self._message_queue) - MAX_QUEUED_MESSAGES]

            if not self.signalr_connection_string:
                logger.warning(
                    "SignalR not configured, storing message for offline processing"
                )
            logger.info(
                f"Transparency message queued: {message['type']} "
                f"for session {message['sessionId']}"
            )
        except Exception as e:
            logger.error(f"Failed to broadcast transparency message: {e}")

    def _update_session_stats(
        self,
        session_id: str,
        agent_name: str | None = None,
        tool_name: str | None = None,
    ) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return

        session.totalMessages += 1
        if agent_name and agent_name not in session.agents:
            session.agents.append(agent_name)
        if tool_name and tool_name not in session.tools:
            session.tools.append(tool_name)

    # -------------------------------------------------------------------------
    # SignalR Output
    # -------------------------------------------------------------------------

    def pending_message_count(self) -> int:
        return len(self._message_queue)

    def drain_signalr_messages(self, session_id: str | None = None) -> list[dict]:
        """
        Remove queued messages and return them in SignalR output format.

        Args:
            session_id: Only drain this session's messages. Drains all when None.
        """
        if session_id is None:
            drained, self._message_queue = self._message_queue, []
        else:
            drained = [m for m in self._message_queue if m.get("sessionId") == session_id]
            self._message_queue = [
                m for m in self._message_queue if m.get("sessionId") != session_id
            ]
        return [create_signalr_message(m) for m in drained]
