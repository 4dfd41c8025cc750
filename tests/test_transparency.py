"""
Transparency Logger Tests

Session lifecycle, grace-period removal, message sanitization and the
SignalR output queue.

Run with:
    pytest tests/test_transparency.py -v
"""

import pytest

from services.transparency import (
    MAX_QUEUED_MESSAGES,
    SESSION_GRACE_PERIOD_SECONDS,
    SIGNALR_TARGET,
    TransparencyConfig,
    TransparencyLogger,
    create_signalr_message,
    sanitize_result,
)


@pytest.fixture
def transparency(clock):
    return TransparencyLogger(TransparencyConfig(), clock=clock)


# ============================================================================
# SESSIONS
# ============================================================================


class TestSessions:

    def test_create_session(self, transparency):
        session_id = transparency.create_session("user-1")

        session = transparency.get_session(session_id)
        assert session.userId == "user-1"
        assert session.status == "active"
        assert session.totalMessages == 0
        assert transparency.is_session_active(session_id)
        assert transparency.get_active_session_count() == 1

    def test_session_ids_are_unique(self, transparency):
        assert transparency.create_session() != transparency.create_session()

    def test_to_dict_uses_wire_names(self, transparency):
        session_id = transparency.create_session()
        data = transparency.get_session(session_id).to_dict()
        assert set(data) == {
            "sessionId", "userId", "startTime", "endTime", "status", "totalMessages", "agents", "tools"
        }

    def test_end_session_keeps_it_readable_during_grace_period(self, transparency, clock):
        session_id = transparency.create_session()

        assert transparency.end_session(session_id) is True
        session = transparency.get_session(session_id)
        assert session.status == "completed"
        assert session.endTime is not None
        assert not transparency.is_session_active(session_id)

        clock.advance(SESSION_GRACE_PERIOD_SECONDS - 1)
        assert transparency.get_session(session_id) is not None

        clock.advance(1)
        assert transparency.get_session(session_id) is None
        assert transparency.get_active_session_count() == 0

    def test_end_unknown_session(self, transparency):
        assert transparency.end_session("missing") is False

    def test_no_session_id_is_inactive(self, transparency):
        assert transparency.is_session_active(None) is False

    def test_singleton(self):
        assert TransparencyLogger.get_instance() is TransparencyLogger.get_instance()


# ============================================================================
# BROADCASTING
# ============================================================================


class TestBroadcasting:

    async def test_agent_thought_updates_stats(self, transparency):
        session_id = transparency.create_session()

        await transparency.broadcast_agent_thought(session_id, "planner", "plan", "Thinking")
        await transparency.broadcast_agent_thought(session_id, "planner", "act", "Acting")

        session = transparency.get_session(session_id)
        assert session.totalMessages == 2
        assert session.agents == ["planner"]

    async def test_tool_execution_tracks_tool(self, transparency):
        session_id = transparency.create_session()

        await transparency.broadcast_tool_execution(session_id, "analyze_csv", "starting")

        session = transparency.get_session(session_id)
        assert session.tools == ["analyze_csv"]
        [message] = transparency.drain_signalr_messages(session_id)
        assert message["arguments"][0]["status"] == "starting"
        assert message["arguments"][0]["metadata"] == {"logLevel": "detailed"}

    async def test_collaboration_counts_both_agents(self, transparency):
        session_id = transparency.create_session()

        await transparency.broadcast_collaboration(
            session_id, "router", "analyst", "Please review", "handoff"
        )

        session = transparency.get_session(session_id)
        assert session.agents == ["router", "analyst"]
        assert session.totalMessages == 2

    async def test_disabled_category_is_dropped(self, clock):
        transparency = TransparencyLogger(
            TransparencyConfig(enable_agent_thoughts=False), clock=clock
        )
        session_id = transparency.create_session()

        await transparency.broadcast_agent_thought(session_id, "planner", "plan", "Thinking")

        assert transparency.pending_message_count() == 0
        assert transparency.get_session(session_id).totalMessages == 0

    async def test_config_from_environment(self, monkeypatch):
        monkeypatch.setenv("TRANSPARENCY_ENABLE_PROCESSING_STEPS", "false")
        monkeypatch.setenv("TRANSPARENCY_LOG_LEVEL", "summary")

        config = TransparencyConfig.from_env()

        assert config.enable_processing_steps is False
        assert config.enable_tool_execution is True
        assert config.log_level == "summary"

    async def test_queue_is_bounded(self, transparency):
        session_id = transparency.create_session()

        for step in range(MAX_QUEUED_MESSAGES + 5):
            await transparency.broadcast_processing_step(session_id, step, 10, "step", 0.5)

        assert transparency.pending_message_count() == MAX_QUEUED_MESSAGES
        first = transparency.drain_signalr_messages()[0]
        assert first["arguments"][0]["currentStep"] == 5


class TestDrain:

    async def test_drain_only_named_session(self, transparency):
        first = transparency.create_session()
        second = transparency.create_session()
        await transparency.broadcast_processing_step(first, 1, 2, "one", 0.5)
        await transparency.broadcast_processing_step(second, 1, 2, "two", 0.5)

        drained = transparency.drain_signalr_messages(first)

        assert [m["arguments"][0]["stepName"] for m in drained] == ["one"]
        assert transparency.pending_message_count() == 1

    async def test_drain_all(self, transparency):
        session_id = transparency.create_session()
        await transparency.broadcast_processing_step(session_id, 1, 1, "only", 1.0)

        [message] = transparency.drain_signalr_messages()

        assert message["target"] == SIGNALR_TARGET
        assert transparency.drain_signalr_messages() == []


# ============================================================================
# SANITIZATION
# ============================================================================


class TestSanitizeResult:

    def test_removes_credentials(self):
        result = sanitize_result({"status": "ok", "key": "k", "connectionString": "c", "token": "t"})
        assert result == {"status": "ok"}

    def test_truncates_long_content(self):
        result = sanitize_result({"content": "x" * 1500})
        assert result["content"] == "x" * 1000 + "... (truncated)"

    def test_truncates_long_extracted_text(self):
        result = sanitize_result({"extracted_text": "y" * 1200, "page_count": 3})
        assert result["extracted_text"] == "y" * 1000 + "... (truncated)"
        assert result["page_count"] == 3

    def test_passes_through_non_dicts(self):
        assert sanitize_result(None) is None
        assert sanitize_result("text") == "text"

    def test_signalr_envelope(self):
        message = {"type": "agent_thought", "sessionId": "s"}
        assert create_signalr_message(message) == {"target": SIGNALR_TARGET, "arguments": [message]}
