"""
Omnichannel Journey Analyzer Tests

Run with:
    pytest tests/test_omnichannel_analyzer.py -v
"""

import pytest

from tools.base import ToolInputError
from tools.omnichannel_analyzer import (
    UTILITIES_RECOMMENDATIONS,
    analyze_omnichannel_journey,
    detect_sentiment,
    journey_outcome,
    outcome_score,
)


def interaction(customer_id, channel, timestamp, interaction_type="billing inquiry", **extra):
    return {
        "customer_id": customer_id,
        "channel": channel,
        "interaction_type": interaction_type,
        "timestamp": timestamp,
        **extra,
    }


@pytest.fixture
def interactions():
    return [
        interaction("C1", "web", "2024-01-01T09:00:00Z"),
        interaction("C1", "phone", "2024-01-01T10:00:00Z", "outage report", outcome="resolved"),
        interaction("C2", "web", "2024-01-01T09:30:00Z"),
        interaction("C2", "phone", "2024-01-01T12:30:00Z", "outage report", outcome="unresolved"),
        interaction(
            "C3", "chat", "2024-01-02T14:00:00Z", "payment", outcome="completed", sentiment="positive"
        ),
    ]


# ============================================================================
# HELPERS
# ============================================================================


class TestSentiment:

    def test_positive(self):
        assert detect_sentiment("thanks, great service") == "positive"

    def test_negative(self):
        assert detect_sentiment("the outage is terrible") == "negative"

    def test_neutral(self):
        assert detect_sentiment("meter reading submitted") == "neutral"
        assert detect_sentiment("") == "neutral"


class TestOutcomes:

    def test_unresolved_is_a_failure(self):
        assert outcome_score("unresolved") == -1

    def test_success_is_case_insensitive(self):
        assert outcome_score("Resolved") == 1

    def test_unknown_outcome(self):
        assert outcome_score("pending") == 0
        assert outcome_score(None) == 0

    def test_journey_outcome_uses_latest_explicit_outcome(self):
        steps = [
            {"interaction_type": "call", "outcome": "failed"},
            {"interaction_type": "chat", "outcome": "resolved"},
            {"interaction_type": "email"},
        ]
        assert journey_outcome(steps) == "resolved"

    def test_journey_outcome_inferred_from_last_type(self):
        assert journey_outcome([{"interaction_type": "Case Completed"}]) == "completed"
        assert journey_outcome([{"interaction_type": "inquiry"}]) == "unknown"


# ============================================================================
# ANALYSIS
# ============================================================================


class TestAnalyzeOmnichannelJourney:

    async def test_channel_analysis(self, interactions):
        result = await analyze_omnichannel_journey(customer_interactions=interactions)

        assert result["status"] == "success"
        assert result["period"]["total_interactions"] == 5

        channels = {c["channel"]: c for c in result["channel_analysis"]}
        assert [c["channel"] for c in result["channel_analysis"]][-1] == "chat"
        assert channels["web"]["interaction_count"] == 2
        assert channels["web"]["effectiveness_score"] == 0
        assert channels["phone"]["effectiveness_score"] == 0.5
        assert channels["chat"]["effectiveness_score"] == 1.0
        assert channels["chat"]["average_sentiment"] == 1.0
        assert channels["phone"]["average_sentiment"] == -1.0
        assert channels["web"]["common_interaction_types"] == ["billing inquiry"]

    async def test_journey_patterns(self, interactions):
        result = await analyze_omnichannel_journey(customer_interactions=interactions)

        top = result["journey_patterns"][0]
        assert top["path"] == ["web", "phone"]
        assert top["path_key"] == "web -> phone"
        assert top["frequency"] == 2
        assert top["success_rate"] == 0.5
        assert top["average_duration_hours"] == 2.0

    async def test_customer_insights(self, interactions):
        result = await analyze_omnichannel_journey(customer_interactions=interactions)

        insights = result["customer_insights"]
        assert insights["satisfaction_correlation"] == {"phone": 0.0, "chat": 1.0}
        assert insights["dropout_points"] == []
        assert insights["preferred_channels"][0] == "chat"
        assert insights["peak_interaction_times"][0] == "9:00-10:00"

    async def test_recommendations(self, interactions):
        result = await analyze_omnichannel_journey(customer_interactions=interactions)

        recommendations = result["recommendations"]
        assert recommendations[0] == "Improve performance for low-effectiveness channels: web, phone"
        assert recommendations[-3:] == UTILITIES_RECOMMENDATIONS

    async def test_analysis_period_filters_interactions(self, interactions):
        result = await analyze_omnichannel_journey(
            customer_interactions=interactions,
            analysis_period={"start_date": "2024-01-02T00:00:00Z"},
        )

        assert result["period"]["total_interactions"] == 1
        assert [c["channel"] for c in result["channel_analysis"]] == ["chat"]

    async def test_mixed_timestamp_precision(self):
        result = await analyze_omnichannel_journey(
            customer_interactions=[
                interaction("C1", "web", "2024-01-15T10:00:00Z"),
                interaction("C1", "phone", "2024-01-15T11:30:00.500Z", outcome="resolved"),
                interaction("C2", "email", "2024-01-16"),
            ]
        )

        assert result["status"] == "success"
        assert result["period"]["total_interactions"] == 3
        patterns = {p["path_key"]: p for p in result["journey_patterns"]}
        assert patterns["web -> phone"]["average_duration_hours"] == 1.5

    async def test_date_only_analysis_period(self, interactions):
        result = await analyze_omnichannel_journey(
            customer_interactions=interactions,
            analysis_period={"start_date": "2024-01-01", "end_date": "2024-01-01T23:59:59.999Z"},
        )
        assert result["period"]["total_interactions"] == 4

    async def test_journey_mapping_can_be_disabled(self, interactions):
        result = await analyze_omnichannel_journey(
            customer_interactions=interactions, include_journey_mapping=False
        )
        assert result["journey_patterns"] == []

    async def test_sentiment_can_be_disabled(self, interactions):
        result = await analyze_omnichannel_journey(
            customer_interactions=interactions, include_sentiment_analysis=False
        )
        assert all(c["average_sentiment"] == 0 for c in result["channel_analysis"])


class TestAnalyzeOmnichannelValidation:

    async def test_requires_interactions(self):
        with pytest.raises(ToolInputError):
            await analyze_omnichannel_journey(customer_interactions=[])

    async def test_rejects_missing_fields(self):
        with pytest.raises(ToolInputError, match="channel"):
            await analyze_omnichannel_journey(
                customer_interactions=[
                    {"customer_id": "C1", "interaction_type": "call", "timestamp": "2024-01-01"}
                ]
            )

    async def test_rejects_bad_timestamp(self):
        with pytest.raises(ToolInputError):
            await analyze_omnichannel_journey(
                customer_interactions=[interaction("C1", "web", "not a date")]
            )
