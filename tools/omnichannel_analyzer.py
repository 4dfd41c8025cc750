# Copyright (c) Microsoft. All rights reserved.
"""
Omnichannel Journey Analyzer Tool

Aggregates customer interactions across channels (web, phone, chat, email,
mobile, in person) into per-channel performance, journey patterns and
customer insights.
"""

import logging
import re
from collections import Counter

import pandas as pd

from tools.base import ToolInputError, ToolProgress, error_id, new_id, now_iso

REQUIRED_INTERACTION_FIELDS = ("customer_id", "channel", "interaction_type", "timestamp")

SUCCESS_OUTCOMES = ("resolved", "completed", "successful", "satisfied")
FAILURE_OUTCOMES = ("failed", "unresolved", "cancelled", "unsatisfied")

SENTIMENT_SCORES = {"positive": 1, "neutral": 0, "negative": -1}

POSITIVE_WORDS = {
    "good", "great", "excellent", "happy", "thanks", "thank", "helpful", "quick",
    "resolved", "satisfied", "easy", "love", "appreciate", "fast", "restored",
    "perfect", "pleased", "friendly", "fixed",
}
NEGATIVE_WORDS = {
    "bad", "poor", "terrible", "angry", "frustrated", "slow", "unhappy", "wrong",
    "broken", "complaint", "outage", "failed", "cancel", "disconnect", "late",
    "overcharged", "error", "problem", "issue", "waiting",
}

MAX_INTERACTION_TYPES = 5
MAX_JOURNEY_PATTERNS = 10
MAX_PREFERRED_CHANNELS = 3
MAX_PEAK_HOURS = 3

UTILITIES_RECOMMENDATIONS = [
    "Implement proactive outage notifications to reduce inbound support contacts",
    "Consider self-service options for common billing and usage inquiries",
    "Integrate real-time service status into customer portal and mobile app",
]

_WORD = re.compile(r"[a-z']+")


def detect_sentiment(text: str) -> str:
    """Word-count sentiment: positive, neutral or negative."""
    words = _WORD.findall(str(text).lower())
    if not words:
        return "neutral"
    score = (
        sum(1 for w in words if w in POSITIVE_WORDS)
        - sum(1 for w in words if w in NEGATIVE_WORDS)
    ) / len(words)
    if score > 0.1:
        return "positive"
    if score < -0.1:
        return "negative"
    return "neutral"


def outcome_score(outcome: str | None) -> int:
    """1 for a success outcome, -1 for a failure, 0 otherwise."""
    if not outcome:
        return 0
    lowered = outcome.lower()
    # Failure words are checked first: "unresolved" contains "resolved" and
    # counts as a failure, not a success.
    if any(word in lowered for word in FAILURE_OUTCOMES):
        return -1
    if any(word in lowered for word in SUCCESS_OUTCOMES):
        return 1
    return 0


def is_success(outcome: str | None) -> bool:
    return outcome_score(outcome) == 1


def interaction_sentiment(interaction: dict) -> int:
    if interaction.get("sentiment") in SENTIMENT_SCORES:
        return SENTIMENT_SCORES[interaction["sentiment"]]
    metadata = interaction.get("metadata") or {}
    content = metadata.get("content") or interaction["interaction_type"]
    return SENTIMENT_SCORES[detect_sentiment(content)]


def load_interactions(interactions: list[dict]) -> pd.DataFrame:
    """
    Validate interactions and build a frame with a parsed UTC `ts` column.

    Raises:
        ToolInputError: If an interaction lacks a required field or has an
            unparseable timestamp.
    """
    for index, interaction in enumerate(interactions):
        if not isinstance(interaction, dict):
            raise ToolInputError(f"customer_interactions[{index}] must be an object")
        missing = [f for f in REQUIRED_INTERACTION_FIELDS if not interaction.get(f)]
        if missing:
            raise ToolInputError(
                f"customer_interactions[{index}] is missing required fields: {', '.join(missing)}"
            )

    frame = pd.DataFrame({
        "interaction": interactions,
        "customer_id": [str(i["customer_id"]) for i in interactions],
        "channel": [str(i["channel"]) for i in interactions],
    })
    try:
        frame["ts"] = pd.to_datetime(
            [i["timestamp"] for i in interactions], utc=True, format="mixed"
        )
    except (ValueError, TypeError) as e:
        raise ToolInputError(f"Invalid interaction timestamp: {e}") from e
    return frame


def resolve_period(frame: pd.DataFrame, analysis_period: dict | None) -> tuple[pd.Timestamp, pd.Timestamp]:
    period = analysis_period or {}
    try:
        start = (
            pd.to_datetime(period["start_date"], utc=True, format="mixed")
            if period.get("start_date") else frame["ts"].min()
        )
        end = (
            pd.to_datetime(period["end_date"], utc=True, format="mixed")
            if period.get("end_date") else frame["ts"].max()
        )
    except (ValueError, TypeError) as e:
        raise ToolInputError(f"Invalid analysis_period: {e}") from e
    return start, end


def top_items(items: list[str], limit: int) -> list[str]:
    return [item for item, _ in Counter(items).most_common(limit)]


def analyze_channels(frame: pd.DataFrame, include_sentiment: bool) -> list[dict]:
    analysis = []
    for channel, group in frame.groupby("channel", sort=False):
        interactions = group["interaction"].tolist()
        count = len(interactions)

        average_sentiment = 0.0
        if include_sentiment:
            average_sentiment = sum(interaction_sentiment(i) for i in interactions) / count

        successes = sum(1 for i in interactions if is_success(i.get("outcome")))

        analysis.append({
            "channel": channel,
            "interaction_count": count,
            "average_sentiment": round(average_sentiment, 2),
            "effectiveness_score": round(successes / count, 2),
            "common_interaction_types": top_items(
                [i["interaction_type"] for i in interactions], MAX_INTERACTION_TYPES
            ),
        })

    return sorted(analysis, key=lambda a: a["interaction_count"], reverse=True)


def journey_outcome(interactions: list[dict]) -> str:
    """Latest explicit outcome among the last three interactions, else inferred."""
    for interaction in reversed(interactions[-3:]):
        if interaction.get("outcome"):
            return interaction["outcome"]

    last_type = interactions[-1]["interaction_type"].lower()
    if "complete" in last_type or "resolve" in last_type:
        return "completed"
    return "unknown"


def analyze_journey_patterns(frame: pd.DataFrame) -> list[dict]:
    journeys: dict[tuple[str, ...], list[dict]] = {}
    for _, group in frame.sort_values("ts", kind="stable").groupby("customer_id", sort=False):
        path = tuple(group["channel"])
        duration = group["ts"].iloc[-1] - group["ts"].iloc[0]
        journeys.setdefault(path, []).append({
            "duration_hours": duration.total_seconds() / 3600,
            "outcome": journey_outcome(group["interaction"].tolist()),
        })

    patterns = []
    for path, customer_journeys in journeys.items():
        frequency = len(customer_journeys)
        successes = sum(1 for j in customer_journeys if is_success(j["outcome"]))
        average_duration = sum(j["duration_hours"] for j in customer_journeys) / frequency
        patterns.append({
            "pattern_id": new_id("pattern"),
            "path": list(path),
            "path_key": " -> ".join(path),
            "frequency": frequency,
            "success_rate": round(successes / frequency, 2),
            "average_duration_hours": round(average_duration, 2),
        })

    patterns.sort(key=lambda p: p["frequency"], reverse=True)
    return patterns[:MAX_JOURNEY_PATTERNS]


def generate_customer_insights(frame: pd.DataFrame, journey_patterns: list[dict]) -> dict:
    satisfaction: dict[str, float] = {}
    channel_counts = frame["channel"].value_counts(sort=False)
    for channel, group in frame.groupby("channel", sort=False):
        scores = [
            outcome_score(i["outcome"]) for i in group["interaction"] if i.get("outcome")
        ]
        if scores:
            satisfaction[channel] = round(sum(scores) / len(scores), 2)

    dropout_points = list(dict.fromkeys(
        p["path"][-1] for p in journey_patterns if p["success_rate"] < 0.5
    ))

    preferences = sorted(
        channel_counts.index,
        key=lambda channel: channel_counts[channel] * satisfaction.get(channel, 0),
        reverse=True,
    )

    hour_counts = frame["ts"].dt.hour.value_counts()
    ranked_hours = sorted(range(24), key=lambda h: hour_counts.get(h, 0), reverse=True)

    return {
        "satisfaction_correlation": satisfaction,
        "dropout_points": dropout_points,
        "preferred_channels": list(preferences[:MAX_PREFERRED_CHANNELS]),
        "peak_interaction_times": [f"{h}:00-{h + 1}:00" for h in ranked_hours[:MAX_PEAK_HOURS]],
    }


def generate_recommendations(
    channel_analysis: list[dict],
    journey_patterns: list[dict],
    customer_insights: dict,
) -> list[str]:
    recommendations = []

    low_performing = [c["channel"] for c in channel_analysis if c["effectiveness_score"] < 0.6]
    if low_performing:
        recommendations.append(
            f"Improve performance for low-effectiveness channels: {', '.join(low_performing)}"
        )

    high_sentiment = [c["channel"] for c in channel_analysis if c["average_sentiment"] > 0.7]
    if high_sentiment:
        recommendations.append(
            f"Leverage best practices from high-satisfaction channels: {', '.join(high_sentiment)}"
        )

    if any(p["average_duration_hours"] > 24 for p in journey_patterns):
        recommendations.append("Optimize lengthy customer journeys to reduce resolution time")

    if any(p["success_rate"] < 0.5 for p in journey_patterns):
        recommendations.append("Address common failure patterns to improve customer success rates")

    if customer_insights["dropout_points"]:
        recommendations.append(
            "Focus retention efforts on dropout-prone channels: "
            f"{', '.join(customer_insights['dropout_points'])}"
        )

    if customer_insights["preferred_channels"]:
        recommendations.append(
            "Enhance capacity during peak times: "
            f"{', '.join(customer_insights['peak_interaction_times'])}"
        )

    recommendations.extend(UTILITIES_RECOMMENDATIONS)
    return recommendations


def empty_insights() -> dict:
    return {
        "satisfaction_correlation": {},
        "dropout_points": [],
        "preferred_channels": [],
        "peak_interaction_times": [],
    }


def _error_result(message: str) -> dict:
    return {
        "analysis_id": error_id(),
        "status": "error",
        "period": {"start_date": now_iso(), "end_date": now_iso(), "total_interactions": 0},
        "channel_analysis": [],
        "journey_patterns": [],
        "customer_insights": empty_insights(),
        "recommendations": [],
        "processed_at": now_iso(),
        "message": f"Omnichannel journey analysis failed: {message}",
    }


async def analyze_omnichannel_journey(
    customer_interactions: list[dict] | None = None,
    analysis_period: dict | None = None,
    include_journey_mapping: bool = True,
    include_sentiment_analysis: bool = True,
    progress: ToolProgress | None = None,
) -> dict:
    """
    Analyze customer journeys across channels.

    Args:
        customer_interactions: Interactions with customer_id, channel,
            interaction_type, timestamp and optional sentiment, outcome, metadata.
        analysis_period: Optional {"start_date", "end_date"}; defaults to the
            earliest and latest interaction.
        include_journey_mapping: Build per-customer journey patterns.
        include_sentiment_analysis: Compute average sentiment per channel.
        progress: Transparency progress reporter.

    Returns:
        An omnichannel analysis result dict.

    Raises:
        ToolInputError: If interactions are missing, empty or malformed.
    """
    if not customer_interactions or not isinstance(customer_interactions, list):
        raise ToolInputError("customer_interactions parameter is required and must not be empty")

    progress = progress or ToolProgress()
    logging.info("Omnichannel Journey Analyzer: Starting customer journey analysis")

    frame = load_interactions(customer_interactions)
    start, end = resolve_period(frame, analysis_period)

    try:
        await progress.step(1, 4, "Filtering interactions to analysis period")
        frame = frame[(frame["ts"] >= start) & (frame["ts"] <= end)]
        logging.info(
            f"Analyzing {len(frame)} interactions in period {start.isoformat()} to {end.isoformat()}"
        )

        await progress.step(2, 4, "Analyzing channel performance")
        channel_analysis = analyze_channels(frame, include_sentiment_analysis) if len(frame) else []

        await progress.step(3, 4, "Mapping customer journeys")
        journey_patterns = (
            analyze_journey_patterns(frame) if include_journey_mapping and len(frame) else []
        )

        await progress.step(4, 4, "Generating customer insights")
        if len(frame):
            customer_insights = generate_customer_insights(frame, journey_patterns)
        else:
            customer_insights = empty_insights()
        recommendations = generate_recommendations(channel_analysis, journey_patterns, customer_insights)

        return {
            "analysis_id": new_id("omnichannel"),
            "status": "success",
            "period": {
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "total_interactions": len(frame),
            },
            "channel_analysis": channel_analysis,
            "journey_patterns": journey_patterns,
            "customer_insights": customer_insights,
            "recommendations": recommendations,
            "processed_at": now_iso(),
            "message": (
                "Omnichannel journey analysis completed successfully. "
                f"Analyzed {len(frame)} interactions across {frame['channel'].nunique()} channels."
            ),
        }

    except Exception as e:
        logging.exception(f"Error in omnichannel journey analysis: {e}")
        return _error_result(str(e))
