# Copyright (c) Microsoft. All rights reserved.
"""
CSV Analyzer Tool

Profiles CSV data: column types, descriptive statistics, data quality and
utilities-industry context.
"""

import asyncio
import io
import json
import logging
import math

import pandas as pd

from tools import utilities_context
from tools.base import ToolInputError, ToolProgress, error_id, fetch_text, new_id, now_iso

ANALYSIS_TYPES = ("basic", "statistical", "utilities_context", "comprehensive")

TYPE_SAMPLE_SIZE = 100
BOOLEAN_TOKENS = {"true", "false", "yes", "no", "1", "0"}


def parse_csv(csv_content: str) -> pd.DataFrame:
    """
    Parse CSV text with a header row into a frame of trimmed strings.

    Empty lines are skipped; missing cells become "".

    Raises:
        pandas.errors.ParserError: If a row has more fields than the header.
    """
    # Read the header as a data row so every row is checked against its width.
    rows = pd.read_csv(
        io.StringIO(csv_content),
        header=None,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        engine="python",
        on_bad_lines="error",
    ).fillna("").apply(lambda column: column.str.strip())
    frame = rows.iloc[1:].reset_index(drop=True)
    frame.columns = rows.iloc[0].tolist()
    return frame


def _is_number(value: str) -> bool:
    try:
        return math.isfinite(float(value))
    except ValueError:
        return False


def _is_date(value: str) -> bool:
    try:
        return not pd.isna(pd.to_datetime(value))
    except (ValueError, TypeError, OverflowError):
        return False


def infer_data_type(values: list[str]) -> str:
    """
    Classify a column from its first 100 non-empty values.

    Returns one of: number, date, boolean, mixed, string.
    """
    if not values:
        return "string"

    sample = values[:TYPE_SAMPLE_SIZE]
    number_count = date_count = boolean_count = 0
    for value in sample:
        token = str(value).strip().lower()
        if token in BOOLEAN_TOKENS:
            boolean_count += 1
        elif _is_number(token):
            number_count += 1
        elif _is_date(value):
            date_count += 1

    total = len(sample)
    if number_count / total > 0.8:
        return "number"
    if date_count / total > 0.8:
        return "date"
    if boolean_count / total > 0.8:
        return "boolean"
    if (number_count + date_count + boolean_count) / total > 0.5:
        return "mixed"
    return "string"


def _present(frame: pd.DataFrame, column: str) -> list[str]:
    return [v for v in frame[column].tolist() if v != ""]


def analyze_columns(frame: pd.DataFrame) -> list[dict]:
    analysis = []
    for column in frame.columns:
        values = _present(frame, column)
        distinct = list(dict.fromkeys(values))
        analysis.append({
            "name": column,
            "data_type": infer_data_type(values),
            "missing_values": len(frame) - len(values),
            "unique_values": len(distinct),
            "sample_values": [str(v) for v in distinct[:5]],
            "utilities_context": utilities_context.detect_column_context(column),
        })
    return analysis


def percentile(sorted_values: list[float], pct: float) -> float:
    """Percentile by linear interpolation between closest ranks."""
    if not sorted_values:
        return 0
    index = (pct / 100) * (len(sorted_values) - 1)
    lower, upper = math.floor(index), math.ceil(index)
    if lower == upper:
        return sorted_values[lower]
    weight = index - lower
    return sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight


def _clean_number(value: float) -> float | int:
    value = float(value)
    return int(value) if value.is_integer() else value


def statistical_summary(frame: pd.DataFrame) -> list[dict]:
    """Descriptive statistics for every column inferred as numeric."""
    summary = []
    for column in frame.columns:
        present = _present(frame, column)
        if not present or infer_data_type(present) != "number":
            continue

        numbers = pd.to_numeric(frame[column], errors="coerce").dropna()
        if numbers.empty:
            continue

        ordered = sorted(numbers.tolist())
        mean = numbers.mean()
        std_dev = numbers.std(ddof=0)
        q1 = percentile(ordered, 25)
        median = percentile(ordered, 50)
        q3 = percentile(ordered, 75)
        iqr = q3 - q1
        low, high = q1 - 1.5 * iqr, q3 + 1.5 * iqr

        summary.append({
            "column": column,
            "mean": round(float(mean), 2),
            "median": _clean_number(median),
            "std_dev": round(float(std_dev), 2),
            "min": _clean_number(ordered[0]),
            "max": _clean_number(ordered[-1]),
            "quartiles": [_clean_number(q1), _clean_number(median), _clean_number(q3)],
            "outliers_count": int(((numbers < low) | (numbers > high)).sum()),
        })
    return summary


def assess_data_quality(frame: pd.DataFrame) -> dict:
    total_cells = frame.shape[0] * frame.shape[1]
    missing_cells = int((frame == "").sum().sum()) if total_cells else 0
    duplicate_rows = int(frame.duplicated().sum()) if len(frame) else 0

    anomalies = []
    inconsistent_cells = 0
    for column in frame.columns:
        values = _present(frame, column)
        if not values:
            continue
        expected = infer_data_type(values)
        if expected == "mixed":
            continue
        inconsistent = sum(1 for v in values if infer_data_type([v]) != expected)
        if inconsistent / len(values) > 0.1:
            anomalies.append(
                f"Column '{column}' has {inconsistent} values inconsistent "
                f"with expected type {expected}"
            )
            inconsistent_cells += inconsistent

    if total_cells:
        completeness = max(0.0, (total_cells - missing_cells) / total_cells)
        consistency = max(0.0, (total_cells - inconsistent_cells) / total_cells)
    else:
        completeness = consistency = 0.0

    return {
        "completeness_score": round(completeness, 2),
        "consistency_score": round(consistency, 2),
        "duplicates_found": duplicate_rows,
        "data_anomalies": anomalies,
    }


def utilities_insights(headers: list[str], data_quality: dict) -> dict:
    context = utilities_context.detect_context(headers)
    return {
        **context,
        "compliance_requirements": utilities_context.get_compliance_requirements(
            context["detected_context"]
        ),
        "recommendations": utilities_context.generate_recommendations(context, data_quality),
    }


def _error_result(message: str) -> dict:
    return {
        "analysis_id": error_id(),
        "status": "error",
        "file_info": {"rows": 0, "columns": 0},
        "column_analysis": [],
        "data_quality": {
            "completeness_score": 0,
            "consistency_score": 0,
            "duplicates_found": 0,
            "data_anomalies": [message],
        },
        "processed_at": now_iso(),
        "message": "CSV analysis failed",
    }


async def analyze_csv(
    csv_data: str | None = None,
    file_url: str | None = None,
    analysis_type: str = "comprehensive",
    include_recommendations: bool = False,
    progress: ToolProgress | None = None,
) -> dict:
    """
    Analyze CSV data.

    Args:
        csv_data: CSV content including a header row.
        file_url: URL to download the CSV from when csv_data is not given.
        analysis_type: basic, statistical, utilities_context or comprehensive.
        include_recommendations: Add a top-level recommendations list.
        progress: Transparency progress reporter.

    Returns:
        A CSV analysis result dict. Parse and download failures produce a
        result with status "error".

    Raises:
        ToolInputError: If neither csv_data nor file_url is given, or the
            analysis type is unknown.
    """
    if not csv_data and not file_url:
        raise ToolInputError("Either csv_data or file_url parameter is required")
    analysis_type = analysis_type or "comprehensive"
    if analysis_type not in ANALYSIS_TYPES:
        raise ToolInputError(
            f"Invalid analysis_type '{analysis_type}'. Expected one of: {', '.join(ANALYSIS_TYPES)}"
        )

    progress = progress or ToolProgress()
    logging.info("CSV Analyzer: Starting analysis with utilities context detection")

    try:
        await progress.step(1, 5, "Loading CSV data")
        content = csv_data or await asyncio.to_thread(fetch_text, file_url, "CSV")

        await progress.step(2, 5, "Parsing CSV")
        frame = parse_csv(content)
        headers = list(frame.columns)
        logging.info(f"Parsed CSV: {len(frame)} rows, {len(headers)} columns")

        await progress.step(3, 5, "Analyzing columns")
        column_analysis = analyze_columns(frame)

        summary = None
        if analysis_type in ("statistical", "comprehensive"):
            await progress.step(4, 5, "Computing statistics")
            summary = statistical_summary(frame)

        await progress.step(5, 5, "Assessing data quality")
        data_quality = assess_data_quality(frame)

        insights = None
        if analysis_type in ("utilities_context", "comprehensive"):
            insights = utilities_insights(headers, data_quality)

        result = {
            "analysis_id": new_id("csv"),
            "status": "success",
            "analysis_type": analysis_type,
            "file_info": {
                "rows": len(frame),
                "columns": len(headers),
                "size_bytes": len(content.encode("utf-8")),
                "encoding": "utf-8",
            },
            "column_analysis": column_analysis,
            "statistical_summary": summary,
            "data_quality": data_quality,
            "utilities_insights": insights,
            "processed_at": now_iso(),
            "message": (
                f"CSV analysis completed successfully using {analysis_type} analysis. "
                f"Processed {len(frame)} rows across {len(headers)} columns."
            ),
        }
        if include_recommendations:
            context = insights or utilities_context.detect_context(headers)
            result["recommendations"] = utilities_context.generate_recommendations(
                context, data_quality
            )

        # numpy scalars must not leak into the JSON response
        return json.loads(json.dumps(result, default=float))

    except Exception as e:
        logging.exception(f"Error in CSV analysis: {e}")
        return _error_result(str(e))
