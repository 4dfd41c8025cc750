# Copyright (c) Microsoft. All rights reserved.
"""
Utilities Industry Context Detection

Keyword tables that tag dataset columns with utilities-industry contexts
(energy usage, customer data, regulatory, billing, infrastructure) and the
recommendations and compliance requirements that follow from them.
"""

import re

ENERGY_METRICS = [
    "kwh", "kilowatt", "mwh", "megawatt", "voltage", "amperage", "power_factor",
    "demand", "load", "generation", "consumption", "usage", "meter_reading",
    "peak_demand", "off_peak", "tariff", "rate_schedule", "energy_charge",
]

CUSTOMER_INDICATORS = [
    "customer_id", "account_number", "service_address", "billing_address",
    "customer_name", "customer_type", "rate_class", "service_class",
    "connection_date", "disconnection", "credit_rating", "payment_history",
]

REGULATORY_FIELDS = [
    "nerc_id", "ferc", "puc", "compliance", "audit", "violation", "outage",
    "reliability", "saifi", "saidi", "caidi", "environmental_impact",
    "emissions", "renewable_credit", "carbon_footprint", "sustainability",
]

BILLING_DATA = [
    "bill_amount", "billing_date", "due_date", "payment_date", "late_fee",
    "deposit", "adjustment", "credit", "debit", "balance", "arrears",
    "payment_method", "autopay", "budget_billing", "levelized",
]

INFRASTRUCTURE_FIELDS = [
    "transformer", "substation", "feeder", "circuit", "pole", "line",
    "equipment_id", "asset_id", "maintenance", "inspection", "repair",
    "outage_cause", "restoration_time", "crew_dispatch", "work_order",
]

# Context tag -> keyword table, in reporting order
CONTEXT_TABLES = [
    ("energy_usage", ENERGY_METRICS),
    ("customer_data", CUSTOMER_INDICATORS),
    ("regulatory_compliance", REGULATORY_FIELDS),
    ("billing_operations", BILLING_DATA),
    ("infrastructure_management", INFRASTRUCTURE_FIELDS),
]

CONTEXT_RECOMMENDATIONS = {
    "energy_usage": [
        "Consider implementing time-of-use analysis for energy consumption patterns",
        "Validate energy metrics against meter reading schedules",
    ],
    "customer_data": [
        "Ensure customer PII is properly masked for compliance",
        "Implement customer segmentation analysis for targeted services",
    ],
    "regulatory_compliance": [
        "Schedule regular compliance audits based on regulatory requirements",
        "Implement automated monitoring for regulatory threshold violations",
    ],
    "billing_operations": [
        "Analyze payment patterns to identify at-risk accounts",
        "Consider automated billing anomaly detection",
    ],
    "infrastructure_management": [
        "Implement predictive maintenance based on equipment data patterns",
        "Correlate outage data with weather and infrastructure age",
    ],
}

CONTEXT_COMPLIANCE_REQUIREMENTS = {
    "customer_data": [
        "CCPA/GDPR compliance for customer personal information",
        "PUC data retention and privacy requirements",
    ],
    "energy_usage": [
        "FERC reporting requirements for energy data",
        "State utility commission data accuracy standards",
    ],
    "regulatory_compliance": [
        "NERC CIP compliance for critical infrastructure",
        "Environmental reporting to EPA and state agencies",
    ],
    "billing_operations": [
        "State utility commission billing accuracy requirements",
        "Consumer protection regulations for billing disputes",
    ],
}

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_column_name(name: str) -> str:
    """Lower-case a header and replace anything non-alphanumeric with '_'."""
    return _NON_ALNUM.sub("_", name.lower())


def find_matches(columns: list[str], patterns: list[str]) -> list[str]:
    """Columns that contain a pattern, or are contained in one."""
    return [
        column
        for column in columns
        if any(pattern in column or column in pattern for pattern in patterns)
    ]


def detect_context(column_names: list[str]) -> dict:
    """
    Detect utilities contexts from a list of column headers.

    Returns:
        detected_context, regulatory_fields, energy_metrics,
        customer_indicators and a 0-1 confidence_score.
    """
    normalized = [normalize_column_name(name) for name in column_names]

    matches = {tag: find_matches(normalized, table) for tag, table in CONTEXT_TABLES}
    detected = [tag for tag, _ in CONTEXT_TABLES if matches[tag]]

    total_matches = sum(len(found) for found in matches.values())
    confidence = min(total_matches / len(column_names), 1.0) if column_names else 0.0

    return {
        "detected_context": detected,
        "regulatory_fields": matches["regulatory_compliance"],
        "energy_metrics": matches["energy_usage"],
        "customer_indicators": matches["customer_data"],
        "confidence_score": round(confidence, 2),
    }


def detect_column_context(column_name: str) -> str | None:
    """Tag a single column, or None when no utilities context applies."""
    name = normalize_column_name(column_name)

    if any(k in name for k in ("kwh", "energy", "power", "usage", "consumption", "demand")):
        return "energy_usage"
    if any(k in name for k in ("customer", "account", "service_address")):
        return "customer_data"
    if any(k in name for k in ("bill", "charge", "payment", "amount", "balance")):
        return "billing_data"
    if any(k in name for k in ("compliance", "audit", "violation", "outage", "reliability")):
        return "regulatory_compliance"
    return None


def generate_recommendations(context: dict | None, data_quality: dict) -> list[str]:
    """Data quality and context-specific recommendations."""
    recommendations = []

    if data_quality.get("completeness_score", 1.0) < 0.8:
        recommendations.append(
            "Address missing data issues - completeness score is below 80%"
        )

    duplicates = data_quality.get("duplicates_found", 0)
    if duplicates > 0:
        recommendations.append(
            f"Remove {duplicates} duplicate records to improve data integrity"
        )

    detected = (context or {}).get("detected_context", [])
    for tag, _ in CONTEXT_TABLES:
        if tag in detected:
            recommendations.extend(CONTEXT_RECOMMENDATIONS[tag])

    return recommendations


def get_compliance_requirements(detected_context: list[str]) -> list[str]:
    requirements = []
    for tag in ("customer_data", "energy_usage", "regulatory_compliance", "billing_operations"):
        if tag in detected_context:
            requirements.extend(CONTEXT_COMPLIANCE_REQUIREMENTS[tag])
    return requirements
