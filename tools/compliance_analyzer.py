# Copyright (c) Microsoft. All rights reserved.
"""
Regulatory Compliance Analyzer Tool

Checks a document against a static table of utilities regulations (NERC CIP,
EPA environmental, state utility commission rules) by matching each rule's
evidence patterns, then scores the result and drafts a remediation plan.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass

from tools.base import ToolInputError, ToolProgress, error_id, fetch_text, new_id, now_iso

COMPLIANCE_DOMAINS = ("nerc_cip", "epa_environmental", "state_utility", "comprehensive")

SEVERITY_WEIGHTS = {"critical": 4, "high": 3, "medium": 2, "low": 1}
STATUS_SCORES = {"compliant": 100, "needs_review": 50, "non_compliant": 0}

REMEDIATION_TIMELINES = {
    "critical": "30 days",
    "high": "90 days",
    "medium": "180 days",
    "low": "365 days",
}

REMEDIATION_COSTS = {
    "critical": "$50,000 - $500,000",
    "high": "$25,000 - $250,000",
    "medium": "$10,000 - $100,000",
    "low": "$5,000 - $50,000",
}

MAX_EVIDENCE = 5
EVIDENCE_CONTEXT_CHARS = 50


@dataclass(frozen=True)
class ComplianceRule:
    regulation: str
    requirement: str
    patterns: tuple[str, ...]
    severity: str
    category: str
    potential_penalty: str


COMPLIANCE_RULES: dict[str, list[ComplianceRule]] = {
    "nerc_cip": [
        ComplianceRule(
            "NERC CIP-002", "Critical Asset Identification",
            ("critical asset", "bulk electric system", "control center", "transmission"),
            "critical", "asset_management", "$1,000,000 per day",
        ),
        ComplianceRule(
            "NERC CIP-003", "Security Management Controls",
            ("security policy", "security manager", "training", "access control"),
            "high", "security_management", "$1,000,000 per day",
        ),
        ComplianceRule(
            "NERC CIP-004", "Personnel & Training",
            ("background check", "training record", "security awareness", "personnel access"),
            "high", "personnel_security", "$500,000 per day",
        ),
        ComplianceRule(
            "NERC CIP-005", "Electronic Security Perimeters",
            ("firewall", "network security", "electronic perimeter", "remote access"),
            "critical", "network_security", "$1,000,000 per day",
        ),
    ],
    "epa_environmental": [
        ComplianceRule(
            "Clean Air Act", "Emissions Monitoring and Reporting",
            ("emissions", "air quality", "monitoring", "nox", "sox", "particulate"),
            "high", "emissions", "$37,500 per day per violation",
        ),
        ComplianceRule(
            "Clean Water Act", "Water Discharge Permits",
            ("water discharge", "npdes", "pollution", "water quality", "effluent"),
            "high", "water_quality", "$37,500 per day per violation",
        ),
        ComplianceRule(
            "Resource Conservation and Recovery Act", "Hazardous Waste Management",
            ("hazardous waste", "waste disposal", "rcra", "toxic substances"),
            "critical", "waste_management", "$70,000 per day per violation",
        ),
    ],
    "state_utility": [
        ComplianceRule(
            "PUC Rate Setting", "Rate Structure Documentation",
            ("rate schedule", "tariff", "rate case", "cost of service"),
            "medium", "rate_regulation", "Rate adjustment or refund",
        ),
        ComplianceRule(
            "Service Quality Standards", "Reliability and Service Metrics",
            ("outage duration", "saifi", "saidi", "caidi", "reliability"),
            "medium", "service_quality", "Financial penalties or rate adjustments",
        ),
        ComplianceRule(
            "Consumer Protection", "Billing and Disconnection Procedures",
            ("billing accuracy", "disconnection notice", "payment arrangements", "consumer rights"),
            "medium", "consumer_protection", "Fines and customer refunds",
        ),
    ],
}


@dataclass
class ComplianceCheck:
    rule: ComplianceRule
    status: str
    findings: list[str]
    evidence: list[str]
    confidence: float


def get_applicable_rules(domain: str, audit_scope: list[str] | None = None) -> list[ComplianceRule]:
    """Rules for a domain ("comprehensive" = all), narrowed by audit scope."""
    if domain == "comprehensive":
        rules = [rule for rule_set in COMPLIANCE_RULES.values() for rule in rule_set]
    else:
        rules = list(COMPLIANCE_RULES.get(domain, []))

    if audit_scope:
        rules = [
            rule for rule in rules
            if any(
                scope in rule.category or scope.lower() in rule.regulation.lower()
                for scope in audit_scope
            )
        ]
    return rules


def extract_evidence(content: str, pattern: str) -> list[str]:
    """Snippets around each match, with up to 50 characters either side."""
    regex = re.compile(
        rf".{{0,{EVIDENCE_CONTEXT_CHARS}}}{re.escape(pattern)}.{{0,{EVIDENCE_CONTEXT_CHARS}}}",
        re.IGNORECASE,
    )
    return [match.strip() for match in regex.findall(content)]


def run_compliance_checks(content: str, rules: list[ComplianceRule]) -> list[ComplianceCheck]:
    checks = []
    for rule in rules:
        logging.info(f"Checking compliance rule: {rule.regulation} - {rule.requirement}")
        findings: list[str] = []
        evidence: list[str] = []
        match_count = 0

        for pattern in rule.patterns:
            matches = re.findall(re.escape(pattern), content, re.IGNORECASE)
            if matches:
                match_count += len(matches)
                findings.append(f'Found {len(matches)} references to "{pattern}"')
                evidence.extend(extract_evidence(content, pattern))

        if match_count == 0:
            status, confidence = "non_compliant", 0.9
            findings.append(f"No evidence found for {rule.requirement}")
        elif match_count < len(rule.patterns):
            status, confidence = "needs_review", 0.6
            findings.append("Partial compliance detected - manual review recommended")
        else:
            status = "compliant"
            confidence = min(0.9, match_count / (len(rule.patterns) * 2))
            findings.append("Evidence found for all required patterns")

        checks.append(ComplianceCheck(
            rule=rule,
            status=status,
            findings=findings,
            evidence=evidence[:MAX_EVIDENCE],
            confidence=confidence,
        ))
    return checks


def calculate_compliance_score(checks: list[ComplianceCheck]) -> float:
    """Severity-weighted score on 0-100, each check scaled by its confidence."""
    if not checks:
        return 0

    total_weight = 0
    weighted_score = 0.0
    for check in checks:
        weight = SEVERITY_WEIGHTS.get(check.rule.severity, 1)
        total_weight += weight
        weighted_score += STATUS_SCORES[check.status] * weight * check.confidence

    return round(weighted_score / total_weight, 2)


def determine_risk_level(score: float, checks: list[ComplianceCheck]) -> str:
    if any(c.rule.severity == "critical" and c.status == "non_compliant" for c in checks):
        return "critical"
    if score < 50:
        return "high"
    if score < 75:
        return "medium"
    return "low"


def identify_violations(checks: list[ComplianceCheck]) -> list[dict]:
    stamp = int(time.time() * 1000)
    non_compliant = [c for c in checks if c.status == "non_compliant"]
    return [
        {
            "violation_id": f"violation_{stamp}_{index}",
            "regulation": check.rule.regulation,
            "description": check.rule.requirement,
            "severity": check.rule.severity,
            "potential_penalty": check.rule.potential_penalty,
            "remediation_priority": SEVERITY_WEIGHTS.get(check.rule.severity, 1),
        }
        for index, check in enumerate(non_compliant)
    ]


def responsible_party(regulation: str) -> str:
    if "NERC" in regulation:
        return "IT Security / Operations"
    if "EPA" in regulation or "Clean" in regulation:
        return "Environmental Compliance"
    if "PUC" in regulation or "Rate" in regulation:
        return "Regulatory Affairs"
    return "Compliance Officer"


def generate_remediation_plan(violations: list[dict]) -> list[dict]:
    ordered = sorted(violations, key=lambda v: v["remediation_priority"], reverse=True)
    return [
        {
            "action": f"Address {violation['description']} compliance gap",
            "priority": violation["remediation_priority"],
            "estimated_cost": REMEDIATION_COSTS.get(violation["severity"], "TBD"),
            "timeline": REMEDIATION_TIMELINES.get(violation["severity"], "TBD"),
            "responsible_party": responsible_party(violation["regulation"]),
        }
        for violation in ordered
    ]


async def analyze_compliance(
    compliance_domain: str = "comprehensive",
    document_content: str | None = None,
    document_url: str | None = None,
    audit_scope: list[str] | None = None,
    include_remediation: bool = True,
    progress: ToolProgress | None = None,
) -> dict:
    """
    Analyze a document for regulatory compliance.

    Args:
        compliance_domain: nerc_cip, epa_environmental, state_utility or comprehensive.
        document_content: Document text.
        document_url: URL to download the document from when no content is given.
        audit_scope: Categories or regulation names to restrict the rules to.
        include_remediation: Add a remediation plan when violations are found.
        progress: Transparency progress reporter.

    Returns:
        A compliance analysis result dict; download failures produce a
        result with status "error".

    Raises:
        ToolInputError: If no document is given or the domain is unknown.
    """
    if not document_content and not document_url:
        raise ToolInputError("Either document_content or document_url parameter is required")
    domain = compliance_domain or "comprehensive"
    if domain not in COMPLIANCE_DOMAINS:
        raise ToolInputError(
            f"Invalid compliance_domain '{domain}'. Expected one of: {', '.join(COMPLIANCE_DOMAINS)}"
        )

    progress = progress or ToolProgress()
    logging.info("Regulatory Compliance Analyzer: Starting compliance analysis")
    audit_trail = [{
        "timestamp": now_iso(),
        "action": "analysis_started",
        "details": f"Starting {domain} compliance analysis",
    }]

    try:
        await progress.step(1, 4, "Loading document")
        content = document_content or await asyncio.to_thread(fetch_text, document_url)
        logging.info(f"Analyzing document for {domain} compliance ({len(content)} characters)")

        await progress.step(2, 4, "Selecting applicable rules")
        rules = get_applicable_rules(domain, audit_scope)
        logging.info(f"Applying {len(rules)} compliance rules for {domain}")

        await progress.step(3, 4, "Running compliance checks")
        checks = run_compliance_checks(content, rules)

        await progress.step(4, 4, "Scoring and remediation planning")
        score = calculate_compliance_score(checks)
        risk_level = determine_risk_level(score, checks)
        violations = identify_violations(checks)
        remediation_plan = (
            generate_remediation_plan(violations)
            if include_remediation and violations else None
        )

        audit_trail.append({
            "timestamp": now_iso(),
            "action": "analysis_completed",
            "details": f"Found {len(violations)} violations with overall score {score}",
        })

        return {
            "analysis_id": new_id("compliance"),
            "status": "success",
            "compliance_domain": domain,
            "overall_score": score,
            "risk_level": risk_level,
            "compliance_checks": [
                {
                    "regulation": check.rule.regulation,
                    "requirement": check.rule.requirement,
                    "status": check.status,
                    "severity": check.rule.severity,
                    "findings": check.findings,
                    "evidence": check.evidence,
                }
                for check in checks
            ],
            "violations": violations,
            "audit_trail": audit_trail,
            "remediation_plan": remediation_plan,
            "processed_at": now_iso(),
            "message": (
                f"Compliance analysis completed. Overall score: {score}/100, "
                f"Risk level: {risk_level}, Found {len(violations)} violations."
            ),
        }

    except Exception as e:
        logging.exception(f"Error in regulatory compliance analysis: {e}")
        audit_trail.append({
            "timestamp": now_iso(),
            "action": "analysis_failed",
            "details": str(e),
        })
        return {
            "analysis_id": error_id(),
            "status": "error",
            "compliance_domain": domain,
            "overall_score": 0,
            "risk_level": "critical",
            "compliance_checks": [],
            "violations": [],
            "audit_trail": audit_trail,
            "processed_at": now_iso(),
            "message": f"Compliance analysis failed: {e}",
        }
