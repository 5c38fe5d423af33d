"""Remediation recommendations derived from compliance statistics."""

from __future__ import annotations

from typing import Iterable, Mapping

from ..compliance.families import family_name
from ..models.compliance import ComplianceStat, Priority, Recommendation, RecommendationType
from ..models.finding import FindingStatus, ResolvedFinding, SeverityBucket
from .aggregator import normalize_status, severity_bucket

LOW_COMPLIANCE_THRESHOLD = 80.0
CRITICAL_COMPLIANCE_THRESHOLD = 50.0


def generate_recommendations(
    family_stats: Mapping[str, ComplianceStat],
    findings: Iterable[ResolvedFinding],
    low_threshold: float = LOW_COMPLIANCE_THRESHOLD,
    critical_threshold: float = CRITICAL_COMPLIANCE_THRESHOLD,
) -> list[Recommendation]:
    """Build the prioritized recommendation list.

    Order: low-compliance families (worst first, ties by family code),
    then open high/critical findings, then unreviewed findings.
    """
    low: list[tuple[float, str, Recommendation]] = []
    for family, stat in family_stats.items():
        if stat.total <= 0 or stat.compliance_percentage >= low_threshold:
            continue
        priority = Priority.HIGH if stat.compliance_percentage < critical_threshold else Priority.MEDIUM
        low.append((
            stat.compliance_percentage,
            family,
            Recommendation(
                type=RecommendationType.LOW_COMPLIANCE,
                priority=priority,
                family=family,
                count=stat.open,
                message=(
                    f"{family} ({family_name(family)}) is at {stat.compliance_percentage}% "
                    f"compliance ({stat.compliant} of {stat.total} findings compliant). "
                    f"Prioritize remediation of its {stat.open} open findings."
                ),
            ),
        ))
    low.sort(key=lambda item: (item[0], item[1]))

    recommendations = [rec for _, _, rec in low]

    open_high = 0
    not_reviewed = 0
    for finding in findings:
        status = normalize_status(finding.status)
        if status == FindingStatus.OPEN and severity_bucket(finding.severity) == SeverityBucket.HIGH:
            open_high += 1
        elif status == FindingStatus.NOT_REVIEWED:
            not_reviewed += 1

    if open_high > 0:
        recommendations.append(Recommendation(
            type=RecommendationType.HIGH_SEVERITY,
            priority=Priority.CRITICAL,
            count=open_high,
            message=(
                f"{open_high} high/critical severity findings are open. "
                f"Remediate these before anything else."
            ),
        ))

    if not_reviewed > 0:
        recommendations.append(Recommendation(
            type=RecommendationType.NOT_REVIEWED,
            priority=Priority.MEDIUM,
            count=not_reviewed,
            message=(
                f"{not_reviewed} findings have not been reviewed. "
                f"Complete the assessment for an accurate compliance picture."
            ),
        ))

    return recommendations
