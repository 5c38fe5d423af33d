"""Compliance aggregation over resolved findings.

Status buckets:
- Open -> open
- NotAFinding / Not_A_Finding -> compliant
- Not_Reviewed -> not_reviewed
- Not_Applicable -> not_applicable (compliant only when explicitly requested)
- anything else -> counted in total only

Status comparison ignores case and underscores/spaces/hyphens.
"""

from __future__ import annotations

import re
from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from ..models.compliance import AggregationScope, ComplianceStat
from ..models.finding import FindingStatus, ResolvedFinding, SeverityBucket

_STATUS_KEYS = {
    "open": FindingStatus.OPEN,
    "notafinding": FindingStatus.NOT_A_FINDING,
    "notreviewed": FindingStatus.NOT_REVIEWED,
    "notapplicable": FindingStatus.NOT_APPLICABLE,
}

_SEVERITY_KEYS = {
    "high": SeverityBucket.HIGH,
    "critical": SeverityBucket.HIGH,
    "medium": SeverityBucket.MEDIUM,
    "low": SeverityBucket.LOW,
}


def normalize_status(status: Optional[str]) -> Optional[FindingStatus]:
    """Map a free-text checklist status to a FindingStatus, or None."""
    if not status:
        return None
    key = re.sub(r"[\s_\-]", "", status).lower()
    return _STATUS_KEYS.get(key)


def severity_bucket(severity: Optional[str]) -> Optional[SeverityBucket]:
    """high/critical -> HIGH, medium -> MEDIUM, low -> LOW, else None."""
    if not severity:
        return None
    return _SEVERITY_KEYS.get(severity.strip().lower())


def compliance_percentage(compliant: int, total: int) -> float:
    """compliant / total * 100, rounded half-up to 2 places; 0 for no findings."""
    if total <= 0:
        return 0.0
    value = Decimal(compliant) * 100 / Decimal(total)
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def in_scope(finding: ResolvedFinding, scope: Optional[AggregationScope]) -> bool:
    if scope is None:
        return True
    if scope.family is not None and scope.family not in finding.families:
        return False
    if scope.source_file is not None and finding.source_file != scope.source_file:
        return False
    return True


def aggregate(
    findings: Iterable[ResolvedFinding],
    scope: Optional[AggregationScope] = None,
    include_not_applicable_as_compliant: bool = False,
) -> ComplianceStat:
    """Compute compliance statistics for the findings within scope.

    An empty input yields all-zero counts and 0% compliance.
    """
    counts = {
        "total": 0, "open": 0, "compliant": 0, "not_reviewed": 0,
        "not_applicable": 0, "high": 0, "medium": 0, "low": 0,
    }

    for finding in findings:
        if not in_scope(finding, scope):
            continue
        counts["total"] += 1

        status = normalize_status(finding.status)
        if status == FindingStatus.OPEN:
            counts["open"] += 1
        elif status == FindingStatus.NOT_A_FINDING:
            counts["compliant"] += 1
        elif status == FindingStatus.NOT_REVIEWED:
            counts["not_reviewed"] += 1
        elif status == FindingStatus.NOT_APPLICABLE:
            counts["not_applicable"] += 1
            if include_not_applicable_as_compliant:
                counts["compliant"] += 1

        bucket = severity_bucket(finding.severity)
        if bucket is not None:
            counts[bucket.value] += 1

    return ComplianceStat(
        family=scope.family if scope else None,
        source_file=scope.source_file if scope else None,
        compliance_percentage=compliance_percentage(counts["compliant"], counts["total"]),
        **counts,
    )


def aggregate_by_family(
    findings: Iterable[ResolvedFinding],
    source_file: Optional[str] = None,
    include_not_applicable_as_compliant: bool = False,
) -> dict[str, ComplianceStat]:
    """One ComplianceStat per control family, keyed by sorted family code.

    A finding counts once in every family it maps to, so a finding with
    two families contributes to both totals.
    """
    grouped: dict[str, list[ResolvedFinding]] = defaultdict(list)
    for finding in findings:
        for family in finding.families:
            grouped[family].append(finding)

    return {
        family: aggregate(
            grouped[family],
            AggregationScope(family=family, source_file=source_file),
            include_not_applicable_as_compliant,
        )
        for family in sorted(grouped)
    }


def aggregate_by_file(
    findings: Iterable[ResolvedFinding],
    include_not_applicable_as_compliant: bool = False,
) -> dict[str, ComplianceStat]:
    """One ComplianceStat per source file, keyed by sorted file name."""
    grouped: dict[str, list[ResolvedFinding]] = defaultdict(list)
    for finding in findings:
        grouped[finding.source_file].append(finding)

    return {
        name: aggregate(
            grouped[name],
            AggregationScope(source_file=name),
            include_not_applicable_as_compliant,
        )
        for name in sorted(grouped)
    }
