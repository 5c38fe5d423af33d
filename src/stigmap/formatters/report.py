"""Compliance dashboard report generation (Markdown and JSON)."""

from __future__ import annotations

import json
from pathlib import Path

from .. import __version__
from ..compliance.families import family_name
from ..models.compliance import Analysis, ComplianceStat


def _stat_row(label: str, stat: ComplianceStat) -> str:
    return (
        f"| {label} | {stat.total} | {stat.open} | {stat.compliant} | "
        f"{stat.not_reviewed} | {stat.not_applicable} | {stat.compliance_percentage}% |"
    )


def generate_compliance_report(analysis: Analysis, title: str = "") -> str:
    """Generate the Markdown compliance dashboard for an analysis."""
    overall = analysis.overall

    lines: list[str] = []
    lines.append("# STIG Compliance Report")
    lines.append("")
    if title:
        lines.append(f"**Scope:** {title}")
    lines.append(f"**Date:** {analysis.timestamp}")
    lines.append(f"**Files:** {len(analysis.by_file)}")
    lines.append(f"**Compliance:** {overall.compliance_percentage}%")
    if analysis.include_not_applicable:
        lines.append("**Note:** Not_Applicable findings are counted as compliant")
    lines.append("")

    # Status summary
    lines.append("## Summary")
    lines.append("")
    lines.append("| Status | Count |")
    lines.append("|--------|-------|")
    lines.append(f"| Open | {overall.open} |")
    lines.append(f"| Not a Finding | {overall.compliant} |")
    lines.append(f"| Not Reviewed | {overall.not_reviewed} |")
    lines.append(f"| Not Applicable | {overall.not_applicable} |")
    lines.append(f"| **Total** | **{overall.total}** |")
    lines.append("")

    lines.append("## Severity")
    lines.append("")
    lines.append("| Severity | Count |")
    lines.append("|----------|-------|")
    lines.append(f"| HIGH (CAT I) | {overall.high} |")
    lines.append(f"| MEDIUM (CAT II) | {overall.medium} |")
    lines.append(f"| LOW (CAT III) | {overall.low} |")
    lines.append("")

    header = "| {} | Total | Open | Compliant | Not Reviewed | N/A | Compliance |"
    divider = "|---|-------|------|-----------|--------------|-----|------------|"

    if analysis.by_family:
        lines.append("## NIST 800-53 Control Families")
        lines.append("")
        lines.append(header.format("Family"))
        lines.append(divider)
        for code, stat in analysis.by_family.items():
            lines.append(_stat_row(f"{code} - {family_name(code)}", stat))
        lines.append("")

    if analysis.by_file:
        lines.append("## Checklists")
        lines.append("")
        lines.append(header.format("File"))
        lines.append(divider)
        for name, stat in analysis.by_file.items():
            lines.append(_stat_row(name, stat))
        lines.append("")

    lines.append("## Recommendations")
    lines.append("")
    if analysis.recommendations:
        for rec in analysis.recommendations:
            lines.append(f"- **[{rec.priority.value}] {rec.type.value}:** {rec.message}")
    else:
        lines.append("No recommendations. All families meet the compliance threshold.")
    lines.append("")

    lines.append("---")
    lines.append(f"*Generated by stigmap v{__version__} at {analysis.timestamp}*")

    return "\n".join(lines)


def export_analysis_json(analysis: Analysis, output_path: Path, include_findings: bool = False) -> Path:
    """Write an analysis to a JSON file (UTF-8, no BOM)."""
    exclude = None if include_findings else {"findings"}
    data = analysis.model_dump(mode="json", exclude=exclude)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(data, indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    return output_path
