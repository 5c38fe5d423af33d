"""Excel workbook export."""

from __future__ import annotations

from pathlib import Path

import xlsxwriter

from ..compliance.families import family_name
from ..models.compliance import Analysis, ComplianceStat

STAT_HEADERS = [
    "Total", "Open", "Compliant", "Not Reviewed", "Not Applicable",
    "High", "Medium", "Low", "Compliance %",
]

FINDING_HEADERS = [
    "File", "STIG", "Group ID", "Rule ID", "Rule Version", "Title", "Severity",
    "Status", "CCI References", "NIST Controls", "Families", "Finding Details", "Comments",
]


def _stat_values(stat: ComplianceStat) -> list:
    return [
        stat.total, stat.open, stat.compliant, stat.not_reviewed, stat.not_applicable,
        stat.high, stat.medium, stat.low, stat.compliance_percentage / 100,
    ]


def export_excel(analysis: Analysis, output_path: Path) -> dict:
    """Write an analysis to an .xlsx workbook.

    Sheets: Summary, Families, Files, Findings, Recommendations.

    Returns:
        Dict with: path, families, files, findings, recommendations.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    workbook = xlsxwriter.Workbook(str(output_path))
    try:
        bold = workbook.add_format({"bold": True})
        header = workbook.add_format({"bold": True, "bg_color": "#D9E1F2", "border": 1})
        pct = workbook.add_format({"num_format": "0.00%"})
        wrap = workbook.add_format({"text_wrap": True, "valign": "top", "font_size": 9})

        # Summary
        summary = workbook.add_worksheet("Summary")
        summary.set_column(0, 0, 24)
        summary.set_column(1, 1, 16)
        summary.write(0, 0, "STIG Compliance Summary", bold)
        summary.write(1, 0, "Generated")
        summary.write(1, 1, analysis.timestamp)
        for row, (label, value) in enumerate(
            zip(STAT_HEADERS, _stat_values(analysis.overall)), start=3
        ):
            summary.write(row, 0, label, bold)
            summary.write(row, 1, value, pct if label == "Compliance %" else None)

        def write_stats(name: str, first_col: str, rows: dict[str, ComplianceStat], labels) -> None:
            sheet = workbook.add_worksheet(name)
            sheet.set_column(0, 0, 40)
            sheet.set_column(1, len(STAT_HEADERS), 14)
            sheet.write_row(0, 0, [first_col] + STAT_HEADERS, header)
            for r, (key, stat) in enumerate(rows.items(), start=1):
                sheet.write(r, 0, labels(key))
                values = _stat_values(stat)
                sheet.write_row(r, 1, values[:-1])
                sheet.write(r, len(values), values[-1], pct)
            sheet.freeze_panes(1, 1)

        write_stats("Families", "Family", analysis.by_family, lambda c: f"{c} - {family_name(c)}")
        write_stats("Files", "File", analysis.by_file, lambda n: n)

        # Findings
        findings = workbook.add_worksheet("Findings")
        findings.set_column(0, len(FINDING_HEADERS) - 1, 18)
        findings.set_column(5, 5, 50)
        findings.write_row(0, 0, FINDING_HEADERS, header)
        for r, f in enumerate(analysis.findings, start=1):
            findings.write_row(r, 0, [
                f.source_file, f.stig_name, f.group_id, f.rule_id, f.rule_version or "",
                f.title, f.severity, f.status, ", ".join(f.cci_references),
                ", ".join(f.nist_controls), ", ".join(f.families),
                f.finding_details or "", f.comments or "",
            ], wrap)
        if analysis.findings:
            findings.autofilter(0, 0, len(analysis.findings), len(FINDING_HEADERS) - 1)
        findings.freeze_panes(1, 0)

        # Recommendations
        recs = workbook.add_worksheet("Recommendations")
        recs.set_column(0, 1, 16)
        recs.set_column(2, 2, 10)
        recs.set_column(3, 3, 100)
        recs.write_row(0, 0, ["Priority", "Type", "Family", "Message"], header)
        for r, rec in enumerate(analysis.recommendations, start=1):
            recs.write_row(r, 0, [rec.priority.value, rec.type.value, rec.family or "", rec.message])
    finally:
        workbook.close()

    return {
        "path": str(output_path),
        "families": len(analysis.by_family),
        "files": len(analysis.by_file),
        "findings": len(analysis.findings),
        "recommendations": len(analysis.recommendations),
    }
