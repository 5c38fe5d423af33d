"""Import and analysis pipeline.

Ties the catalog loader, extractor, resolver and aggregator to the store.
Files are processed one at a time.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel
from xlsxwriter.exceptions import XlsxWriterException

from ..compliance.loader import load_catalog_file
from ..compliance.mapping import missing_references, resolve_finding
from ..formatters.excel import export_excel
from ..formatters.report import export_analysis_json, generate_compliance_report
from ..models.catalog import Catalog
from ..models.compliance import Analysis
from ..models.finding import ChecklistFormat, ResolvedFinding
from .aggregator import aggregate, aggregate_by_family, aggregate_by_file
from .config import resolve_path
from .errors import ExportError
from .extractor import parse_checklist, read_checklist, release_date
from .recommendations import generate_recommendations
from .store import FindingStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class ImportResult(BaseModel):
    file_id: int
    file_name: str
    file_type: ChecklistFormat
    stig_title: str
    stig_version: Optional[str] = None
    finding_count: int
    skipped: int = 0
    missing_ccis: list[str] = []
    processing_status: str = "Imported"


# report format -> (export type recorded in the history, file extension)
EXPORT_TYPES = {
    "markdown": ("Markdown", "md"),
    "json": ("JSON", "json"),
    "excel": ("Excel", "xlsx"),
}


def import_catalog(path: Path, store: FindingStore, config: dict) -> Catalog:
    """Parse a CCI list and replace the stored catalog with it.

    A parse failure leaves the stored catalog untouched. Findings already
    in the store are re-resolved against the new catalog.
    """
    reference_title = config["catalog"]["reference_title"]
    catalog = load_catalog_file(path, reference_title=reference_title)
    count = store.replace_catalog(catalog)
    logger.info("Imported %d CCI mappings from %s", count, path.name)
    remapped = store.remap_findings(catalog)
    if remapped:
        logger.info("Re-mapped %d stored findings to the new catalog", remapped)
    return catalog


def import_checklist(
    path: Path,
    store: FindingStore,
    catalog: Catalog,
    config: dict,
    progress: Optional[ProgressCallback] = None,
) -> ImportResult:
    """Extract, resolve and persist one checklist file."""
    fmt, content = read_checklist(path)
    document = parse_checklist(content, fmt, source_file=path.name)
    raw = document.findings

    interval = max(1, int(config["import"].get("progress_interval", 10)))
    resolved: list[ResolvedFinding] = []
    for index, finding in enumerate(raw, start=1):
        resolved.append(resolve_finding(finding, catalog))
        if progress and (index % interval == 0 or index == len(raw)):
            progress(index, len(raw))

    missing = missing_references(raw, catalog)
    if missing:
        logger.info(
            "%s: %d CCI references have no catalog mapping", path.name, len(missing)
        )
        logger.debug("Unmapped CCIs in %s: %s", path.name, ", ".join(missing))

    status = "Imported (warnings)" if missing or document.skipped else "Imported"
    file_id = store.add_checklist(
        file_name=path.name,
        file_type=fmt.value,
        stig_title=document.stig_title,
        findings=resolved,
        file_path=str(path),
        stig_version=document.stig_version,
        release_info=document.release_info,
        release_date=release_date(document.release_info),
        file_size=len(content),
        processing_status=status,
    )
    logger.info("Imported %d findings from %s (file_id=%d)", len(resolved), path.name, file_id)

    return ImportResult(
        file_id=file_id,
        file_name=path.name,
        file_type=fmt,
        stig_title=document.stig_title,
        stig_version=document.stig_version,
        finding_count=len(resolved),
        skipped=document.skipped,
        missing_ccis=missing,
        processing_status=status,
    )


def analyze(
    store: FindingStore,
    config: dict,
    file_id: Optional[int] = None,
    include_not_applicable: Optional[bool] = None,
) -> Analysis:
    """Aggregate stored findings and refresh the cached snapshots.

    Snapshots for the analysed scope are deleted and re-inserted, never
    updated in place.
    """
    compliance = config["compliance"]
    if include_not_applicable is None:
        include_not_applicable = bool(compliance.get("include_not_applicable_as_compliant", False))

    findings = store.query_findings(file_id=file_id)

    overall = aggregate(findings, include_not_applicable_as_compliant=include_not_applicable)
    by_family = aggregate_by_family(findings, include_not_applicable_as_compliant=include_not_applicable)
    by_file = aggregate_by_file(findings, include_not_applicable_as_compliant=include_not_applicable)

    recommendations = generate_recommendations(
        by_family,
        findings,
        low_threshold=float(compliance.get("low_compliance_threshold", 80)),
        critical_threshold=float(compliance.get("critical_compliance_threshold", 50)),
    )

    snapshots = [("Compliance", overall)]
    snapshots.extend(("Family", stat) for stat in by_family.values())
    snapshots.extend(("File", stat) for stat in by_file.values())
    store.replace_snapshots(snapshots, file_id=file_id)

    logger.debug(
        "Analysed %d findings: %d families, %d files, %d recommendations",
        len(findings), len(by_family), len(by_file), len(recommendations),
    )

    return Analysis(
        timestamp=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        file_id=file_id,
        include_not_applicable=include_not_applicable,
        overall=overall,
        by_family=by_family,
        by_file=by_file,
        recommendations=recommendations,
        findings=findings,
    )


def default_report_path(config: dict, fmt: str) -> Path:
    _, extension = EXPORT_TYPES[fmt]
    return resolve_path(config, config["output"]["directory"]) / f"STIG-COMPLIANCE-REPORT.{extension}"


def export_report(
    analysis: Analysis,
    store: FindingStore,
    fmt: str,
    output_path: Path,
    title: str = "",
) -> Path:
    """Write an analysis as a Markdown, JSON or Excel report.

    Every attempt is recorded in the store's export history, failures
    included. A write failure is recorded and then raised as ExportError.
    """
    export_type, _ = EXPORT_TYPES[fmt]
    record_count = len(analysis.findings)
    try:
        if fmt == "excel":
            export_excel(analysis, output_path)
        elif fmt == "json":
            export_analysis_json(analysis, output_path, include_findings=True)
        else:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(generate_compliance_report(analysis, title=title), encoding="utf-8")
    except (OSError, XlsxWriterException) as e:
        reason = getattr(e, "strerror", None) or str(e)
        store.record_export(export_type, str(output_path), record_count, status="Failed", error_message=reason)
        logger.error("%s export to %s failed: %s", export_type, output_path, reason)
        raise ExportError(str(output_path), reason) from e

    store.record_export(export_type, str(output_path), record_count)
    logger.info("Wrote %s report with %d findings to %s", export_type, record_count, output_path)
    return output_path
