"""Control resolution: CCI references -> NIST SP 800-53 controls and families."""

from __future__ import annotations

from typing import Iterable

from ..models.catalog import Catalog
from ..models.finding import RawFinding, ResolvedFinding
from .families import derive_families


def resolve_controls(cci_references: Iterable[str], catalog: Catalog) -> list[str]:
    """Union of the NIST controls for every known CCI, sorted.

    CCIs missing from the catalog contribute nothing.
    """
    controls: set[str] = set()
    for cci_id in cci_references:
        entry = catalog.get(cci_id)
        if entry is not None:
            controls.update(entry.nist_controls)
    return sorted(controls)


def resolve_finding(finding: RawFinding, catalog: Catalog) -> ResolvedFinding:
    """Resolve one finding against a catalog.

    Pure and idempotent: a ResolvedFinding passed back in is resolved from
    its cci_references again, giving the same controls and families.
    """
    controls = resolve_controls(finding.cci_references, catalog)
    data = finding.model_dump(exclude={"nist_controls", "families"})
    return ResolvedFinding(
        **data,
        nist_controls=controls,
        families=derive_families(controls),
    )


def resolve_findings(findings: Iterable[RawFinding], catalog: Catalog) -> list[ResolvedFinding]:
    return [resolve_finding(f, catalog) for f in findings]


def missing_references(findings: Iterable[RawFinding], catalog: Catalog) -> list[str]:
    """Sorted CCI IDs referenced by findings but absent from the catalog."""
    missing: set[str] = set()
    for finding in findings:
        for cci_id in finding.cci_references:
            if cci_id not in catalog:
                missing.add(cci_id)
    return sorted(missing)
