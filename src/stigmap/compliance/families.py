"""NIST SP 800-53 control family reference data and family derivation."""

from __future__ import annotations

import re
from typing import Iterable, Optional

# Leading 2-3 uppercase letters followed by a hyphen: "AC-2(1)" -> "AC"
FAMILY_PATTERN = re.compile(r"^([A-Z]{2,3})-")

NIST_FAMILIES: dict[str, str] = {
    "AC": "Access Control",
    "AT": "Awareness and Training",
    "AU": "Audit and Accountability",
    "CA": "Security Assessment and Authorization",
    "CM": "Configuration Management",
    "CP": "Contingency Planning",
    "IA": "Identification and Authentication",
    "IR": "Incident Response",
    "MA": "Maintenance",
    "MP": "Media Protection",
    "PE": "Physical and Environmental Protection",
    "PL": "Planning",
    "PS": "Personnel Security",
    "RA": "Risk Assessment",
    "SA": "System and Services Acquisition",
    "SC": "System and Communications Protection",
    "SI": "System and Information Integrity",
    "PM": "Program Management",
}


def derive_family(control_id: str) -> Optional[str]:
    """Return the family code of a control identifier, or None.

    Controls without a hyphen or without a leading uppercase prefix
    have no family.
    """
    m = FAMILY_PATTERN.match(control_id or "")
    return m.group(1) if m else None


def derive_families(control_ids: Iterable[str]) -> list[str]:
    """Sorted, deduplicated family codes for a collection of controls."""
    families: set[str] = set()
    for control_id in control_ids:
        family = derive_family(control_id)
        if family:
            families.add(family)
    return sorted(families)


def family_name(code: str) -> str:
    """Human-readable family name; unknown codes are returned as-is."""
    return NIST_FAMILIES.get(code, code)
