"""Checklist finding data models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class FindingStatus(str, Enum):
    OPEN = "Open"
    NOT_A_FINDING = "NotAFinding"
    NOT_REVIEWED = "Not_Reviewed"
    NOT_APPLICABLE = "Not_Applicable"


class SeverityBucket(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ChecklistFormat(str, Enum):
    CKL = "CKL"
    CKLB = "CKLB"


class RawFinding(BaseModel):
    """One checklist entry as read from a source file.

    Severity and status are kept exactly as they appeared in the file.
    """

    group_id: str = ""
    rule_id: str = ""
    rule_version: Optional[str] = None
    title: str = ""
    severity: str = ""
    status: str = ""
    discussion: Optional[str] = None
    check_content: Optional[str] = None
    fix_text: Optional[str] = None
    finding_details: Optional[str] = None
    comments: Optional[str] = None
    cci_references: list[str] = []
    source_file: str = ""
    stig_name: str = ""


class ResolvedFinding(RawFinding):
    """A finding with its CCI references resolved to NIST controls."""

    nist_controls: list[str] = []
    families: list[str] = []


class ChecklistDocument(BaseModel):
    """A parsed checklist: file-level STIG metadata plus its findings.

    skipped counts entries that were not finding objects and were left out.
    """

    format: ChecklistFormat
    stig_title: str = ""
    stig_version: Optional[str] = None
    release_info: Optional[str] = None
    findings: list[RawFinding] = []
    skipped: int = 0
