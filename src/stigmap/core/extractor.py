"""Checklist finding extraction.

Reads STIG Viewer checklists in both formats into ChecklistDocuments:

- CKL: XML, attributes as VULN_ATTRIBUTE/ATTRIBUTE_DATA pairs per VULN.
  CCI_REF values are kept as listed, duplicates included.
- CKLB: JSON, attributes as named fields per rule. The three CCI fields
  are unioned and de-duplicated in first-seen order.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional, Union
from xml.etree.ElementTree import Element

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DET

from ..models.finding import ChecklistDocument, ChecklistFormat, RawFinding
from ..utils.text import clean_text, local_name, optional_text
from .errors import ParseError

logger = logging.getLogger(__name__)

# CKL STIG_DATA attribute -> RawFinding field
CKL_ATTRIBUTES = {
    "Vuln_Num": "group_id",
    "Rule_ID": "rule_id",
    "Rule_Ver": "rule_version",
    "Rule_Title": "title",
    "Severity": "severity",
    "Vuln_Discuss": "discussion",
    "Check_Content": "check_content",
    "Fix_Text": "fix_text",
}

# CKLB rules carry CCI references under any of these keys
CKLB_CCI_FIELDS = ("ccis", "cci_ref", "cci")

CKLB_TEXT_FIELDS = ("discussion", "check_content", "fix_text", "finding_details", "comments")

_CCI_SPLIT = re.compile(r"[,;\s]+")

# releaseinfo reads like "Release: 12 Benchmark Date: 24 Jul 2024"
_BENCHMARK_DATE = re.compile(r"Benchmark Date:\s*(\d{1,2} [A-Za-z]{3,9} \d{4})")


def _dedupe(values: list[str]) -> list[str]:
    """Drop duplicates, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def release_date(release_info: Optional[str]) -> Optional[date]:
    """Benchmark date from a STIG release string, or None if absent."""
    match = _BENCHMARK_DATE.search(release_info or "")
    if not match:
        return None
    for fmt in ("%d %b %Y", "%d %B %Y"):
        try:
            return datetime.strptime(match.group(1), fmt).date()
        except ValueError:
            continue
    return None


class CklExtractor:
    """Format A: STIG Viewer .ckl XML."""

    format = ChecklistFormat.CKL

    def parse(self, content: Union[str, bytes], source_file: str = "") -> ChecklistDocument:
        try:
            root = DET.fromstring(content)
        except (DET.ParseError, DefusedXmlException) as e:
            raise ParseError(source_file, f"invalid CKL XML ({e})") from e

        if local_name(root.tag) != "CHECKLIST":
            raise ParseError(source_file, "missing CHECKLIST root element")
        stigs = self._child(root, "STIGS")
        if stigs is None:
            raise ParseError(source_file, "missing STIGS element")

        istigs = [n for n in stigs if local_name(n.tag) == "iSTIG"]
        info = self._stig_info(istigs[0]) if istigs else {}
        stig_name = info.get("title", "")

        findings = [
            self._finding(vuln, source_file, stig_name)
            for istig in istigs
            for vuln in istig
            if local_name(vuln.tag) == "VULN"
        ]
        return ChecklistDocument(
            format=self.format,
            stig_title=stig_name,
            stig_version=info.get("version") or None,
            release_info=info.get("releaseinfo") or None,
            findings=findings,
        )

    def extract(self, content: Union[str, bytes], source_file: str = "") -> list[RawFinding]:
        return self.parse(content, source_file).findings

    @staticmethod
    def _child(element: Element, name: str) -> Optional[Element]:
        for child in element:
            if local_name(child.tag) == name:
                return child
        return None

    def _stig_info(self, istig: Element) -> dict[str, str]:
        """SID_NAME -> SID_DATA pairs of an iSTIG's STIG_INFO block."""
        info: dict[str, str] = {}
        block = self._child(istig, "STIG_INFO")
        if block is None:
            return info
        for si_data in block:
            if local_name(si_data.tag) != "SI_DATA":
                continue
            name = self._child(si_data, "SID_NAME")
            data = self._child(si_data, "SID_DATA")
            if name is not None and data is not None:
                info[(name.text or "").strip()] = clean_text(data.text).strip()
        return info

    def _child_text(self, element: Element, name: str) -> Optional[str]:
        child = self._child(element, name)
        return optional_text(child.text) if child is not None else None

    def _finding(self, vuln: Element, source_file: str, stig_name: str) -> RawFinding:
        fields: dict[str, Any] = {}
        ccis: list[str] = []

        # Linear scan; a repeated attribute overwrites the earlier value
        for stig_data in vuln:
            if local_name(stig_data.tag) != "STIG_DATA":
                continue
            attr_node = self._child(stig_data, "VULN_ATTRIBUTE")
            data_node = self._child(stig_data, "ATTRIBUTE_DATA")
            if attr_node is None:
                continue
            attr = (attr_node.text or "").strip()
            value = data_node.text if data_node is not None else None
            if attr == "CCI_REF":
                if value and value.strip():
                    ccis.append(value.strip())
            elif attr in CKL_ATTRIBUTES:
                fields[CKL_ATTRIBUTES[attr]] = value

        return RawFinding(
            group_id=clean_text(fields.get("group_id")).strip(),
            rule_id=clean_text(fields.get("rule_id")).strip(),
            rule_version=optional_text(fields.get("rule_version")),
            title=clean_text(fields.get("title")).strip(),
            severity=clean_text(fields.get("severity")).strip(),
            status=clean_text(self._child_text(vuln, "STATUS")).strip(),
            discussion=optional_text(fields.get("discussion")),
            check_content=optional_text(fields.get("check_content")),
            fix_text=optional_text(fields.get("fix_text")),
            finding_details=self._child_text(vuln, "FINDING_DETAILS"),
            comments=self._child_text(vuln, "COMMENTS"),
            cci_references=ccis,
            source_file=source_file,
            stig_name=stig_name,
        )


class CklbExtractor:
    """Format B: STIG Viewer 3 .cklb JSON."""

    format = ChecklistFormat.CKLB

    def parse(self, content: Union[str, bytes], source_file: str = "") -> ChecklistDocument:
        try:
            data = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(source_file, f"invalid CKLB JSON ({e})") from e

        if not isinstance(data, dict):
            raise ParseError(source_file, "CKLB document is not a JSON object")
        stigs = data.get("stigs")
        if not isinstance(stigs, list):
            raise ParseError(source_file, "missing stigs list")

        first = stigs[0] if stigs and isinstance(stigs[0], dict) else {}
        stig_name = clean_text(data.get("title")).strip()
        if not stig_name:
            stig_name = clean_text(first.get("display_name") or first.get("stig_name")).strip()

        findings: list[RawFinding] = []
        skipped = 0
        for position, stig in enumerate(stigs, start=1):
            if not isinstance(stig, dict):
                logger.warning("Skipping malformed stig entry #%d in %s", position, source_file)
                skipped += 1
                continue
            rules = stig.get("rules") or stig.get("vulns") or []
            if not isinstance(rules, list):
                logger.warning(
                    "Skipping stig entry #%d in %s: rules is %s, not a list",
                    position, source_file, type(rules).__name__,
                )
                skipped += 1
                continue
            for index, rule in enumerate(rules, start=1):
                if not isinstance(rule, dict):
                    logger.warning("Skipping malformed rule #%d in %s", index, source_file)
                    skipped += 1
                    continue
                findings.append(self._finding(rule, source_file, stig_name))

        return ChecklistDocument(
            format=self.format,
            stig_title=stig_name,
            stig_version=optional_text(first.get("version")),
            release_info=optional_text(first.get("release_info")),
            findings=findings,
            skipped=skipped,
        )

    def extract(self, content: Union[str, bytes], source_file: str = "") -> list[RawFinding]:
        return self.parse(content, source_file).findings

    @staticmethod
    def _cci_values(value: Any) -> list[str]:
        if not value:
            return []
        if isinstance(value, str):
            return [v for v in _CCI_SPLIT.split(value.strip()) if v]
        if isinstance(value, (list, tuple)):
            result: list[str] = []
            for item in value:
                if item is not None and str(item).strip():
                    result.append(str(item).strip())
            return result
        return [str(value).strip()]

    def _finding(self, rule: dict, source_file: str, stig_name: str) -> RawFinding:
        ccis: list[str] = []
        for field in CKLB_CCI_FIELDS:
            ccis.extend(self._cci_values(rule.get(field)))

        text = {field: optional_text(rule.get(field)) for field in CKLB_TEXT_FIELDS}

        return RawFinding(
            group_id=clean_text(rule.get("group_id")).strip(),
            rule_id=clean_text(rule.get("rule_id")).strip(),
            rule_version=optional_text(rule.get("rule_version")),
            title=clean_text(rule.get("rule_title")).strip(),
            severity=clean_text(rule.get("severity")).strip(),
            status=clean_text(rule.get("status")).strip(),
            cci_references=_dedupe(ccis),
            source_file=source_file,
            stig_name=stig_name,
            **text,
        )


EXTRACTORS = {
    ChecklistFormat.CKL: CklExtractor(),
    ChecklistFormat.CKLB: CklbExtractor(),
}


def detect_format(path: Path, content: Union[str, bytes, None] = None) -> ChecklistFormat:
    """Pick a checklist format by extension, then by sniffing the content."""
    ext = path.suffix.lower()
    if ext == ".cklb":
        return ChecklistFormat.CKLB
    if ext == ".ckl":
        return ChecklistFormat.CKL

    if content is not None:
        head = content[:64]
        if isinstance(head, bytes):
            head = head.decode("utf-8-sig", errors="ignore")
        if head.lstrip().startswith("{"):
            return ChecklistFormat.CKLB
        if head.lstrip().startswith("<"):
            return ChecklistFormat.CKL

    raise ParseError(str(path), "unrecognized checklist format (expected .ckl or .cklb)")


def parse_checklist(
    content: Union[str, bytes],
    fmt: ChecklistFormat,
    source_file: str = "",
) -> ChecklistDocument:
    """Parse checklist content of a known format, keeping file-level metadata."""
    return EXTRACTORS[ChecklistFormat(fmt)].parse(content, source_file)


def extract(
    content: Union[str, bytes],
    fmt: ChecklistFormat,
    source_file: str = "",
) -> list[RawFinding]:
    """Extract raw findings from checklist content of a known format."""
    return parse_checklist(content, fmt, source_file).findings


def read_checklist(path: Path, fmt: Optional[ChecklistFormat] = None) -> tuple[ChecklistFormat, bytes]:
    """Read a checklist file and determine its format."""
    try:
        content = path.read_bytes()
    except OSError as e:
        raise ParseError(str(path), f"cannot read file ({e.strerror or e})") from e

    if fmt is None:
        fmt = detect_format(path, content)
    if fmt == ChecklistFormat.CKLB and content.startswith(b"\xef\xbb\xbf"):
        content = content[3:]
    return fmt, content


def extract_file(path: Path, fmt: Optional[ChecklistFormat] = None) -> list[RawFinding]:
    """Read a checklist file and extract its findings.

    The file name (not the full path) is recorded as each finding's
    source_file.
    """
    fmt, content = read_checklist(path, fmt)
    return extract(content, fmt, source_file=path.name)
