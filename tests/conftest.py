"""Shared fixtures for stigmap tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from stigmap.core.config import get_effective_config
from stigmap.core.store import FindingStore
from stigmap.models.catalog import Catalog, CciEntry
from stigmap.models.finding import ResolvedFinding

SAMPLE_CCI_LIST = """<?xml version="1.0" encoding="utf-8"?>
<cci_list xmlns="http://iase.disa.mil/cci">
  <metadata>
    <version>2022-04-05</version>
  </metadata>
  <cci_items>
    <cci_item id="CCI-000015">
      <status>draft</status>
      <definition>The organization employs automated mechanisms to support account management.</definition>
      <type>policy</type>
      <references>
        <reference creator="NIST" title="NIST SP 800-53" version="3" location="http://csrc.nist.gov" index="AC-2 (1)" />
        <reference creator="NIST" title="NIST SP 800-53 Revision 4" version="4" location="http://csrc.nist.gov" index="AC-2 (1)" />
        <reference creator="NIST" title="NIST SP 800-53A" version="1" location="http://csrc.nist.gov" index="AC-2 (1).1" />
      </references>
    </cci_item>
    <cci_item id="CCI-000130">
      <definition>The information system generates audit records containing the type of event.</definition>
      <references>
        <reference creator="NIST" title="NIST SP 800-53 Revision 4" version="4" index="AU-3" />
        <reference creator="NIST" title="NIST SP 800-53 Revision 4" version="4" index="SC-7" />
      </references>
    </cci_item>
    <cci_item id="CCI-000366">
      <references>
        <reference creator="NIST" title="NIST SP 800-53 Revision 4" version="4" index="CM-6 b" />
      </references>
    </cci_item>
    <cci_item id="CCI-002000">
      <references>
        <reference creator="NIST" title="NIST SP 800-53A" version="1" index="AC-1.1" />
        <reference creator="NIST" title="NIST SP 800-53 Revision 4" version="4" index="" />
      </references>
    </cci_item>
  </cci_items>
</cci_list>
"""

SAMPLE_CKL = """<?xml version="1.0" encoding="UTF-8"?>
<!--DISA STIG Viewer :: 2.17-->
<CHECKLIST>
  <ASSET>
    <ROLE>None</ROLE>
    <HOST_NAME>web01</HOST_NAME>
  </ASSET>
  <STIGS>
    <iSTIG>
      <STIG_INFO>
        <SI_DATA><SID_NAME>version</SID_NAME><SID_DATA>2</SID_DATA></SI_DATA>
        <SI_DATA><SID_NAME>title</SID_NAME><SID_DATA>Red Hat Enterprise Linux 8 STIG</SID_DATA></SI_DATA>
        <SI_DATA><SID_NAME>releaseinfo</SID_NAME><SID_DATA>Release: 12 Benchmark Date: 24 Jul 2024</SID_DATA></SI_DATA>
      </STIG_INFO>
      <VULN>
        <STIG_DATA><VULN_ATTRIBUTE>Vuln_Num</VULN_ATTRIBUTE><ATTRIBUTE_DATA>V-230221</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Severity</VULN_ATTRIBUTE><ATTRIBUTE_DATA>high</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Rule_ID</VULN_ATTRIBUTE><ATTRIBUTE_DATA>SV-230221r743913_rule</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Rule_Ver</VULN_ATTRIBUTE><ATTRIBUTE_DATA>RHEL-08-010000</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Rule_Title</VULN_ATTRIBUTE><ATTRIBUTE_DATA>RHEL 8 must be a vendor-supported release.</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Vuln_Discuss</VULN_ATTRIBUTE><ATTRIBUTE_DATA>An operating system release is considered supported if &amp;lt;vendor&amp;gt; provides updates.</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Check_Content</VULN_ATTRIBUTE><ATTRIBUTE_DATA>cat /etc/redhat-release</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Fix_Text</VULN_ATTRIBUTE><ATTRIBUTE_DATA>Upgrade to a supported version.</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>CCI_REF</VULN_ATTRIBUTE><ATTRIBUTE_DATA>CCI-000366</ATTRIBUTE_DATA></STIG_DATA>
        <STATUS>Open</STATUS>
        <FINDING_DETAILS>Release is 8.2</FINDING_DETAILS>
        <COMMENTS></COMMENTS>
      </VULN>
      <VULN>
        <STIG_DATA><VULN_ATTRIBUTE>Vuln_Num</VULN_ATTRIBUTE><ATTRIBUTE_DATA>V-230222</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Severity</VULN_ATTRIBUTE><ATTRIBUTE_DATA>medium</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Rule_ID</VULN_ATTRIBUTE><ATTRIBUTE_DATA>SV-230222r627750_rule</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Rule_Title</VULN_ATTRIBUTE><ATTRIBUTE_DATA>Vendor packaged security patches must be installed.</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>CCI_REF</VULN_ATTRIBUTE><ATTRIBUTE_DATA>CCI-000015</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>CCI_REF</VULN_ATTRIBUTE><ATTRIBUTE_DATA>CCI-000130</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>CCI_REF</VULN_ATTRIBUTE><ATTRIBUTE_DATA>CCI-000015</ATTRIBUTE_DATA></STIG_DATA>
        <STATUS>NotAFinding</STATUS>
        <FINDING_DETAILS></FINDING_DETAILS>
        <COMMENTS>Verified by admin</COMMENTS>
      </VULN>
      <VULN>
        <STIG_DATA><VULN_ATTRIBUTE>Vuln_Num</VULN_ATTRIBUTE><ATTRIBUTE_DATA>V-230223</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Severity</VULN_ATTRIBUTE><ATTRIBUTE_DATA>low</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>Rule_ID</VULN_ATTRIBUTE><ATTRIBUTE_DATA>SV-230223r792855_rule</ATTRIBUTE_DATA></STIG_DATA>
        <STIG_DATA><VULN_ATTRIBUTE>CCI_REF</VULN_ATTRIBUTE><ATTRIBUTE_DATA>CCI-999999</ATTRIBUTE_DATA></STIG_DATA>
        <STATUS>Not_Reviewed</STATUS>
      </VULN>
    </iSTIG>
  </STIGS>
</CHECKLIST>
"""


def sample_cklb() -> dict:
    return {
        "title": "Windows Server 2019 STIG",
        "id": "6b0a2f4c-1d3e-4c5b-9a7f-0e8d2c4b6a1f",
        "target_data": {"host_name": "dc01"},
        "stigs": [
            {
                "stig_name": "Windows Server 2019 Security Technical Implementation Guide",
                "display_name": "Windows Server 2019",
                "version": "3",
                "release_info": "Release: 1 Benchmark Date: 01 Feb 2024",
                "rules": [
                    {
                        "group_id": "V-205625",
                        "rule_id": "SV-205625r569188_rule",
                        "rule_version": "WN19-00-000010",
                        "rule_title": "Passwords must be changed every 60 days.",
                        "severity": "medium",
                        "status": "not_a_finding",
                        "discussion": "Scheduled changes limit the usefulness of &amp;quot;stolen&amp;quot; passwords.",
                        "check_content": "Review the password policy.",
                        "fix_text": "Set the maximum password age to 60.",
                        "finding_details": "",
                        "comments": "",
                        "ccis": ["CCI-000015"],
                        "cci_ref": "CCI-000130, CCI-000015",
                    },
                    {
                        "group_id": "V-205626",
                        "rule_id": "SV-205626r569188_rule",
                        "rule_version": "WN19-00-000020",
                        "rule_title": "Audit records must contain the event type.",
                        "severity": "high",
                        "status": "open",
                        "cci": "CCI-000130",
                    },
                    {
                        "group_id": "V-205627",
                        "rule_id": "SV-205627r569188_rule",
                        "rule_title": "Unused accounts must be disabled.",
                        "severity": "low",
                        "status": "not_applicable",
                        "ccis": [],
                    },
                    "not a rule",
                ],
            }
        ],
    }


@pytest.fixture
def cci_list_xml() -> str:
    return SAMPLE_CCI_LIST


@pytest.fixture
def ckl_xml() -> str:
    return SAMPLE_CKL


@pytest.fixture
def cklb_json() -> str:
    return json.dumps(sample_cklb())


@pytest.fixture
def cci_list_file(tmp_path: Path) -> Path:
    path = tmp_path / "U_CCI_List.xml"
    path.write_text(SAMPLE_CCI_LIST, encoding="utf-8")
    return path


@pytest.fixture
def ckl_file(tmp_path: Path) -> Path:
    path = tmp_path / "rhel8.ckl"
    path.write_text(SAMPLE_CKL, encoding="utf-8")
    return path


@pytest.fixture
def cklb_file(tmp_path: Path) -> Path:
    path = tmp_path / "win2019.cklb"
    path.write_text(json.dumps(sample_cklb()), encoding="utf-8")
    return path


@pytest.fixture
def small_catalog() -> Catalog:
    """CCI-1 -> AC-2, CCI-2 -> AU-3."""
    return Catalog(entries={
        "CCI-1": CciEntry(cci_id="CCI-1", nist_controls=["AC-2"]),
        "CCI-2": CciEntry(cci_id="CCI-2", nist_controls=["AU-3"]),
    })


@pytest.fixture
def make_finding():
    def _make(status: str = "Open", severity: str = "medium", families=None, source_file: str = "a.ckl", **kw):
        families = list(families or [])
        return ResolvedFinding(
            group_id=kw.pop("group_id", "V-1"),
            status=status,
            severity=severity,
            families=families,
            nist_controls=[f"{f}-1" for f in families],
            source_file=source_file,
            **kw,
        )
    return _make


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    ws.mkdir()
    return ws


@pytest.fixture
def config(workspace: Path) -> dict:
    return get_effective_config(workspace)


@pytest.fixture
def store() -> FindingStore:
    s = FindingStore("sqlite:///:memory:")
    yield s
    s.close()
