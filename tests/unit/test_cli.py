"""Tests for CLI entry points."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from stigmap.cli.main import stigmap_cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _invoke(runner: CliRunner, workspace: Path, *args: str):
    return runner.invoke(stigmap_cli, ["-w", str(workspace), *args])


class TestInit:
    def test_creates_workspace(self, runner: CliRunner, workspace: Path):
        result = _invoke(runner, workspace, "init")
        assert result.exit_code == 0
        assert (workspace / ".stigmap" / "config.yaml").exists()
        assert "Initialized" in result.output


class TestImport:
    def test_catalog_then_checklists(
        self, runner: CliRunner, workspace: Path, cci_list_file: Path, ckl_file: Path, cklb_file: Path,
    ):
        result = _invoke(runner, workspace, "import-catalog", str(cci_list_file))
        assert result.exit_code == 0
        assert "3 CCI mappings" in result.output

        result = _invoke(runner, workspace, "import", str(ckl_file), str(cklb_file))
        assert result.exit_code == 0
        assert "rhel8.ckl: 3 findings" in result.output
        assert "1 unmapped CCIs" in result.output
        assert "win2019.cklb: 3 findings" in result.output

        result = _invoke(runner, workspace, "files")
        assert result.exit_code == 0
        assert "rhel8.ckl" in result.output
        assert "win2019.cklb" in result.output

    def test_bad_catalog(self, runner: CliRunner, workspace: Path, tmp_path: Path):
        bad = tmp_path / "bad.xml"
        bad.write_text("<nope", encoding="utf-8")
        result = _invoke(runner, workspace, "import-catalog", str(bad))
        assert result.exit_code == 1
        assert "ERROR" in result.output

    def test_warns_without_catalog(self, runner: CliRunner, workspace: Path, ckl_file: Path):
        result = _invoke(runner, workspace, "import", str(ckl_file))
        assert result.exit_code == 0
        assert "No CCI catalog loaded" in result.output

    def test_failing_file_does_not_stop_others(
        self, runner: CliRunner, workspace: Path, ckl_file: Path, tmp_path: Path,
    ):
        bad = tmp_path / "broken.ckl"
        bad.write_text("<CHECKLIST>", encoding="utf-8")
        result = _invoke(runner, workspace, "import", str(bad), str(ckl_file))
        assert result.exit_code == 1
        assert "FAILED" in result.output
        assert "rhel8.ckl: 3 findings" in result.output

    def test_cklb_with_non_list_rules_does_not_stop_others(
        self, runner: CliRunner, workspace: Path, cklb_file: Path, tmp_path: Path,
    ):
        odd = tmp_path / "bad.cklb"
        odd.write_text(json.dumps({"title": "T", "stigs": [{"rules": 5}]}), encoding="utf-8")
        result = _invoke(runner, workspace, "import", str(odd), str(cklb_file))
        assert result.exit_code == 0
        assert "FAILED" not in result.output
        assert "bad.cklb: 0 findings" in result.output
        assert "win2019.cklb: 3 findings" in result.output

    def test_requires_files(self, runner: CliRunner, workspace: Path):
        result = _invoke(runner, workspace, "import")
        assert result.exit_code == 2


class TestAnalyzeAndReport:
    @pytest.fixture
    def populated(self, runner: CliRunner, workspace: Path, cci_list_file: Path, ckl_file: Path, cklb_file: Path):
        _invoke(runner, workspace, "import-catalog", str(cci_list_file))
        _invoke(runner, workspace, "import", str(ckl_file), str(cklb_file))
        return workspace

    def test_analyze(self, runner: CliRunner, populated: Path):
        result = _invoke(runner, populated, "analyze")
        assert result.exit_code == 0
        assert "33.33%" in result.output
        assert "Control families" in result.output

    def test_analyze_include_na(self, runner: CliRunner, populated: Path):
        result = runner.invoke(stigmap_cli, ["-w", str(populated), "--include-na", "analyze"])
        assert result.exit_code == 0
        assert "50.0%" in result.output

    def test_analyze_single_file(self, runner: CliRunner, populated: Path):
        result = _invoke(runner, populated, "analyze", "--file-id", "1")
        assert result.exit_code == 0
        assert "Findings: 3" in result.output

    def test_markdown_report_default_path(self, runner: CliRunner, populated: Path):
        result = _invoke(runner, populated, "report")
        assert result.exit_code == 0
        path = populated / ".stigmap" / "reports" / "STIG-COMPLIANCE-REPORT.md"
        assert path.exists()
        assert "# STIG Compliance Report" in path.read_text(encoding="utf-8")

    def test_json_report(self, runner: CliRunner, populated: Path, tmp_path: Path):
        out = tmp_path / "report.json"
        result = _invoke(runner, populated, "report", "-f", "json", "-o", str(out))
        assert result.exit_code == 0
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["overall"]["total"] == 6
        assert len(data["findings"]) == 6

    def test_excel_report(self, runner: CliRunner, populated: Path, tmp_path: Path):
        out = tmp_path / "report.xlsx"
        result = _invoke(runner, populated, "report", "-f", "excel", "-o", str(out))
        assert result.exit_code == 0
        assert out.exists()

    def test_format_from_config(self, runner: CliRunner, populated: Path):
        (populated / ".stigmap" / "config.yaml").write_text("output:\n  format: json\n", encoding="utf-8")
        result = _invoke(runner, populated, "report")
        assert result.exit_code == 0
        assert (populated / ".stigmap" / "reports" / "STIG-COMPLIANCE-REPORT.json").exists()

    def test_invalid_format(self, runner: CliRunner, populated: Path):
        result = _invoke(runner, populated, "report", "-f", "pdf")
        assert result.exit_code == 2

    def test_unwritable_report_path(self, runner: CliRunner, populated: Path, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        result = _invoke(runner, populated, "report", "-o", str(blocker / "report.md"))
        assert result.exit_code == 1
        assert "ERROR" in result.output
        assert "Traceback" not in result.output

    def test_export_history(self, runner: CliRunner, populated: Path, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        _invoke(runner, populated, "report")
        _invoke(runner, populated, "report", "-o", str(blocker / "report.md"))

        result = _invoke(runner, populated, "exports")
        assert result.exit_code == 0
        assert "Markdown" in result.output
        assert "Success" in result.output
        assert "Failed" in result.output


class TestBrokenDatabase:
    @pytest.fixture
    def broken(self, workspace: Path) -> Path:
        (workspace / "dbdir").mkdir()
        (workspace / ".stigmap").mkdir()
        (workspace / ".stigmap" / "config.yaml").write_text("database:\n  path: dbdir\n", encoding="utf-8")
        return workspace

    @pytest.mark.parametrize("command", [["files"], ["analyze"], ["report"], ["exports"]])
    def test_reports_error(self, runner: CliRunner, broken: Path, command: list[str]):
        result = _invoke(runner, broken, *command)
        assert result.exit_code == 1
        assert "ERROR" in result.output
        assert "Cannot open database" in result.output

    def test_import_reports_error(self, runner: CliRunner, broken: Path, ckl_file: Path):
        result = _invoke(runner, broken, "import", str(ckl_file))
        assert result.exit_code == 1
        assert "ERROR" in result.output
