import io
import json

import pytest
from rich.console import Console

from conftest import CLEAN_PY
from sourcehunter import report
from sourcehunter.cli import EXIT_CLEAN, EXIT_ERROR, EXIT_FINDINGS, build_parser, main
from sourcehunter.report import format_text, output_json, output_rich


BASE = ["--no-banner", "--no-audit"]


@pytest.fixture
def clean_project(tmp_path):
    (tmp_path / "util.py").write_text(CLEAN_PY)
    return tmp_path


@pytest.fixture
def captured(monkeypatch):
    """Route the rich stdout console into a buffer."""
    buffer = io.StringIO()
    fake = Console(file=buffer, width=120)
    monkeypatch.setattr(report, "console", fake)
    monkeypatch.setattr("sourcehunter.cli.console", fake)
    return buffer


class TestExitCodes:
    """Process exit status."""

    def test_findings_in_json(self, project, capsys):
        assert main([str(project), "--output", "json"] + BASE) == EXIT_FINDINGS
        data = json.loads(capsys.readouterr().out)
        assert data["totalFiles"] == 3
        assert any(i["cweId"] == "CWE-89" for i in data["issues"])

    def test_clean_project(self, clean_project, captured):
        assert main([str(clean_project)] + BASE) == EXIT_CLEAN
        assert "No vulnerabilities found." in captured.getvalue()

    def test_missing_target(self, tmp_path):
        assert main([str(tmp_path / "nope")] + BASE) == EXIT_ERROR

    def test_no_code_files(self, tmp_path):
        (tmp_path / "README.md").write_text("# docs\n")
        assert main([str(tmp_path)] + BASE) == EXIT_ERROR

    def test_bad_config(self, project):
        (project / ".sourcehunter.yml").write_text("dedup: maybe\n")
        assert main([str(project)] + BASE) == EXIT_ERROR

    def test_missing_config(self, project):
        assert main([str(project), "--config", str(project / "absent.yml")] + BASE) == EXIT_ERROR

    def test_min_confidence_filters_everything(self, project, capsys):
        assert main([str(project), "--output", "json", "--min-confidence", "100"] + BASE) == EXIT_CLEAN
        assert json.loads(capsys.readouterr().out)["issues"] == []

    def test_invalid_min_confidence(self, project):
        assert main([str(project), "--min-confidence", "extreme"] + BASE) == EXIT_ERROR


class TestOptions:
    """Argument parsing and report files."""

    @pytest.mark.parametrize("flag", ["--workers", "--file-timeout", "--batch-timeout"])
    def test_non_positive_values_rejected(self, flag):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["x", flag, "0"])

    def test_json_report_file(self, project, tmp_path, capsys):
        out = tmp_path / "report.json"
        main([str(project), "--output", "json", "-o", str(out)] + BASE)
        assert capsys.readouterr().out == ""
        assert "issues" in json.loads(out.read_text())

    def test_text_report_file(self, project, tmp_path, captured):
        out = tmp_path / "report.txt"
        assert main([str(project), "-o", str(out), "--dedup"] + BASE) == EXIT_FINDINGS
        assert "Total findings:" in out.read_text()
        assert "Report saved" in captured.getvalue()


class TestRendering:
    """Report formats."""

    def test_format_text(self, analyze):
        text = format_text(analyze("app.js", "eval(userInput);\n"))
        assert "Total findings:" in text
        assert "app.js:1:" in text
        assert "CWE-95" in text

    def test_output_json_to_file(self, analyze, tmp_path):
        path = tmp_path / "out.json"
        output_json(analyze("app.js", "eval(userInput);\n"), str(path))
        data = json.loads(path.read_text())
        assert data["summary"]["criticalIssues"] >= 1
        assert data["files"][0]["filename"] == "app.js"

    def test_output_rich(self, analyze, captured):
        output_rich(analyze("app.js", "eval(userInput);\n"), "app.js", 0)
        rendered = captured.getvalue()
        assert "Vulnerability Findings" in rendered
        assert "FILE: app.js" in rendered
        assert "Scan Statistics" in rendered

    def test_output_rich_no_issues(self, analyze, captured):
        output_rich(analyze("util.py", CLEAN_PY), "util.py", 50)
        assert "No vulnerabilities found." in captured.getvalue()
