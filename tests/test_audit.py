import json
import subprocess

import pytest

from sourcehunter import audit
from sourcehunter.audit import has_lockfile, parse_audit_report, run_npm_audit
from sourcehunter.errors import DependencyLookupError
from sourcehunter.models import Severity


AUDIT_REPORT = {
    "auditReportVersion": 2,
    "vulnerabilities": {
        "minimist": {
            "name": "minimist", "severity": "critical", "range": "<1.2.6", "fixAvailable": True,
            "via": [{"title": "Prototype Pollution in minimist",
                     "url": "https://github.com/advisories/GHSA-xvch-5gv4-984h"}],
        },
        "axios": {
            "name": "axios", "severity": "moderate", "range": "0.8.1 - 0.27.2",
            "fixAvailable": {"name": "axios", "version": "1.6.0"},
            "via": ["follow-redirects", {"title": "Axios CSRF"}],
        },
    },
}


@pytest.fixture
def locked(tmp_path):
    (tmp_path / "package-lock.json").write_text("{}")
    return tmp_path


@pytest.fixture
def fake_npm(monkeypatch):
    """Pretend npm is installed and answer with the given stdout."""
    def _install(stdout):
        monkeypatch.setattr(audit.shutil, "which", lambda name: "/usr/bin/npm")

        def run(cmd, **kwargs):
            assert cmd == ["npm", "audit", "--json"]
            return subprocess.CompletedProcess(cmd, 1, stdout=stdout, stderr="")

        monkeypatch.setattr(audit.subprocess, "run", run)
    return _install


class TestParseReport:
    """Mapping npm audit JSON to findings."""

    def test_findings(self):
        findings = parse_audit_report(AUDIT_REPORT)
        assert [f.name for f in findings] == ["axios", "minimist"]
        axios, minimist = findings
        assert minimist.severity == Severity.CRITICAL
        assert minimist.advisories == ["Prototype Pollution in minimist (https://github.com/advisories/GHSA-xvch-5gv4-984h)"]
        assert axios.severity == Severity.MEDIUM
        assert axios.fix_available
        assert axios.advisories == ["Axios CSRF"]

    def test_no_vulnerabilities(self):
        assert parse_audit_report({"vulnerabilities": {}}) == []
        assert parse_audit_report({}) == []

    def test_bad_payload(self):
        with pytest.raises(DependencyLookupError):
            parse_audit_report({"vulnerabilities": ["not", "a", "mapping"]})


class TestRunAudit:
    """Invoking npm."""

    def test_npm_missing(self, locked, monkeypatch):
        monkeypatch.setattr(audit.shutil, "which", lambda name: None)
        with pytest.raises(DependencyLookupError, match="not installed"):
            run_npm_audit(str(locked))

    def test_no_lockfile(self, tmp_path, fake_npm):
        fake_npm("{}")
        with pytest.raises(DependencyLookupError, match="package-lock.json"):
            run_npm_audit(str(tmp_path))

    def test_invalid_json(self, locked, fake_npm):
        fake_npm("npm ERR! something broke")
        with pytest.raises(DependencyLookupError, match="invalid JSON"):
            run_npm_audit(str(locked))

    def test_error_document(self, locked, fake_npm):
        fake_npm(json.dumps({"error": {"code": "ENOLOCK", "summary": "lockfile missing"}}))
        with pytest.raises(DependencyLookupError, match="lockfile missing"):
            run_npm_audit(str(locked))

    def test_timeout(self, locked, monkeypatch):
        monkeypatch.setattr(audit.shutil, "which", lambda name: "/usr/bin/npm")

        def run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(audit.subprocess, "run", run)
        with pytest.raises(DependencyLookupError, match="timed out"):
            run_npm_audit(str(locked), timeout=1)

    def test_valid_output(self, locked, fake_npm):
        fake_npm(json.dumps(AUDIT_REPORT))
        findings = run_npm_audit(str(locked / "package-lock.json"))
        assert {f.name for f in findings} == {"axios", "minimist"}

    def test_has_lockfile(self, locked):
        other = locked / "packages" / "ui"
        other.mkdir(parents=True)
        assert has_lockfile(str(locked))
        assert has_lockfile(str(locked / "index.js"))
        assert not has_lockfile(str(other))
