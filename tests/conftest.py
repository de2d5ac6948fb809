import time

import pytest

from sourcehunter import Scanner, ScanConfig, SourceFile
from sourcehunter.deadline import Deadline
from sourcehunter.issues import make_issue
from sourcehunter.models import Severity
from sourcehunter.parser import parse


VULNERABLE_JS = '''\
const express = require('express');
const app = express();

app.get('/user', (req, res) => {
  const q = req.query.id;
  db.query("SELECT * FROM users WHERE id=" + q);
  eval(req.body.code);
});
'''

CLEAN_PY = '''\
def add(a, b):
    return a + b
'''


@pytest.fixture
def scanner():
    """Scanner with default config and no dependency lookup."""
    return Scanner(ScanConfig(), dependency_lookup=None)


@pytest.fixture
def source():
    """Factory: source('app.js', code) -> SourceFile."""
    def _make(filename, content):
        return SourceFile.from_text(filename, content)
    return _make


@pytest.fixture
def analyze(scanner):
    """Factory: analyze('app.js', code) -> AnalysisResult for one file."""
    def _analyze(filename, content):
        return scanner.analyze([SourceFile.from_text(filename, content)])
    return _analyze


@pytest.fixture
def unit_for():
    """Factory: unit_for(code, Language.X, 'f.js') -> (StructuralUnit, SourceFile)."""
    def _unit(content, language, filename="test"):
        return parse(content, language, filename), SourceFile.from_text(filename, content)
    return _unit


@pytest.fixture
def expired():
    """A deadline that has already passed."""
    return Deadline(expires_at=time.monotonic() - 1)


@pytest.fixture
def issue_factory():
    """Factory for SecurityIssue records with sensible defaults."""
    def _issue(filename="app.js", line=1, severity=Severity.HIGH, confidence=80,
               category="Code Injection", type="Test Issue", tool="Test", rule_id="test",
               lines=None, cwe="CWE-95"):
        return make_issue(
            tool=tool, type=type, category=category, message="test message",
            severity=severity, confidence=confidence,
            lines=lines if lines is not None else ["x"] * max(line, 1),
            filename=filename, line=line, column=0,
            recommendation="fix it", cwe=cwe, rule_id=rule_id,
        )
    return _issue


@pytest.fixture
def project(tmp_path):
    """A small on-disk project with vendor noise and a manifest."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.js").write_text(VULNERABLE_JS)
    (tmp_path / "src" / "util.py").write_text(CLEAN_PY)
    (tmp_path / "node_modules" / "lib").mkdir(parents=True)
    (tmp_path / "node_modules" / "lib" / "index.js").write_text("eval(x);\n")
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n")
    (tmp_path / "package.json").write_text('{"dependencies": {"express": "^4.18.0"}}')
    return tmp_path
