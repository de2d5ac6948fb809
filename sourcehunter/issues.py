"""Construction helpers shared by every analyzer that emits SecurityIssues."""

import hashlib
import re
from typing import Iterable, List, Optional, Sequence

from .metrics import calculate_cvss
from .models import Remediation, Severity, SecurityIssue

SNIPPET_RADIUS = 2

_SECRET_LITERAL = re.compile(r'["\'][^"\']{8,}["\']')
_MASK = '"***REDACTED***"'

_OWASP_TOP_TEN = "https://owasp.org/www-project-top-ten/"
_CWE_HOME = "https://cwe.mitre.org/"

# category -> extra tags
_CATEGORY_TAGS = {
    "Code Injection": ["injection", "rce", "security"],
    "Cross-Site Scripting": ["xss", "dom", "client-side"],
    "Hardcoded Secret": ["credentials", "secrets", "authentication"],
    "Secret Detection": ["credentials", "secrets", "authentication"],
    "Weak Cryptography": ["crypto", "random", "encryption"],
    "Weak Randomness": ["crypto", "random", "encryption"],
    "Command Injection": ["command", "shell", "system"],
}

# Effort / priority by severity
_EFFORT = {Severity.CRITICAL: "High", Severity.HIGH: "High",
           Severity.MEDIUM: "Medium", Severity.LOW: "Low"}
_PRIORITY = {Severity.CRITICAL: 5, Severity.HIGH: 4, Severity.MEDIUM: 3, Severity.LOW: 2}

_IMPACT = {
    Severity.CRITICAL: "Critical security vulnerability that could lead to complete system compromise",
    Severity.HIGH: "High-risk vulnerability that could lead to significant security breach",
    Severity.MEDIUM: "Medium-risk vulnerability that could be exploited under certain conditions",
    Severity.LOW: "Low-risk vulnerability with limited impact",
}


def mask_secrets(text: str) -> str:
    """Replace quoted literals of eight or more characters."""
    return _SECRET_LITERAL.sub(_MASK, text)


def extract_snippet(lines: Sequence[str], line: int, mask: bool = False,
                    radius: int = SNIPPET_RADIUS) -> str:
    """Numbered context around ``line`` with an arrow on the reported line."""
    start = max(0, line - 1 - radius)
    end = min(len(lines), line + radius)
    out = []
    for idx in range(start, end):
        lineno = idx + 1
        text = mask_secrets(lines[idx]) if mask else lines[idx]
        marker = "→ " if lineno == line else "  "
        out.append(f"{marker}{lineno:>3}: {text}")
    return '\n'.join(out).rstrip()


def issue_id(*parts: object) -> str:
    """Deterministic fingerprint of an issue's identifying fields."""
    digest = hashlib.sha1('\x1f'.join(str(p) for p in parts).encode('utf-8')).hexdigest()
    return digest[:20]


def slug(text: str) -> str:
    return re.sub(r'\s+', '-', text.strip().lower())


def risk_rating(severity: Severity, confidence: int) -> str:
    if severity == Severity.CRITICAL and confidence > 80:
        return "Critical"
    if severity == Severity.HIGH and confidence > 70:
        return "High"
    if severity == Severity.MEDIUM and confidence > 60:
        return "Medium"
    return "Low"


def default_remediation(severity: Severity, description: str) -> Remediation:
    return Remediation(description, _EFFORT[severity], _PRIORITY[severity])


def default_impact(severity: Severity) -> str:
    return _IMPACT[severity]


def build_references(cwe: Optional[str], owasp: Optional[str],
                     extra: Iterable[str] = ()) -> List[str]:
    refs = []
    if cwe:
        refs.append(f"https://cwe.mitre.org/data/definitions/{cwe.replace('CWE-', '')}.html")
    if owasp:
        owasp_id = owasp.split(':')[0].strip()
        refs.append(f"https://owasp.org/Top10/2021/{owasp_id}/")
    refs.extend(extra)
    refs.append(_OWASP_TOP_TEN)
    refs.append(_CWE_HOME)
    return refs


def build_tags(category: str, *leading: str) -> List[str]:
    tags = [t for t in leading if t]
    tags.append(slug(category))
    tags.extend(_CATEGORY_TAGS.get(category, ["security"]))
    seen = set()
    return [t for t in tags if not (t in seen or seen.add(t))]


def make_issue(*, tool: str, type: str, category: str, message: str,
               severity: Severity, confidence: int, lines: Sequence[str],
               filename: str, line: int, column: int, recommendation: str,
               remediation: Optional[Remediation] = None,
               impact: Optional[str] = None, likelihood: str = "Medium",
               cwe: Optional[str] = None, owasp: Optional[str] = None,
               tags: Optional[Iterable[str]] = None,
               references: Optional[Iterable[str]] = None,
               rule_id: Optional[str] = None, discriminator: object = "",
               mask: bool = False, redact: Optional[str] = None) -> SecurityIssue:
    """Assemble a fully populated, immutable SecurityIssue.

    ``redact`` is a matched secret to blank out of the snippet even when it
    is not a quoted literal.
    """
    confidence = int(max(0, min(100, confidence)))
    line = max(1, line)
    column = max(0, column)
    mask = mask or cwe == "CWE-798"
    snippet = extract_snippet(lines, line, mask=mask)
    if redact:
        snippet = snippet.replace(redact, "***REDACTED***")
    return SecurityIssue(
        id=issue_id(filename, tool, rule_id or type, line, column, discriminator),
        type=type,
        category=category,
        message=message,
        severity=severity,
        confidence=confidence,
        filename=filename,
        line=line,
        column=column,
        code_snippet=snippet,
        recommendation=recommendation,
        remediation=remediation or default_remediation(severity, recommendation),
        risk_rating=risk_rating(severity, confidence),
        impact=impact or default_impact(severity),
        likelihood=likelihood,
        references=tuple(references if references is not None else build_references(cwe, owasp)),
        tags=tuple(tags if tags is not None else build_tags(category)),
        tool=tool,
        cvss_score=calculate_cvss(severity, category, confidence),
        cwe_id=cwe,
        owasp_category=owasp,
        rule_id=rule_id,
    )
