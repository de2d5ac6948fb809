"""Scores and metrics computed over the final issue list.

Every value here is a pure function of the issues and the analyzed line
count. Figures the scanner cannot measure (test coverage, duplicated lines)
are reported as ``None`` instead of being estimated.
"""

import math
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .models import Severity, SecurityIssue, Summary


SECURITY_WEIGHTS = {Severity.CRITICAL: 10, Severity.HIGH: 5, Severity.MEDIUM: 2, Severity.LOW: 1}
QUALITY_WEIGHTS = {Severity.CRITICAL: 15, Severity.HIGH: 8, Severity.MEDIUM: 3, Severity.LOW: 1}
DEBT_HOURS = {Severity.CRITICAL: 12, Severity.HIGH: 6, Severity.MEDIUM: 3, Severity.LOW: 1}
CVSS_BASE = {Severity.CRITICAL: 4.0, Severity.HIGH: 3.0, Severity.MEDIUM: 2.0, Severity.LOW: 1.0}

QUALITY_FLOOR = 10


# ============================================================================
# Per-issue
# ============================================================================

def calculate_cvss(severity: Severity, category: str, confidence: int) -> float:
    """Approximate CVSS from severity plus category exploitability bonuses."""
    score = CVSS_BASE[severity]
    if 'Injection' in category:
        score += 3
    if 'XSS' in category or 'Cross-Site Scripting' in category:
        score += 2.5
    if 'Hardcoded' in category:
        score += 2
    if 'Secret' in category:
        score += 2.5
    score *= confidence / 100.0
    return round(max(0.0, min(10.0, score)), 1)


# ============================================================================
# Summary scores
# ============================================================================

def severity_counts(issues: Iterable[SecurityIssue]) -> Dict[Severity, int]:
    counts = {sev: 0 for sev in Severity}
    for issue in issues:
        counts[issue.severity] += 1
    return counts


def security_score(issues: List[SecurityIssue]) -> int:
    if not issues:
        return 100
    total = sum(SECURITY_WEIGHTS[i.severity] for i in issues)
    worst_case = len(issues) * SECURITY_WEIGHTS[Severity.CRITICAL]
    return round(max(0.0, 100 - (total / worst_case) * 100))


def _is_secret(issue: SecurityIssue) -> bool:
    return issue.category in ('Secret Detection', 'Hardcoded Secret') or issue.type == 'Secret'


def _complexity_penalty(issues: List[SecurityIssue]) -> float:
    """+2 for every distinct issue type beyond three within one file."""
    types_by_file = defaultdict(set)
    for issue in issues:
        types_by_file[issue.filename].add(issue.type)
    return sum((len(types) - 3) * 2 for types in types_by_file.values() if len(types) > 3)


def _diversity_penalty(issues: List[SecurityIssue]) -> float:
    unique = len({i.type for i in issues})
    return (unique - 5) * 1.5 if unique > 5 else 0


def quality_score(issues: List[SecurityIssue], lines_analyzed: int) -> int:
    if not issues:
        return 100

    weighted = sum(QUALITY_WEIGHTS[i.severity] for i in issues)
    weighted += _complexity_penalty(issues) + _diversity_penalty(issues)
    density = (weighted / lines_analyzed) * 1000 if lines_analyzed > 0 else 0
    score = 100 - math.log10(density + 1) * 20 if density > 0 else 100.0
    score = max(0.0, min(100.0, score))

    if lines_analyzed > 1000 and len(issues) < 5:
        score += 5
    if lines_analyzed < 500 and len(issues) > 10:
        score -= 10
    if all(i.severity == Severity.LOW for i in issues):
        score += 3

    secrets = [i for i in issues if _is_secret(i)]
    if secrets:
        critical = sum(1 for s in secrets if s.severity == Severity.CRITICAL)
        high = sum(1 for s in secrets if s.severity == Severity.HIGH)
        score -= critical * 8 + high * 5 + len(secrets) * 2

    return round(max(QUALITY_FLOOR, min(100.0, score)))


def build_summary(issues: List[SecurityIssue], lines_analyzed: int) -> Summary:
    counts = severity_counts(issues)
    return Summary(
        critical_issues=counts[Severity.CRITICAL],
        high_issues=counts[Severity.HIGH],
        medium_issues=counts[Severity.MEDIUM],
        low_issues=counts[Severity.LOW],
        security_score=security_score(issues),
        quality_score=quality_score(issues, lines_analyzed),
        coverage_percentage=None,
        lines_analyzed=lines_analyzed,
    )


# ============================================================================
# Detailed metrics
# ============================================================================

def vulnerability_density(issues: List[SecurityIssue], lines_analyzed: int) -> float:
    if lines_analyzed <= 0:
        return 0.0
    return round(len(issues) / lines_analyzed * 1000, 2)


def technical_debt_hours(issues: List[SecurityIssue]) -> float:
    hours = float(sum(DEBT_HOURS[i.severity] for i in issues))
    per_file = defaultdict(int)
    for issue in issues:
        per_file[issue.filename] += 1
    hours += sum((count - 5) * 0.5 for count in per_file.values() if count > 5)
    return hours


def _file_concentration(issues: List[SecurityIssue]) -> float:
    """Share of all issues held by the single worst file."""
    if not issues:
        return 0.0
    per_file = defaultdict(int)
    for issue in issues:
        per_file[issue.filename] += 1
    return max(per_file.values()) / len(issues)


def maintainability_index(issues: List[SecurityIssue], lines_analyzed: int) -> int:
    density = len(issues) / lines_analyzed * 1000 if lines_analyzed > 0 else 0
    base = max(0.0, 100 - density * 8)
    severity_impact = 0.0
    if issues:
        counts = severity_counts(issues)
        severity_impact = (counts[Severity.CRITICAL] / len(issues)) * 2 \
            + (counts[Severity.HIGH] / len(issues)) * 1.5
    concentration = -5 if _file_concentration(issues) > 0.7 else 0
    return round(max(0.0, min(100.0, base - severity_impact * 5 + concentration)))


def code_complexity(issues: List[SecurityIssue], lines_analyzed: int) -> int:
    indicators = sum(
        1 for i in issues
        if 'complex' in i.message.lower() or 'nested' in i.message.lower()
        or 'SQL' in i.category or 'XSS' in i.category or 'Injection' in i.category
        or 'Cross-Site Scripting' in i.category
    )
    if lines_analyzed <= 0:
        return 0
    return round(min(100.0, indicators / lines_analyzed * 10000))


def security_maturity(issues: List[SecurityIssue]) -> int:
    if not issues:
        return 95
    counts = severity_counts(issues)
    secrets = sum(1 for i in issues if _is_secret(i))
    score = 100 - (counts[Severity.CRITICAL] / len(issues)) * 60 \
        - (len(issues) / 10) * 5 - secrets * 5
    return round(max(10.0, min(100.0, score)))


def technical_risk(issues: List[SecurityIssue], lines_analyzed: int) -> str:
    counts = severity_counts(issues)
    ratio = len(issues) / lines_analyzed * 1000 if lines_analyzed > 0 else 0
    secrets = [i for i in issues if _is_secret(i)]
    critical_secrets = sum(1 for s in secrets if s.severity == Severity.CRITICAL)
    high_secrets = sum(1 for s in secrets if s.severity == Severity.HIGH)

    if critical_secrets > 0 or high_secrets > 2 or len(secrets) > 5:
        return 'Very High'
    if secrets:
        return 'High'
    if counts[Severity.CRITICAL] > 5 or ratio > 20:
        return 'Very High'
    if counts[Severity.CRITICAL] > 2 or counts[Severity.HIGH] > 10 or ratio > 10:
        return 'High'
    if counts[Severity.CRITICAL] > 0 or counts[Severity.HIGH] > 5 or ratio > 5:
        return 'Medium'
    if issues:
        return 'Low'
    return 'Very Low'


_GRADES = [
    (90, 'A+'), (85, 'A'), (80, 'A-'), (75, 'B+'), (70, 'B'), (65, 'B-'),
    (60, 'C+'), (55, 'C'), (50, 'C-'), (40, 'D'),
]


def quality_grade(score: int) -> str:
    for threshold, grade in _GRADES:
        if score >= threshold:
            return grade
    return 'F'


def performance_score(issues: List[SecurityIssue]) -> int:
    if not issues:
        return 90
    keywords = ('performance', 'slow', 'inefficient', 'loop', 'memory')
    related = sum(
        1 for i in issues
        if 'SQL' in i.category or any(k in i.message.lower() for k in keywords)
    )
    score = 100 - (related / len(issues)) * 50 - related * 5
    return round(max(20.0, min(100.0, score)))


def architecture_score(issues: List[SecurityIssue], lines_analyzed: int) -> int:
    keywords = ('coupling', 'dependency', 'structure', 'configuration')
    related = sum(
        1 for i in issues
        if 'Hardcoded' in i.category or 'Hardcoded' in i.type
        or any(k in i.message.lower() for k in keywords)
    )
    concentration = 15 if _file_concentration(issues) > 0.8 else 0
    size_penalty = 5 if lines_analyzed > 5000 else 0
    return round(max(20.0, min(100.0, 85 - related * 3 - concentration - size_penalty)))


def detailed_metrics(issues: List[SecurityIssue], lines_analyzed: int,
                     quality: Optional[int] = None) -> Dict[str, object]:
    if quality is None:
        quality = quality_score(issues, lines_analyzed)
    debt = technical_debt_hours(issues)
    return {
        "vulnerabilityDensity": vulnerability_density(issues, lines_analyzed),
        "technicalDebt": f"{debt:g} hours",
        "technicalDebtHours": debt,
        "maintainabilityIndex": maintainability_index(issues, lines_analyzed),
        "duplicatedLines": None,
        "testCoverage": None,
        "codeComplexity": code_complexity(issues, lines_analyzed),
        "securityMaturity": security_maturity(issues),
        "technicalRisk": technical_risk(issues, lines_analyzed),
        "qualityGrade": quality_grade(quality),
        "performanceScore": performance_score(issues),
        "architectureScore": architecture_score(issues, lines_analyzed),
    }
