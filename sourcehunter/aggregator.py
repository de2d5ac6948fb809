"""
Issue aggregation
=================
Merges the per-file reports into one ordered issue list, applies the
filters (inline suppression, minimum confidence, optional deduplication) and
assembles the final AnalysisResult with its summary and metrics.

Order: within a file Rule Engine, then AST Analyzer, then Taint Tracker;
files in input order. Every filter keeps that relative order.
"""

import logging
import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .metrics import build_summary, detailed_metrics
from .models import (
    AnalysisResult, DependencyAnalysis, DetectionResult, FileReport,
    SecurityIssue,
)

logger = logging.getLogger(__name__)

IGNORE_MARKER = 'sourcehunter:ignore'


def collect_issues(reports: Sequence[FileReport]) -> List[SecurityIssue]:
    issues: List[SecurityIssue] = []
    for report in reports:
        issues.extend(report.rule_issues)
        issues.extend(report.ast_issues)
        issues.extend(report.taint_issues)
    return issues


def suppression_pattern(keyword: str) -> re.Pattern:
    return re.compile(rf'(?://|#|/\*|--|%|<!--)\s*{re.escape(keyword)}\b')


def is_suppressed(line_text: str, pattern: re.Pattern) -> bool:
    return IGNORE_MARKER in line_text or pattern.search(line_text) is not None


def filter_issues(issues: Sequence[SecurityIssue], lines: Mapping[str, Sequence[str]],
                  suppression_keyword: str = "nosec", min_confidence: int = 0) -> List[SecurityIssue]:
    """Drop suppressed issues and those under ``min_confidence``."""
    pattern = suppression_pattern(suppression_keyword)
    kept = []
    suppressed = 0
    for issue in issues:
        file_lines = lines.get(issue.filename, ())
        if 0 < issue.line <= len(file_lines) and is_suppressed(file_lines[issue.line - 1], pattern):
            suppressed += 1
            continue
        if issue.confidence < min_confidence:
            continue
        kept.append(issue)
    if suppressed:
        logger.debug("Suppressed %d issue(s) via inline comments", suppressed)
    return kept


def deduplicate(issues: Sequence[SecurityIssue]) -> List[SecurityIssue]:
    """Collapse issues sharing (filename, line, category).

    The survivor has the highest (severity, confidence); ties keep the
    earliest. It takes the position of the first issue of its group.
    """
    slots: Dict[Tuple[str, int, str], int] = {}
    result: List[SecurityIssue] = []
    for issue in issues:
        key = (issue.filename, issue.line, issue.category)
        if key not in slots:
            slots[key] = len(result)
            result.append(issue)
            continue
        current = result[slots[key]]
        if (issue.severity.weight, issue.confidence) > (current.severity.weight, current.confidence):
            result[slots[key]] = issue
    return result


def dependency_summary(detection: Optional[DetectionResult],
                       analysis: Optional[DependencyAnalysis]) -> Dict[str, object]:
    deps = detection.dependencies if detection else []
    vulnerable = len(analysis.findings) if analysis and analysis.status == "ok" else 0
    return {
        "total": len(deps),
        "vulnerable": vulnerable,
        "outdated": None,
        "ecosystems": sorted({d.ecosystem for d in deps}),
    }


def aggregate(reports: Sequence[FileReport], lines: Mapping[str, Sequence[str]],
              analysis_time: float, total_files: Optional[int] = None,
              detection: Optional[DetectionResult] = None,
              dependency_analysis: Optional[DependencyAnalysis] = None,
              suppression_keyword: str = "nosec", min_confidence: int = 0,
              dedup: bool = False) -> AnalysisResult:
    """Build the AnalysisResult for a batch of file reports."""
    issues = filter_issues(collect_issues(reports), lines, suppression_keyword, min_confidence)
    if dedup:
        before = len(issues)
        issues = deduplicate(issues)
        logger.debug("Dedup collapsed %d issue(s)", before - len(issues))

    lines_analyzed = sum(r.lines for r in reports)
    summary = build_summary(issues, lines_analyzed)
    return AnalysisResult(
        issues=issues,
        total_files=total_files if total_files is not None else len(reports),
        analysis_time=analysis_time,
        summary=summary,
        metrics=detailed_metrics(issues, lines_analyzed, summary.quality_score),
        dependencies=dependency_summary(detection, dependency_analysis),
        language_detection=detection,
        dependency_analysis=dependency_analysis,
        files=list(reports),
    )
