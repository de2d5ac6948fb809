"""
Report rendering
================
Rich terminal dashboard, plain-text file report and JSON output for an
AnalysisResult.
"""

import json
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from rich import box
from rich.align import Align
from rich.columns import Columns
from rich.console import Console, Group
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from .detector import language_summary, recommended_tools
from .models import AnalysisResult, SecurityIssue

console = Console()
# logs and progress go to stderr so JSON on stdout stays parseable
err_console = Console(stderr=True)

SEVERITY_STYLES = {
    'Critical': 'bold red', 'High': 'red', 'Medium': 'yellow', 'Low': 'green',
}
SEVERITY_BADGES = {
    'Critical': 'bold white on red', 'High': 'bold red',
    'Medium': 'bold yellow', 'Low': 'bold green',
}


def print_banner():
    banner_lines = [
        "  ___                          _  _          _",
        " / __| ___ _  _ _ _ __ ___    | || |_  _ _ _| |_ ___ _ _",
        " \\__ \\/ _ \\ || | '_/ _/ -_)   | __ | || | ' \\  _/ -_) '_|",
        " |___/\\___/\\_,_|_| \\__\\___|   |_||_|\\_,_|_||_\\__\\___|_|",
    ]
    title_content = Text()
    title_content.append('\n'.join(banner_lines), style="bold red")
    title_content.append("\n\n")
    title_content.append("Multi-Language Static Security Scanner\n", style="bold white")
    title_content.append("Rules | AST Analysis | Taint Tracking", style="dim")

    console.print()
    console.print(Panel(
        Align.center(title_content),
        border_style="red",
        box=box.DOUBLE,
        padding=(1, 2),
    ))
    console.print()


def _build_stats_sidebar(result: AnalysisResult) -> Panel:
    stats = Table(show_header=False, box=None, padding=(0, 1), expand=True)
    stats.add_column("key", style="bold cyan", no_wrap=True, ratio=3)
    stats.add_column("value", style="white", ratio=1)

    summary = result.summary
    stats.add_row("Files Analyzed", str(len(result.files)))
    stats.add_row("Lines Analyzed", str(summary.lines_analyzed))
    stats.add_row("Total Issues", str(len(result.issues)))
    stats.add_row("Scan Time", f"{result.analysis_time:.2f}s")
    stats.add_row("Security Score", f"{summary.security_score}/100")
    stats.add_row("Quality Score", f"{summary.quality_score}/100 ({result.metrics.get('qualityGrade')})")

    parse_failures = sum(1 for f in result.files if f.language and not f.parsed)
    timed_out = sum(1 for f in result.files if f.timed_out)
    if parse_failures:
        stats.add_row("Parse Failures", str(parse_failures))
    if timed_out:
        stats.add_row(Text("Timed Out", style="yellow"), str(timed_out))
    stats.add_row("", "")

    counts = {
        'Critical': summary.critical_issues, 'High': summary.high_issues,
        'Medium': summary.medium_issues, 'Low': summary.low_issues,
    }
    for sev, count in counts.items():
        if count > 0:
            stats.add_row(Text(sev.upper(), style=SEVERITY_STYLES[sev]), str(count))

    stats.add_row("", "")
    cat_counts = defaultdict(int)
    for issue in result.issues:
        cat_counts[issue.category] += 1
    for cat, count in sorted(cat_counts.items(), key=lambda x: -x[1]):
        stats.add_row(Text(cat, style="cyan"), str(count))

    return Panel(stats, title="[bold white]Scan Statistics[/bold white]",
                 border_style="cyan", box=box.ROUNDED, padding=(1, 1))


def _build_detection_panel(result: AnalysisResult) -> Optional[Panel]:
    detection = result.language_detection
    if detection is None:
        return None
    body = Text()
    body.append("Languages: ", style="bold cyan")
    body.append(language_summary(detection) + "\n", style="white")
    body.append("Project: ", style="bold cyan")
    body.append(f"{detection.project_structure.type} ({detection.project_structure.confidence}%)\n",
                style="white")
    if detection.build_tools:
        body.append("Build tools: ", style="bold cyan")
        body.append(", ".join(detection.build_tools) + "\n", style="white")
    if detection.package_managers:
        body.append("Package managers: ", style="bold cyan")
        body.append(", ".join(detection.package_managers) + "\n", style="white")
    body.append("Also consider: ", style="bold cyan")
    body.append(", ".join(recommended_tools(detection)), style="dim")
    return Panel(body, title="[bold white]Codebase[/bold white]", border_style="blue", box=box.ROUNDED)


def _build_finding_panel(issue: SecurityIssue, lexer: str = "text") -> Panel:
    sev = issue.severity.value

    title = Text()
    title.append(f" {sev.upper()} ", style=SEVERITY_BADGES.get(sev, "white"))
    title.append(f" {issue.type} ", style="bold white")
    if issue.cwe_id:
        title.append(f" {issue.cwe_id} ", style="dim cyan")
    title.append(f" Confidence: {issue.confidence} ", style="dim")

    content_parts = []

    loc = Text()
    loc.append("Location: ", style="bold cyan")
    loc.append(f"Line {issue.line}", style="white")
    if issue.column:
        loc.append(f", Col {issue.column}", style="dim")
    cat = Text()
    cat.append("Category: ", style="bold magenta")
    cat.append(issue.category, style="white")
    tool = Text()
    tool.append("Tool: ", style="bold blue")
    tool.append(issue.tool, style="white")
    content_parts.append(Columns([loc, cat, tool], padding=(0, 4)))

    desc = Text()
    desc.append(f"\n{issue.message}", style="italic white")
    content_parts.append(desc)

    if issue.code_snippet:
        content_parts.append(Text(""))
        content_parts.append(Syntax(issue.code_snippet, lexer, theme="monokai"))

    if issue.recommendation:
        rem = Text()
        rem.append("\nRecommendation: ", style="bold yellow")
        rem.append(issue.recommendation, style="dim white")
        content_parts.append(rem)

    return Panel(Group(*content_parts), title=title,
                 border_style=SEVERITY_STYLES.get(sev, 'white'),
                 box=box.ROUNDED, padding=(1, 2))


def _build_dependency_panel(result: AnalysisResult) -> Optional[Panel]:
    analysis = result.dependency_analysis
    if analysis is None:
        return None
    if analysis.status != "ok":
        return Panel(Text(f"Dependency audit unavailable: {analysis.error}", style="yellow"),
                     title="[bold white]Dependencies[/bold white]",
                     border_style="yellow", box=box.ROUNDED)

    table = Table(box=box.SIMPLE, expand=True)
    table.add_column("Package", style="bold white")
    table.add_column("Severity")
    table.add_column("Range", style="dim")
    table.add_column("Fix", justify="center")
    for dep in analysis.findings:
        sev = dep.severity.value
        table.add_row(dep.name, Text(sev, style=SEVERITY_STYLES.get(sev, "white")),
                      dep.version_range, "yes" if dep.fix_available else "no")
    if not analysis.findings:
        table.add_row("No known-vulnerable dependencies", "", "", "")
    return Panel(table, title="[bold white]Dependencies[/bold white]",
                 border_style="magenta", box=box.ROUNDED)


def output_rich(result: AnalysisResult, target: str, min_confidence: int):
    scan_date = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    header = Text()
    header.append("Target: ", style="bold cyan")
    header.append(f"{target}  ", style="white")
    header.append("Date: ", style="bold cyan")
    header.append(f"{scan_date}  ", style="white")
    header.append("Confidence: ", style="bold cyan")
    header.append(f">= {min_confidence}", style="white")

    console.print(Panel(Align.center(header), title="[bold white]Scan Info[/bold white]",
                        border_style="blue", box=box.ROUNDED))
    console.print()
    for panel in (_build_detection_panel(result), _build_stats_sidebar(result),
                  _build_dependency_panel(result)):
        if panel is not None:
            console.print(panel)
            console.print()

    if not result.issues:
        console.print(Panel(
            Align.center(Text("No vulnerabilities found.", style="bold green")),
            border_style="green", box=box.ROUNDED, padding=(1, 4)))
        return

    console.print(Rule("[bold white]Vulnerability Findings[/bold white]", style="red"))
    console.print()

    lexers = {f.filename: f.language.value for f in result.files if f.language}
    by_file: Dict[str, List[SecurityIssue]] = defaultdict(list)
    for issue in result.issues:
        by_file[issue.filename].append(issue)

    for filename, issues in by_file.items():
        console.print(Text(f"FILE: {filename}", style="bold underline cyan"))
        console.print()
        for issue in sorted(issues, key=lambda i: (i.line, -i.severity.weight)):
            console.print(_build_finding_panel(issue, lexers.get(filename, "text")))
            console.print()


def format_text(result: AnalysisResult) -> str:
    lines = []
    for issue in result.issues:
        lines.append(f"\n{'=' * 70}")
        lines.append(f"  [{issue.severity.value}] [{issue.confidence}] {issue.type}")
        lines.append(f"  File: {issue.filename}:{issue.line}:{issue.column}")
        lines.append(f"  Category: {issue.category}")
        if issue.cwe_id:
            lines.append(f"  CWE: {issue.cwe_id}")
        if issue.owasp_category:
            lines.append(f"  OWASP: {issue.owasp_category}")
        lines.append(f"  Tool: {issue.tool}")
        lines.append(f"  Description: {issue.message}")
        lines.append("  Code:")
        lines.extend(f"    {l}" for l in issue.code_snippet.split('\n'))
        lines.append(f"  Remediation: {issue.recommendation}")
    lines.append(f"\n{'=' * 70}")

    summary = result.summary
    lines.append(f"Total findings: {len(result.issues)}")
    lines.append(f"Critical: {summary.critical_issues}  High: {summary.high_issues}  "
                 f"Medium: {summary.medium_issues}  Low: {summary.low_issues}")
    lines.append(f"Security score: {summary.security_score}  Quality score: {summary.quality_score}")
    lines.append(f"Files: {result.total_files}  Lines analyzed: {summary.lines_analyzed}")
    timed_out = [f.filename for f in result.files if f.timed_out]
    if timed_out:
        lines.append(f"Timed out: {', '.join(timed_out)}")
    return '\n'.join(lines) + '\n'


def output_text_plain(result: AnalysisResult, file_path: str):
    with open(file_path, 'w', encoding='utf-8') as out:
        out.write(format_text(result))


def output_json(result: AnalysisResult, file_path: Optional[str] = None):
    json_str = json.dumps(result.to_dict(), indent=2)
    if file_path:
        with open(file_path, 'w', encoding='utf-8') as f:
            f.write(json_str)
    else:
        print(json_str)
