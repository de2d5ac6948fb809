"""
Analysis pipeline
=================
Detection, then per-file analysis on a thread pool, then aggregation.

Per file the phases run in a fixed order: Rule Engine, parse, AST Analyzer,
Taint Tracker. Each phase is isolated: an unexpected exception is logged and
recorded on the FileReport, and the next phase still runs. A failed parse
leaves the file with rule-engine coverage only.

Time budgets are cooperative (see ``Deadline``). A file that runs out of
time is marked ``timed_out`` and keeps the issues of the phases that
finished. When the batch budget expires, files still queued or still running
are reported as timed out and the batch returns without waiting for them.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from . import rules
from .aggregator import aggregate
from .ast_analyzer import ASTAnalyzer
from .audit import has_lockfile, run_npm_audit
from .config import ScanConfig
from .deadline import Deadline
from .detector import LANGUAGE_PATTERNS, detect_codebase, file_extension
from .errors import AnalysisTimeout, DependencyLookupError, NoCodeFilesError
from .models import (
    AnalysisResult, DependencyAnalysis, DetectedLanguage, FileReport, Language,
    PhaseError, SourceFile, VulnerableDependency,
)
from .parser import parse
from .sources import collect
from .taint import TaintTracker

logger = logging.getLogger(__name__)

DependencyLookup = Callable[[str], List[VulnerableDependency]]
ProgressCallback = Callable[[FileReport, int, int], None]


def analysis_language(filename: str, detected: Optional[DetectedLanguage]) -> Optional[Language]:
    """The Language to analyze a file as, or None.

    Only a file whose extension belongs to the detected language is
    analyzed; content-only guesses are kept for detection statistics.
    """
    if detected is None or detected.name not in LANGUAGE_PATTERNS:
        return None
    if file_extension(filename) not in LANGUAGE_PATTERNS[detected.name].extensions:
        return None
    return Language.from_name(detected.name)


def _timed_out(source: SourceFile, language: Language) -> FileReport:
    return FileReport(source.filename, language, lines=source.line_count, timed_out=True)


class Scanner:
    """Library entry point: ``Scanner(config).analyze(files)``."""

    def __init__(self, config: Optional[ScanConfig] = None,
                 dependency_lookup: Optional[DependencyLookup] = run_npm_audit):
        self.config = config or ScanConfig()
        self.ast_analyzer = ASTAnalyzer()
        self.taint_tracker = TaintTracker(self.config)
        self.dependency_lookup = dependency_lookup

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def analyze_path(self, target: str, scan_all: bool = False,
                     progress: Optional[ProgressCallback] = None) -> AnalysisResult:
        """Collect a directory, file or zip archive and analyze it."""
        files = collect(target, self.config, scan_all=scan_all)
        audit_target = target if (
            self.config.dependency_audit and self.dependency_lookup is not None
            and os.path.isdir(target) and has_lockfile(target)
        ) else None
        return self.analyze(files, progress=progress, audit_target=audit_target)

    def analyze(self, files: Sequence[SourceFile], progress: Optional[ProgressCallback] = None,
                audit_target: Optional[str] = None,
                batch_deadline: Optional[Deadline] = None) -> AnalysisResult:
        """Analyze an in-memory file set.

        Raises:
            NoCodeFilesError: no file has a language the analyzers support.
        """
        start = time.monotonic()
        if batch_deadline is None:
            batch_deadline = Deadline(self.config.batch_timeout)

        files = [f for f in files if not self.config.should_exclude(f.filename)]
        detection = detect_codebase(files)
        frameworks = detection.framework_names

        work: List[Tuple[SourceFile, Language]] = []
        for f in files:
            language = analysis_language(f.filename, detection.file_languages.get(f.filename))
            if language is not None:
                work.append((f, language))
        if not work:
            raise NoCodeFilesError(len(files))

        logger.info("Analyzing %d of %d file(s); frameworks: %s",
                    len(work), len(files), ', '.join(frameworks) or 'none')

        reports = self._run_batch(work, frameworks, batch_deadline, progress)

        dependency_analysis = self._dependency_analysis(audit_target) if audit_target else None
        lines = {source.filename: source.content.split('\n') for source, _ in work}
        return aggregate(
            reports, lines,
            analysis_time=time.monotonic() - start,
            total_files=len(files),
            detection=detection,
            dependency_analysis=dependency_analysis,
            suppression_keyword=self.config.suppression_keyword,
            min_confidence=self.config.min_confidence,
            dedup=self.config.dedup,
        )

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def _run_batch(self, work: Sequence[Tuple[SourceFile, Language]], frameworks: Sequence[str],
                   batch_deadline: Deadline, progress: Optional[ProgressCallback]) -> List[FileReport]:
        reports: Dict[int, FileReport] = {}
        pool = ThreadPoolExecutor(max_workers=self.config.max_workers)
        try:
            futures = [
                pool.submit(self._guarded, source, language, frameworks, batch_deadline)
                for source, language in work
            ]
            for index, future in enumerate(futures):
                try:
                    reports[index] = future.result(timeout=batch_deadline.remaining())
                except FutureTimeout:
                    source, language = work[index]
                    logger.warning("%s: batch time budget spent while waiting for analysis", source.filename)
                    future.cancel()
                    reports[index] = _timed_out(source, language)
                if progress is not None:
                    progress(reports[index], index + 1, len(work))
        finally:
            # workers still running stop at their next deadline check
            pool.shutdown(wait=False, cancel_futures=True)

        timed_out = sum(1 for r in reports.values() if r.timed_out)
        if timed_out:
            logger.warning("%d file(s) timed out", timed_out)
        return [reports[i] for i in range(len(work))]

    def _guarded(self, source: SourceFile, language: Language, frameworks: Sequence[str],
                 batch_deadline: Deadline) -> FileReport:
        if batch_deadline.expired():
            logger.warning("%s: batch time budget spent before analysis", source.filename)
            return _timed_out(source, language)
        deadline = Deadline(self.config.file_timeout).earliest(batch_deadline)
        return self.analyze_file(source, language, frameworks, deadline)

    # ------------------------------------------------------------------
    # Single file
    # ------------------------------------------------------------------

    def analyze_file(self, source: SourceFile, language: Language,
                     frameworks: Sequence[str] = (), deadline: Optional[Deadline] = None) -> FileReport:
        """Run every phase for one file. Never raises."""
        deadline = deadline or Deadline.never()
        report = FileReport(source.filename, language, lines=source.line_count)
        name = source.filename

        try:
            deadline.check('rules', name)
            found = self._phase(report, 'rules', lambda: rules.apply(
                source.content, language, frameworks, name, deadline))
            if found:
                report.rule_issues = found

            deadline.check('parse', name)
            unit = self._phase(report, 'parse', lambda: parse(source.content, language, name))
            if unit is None:
                return report
            report.parse_errors = list(unit.errors)
            report.parsed = unit.success
            if not unit.success:
                logger.debug("%s: parse failed, rule engine coverage only", name)
                return report

            deadline.check('ast', name)
            found = self._phase(report, 'ast', lambda: self.ast_analyzer.analyze(unit, source, deadline))
            if found:
                report.ast_issues = found

            if self.taint_tracker.supports(language):
                deadline.check('taint', name)
                found = self._phase(report, 'taint', lambda: self.taint_tracker.analyze(unit, source, deadline))
                if found:
                    report.taint_issues = found
        except AnalysisTimeout as e:
            logger.warning("%s: %s", name, e)
            report.timed_out = True
        return report

    @staticmethod
    def _phase(report: FileReport, phase: str, func):
        try:
            return func()
        except AnalysisTimeout:
            raise
        except Exception as e:
            logger.warning("%s: phase=%s failed: %s", report.filename, phase, e,
                           exc_info=logger.isEnabledFor(logging.DEBUG))
            report.phase_errors.append(PhaseError(phase, f"{type(e).__name__}: {e}"))
            return None

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def _dependency_analysis(self, target: str) -> DependencyAnalysis:
        try:
            findings = self.dependency_lookup(target)
        except DependencyLookupError as e:
            logger.warning("Dependency lookup unavailable: %s", e)
            return DependencyAnalysis("unavailable", error=str(e))
        except Exception as e:
            logger.warning("Dependency lookup failed: %s", e)
            return DependencyAnalysis("unavailable", error=f"{type(e).__name__}: {e}")
        return DependencyAnalysis("ok", findings=findings)
