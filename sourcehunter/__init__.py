"""
sourcehunter - Multi-Language Static Security Scanner
=====================================================
Language/framework detection, tree-sitter parsing, pattern rules, AST
semantic checks and intra-file taint tracking over a source file set.

Usage:
    from sourcehunter import Scanner, SourceFile

    result = Scanner().analyze([SourceFile.from_text("app.js", code)])
    print(result.summary.security_score)
"""

from .config import ScanConfig, load_config
from .errors import (
    AnalysisTimeout, ConfigError, DependencyLookupError, ExtractionError,
    NoCodeFilesError, SourceHunterError,
)
from .models import AnalysisResult, Language, SecurityIssue, Severity, SourceFile
from .pipeline import Scanner

__version__ = "1.0.0"

__all__ = [
    "Scanner", "ScanConfig", "load_config",
    "AnalysisResult", "Language", "SecurityIssue", "Severity", "SourceFile",
    "SourceHunterError", "ConfigError", "ExtractionError", "NoCodeFilesError",
    "AnalysisTimeout", "DependencyLookupError",
]
