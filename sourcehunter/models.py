"""Shared records passed between the detector, analyzers and aggregator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


# ============================================================================
# Enums
# ============================================================================

class Severity(Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def weight(self) -> int:
        return SEVERITY_ORDER[self]


SEVERITY_ORDER = {
    Severity.CRITICAL: 4, Severity.HIGH: 3,
    Severity.MEDIUM: 2, Severity.LOW: 1,
}


class ParserTier(Enum):
    GRAMMAR = "grammar"   # full tree-sitter tree
    SHALLOW = "shallow"   # line-oriented declaration capture


class Language(Enum):
    """Languages the analyzers understand, tagged with their parser tier."""
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    PYTHON = "python"
    JAVA = "java"
    GO = "go"
    PHP = "php"
    C = "c"
    CPP = "cpp"
    CSHARP = "csharp"
    RUBY = "ruby"
    RUST = "rust"
    SWIFT = "swift"
    KOTLIN = "kotlin"

    @property
    def tier(self) -> ParserTier:
        return _LANGUAGE_TIERS[self]

    @classmethod
    def from_name(cls, name: str) -> Optional["Language"]:
        try:
            return cls(name)
        except ValueError:
            return None


_LANGUAGE_TIERS = {
    Language.JAVASCRIPT: ParserTier.GRAMMAR,
    Language.TYPESCRIPT: ParserTier.GRAMMAR,
    Language.PYTHON: ParserTier.GRAMMAR,
    Language.JAVA: ParserTier.GRAMMAR,
    Language.GO: ParserTier.GRAMMAR,
    Language.PHP: ParserTier.GRAMMAR,
    Language.C: ParserTier.SHALLOW,
    Language.CPP: ParserTier.SHALLOW,
    Language.CSHARP: ParserTier.SHALLOW,
    Language.RUBY: ParserTier.SHALLOW,
    Language.RUST: ParserTier.SHALLOW,
    Language.SWIFT: ParserTier.SHALLOW,
    Language.KOTLIN: ParserTier.SHALLOW,
}


class SourceKind(Enum):
    USER_INPUT = "user_input"
    EXTERNAL = "external"
    FILE_READ = "file_read"
    DATABASE = "database"


class SinkKind(Enum):
    SQL = "sql"
    XSS = "xss"
    COMMAND = "command"
    EVAL = "eval"
    FILE_WRITE = "file_write"
    REDIRECT = "redirect"


class DeclarationKind(Enum):
    IMPORT = "import"
    FUNCTION = "function"
    CLASS = "class"
    TYPE = "type"


# ============================================================================
# Input & Detection
# ============================================================================

@dataclass(frozen=True)
class SourceFile:
    """One file of the analyzed set."""
    filename: str
    content: str
    size: int = -1

    @classmethod
    def from_text(cls, filename: str, content: str) -> "SourceFile":
        return cls(filename, content, len(content.encode('utf-8', errors='replace')))

    @property
    def byte_size(self) -> int:
        return self.size if self.size >= 0 else len(self.content.encode('utf-8', errors='replace'))

    @property
    def line_count(self) -> int:
        if not self.content:
            return 0
        return self.content.count('\n') + 1


@dataclass
class DetectedLanguage:
    name: str
    confidence: int
    category: str = "programming"
    ecosystem: Optional[str] = None
    extensions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name, "confidence": self.confidence,
            "category": self.category, "ecosystem": self.ecosystem,
            "extensions": list(self.extensions),
        }


@dataclass
class DetectedFramework:
    name: str
    language: str
    confidence: int
    category: str
    ecosystem: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name, "language": self.language,
            "confidence": self.confidence, "category": self.category,
            "ecosystem": self.ecosystem,
        }


@dataclass
class DependencyInfo:
    name: str
    version: Optional[str]
    type: str            # dependency | devDependency | peerDependency
    ecosystem: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "version": self.version,
                "type": self.type, "ecosystem": self.ecosystem}


@dataclass
class ProjectStructure:
    type: str = "unknown"
    confidence: int = 0
    indicators: List[str] = field(default_factory=list)


@dataclass
class DetectionResult:
    """Codebase-level detection output."""
    primary_language: DetectedLanguage
    languages: List[DetectedLanguage]
    frameworks: List[DetectedFramework]
    project_structure: ProjectStructure
    build_tools: List[str]
    package_managers: List[str]
    dependencies: List[DependencyInfo]
    total_files: int
    analysis_time: float
    file_languages: Dict[str, DetectedLanguage] = field(default_factory=dict)

    @property
    def framework_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.frameworks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primaryLanguage": self.primary_language.to_dict(),
            "allLanguages": [l.to_dict() for l in self.languages],
            "frameworks": [f.to_dict() for f in self.frameworks],
            "projectStructure": {
                "type": self.project_structure.type,
                "confidence": self.project_structure.confidence,
                "indicators": list(self.project_structure.indicators),
            },
            "buildTools": list(self.build_tools),
            "packageManagers": list(self.package_managers),
            "totalFiles": self.total_files,
            "analysisTime": round(self.analysis_time * 1000),
        }


# ============================================================================
# Parsing
# ============================================================================

@dataclass(frozen=True)
class Declaration:
    kind: DeclarationKind
    name: str
    line: int


@dataclass(frozen=True)
class ParseError:
    line: int
    column: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"line": self.line, "column": self.column, "message": self.message}


@dataclass
class StructuralUnit:
    """Parser output for one file.

    ``tree`` is a tree-sitter Tree for GRAMMAR-tier languages and None for
    SHALLOW-tier ones. ``declarations`` is populated for both tiers.
    """
    language: Language
    success: bool
    errors: List[ParseError] = field(default_factory=list)
    tree: Optional[Any] = None
    declarations: List[Declaration] = field(default_factory=list)
    grammar: Optional[str] = None

    @property
    def tier(self) -> ParserTier:
        return self.language.tier

    @property
    def root(self):
        return self.tree.root_node if self.tree is not None else None

    def declarations_of(self, kind: DeclarationKind) -> List[Declaration]:
        return [d for d in self.declarations if d.kind == kind]


# ============================================================================
# Taint
# ============================================================================

@dataclass(frozen=True)
class TaintSource:
    filename: str
    variable: str
    kind: SourceKind
    line: int
    column: int
    expression: str = ""
    # sink kinds a kind-specific sanitizer already cleared this value for
    sanitized: FrozenSet[SinkKind] = frozenset()


@dataclass(frozen=True)
class TaintSink:
    line: int
    column: int
    kind: SinkKind
    name: str


@dataclass
class TaintFlow:
    source: TaintSource
    sinks: List[TaintSink]
    path: List[str]
    confidence: int
    filename: str


# ============================================================================
# Issues & Results
# ============================================================================

@dataclass(frozen=True)
class Remediation:
    description: str
    effort: str        # Low | Medium | High
    priority: int      # 1..5

    def to_dict(self) -> Dict[str, Any]:
        return {"description": self.description, "effort": self.effort,
                "priority": self.priority}


@dataclass(frozen=True)
class SecurityIssue:
    """A single reported vulnerability. Immutable once emitted."""
    id: str
    type: str
    category: str
    message: str
    severity: Severity
    confidence: int
    filename: str
    line: int
    column: int
    code_snippet: str
    recommendation: str
    remediation: Remediation
    risk_rating: str
    impact: str
    likelihood: str
    references: Tuple[str, ...]
    tags: Tuple[str, ...]
    tool: str
    cvss_score: float
    cwe_id: Optional[str] = None
    owasp_category: Optional[str] = None
    rule_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "category": self.category,
            "message": self.message,
            "severity": self.severity.value,
            "confidence": self.confidence,
            "filename": self.filename,
            "line": self.line,
            "column": self.column,
            "codeSnippet": self.code_snippet,
            "recommendation": self.recommendation,
            "remediation": self.remediation.to_dict(),
            "riskRating": self.risk_rating,
            "impact": self.impact,
            "likelihood": self.likelihood,
            "references": list(self.references),
            "tags": list(self.tags),
            "tool": self.tool,
            "cvssScore": self.cvss_score,
            "cweId": self.cwe_id,
            "owaspCategory": self.owasp_category,
        }


@dataclass(frozen=True)
class PhaseError:
    phase: str
    message: str


@dataclass
class FileReport:
    """What happened to one file during analysis."""
    filename: str
    language: Optional[Language]
    lines: int = 0
    parse_errors: List[ParseError] = field(default_factory=list)
    phase_errors: List[PhaseError] = field(default_factory=list)
    timed_out: bool = False
    parsed: bool = False
    rule_issues: List[SecurityIssue] = field(default_factory=list)
    ast_issues: List[SecurityIssue] = field(default_factory=list)
    taint_issues: List[SecurityIssue] = field(default_factory=list)

    @property
    def issues(self) -> List[SecurityIssue]:
        return self.rule_issues + self.ast_issues + self.taint_issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "language": self.language.value if self.language else None,
            "tier": self.language.tier.value if self.language else None,
            "lines": self.lines,
            "parsed": self.parsed,
            "timedOut": self.timed_out,
            "parseErrors": [e.to_dict() for e in self.parse_errors],
            "errors": [{"phase": e.phase, "message": e.message} for e in self.phase_errors],
            "issueCount": len(self.issues),
        }


@dataclass
class Summary:
    critical_issues: int = 0
    high_issues: int = 0
    medium_issues: int = 0
    low_issues: int = 0
    security_score: int = 100
    quality_score: int = 100
    coverage_percentage: Optional[float] = None
    lines_analyzed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "criticalIssues": self.critical_issues,
            "highIssues": self.high_issues,
            "mediumIssues": self.medium_issues,
            "lowIssues": self.low_issues,
            "securityScore": self.security_score,
            "qualityScore": self.quality_score,
            "coveragePercentage": self.coverage_percentage,
            "linesAnalyzed": self.lines_analyzed,
        }


@dataclass
class VulnerableDependency:
    name: str
    severity: Severity
    version_range: str
    fix_available: bool
    advisories: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name, "severity": self.severity.value,
            "range": self.version_range, "fixAvailable": self.fix_available,
            "advisories": list(self.advisories),
        }


@dataclass
class DependencyAnalysis:
    status: str                     # ok | unavailable
    findings: List[VulnerableDependency] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status}
        if self.status == "ok":
            data["vulnerabilities"] = [f.to_dict() for f in self.findings]
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class AnalysisResult:
    issues: List[SecurityIssue]
    total_files: int
    analysis_time: float
    summary: Summary
    metrics: Dict[str, Any]
    dependencies: Dict[str, Any]
    language_detection: Optional[DetectionResult] = None
    dependency_analysis: Optional[DependencyAnalysis] = None
    files: List[FileReport] = field(default_factory=list)

    @property
    def has_blocking_issues(self) -> bool:
        return any(i.severity in (Severity.CRITICAL, Severity.HIGH) for i in self.issues)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "issues": [i.to_dict() for i in self.issues],
            "totalFiles": self.total_files,
            "analysisTime": round(self.analysis_time * 1000),
            "summary": self.summary.to_dict(),
            "metrics": dict(self.metrics),
            "dependencies": dict(self.dependencies),
        }
        if self.language_detection is not None:
            data["languageDetection"] = self.language_detection.to_dict()
        if self.dependency_analysis is not None:
            data["dependencyAnalysis"] = self.dependency_analysis.to_dict()
        data["files"] = [f.to_dict() for f in self.files]
        return data
