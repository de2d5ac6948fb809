"""AST semantic analyzer.

Detectors run over the tree-sitter tree of GRAMMAR-tier files; cheaper
declaration checks run over the declaration list of every file. A detector
that fails on one node is logged and skipped for that node only.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from tree_sitter import Node

from .deadline import Deadline
from .errors import AnalysisTimeout
from .issues import build_tags, make_issue
from .models import (
    Declaration, DeclarationKind, Language, ParserTier, SecurityIssue, Severity, SourceFile,
    StructuralUnit,
)
from .nodes import (
    assignment_pairs, callee_name, get_call_args, get_child_by_field, get_node_col,
    get_node_line, is_call, is_plain_string, is_string_literal, last_segment, matches_suffix,
    named_children, node_text, resolve_name, split_words, string_value, unwrap, walk,
)

logger = logging.getLogger(__name__)

TOOL = "AST Semantic Analyzer"

INJECTION_OWASP = "A03:2021 – Injection"
CRYPTO_OWASP = "A02:2021 – Cryptographic Failures"
AUTH_OWASP = "A07:2021 – Identification and Authentication Failures"
INTEGRITY_OWASP = "A08:2021 – Software and Data Integrity Failures"
DESIGN_OWASP = "A04:2021 – Insecure Design"

_WEB = (Language.JAVASCRIPT, Language.TYPESCRIPT)


def _named(name: Optional[str], signatures: Sequence[str]) -> bool:
    """Exact match for bare names, trailing-segment match for dotted ones.

    A leading dot (``.eval``) means a method of that name on any object.
    """
    if not name:
        return False
    for sig in signatures:
        if sig.startswith('.'):
            if '.' in name and last_segment(name) == sig[1:]:
                return True
        elif '.' in sig:
            if matches_suffix(name, sig):
                return True
        elif name == sig:
            return True
    return False


# ============================================================================
# Per-language call tables
# ============================================================================

EVAL_CALLS: Dict[Language, Tuple[str, ...]] = {
    Language.JAVASCRIPT: ('eval', 'Function', 'execScript', 'vm.runInContext', 'vm.runInNewContext',
                          'vm.runInThisContext', 'vm.compileFunction', 'vm.Script'),
    Language.PYTHON: ('eval', 'exec', 'compile'),
    Language.JAVA: ('.eval',),
    Language.GO: (),
    Language.PHP: ('eval', 'assert', 'create_function'),
}
EVAL_CALLS[Language.TYPESCRIPT] = EVAL_CALLS[Language.JAVASCRIPT]

TIMER_CALLS = ('setTimeout', 'setInterval', 'window.setTimeout', 'window.setInterval')

SPAWN_CALLS: Dict[Language, Tuple[str, ...]] = {
    Language.JAVASCRIPT: ('exec', 'execSync', 'spawn', 'spawnSync', 'execFile', 'execFileSync',
                          'child_process.exec', 'child_process.execSync', 'child_process.spawn',
                          'child_process.spawnSync', 'child_process.execFile', 'child_process.execFileSync',
                          'child_process.fork'),
    Language.PYTHON: ('os.system', 'os.popen', 'os.execl', 'os.execlp', 'os.execv', 'os.execvp',
                      'os.spawnl', 'os.spawnv', 'subprocess.call', 'subprocess.run', 'subprocess.Popen',
                      'subprocess.check_output', 'subprocess.check_call', 'subprocess.getoutput',
                      'subprocess.getstatusoutput', 'commands.getoutput'),
    Language.JAVA: ('Runtime.getRuntime.exec', 'ProcessBuilder', 'java.lang.ProcessBuilder'),
    Language.GO: ('exec.Command', 'exec.CommandContext', 'syscall.Exec', 'syscall.ForkExec'),
    Language.PHP: ('exec', 'system', 'shell_exec', 'passthru', 'popen', 'proc_open', 'pcntl_exec'),
}
SPAWN_CALLS[Language.TYPESCRIPT] = SPAWN_CALLS[Language.JAVASCRIPT]

_CHILD_PROCESS_METHODS = {'exec', 'execSync', 'spawn', 'spawnSync', 'execFile', 'execFileSync', 'fork'}

PRNG_CALLS: Dict[Language, Tuple[str, ...]] = {
    Language.JAVASCRIPT: ('Math.random',),
    Language.PYTHON: ('random.random', 'random.randint', 'random.choice', 'random.choices',
                      'random.randrange', 'random.uniform', 'random.getrandbits', 'random.sample'),
    Language.JAVA: ('Random', 'java.util.Random', 'Math.random'),
    Language.GO: ('rand.Int', 'rand.Intn', 'rand.Int31', 'rand.Int31n', 'rand.Int63', 'rand.Int63n',
                  'rand.Uint32', 'rand.Uint64', 'rand.Float32', 'rand.Float64', 'rand.Perm'),
    Language.PHP: ('rand', 'mt_rand', 'uniqid', 'lcg_value'),
}
PRNG_CALLS[Language.TYPESCRIPT] = PRNG_CALLS[Language.JAVASCRIPT]

SECRET_NAME_WORDS = ('password', 'secret', 'key', 'token')
_PLACEHOLDER_MARKERS = ('your_', 'example')
_SENSITIVE_CONTEXT_WORDS = {'token', 'session', 'id', 'key'}

MARKUP_PROPERTIES = {'innerHTML', 'outerHTML'}
RAW_MARKUP_ATTRIBUTES = {'dangerouslySetInnerHTML'}

_ARGUMENT_CONTAINERS = {'arguments', 'argument_list', 'argument'}


# ============================================================================
# Declaration checks
# ============================================================================

@dataclass(frozen=True)
class DeclarationCheck:
    """A cheap check over the parser's declaration list."""
    id: str
    kind: DeclarationKind
    pattern: re.Pattern
    type: str
    category: str
    severity: Severity
    cwe: str
    owasp: Optional[str]
    message: str
    recommendation: str
    confidence: int = 50


def _check(id: str, kind: DeclarationKind, pattern: str, type: str, category: str,
           severity: Severity, cwe: str, owasp: Optional[str], message: str,
           recommendation: str, confidence: int = 50) -> DeclarationCheck:
    return DeclarationCheck(id, kind, re.compile(pattern), type, category, severity, cwe, owasp,
                            message, recommendation, confidence)


_IMPORT = DeclarationKind.IMPORT
_FUNCTION = DeclarationKind.FUNCTION

_JS_DECLARATION_CHECKS = [
    _check('decl-js-child-process', _IMPORT, r'^(?:node:)?child_process$', 'Sensitive Module Import',
           'Command Injection', Severity.MEDIUM, 'CWE-78', INJECTION_OWASP,
           "Module imports child_process; every command it builds must be validated",
           "Prefer execFile/spawn with an argument array and never build shell strings from input"),
    _check('decl-js-vm', _IMPORT, r'^(?:node:)?vm$', 'Sensitive Module Import',
           'Code Injection', Severity.MEDIUM, 'CWE-95', INJECTION_OWASP,
           "Module imports vm, which is not a security sandbox",
           "Never run untrusted code through vm. Use an isolated process instead"),
]

DECLARATION_CHECKS: Dict[Language, List[DeclarationCheck]] = {
    Language.JAVASCRIPT: _JS_DECLARATION_CHECKS,
    Language.TYPESCRIPT: _JS_DECLARATION_CHECKS,
    Language.PYTHON: [
        _check('decl-py-deserialization', _IMPORT, r'^(?:c?pickle|_pickle|marshal|shelve|dill)\b',
               'Insecure Deserialization Import', 'Insecure Deserialization', Severity.MEDIUM, 'CWE-502',
               INTEGRITY_OWASP, "Module imports a deserializer that can execute code from untrusted data",
               "Use JSON or another data-only format for untrusted input"),
    ],
    Language.JAVA: [
        _check('decl-java-serialization', _IMPORT, r'^java\.io\.(?:Serializable|ObjectInputStream)$',
               'Insecure Deserialization Import', 'Insecure Deserialization', Severity.MEDIUM, 'CWE-502',
               INTEGRITY_OWASP, "Class relies on Java native serialization",
               "Use ObjectInputFilter or a data-only format such as JSON"),
        _check('decl-java-process', _IMPORT, r'^java\.lang\.(?:Runtime|ProcessBuilder)$',
               'Sensitive Module Import', 'Command Injection', Severity.MEDIUM, 'CWE-78', INJECTION_OWASP,
               "Class imports process execution APIs",
               "Validate every command argument against an allowlist"),
    ],
    Language.GO: [
        _check('decl-go-exec', _IMPORT, r'^os/exec$', 'Sensitive Module Import', 'Command Injection',
               Severity.MEDIUM, 'CWE-78', INJECTION_OWASP, "Package imports os/exec",
               "Pass arguments separately to exec.Command and never through a shell"),
        _check('decl-go-unsafe', _IMPORT, r'^unsafe$', 'Unsafe Package Import', 'Memory Safety',
               Severity.MEDIUM, 'CWE-119', DESIGN_OWASP, "Package imports unsafe, bypassing Go memory safety",
               "Remove unsafe usage or isolate it behind a reviewed API"),
        _check('decl-go-reflect', _IMPORT, r'^reflect$', 'Reflection Import', 'Unsafe Reflection',
               Severity.LOW, 'CWE-470', DESIGN_OWASP, "Package uses reflection",
               "Never select types or methods by reflection from untrusted input", confidence=40),
    ],
    Language.PHP: [
        _check('decl-php-dangerous-function', _FUNCTION, r'^(?:unserialize|eval)$', 'Dangerous Function Name',
               'Code Injection', Severity.MEDIUM, 'CWE-95', INJECTION_OWASP,
               "User-defined function shadows a dangerous built-in name",
               "Rename the function and audit every caller"),
    ],
    Language.C: [
        _check('decl-c-dlopen', _IMPORT, r'^dlfcn\.h$', 'Dynamic Library Loading', 'Process Control',
               Severity.LOW, 'CWE-114', DESIGN_OWASP, "File loads shared libraries at runtime",
               "Load libraries only from absolute, trusted paths", confidence=40),
    ],
    Language.CPP: [
        _check('decl-cpp-dlopen', _IMPORT, r'^dlfcn\.h$', 'Dynamic Library Loading', 'Process Control',
               Severity.LOW, 'CWE-114', DESIGN_OWASP, "File loads shared libraries at runtime",
               "Load libraries only from absolute, trusted paths", confidence=40),
    ],
    Language.CSHARP: [
        _check('decl-cs-binaryformatter', _IMPORT, r'^System\.Runtime\.Serialization\.Formatters\.Binary$',
               'Insecure Deserialization Import', 'Insecure Deserialization', Severity.HIGH, 'CWE-502',
               INTEGRITY_OWASP, "File imports BinaryFormatter, which is unsafe for untrusted data",
               "Use System.Text.Json with explicit types", confidence=60),
        _check('decl-cs-jsserializer', _IMPORT, r'^System\.Web\.Script\.Serialization$',
               'Insecure Deserialization Import', 'Insecure Deserialization', Severity.MEDIUM, 'CWE-502',
               INTEGRITY_OWASP, "File imports JavaScriptSerializer",
               "Avoid type resolvers when deserializing untrusted data"),
    ],
    Language.RUBY: [
        _check('decl-ruby-open-uri', _IMPORT, r'^open-uri$', 'Sensitive Library Import',
               'Server-Side Request Forgery', Severity.MEDIUM, 'CWE-918', 'A10:2021 – Server-Side Request Forgery',
               "open-uri lets Kernel#open fetch URLs and run commands",
               "Use Net::HTTP or URI.open with validated URLs"),
        _check('decl-ruby-network', _IMPORT, r'^(?:net/http|socket)$', 'Network Library Import',
               'Network Access', Severity.LOW, 'CWE-918', 'A10:2021 – Server-Side Request Forgery',
               "File opens network connections", "Validate remote hosts against an allowlist", confidence=40),
    ],
    Language.RUST: [
        _check('decl-rust-unsafe-fn', _FUNCTION, r'(?i)unsafe|raw', 'Unsafe Function', 'Memory Safety',
               Severity.MEDIUM, 'CWE-119', DESIGN_OWASP, "Function name suggests unchecked memory access",
               "Document the safety contract and keep unsafe code minimal"),
    ],
    Language.SWIFT: [
        _check('decl-swift-crypto', _IMPORT, r'^(?:Security|CryptoKit|CommonCrypto)$', 'Cryptography Import',
               'Weak Cryptography', Severity.LOW, 'CWE-327', CRYPTO_OWASP, "File uses low-level cryptography APIs",
               "Review algorithm choices and key storage", confidence=30),
    ],
    Language.KOTLIN: [
        _check('decl-kotlin-webview', _IMPORT, r'^android\.(?:webkit\.WebView|content\.Intent)$',
               'Sensitive Android API Import', 'Intent Injection', Severity.LOW, 'CWE-927', INJECTION_OWASP,
               "File uses WebView or Intent APIs", "Validate intent extras and restrict WebView content",
               confidence=30),
    ],
}


# ============================================================================
# Analyzer
# ============================================================================

class _FileContext:
    """Per-file state shared by the detectors during one analyze() call."""

    def __init__(self, unit: StructuralUnit, source: SourceFile):
        self.unit = unit
        self.language = unit.language
        self.filename = source.filename
        self.lines = source.content.split('\n')
        self.issues: List[SecurityIssue] = []
        self.child_process_aliases = self._child_process_aliases()
        self.crypto_rand_only = self._crypto_rand_only()

    def _child_process_aliases(self) -> set:
        aliases = set()
        if self.language not in _WEB or self.unit.root is None:
            return aliases
        for node in walk(self.unit.root):
            if node.type == 'variable_declarator':
                value = unwrap(get_child_by_field(node, 'value'))
                if value is None or not is_call(value) or callee_name(value) != 'require':
                    continue
                args = get_call_args(value)
                if args and is_string_literal(args[0]) and string_value(args[0]) in ('child_process', 'node:child_process'):
                    aliases.add(node_text(get_child_by_field(node, 'name')))
            elif node.type == 'import_statement':
                src = get_child_by_field(node, 'source')
                if src is not None and string_value(src) in ('child_process', 'node:child_process'):
                    for ident in walk(node):
                        if ident.type == 'identifier':
                            aliases.add(node_text(ident))
        return aliases

    def _crypto_rand_only(self) -> bool:
        if self.language != Language.GO:
            return False
        imports = {d.name for d in self.unit.declarations_of(DeclarationKind.IMPORT)}
        return 'crypto/rand' in imports and 'math/rand' not in imports


class ASTAnalyzer:
    """Runs the tree detectors and declaration checks for one file at a time.

    Holds no per-file state, so one instance can serve every worker thread.
    """

    def __init__(self):
        self.detectors: List[Tuple[str, Callable[[Node, _FileContext], None]]] = [
            ('dynamic-code-execution', self._detect_dynamic_code),
            ('process-spawn', self._detect_process_spawn),
            ('raw-markup-attribute', self._detect_markup_attribute),
            ('raw-markup-assignment', self._detect_markup_assignment),
            ('hardcoded-secret', self._detect_hardcoded_secret),
            ('weak-randomness', self._detect_weak_random),
        ]

    def analyze(self, unit: StructuralUnit, source: SourceFile,
                deadline: Optional[Deadline] = None) -> List[SecurityIssue]:
        ctx = _FileContext(unit, source)
        self._check_declarations(ctx)
        if unit.tier is ParserTier.GRAMMAR and unit.root is not None:
            stop = (lambda: deadline.check('ast', source.filename)) if deadline is not None else None
            for node in walk(unit.root, should_stop=stop):
                for name, detector in self.detectors:
                    try:
                        detector(node, ctx)
                    except AnalysisTimeout:
                        raise
                    except Exception as e:
                        logger.warning("%s: phase=ast detector=%s node=%s line=%d failed: %s",
                                       source.filename, name, node.type, get_node_line(node), e)
        return ctx.issues

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit(self, ctx: _FileContext, node: Node, *, type: str, category: str, message: str,
              severity: Severity, confidence: int, cwe: str, owasp: str, recommendation: str,
              rule_id: str, mask: bool = False, line: Optional[int] = None, column: Optional[int] = None):
        ctx.issues.append(make_issue(
            tool=TOOL,
            type=type,
            category=category,
            message=message,
            severity=severity,
            confidence=confidence,
            lines=ctx.lines,
            filename=ctx.filename,
            line=line if line is not None else get_node_line(node),
            column=column if column is not None else get_node_col(node),
            recommendation=recommendation,
            cwe=cwe,
            owasp=owasp,
            tags=build_tags(category, 'ast', ctx.language.value),
            rule_id=rule_id,
            mask=mask,
        ))

    # ------------------------------------------------------------------
    # Declarations (both tiers)
    # ------------------------------------------------------------------

    def _check_declarations(self, ctx: _FileContext):
        for check in DECLARATION_CHECKS[ctx.language]:
            for decl in ctx.unit.declarations_of(check.kind):
                if not check.pattern.search(decl.name):
                    continue
                ctx.issues.append(self._declaration_issue(ctx, check, decl))

    def _declaration_issue(self, ctx: _FileContext, check: DeclarationCheck, decl: Declaration) -> SecurityIssue:
        return make_issue(
            tool=TOOL,
            type=check.type,
            category=check.category,
            message=f"{check.message} ({decl.name})",
            severity=check.severity,
            confidence=check.confidence,
            lines=ctx.lines,
            filename=ctx.filename,
            line=decl.line,
            column=0,
            recommendation=check.recommendation,
            cwe=check.cwe,
            owasp=check.owasp,
            tags=build_tags(check.category, 'declaration', ctx.language.value),
            rule_id=check.id,
            discriminator=decl.name,
        )

    # ------------------------------------------------------------------
    # Tree detectors
    # ------------------------------------------------------------------

    def _detect_dynamic_code(self, node: Node, ctx: _FileContext):
        if not is_call(node):
            return
        name = callee_name(node)
        if _named(name, EVAL_CALLS[ctx.language]):
            self._emit(ctx, node, type="Dynamic Code Execution", category="Code Injection",
                       message=f"Dynamic code execution via {name}()",
                       severity=Severity.CRITICAL, confidence=90, cwe="CWE-95", owasp=INJECTION_OWASP,
                       recommendation="Never evaluate strings as code. Parse data with a dedicated parser "
                                      "and dispatch through an explicit lookup table",
                       rule_id='ast-dynamic-code')
            return
        if ctx.language in _WEB and _named(name, TIMER_CALLS):
            args = get_call_args(node)
            if args and self._is_string_like(args[0]):
                self._emit(ctx, node, type="Dynamic Code Execution", category="Code Injection",
                           message=f"{last_segment(name)}() called with a string, which is evaluated as code",
                           severity=Severity.CRITICAL, confidence=80, cwe="CWE-95", owasp=INJECTION_OWASP,
                           recommendation="Pass a function reference instead of a string",
                           rule_id='ast-string-timer')

    @staticmethod
    def _is_string_like(node: Node) -> bool:
        node = unwrap(node)
        if node is None:
            return False
        if is_string_literal(node):
            return True
        if node.type == 'binary_expression':
            return any(ASTAnalyzer._is_string_like(c) for c in named_children(node))
        return False

    def _detect_process_spawn(self, node: Node, ctx: _FileContext):
        if node.type == 'shell_command_expression':
            self._emit(ctx, node, type="Process Spawn", category="Command Injection",
                       message="Backtick shell execution",
                       severity=Severity.CRITICAL, confidence=85, cwe="CWE-78", owasp=INJECTION_OWASP,
                       recommendation="Avoid shell execution. If unavoidable, escape every argument "
                                      "with escapeshellarg()",
                       rule_id='ast-process-spawn')
            return
        if not is_call(node):
            return
        name = callee_name(node)
        spawn = _named(name, SPAWN_CALLS[ctx.language])
        if not spawn and name and '.' in name and ctx.child_process_aliases:
            owner, _, method = name.rpartition('.')
            spawn = owner in ctx.child_process_aliases and method in _CHILD_PROCESS_METHODS
        if spawn:
            self._emit(ctx, node, type="Process Spawn", category="Command Injection",
                       message=f"Operating system command executed via {name}()",
                       severity=Severity.CRITICAL, confidence=85, cwe="CWE-78", owasp=INJECTION_OWASP,
                       recommendation="Pass arguments as a list without a shell and validate them "
                                      "against an allowlist",
                       rule_id='ast-process-spawn')

    def _detect_markup_attribute(self, node: Node, ctx: _FileContext):
        if ctx.language not in _WEB:
            return
        if node.type == 'jsx_attribute':
            children = named_children(node)
            attr = node_text(children[0]) if children else ''
        elif node.type == 'pair':
            attr = node_text(get_child_by_field(node, 'key')).strip('\'"')
        else:
            return
        if attr in RAW_MARKUP_ATTRIBUTES:
            self._emit(ctx, node, type="Raw HTML Attribute", category="Cross-Site Scripting",
                       message=f"{attr} renders raw HTML",
                       severity=Severity.HIGH, confidence=85, cwe="CWE-79", owasp=INJECTION_OWASP,
                       recommendation="Sanitize HTML with DOMPurify before rendering, or render text instead",
                       rule_id='ast-raw-markup-attribute')

    def _detect_markup_assignment(self, node: Node, ctx: _FileContext):
        if ctx.language not in _WEB or node.type not in ('assignment_expression', 'augmented_assignment_expression'):
            return
        left = get_child_by_field(node, 'left')
        if left is None or left.type != 'member_expression':
            return
        prop = node_text(get_child_by_field(left, 'property'))
        if prop in MARKUP_PROPERTIES:
            self._emit(ctx, node, type="Raw HTML Assignment", category="Cross-Site Scripting",
                       message=f"Assignment to {prop} inserts raw HTML into the DOM",
                       severity=Severity.HIGH, confidence=80, cwe="CWE-79", owasp=INJECTION_OWASP,
                       recommendation="Use textContent for text, or sanitize with DOMPurify.sanitize()",
                       rule_id='ast-raw-markup-assignment')

    def _detect_hardcoded_secret(self, node: Node, ctx: _FileContext):
        for target, value, _ in assignment_pairs(node):
            value = unwrap(value)
            if not is_plain_string(value):
                continue
            name = last_segment(resolve_name(target)) or node_text(target)
            lowered = name.lower()
            if not any(word in lowered for word in SECRET_NAME_WORDS):
                continue
            literal = string_value(value)
            if len(literal) <= 8 or any(marker in literal.lower() for marker in _PLACEHOLDER_MARKERS):
                continue
            self._emit(ctx, target, type="Hardcoded Secret", category="Hardcoded Secret",
                       message=f"Hardcoded credential assigned to '{name}'",
                       severity=Severity.HIGH, confidence=80, cwe="CWE-798", owasp=AUTH_OWASP,
                       recommendation="Load secrets from environment variables or a secrets manager",
                       rule_id='ast-hardcoded-secret', mask=True)

    def _detect_weak_random(self, node: Node, ctx: _FileContext):
        if not is_call(node) or ctx.crypto_rand_only:
            return
        name = callee_name(node)
        if not _named(name, PRNG_CALLS[ctx.language]):
            return
        parent = node.parent
        as_argument = parent is not None and parent.type in _ARGUMENT_CONTAINERS
        statement = self._enclosing_statement(node)
        words = set(split_words(node_text(statement))) if statement is not None else set()
        if not (as_argument or words & _SENSITIVE_CONTEXT_WORDS):
            return
        self._emit(ctx, node, type="Weak Random Number Generation", category="Weak Randomness",
                   message=f"{name}() is not cryptographically secure",
                   severity=Severity.MEDIUM, confidence=70, cwe="CWE-338", owasp=CRYPTO_OWASP,
                   recommendation="Use a CSPRNG: crypto.randomBytes / crypto.getRandomValues, "
                                  "secrets, SecureRandom, crypto/rand or random_bytes()",
                   rule_id='ast-weak-random')

    @staticmethod
    def _enclosing_statement(node: Node) -> Optional[Node]:
        current = node.parent
        while current is not None:
            t = current.type
            if t.endswith('_statement') or t.endswith('_declaration') or t in (
                    'variable_declarator', 'assignment', 'expression_statement', 'short_var_declaration'):
                return current
            current = current.parent
        return None
