"""Intraprocedural taint tracking over tree-sitter trees.

One linear pre-order pass per file, in source order:

1. declarations and assignments taint (or clear) the bound variable;
2. calls to a sink report every tainted identifier among their arguments;
3. assignments to raw-markup DOM properties are treated as xss sinks.

All per-file state lives in a ``TaintContext`` created for that file, so a
single ``TaintTracker`` can serve every worker thread.

Limitations: no interprocedural or cross-file propagation, no taint on
object fields, and flow-insensitive beyond reassignment of a name.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, List, Optional, Set, Tuple

from tree_sitter import Node

from .config import ScanConfig
from .deadline import Deadline
from .issues import build_references, make_issue
from .models import (
    Language, SecurityIssue, Severity, SinkKind, SourceFile, SourceKind, StructuralUnit,
    TaintFlow, TaintSink, TaintSource,
)
from .nodes import (
    CALL_TYPES, IDENTIFIER_TYPES, MEMBER_FIELDS, SUBSCRIPT_TYPES, assignment_pairs, callee_name,
    get_call_args, get_child_by_field, get_node_col, get_node_line, identifiers_in, is_call,
    last_segment, named_children, node_text, resolve_name, target_name, unwrap, walk,
)
from .signatures import TAINT_SIGNATURES, Signatures

logger = logging.getLogger(__name__)

TOOL = "Data Flow Analyzer"

# ============================================================================
# Lookup tables
# ============================================================================

SINK_SEVERITY = {
    SinkKind.SQL: Severity.CRITICAL,
    SinkKind.COMMAND: Severity.CRITICAL,
    SinkKind.EVAL: Severity.CRITICAL,
    SinkKind.XSS: Severity.HIGH,
    SinkKind.FILE_WRITE: Severity.HIGH,
    SinkKind.REDIRECT: Severity.MEDIUM,
}

SINK_CATEGORY = {
    SinkKind.SQL: "SQL Injection",
    SinkKind.XSS: "Cross-Site Scripting",
    SinkKind.COMMAND: "Command Injection",
    SinkKind.EVAL: "Code Injection",
    SinkKind.FILE_WRITE: "Path Traversal",
    SinkKind.REDIRECT: "Open Redirect",
}

SINK_CWE = {
    SinkKind.SQL: "CWE-89",
    SinkKind.XSS: "CWE-79",
    SinkKind.COMMAND: "CWE-78",
    SinkKind.EVAL: "CWE-95",
    SinkKind.FILE_WRITE: "CWE-22",
    SinkKind.REDIRECT: "CWE-601",
}

SINK_RECOMMENDATION = {
    SinkKind.SQL: "Use parameterized queries (placeholders) instead of building SQL from strings",
    SinkKind.XSS: "Encode output for its HTML context or sanitize it with a vetted library",
    SinkKind.COMMAND: "Pass arguments as a list without a shell and validate them against an allowlist",
    SinkKind.EVAL: "Never evaluate untrusted data as code",
    SinkKind.FILE_WRITE: "Resolve paths against a fixed base directory and reject traversal sequences",
    SinkKind.REDIRECT: "Validate redirect targets against an allowlist of trusted paths or domains",
}

INJECTION_OWASP = "A03:2021 – Injection"
ACCESS_OWASP = "A01:2021 – Broken Access Control"

# Expressions that build a string out of their operands
_STRING_BUILDERS = {
    'binary_expression', 'template_string', 'string', 'encapsed_string', 'concatenated_string',
    'interpreted_string_literal', 'heredoc', 'parenthesized_expression',
}
_FORMAT_CALLS = {'format', 'sprintf', 'Sprintf', 'join', 'concat', 'String.format'}

_FUNCTION_TYPES = {
    'arrow_function', 'function', 'function_expression', 'lambda', 'func_literal',
    'anonymous_function_creation_expression', 'anonymous_function', 'lambda_expression',
}

_ECHO_TYPES = {'echo_statement', 'print_intrinsic'}


def flow_confidence(source: SourceKind, sink: SinkKind) -> int:
    if source == SourceKind.USER_INPUT:
        if sink in (SinkKind.SQL, SinkKind.COMMAND, SinkKind.EVAL):
            return 95
        if sink == SinkKind.XSS:
            return 90
        if sink == SinkKind.FILE_WRITE:
            return 80
    elif source in (SourceKind.EXTERNAL, SourceKind.FILE_READ):
        if sink in (SinkKind.SQL, SinkKind.COMMAND):
            return 75
        if sink == SinkKind.XSS:
            return 70
    return 60


# ============================================================================
# Per-file state
# ============================================================================

@dataclass
class TaintContext:
    """Mutable state of one file's taint pass. Never shared across files."""
    filename: str
    language: Language
    signatures: Signatures
    lines: List[str]
    tainted: Dict[str, TaintSource] = field(default_factory=dict)
    assigned: Set[str] = field(default_factory=set)
    deadline: Optional[Deadline] = None
    sinks: List[TaintSink] = field(default_factory=list)
    flows: List[TaintFlow] = field(default_factory=list)
    discriminators: List[str] = field(default_factory=list)

    def skip(self, node: Node, kind: Optional[SinkKind] = None) -> bool:
        """Subtrees the argument search does not enter for a sink of ``kind``."""
        if node.type in _FUNCTION_TYPES:
            return True
        return is_call(node) and self.signatures.is_sanitizer(callee_name(node), kind)


# ============================================================================
# Tracker
# ============================================================================

class TaintTracker:
    """Links untrusted inputs to dangerous operations within one file."""

    def __init__(self, config: Optional[ScanConfig] = None):
        self._signatures: Dict[Language, Signatures] = {
            language: sigs.merged(language, config) for language, sigs in TAINT_SIGNATURES.items()
        }

    def supports(self, language: Language) -> bool:
        return language in self._signatures

    def track(self, unit: StructuralUnit, source: SourceFile,
              deadline: Optional[Deadline] = None) -> TaintContext:
        """Run the pass and return the populated context."""
        ctx = TaintContext(
            filename=source.filename,
            language=unit.language,
            signatures=self._signatures[unit.language],
            lines=source.content.split('\n'),
            deadline=deadline,
        )
        stop = (lambda: deadline.check('taint', source.filename)) if deadline is not None else None
        for node in walk(unit.root, should_stop=stop):
            self._visit_assignment(node, ctx)
            self._visit_sink_call(node, ctx)
            self._visit_markup_assignment(node, ctx)
            self._visit_echo(node, ctx)
        return ctx

    def analyze(self, unit: StructuralUnit, source: SourceFile,
                deadline: Optional[Deadline] = None) -> List[SecurityIssue]:
        if unit.root is None or not self.supports(unit.language):
            return []
        ctx = self.track(unit, source, deadline)
        issues = [self.to_issue(flow, ctx, disc) for flow, disc in zip(ctx.flows, ctx.discriminators)]
        if issues:
            logger.debug("Taint: %d flow(s) in %s", len(issues), source.filename)
        return issues

    # ------------------------------------------------------------------
    # Step 1: sources
    # ------------------------------------------------------------------

    def _classify(self, expr: Optional[Node], ctx: TaintContext) -> Optional[TaintSource]:
        """The TaintSource an expression carries, or None when it is clean."""
        expr = unwrap(expr)
        if expr is None:
            return None
        sigs = ctx.signatures
        t = expr.type
        if t in IDENTIFIER_TYPES:
            return self._named_origin(expr, ctx)
        if t in CALL_TYPES or t in MEMBER_FIELDS or t in SUBSCRIPT_TYPES:
            name = resolve_name(expr)
            kind = sigs.source_kind(name)
            if kind is not None:
                return self._source_at(expr, name, kind, ctx)
            if t in CALL_TYPES and last_segment(callee_name(expr)) in _FORMAT_CALLS:
                return self._compound_origin(expr, ctx)
            return None
        if t in _STRING_BUILDERS:
            return self._compound_origin(expr, ctx)
        return None

    def _compound_origin(self, expr: Node, ctx: TaintContext) -> Optional[TaintSource]:
        """Origin of a built string, with the sink kinds its sanitizers already cover."""
        origin = self._first_tainted(expr, ctx)
        if origin is None:
            return None
        cleared = frozenset(
            kind for kind in ctx.signatures.kind_sanitizers
            if self._first_tainted(expr, ctx, kind) is None
        )
        if cleared:
            return replace(origin, sanitized=origin.sanitized | cleared)
        return origin

    def _first_tainted(self, expr: Node, ctx: TaintContext,
                       kind: Optional[SinkKind] = None) -> Optional[TaintSource]:
        for _, origin in self._tainted_operands(expr, ctx, kind):
            return origin
        return None

    def _named_origin(self, ident: Node, ctx: TaintContext) -> Optional[TaintSource]:
        """Taint of a variable reference.

        The most recent visited write wins. Conventional user-input names
        (``userInput``, ``$input``) count as sources only while the file has
        not assigned them.
        """
        name = node_text(ident)
        if name in ctx.tainted:
            return ctx.tainted[name]
        if name not in ctx.assigned and name in ctx.signatures.user_input_names:
            return self._source_at(ident, name, SourceKind.USER_INPUT, ctx)
        return None

    def _source_at(self, node: Node, name: str, kind: SourceKind, ctx: TaintContext) -> TaintSource:
        return TaintSource(ctx.filename, name, kind, get_node_line(node), get_node_col(node),
                           node_text(node)[:80])

    def _visit_assignment(self, node: Node, ctx: TaintContext):
        for target, value, augmented in assignment_pairs(node):
            name = target_name(target)
            if name is None:
                continue
            origin = self._classify(value, ctx)
            if origin is not None:
                ctx.tainted[name] = TaintSource(
                    ctx.filename, name, origin.kind, get_node_line(target), get_node_col(target),
                    origin.expression, origin.sanitized,
                )
                ctx.assigned.add(name)
            elif not augmented:
                ctx.tainted.pop(name, None)
                ctx.assigned.add(name)

    # ------------------------------------------------------------------
    # Step 2 & 3: sinks
    # ------------------------------------------------------------------

    def _tainted_operands(self, expr: Node, ctx: TaintContext,
                          kind: Optional[SinkKind] = None) -> Iterator[Tuple[Node, TaintSource]]:
        """(node, origin) for every tainted identifier or direct source read in ``expr``."""
        sigs = ctx.signatures

        def skip(node: Node) -> bool:
            if ctx.deadline is not None:
                ctx.deadline.check('taint', ctx.filename)
            return ctx.skip(node, kind)

        for ident in identifiers_in(expr, skip=skip):
            origin = self._named_origin(ident, ctx)
            if origin is not None and kind not in origin.sanitized:
                yield ident, origin

        stack = [expr]
        while stack:
            current = stack.pop()
            if skip(current):
                continue
            t = current.type
            if t in CALL_TYPES or t in MEMBER_FIELDS or t in SUBSCRIPT_TYPES:
                name = resolve_name(current)
                source_kind = sigs.source_kind(name)
                if source_kind is not None:
                    yield current, self._source_at(current, name, source_kind, ctx)
                    continue
            stack.extend(reversed(named_children(current)))

    def _record(self, sink: TaintSink, operands: List[Tuple[Node, TaintSource]], ctx: TaintContext):
        ctx.sinks.append(sink)
        for node, origin in operands:
            ctx.flows.append(TaintFlow(
                source=origin,
                sinks=[sink],
                path=[origin.variable, node_text(node)[:60], sink.name],
                confidence=flow_confidence(origin.kind, sink.kind),
                filename=ctx.filename,
            ))
            ctx.discriminators.append(f"{origin.variable}:{get_node_line(node)}:{get_node_col(node)}")

    def _visit_sink_call(self, node: Node, ctx: TaintContext):
        if not is_call(node):
            return
        name = callee_name(node)
        match = ctx.signatures.sink_kind(name)
        if match is None:
            return
        sink = TaintSink(get_node_line(node), get_node_col(node), match[0], name)
        operands = []
        for arg in get_call_args(node):
            operands.extend(self._tainted_operands(arg, ctx, sink.kind))
        self._record(sink, operands, ctx)

    def _visit_markup_assignment(self, node: Node, ctx: TaintContext):
        if not ctx.signatures.markup_properties or node.type not in (
                'assignment_expression', 'augmented_assignment_expression'):
            return
        left = get_child_by_field(node, 'left')
        if left is None or left.type != 'member_expression':
            return
        prop = node_text(get_child_by_field(left, 'property'))
        if prop not in ctx.signatures.markup_properties:
            return
        right = get_child_by_field(node, 'right')
        if right is None:
            return
        sink = TaintSink(get_node_line(node), get_node_col(node), SinkKind.XSS, prop)
        self._record(sink, list(self._tainted_operands(right, ctx, SinkKind.XSS)), ctx)

    def _visit_echo(self, node: Node, ctx: TaintContext):
        if not ctx.signatures.echo_is_sink or node.type not in _ECHO_TYPES:
            return
        name = 'echo' if node.type == 'echo_statement' else 'print'
        sink = TaintSink(get_node_line(node), get_node_col(node), SinkKind.XSS, name)
        operands = []
        for child in named_children(node):
            operands.extend(self._tainted_operands(child, ctx, SinkKind.XSS))
        self._record(sink, operands, ctx)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_issue(self, flow: TaintFlow, ctx: TaintContext, discriminator: str = "") -> SecurityIssue:
        sink = flow.sinks[0]
        category = SINK_CATEGORY[sink.kind]
        cwe = SINK_CWE[sink.kind]
        owasp = ACCESS_OWASP if sink.kind == SinkKind.REDIRECT else INJECTION_OWASP
        origin = flow.source
        return make_issue(
            tool=TOOL,
            type=f"Data Flow - {category}",
            category=category,
            message=(f"Untrusted data from {origin.expression or origin.variable} "
                     f"(line {origin.line}) reaches {sink.name}() [{origin.kind.value} -> {sink.kind.value}]"),
            severity=SINK_SEVERITY[sink.kind],
            confidence=flow.confidence,
            lines=ctx.lines,
            filename=flow.filename,
            line=sink.line,
            column=sink.column,
            recommendation=SINK_RECOMMENDATION[sink.kind],
            likelihood="High" if origin.kind == SourceKind.USER_INPUT else "Medium",
            cwe=cwe,
            owasp=owasp,
            tags=['data-flow', 'taint-analysis', sink.kind.value, origin.kind.value],
            references=build_references(cwe, owasp),
            rule_id=f"taint-{sink.kind.value}",
            discriminator=discriminator,
        )
