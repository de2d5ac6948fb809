"""Parser adapter: turns file content into a StructuralUnit.

Languages with a tree-sitter grammar get a full syntax tree (parsed in
error-recovery mode, so broken files still produce a best-effort tree plus a
list of syntax errors). The remaining languages get a single line-oriented
pass that captures imports, functions and type declarations.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

import tree_sitter_go as tsgo
import tree_sitter_java as tsjava
import tree_sitter_javascript as tsjs
import tree_sitter_php as tsphp
import tree_sitter_python as tspython
import tree_sitter_typescript as tsts
from tree_sitter import Language as Grammar, Node, Parser

from .models import (
    Declaration, DeclarationKind, Language, ParseError, ParserTier, StructuralUnit,
)
from .nodes import (
    find_nodes_multi, get_child_by_field, get_node_col, get_node_line, named_children,
    node_text, string_value, walk,
)

logger = logging.getLogger(__name__)

MAX_PARSE_ERRORS = 50

GRAMMARS: Dict[str, Grammar] = {
    'javascript': Grammar(tsjs.language()),
    'typescript': Grammar(tsts.language_typescript()),
    'tsx': Grammar(tsts.language_tsx()),
    'python': Grammar(tspython.language()),
    'java': Grammar(tsjava.language()),
    'go': Grammar(tsgo.language()),
    'php': Grammar(tsphp.language_php()),
    'php_only': Grammar(tsphp.language_php_only()),
}

# Primary grammar first, then the more permissive fallbacks.
GRAMMAR_CHAINS: Dict[Language, Tuple[str, ...]] = {
    Language.JAVASCRIPT: ('javascript', 'tsx'),
    Language.TYPESCRIPT: ('typescript', 'tsx'),
    Language.PYTHON: ('python',),
    Language.JAVA: ('java',),
    Language.GO: ('go',),
    Language.PHP: ('php', 'php_only'),
}


def grammar_chain(language: Language, filename: str = "", content: str = "") -> Tuple[str, ...]:
    """Ordered grammar names to try for a file."""
    if language == Language.TYPESCRIPT and filename.lower().endswith('.tsx'):
        return ('tsx', 'typescript')
    if language == Language.PHP and '<?php' not in content and '<?=' not in content:
        return ('php_only', 'php')
    return GRAMMAR_CHAINS[language]


# ============================================================================
# Shallow tier
# ============================================================================

_C_FUNCTION = re.compile(
    r'^(?!(?:if|for|while|switch|return|else|do|sizeof)\b)'
    r'[A-Za-z_][\w\s\*&:<>,~]*?\b(\w+)\s*\([^;]*\)\s*(?:const\s*)?(?:noexcept\s*)?\{')

_C_SHARP_MODIFIERS = r'(?:(?:public|private|protected|internal|static|virtual|override|async|abstract|sealed|partial|unsafe|extern|new)\s+)'
_KOTLIN_MODIFIERS = r'(?:(?:public|private|protected|internal|open|abstract|sealed|data|inner|override|suspend|inline|enum|annotation)\s+)*'
_SWIFT_MODIFIERS = r'(?:(?:public|private|internal|open|final|fileprivate|static|class|override|mutating|@\w+)\s+)*'
_RUST_VIS = r'(?:pub(?:\([^)]*\))?\s+)?'

SHALLOW_PATTERNS: Dict[Language, List[Tuple[DeclarationKind, re.Pattern]]] = {
    Language.C: [
        (DeclarationKind.IMPORT, re.compile(r'^#\s*include\s*[<"]([^>"]+)[>"]')),
        (DeclarationKind.TYPE, re.compile(r'^(?:typedef\s+)?(?:struct|union|enum)\s+(\w+)')),
        (DeclarationKind.FUNCTION, _C_FUNCTION),
    ],
    Language.CPP: [
        (DeclarationKind.IMPORT, re.compile(r'^#\s*include\s*[<"]([^>"]+)[>"]')),
        (DeclarationKind.TYPE, re.compile(r'^namespace\s+(\w+)')),
        (DeclarationKind.CLASS, re.compile(r'^(?:template\s*<[^>]*>\s*)?(?:class|struct)\s+(\w+)(?!\s*;)')),
        (DeclarationKind.FUNCTION, _C_FUNCTION),
    ],
    Language.CSHARP: [
        (DeclarationKind.IMPORT, re.compile(r'^using\s+(?:static\s+)?([\w.]+)\s*;')),
        (DeclarationKind.TYPE, re.compile(r'^namespace\s+([\w.]+)')),
        (DeclarationKind.CLASS, re.compile(r'^' + _C_SHARP_MODIFIERS + r'*(?:class|struct|record)\s+(\w+)')),
        (DeclarationKind.TYPE, re.compile(r'^' + _C_SHARP_MODIFIERS + r'*interface\s+(\w+)')),
        (DeclarationKind.FUNCTION, re.compile(
            r'^' + _C_SHARP_MODIFIERS + r'+[\w<>\[\],.?]+\s+(\w+)\s*\(')),
    ],
    Language.RUBY: [
        (DeclarationKind.IMPORT, re.compile(r'^require(?:_relative)?\s*\(?\s*[\'"]([^\'"]+)[\'"]')),
        (DeclarationKind.CLASS, re.compile(r'^class\s+([A-Z]\w*(?:::\w+)*)')),
        (DeclarationKind.TYPE, re.compile(r'^module\s+([A-Z]\w*(?:::\w+)*)')),
        (DeclarationKind.FUNCTION, re.compile(r'^def\s+(?:self\.)?(\w+[?!=]?)')),
    ],
    Language.RUST: [
        (DeclarationKind.IMPORT, re.compile(r'^' + _RUST_VIS + r'use\s+([^;]+);')),
        (DeclarationKind.FUNCTION, re.compile(
            r'^' + _RUST_VIS + r'(?:const\s+)?(?:async\s+)?(?:unsafe\s+)?(?:extern\s+"[^"]*"\s+)?fn\s+(\w+)')),
        (DeclarationKind.CLASS, re.compile(r'^' + _RUST_VIS + r'struct\s+(\w+)')),
        (DeclarationKind.TYPE, re.compile(r'^' + _RUST_VIS + r'(?:unsafe\s+)?(?:trait|enum)\s+(\w+)')),
    ],
    Language.SWIFT: [
        (DeclarationKind.IMPORT, re.compile(r'^import\s+(\w+)')),
        (DeclarationKind.CLASS, re.compile(r'^' + _SWIFT_MODIFIERS + r'(?:class|struct|actor)\s+(\w+)')),
        (DeclarationKind.TYPE, re.compile(r'^' + _SWIFT_MODIFIERS + r'(?:protocol|enum|extension)\s+(\w+)')),
        (DeclarationKind.FUNCTION, re.compile(r'^' + _SWIFT_MODIFIERS + r'func\s+(\w+)')),
    ],
    Language.KOTLIN: [
        (DeclarationKind.IMPORT, re.compile(r'^import\s+([\w.*]+)')),
        (DeclarationKind.CLASS, re.compile(r'^' + _KOTLIN_MODIFIERS + r'(?:class|object)\s+(\w+)')),
        (DeclarationKind.TYPE, re.compile(r'^' + _KOTLIN_MODIFIERS + r'interface\s+(\w+)')),
        (DeclarationKind.FUNCTION, re.compile(
            r'^' + _KOTLIN_MODIFIERS + r'fun\s+(?:<[^>]*>\s*)?(?:[\w.]+\.)?(\w+)\s*\(')),
    ],
}

_COMMENT_PREFIXES = ('//', '/*', '*', '--')


def _parse_shallow(content: str, language: Language) -> StructuralUnit:
    patterns = SHALLOW_PATTERNS[language]
    declarations: List[Declaration] = []
    for lineno, raw in enumerate(content.split('\n'), start=1):
        line = raw.strip()
        if not line or line.startswith(_COMMENT_PREFIXES):
            continue
        if line.startswith('#') and language not in (Language.C, Language.CPP):
            continue
        seen_kinds = set()
        for kind, pattern in patterns:
            if kind in seen_kinds:
                continue
            match = pattern.match(line)
            if match:
                declarations.append(Declaration(kind, match.group(1).strip(), lineno))
                seen_kinds.add(kind)
    return StructuralUnit(language=language, success=True, declarations=declarations)


# ============================================================================
# Grammar tier
# ============================================================================

def _collect_errors(root: Node) -> List[ParseError]:
    """ERROR and MISSING nodes, visiting only subtrees that contain errors."""
    errors: List[ParseError] = []
    if not root.has_error:
        return errors
    stack = [root]
    while stack and len(errors) < MAX_PARSE_ERRORS:
        node = stack.pop()
        if node.is_missing:
            errors.append(ParseError(get_node_line(node), get_node_col(node),
                                     f"Missing '{node.type}'"))
            continue
        if node.type == 'ERROR':
            near = node_text(node).strip().split('\n', 1)[0][:40]
            errors.append(ParseError(get_node_line(node), get_node_col(node),
                                     f"Syntax error near '{near}'"))
            continue
        stack.extend(reversed([c for c in node.children if c.has_error]))
    return errors


def _name_of(node: Node) -> Optional[str]:
    name = get_child_by_field(node, 'name')
    return node_text(name) if name is not None else None


def _js_declarations(root: Node) -> List[Declaration]:
    decls = []
    for node in walk(root):
        t = node.type
        if t == 'import_statement':
            source = get_child_by_field(node, 'source')
            if source is not None:
                decls.append(Declaration(DeclarationKind.IMPORT, string_value(source), get_node_line(node)))
        elif t == 'call_expression' and node_text(get_child_by_field(node, 'function')) == 'require':
            args = get_child_by_field(node, 'arguments')
            strings = [c for c in named_children(args)] if args is not None else []
            if strings and strings[0].type == 'string':
                decls.append(Declaration(DeclarationKind.IMPORT, string_value(strings[0]), get_node_line(node)))
        elif t in ('function_declaration', 'generator_function_declaration', 'method_definition'):
            name = _name_of(node)
            if name:
                decls.append(Declaration(DeclarationKind.FUNCTION, name, get_node_line(node)))
        elif t == 'variable_declarator':
            value = get_child_by_field(node, 'value')
            if value is not None and value.type in ('arrow_function', 'function_expression', 'function'):
                name = _name_of(node)
                if name:
                    decls.append(Declaration(DeclarationKind.FUNCTION, name, get_node_line(node)))
        elif t in ('class_declaration', 'abstract_class_declaration'):
            name = _name_of(node)
            if name:
                decls.append(Declaration(DeclarationKind.CLASS, name, get_node_line(node)))
        elif t in ('interface_declaration', 'type_alias_declaration', 'enum_declaration'):
            name = _name_of(node)
            if name:
                decls.append(Declaration(DeclarationKind.TYPE, name, get_node_line(node)))
    return decls


def _python_declarations(root: Node) -> List[Declaration]:
    decls = []
    for node in walk(root):
        t = node.type
        if t == 'import_statement':
            for child in named_children(node):
                target = get_child_by_field(child, 'name') if child.type == 'aliased_import' else child
                decls.append(Declaration(DeclarationKind.IMPORT, node_text(target), get_node_line(node)))
        elif t == 'import_from_statement':
            module = get_child_by_field(node, 'module_name')
            decls.append(Declaration(DeclarationKind.IMPORT, node_text(module), get_node_line(node)))
        elif t == 'function_definition':
            decls.append(Declaration(DeclarationKind.FUNCTION, _name_of(node) or '', get_node_line(node)))
        elif t == 'class_definition':
            decls.append(Declaration(DeclarationKind.CLASS, _name_of(node) or '', get_node_line(node)))
    return decls


def _java_declarations(root: Node) -> List[Declaration]:
    decls = []
    for node in walk(root):
        t = node.type
        if t == 'import_declaration':
            target = [c for c in named_children(node) if c.type in ('scoped_identifier', 'identifier')]
            if target:
                name = node_text(target[0])
                if any(c.type == 'asterisk' for c in node.children):
                    name += '.*'
                decls.append(Declaration(DeclarationKind.IMPORT, name, get_node_line(node)))
        elif t in ('method_declaration', 'constructor_declaration'):
            decls.append(Declaration(DeclarationKind.FUNCTION, _name_of(node) or '', get_node_line(node)))
        elif t in ('class_declaration', 'record_declaration'):
            decls.append(Declaration(DeclarationKind.CLASS, _name_of(node) or '', get_node_line(node)))
        elif t in ('interface_declaration', 'enum_declaration', 'annotation_type_declaration'):
            decls.append(Declaration(DeclarationKind.TYPE, _name_of(node) or '', get_node_line(node)))
    return decls


def _go_declarations(root: Node) -> List[Declaration]:
    decls = []
    for node in walk(root):
        t = node.type
        if t == 'import_spec':
            path = get_child_by_field(node, 'path')
            if path is not None:
                decls.append(Declaration(DeclarationKind.IMPORT, string_value(path), get_node_line(node)))
        elif t in ('function_declaration', 'method_declaration'):
            decls.append(Declaration(DeclarationKind.FUNCTION, _name_of(node) or '', get_node_line(node)))
        elif t == 'type_spec':
            type_node = get_child_by_field(node, 'type')
            kind = DeclarationKind.CLASS if type_node is not None and type_node.type == 'struct_type' \
                else DeclarationKind.TYPE
            decls.append(Declaration(kind, _name_of(node) or '', get_node_line(node)))
    return decls


def _php_declarations(root: Node) -> List[Declaration]:
    decls = []
    for node in walk(root):
        t = node.type
        if t == 'namespace_use_clause':
            decls.append(Declaration(DeclarationKind.IMPORT, node_text(node).split(' as ')[0].strip(),
                                     get_node_line(node)))
        elif t in ('function_definition', 'method_declaration'):
            decls.append(Declaration(DeclarationKind.FUNCTION, _name_of(node) or '', get_node_line(node)))
        elif t == 'class_declaration':
            decls.append(Declaration(DeclarationKind.CLASS, _name_of(node) or '', get_node_line(node)))
        elif t in ('interface_declaration', 'trait_declaration', 'enum_declaration'):
            decls.append(Declaration(DeclarationKind.TYPE, _name_of(node) or '', get_node_line(node)))
        elif t in ('include_expression', 'include_once_expression',
                   'require_expression', 'require_once_expression'):
            for lit in find_nodes_multi(node, {'string', 'encapsed_string'}):
                decls.append(Declaration(DeclarationKind.IMPORT, string_value(lit), get_node_line(node)))
                break
    return decls


DECLARATION_EXTRACTORS = {
    Language.JAVASCRIPT: _js_declarations,
    Language.TYPESCRIPT: _js_declarations,
    Language.PYTHON: _python_declarations,
    Language.JAVA: _java_declarations,
    Language.GO: _go_declarations,
    Language.PHP: _php_declarations,
}


def _parse_grammar(content: str, language: Language, filename: str) -> StructuralUnit:
    source = content.encode('utf-8', errors='replace')
    failures: List[ParseError] = []
    best = None

    for grammar_name in grammar_chain(language, filename, content):
        try:
            tree = Parser(GRAMMARS[grammar_name]).parse(source)
        except Exception as e:
            logger.warning("Grammar %s failed on %s: %s", grammar_name, filename or '<memory>', e)
            failures.append(ParseError(1, 0, f"{grammar_name} grammar failed: {e}"))
            continue
        errors = _collect_errors(tree.root_node)
        if best is None or len(errors) < len(best[2]):
            best = (grammar_name, tree, errors)
        if not errors:
            break

    if best is None:
        return StructuralUnit(language=language, success=False, errors=failures)

    grammar_name, tree, errors = best
    if errors:
        logger.debug("%s parsed with %d syntax error(s) using %s grammar",
                     filename or '<memory>', len(errors), grammar_name)
    declarations = DECLARATION_EXTRACTORS[language](tree.root_node)
    return StructuralUnit(language=language, success=True, errors=errors, tree=tree,
                          declarations=declarations, grammar=grammar_name)


# ============================================================================
# Entry point
# ============================================================================

def parse(content: str, language: Language, filename: str = "") -> StructuralUnit:
    """Parse ``content`` with the tier ``language`` supports."""
    if language.tier is ParserTier.SHALLOW:
        return _parse_shallow(content, language)
    return _parse_grammar(content, language, filename)
