"""Helpers for walking tree-sitter trees across grammars.

The grammars name equivalent constructs differently (``member_expression`` in
JavaScript, ``attribute`` in Python, ``selector_expression`` in Go and so on);
the functions here flatten those differences into dotted names so the
analyzers can match calls and member accesses with one set of signatures.
"""

import re
from typing import Callable, Iterator, List, Optional, Set, Tuple

from tree_sitter import Node


# ============================================================================
# Node type tables
# ============================================================================

CALL_TYPES = {
    'call_expression',                      # js, ts, go
    'call',                                 # python
    'method_invocation',                    # java
    'object_creation_expression',           # java, php
    'new_expression',                       # js, ts
    'function_call_expression',             # php
    'member_call_expression',               # php
    'nullsafe_member_call_expression',      # php
    'scoped_call_expression',               # php
}

IDENTIFIER_TYPES = {'identifier', 'variable_name', 'shorthand_property_identifier'}

NAME_TYPES = IDENTIFIER_TYPES | {
    'name', 'this', 'self', 'super', 'field_identifier', 'property_identifier',
    'type_identifier', 'scoped_identifier', 'scoped_type_identifier',
    'qualified_name', 'package_identifier', 'generic_type',
}

# member node type -> (object field, member field)
MEMBER_FIELDS = {
    'member_expression': ('object', 'property'),
    'attribute': ('object', 'attribute'),
    'field_access': ('object', 'field'),
    'selector_expression': ('operand', 'field'),
    'member_access_expression': ('object', 'name'),
    'nullsafe_member_access_expression': ('object', 'name'),
    'scoped_property_access_expression': ('scope', 'name'),
    'class_constant_access_expression': (None, None),
}

SUBSCRIPT_TYPES = {'subscript_expression', 'subscript', 'index_expression', 'array_access'}

TRANSPARENT_TYPES = {
    'parenthesized_expression', 'await_expression', 'await', 'non_null_expression',
    'as_expression', 'type_assertion', 'satisfies_expression', 'argument',
    'expression_statement', 'unary_expression', 'cast_expression',
}

STRING_TYPES = {
    'string', 'string_literal', 'interpreted_string_literal', 'raw_string_literal',
    'encapsed_string', 'template_string', 'text_block',
}

_INTERPOLATION_TYPES = {
    'template_substitution', 'interpolation', 'variable_name',
    'dynamic_variable_name', 'member_access_expression', 'subscript_expression',
}

_QUOTED = re.compile(r'^[A-Za-z]*("""|\'\'\'|"|\'|`)(.*)\1$', re.DOTALL)


# ============================================================================
# Generic traversal
# ============================================================================

def walk(node: Node, should_stop: Optional[Callable[[], None]] = None) -> Iterator[Node]:
    """Yield ``node`` and its descendants in source (pre-)order.

    ``should_stop`` is invoked every few hundred nodes so long walks can bail
    out by raising (see ``Deadline.check``).
    """
    stack = [node]
    visited = 0
    while stack:
        current = stack.pop()
        visited += 1
        if should_stop is not None and visited % 256 == 0:
            should_stop()
        yield current
        stack.extend(reversed(current.children))


def find_nodes_multi(node: Node, type_names: Set[str]) -> List[Node]:
    """Find all descendant nodes matching any of the given types."""
    return [n for n in walk(node) if n.type in type_names]


def node_text(node: Optional[Node]) -> str:
    """Get the source text of a node."""
    if node is None or not node.text:
        return ""
    return node.text.decode('utf-8', errors='replace')


def get_node_line(node: Node) -> int:
    """Get 1-based line number."""
    return node.start_point[0] + 1


def get_node_col(node: Node) -> int:
    """Get 0-based column offset."""
    return node.start_point[1]


def get_child_by_type(node: Node, type_name: str) -> Optional[Node]:
    """Get first direct child of a given type."""
    for child in node.children:
        if child.type == type_name:
            return child
    return None


def get_child_by_field(node: Node, field_name: str) -> Optional[Node]:
    """Get child node by tree-sitter field name."""
    return node.child_by_field_name(field_name)


def named_children(node: Node) -> List[Node]:
    return [c for c in node.children if c.is_named and c.type != 'comment']


def unwrap(node: Optional[Node]) -> Optional[Node]:
    """Strip parentheses, awaits, casts and argument wrappers."""
    while node is not None and node.type in TRANSPARENT_TYPES:
        inner = named_children(node)
        if not inner:
            break
        # `x as T` keeps the expression first, `(T) x` keeps it last
        node = inner[0] if node.type in ('as_expression', 'satisfies_expression') else inner[-1]
    return node


# ============================================================================
# Calls & names
# ============================================================================

def is_call(node: Node) -> bool:
    return node.type in CALL_TYPES


def get_call_args(node: Node) -> List[Node]:
    """Extract argument nodes from any grammar's call node."""
    args_node = get_child_by_field(node, 'arguments')
    if args_node is None:
        args_node = (get_child_by_type(node, 'arguments')
                     or get_child_by_type(node, 'argument_list'))
    if args_node is None:
        return []
    args = []
    for child in named_children(args_node):
        if child.type == 'argument':
            inner = named_children(child)
            if inner:
                child = inner[-1]
        args.append(child)
    return args


def resolve_name(node: Optional[Node]) -> Optional[str]:
    """Flatten an identifier, member access or call chain into a dotted name.

    ``req.query.id`` -> "req.query.id"; ``Runtime.getRuntime().exec`` ->
    "Runtime.getRuntime.exec"; ``$_GET['id']`` -> "$_GET".
    """
    node = unwrap(node)
    if node is None:
        return None
    t = node.type
    if t in NAME_TYPES:
        return node_text(node).replace('::', '.').replace('\\', '.')
    if t in MEMBER_FIELDS:
        obj_field, member_field = MEMBER_FIELDS[t]
        if obj_field is None:
            parts = [resolve_name(c) for c in named_children(node)]
            parts = [p for p in parts if p]
            return '.'.join(parts) if parts else None
        obj = resolve_name(get_child_by_field(node, obj_field))
        member = get_child_by_field(node, member_field)
        member_name = node_text(member) if member is not None else None
        if obj and member_name:
            return f"{obj}.{member_name}"
        return obj or member_name
    if t in SUBSCRIPT_TYPES:
        target = get_child_by_field(node, 'object') or get_child_by_field(node, 'value') \
            or get_child_by_field(node, 'operand') or get_child_by_field(node, 'array')
        if target is None:
            children = named_children(node)
            target = children[0] if children else None
        return resolve_name(target)
    if t in CALL_TYPES:
        return callee_name(node)
    return None


def callee_name(node: Node) -> Optional[str]:
    """Dotted name of the function or constructor a call node invokes."""
    t = node.type
    if t in ('call_expression', 'call', 'function_call_expression'):
        return resolve_name(get_child_by_field(node, 'function'))
    if t == 'method_invocation':
        name = node_text(get_child_by_field(node, 'name'))
        obj = get_child_by_field(node, 'object')
        owner = resolve_name(obj) if obj is not None else None
        return f"{owner}.{name}" if owner else name
    if t in ('member_call_expression', 'nullsafe_member_call_expression'):
        owner = resolve_name(get_child_by_field(node, 'object'))
        name = node_text(get_child_by_field(node, 'name'))
        return f"{owner}.{name}" if owner else name
    if t == 'scoped_call_expression':
        owner = resolve_name(get_child_by_field(node, 'scope'))
        name = node_text(get_child_by_field(node, 'name'))
        return f"{owner}.{name}" if owner else name
    if t == 'new_expression':
        return resolve_name(get_child_by_field(node, 'constructor'))
    if t == 'object_creation_expression':
        type_node = get_child_by_field(node, 'type')
        if type_node is None:
            for child in named_children(node):
                if child.type in ('name', 'qualified_name'):
                    type_node = child
                    break
        return resolve_name(type_node)
    return None


def last_segment(name: Optional[str]) -> str:
    return name.rsplit('.', 1)[-1] if name else ""


def matches_suffix(name: Optional[str], signature: str) -> bool:
    """True when ``signature`` equals the trailing segments of ``name``."""
    if not name:
        return False
    parts = name.split('.')
    sig = signature.split('.')
    if len(sig) > len(parts):
        return False
    return parts[-len(sig):] == sig


def contains_segments(name: Optional[str], signature: str) -> bool:
    """True when ``signature``'s segments appear as a contiguous run in ``name``."""
    if not name:
        return False
    parts = name.split('.')
    sig = signature.split('.')
    for i in range(len(parts) - len(sig) + 1):
        if parts[i:i + len(sig)] == sig:
            return True
    return False


# ============================================================================
# Identifiers & literals
# ============================================================================

def identifiers_in(node: Node, skip: Optional[Callable[[Node], bool]] = None) -> Iterator[Node]:
    """Yield variable references inside an expression.

    Property and method names are not variable references: only the object
    side of a member access is visited. ``skip`` prunes whole subtrees (used
    for sanitizer calls).
    """
    stack = [node]
    while stack:
        current = stack.pop()
        if skip is not None and skip(current):
            continue
        t = current.type
        if t in IDENTIFIER_TYPES:
            yield current
            continue
        if t in MEMBER_FIELDS:
            obj_field = MEMBER_FIELDS[t][0]
            obj = get_child_by_field(current, obj_field) if obj_field else None
            if obj is not None:
                stack.append(obj)
            continue
        if t in ('call_expression', 'call', 'function_call_expression'):
            fn = get_child_by_field(current, 'function')
            if fn is not None and fn.type not in IDENTIFIER_TYPES and fn.type != 'name':
                stack.append(fn)
            stack.extend(reversed(get_call_args(current)))
            continue
        if t == 'method_invocation':
            obj = get_child_by_field(current, 'object')
            if obj is not None:
                stack.append(obj)
            stack.extend(reversed(get_call_args(current)))
            continue
        if t in ('member_call_expression', 'nullsafe_member_call_expression'):
            obj = get_child_by_field(current, 'object')
            if obj is not None:
                stack.append(obj)
            stack.extend(reversed(get_call_args(current)))
            continue
        if t in ('new_expression', 'object_creation_expression', 'scoped_call_expression'):
            stack.extend(reversed(get_call_args(current)))
            continue
        if t in ('keyword_argument', 'pair', 'named_argument'):
            value = get_child_by_field(current, 'value')
            if value is not None:
                stack.append(value)
            continue
        stack.extend(reversed(named_children(current)))


def is_string_literal(node: Optional[Node]) -> bool:
    return node is not None and node.type in STRING_TYPES


def is_plain_string(node: Optional[Node]) -> bool:
    """A string literal with no interpolated expressions inside it."""
    if not is_string_literal(node):
        return False
    for child in walk(node):
        if child is not node and child.type in _INTERPOLATION_TYPES:
            return False
    return True


def string_value(node: Node) -> str:
    """Literal text of a string node without prefixes and quotes."""
    text = node_text(node)
    match = _QUOTED.match(text)
    return match.group(2) if match else text


_WORD_SPLIT = re.compile(r'[A-Z]?[a-z]+|[A-Z]+(?![a-z])|\d+')


def split_words(text: str) -> List[str]:
    """Split identifiers into lowercase words: ``sessionId`` -> session, id."""
    return [w.lower() for w in _WORD_SPLIT.findall(text)]


# ============================================================================
# Assignments
# ============================================================================

_ASSIGNMENT_TYPES = {
    'assignment_expression',            # js, ts, java, php
    'augmented_assignment_expression',  # js, ts, php
    'assignment',                       # python
    'augmented_assignment',             # python
    'assignment_statement',             # go
    'short_var_declaration',            # go
}

_SEQUENCE_TYPES = {
    'expression_list', 'pattern_list', 'tuple_pattern', 'tuple', 'list_pattern',
    'list', 'array_pattern', 'array',
}

_PLAIN_OPERATORS = {'=', ':='}


def _expand_targets(node: Node) -> List[Node]:
    if node.type in _SEQUENCE_TYPES:
        return named_children(node)
    if node.type == 'object_pattern':
        targets = []
        for child in named_children(node):
            if child.type == 'shorthand_property_identifier_pattern':
                targets.append(child)
            elif child.type == 'pair_pattern':
                value = get_child_by_field(child, 'value')
                if value is not None:
                    targets.append(value)
        return targets
    return [node]


def _pairs(left: List[Node], right: Optional[Node], augmented: bool) -> List[Tuple[Node, Node, bool]]:
    if right is None or not left:
        return []
    values = named_children(right) if right.type in _SEQUENCE_TYPES else [right]
    if len(values) == len(left):
        return [(t, v, augmented) for t, v in zip(left, values)]
    # `a, b = func()` and destructuring: every target receives the whole value
    return [(t, right, augmented) for t in left]


def assignment_pairs(node: Node) -> List[Tuple[Node, Node, bool]]:
    """(target, value, augmented) for a declaration or assignment node.

    Multi-target forms (``a, b = x, y``, ``a, b := f()``, ``[a, b] = [x, y]``)
    are zipped pairwise. Returns ``[]`` for any other node.
    """
    t = node.type
    if t == 'variable_declarator':
        name = get_child_by_field(node, 'name')
        if name is None:
            return []
        return _pairs(_expand_targets(name), get_child_by_field(node, 'value'), False)
    if t in ('var_spec', 'const_spec'):
        names = list(node.children_by_field_name('name'))
        return _pairs(names, get_child_by_field(node, 'value'), False)
    if t in _ASSIGNMENT_TYPES:
        left = get_child_by_field(node, 'left')
        if left is None:
            return []
        op = get_child_by_field(node, 'operator')
        augmented = t.startswith('augmented') or (op is not None and node_text(op) not in _PLAIN_OPERATORS)
        return _pairs(_expand_targets(left), get_child_by_field(node, 'right'), augmented)
    return []


def target_name(node: Node) -> Optional[str]:
    """Variable name an assignment target binds, or None for complex targets."""
    if node.type in IDENTIFIER_TYPES or node.type == 'shorthand_property_identifier_pattern':
        return node_text(node)
    return None
