"""
Static type rendering for TypeScript expressions.

tree-sitter gives us syntax, not a checker, so types are rendered from what the
source spells out: annotations, literal shapes, and same-file symbols. Literal
types are always widened (``true`` renders ``boolean``). Anything the renderer
cannot see becomes ``any``.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from tree_sitter import Node

from .tree_sitter_utils import FUNCTION_NODE_TYPES, iter_descendants, node_text, unwrap_expression

logger = logging.getLogger(__name__)

ANY = "any"

COMPARISON_OPERATORS = {"==", "!=", "===", "!==", "<", ">", "<=", ">=", "instanceof", "in"}
LOGICAL_OPERATORS = {"&&", "||", "??"}
NUMERIC_OPERATORS = {"-", "*", "/", "%", "**", "&", "|", "^", "<<", ">>", ">>>"}

# Return types of well-known free functions
KNOWN_CALLS = {
    "json": "Response",
    "text": "Response",
    "error": "never",
    "redirect": "never",
    "fetch": "Promise<Response>",
    "Number": "number",
    "parseInt": "number",
    "parseFloat": "number",
    "String": "string",
    "Boolean": "boolean",
    "encodeURIComponent": "string",
    "decodeURIComponent": "string",
}

# Return types of well-known qualified calls, matched on the full callee text
KNOWN_MEMBER_CALLS = {
    "JSON.stringify": "string",
    "JSON.parse": ANY,
    "Date.now": "number",
    "Object.keys": "string[]",
    "Array.isArray": "boolean",
    "crypto.randomUUID": "string",
}

STRING_METHODS = {
    "toString", "toUpperCase", "toLowerCase", "trim", "trimStart", "trimEnd",
    "join", "padStart", "padEnd", "toFixed", "toISOString", "replace", "replaceAll",
}
BOOLEAN_METHODS = {"includes", "startsWith", "endsWith", "has", "some", "every", "test"}
NUMBER_METHODS = {"indexOf", "lastIndexOf", "findIndex", "getTime"}

RE_WS = re.compile(r"\s+")
RE_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")
RE_NAMED_TYPE = re.compile(r'^[A-Za-z_$][\w$.]*(?:\["[^"]*"\])*$')


def collapse(text: str) -> str:
    return RE_WS.sub(" ", text).strip()


def annotation_text(annotation: Optional[Node]) -> Optional[str]:
    """Type text of a ``type_annotation`` node, without the leading colon."""
    if annotation is None:
        return None
    named = annotation.named_children
    if not named:
        return None
    return collapse(node_text(named[0]))


def distinct_types(types: Iterable[str]) -> List[str]:
    distinct: List[str] = []
    for t in types:
        if t and t not in distinct:
            distinct.append(t)
    return distinct


def join_types(types: Iterable[str]) -> str:
    """Join distinct type texts with ``|`` in first-seen order, nothing absorbed."""
    return " | ".join(distinct_types(types))


def union(types: Iterable[str]) -> str:
    """
    Type of an expression that may evaluate to any of ``types``.

    ``any`` absorbs the other members and ``never`` is dropped next to them.
    """
    distinct = distinct_types(types)
    if not distinct:
        return ANY
    if ANY in distinct:
        return ANY
    if len(distinct) > 1 and "never" in distinct:
        distinct.remove("never")
    return " | ".join(distinct)


def _array_of(element: str) -> str:
    if " | " in element or "=>" in element:
        return f"({element})[]"
    return f"{element}[]"


def _unwrap_promise(text: str) -> str:
    if text.startswith("Promise<") and text.endswith(">"):
        return text[len("Promise<"):-1]
    return text


def is_async(fn: Node) -> bool:
    return any(child.type == "async" for child in fn.children)


def own_return_statements(fn: Node) -> List[Node]:
    """Return statements of ``fn`` itself, not of functions nested inside it."""
    body = fn.child_by_field_name("body")
    if body is None:
        return []
    found: List[Node] = []
    stack = [body]
    while stack:
        current = stack.pop()
        if current.type == "return_statement":
            found.append(current)
        for child in reversed(current.children):
            if child.type in FUNCTION_NODE_TYPES or child.type == "class_body":
                continue
            stack.append(child)
    found.sort(key=lambda n: n.start_byte)
    return found


class TypeContext:
    """Symbol bindings visible to one handler: module scope plus the handler's own scope."""

    def __init__(self, module_root: Node, scope: Optional[Node] = None):
        self._bindings: Dict[str, Tuple[str, object]] = {}
        self._resolving: Set[str] = set()
        if scope is not None:
            self._bind_scope(scope)
        self._bind_module(module_root)

    # ---- binding collection ----

    def _bind(self, name: str, kind: str, payload: object) -> None:
        if name and name not in self._bindings:
            self._bindings[name] = (kind, payload)

    def _bind_module(self, root: Node) -> None:
        for statement in root.named_children:
            if statement.type == "export_statement":
                declaration = statement.child_by_field_name("declaration")
                if declaration is not None:
                    self._bind_statement(declaration)
            else:
                self._bind_statement(statement)

    def _bind_statement(self, statement: Node) -> None:
        if statement.type in ("lexical_declaration", "variable_declaration"):
            for declarator in statement.named_children:
                if declarator.type == "variable_declarator":
                    self._bind_declarator(declarator)
        elif statement.type in ("function_declaration", "generator_function_declaration"):
            self._bind(node_text(statement.child_by_field_name("name")), "function", statement)

    def _bind_scope(self, scope: Node) -> None:
        self._bind_parameters(scope)
        for node in iter_descendants(scope):
            if node.type == "variable_declarator":
                self._bind_declarator(node)
            elif node.type in ("function_declaration", "generator_function_declaration"):
                self._bind(node_text(node.child_by_field_name("name")), "function", node)
            elif node.type in FUNCTION_NODE_TYPES:
                self._bind_parameters(node)

    def _bind_parameters(self, fn: Node) -> None:
        single = fn.child_by_field_name("parameter")
        if single is not None:
            self._bind(node_text(single), "unknown", None)
            return
        params = fn.child_by_field_name("parameters")
        if params is None:
            return
        for param in params.named_children:
            if param.type not in ("required_parameter", "optional_parameter"):
                continue
            pattern = param.child_by_field_name("pattern")
            declared = annotation_text(param.child_by_field_name("type"))
            self._bind_pattern(pattern, declared)

    def _bind_declarator(self, declarator: Node) -> None:
        name = declarator.child_by_field_name("name")
        declared = annotation_text(declarator.child_by_field_name("type"))
        if name is not None and name.type == "identifier":
            if declared:
                self._bind(node_text(name), "annotated", declared)
            elif declarator.child_by_field_name("value") is not None:
                self._bind(node_text(name), "value", declarator.child_by_field_name("value"))
            else:
                self._bind(node_text(name), "unknown", None)
        else:
            self._bind_pattern(name, declared)

    def _bind_pattern(self, pattern: Optional[Node], declared: Optional[str]) -> None:
        if pattern is None:
            return
        if pattern.type == "identifier":
            if declared:
                self._bind(node_text(pattern), "annotated", declared)
            else:
                self._bind(node_text(pattern), "unknown", None)
            return
        if pattern.type != "object_pattern":
            return
        for prop in pattern.named_children:
            if prop.type == "shorthand_property_identifier_pattern":
                key = node_text(prop)
                self._bind(key, "member" if declared else "unknown", (declared, key))
            elif prop.type == "pair_pattern":
                key = node_text(prop.child_by_field_name("key")).strip("'\"")
                value = prop.child_by_field_name("value")
                if value is not None and value.type == "identifier":
                    self._bind(node_text(value), "member" if declared else "unknown", (declared, key))
            elif prop.type == "object_assignment_pattern":
                left = prop.child_by_field_name("left")
                if left is not None:
                    key = node_text(left)
                    self._bind(key, "member" if declared else "unknown", (declared, key))

    # ---- resolution ----

    def resolve(self, name: str) -> str:
        """Type text of a symbol visible in this context."""
        binding = self._bindings.get(name)
        if binding is None or name in self._resolving:
            return ANY
        kind, payload = binding
        if kind == "annotated":
            return payload
        if kind == "member":
            declared, key = payload
            return f'{declared}["{key}"]'
        if kind not in ("value", "function"):
            return ANY
        self._resolving.add(name)
        try:
            if kind == "function":
                return self.function_type(payload)
            return self.infer(payload)
        finally:
            self._resolving.discard(name)

    def value_node(self, name: str) -> Optional[Node]:
        binding = self._bindings.get(name)
        if binding is not None and binding[0] == "value":
            return unwrap_expression(binding[1])
        return None

    def callable_node(self, name: str) -> Optional[Node]:
        binding = self._bindings.get(name)
        if binding is None:
            return None
        kind, payload = binding
        if kind == "function":
            return payload
        if kind == "value":
            value = unwrap_expression(payload)
            if value is not None and value.type in FUNCTION_NODE_TYPES:
                return value
        return None

    # ---- functions ----

    def function_type(self, fn: Node) -> str:
        """Render ``(params) => R`` for a function-like node."""
        return f"({self.parameters_text(fn)}) => {self.return_type(fn)}"

    def parameters_text(self, fn: Node) -> str:
        single = fn.child_by_field_name("parameter")
        if single is not None:
            return node_text(single)
        params = fn.child_by_field_name("parameters")
        if params is None:
            return ""
        rendered = [collapse(node_text(p)) for p in params.named_children if p.type != "comment"]
        return ", ".join(rendered)

    def return_type(self, fn: Node) -> str:
        declared = annotation_text(fn.child_by_field_name("return_type"))
        if declared:
            return declared
        body = fn.child_by_field_name("body")
        if body is not None and body.type != "statement_block":
            inferred = self.infer(body)
        else:
            types = []
            for statement in own_return_statements(fn):
                expression = statement.named_children[0] if statement.named_children else None
                types.append(self.infer(expression) if expression is not None else "undefined")
            inferred = union(types) if types else "void"
        if is_async(fn) and not inferred.startswith("Promise<"):
            return f"Promise<{inferred}>"
        return inferred

    # ---- expressions ----

    def infer(self, node: Optional[Node]) -> str:
        """Render the static type of an expression node."""
        if node is None:
            return ANY
        kind = node.type
        if kind in ("string", "template_string"):
            return "string"
        if kind == "number":
            return "bigint" if node_text(node).endswith("n") else "number"
        if kind in ("true", "false"):
            return "boolean"
        if kind == "null":
            return "null"
        if kind == "undefined":
            return "undefined"
        if kind == "regex":
            return "RegExp"
        if kind == "identifier":
            name = node_text(node)
            if name == "undefined":
                return "undefined"
            if name in ("NaN", "Infinity"):
                return "number"
            return self.resolve(name)
        if kind == "object":
            return self._object_type(node)
        if kind == "array":
            return self._array_type(node)
        if kind in ("parenthesized_expression", "satisfies_expression", "non_null_expression"):
            named = node.named_children
            return self.infer(named[0]) if named else ANY
        if kind == "as_expression":
            named = node.named_children
            if len(named) >= 2:
                return collapse(node_text(named[-1]))
            return self.infer(named[0]) if named else ANY
        if kind == "type_assertion":
            named = node.named_children
            if len(named) >= 2:
                return collapse(node_text(named[0]).strip("<>"))
            return ANY
        if kind == "await_expression":
            named = node.named_children
            return _unwrap_promise(self.infer(named[0])) if named else ANY
        if kind == "ternary_expression":
            return union([
                self.infer(node.child_by_field_name("consequence")),
                self.infer(node.child_by_field_name("alternative")),
            ])
        if kind == "binary_expression":
            return self._binary_type(node)
        if kind == "unary_expression":
            operator = node.child_by_field_name("operator")
            op = operator.type if operator is not None else ""
            if op in ("!", "delete"):
                return "boolean"
            if op == "typeof":
                return "string"
            if op == "void":
                return "undefined"
            return "number"
        if kind == "update_expression":
            return "number"
        if kind == "assignment_expression":
            return self.infer(node.child_by_field_name("right"))
        if kind == "sequence_expression":
            named = node.named_children
            return self.infer(named[-1]) if named else ANY
        if kind in FUNCTION_NODE_TYPES:
            return self.function_type(node)
        if kind == "new_expression":
            constructor = node_text(node.child_by_field_name("constructor"))
            type_arguments = node.child_by_field_name("type_arguments")
            return collapse(constructor + node_text(type_arguments)) if constructor else ANY
        if kind == "call_expression":
            return self._call_type(node)
        if kind == "member_expression":
            return self._member_type(node)
        if kind == "subscript_expression":
            container = self.infer(node.child_by_field_name("object"))
            if container.endswith("[]"):
                element = container[:-2]
                if element.startswith("(") and element.endswith(")"):
                    element = element[1:-1]
                return element
            return ANY
        logger.debug(f"No type rule for node kind {kind}")
        return ANY

    def _object_type(self, node: Node) -> str:
        members: List[str] = []
        for prop in node.named_children:
            if prop.type == "pair":
                key = self._property_key(prop.child_by_field_name("key"))
                if key is None:
                    continue
                members.append(f"{key}: {self.infer(prop.child_by_field_name('value'))};")
            elif prop.type == "shorthand_property_identifier":
                name = node_text(prop)
                members.append(f"{name}: {self.resolve(name)};")
            elif prop.type == "method_definition":
                key = self._property_key(prop.child_by_field_name("name"))
                if key is not None:
                    members.append(f"{key}: {self.function_type(prop)};")
        if not members:
            return "{}"
        return "{ " + " ".join(members) + " }"

    def _property_key(self, key: Optional[Node]) -> Optional[str]:
        if key is None or key.type == "computed_property_name":
            return None
        text = node_text(key)
        if key.type == "string":
            bare = text[1:-1]
            return bare if RE_IDENTIFIER.match(bare) else f'"{bare}"'
        return text

    def _array_type(self, node: Node) -> str:
        elements = [child for child in node.named_children if child.type not in ("comment", "spread_element")]
        if not elements:
            return "any[]"
        return _array_of(union(self.infer(element) for element in elements))

    def _binary_type(self, node: Node) -> str:
        operator = node.child_by_field_name("operator")
        op = operator.type if operator is not None else ""
        if op in COMPARISON_OPERATORS:
            return "boolean"
        left = self.infer(node.child_by_field_name("left"))
        right = self.infer(node.child_by_field_name("right"))
        if op in LOGICAL_OPERATORS:
            return union([left, right])
        if op == "+":
            if "string" in (left, right):
                return "string"
            if left == right == "number":
                return "number"
            return ANY
        if op in NUMERIC_OPERATORS:
            return "number"
        return ANY

    def _call_type(self, node: Node) -> str:
        callee = unwrap_expression(node.child_by_field_name("function"))
        if callee is None:
            return ANY
        if callee.type == "identifier":
            name = node_text(callee)
            if name in self._bindings:
                fn = self.callable_node(name)
                if fn is None or name in self._resolving:
                    return ANY
                self._resolving.add(name)
                try:
                    return self.return_type(fn)
                finally:
                    self._resolving.discard(name)
            return KNOWN_CALLS.get(name, ANY)
        if callee.type == "member_expression":
            text = collapse(node_text(callee)).replace(" ", "")
            if text in KNOWN_MEMBER_CALLS:
                return KNOWN_MEMBER_CALLS[text]
            if text.endswith("searchParams.get"):
                return "string | null"
            if text.endswith("searchParams.getAll"):
                return "string[]"
            method = node_text(callee.child_by_field_name("property"))
            if text.startswith("Math."):
                return "number"
            if method in STRING_METHODS:
                return "string"
            if method in BOOLEAN_METHODS:
                return "boolean"
            if method in NUMBER_METHODS:
                return "number"
        return ANY

    def _member_type(self, node: Node) -> str:
        prop = node_text(node.child_by_field_name("property"))
        obj = unwrap_expression(node.child_by_field_name("object"))
        if prop == "length":
            return "number"
        literal = obj
        key = None
        if obj is not None and obj.type == "identifier":
            literal = self.value_node(node_text(obj))
            key = f"{node_text(obj)}.{prop}"
        if literal is not None and literal.type == "object":
            # a property may refer back to itself through the object
            if key is not None and key in self._resolving:
                return ANY
            if key is not None:
                self._resolving.add(key)
            try:
                for pair in literal.named_children:
                    if pair.type == "pair" and self._property_key(pair.child_by_field_name("key")) == prop:
                        return self.infer(pair.child_by_field_name("value"))
                    if pair.type == "shorthand_property_identifier" and node_text(pair) == prop:
                        return self.resolve(prop)
            finally:
                if key is not None:
                    self._resolving.discard(key)
            return ANY
        container = self.infer(obj)
        if container != ANY and RE_NAMED_TYPE.match(container):
            return f'{container}["{prop}"]'
        return ANY
