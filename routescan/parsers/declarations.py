"""
Exported handler declarations in a route module, and what can be inferred from them.

Each export resolves to a closed variant: ``FunctionLikeDeclaration`` when it has
a callable implementation with a body, ``OtherDeclaration`` for everything else
(classes, plain values, overload signatures). Only the former become routes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from tree_sitter import Node, Tree

from .tree_sitter_utils import descendants_of_type, iter_descendants, node_text, start_line, unwrap_expression
from .types import TypeContext, annotation_text, collapse, join_types

logger = logging.getLogger(__name__)

FUNCTION_VALUE_TYPES = ("arrow_function", "function_expression", "function", "generator_function")


@dataclass(frozen=True)
class FunctionLikeDeclaration:
    """A function declaration, or a variable initialized with a function."""
    name: str
    node: Node                      # function_declaration or variable_declarator
    function: Node                  # the node carrying parameters and body
    statement: Node                 # top-level statement, used for line positions
    type_annotation: Optional[str] = None

    @property
    def start_line(self) -> int:
        return start_line(self.statement)


@dataclass(frozen=True)
class OtherDeclaration:
    name: str
    node: Node
    kind: str


Declaration = Union[FunctionLikeDeclaration, OtherDeclaration]


def _classify_declarator(name: str, declarator: Node, statement: Node) -> Declaration:
    value = unwrap_expression(declarator.child_by_field_name("value"))
    if value is not None and value.type == "as_expression" and value.named_children:
        value = unwrap_expression(value.named_children[0])
    if value is not None and value.type in FUNCTION_VALUE_TYPES:
        return FunctionLikeDeclaration(
            name=name,
            node=declarator,
            function=value,
            statement=statement,
            type_annotation=annotation_text(declarator.child_by_field_name("type")),
        )
    return OtherDeclaration(name=name, node=declarator, kind="variable")


def _classify_statement(declaration: Node, statement: Node) -> Dict[str, List[Declaration]]:
    """Declarations introduced by one statement, keyed by local name."""
    found: Dict[str, List[Declaration]] = {}
    kind = declaration.type
    if kind in ("function_declaration", "generator_function_declaration"):
        name = node_text(declaration.child_by_field_name("name"))
        found.setdefault(name, []).append(
            FunctionLikeDeclaration(name=name, node=declaration, function=declaration, statement=statement)
        )
    elif kind == "function_signature":
        name = node_text(declaration.child_by_field_name("name"))
        found.setdefault(name, []).append(OtherDeclaration(name=name, node=declaration, kind="overload"))
    elif kind in ("lexical_declaration", "variable_declaration"):
        for declarator in declaration.named_children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            if name_node is None or name_node.type != "identifier":
                continue
            name = node_text(name_node)
            found.setdefault(name, []).append(_classify_declarator(name, declarator, statement))
    elif kind in ("class_declaration", "abstract_class_declaration"):
        name = node_text(declaration.child_by_field_name("name"))
        found.setdefault(name, []).append(OtherDeclaration(name=name, node=declaration, kind="class"))
    return found


def find_exported_declarations(tree: Tree) -> Dict[str, List[Declaration]]:
    """
    Map each exported name to its same-file declarations.

    Handles ``export function``, ``export const``, and local export clauses
    (``export { handler as GET }``). Re-exports from other modules are skipped.
    """
    root = tree.root_node
    local: Dict[str, List[Declaration]] = {}
    exported: Dict[str, List[Declaration]] = {}
    clauses: List[Node] = []

    for statement in root.named_children:
        if statement.type == "export_statement":
            declaration = statement.child_by_field_name("declaration")
            if any(child.type == "default" for child in statement.children):
                # default exports are never method handlers
                continue
            if declaration is not None:
                for name, decls in _classify_statement(declaration, statement).items():
                    exported.setdefault(name, []).extend(decls)
                    local.setdefault(name, []).extend(decls)
            elif statement.child_by_field_name("source") is None:
                clauses.extend(c for c in statement.named_children if c.type == "export_clause")
            else:
                logger.debug(f"Skipping re-export at line {start_line(statement)}")
        else:
            for name, decls in _classify_statement(statement, statement).items():
                local.setdefault(name, []).extend(decls)

    for clause in clauses:
        for specifier in clause.named_children:
            if specifier.type != "export_specifier":
                continue
            name = node_text(specifier.child_by_field_name("name"))
            alias = specifier.child_by_field_name("alias")
            exported_name = node_text(alias) if alias is not None else name
            exported.setdefault(exported_name, []).extend(local.get(name, []))

    return exported


def implementation_of(declarations: Sequence[Declaration]) -> Optional[FunctionLikeDeclaration]:
    """First declaration that is function-like and has a body."""
    for declaration in declarations:
        if isinstance(declaration, FunctionLikeDeclaration) and declaration.function.child_by_field_name("body") is not None:
            return declaration
    return None


def infer_response_type(declaration: FunctionLikeDeclaration, context: TypeContext, helpers: Sequence[str] = ("json",)) -> Optional[str]:
    """
    Infer the response payload type from response-helper calls in return statements.

    For every return statement below the declaration, the first call to a bare
    identifier in ``helpers`` contributes the type of its first argument.

    Returns:
        Distinct types joined with `` | `` in first-seen order, or None when no
        return statement wraps a recognized call.
    """
    types: List[str] = []
    for statement in descendants_of_type(declaration.node, "return_statement"):
        for call in iter_descendants(statement):
            if call.type != "call_expression":
                continue
            callee = call.child_by_field_name("function")
            if callee is None or callee.type != "identifier" or node_text(callee) not in helpers:
                continue
            arguments = call.child_by_field_name("arguments")
            args = [a for a in arguments.named_children if a.type != "comment"] if arguments is not None else []
            if args:
                types.append(context.infer(args[0]))
            break
    if not types:
        return None
    return join_types(types)


def find_query_parameters(declaration: FunctionLikeDeclaration, accessors: Sequence[str] = ("url.searchParams.get", "url.searchParams.getAll")) -> List[str]:
    """Names passed to query accessors, in source order, repeats kept."""
    wanted = {accessor.replace(" ", "") for accessor in accessors}
    names: List[str] = []
    for call in descendants_of_type(declaration.node, "call_expression"):
        callee = call.child_by_field_name("function")
        if callee is None or collapse(node_text(callee)).replace(" ", "") not in wanted:
            continue
        arguments = call.child_by_field_name("arguments")
        args = [a for a in arguments.named_children if a.type != "comment"] if arguments is not None else []
        if not args:
            continue
        names.append(node_text(args[0]).strip("'\"`"))
    return names


def declared_type_text(declaration: FunctionLikeDeclaration, context: TypeContext) -> str:
    """The handler's own type: its annotation if it has one, else the rendered function type."""
    if declaration.type_annotation:
        return declaration.type_annotation
    return context.function_type(declaration.function)
