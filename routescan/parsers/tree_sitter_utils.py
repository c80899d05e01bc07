"""
Tree-sitter utilities for parsing SvelteKit route modules.
Loads the TypeScript/TSX grammars and exposes small node helpers shared by the
declaration and documentation extractors.
"""

from typing import Iterator, List, Optional
import logging
from functools import lru_cache
from pathlib import Path

from tree_sitter import Language, Node, Parser, Tree

from ..errors import ParserConfigError, RouteParseError

logger = logging.getLogger(__name__)

# Grammar name by file extension; plain JS parses fine with the TypeScript grammar
GRAMMAR_BY_EXT = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".js": "typescript",
    ".mjs": "typescript",
    ".tsx": "tsx",
    ".jsx": "tsx",
}

FUNCTION_NODE_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
})


@lru_cache(maxsize=4)
def load_language(grammar: str = "typescript") -> Language:
    """Load a compiled grammar from the tree-sitter-typescript wheel."""
    try:
        import tree_sitter_typescript as tsts

        if grammar == "typescript":
            language = Language(tsts.language_typescript())
        elif grammar == "tsx":
            language = Language(tsts.language_tsx())
        else:
            raise ParserConfigError(f"Unknown grammar: {grammar}")
    except ParserConfigError:
        raise
    except Exception as e:
        raise ParserConfigError(f"Failed to load {grammar} grammar: {e}") from e
    logger.debug(f"{grammar} grammar loaded")
    return language


def grammar_for(file_path: str) -> str:
    return GRAMMAR_BY_EXT.get(Path(file_path).suffix.lower(), "typescript")


class RouteParser:
    """One tree-sitter parser per grammar. Not thread-safe; use one per worker."""

    def __init__(self):
        self._parsers = {}

    def _parser(self, grammar: str) -> Parser:
        parser = self._parsers.get(grammar)
        if parser is None:
            parser = Parser(load_language(grammar))
            self._parsers[grammar] = parser
        return parser

    def parse(self, source: str, file_path: str) -> Tree:
        """
        Parse a route module.

        Raises:
            RouteParseError: if the tree contains syntax errors
        """
        tree = self._parser(grammar_for(file_path)).parse(source.encode("utf-8"))
        if tree.root_node.has_error:
            bad = first_error_node(tree.root_node)
            line = bad.start_point[0] + 1 if bad is not None else None
            raise RouteParseError(file_path, "syntax error", line)
        return tree


def first_error_node(node: Node) -> Optional[Node]:
    for child in iter_descendants(node):
        if child.is_error or child.is_missing:
            return child
    return None


def iter_descendants(node: Node) -> Iterator[Node]:
    """Pre-order walk below ``node`` (the node itself excluded)."""
    stack = list(reversed(node.children))
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def descendants_of_type(node: Node, node_type: str) -> List[Node]:
    return [n for n in iter_descendants(node) if n.type == node_type]


def node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def start_line(node: Node) -> int:
    """1-based line of the first character of ``node``."""
    return node.start_point[0] + 1


def end_line(node: Node) -> int:
    """1-based line of the last character of ``node``."""
    return node.end_point[0] + 1


def unwrap_expression(node: Optional[Node]) -> Optional[Node]:
    """Strip parentheses, ``satisfies`` and non-null assertions."""
    while node is not None and node.type in ("parenthesized_expression", "satisfies_expression", "non_null_expression"):
        named = node.named_children
        if not named:
            break
        node = named[0]
    return node
