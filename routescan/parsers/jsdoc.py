"""
JSDoc blocks in route modules.

Blocks are matched to declarations by line adjacency only: a block belongs to
a declaration when it ends on the line right before the declaration starts.
Unusual formatting (a blank line in between, a comment sharing the
declaration's line) defeats the match.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from tree_sitter import Tree

from .tree_sitter_utils import end_line, iter_descendants, node_text, start_line

RE_TAG = re.compile(r"^@([A-Za-z_][\w-]*)\s*(.*)$")


@dataclass(frozen=True)
class DocTag:
    name: str
    comment: Optional[str]
    first_line: int     # index into DocBlock.lines
    last_line: int


@dataclass(frozen=True)
class DocBlock:
    text: str
    start_line: int
    end_line: int
    lines: Tuple[str, ...] = ()
    tags: Tuple[DocTag, ...] = field(default_factory=tuple)


def clean_comment_lines(text: str) -> List[str]:
    """Strip ``/**``, ``*/`` and the leading ``*`` gutter from every line."""
    body = text.strip()
    if body.startswith("/**"):
        body = body[3:]
    elif body.startswith("/*"):
        body = body[2:]
    if body.endswith("*/"):
        body = body[:-2]
    lines = []
    for raw in body.split("\n"):
        line = raw.strip()
        if line.startswith("*"):
            line = line[1:]
            if line.startswith(" "):
                line = line[1:]
        lines.append(line.rstrip())
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


def parse_tags(lines: Sequence[str]) -> List[DocTag]:
    """Tags start at the beginning of a cleaned line and run until the next tag."""
    tags: List[DocTag] = []
    current: Optional[Tuple[str, List[str], int]] = None
    for index, line in enumerate(lines):
        match = RE_TAG.match(line.strip())
        if match:
            if current is not None:
                tags.append(_close_tag(current, index - 1))
            current = (match.group(1), [match.group(2)], index)
        elif current is not None:
            current[1].append(line)
    if current is not None:
        tags.append(_close_tag(current, len(lines) - 1))
    return tags


def _close_tag(current: Tuple[str, List[str], int], last_line: int) -> DocTag:
    name, parts, first_line = current
    comment = "\n".join(parts).strip()
    return DocTag(name=name, comment=comment or None, first_line=first_line, last_line=last_line)


def parse_doc_block(text: str, first: int, last: int) -> DocBlock:
    lines = clean_comment_lines(text)
    return DocBlock(text=text, start_line=first, end_line=last, lines=tuple(lines), tags=tuple(parse_tags(lines)))


def collect_doc_blocks(tree: Tree) -> List[DocBlock]:
    """All ``/** ... */`` comments in the module, in source order."""
    blocks = []
    for node in iter_descendants(tree.root_node):
        if node.type != "comment":
            continue
        text = node_text(node)
        if not text.startswith("/**") or text == "/**/":
            continue
        blocks.append(parse_doc_block(text, start_line(node), end_line(node)))
    return blocks


def select_adjacent_blocks(blocks: Sequence[DocBlock], declaration_start_line: int) -> List[DocBlock]:
    """Blocks ending on the line immediately before ``declaration_start_line``."""
    return [block for block in blocks if block.end_line == declaration_start_line - 1]


def extract_body_type(blocks: Sequence[DocBlock], tag: str = "body") -> Optional[str]:
    """Comment of the last ``@body`` tag across ``blocks``; later tags win."""
    body_type = None
    for block in blocks:
        for doc_tag in block.tags:
            if doc_tag.name == tag:
                body_type = doc_tag.comment
    return body_type


def extract_documentation(blocks: Sequence[DocBlock], tag: str = "body") -> Optional[str]:
    """Cleaned text of ``blocks`` with the body tag removed, or None when empty."""
    if not blocks:
        return None
    texts = []
    for block in blocks:
        skipped = set()
        for doc_tag in block.tags:
            if doc_tag.name == tag:
                skipped.update(range(doc_tag.first_line, doc_tag.last_line + 1))
        kept = [line for index, line in enumerate(block.lines) if index not in skipped]
        text = "\n".join(kept).strip()
        if text:
            texts.append(text)
    return "\n".join(texts) or None
