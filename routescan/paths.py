"""
Route paths and URL templates.

A route file's location gives its canonical path (``/users/[[id]]``); the
canonical path expands into every URL template its optional segments allow.
"""
from __future__ import annotations

import logging
import posixpath
from typing import List, Tuple

from .errors import RoutesRootNotFoundError
from .observability import record_fallback

logger = logging.getLogger(__name__)


def normalize_separators(file_path: str) -> str:
    """Forward slashes only, redundant separators and ``.`` segments collapsed."""
    normalized = posixpath.normpath(str(file_path).replace("\\", "/"))
    # normpath keeps a leading '//' (POSIX allows it to be special); we don't
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def canonical_route_path(file_path: str, routes_marker: str = "src/routes", filename_marker: str = "+server.ts", strict: bool = False) -> str:
    """
    Translate a route file path into its canonical route path.

    Everything up to and including the last occurrence of ``routes_marker`` is
    dropped, as is the trailing ``/<filename_marker>``.

    Raises:
        RoutesRootNotFoundError: only when ``strict`` and the marker is absent
    """
    normalized = normalize_separators(file_path)
    marker = normalize_separators(routes_marker).strip("/")

    index = _find_marker(normalized, marker)
    if index < 0:
        if strict:
            raise RoutesRootNotFoundError(f"{file_path} is not under '{routes_marker}'")
        logger.warning(f"Routes root '{routes_marker}' not found in {file_path}; using the full path")
        record_fallback("routes_root_missing", str(file_path))
        remainder = normalized
    else:
        remainder = normalized[index + len(marker):]

    suffix = "/" + filename_marker
    if remainder.endswith(suffix):
        remainder = remainder[: -len(suffix)]
    elif remainder == filename_marker:
        remainder = ""
    if not remainder.startswith("/"):
        remainder = "/" + remainder
    return remainder


def _find_marker(path: str, marker: str) -> int:
    """Index of the last occurrence of ``marker`` as whole path components, or -1."""
    start = len(path)
    while True:
        index = path.rfind(marker, 0, start)
        if index < 0:
            return -1
        before_ok = index == 0 or path[index - 1] == "/"
        after = index + len(marker)
        after_ok = after == len(path) or path[after] == "/"
        if before_ok and after_ok:
            return index
        start = index + len(marker) - 1
        if start <= 0:
            return -1


def parse_segment(segment: str) -> Tuple[str, str]:
    """
    Classify one path segment.

    Returns:
        ``(kind, value)`` where kind is ``"literal"``, ``"required"`` or
        ``"optional"`` and value is the literal text or the parameter name
    """
    if segment.startswith("[[") and segment.endswith("]]") and len(segment) > 4:
        return "optional", _param_name(segment[2:-2])
    if segment.startswith("[") and segment.endswith("]") and len(segment) > 2:
        return "required", _param_name(segment[1:-1])
    return "literal", segment


def _param_name(inner: str) -> str:
    # [...rest] and [id=matcher] both name the parameter by the bare identifier
    if inner.startswith("..."):
        inner = inner[3:]
    return inner.split("=", 1)[0]


def expand_route_urls(route_path: str) -> List[str]:
    """
    Expand a canonical route path into URL templates.

    Each optional segment doubles the output: the variant without it comes
    first, then the one with ``{name}``. Outer segments are decided before
    inner ones. Uses an explicit stack, so depth is not bounded by recursion.
    """
    segments = [parse_segment(s) for s in route_path.split("/")]
    urls: List[str] = []
    seen = set()

    # (next segment index, segments accumulated so far)
    stack: List[Tuple[int, Tuple[str, ...]]] = [(0, ())]
    while stack:
        index, current = stack.pop()
        if index >= len(segments):
            url = "/".join(current) or "/"
            if url not in seen:
                seen.add(url)
                urls.append(url)
            continue
        kind, value = segments[index]
        if kind == "literal":
            stack.append((index + 1, current + (value,)))
        elif kind == "required":
            stack.append((index + 1, current + ("{" + value + "}",)))
        else:
            # LIFO: push the include branch first so the omit branch pops first
            stack.append((index + 1, current + ("{" + value + "}",)))
            stack.append((index + 1, current))
    return urls


def first_segment_before_param(url: str) -> str:
    """Segment right before the first ``{param}``, or the last segment when there is none."""
    segments = url.split("/")
    for index, segment in enumerate(segments):
        if segment.startswith("{"):
            return segments[index - 1] if index > 0 else segments[-1]
    return segments[-1]
