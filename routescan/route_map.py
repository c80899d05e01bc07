"""
Route map construction.

Walks the routes tree, analyzes every route module once, and assembles
``{file: {method: Route}}``. Any scan-fatal or file-fatal error propagates;
a partial map is never returned.
"""
from __future__ import annotations

import concurrent.futures
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

from .config import Settings, settings as default_settings
from .discovery import find_route_files
from .errors import RouteParseError, ScanRootError
from .models import MethodTable, Route, RouteMap
from .observability import get_metrics_collector, record_fallback, record_phase_timing
from .parsers.declarations import (
    OtherDeclaration,
    declared_type_text,
    find_exported_declarations,
    find_query_parameters,
    implementation_of,
    infer_response_type,
)
from .parsers.jsdoc import collect_doc_blocks, extract_body_type, extract_documentation, select_adjacent_blocks
from .parsers.tree_sitter_utils import RouteParser, load_language
from .parsers.types import TypeContext
from .paths import canonical_route_path, expand_route_urls
from .utils.io import read_text

logger = logging.getLogger(__name__)


def analyze_route_file(file_path: str, config: Optional[Settings] = None, parser: Optional[RouteParser] = None) -> MethodTable:
    """
    Build the method table for one route module.

    Raises:
        RouteParseError: if the file cannot be read or parsed
    """
    config = config or default_settings
    parser = parser or RouteParser()
    start_time = time.time()

    try:
        source = read_text(file_path)
    except (OSError, UnicodeDecodeError) as e:
        raise RouteParseError(str(file_path), f"cannot read file: {e}") from e

    tree = parser.parse(source, str(file_path))
    blocks = collect_doc_blocks(tree)
    exported = find_exported_declarations(tree)

    table: MethodTable = {}
    path: Optional[str] = None
    urls: List[str] = []

    for method in config.HTTP_METHODS:
        declarations = exported.get(method)
        if not declarations:
            continue
        declaration = implementation_of(declarations)
        if declaration is None:
            kinds = ", ".join(d.kind for d in declarations if isinstance(d, OtherDeclaration))
            logger.debug(f"{file_path}: export {method} has no function implementation ({kinds})")
            record_fallback("non_function_export", str(file_path))
            continue

        if path is None:
            # location-derived, shared by every method in the file
            path = canonical_route_path(
                file_path,
                routes_marker=config.ROUTES_ROOT_MARKER,
                filename_marker=config.ROUTE_FILE_MARKER,
                strict=config.STRICT_ROUTES_ROOT,
            )
            urls = expand_route_urls(path)

        context = TypeContext(tree.root_node, declaration.function)
        try:
            return_type = infer_response_type(declaration, context, config.RESPONSE_HELPERS)
            declared_type = declared_type_text(declaration, context)
        except RecursionError:
            logger.warning(f"{file_path}: type of {method} nests too deeply to render")
            record_fallback("type_too_deep", str(file_path))
            return_type = None
            declared_type = config.UNKNOWN_TYPE
        if return_type is None:
            logger.debug(f"{file_path}: no {'/'.join(config.RESPONSE_HELPERS)}() response in {method}")
            record_fallback("return_type_unknown", str(file_path))
            return_type = config.UNKNOWN_TYPE

        comments = select_adjacent_blocks(blocks, declaration.start_line)

        table[method] = Route(
            method=method,
            declaredType=declared_type,
            returnType=return_type,
            documentation=extract_documentation(comments, config.BODY_TAG),
            queryParameters=tuple(find_query_parameters(declaration, config.QUERY_ACCESSORS)),
            bodyType=extract_body_type(comments, config.BODY_TAG),
            urls=tuple(urls),
            path=path,
        )

    get_metrics_collector().record_file_scanned(time.time() - start_time, len(table))
    logger.debug(f"{file_path}: {sorted(table)}")
    return table


def generate_route_map(root: Path, config: Optional[Settings] = None) -> RouteMap:
    """
    Scan ``root`` and build the route map.

    Raises:
        ScanRootError: if the root cannot be scanned
        ParserConfigError: if the grammar cannot be loaded
        RouteParseError: if any route file fails to parse
    """
    config = config or default_settings
    start_time = time.time()
    root = Path(root)
    if not root.is_dir():
        raise ScanRootError(f"Routes root does not exist or is not a directory: {root}")

    # fail before touching any file if the grammar is unusable
    load_language("typescript")

    files = find_route_files(root, config.ROUTE_FILE_MARKER, config.IGNORED_DIRS)
    record_phase_timing("discover", time.time() - start_time)

    routes: RouteMap = {}
    parse_start = time.time()
    if config.SCAN_WORKERS > 1 and len(files) > 1:
        _scan_parallel(files, config, routes)
    else:
        parser = RouteParser()
        for file_path in files:
            table = analyze_route_file(file_path, config, parser)
            if table:
                routes[file_path] = table
    record_phase_timing("analyze", time.time() - parse_start)

    logger.info(
        f"Route map built: {sum(len(t) for t in routes.values())} routes in {len(routes)} of {len(files)} files "
        f"({time.time() - start_time:.3f}s)"
    )
    return routes


def _scan_parallel(files: List[str], config: Settings, routes: RouteMap) -> None:
    """Analyze files on a thread pool; only this thread writes to ``routes``."""
    results: Dict[str, MethodTable] = {}

    def _analyze(file_path: str) -> MethodTable:
        # tree-sitter parsers are not shareable across threads
        return analyze_route_file(file_path, config, RouteParser())

    with concurrent.futures.ThreadPoolExecutor(max_workers=config.SCAN_WORKERS) as executor:
        futures = {executor.submit(_analyze, file_path): file_path for file_path in files}
        try:
            for future in concurrent.futures.as_completed(futures):
                table = future.result()
                if table:
                    results[futures[future]] = table
        except BaseException:
            for pending in futures:
                pending.cancel()
            raise

    for file_path in files:
        if file_path in results:
            routes[file_path] = results[file_path]
