"""
Error taxonomy for route scanning.

Scan-fatal and file-fatal conditions are exceptions; heuristic misses are not
errors and never raise.
"""
from typing import Optional


class RouteScanError(Exception):
    """Base class for failures that abort a generation pass."""
    pass


class ScanRootError(RouteScanError):
    """Routes root is missing, not a directory, or cannot be read."""
    pass


class ParserConfigError(RouteScanError):
    """The TypeScript grammar could not be loaded."""
    pass


class RouteParseError(RouteScanError):
    """A matched route file could not be read or has syntax errors."""

    def __init__(self, file_path: str, message: str, line: Optional[int] = None):
        self.file_path = file_path
        self.line = line
        location = f"{file_path}:{line}" if line is not None else file_path
        super().__init__(f"{location}: {message}")


class RoutesRootNotFoundError(RouteScanError):
    """Raised in strict mode when a route file lies outside the routes root."""
    pass
