"""
Generation session: holds the last good route map between passes and rebuilds
it when route files change.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from .config import Settings, settings as default_settings
from .errors import RouteScanError
from .models import RouteMap, RouteMapModel
from .observability import get_metrics_collector
from .route_map import generate_route_map
from .utils.io import write_json_atomic

logger = logging.getLogger(__name__)


class RouteMapGenerator:
    """Rebuilds the route map wholesale; a failed pass keeps the previous map."""

    def __init__(self, root: Path, config: Optional[Settings] = None):
        self.root = Path(root)
        self.config = config or default_settings
        self._routes: Optional[RouteMap] = None
        self._lock = threading.Lock()

    @property
    def routes(self) -> RouteMap:
        """The cached route map, built on first access."""
        if self._routes is None:
            return self.rebuild()
        return self._routes

    def rebuild(self) -> RouteMap:
        """Full re-scan. The cached map is replaced only if the scan succeeds."""
        with self._lock:
            try:
                routes = generate_route_map(self.root, self.config)
            except RouteScanError as e:
                get_metrics_collector().record_scan(failed=True)
                logger.error(f"Route scan failed, keeping previous route map: {e}")
                raise
            get_metrics_collector().record_scan()
            self._routes = routes
            return routes

    def handles_change(self, file_path: str) -> bool:
        return str(file_path).endswith(self.config.ROUTE_FILE_MARKER)

    def on_file_changed(self, file_path: str) -> Optional[RouteMap]:
        """Rebuild when ``file_path`` is a route file; returns the new map or None."""
        if not self.handles_change(file_path):
            return None
        logger.info(f"Route file changed: {file_path}")
        return self.rebuild()

    def write_artifact(self, output_path: Path) -> Path:
        """Write the current route map as JSON, atomically."""
        output_path = Path(output_path)
        write_json_atomic(output_path, RouteMapModel(self.routes))
        logger.info(f"Wrote route map to {output_path}")
        return output_path
