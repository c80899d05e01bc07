"""
Observability and metrics collection for route scans.
Tracks files scanned, routes found, and heuristic fallbacks.
"""
import logging
from typing import Dict, Any
from dataclasses import dataclass, field
from threading import Lock

logger = logging.getLogger(__name__)

@dataclass
class ScanMetrics:
    """Thread-safe metrics collector for route scans."""

    # Counters
    files_scanned: int = 0
    files_with_routes: int = 0
    routes_detected: int = 0
    scans_completed: int = 0
    scans_failed: int = 0

    # Fallback tracking
    fallback_counts: Dict[str, int] = field(default_factory=dict)
    fallback_samples: Dict[str, list] = field(default_factory=dict)

    # Timing
    phase_timings: Dict[str, float] = field(default_factory=dict)
    total_parse_time: float = 0.0

    # Thread safety
    _lock: Lock = field(default_factory=Lock)

    def record_file_scanned(self, parse_time: float, routes: int):
        """Record one analyzed route file."""
        with self._lock:
            self.files_scanned += 1
            if routes:
                self.files_with_routes += 1
                self.routes_detected += routes
            self.total_parse_time += parse_time

    def record_scan(self, failed: bool = False):
        with self._lock:
            if failed:
                self.scans_failed += 1
            else:
                self.scans_completed += 1

    def record_fallback(self, reason_code: str, file_path: str, sample_limit: int = 10):
        """Record a fallback event with sample."""
        with self._lock:
            self.fallback_counts[reason_code] = self.fallback_counts.get(reason_code, 0) + 1
            if reason_code not in self.fallback_samples:
                self.fallback_samples[reason_code] = []
            if len(self.fallback_samples[reason_code]) < sample_limit:
                self.fallback_samples[reason_code].append(file_path)

    def record_phase_timing(self, phase: str, duration: float):
        """Record phase timing."""
        with self._lock:
            self.phase_timings[phase] = duration

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "files": {
                    "scanned": self.files_scanned,
                    "with_routes": self.files_with_routes,
                },
                "routes": self.routes_detected,
                "scans": {
                    "completed": self.scans_completed,
                    "failed": self.scans_failed,
                },
                "fallbacks": {
                    "counts": dict(self.fallback_counts),
                    "samples": dict(self.fallback_samples)
                },
                "timing": {
                    "phase_timings": dict(self.phase_timings),
                    "avg_file_parse_time": self.total_parse_time / max(self.files_scanned, 1)
                }
            }

# Global metrics collector instance
_metrics_collector = ScanMetrics()

def get_metrics_collector() -> ScanMetrics:
    """Get the global metrics collector instance."""
    return _metrics_collector

def reset_metrics() -> None:
    """Replace the global collector with an empty one."""
    global _metrics_collector
    _metrics_collector = ScanMetrics()

def record_fallback(reason_code: str, file_path: str):
    """Convenience function to record a fallback."""
    _metrics_collector.record_fallback(reason_code, file_path)

def record_phase_timing(phase: str, duration: float):
    """Convenience function to record phase timing."""
    _metrics_collector.record_phase_timing(phase, duration)

def log_metrics_summary() -> None:
    summary = _metrics_collector.get_metrics_summary()
    logger.info(
        f"Scanned {summary['files']['scanned']} route files, "
        f"{summary['routes']} routes, fallbacks: {summary['fallbacks']['counts']}"
    )
