"""Command-line entry point: scan a SvelteKit project and emit its route map as JSON."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import settings
from .errors import RouteScanError
from .generator import RouteMapGenerator
from .models import RouteMapModel
from .observability import log_metrics_summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="routescan", description=__doc__)
    parser.add_argument("root", type=Path, help="Project root to scan")
    parser.add_argument("-o", "--output", type=Path, help="Write the route map here instead of stdout")
    parser.add_argument("--workers", type=int, default=settings.SCAN_WORKERS, help="Files analyzed in parallel")
    parser.add_argument("--strict-routes-root", action="store_true", default=settings.STRICT_ROUTES_ROOT,
                        help="Fail when a route file is outside the routes root")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )
    logger = logging.getLogger("routescan")

    config = dataclasses.replace(settings, SCAN_WORKERS=max(1, args.workers), STRICT_ROUTES_ROOT=args.strict_routes_root)
    generator = RouteMapGenerator(args.root, config)
    try:
        if args.output:
            generator.write_artifact(args.output)
        else:
            sys.stdout.write(RouteMapModel(generator.routes).model_dump_json(indent=2, exclude_none=True) + "\n")
    except RouteScanError as e:
        logger.error(f"Route scan failed: {e}")
        return 1
    log_metrics_summary()
    return 0


if __name__ == "__main__":
    sys.exit(main())
