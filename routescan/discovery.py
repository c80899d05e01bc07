from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Iterable, List

from .errors import ScanRootError

logger = logging.getLogger(__name__)


def find_route_files(root: Path, marker: str = "+server.ts", ignored_dirs: Iterable[str] = ()) -> List[str]:
    """
    Absolute paths of every file below ``root`` whose name ends with ``marker``.

    Symlinked directories are not followed. Directories named in
    ``ignored_dirs`` are pruned.

    Raises:
        ScanRootError: if the root is missing or any directory cannot be read
    """
    root = Path(root)
    if not root.is_dir():
        raise ScanRootError(f"Routes root does not exist or is not a directory: {root}")

    ignored = set(ignored_dirs)

    def _fail(err: OSError):
        raise ScanRootError(f"Cannot read {err.filename}: {err.strerror}") from err

    found: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root.resolve(), onerror=_fail):
        dirnames[:] = [d for d in dirnames if d not in ignored]
        for filename in filenames:
            if filename.endswith(marker):
                found.append(os.path.join(dirpath, filename))

    found.sort()
    logger.debug(f"Found {len(found)} route files under {root}")
    return found
