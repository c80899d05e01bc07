from __future__ import annotations
from pathlib import Path
import os
import tempfile
from typing import Union

from pydantic import BaseModel


def write_json_atomic(path: Path, model: BaseModel, *, indent: int = 2) -> None:
    """Write a pydantic model as JSON so readers never observe a partial file.

    The payload is serialized before anything touches the filesystem; the temp
    file is removed again if the write or the rename fails.
    """
    path = Path(path)
    data = model.model_dump_json(indent=indent, exclude_none=True)
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=str(path.parent), prefix=".tmp_", suffix=".json", encoding="utf-8") as tmp:
        tmp_path = Path(tmp.name)
        try:
            tmp.write(data)
        except BaseException:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise
    try:
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def read_text(path: Union[str, Path]) -> str:
    """Read a source file as UTF-8, tolerating a BOM."""
    return Path(path).read_text(encoding="utf-8-sig")
