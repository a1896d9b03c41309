"""Shared file helpers."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson

from codemask.schemas import SourceFile


def save_json(data: Any, path: str | Path) -> None:
    """Serialise data to JSON using orjson."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS))


def load_json(path: str | Path) -> Any:
    with open(Path(path), "rb") as f:
        return orjson.loads(f.read())


def read_source_tree(root: str | Path) -> list[SourceFile]:
    """Every regular file under `root`, with POSIX paths relative to it, sorted."""
    root = Path(root)
    return [
        SourceFile(relative_path=p.relative_to(root).as_posix(), content=p.read_bytes())
        for p in sorted(root.rglob("*"))
        if p.is_file()
    ]
