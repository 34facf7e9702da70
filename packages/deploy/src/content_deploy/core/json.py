import json
from pathlib import Path
from typing import Any

from .fs import atomic_write_text


def stable_json_dumps(obj: Any, *, indent: int | None = 2) -> str:
    """
    Deterministic JSON:
      - sort_keys=True
      - ensure_ascii=False
      - stable separators when indent is None
    """
    if indent is None:
        return json.dumps(
            obj, sort_keys=True, ensure_ascii=False, separators=(",", ":")
        )
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, indent=indent)


def atomic_write_json(path: Path, obj: Any, *, indent: int = 2) -> None:
    atomic_write_text(path, stable_json_dumps(obj, indent=indent) + "\n")


def read_json(path: Path) -> dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as f:
        obj = json.load(f)
    if not isinstance(obj, dict):
        raise ValueError(f"Expected JSON object in {path}, got {type(obj).__name__}")
    return obj
