from __future__ import annotations

import json
import mimetypes
from dataclasses import dataclass
from functools import lru_cache
from importlib.resources import files
from pathlib import Path
from typing import Any, Iterable

from content_deploy.core import file_size, sha256_file, utc_now_iso
from jsonschema import Draft202012Validator

MANIFEST_SCHEMA_REL = "schema/artifact_manifest.schema.json"


class ManifestValidationError(ValueError):
    """Manifest instance did not validate against the shipped JSON schema"""


@dataclass(frozen=True, slots=True)
class FileEntry:
    path: str
    bytes: int
    sha256: str
    content_type: str | None = None


@lru_cache(maxsize=1)
def validator() -> Draft202012Validator:
    raw = files("content_deploy").joinpath(MANIFEST_SCHEMA_REL).read_text(encoding="utf-8")
    return Draft202012Validator(json.loads(raw))


def format_errors(errors: Iterable[Any]) -> str:
    lines: list[str] = []
    for e in errors:
        path = (
            ".".join(str(p) for p in e.path) if getattr(e, "path", None) else "<root>"
        )
        lines.append(f"- {path}: {e.message}")
    return "\n".join(lines)


def validate_manifest(obj: dict[str, Any]) -> None:
    errs = sorted(validator().iter_errors(obj), key=lambda e: list(e.path))
    if errs:
        raise ManifestValidationError(
            "Manifest validation failed:\n" + format_errors(errs)
        )


def file_entries_from_dir(content_dir: Path) -> list[FileEntry]:
    """
    Walk content_dir and create FileEntry list with relative paths.
    """
    out: list[FileEntry] = []
    for p in sorted(content_dir.rglob("*")):
        if not p.is_file():
            continue
        rel = p.relative_to(content_dir).as_posix()
        ct, _ = mimetypes.guess_type(rel)
        out.append(
            FileEntry(
                path=rel,
                bytes=file_size(p),
                sha256=sha256_file(p).sha256,
                content_type=ct,
            )
        )
    return out


def build_manifest(
    *,
    artifact_id: str,
    producing_run: str,
    trigger: dict[str, Any],
    build: dict[str, Any],
    files: Iterable[FileEntry],
) -> dict[str, Any]:
    return {
        "manifest_version": 1,
        "artifact_id": artifact_id,
        "producing_run": producing_run,
        "created_at_utc": utc_now_iso(),
        "trigger": trigger,
        "build": build,
        "files": [
            {
                "path": f.path,
                "bytes": int(f.bytes),
                "sha256": f.sha256,
                "content_type": f.content_type,
            }
            for f in files
        ],
    }
