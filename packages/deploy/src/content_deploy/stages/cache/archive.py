from __future__ import annotations

import io
import tarfile
from pathlib import Path

from content_deploy.core import CacheError


def _reset_tarinfo(ti: tarfile.TarInfo) -> tarfile.TarInfo:
    ti.uid = ti.gid = 0
    ti.uname = ti.gname = ""
    return ti


def pack_dir(src_dir: Path) -> bytes:
    """
    gzip'd tar of everything under src_dir, members in sorted order and
    relative to src_dir.
    """
    src_dir = Path(src_dir)
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for p in sorted(src_dir.rglob("*")):
            tar.add(
                p,
                arcname=p.relative_to(src_dir).as_posix(),
                recursive=False,
                filter=_reset_tarinfo,
            )
    return buf.getvalue()


def unpack_into(payload: bytes, dest_dir: Path) -> int:
    """
    Extract a pack_dir() payload into dest_dir. Members escaping dest_dir are
    refused by the "data" filter. Returns the number of members.
    """
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(fileobj=io.BytesIO(payload), mode="r:gz") as tar:
            members = tar.getmembers()
            tar.extractall(dest_dir, members=members, filter="data")
    except (tarfile.TarError, OSError, EOFError) as e:
        raise CacheError(f"Failed to unpack cache payload into {dest_dir}: {e}") from e
    return len(members)
