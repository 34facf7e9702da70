import os
import shutil
import tempfile
from pathlib import Path


def ensure_parent(path: Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def safe_unlink(path: os.PathLike[str] | str) -> None:
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        return


def remove_tree(path: Path) -> None:
    """
    Best-effort recursive delete (temp dirs, invalidated cache entries).
    """
    shutil.rmtree(path, ignore_errors=True)


def relpath_posix(path: Path, base_dir: Path) -> str:
    return path.relative_to(base_dir).as_posix()


def file_size(path: Path) -> int:
    return int(path.stat().st_size)


def fsync_dir(parent: Path) -> None:
    """
    Ensure directory entry durability after atomic rename.
    """
    fd: int | None = None
    try:
        fd = os.open(parent, os.O_RDONLY)
        os.fsync(fd)
    finally:
        if fd is not None:
            os.close(fd)


def _atomic_write(path: Path, data: bytes, *, mode: int) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd: int | None = None
    tmp_path: Path | None = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.",
            suffix=".tmp",
            dir=str(path.parent),
        )
        tmp_path = Path(tmp_name)

        # Write, Flush, FSync process
        with os.fdopen(fd, "wb") as f:
            fd = None
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
        fsync_dir(path.parent)
    finally:
        if fd is not None:
            os.close(fd)
        if tmp_path is not None and tmp_path.exists():
            safe_unlink(tmp_path)


def atomic_write_text(
    path: Path,
    text: str,
    *,
    encoding: str = "utf-8",
    mode: int = 0o644,
) -> None:
    """
    Atomically write text to `path`.

    Guarantees:
      - readers either see the old complete file or the new complete file
      - no partial/truncated file on crash
      - temp file written in the same directory (atomic replace works)
      - file contents are fsync()'d before replace
    """
    _atomic_write(path, text.encode(encoding), mode=mode)


def atomic_write_bytes(path: Path, data: bytes, *, mode: int = 0o644) -> None:
    """
    Atomically write bytes to `path` with fsync + dir fsync.
    """
    _atomic_write(path, data, mode=mode)


def make_tmp_dir_for(final_dir: Path) -> Path:
    """
    Create a temp dir next to final_dir (same filesystem) so rename is atomic.
    """
    final_dir = Path(final_dir)
    final_dir.parent.mkdir(parents=True, exist_ok=True)
    tmp = tempfile.mkdtemp(prefix=f".{final_dir.name}.tmp.", dir=str(final_dir.parent))
    return Path(tmp)


def atomic_dir_commit(*, tmp_dir: Path, final_dir: Path) -> None:
    """
    Rename a fully written tmp_dir into place. Never replaces an existing
    final_dir: a concurrent or earlier commit of the same name wins and this
    call raises FileExistsError.
    """
    final_dir = Path(final_dir)
    tmp_dir = Path(tmp_dir)

    if final_dir.exists():
        raise FileExistsError(f"Target exists: {final_dir}")

    try:
        tmp_dir.rename(final_dir)
    except OSError as e:
        if final_dir.exists():
            raise FileExistsError(f"Target exists: {final_dir}") from e
        raise
    fsync_dir(final_dir.parent)


def atomic_symlink_swap(link: Path, target: Path) -> None:
    """
    Point `link` at `target` in a single rename. Readers resolve either the
    previous target or the new one, never a missing link.
    """
    link = Path(link)
    link.parent.mkdir(parents=True, exist_ok=True)
    tmp_link = link.with_name(f".{link.name}.{os.getpid()}.{os.urandom(4).hex()}.tmp")
    os.symlink(target, tmp_link, target_is_directory=True)
    try:
        os.replace(tmp_link, link)
    except OSError:
        safe_unlink(tmp_link)
        raise
    fsync_dir(link.parent)


def copy_or_hardlink(src: Path, dst: Path) -> None:
    """
    Prefer hardlink (O(1), no extra disk), fallback to copy2.
    """
    src = Path(src)
    dst = Path(dst)
    ensure_parent(dst)
    try:
        os.link(src, dst)
    except OSError:
        shutil.copy2(src, dst)


def copy_tree(src_dir: Path, dst_dir: Path) -> int:
    """
    Copy every regular file under src_dir into dst_dir, keeping relative paths.
    Returns the number of files copied.
    """
    src_dir = Path(src_dir)
    dst_dir = Path(dst_dir)
    n = 0
    for p in sorted(src_dir.rglob("*")):
        if not p.is_file():
            continue
        copy_or_hardlink(p, dst_dir / p.relative_to(src_dir))
        n += 1
    return n
