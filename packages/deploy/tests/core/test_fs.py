from __future__ import annotations

import os
from pathlib import Path

import pytest
from content_deploy.core import fs


def test_atomic_write_text_and_bytes_roundtrip(tmp_path: Path) -> None:
    text_path = tmp_path / "d1" / "sample.txt"
    fs.atomic_write_text(text_path, "hello\n")
    assert text_path.read_text() == "hello\n"

    fs.atomic_write_text(text_path, "updated")
    assert text_path.read_text() == "updated"

    bytes_path = tmp_path / "d2" / "sample.bin"
    fs.atomic_write_bytes(bytes_path, b"\x00\x01")
    assert bytes_path.read_bytes() == b"\x00\x01"


def test_relpath_size_and_copy_or_hardlink(tmp_path: Path) -> None:
    src = tmp_path / "a" / "file.txt"
    fs.ensure_parent(src)
    src.write_text("data")

    dst = tmp_path / "b" / "copied.txt"
    fs.copy_or_hardlink(src, dst)
    assert dst.read_text() == "data"
    assert fs.file_size(dst) == 4
    assert fs.relpath_posix(dst, tmp_path) == "b/copied.txt"

    same_inode = os.stat(src).st_ino == os.stat(dst).st_ino
    assert same_inode or dst.read_text() == src.read_text()


def test_copy_tree_keeps_relative_layout(tmp_path: Path) -> None:
    src = tmp_path / "src"
    (src / "nested" / "deeper").mkdir(parents=True)
    (src / "index.html").write_text("<h1>hi</h1>")
    (src / "nested" / "deeper" / "page.html").write_text("page")

    n = fs.copy_tree(src, tmp_path / "dst")
    assert n == 2
    assert (tmp_path / "dst" / "nested" / "deeper" / "page.html").read_text() == "page"


def test_atomic_dir_commit_never_replaces(tmp_path: Path) -> None:
    final = tmp_path / "artifacts" / "abc"

    tmp1 = fs.make_tmp_dir_for(final)
    (tmp1 / "x.txt").write_text("first")
    fs.atomic_dir_commit(tmp_dir=tmp1, final_dir=final)
    assert (final / "x.txt").read_text() == "first"

    tmp2 = fs.make_tmp_dir_for(final)
    (tmp2 / "x.txt").write_text("second")
    with pytest.raises(FileExistsError):
        fs.atomic_dir_commit(tmp_dir=tmp2, final_dir=final)
    assert (final / "x.txt").read_text() == "first"


def test_atomic_symlink_swap_points_at_latest(tmp_path: Path) -> None:
    (tmp_path / "releases" / "one").mkdir(parents=True)
    (tmp_path / "releases" / "two").mkdir(parents=True)
    link = tmp_path / "current"

    fs.atomic_symlink_swap(link, Path("releases") / "one")
    assert link.resolve() == (tmp_path / "releases" / "one").resolve()

    fs.atomic_symlink_swap(link, Path("releases") / "two")
    assert link.resolve() == (tmp_path / "releases" / "two").resolve()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["current", "releases"]
