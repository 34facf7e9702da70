from __future__ import annotations

from pathlib import Path

import pytest
from content_deploy.core import hashing, json

ABC_SHA256 = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_file_digest_matches_bytes_digest(tmp_path: Path) -> None:
    assert hashing.sha256_bytes(b"abc") == ABC_SHA256

    page = tmp_path / "index.html"
    page.write_bytes(b"abc")
    digest = hashing.sha256_file(page, chunk_bytes=1)
    assert digest == hashing.FileDigest(sha256=ABC_SHA256, bytes=3)


def test_sha256sums_file_is_sorted_and_reads_back(tmp_path: Path) -> None:
    sums = tmp_path / "sha256sums.txt"
    entries = {
        "manifest.json": "11" * 32,
        "content/index.html": ABC_SHA256,
        "content/_static/a b.css": "22" * 32,
    }
    hashing.write_sha256_sum_txt(sums, entries)

    names = [line.split("  ", 1)[1] for line in sums.read_text().splitlines()]
    assert names == sorted(entries)
    assert hashing.read_sha256_sum_txt(sums) == entries


def test_sha256sums_skips_blank_lines(tmp_path: Path) -> None:
    sums = tmp_path / "sha256sums.txt"
    sums.write_text(f"\n{ABC_SHA256}  content/index.html\n   \n")
    assert hashing.read_sha256_sum_txt(sums) == {"content/index.html": ABC_SHA256}


@pytest.mark.parametrize(
    "line",
    [
        f"{ABC_SHA256} content/index.html",
        ABC_SHA256,
        f"{ABC_SHA256}  ",
    ],
)
def test_sha256sums_rejects_malformed_lines(tmp_path: Path, line: str) -> None:
    sums = tmp_path / "sha256sums.txt"
    sums.write_text(line + "\n")
    with pytest.raises(ValueError, match="Malformed sha256sums line"):
        hashing.read_sha256_sum_txt(sums)


def test_json_record_written_stably(tmp_path: Path) -> None:
    record = {"sha256": ABC_SHA256, "key": "Linux-pip-abc", "bytes": 3}
    out = tmp_path / "entry.json"
    json.atomic_write_json(out, record)

    assert json.read_json(out) == record
    text = out.read_text(encoding="utf-8")
    assert text.endswith("\n")
    assert text.index('"bytes"') < text.index('"key"') < text.index('"sha256"')
    assert json.stable_json_dumps({"b": 1, "a": "é"}, indent=None) == '{"a":"é","b":1}'


def test_read_json_requires_an_object(tmp_path: Path) -> None:
    listing = tmp_path / "manifest.json"
    listing.write_text("[1, 2]")
    with pytest.raises(ValueError, match="Expected JSON object"):
        json.read_json(listing)

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ValueError):
        json.read_json(broken)
