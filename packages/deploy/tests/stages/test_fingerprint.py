from __future__ import annotations

from pathlib import Path

import pytest
from content_deploy.core import InvalidArgumentError
from content_deploy.stages.fingerprint import (
    DependencyFingerprint,
    cache_key,
    cache_key_prefix,
    fingerprint_bytes,
    fingerprint_manifests,
)


def test_fingerprint_depends_on_contents_only(tmp_path: Path) -> None:
    a = tmp_path / "a" / "requirements.txt"
    b = tmp_path / "b" / "deps.txt"
    a.parent.mkdir()
    b.parent.mkdir()
    a.write_text("jupyter-book==1.0.0\n")
    b.write_text("jupyter-book==1.0.0\n")

    assert fingerprint_manifests([a]) == fingerprint_manifests([b])
    assert fingerprint_manifests([a]) == fingerprint_manifests([a])

    b.write_text("jupyter-book==1.0.1\n")
    assert fingerprint_manifests([a]) != fingerprint_manifests([b])


def test_single_manifest_is_plain_sha256() -> None:
    fp = fingerprint_bytes([b"abc"])
    assert fp.value == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    assert str(fp) == fp.value
    assert fp.short == fp.value[:12]


def test_several_manifests_are_order_sensitive() -> None:
    ab = fingerprint_bytes([b"a", b"b"])
    ba = fingerprint_bytes([b"b", b"a"])
    assert ab != ba
    assert ab != fingerprint_bytes([b"ab"])


def test_missing_manifest_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(InvalidArgumentError, match="not found"):
        fingerprint_manifests([tmp_path / "nope.txt"])
    with pytest.raises(InvalidArgumentError):
        fingerprint_bytes([])


def test_fingerprint_value_is_validated() -> None:
    with pytest.raises(InvalidArgumentError):
        DependencyFingerprint("ABC")


def test_cache_key_shape() -> None:
    fp = fingerprint_bytes([b"numpy\n"])
    key = cache_key(fp, platform="Linux", namespace="pip")
    assert key == f"Linux-pip-{fp.value}"
    assert key.startswith(cache_key_prefix(platform="Linux", namespace="pip"))
