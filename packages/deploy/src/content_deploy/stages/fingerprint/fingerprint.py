from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Sequence

from content_deploy.core import InvalidArgumentError, sha256_bytes


@dataclass(frozen=True, slots=True)
class DependencyFingerprint:
    """
    SHA-256 digest of the dependency manifest contents.

    A pure function of the bytes: file names, timestamps and the host
    environment never enter the digest.
    """

    value: str

    PATTERN: ClassVar[re.Pattern[str]] = re.compile(r"^[0-9a-f]{64}$")

    def __post_init__(self) -> None:
        if not self.PATTERN.match(self.value):
            raise InvalidArgumentError(
                f"Invalid fingerprint {self.value!r}: expected 64 lowercase hex characters"
            )

    def __str__(self) -> str:
        return self.value

    @property
    def short(self) -> str:
        return self.value[:12]


def fingerprint_bytes(contents: Sequence[bytes]) -> DependencyFingerprint:
    """
    One manifest hashes to sha256(contents). Several manifests hash to
    sha256 over the per-file digests, in order.
    """
    if not contents:
        raise InvalidArgumentError("At least one manifest is required")
    if len(contents) == 1:
        return DependencyFingerprint(sha256_bytes(contents[0]))

    h = hashlib.sha256()
    for c in contents:
        h.update(sha256_bytes(c).encode("ascii"))
        h.update(b"\n")
    return DependencyFingerprint(h.hexdigest())


def fingerprint_manifests(paths: Sequence[Path]) -> DependencyFingerprint:
    missing = [str(p) for p in paths if not Path(p).is_file()]
    if missing:
        raise InvalidArgumentError(f"Dependency manifest not found: {', '.join(missing)}")
    return fingerprint_bytes([Path(p).read_bytes() for p in paths])


def cache_key_prefix(*, platform: str, namespace: str) -> str:
    return f"{platform}-{namespace}-"


def cache_key(
    fingerprint: DependencyFingerprint, *, platform: str, namespace: str
) -> str:
    """
    `Linux-pip-<fingerprint>`; the prefix doubles as the restore key.
    """
    return cache_key_prefix(platform=platform, namespace=namespace) + fingerprint.value
