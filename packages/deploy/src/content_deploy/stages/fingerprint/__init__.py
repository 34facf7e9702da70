from .fingerprint import (
    DependencyFingerprint,
    cache_key,
    cache_key_prefix,
    fingerprint_bytes,
    fingerprint_manifests,
)
from .stage import FingerprintStage

__all__ = [
    "DependencyFingerprint",
    "FingerprintStage",
    "cache_key",
    "cache_key_prefix",
    "fingerprint_bytes",
    "fingerprint_manifests",
]
