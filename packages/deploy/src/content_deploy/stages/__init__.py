from .build import BuildStage
from .cache import CacheRestoreStage
from .deploy import CheckStage, DeployStage
from .fingerprint import FingerprintStage
from .publish import PublishStage
from .resolve import ResolveStage

__all__ = [
    "FingerprintStage",
    "CacheRestoreStage",
    "ResolveStage",
    "BuildStage",
    "PublishStage",
    "DeployStage",
    "CheckStage",
]
