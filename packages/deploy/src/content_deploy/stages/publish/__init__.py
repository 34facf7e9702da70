from .manifest import ManifestValidationError, validate_manifest
from .models import Artifact, artifact_id_for
from .stage import PublishStage
from .store import ArtifactStore, FsArtifactStore

__all__ = [
    "Artifact",
    "ArtifactStore",
    "FsArtifactStore",
    "ManifestValidationError",
    "PublishStage",
    "artifact_id_for",
    "validate_manifest",
]
