from .builder import Builder, SubprocessBuilder
from .models import BuildResult, BuildStatus
from .stage import BuildStage

__all__ = ["BuildResult", "BuildStage", "BuildStatus", "Builder", "SubprocessBuilder"]
