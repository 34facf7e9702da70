from .resolver import (
    CommandResolver,
    DependencyResolver,
    ResolvedDependencies,
    resolve_with_retry,
)
from .stage import ResolveStage

__all__ = [
    "CommandResolver",
    "DependencyResolver",
    "ResolveStage",
    "ResolvedDependencies",
    "resolve_with_retry",
]
