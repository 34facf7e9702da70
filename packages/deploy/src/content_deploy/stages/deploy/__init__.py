from .gate import DeploymentGate, GateState, GateToken, PendingRequest
from .hosting import DirectoryHost, HostingEndpoint, HttpHost, PromotionResult
from .stage import CheckStage, DeployStage

__all__ = [
    "CheckStage",
    "DeployStage",
    "DeploymentGate",
    "DirectoryHost",
    "GateState",
    "GateToken",
    "HostingEndpoint",
    "HttpHost",
    "PendingRequest",
    "PromotionResult",
]
