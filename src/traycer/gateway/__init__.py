from traycer.gateway.agent import AgentGateway
from traycer.gateway.base import (
    GenerationFailure,
    GenerationGateway,
    PlanResult,
    ReviewResult,
    SketchResult,
)
from traycer.gateway.factory import build_gateway
from traycer.gateway.local import LocalGateway

__all__ = [
    "AgentGateway",
    "GenerationFailure",
    "GenerationGateway",
    "LocalGateway",
    "PlanResult",
    "ReviewResult",
    "SketchResult",
    "build_gateway",
]
