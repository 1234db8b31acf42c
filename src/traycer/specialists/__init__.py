from traycer.specialists.base import SpecialistAgent, SpecialistResponse
from traycer.specialists.implementer import ImplementerAgent
from traycer.specialists.planner import PlannerAgent
from traycer.specialists.reviewer import ReviewerAgent

__all__ = [
    "ImplementerAgent",
    "PlannerAgent",
    "ReviewerAgent",
    "SpecialistAgent",
    "SpecialistResponse",
]
