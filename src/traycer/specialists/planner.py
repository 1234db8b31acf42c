from __future__ import annotations

from traycer.specialists.base import SpecialistAgent


class PlannerAgent(SpecialistAgent):
    role = "planner"
    prompt_file = "planner.md"
    fallback_prompt = """
You are the Planner specialist.
Break the task into ordered, dependency-aware steps.
Reply with JSON only: {"steps": [{"title": "...", "detail": "...", "blockedBy": null}]}.
You produce plans, not code.
""".strip()
