from __future__ import annotations

from traycer.specialists.base import SpecialistAgent


class ImplementerAgent(SpecialistAgent):
    role = "implementer"
    prompt_file = "implementer.md"
    fallback_prompt = """
You are the Implementer specialist.
Sketch the file edits that carry out the given plan steps, one entry per file.
Reply with JSON only: {"changes": [{"filePath": "...", "summary": "...", "rationale": "...",
"before": "...", "after": "...", "relatedPlanStepIds": ["..."]}]}.
""".strip()
