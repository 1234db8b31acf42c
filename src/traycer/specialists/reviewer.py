from __future__ import annotations

from traycer.specialists.base import SpecialistAgent


class ReviewerAgent(SpecialistAgent):
    role = "reviewer"
    prompt_file = "reviewer.md"
    fallback_prompt = """
You are the Reviewer specialist.
Find correctness, maintainability, and test coverage issues in the given changes.
Reply with JSON only: {"reviews": [{"filePath": "...", "severity": "info|warning|error",
"message": "...", "suggestion": "...", "line": null}]}.
""".strip()
