from __future__ import annotations

from dataclasses import dataclass, field
from importlib import resources
from typing import Any

from traycer.backends.base import AgentBackend


@dataclass(slots=True)
class SpecialistResponse:
    role: str
    content: str
    backend: str
    fallback_from: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class SpecialistAgent:
    role: str = "specialist"
    prompt_file: str | None = None
    fallback_prompt: str = "You are a software specialist."

    def __init__(self, backend: AgentBackend, *, model: str | None = None) -> None:
        self.backend = backend
        self.model = model
        self.system_prompt = self._load_system_prompt()

    def _load_system_prompt(self) -> str:
        if not self.prompt_file:
            return self.fallback_prompt.strip()
        try:
            prompt_path = resources.files("traycer.prompts").joinpath(self.prompt_file)
            return prompt_path.read_text(encoding="utf-8").strip()
        except (FileNotFoundError, ModuleNotFoundError):
            return self.fallback_prompt.strip()

    async def run(self, instruction: str, context: dict[str, Any]) -> SpecialistResponse:
        run_context = dict(context)
        if self.model:
            run_context["model"] = self.model
        reply = await self.backend.complete(
            system_prompt=self.system_prompt,
            user_prompt=instruction,
            context=run_context,
        )
        return SpecialistResponse(
            role=self.role,
            content=reply.content,
            backend=reply.backend,
            fallback_from=reply.fallback_from,
            metadata={"instruction": instruction, "failures": list(reply.failures)},
        )
