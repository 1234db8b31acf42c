import asyncio
from collections.abc import AsyncIterator
from typing import Any

from traycer.backends.base import AgentBackend, BackendReply
from traycer.specialists import ImplementerAgent, PlannerAgent, ReviewerAgent


class FakeBackend(AgentBackend):
    name = "fake"

    def __init__(self) -> None:
        self.execute_calls = 0
        self.last_system_prompt: str | None = None
        self.last_context: dict[str, Any] | None = None

    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> AsyncIterator[str]:
        self.last_system_prompt = system_prompt
        self.last_context = context
        self.execute_calls += 1
        yield f"planned: {user_prompt}"


class FailoverReplyBackend(AgentBackend):
    name = "claude"

    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> AsyncIterator[str]:
        _ = system_prompt, user_prompt, context
        yield ""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> BackendReply:
        _ = system_prompt, user_prompt, context
        return BackendReply(
            content='{"steps": []}',
            backend="codex",
            fallback_from="claude",
            failures=("claude[0]: boom",),
        )


def test_planner_specialist_runs() -> None:
    backend = FakeBackend()
    planner = PlannerAgent(backend)
    response = asyncio.run(planner.run("Plan auth", {"prompt": "auth"}))

    assert response.role == "planner"
    assert response.content == "planned: Plan auth"
    assert response.backend == "fake"
    assert response.fallback_from is None
    assert backend.execute_calls == 1
    assert backend.last_context == {"prompt": "auth"}


def test_specialist_adds_model_to_context_without_mutating_input() -> None:
    backend = FakeBackend()
    planner = PlannerAgent(backend, model="gpt-5-codex")
    context = {"prompt": "auth"}

    asyncio.run(planner.run("Plan auth", context))

    assert backend.last_context is not None
    assert backend.last_context["model"] == "gpt-5-codex"
    assert "model" not in context


def test_specialists_load_packaged_prompts() -> None:
    backend = FakeBackend()

    planner = PlannerAgent(backend)
    implementer = ImplementerAgent(backend)
    reviewer = ReviewerAgent(backend)

    assert '"steps"' in planner.system_prompt
    assert '"changes"' in implementer.system_prompt
    assert '"reviews"' in reviewer.system_prompt
    assert implementer.role == "implementer"
    assert reviewer.role == "reviewer"


def test_specialist_response_carries_failover_metadata() -> None:
    reviewer = ReviewerAgent(FailoverReplyBackend())
    response = asyncio.run(reviewer.run("Review", {}))

    assert response.backend == "codex"
    assert response.fallback_from == "claude"
    assert response.metadata["instruction"] == "Review"
    assert response.metadata["failures"] == ["claude[0]: boom"]
