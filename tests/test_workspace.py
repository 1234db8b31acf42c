import asyncio
from typing import Any

import pytest

from traycer.gateway import GenerationFailure, LocalGateway
from traycer.gateway.base import GenerationGateway, PlanResult, ReviewResult, SketchResult
from traycer.models import (
    CodeChange,
    ImplementationSeedOptions,
    PlanGenerationOptions,
    PlanStep,
    ReviewRunOptions,
    Task,
)
from traycer.workspace import Workspace

PLAN_OPTIONS = PlanGenerationOptions(
    prompt="Add logging",
    focus_areas=("observability",),
    emphasize_tests=True,
    tone="succinct",
)


class FailingGateway(GenerationGateway):
    provider = "claude"

    def __init__(self, error: Exception) -> None:
        self.error = error

    async def _plan(self, options: PlanGenerationOptions) -> PlanResult:
        raise self.error

    async def _sketch(
        self, plan: tuple[PlanStep, ...], options: ImplementationSeedOptions
    ) -> SketchResult:
        raise self.error

    async def _review(
        self, changes: tuple[CodeChange, ...], options: ReviewRunOptions
    ) -> ReviewResult:
        raise self.error


class GatedGateway(LocalGateway):
    """Local generator whose plan calls wait until the test releases them."""

    def __init__(self) -> None:
        super().__init__()
        self.gates: dict[str, asyncio.Event] = {}

    async def _plan(self, options: PlanGenerationOptions) -> PlanResult:
        gate = self.gates.setdefault(options.prompt, asyncio.Event())
        await gate.wait()
        return await super()._plan(options)


class WarningGateway(LocalGateway):
    async def _sketch(
        self, plan: tuple[PlanStep, ...], options: ImplementationSeedOptions
    ) -> SketchResult:
        result = await super()._sketch(plan, options)
        return SketchResult(
            changes=result.changes,
            provider="codex",
            warning="Claude Code CLI was unavailable; answered by Codex CLI.",
        )


def _all_ids_unique(workspace: Workspace) -> bool:
    task = workspace.task
    return all(
        len({item.id for item in items}) == len(items)
        for items in (task.plan, task.changes, task.reviews)
    )


def test_regenerate_plan_replaces_plan_and_reports_success() -> None:
    workspace = Workspace(LocalGateway())

    status = asyncio.run(workspace.regenerate_plan(PLAN_OPTIONS))

    assert status.status == "success"
    assert status.provider == "local"
    assert status.message == "Plan updated with 4 steps."
    assert status.updated_at is not None
    assert workspace.task.prompt == "Add logging"
    assert len(workspace.task.plan) == 4
    assert all(step.status == "todo" for step in workspace.task.plan)
    assert workspace.task.changes == ()
    assert workspace.task.reviews == ()


def test_regenerate_plan_always_empties_changes_and_reviews() -> None:
    workspace = Workspace(LocalGateway())

    async def _flow() -> None:
        await workspace.regenerate_plan(PLAN_OPTIONS)
        await workspace.seed_implementation()
        await workspace.run_review()
        assert workspace.task.changes and workspace.task.reviews
        await workspace.regenerate_plan(PLAN_OPTIONS)

    asyncio.run(_flow())

    assert workspace.task.changes == ()
    assert workspace.task.reviews == ()


def test_seed_implementation_into_empty_changes_takes_result_exactly() -> None:
    workspace = Workspace(LocalGateway())
    asyncio.run(workspace.regenerate_plan(PLAN_OPTIONS))
    plan_ids = {step.id for step in workspace.task.plan}

    status = asyncio.run(workspace.seed_implementation())

    assert status.status == "success"
    assert status.message == "Seeded 3 changes."
    assert len(workspace.task.changes) == 3
    for change in workspace.task.changes:
        assert change.status == "draft"
        assert set(change.related_plan_step_ids) <= plan_ids


def test_seed_implementation_never_overwrites_existing_changes() -> None:
    workspace = Workspace(LocalGateway())

    async def _flow() -> None:
        await workspace.regenerate_plan(PLAN_OPTIONS)
        await workspace.seed_implementation()
        first = workspace.task.changes
        workspace.update_code_change(first[0].id, summary="hand edited")
        workspace.add_manual_change("docs/notes.md", "Notes", "Document the flow")
        await workspace.seed_implementation()

    asyncio.run(_flow())

    changes = workspace.task.changes
    assert len(changes) == 4
    assert changes[0].summary == "hand edited"
    assert len({change.file_path for change in changes}) == 4
    assert _all_ids_unique(workspace)


def test_seed_with_empty_plan_succeeds_without_changes() -> None:
    workspace = Workspace(
        FailingGateway(RuntimeError("must not be called")),
        task=Task(id="t1", title="Empty", prompt="Nothing planned yet"),
    )

    status = asyncio.run(workspace.seed_implementation())
    review = asyncio.run(workspace.run_review())

    assert status.status == "success"
    assert review.status == "success"
    assert workspace.task.changes == ()
    assert workspace.task.reviews == ()


def test_mark_all_ready_settles_review_stage_idle() -> None:
    workspace = Workspace(LocalGateway())
    first = workspace.add_manual_change("a.py", "A", "why")
    workspace.add_manual_change("b.py", "B", "why")
    workspace.update_code_change_status(first.id, "ready")
    asyncio.run(workspace.run_review())
    assert workspace.task.reviews

    workspace.mark_all_changes_ready()
    once = workspace.task.changes
    workspace.mark_all_changes_ready()

    assert {change.status for change in workspace.task.changes} == {"ready"}
    assert workspace.task.changes == once
    assert workspace.task.reviews == ()
    review_status = workspace.status["review"]
    assert review_status.status == "idle"
    assert review_status.error is None
    assert review_status.message == "All changes marked ready for review."


def test_paranoid_review_yields_error_for_every_ready_change() -> None:
    workspace = Workspace(LocalGateway())
    for name in ("a.py", "b.py", "c.py"):
        workspace.add_manual_change(name, name, "why")
    workspace.mark_all_changes_ready()

    status = asyncio.run(workspace.run_review(ReviewRunOptions(strictness="paranoid")))

    assert status.status == "success"
    reviews = workspace.task.reviews
    assert len(reviews) >= len(workspace.task.changes)
    for change in workspace.task.changes:
        assert any(
            review.file_path == change.file_path and review.severity == "error"
            for review in reviews
        )


def test_run_review_replaces_reviews_wholesale() -> None:
    workspace = Workspace(LocalGateway())
    workspace.add_manual_change("a.py", "A", "why")

    asyncio.run(workspace.run_review())
    first_ids = {review.id for review in workspace.task.reviews}
    asyncio.run(workspace.run_review())

    assert len(workspace.task.reviews) == 2
    assert first_ids.isdisjoint(review.id for review in workspace.task.reviews)


def test_plan_failure_records_error_and_keeps_plan() -> None:
    events: list[dict[str, Any]] = []
    workspace = Workspace(
        FailingGateway(GenerationFailure("Claude Code CLI could not complete the request")),
        event_hook=events.append,
    )
    before = workspace.task

    status = asyncio.run(workspace.regenerate_plan(PLAN_OPTIONS))

    assert status.status == "error"
    assert status.error == "Claude Code CLI could not complete the request"
    assert workspace.task is before
    assert [event["event"] for event in events] == ["stage_begin", "stage_error"]


def test_unexpected_exception_uses_stage_default_message() -> None:
    workspace = Workspace(FailingGateway(ConnectionError("socket closed")))
    workspace.add_manual_change("a.py", "A", "why")
    before = workspace.task

    status = asyncio.run(workspace.run_review())

    assert status.status == "error"
    assert status.error == "Unable to run review."
    assert workspace.task is before


def test_empty_generation_failure_message_falls_back_to_default() -> None:
    workspace = Workspace(FailingGateway(GenerationFailure("")))

    status = asyncio.run(workspace.seed_implementation())

    assert status.error == "Unable to seed implementation."


def test_failed_seed_keeps_existing_changes_and_reviews() -> None:
    workspace = Workspace(LocalGateway())
    workspace.add_manual_change("a.py", "A", "why")
    workspace.add_manual_change("b.py", "B", "why")
    asyncio.run(workspace.run_review())
    before = workspace.task
    assert len(before.changes) == 2
    assert before.reviews

    workspace.gateway = FailingGateway(GenerationFailure("down"))
    status = asyncio.run(workspace.seed_implementation())

    assert status.status == "error"
    assert status.error == "down"
    assert workspace.task is before
    assert [change.file_path for change in workspace.task.changes] == ["a.py", "b.py"]


def test_clear_workspace_rereads_default_provider() -> None:
    selected = {"provider": "claude"}
    workspace = Workspace(LocalGateway(), provider_factory=lambda: selected["provider"])
    assert workspace.provider == "local"

    selected["provider"] = "codex"
    workspace.clear_workspace()

    assert workspace.provider == "codex"
    assert workspace.status["planning"].provider == "codex"

    workspace.clear_workspace("claude")
    assert workspace.provider == "claude"


def test_retry_after_failure_returns_to_loading_then_success() -> None:
    workspace = Workspace(FailingGateway(GenerationFailure("down")))
    asyncio.run(workspace.regenerate_plan(PLAN_OPTIONS))
    assert workspace.status["planning"].status == "error"

    workspace.gateway = LocalGateway()
    status = asyncio.run(workspace.regenerate_plan(PLAN_OPTIONS))

    assert status.status == "success"
    assert status.error is None


def test_status_is_loading_while_call_is_in_flight() -> None:
    gateway = GatedGateway()
    workspace = Workspace(gateway)

    async def _flow() -> None:
        call = asyncio.create_task(workspace.regenerate_plan(PLAN_OPTIONS))
        await asyncio.sleep(0)
        assert workspace.status["planning"].status == "loading"
        assert workspace.status["planning"].message == "Generating plan..."
        gateway.gates[PLAN_OPTIONS.prompt].set()
        await call

    asyncio.run(_flow())

    assert workspace.status["planning"].status == "success"


def test_overlapping_plan_calls_resolve_last_write_wins() -> None:
    gateway = GatedGateway()
    workspace = Workspace(gateway)
    first = PlanGenerationOptions(prompt="first")
    second = PlanGenerationOptions(prompt="second")

    async def _flow() -> None:
        call_first = asyncio.create_task(workspace.regenerate_plan(first))
        call_second = asyncio.create_task(workspace.regenerate_plan(second))
        await asyncio.sleep(0)
        gateway.gates["second"].set()
        await call_second
        gateway.gates["first"].set()
        await call_first

    asyncio.run(_flow())

    assert workspace.task.prompt == "first"


def test_manual_edits_apply_while_review_is_in_flight() -> None:
    class GatedReview(LocalGateway):
        def __init__(self) -> None:
            super().__init__()
            self.gate = asyncio.Event()

        async def _review(
            self, changes: tuple[CodeChange, ...], options: ReviewRunOptions
        ) -> ReviewResult:
            await self.gate.wait()
            return await super()._review(changes, options)

    gateway = GatedReview()
    workspace = Workspace(gateway)
    change = workspace.add_manual_change("a.py", "A", "why")

    async def _flow() -> None:
        call = asyncio.create_task(workspace.run_review())
        await asyncio.sleep(0)
        workspace.update_code_change(change.id, summary="edited during review")
        gateway.gate.set()
        await call

    asyncio.run(_flow())

    assert workspace.task.changes[0].summary == "edited during review"
    assert workspace.task.reviews


def test_success_warning_and_provider_are_surfaced() -> None:
    events: list[dict[str, Any]] = []
    workspace = Workspace(WarningGateway(), provider="claude", event_hook=events.append)
    asyncio.run(workspace.regenerate_plan(PLAN_OPTIONS))

    status = asyncio.run(workspace.seed_implementation())

    assert status.provider == "codex"
    assert status.warning == "Claude Code CLI was unavailable; answered by Codex CLI."
    assert workspace.status.provider == "codex"
    assert events[-1] == {
        "event": "stage_success",
        "stage": "implementation",
        "provider": "codex",
        "warning": "Claude Code CLI was unavailable; answered by Codex CLI.",
    }


def test_remove_change_prunes_reviews_for_its_file() -> None:
    workspace = Workspace(LocalGateway())
    doomed = workspace.add_manual_change("a.py", "A", "why")
    workspace.add_manual_change("b.py", "B", "why")
    asyncio.run(workspace.run_review())

    workspace.remove_code_change(doomed.id)

    assert [change.file_path for change in workspace.task.changes] == ["b.py"]
    assert workspace.task.reviews
    assert all(review.file_path == "b.py" for review in workspace.task.reviews)


def test_toggle_review_and_unknown_ids_are_silent() -> None:
    workspace = Workspace(LocalGateway())
    workspace.add_manual_change("a.py", "A", "why")
    asyncio.run(workspace.run_review())
    review_id = workspace.task.reviews[0].id

    workspace.toggle_review_resolved(review_id)
    snapshot = workspace.task
    workspace.toggle_review_resolved("missing")
    workspace.update_plan_step_status("missing", "done")
    workspace.update_code_change_status("missing", "ready")
    workspace.remove_code_change("missing")

    assert workspace.task.reviews[0].resolved is True
    assert workspace.task is snapshot


def test_update_code_change_rejects_unknown_fields() -> None:
    workspace = Workspace(LocalGateway())
    change = workspace.add_manual_change("a.py", "A", "why")

    with pytest.raises(ValueError):
        workspace.update_code_change(change.id, owner="me")


def test_clear_workspace_resets_task_and_status() -> None:
    events: list[dict[str, Any]] = []
    workspace = Workspace(LocalGateway(), event_hook=events.append)
    original_id = workspace.task.id
    asyncio.run(workspace.regenerate_plan(PLAN_OPTIONS))

    workspace.clear_workspace(provider="codex")

    assert workspace.task.id != original_id
    assert len(workspace.task.plan) == 3
    assert workspace.status.provider == "codex"
    assert workspace.status["planning"].status == "idle"
    assert workspace.status["planning"].message == "Idle · Codex CLI"
    assert events[-1] == {"event": "workspace_cleared", "provider": "codex"}


def test_snapshot_includes_task_status_and_telemetry() -> None:
    workspace = Workspace(LocalGateway())
    step = workspace.task.plan[0]
    workspace.update_plan_step_status(step.id, "done")

    snapshot = workspace.snapshot()

    assert set(snapshot) == {"task", "status", "telemetry"}
    assert snapshot["task"]["plan"][0]["status"] == "done"
    assert snapshot["status"]["planning"]["status"] == "idle"
    telemetry = snapshot["telemetry"]
    assert telemetry["plan"]["done"] == 1
    assert 0 <= telemetry["confidence"] <= 100
    assert isinstance(telemetry["confidence"], int)
