from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from traycer import transitions
from traycer.gateway.base import (
    GenerationFailure,
    GenerationGateway,
    PlanResult,
    ReviewResult,
    SketchResult,
)
from traycer.metrics import WorkspaceTelemetry, workspace_telemetry
from traycer.models import (
    CodeChange,
    CodeChangeStatus,
    ImplementationSeedOptions,
    PlanGenerationOptions,
    PlanStepStatus,
    ReviewRunOptions,
    Task,
    create_initial_task,
)
from traycer.status import Stage, StageStatus, StageTracker

logger = logging.getLogger(__name__)

WorkspaceEventHook = Callable[[dict[str, Any]], None]
ResultT = TypeVar("ResultT", PlanResult, SketchResult, ReviewResult)

STAGE_FAILURE_MESSAGES: dict[Stage, str] = {
    "planning": "Unable to generate plan.",
    "implementation": "Unable to seed implementation.",
    "review": "Unable to run review.",
}


def _counted(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


class Workspace:
    """Single owner of a task and its per-stage call status.

    Generation intents are coroutines: they mark the stage loading, await the
    gateway, then apply a merge rule to whatever task is current when the
    result arrives. Manual intents apply synchronously. Every mutation swaps
    in a new ``Task``/``StageTracker`` value, so readers never see a partial
    update. Overlapping calls on one stage are not fenced; the later
    completion wins.
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        *,
        provider: str | None = None,
        provider_factory: Callable[[], str] | None = None,
        task: Task | None = None,
        task_factory: Callable[[], Task] = create_initial_task,
        event_hook: WorkspaceEventHook | None = None,
    ) -> None:
        self.gateway = gateway
        self.provider = provider or gateway.provider
        self.provider_factory = provider_factory
        self.task_factory = task_factory
        self.event_hook = event_hook
        self._task = task if task is not None else task_factory()
        self._status = StageTracker.initial(self.provider)

    @property
    def task(self) -> Task:
        return self._task

    @property
    def status(self) -> StageTracker:
        return self._status

    def _emit(self, event: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(event)

    async def _call_stage(
        self,
        stage: Stage,
        begin_message: str,
        call: Callable[[], Awaitable[ResultT]],
    ) -> ResultT | None:
        self._status = self._status.begin(stage, begin_message)
        self._emit({"event": "stage_begin", "stage": stage})
        try:
            return await call()
        except GenerationFailure as exc:
            error = str(exc) or STAGE_FAILURE_MESSAGES[stage]
            logger.warning("%s generation failed: %s", stage, error)
        except Exception:
            error = STAGE_FAILURE_MESSAGES[stage]
            logger.exception("%s generation raised unexpectedly", stage)
        self._status = self._status.fail(stage, error)
        self._emit({"event": "stage_error", "stage": stage, "error": error})
        return None

    def _record_success(
        self,
        stage: Stage,
        result: PlanResult | SketchResult | ReviewResult,
        default_message: str,
    ) -> None:
        self._status = self._status.succeed(
            stage,
            provider=result.provider,
            message=result.note or default_message,
            warning=result.warning,
        )
        self._emit(
            {
                "event": "stage_success",
                "stage": stage,
                "provider": result.provider,
                "warning": result.warning,
            }
        )

    async def regenerate_plan(self, options: PlanGenerationOptions) -> StageStatus:
        result = await self._call_stage(
            "planning",
            "Generating plan...",
            lambda: self.gateway.request_plan(options),
        )
        if result is not None:
            self._task = transitions.apply_plan(self._task, options.prompt, result.plan)
            self._record_success(
                "planning", result, f"Plan updated with {_counted(len(result.plan), 'step')}."
            )
        return self._status["planning"]

    def update_plan_step_status(self, step_id: str, status: PlanStepStatus) -> None:
        self._task = transitions.update_plan_step_status(self._task, step_id, status)

    async def seed_implementation(
        self, options: ImplementationSeedOptions | None = None
    ) -> StageStatus:
        plan = self._task.plan
        result = await self._call_stage(
            "implementation",
            "Synthesising implementation sketch...",
            lambda: self.gateway.request_implementation_sketch(plan, options),
        )
        if result is not None:
            self._task = transitions.apply_generated_changes(self._task, result.changes)
            self._record_success(
                "implementation",
                result,
                f"Seeded {_counted(len(result.changes), 'change')}.",
            )
        return self._status["implementation"]

    def add_manual_change(
        self,
        file_path: str,
        summary: str,
        rationale: str,
        before: str | None = None,
        after: str | None = None,
        related_plan_step_ids: Iterable[str] | None = None,
    ) -> CodeChange:
        change = transitions.build_manual_change(
            file_path,
            summary,
            rationale,
            before=before,
            after=after,
            related_plan_step_ids=related_plan_step_ids,
        )
        self._task = transitions.append_change(self._task, change)
        return change

    def update_code_change(self, change_id: str, **updates: Any) -> None:
        self._task = transitions.update_change(self._task, change_id, updates)

    def update_code_change_status(self, change_id: str, status: CodeChangeStatus) -> None:
        self._task = transitions.update_change_status(self._task, change_id, status)

    def mark_all_changes_ready(self) -> None:
        self._task = transitions.mark_all_changes_ready(self._task)
        self._status = self._status.settle_idle("review", "All changes marked ready for review.")
        self._emit({"event": "changes_marked_ready", "count": len(self._task.changes)})

    def remove_code_change(self, change_id: str) -> None:
        self._task = transitions.remove_change(self._task, change_id)

    async def run_review(self, options: ReviewRunOptions | None = None) -> StageStatus:
        changes = self._task.changes
        result = await self._call_stage(
            "review",
            "Requesting review feedback...",
            lambda: self.gateway.request_review_comments(changes, options),
        )
        if result is not None:
            self._task = transitions.replace_reviews(self._task, result.reviews)
            self._record_success(
                "review",
                result,
                f"Received {_counted(len(result.reviews), 'review item')}.",
            )
        return self._status["review"]

    def toggle_review_resolved(self, review_id: str) -> None:
        self._task = transitions.toggle_review_resolved(self._task, review_id)

    def clear_workspace(self, provider: str | None = None) -> None:
        if provider:
            self.provider = provider
        elif self.provider_factory is not None:
            self.provider = self.provider_factory()
        self._task = self.task_factory()
        self._status = self._status.reset(self.provider)
        self._emit({"event": "workspace_cleared", "provider": self.provider})

    def telemetry(self) -> WorkspaceTelemetry:
        return workspace_telemetry(self._task)

    def snapshot(self) -> dict[str, Any]:
        return {
            "task": self._task.to_dict(),
            "status": self._status.to_dict(),
            "telemetry": self.telemetry().to_dict(),
        }
