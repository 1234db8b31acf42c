"""Pure task transitions.

Each function takes the current :class:`~traycer.models.Task` and returns the
next one. Nothing here performs I/O or touches stage status; the async
:class:`~traycer.workspace.Workspace` shell decides when to apply them.
Unknown ids are ignored and the task is returned unchanged.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import fields, replace
from typing import Any

from traycer.ids import new_id
from traycer.models import (
    CODE_CHANGE_STATUSES,
    MANUAL_AFTER_PLACEHOLDER,
    MANUAL_BEFORE_PLACEHOLDER,
    CodeChange,
    CodeChangeStatus,
    PlanStep,
    PlanStepStatus,
    ReviewComment,
    Task,
    require_choice,
)

EDITABLE_CHANGE_FIELDS = frozenset(
    item.name for item in fields(CodeChange) if item.name != "id"
)


def apply_plan(task: Task, prompt: str, plan: Sequence[PlanStep]) -> Task:
    # A new plan invalidates everything built against the old one.
    return replace(task, prompt=prompt, plan=tuple(plan), changes=(), reviews=())


def update_plan_step_status(task: Task, step_id: str, status: PlanStepStatus) -> Task:
    require_choice("plan step status", status, ("todo", "in-progress", "done"))
    if task.find_step(step_id) is None:
        return task
    return replace(
        task,
        plan=tuple(
            replace(step, status=status) if step.id == step_id else step for step in task.plan
        ),
    )


def merge_generated_changes(
    existing: Sequence[CodeChange], generated: Sequence[CodeChange]
) -> tuple[CodeChange, ...]:
    if not existing:
        return tuple(generated)
    existing_paths = {change.file_path for change in existing}
    appended = [change for change in generated if change.file_path not in existing_paths]
    return (*existing, *appended)


def apply_generated_changes(task: Task, generated: Sequence[CodeChange]) -> Task:
    return replace(
        task,
        changes=merge_generated_changes(task.changes, generated),
        reviews=(),
    )


def build_manual_change(
    file_path: str,
    summary: str,
    rationale: str,
    before: str | None = None,
    after: str | None = None,
    related_plan_step_ids: Iterable[str] | None = None,
) -> CodeChange:
    return CodeChange(
        id=new_id(),
        file_path=file_path,
        summary=summary,
        rationale=rationale,
        before=before if before is not None else MANUAL_BEFORE_PLACEHOLDER,
        after=after if after is not None else MANUAL_AFTER_PLACEHOLDER,
        status="draft",
        related_plan_step_ids=tuple(related_plan_step_ids or ()),
    )


def append_change(task: Task, change: CodeChange) -> Task:
    # Manual additions skip the file_path de-duplication that generation merges apply.
    return replace(task, changes=(*task.changes, change))


def update_change(task: Task, change_id: str, updates: dict[str, Any]) -> Task:
    unknown = sorted(set(updates) - EDITABLE_CHANGE_FIELDS)
    if unknown:
        raise ValueError("Cannot update code change fields: " + ", ".join(unknown))
    if task.find_change(change_id) is None:
        return task
    return replace(
        task,
        changes=tuple(
            replace(change, **updates) if change.id == change_id else change
            for change in task.changes
        ),
    )


def update_change_status(task: Task, change_id: str, status: CodeChangeStatus) -> Task:
    require_choice("code change status", status, CODE_CHANGE_STATUSES)
    return update_change(task, change_id, {"status": status})


def mark_all_changes_ready(task: Task) -> Task:
    return replace(
        task,
        changes=tuple(
            change if change.status == "ready" else replace(change, status="ready")
            for change in task.changes
        ),
        reviews=(),
    )


def remove_change(task: Task, change_id: str) -> Task:
    if task.find_change(change_id) is None:
        return task
    changes = tuple(change for change in task.changes if change.id != change_id)
    remaining_paths = {change.file_path for change in changes}
    return replace(
        task,
        changes=changes,
        reviews=tuple(review for review in task.reviews if review.file_path in remaining_paths),
    )


def replace_reviews(task: Task, reviews: Sequence[ReviewComment]) -> Task:
    return replace(task, reviews=tuple(reviews))


def toggle_review_resolved(task: Task, review_id: str) -> Task:
    if task.find_review(review_id) is None:
        return task
    return replace(
        task,
        reviews=tuple(
            replace(review, resolved=not review.resolved) if review.id == review_id else review
            for review in task.reviews
        ),
    )
