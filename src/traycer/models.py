from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

from traycer.ids import new_id, utcnow_iso

PlanStepStatus = Literal["todo", "in-progress", "done"]
CodeChangeStatus = Literal["draft", "ready", "in-review"]
ReviewSeverity = Literal["info", "warning", "error"]
PlanTone = Literal["succinct", "detailed"]
ReviewStrictness = Literal["balanced", "paranoid"]

PLAN_STEP_STATUSES: tuple[str, ...] = ("todo", "in-progress", "done")
CODE_CHANGE_STATUSES: tuple[str, ...] = ("draft", "ready", "in-review")
REVIEW_SEVERITIES: tuple[str, ...] = ("info", "warning", "error")
PLAN_TONES: tuple[str, ...] = ("succinct", "detailed")
REVIEW_STRICTNESS_LEVELS: tuple[str, ...] = ("balanced", "paranoid")

DEFAULT_TASK_TITLE = "Scaffold Traycer Assistant"
DEFAULT_TASK_PROMPT = (
    "Build an AI-powered coding assistant that plans, implements, and reviews every change. "
    "Traycer Tasks simplify complex changes by planning large refactors and making precise "
    "edits across multiple files. Traycer Reviews provide incremental feedback to catch and "
    "fix bugs in real-time."
)
MANUAL_BEFORE_PLACEHOLDER = "// original code snippet"
MANUAL_AFTER_PLACEHOLDER = "// proposed update"


def require_choice(field_name: str, value: object, choices: tuple[str, ...]) -> None:
    if value not in choices:
        raise ValueError(
            f"Invalid {field_name} {value!r}; expected one of: {', '.join(choices)}"
        )


def _as_str_tuple(values: Iterable[object] | None) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        return (values,)
    return tuple(str(item) for item in values)


@dataclass(frozen=True, slots=True)
class PlanStep:
    id: str
    title: str
    detail: str
    status: PlanStepStatus = "todo"
    blocked_by: str | None = None

    def __post_init__(self) -> None:
        require_choice("plan step status", self.status, PLAN_STEP_STATUSES)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "detail": self.detail,
            "status": self.status,
        }
        if self.blocked_by is not None:
            payload["blockedBy"] = self.blocked_by
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanStep:
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            detail=str(data.get("detail", "")),
            status=data.get("status", "todo"),
            blocked_by=data.get("blockedBy"),
        )


@dataclass(frozen=True, slots=True)
class CodeChange:
    id: str
    file_path: str
    summary: str
    rationale: str
    before: str
    after: str
    status: CodeChangeStatus = "draft"
    related_plan_step_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        require_choice("code change status", self.status, CODE_CHANGE_STATUSES)
        object.__setattr__(
            self, "related_plan_step_ids", _as_str_tuple(self.related_plan_step_ids)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filePath": self.file_path,
            "summary": self.summary,
            "rationale": self.rationale,
            "before": self.before,
            "after": self.after,
            "status": self.status,
            "relatedPlanStepIds": list(self.related_plan_step_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CodeChange:
        return cls(
            id=str(data["id"]),
            file_path=str(data["filePath"]),
            summary=str(data.get("summary", "")),
            rationale=str(data.get("rationale", "")),
            before=str(data.get("before", "")),
            after=str(data.get("after", "")),
            status=data.get("status", "draft"),
            related_plan_step_ids=data.get("relatedPlanStepIds") or (),
        )


@dataclass(frozen=True, slots=True)
class ReviewComment:
    id: str
    file_path: str
    message: str
    severity: ReviewSeverity = "info"
    resolved: bool = False
    suggestion: str | None = None
    line: int | None = None

    def __post_init__(self) -> None:
        require_choice("review severity", self.severity, REVIEW_SEVERITIES)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "filePath": self.file_path,
            "message": self.message,
            "severity": self.severity,
            "resolved": self.resolved,
        }
        if self.suggestion is not None:
            payload["suggestion"] = self.suggestion
        if self.line is not None:
            payload["line"] = self.line
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewComment:
        line = data.get("line")
        return cls(
            id=str(data["id"]),
            file_path=str(data["filePath"]),
            message=str(data.get("message", "")),
            severity=data.get("severity", "info"),
            resolved=bool(data.get("resolved", False)),
            suggestion=data.get("suggestion"),
            line=int(line) if line is not None else None,
        )


@dataclass(frozen=True, slots=True)
class Task:
    """Immutable snapshot of a workspace task.

    Every mutation produces a new ``Task`` via ``dataclasses.replace``; the
    three sequences are tuples so a snapshot handed to a caller can never be
    edited behind the workspace's back.
    """

    id: str
    title: str
    prompt: str
    plan: tuple[PlanStep, ...] = ()
    changes: tuple[CodeChange, ...] = ()
    reviews: tuple[ReviewComment, ...] = ()
    created_at: str = field(default_factory=utcnow_iso)

    def __post_init__(self) -> None:
        object.__setattr__(self, "plan", tuple(self.plan))
        object.__setattr__(self, "changes", tuple(self.changes))
        object.__setattr__(self, "reviews", tuple(self.reviews))

    def find_step(self, step_id: str) -> PlanStep | None:
        return next((step for step in self.plan if step.id == step_id), None)

    def find_change(self, change_id: str) -> CodeChange | None:
        return next((change for change in self.changes if change.id == change_id), None)

    def find_review(self, review_id: str) -> ReviewComment | None:
        return next((review for review in self.reviews if review.id == review_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "prompt": self.prompt,
            "plan": [step.to_dict() for step in self.plan],
            "changes": [change.to_dict() for change in self.changes],
            "reviews": [review.to_dict() for review in self.reviews],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            prompt=str(data.get("prompt", "")),
            plan=tuple(PlanStep.from_dict(item) for item in data.get("plan") or []),
            changes=tuple(CodeChange.from_dict(item) for item in data.get("changes") or []),
            reviews=tuple(ReviewComment.from_dict(item) for item in data.get("reviews") or []),
            created_at=str(data.get("createdAt") or utcnow_iso()),
        )


@dataclass(frozen=True, slots=True)
class PlanGenerationOptions:
    prompt: str
    focus_areas: tuple[str, ...] = ()
    emphasize_tests: bool = False
    tone: PlanTone = "succinct"

    def __post_init__(self) -> None:
        require_choice("plan tone", self.tone, PLAN_TONES)
        object.__setattr__(self, "focus_areas", _as_str_tuple(self.focus_areas))


@dataclass(frozen=True, slots=True)
class ImplementationSeedOptions:
    related_plan_step_ids: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if self.related_plan_step_ids is not None:
            object.__setattr__(
                self, "related_plan_step_ids", _as_str_tuple(self.related_plan_step_ids)
            )


@dataclass(frozen=True, slots=True)
class ReviewRunOptions:
    strictness: ReviewStrictness = "balanced"

    def __post_init__(self) -> None:
        require_choice("review strictness", self.strictness, REVIEW_STRICTNESS_LEVELS)


def _demo_plan() -> tuple[PlanStep, ...]:
    return (
        PlanStep(
            id=new_id(),
            title="Inspect repository layout",
            detail=(
                "Review existing project structure to identify affected modules and "
                "touchpoints."
            ),
        ),
        PlanStep(
            id=new_id(),
            title="Draft execution plan",
            detail=(
                "Outline implementation strategy, covering planning, editing, and review flows."
            ),
        ),
        PlanStep(
            id=new_id(),
            title="Implement Traycer UI",
            detail="Create planning board, code change editor, and review feedback surfaces.",
        ),
    )


def create_initial_task(title: str | None = None, prompt: str | None = None) -> Task:
    return Task(
        id=new_id(),
        title=title or DEFAULT_TASK_TITLE,
        prompt=prompt or DEFAULT_TASK_PROMPT,
        plan=_demo_plan(),
    )
