from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from traycer.models import Task

PLAN_WEIGHT = 0.40
CHANGE_WEIGHT = 0.35
REVIEW_WEIGHT = 0.25


def clamp_ratio(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True, slots=True)
class PlanTotals:
    total: int
    done: int
    in_progress: int
    ratio: float


@dataclass(frozen=True, slots=True)
class ChangeTotals:
    total: int
    ready: int
    ratio: float


@dataclass(frozen=True, slots=True)
class ReviewTotals:
    total: int
    resolved: int
    ratio: float


@dataclass(frozen=True, slots=True)
class WorkspaceTelemetry:
    plan: PlanTotals
    changes: ChangeTotals
    reviews: ReviewTotals
    confidence: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan": {
                "total": self.plan.total,
                "done": self.plan.done,
                "in_progress": self.plan.in_progress,
                "ratio": self.plan.ratio,
            },
            "changes": {
                "total": self.changes.total,
                "ready": self.changes.ready,
                "ratio": self.changes.ratio,
            },
            "reviews": {
                "total": self.reviews.total,
                "resolved": self.reviews.resolved,
                "ratio": self.reviews.ratio,
            },
            "confidence": self.confidence,
        }


def plan_totals(task: Task) -> PlanTotals:
    total = len(task.plan)
    done = sum(1 for step in task.plan if step.status == "done")
    in_progress = sum(1 for step in task.plan if step.status == "in-progress")
    return PlanTotals(
        total=total,
        done=done,
        in_progress=in_progress,
        ratio=done / total if total else 0.0,
    )


def change_totals(task: Task) -> ChangeTotals:
    total = len(task.changes)
    ready = sum(1 for change in task.changes if change.status == "ready")
    return ChangeTotals(total=total, ready=ready, ratio=ready / total if total else 0.0)


def review_totals(task: Task) -> ReviewTotals:
    total = len(task.reviews)
    resolved = sum(1 for review in task.reviews if review.resolved)
    if total:
        ratio = resolved / total
    else:
        # Nothing to clear only when there is also nothing to review.
        ratio = 0.0 if task.changes else 1.0
    return ReviewTotals(total=total, resolved=resolved, ratio=ratio)


def plan_completion_ratio(task: Task) -> float:
    return plan_totals(task).ratio


def change_readiness_ratio(task: Task) -> float:
    return change_totals(task).ratio


def review_clearance_ratio(task: Task) -> float:
    return review_totals(task).ratio


def confidence_score(plan_ratio: float, change_ratio: float, review_ratio: float) -> int:
    weighted = (
        plan_ratio * PLAN_WEIGHT + change_ratio * CHANGE_WEIGHT + review_ratio * REVIEW_WEIGHT
    )
    # Half-up rounding, so 12.5 reads as 13.
    return int(math.floor(clamp_ratio(weighted) * 100 + 0.5))


def workspace_telemetry(task: Task) -> WorkspaceTelemetry:
    plan = plan_totals(task)
    changes = change_totals(task)
    reviews = review_totals(task)
    return WorkspaceTelemetry(
        plan=plan,
        changes=changes,
        reviews=reviews,
        confidence=confidence_score(plan.ratio, changes.ratio, reviews.ratio),
    )
