from __future__ import annotations

import asyncio

from traycer.gateway.base import GenerationGateway, PlanResult, ReviewResult, SketchResult
from traycer.ids import new_id
from traycer.models import (
    CodeChange,
    ImplementationSeedOptions,
    PlanGenerationOptions,
    PlanStep,
    ReviewComment,
    ReviewRunOptions,
)

DEFAULT_FOCUS = "core Traycer flows"


def sentence_case(value: str) -> str:
    if not value:
        return value
    return value[0].upper() + value[1:]


def generate_plan_from_prompt(options: PlanGenerationOptions) -> tuple[PlanStep, ...]:
    focus_list = ", ".join(options.focus_areas) if options.focus_areas else DEFAULT_FOCUS
    detail_prefix = "Detail" if options.tone == "detailed" else "Outline"
    if options.emphasize_tests:
        testing_note = (
            "Include test impact for each change and ensure review captures regressions."
        )
    else:
        testing_note = "Call out testing strategy and manual validation anchors."

    base = [
        (
            "Clarify success metrics",
            f"{detail_prefix} the desired outcomes of the task: {sentence_case(options.prompt)} "
            f"and decide how you will measure success ({focus_list}).",
        ),
        (
            "Map workflows to surfaces",
            f"{detail_prefix} how planning, implementation, and review interactions surface in "
            "the UI. Identify the components and shared state that need to collaborate.",
        ),
        (
            "Implement guided execution tools",
            "Describe edits required to support Traycer Tasks: planning wizard, change "
            f"tracking, and workspace telemetry. Focus on {focus_list}.",
        ),
        (
            "Enable continuous reviews",
            f"{detail_prefix} the review loop with incremental feedback and action tracking. "
            f"{testing_note}",
        ),
    ]
    return tuple(PlanStep(id=new_id(), title=title, detail=detail) for title, detail in base)


def generate_implementation_sketch(
    plan: tuple[PlanStep, ...], options: ImplementationSeedOptions | None = None
) -> tuple[CodeChange, ...]:
    if not plan:
        return ()
    step_ids: tuple[str, ...]
    if options is not None and options.related_plan_step_ids is not None:
        step_ids = options.related_plan_step_ids
    else:
        step_ids = tuple(step.id for step in plan)

    return (
        CodeChange(
            id=new_id(),
            file_path="src/components/planning/PlanningPanel.tsx",
            summary="Wire plan generation controls into the planning surface",
            rationale=(
                "Expose Traycer plan prompts, allow editing focus areas, and persist "
                "AI-produced steps with status toggles."
            ),
            before=(
                "// PlanningPanel currently renders static plan steps.\n"
                "// Need to add controls for AI plan generation and status editing.\n"
            ),
            after=(
                "// Pseudocode for new implementation\n"
                "function PlanningPanel() {\n"
                "  // render form -> collect prompt + focus\n"
                "  // invoke workspace.generatePlan\n"
                "  // render list with editable statuses and notes\n"
                "}\n"
            ),
            related_plan_step_ids=step_ids[0:2],
        ),
        CodeChange(
            id=new_id(),
            file_path="src/components/implementation/ImplementationPanel.tsx",
            summary="Add multi-file change composer with diff preview",
            rationale=(
                "Provide editors for before and after code, linked to plan steps and ready "
                "states for review."
            ),
            before=(
                "// ImplementationPanel shows empty state only.\n"
                "// Need to add change cards, editable summaries, and status transitions.\n"
            ),
            after=(
                "// Pseudocode for change composer\n"
                "function ImplementationPanel() {\n"
                "  // map over task.changes\n"
                "  // show editable metadata + textareas for code diff\n"
                "  // include status menu + related plan steps\n"
                "}\n"
            ),
            related_plan_step_ids=step_ids[1:3],
        ),
        CodeChange(
            id=new_id(),
            file_path="src/components/review/ReviewPanel.tsx",
            summary="Implement incremental review feedback tiles",
            rationale=(
                "Surface AI review comments, allow resolving items, and capture follow-up "
                "actions with severity tags."
            ),
            before=(
                "// ReviewPanel only shows a basic list.\n"
                "// Need AI trigger, severity filtering, and resolve controls.\n"
            ),
            after=(
                "// Pseudocode for review feedback\n"
                "function ReviewPanel() {\n"
                "  // trigger workspace.runReview\n"
                "  // render comments grouped by severity\n"
                "  // allow resolve/unresolve actions\n"
                "}\n"
            ),
            related_plan_step_ids=step_ids[2:],
        ),
    )


def generate_review_comments(
    changes: tuple[CodeChange, ...], options: ReviewRunOptions | None = None
) -> tuple[ReviewComment, ...]:
    strict = options is not None and options.strictness == "paranoid"
    comments: list[ReviewComment] = []
    for change in changes:
        if change.status != "ready":
            comments.append(
                ReviewComment(
                    id=new_id(),
                    file_path=change.file_path,
                    severity="warning",
                    message=(
                        "Change is not marked as ready. Confirm the reasoning is complete or "
                        "flip the status before requesting review."
                    ),
                    suggestion=(
                        f"Consider updating status on {change.file_path} to `ready` once "
                        "manual checks pass."
                    ),
                )
            )
        if strict:
            comments.append(
                ReviewComment(
                    id=new_id(),
                    file_path=change.file_path,
                    severity="error",
                    message=(
                        "Strict mode: ensure automated tests cover the new behaviour and "
                        "document validation notes alongside the change."
                    ),
                    suggestion=(
                        "Add a bullet in the implementation plan for test coverage or include "
                        "test diffs in this change."
                    ),
                )
            )
        else:
            comments.append(
                ReviewComment(
                    id=new_id(),
                    file_path=change.file_path,
                    severity="info",
                    message=(
                        "Double-check the rationale ties back to the originating plan steps "
                        "for traceability."
                    ),
                )
            )
    return tuple(comments)


class LocalGateway(GenerationGateway):
    """Deterministic in-process generator, used offline and as a last-resort fallback."""

    provider = "local"

    def __init__(self, latency_seconds: float = 0.0) -> None:
        self.latency_seconds = max(0.0, latency_seconds)

    async def _simulate_latency(self) -> None:
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

    async def _plan(self, options: PlanGenerationOptions) -> PlanResult:
        await self._simulate_latency()
        return PlanResult(plan=generate_plan_from_prompt(options), provider=self.provider)

    async def _sketch(
        self, plan: tuple[PlanStep, ...], options: ImplementationSeedOptions
    ) -> SketchResult:
        await self._simulate_latency()
        return SketchResult(
            changes=generate_implementation_sketch(plan, options), provider=self.provider
        )

    async def _review(
        self, changes: tuple[CodeChange, ...], options: ReviewRunOptions
    ) -> ReviewResult:
        await self._simulate_latency()
        return ReviewResult(
            reviews=generate_review_comments(changes, options), provider=self.provider
        )
