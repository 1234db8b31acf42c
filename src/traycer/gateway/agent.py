from __future__ import annotations

import json
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any, TypeVar

from traycer.backends.base import AgentBackend, BackendExecutionError
from traycer.backends.streaming import BackendEventHook
from traycer.gateway.base import (
    GenerationFailure,
    GenerationGateway,
    PlanResult,
    ReviewResult,
    SketchResult,
)
from traycer.gateway.local import LocalGateway
from traycer.ids import new_id
from traycer.models import (
    REVIEW_SEVERITIES,
    CodeChange,
    ImplementationSeedOptions,
    PlanGenerationOptions,
    PlanStep,
    ReviewComment,
    ReviewRunOptions,
)
from traycer.specialists import (
    ImplementerAgent,
    PlannerAgent,
    ReviewerAgent,
    SpecialistAgent,
    SpecialistResponse,
)
from traycer.status import describe_provider

logger = logging.getLogger(__name__)

FENCED_JSON_PATTERN = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
SEVERITY_ALIASES = {
    "blocker": "error",
    "major": "error",
    "critical": "error",
    "minor": "warning",
    "suggestion": "info",
    "nit": "info",
}

ResultT = TypeVar("ResultT", PlanResult, SketchResult, ReviewResult)


class MalformedReplyError(ValueError):
    """Raised when a specialist reply does not match the expected JSON shape."""


def _extract_json_objects(raw_text: str) -> list[dict[str, Any]]:
    payloads: list[dict[str, Any]] = []
    for raw_line in raw_text.splitlines():
        line = raw_line.strip()
        if not (line.startswith("{") and line.endswith("}")):
            continue
        try:
            parsed = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            payloads.append(parsed)
    return payloads


def extract_json_payload(content: str, key: str) -> dict[str, Any]:
    """Find the JSON object carrying ``key`` in a free-form model reply.

    Tries the whole reply, fenced code blocks, the outermost brace span, and
    finally single-line objects, in that order.
    """
    candidates: list[str] = [content.strip()]
    candidates.extend(match.group(1) for match in FENCED_JSON_PATTERN.finditer(content))
    start, end = content.find("{"), content.rfind("}")
    if 0 <= start < end:
        candidates.append(content[start : end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict) and key in parsed:
            return parsed

    for payload in _extract_json_objects(content):
        if key in payload:
            return payload
    raise MalformedReplyError(f"no JSON object with a '{key}' field")


def _require_list(payload: dict[str, Any], key: str) -> list[Any]:
    items = payload.get(key)
    if not isinstance(items, list):
        raise MalformedReplyError(f"'{key}' must be a list")
    return items


def _text(item: dict[str, Any], key: str, *, required: bool = False) -> str:
    value = item.get(key)
    if value is None:
        if required:
            raise MalformedReplyError(f"missing '{key}'")
        return ""
    if not isinstance(value, str):
        value = str(value)
    if required and not value.strip():
        raise MalformedReplyError(f"empty '{key}'")
    return value


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_plan_steps(content: str) -> tuple[PlanStep, ...]:
    items = _require_list(extract_json_payload(content, "steps"), "steps")
    if not items:
        raise MalformedReplyError("plan has no steps")
    steps: list[PlanStep] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise MalformedReplyError("plan steps must be objects")
        blocked_index = _optional_int(item.get("blockedBy"))
        blocked_by = None
        # Only earlier steps can block; anything else is advisory noise.
        if blocked_index is not None and 0 <= blocked_index < index:
            blocked_by = steps[blocked_index].id
        steps.append(
            PlanStep(
                id=new_id(),
                title=_text(item, "title", required=True),
                detail=_text(item, "detail"),
                blocked_by=blocked_by,
            )
        )
    return tuple(steps)


def parse_code_changes(
    content: str,
    plan: tuple[PlanStep, ...],
    default_related_ids: tuple[str, ...],
) -> tuple[CodeChange, ...]:
    items = _require_list(extract_json_payload(content, "changes"), "changes")
    known_ids = {step.id for step in plan}
    changes: list[CodeChange] = []
    seen_paths: set[str] = set()
    for item in items:
        if not isinstance(item, dict):
            raise MalformedReplyError("changes must be objects")
        file_path = _text(item, "filePath", required=True).strip()
        if file_path in seen_paths:
            continue
        seen_paths.add(file_path)
        raw_related = item.get("relatedPlanStepIds")
        if isinstance(raw_related, list):
            related = tuple(str(step_id) for step_id in raw_related if str(step_id) in known_ids)
        else:
            related = default_related_ids
        changes.append(
            CodeChange(
                id=new_id(),
                file_path=file_path,
                summary=_text(item, "summary"),
                rationale=_text(item, "rationale"),
                before=_text(item, "before"),
                after=_text(item, "after"),
                status="draft",
                related_plan_step_ids=related,
            )
        )
    return tuple(changes)


def _normalize_severity(value: Any) -> str:
    severity = str(value or "info").strip().lower()
    severity = SEVERITY_ALIASES.get(severity, severity)
    if severity not in REVIEW_SEVERITIES:
        raise MalformedReplyError(f"unknown severity {value!r}")
    return severity


def parse_review_comments(content: str) -> tuple[ReviewComment, ...]:
    items = _require_list(extract_json_payload(content, "reviews"), "reviews")
    reviews: list[ReviewComment] = []
    for item in items:
        if not isinstance(item, dict):
            raise MalformedReplyError("reviews must be objects")
        suggestion = item.get("suggestion")
        reviews.append(
            ReviewComment(
                id=new_id(),
                file_path=_text(item, "filePath", required=True).strip(),
                message=_text(item, "message", required=True),
                severity=_normalize_severity(item.get("severity")),
                suggestion=str(suggestion) if suggestion else None,
                line=_optional_int(item.get("line")),
            )
        )
    return tuple(reviews)


class AgentGateway(GenerationGateway):
    """Generation gateway backed by planner, implementer, and reviewer specialists.

    Replies are parsed into model records with fresh ids. Backend errors and
    malformed replies become :class:`GenerationFailure`, unless a local
    fallback gateway is configured, in which case its result is returned with
    a warning describing the degraded path.
    """

    def __init__(
        self,
        backend: AgentBackend,
        *,
        model: str | None = None,
        local_fallback: LocalGateway | None = None,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        self.backend = backend
        self.provider = backend.name
        self.planner = PlannerAgent(backend, model=model)
        self.implementer = ImplementerAgent(backend, model=model)
        self.reviewer = ReviewerAgent(backend, model=model)
        self.local_fallback = local_fallback
        self.event_hook = event_hook

    def _emit(self, event: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(event)

    async def _consult(
        self,
        stage: str,
        specialist: SpecialistAgent,
        instruction: str,
        context: dict[str, Any],
    ) -> SpecialistResponse:
        try:
            return await specialist.run(instruction, context)
        except BackendExecutionError as exc:
            label = describe_provider(self.provider)
            raise GenerationFailure(
                f"{label} could not complete the {stage} request: {exc}",
                stage=stage,
                provider=exc.backend or self.provider,
                cause=str(exc),
            ) from exc

    def _malformed(
        self, stage: str, response: SpecialistResponse, exc: Exception
    ) -> GenerationFailure:
        return GenerationFailure(
            f"{describe_provider(response.backend)} returned a malformed response for "
            f"{stage}: {exc}",
            stage=stage,
            provider=response.backend,
            cause=str(exc),
        )

    @staticmethod
    def _fallback_warning(response: SpecialistResponse) -> str | None:
        if not response.fallback_from:
            return None
        return (
            f"{describe_provider(response.fallback_from)} was unavailable; "
            f"answered by {describe_provider(response.backend)}."
        )

    async def _guarded(
        self,
        stage: str,
        call: Callable[[], Awaitable[ResultT]],
        fallback: Callable[[LocalGateway], Awaitable[ResultT]],
    ) -> ResultT:
        try:
            return await call()
        except GenerationFailure as exc:
            if self.local_fallback is None:
                raise
            logger.warning("Falling back to local generator for %s: %s", stage, exc)
            self._emit({"event": "gateway_local_fallback", "stage": stage, "error": str(exc)})
            result = await fallback(self.local_fallback)
            return replace(
                result,
                warning=(
                    f"{describe_provider(self.provider)} failed ({exc}); "
                    "served by the local generator."
                ),
            )

    async def _plan(self, options: PlanGenerationOptions) -> PlanResult:
        async def _call() -> PlanResult:
            response = await self._consult(
                "planning",
                self.planner,
                "Plan the task described by the prompt in the context.",
                {
                    "prompt": options.prompt,
                    "focusAreas": list(options.focus_areas),
                    "emphasizeTests": options.emphasize_tests,
                    "tone": options.tone,
                },
            )
            try:
                plan = parse_plan_steps(response.content)
            except MalformedReplyError as exc:
                raise self._malformed("planning", response, exc) from exc
            return PlanResult(
                plan=plan,
                provider=response.backend,
                warning=self._fallback_warning(response),
            )

        return await self._guarded(
            "planning", _call, lambda local: local.request_plan(options)
        )

    async def _sketch(
        self, plan: tuple[PlanStep, ...], options: ImplementationSeedOptions
    ) -> SketchResult:
        default_related = options.related_plan_step_ids or ()

        async def _call() -> SketchResult:
            response = await self._consult(
                "implementation",
                self.implementer,
                "Sketch the code changes that implement the plan in the context.",
                {
                    "plan": [step.to_dict() for step in plan],
                    "relatedPlanStepIds": list(default_related),
                },
            )
            try:
                changes = parse_code_changes(response.content, plan, default_related)
            except MalformedReplyError as exc:
                raise self._malformed("implementation", response, exc) from exc
            return SketchResult(
                changes=changes,
                provider=response.backend,
                warning=self._fallback_warning(response),
            )

        return await self._guarded(
            "implementation",
            _call,
            lambda local: local.request_implementation_sketch(plan, options),
        )

    async def _review(
        self, changes: tuple[CodeChange, ...], options: ReviewRunOptions
    ) -> ReviewResult:
        async def _call() -> ReviewResult:
            response = await self._consult(
                "review",
                self.reviewer,
                "Review the code changes in the context.",
                {
                    "changes": [change.to_dict() for change in changes],
                    "strictness": options.strictness,
                },
            )
            try:
                reviews = parse_review_comments(response.content)
            except MalformedReplyError as exc:
                raise self._malformed("review", response, exc) from exc
            return ReviewResult(
                reviews=reviews,
                provider=response.backend,
                warning=self._fallback_warning(response),
            )

        return await self._guarded(
            "review", _call, lambda local: local.request_review_comments(changes, options)
        )
