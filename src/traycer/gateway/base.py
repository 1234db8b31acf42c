from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from traycer.models import (
    CodeChange,
    ImplementationSeedOptions,
    PlanGenerationOptions,
    PlanStep,
    ReviewComment,
    ReviewRunOptions,
)


class GenerationFailure(RuntimeError):
    """Raised when a generation call cannot produce a complete result."""

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        provider: str | None = None,
        cause: str | None = None,
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.provider = provider
        self.cause = cause


@dataclass(frozen=True, slots=True)
class PlanResult:
    plan: tuple[PlanStep, ...]
    provider: str
    note: str | None = None
    warning: str | None = None


@dataclass(frozen=True, slots=True)
class SketchResult:
    changes: tuple[CodeChange, ...]
    provider: str
    note: str | None = None
    warning: str | None = None


@dataclass(frozen=True, slots=True)
class ReviewResult:
    reviews: tuple[ReviewComment, ...]
    provider: str
    note: str | None = None
    warning: str | None = None


class GenerationGateway(ABC):
    """Contract for the three producers behind the workspace stages.

    Empty upstream input never reaches a producer: an empty plan yields an
    empty sketch and no changes yields an empty review, both as successful
    results from :attr:`provider`.
    """

    provider: str = "unknown"

    async def request_plan(self, options: PlanGenerationOptions) -> PlanResult:
        return await self._plan(options)

    async def request_implementation_sketch(
        self,
        plan: Sequence[PlanStep],
        options: ImplementationSeedOptions | None = None,
    ) -> SketchResult:
        if not plan:
            return SketchResult(changes=(), provider=self.provider)
        return await self._sketch(tuple(plan), options or ImplementationSeedOptions())

    async def request_review_comments(
        self,
        changes: Sequence[CodeChange],
        options: ReviewRunOptions | None = None,
    ) -> ReviewResult:
        if not changes:
            return ReviewResult(reviews=(), provider=self.provider)
        return await self._review(tuple(changes), options or ReviewRunOptions())

    @abstractmethod
    async def _plan(self, options: PlanGenerationOptions) -> PlanResult:
        """Produce a fresh plan for ``options.prompt``."""

    @abstractmethod
    async def _sketch(
        self, plan: tuple[PlanStep, ...], options: ImplementationSeedOptions
    ) -> SketchResult:
        """Produce code changes for a non-empty plan."""

    @abstractmethod
    async def _review(
        self, changes: tuple[CodeChange, ...], options: ReviewRunOptions
    ) -> ReviewResult:
        """Produce review comments for a non-empty change set."""
