from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Literal

from traycer.ids import utcnow_iso

Stage = Literal["planning", "implementation", "review"]
CallStatus = Literal["idle", "loading", "success", "error"]

STAGES: tuple[Stage, ...] = ("planning", "implementation", "review")

PROVIDER_LABELS = {
    "local": "Local generator",
    "claude": "Claude Code CLI",
    "codex": "Codex CLI",
    "codex_sdk": "Codex SDK",
}


def describe_provider(provider: str) -> str:
    return PROVIDER_LABELS.get(provider, provider)


@dataclass(frozen=True, slots=True)
class StageStatus:
    status: CallStatus
    provider: str
    message: str | None = None
    warning: str | None = None
    error: str | None = None
    updated_at: str | None = None

    @classmethod
    def idle(cls, provider: str) -> StageStatus:
        return cls(
            status="idle", provider=provider, message=f"Idle · {describe_provider(provider)}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "provider": self.provider,
            "message": self.message,
            "warning": self.warning,
            "error": self.error,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True, slots=True)
class StageTracker:
    """Per-stage call lifecycle, keyed by stage tag.

    Transitions never mutate; each returns a new tracker so the workspace can
    swap it in as a single value. ``provider`` follows whichever backend
    answered most recently across all stages.
    """

    provider: str
    stages: Mapping[Stage, StageStatus]

    @classmethod
    def initial(cls, provider: str) -> StageTracker:
        return cls(
            provider=provider,
            stages=MappingProxyType({stage: StageStatus.idle(provider) for stage in STAGES}),
        )

    def __getitem__(self, stage: Stage) -> StageStatus:
        return self.stages[stage]

    def _with_stage(
        self, stage: Stage, updated: StageStatus, *, provider: str | None = None
    ) -> StageTracker:
        if stage not in self.stages:
            raise KeyError(f"Unknown stage: {stage}")
        stages = dict(self.stages)
        stages[stage] = updated
        return StageTracker(
            provider=provider or self.provider,
            stages=MappingProxyType(stages),
        )

    def begin(self, stage: Stage, message: str) -> StageTracker:
        current = self.stages[stage]
        return self._with_stage(
            stage,
            replace(current, status="loading", message=message, warning=None, error=None),
        )

    def succeed(
        self,
        stage: Stage,
        provider: str,
        message: str,
        warning: str | None = None,
    ) -> StageTracker:
        current = self.stages[stage]
        return self._with_stage(
            stage,
            replace(
                current,
                status="success",
                provider=provider,
                message=message,
                warning=warning,
                error=None,
                updated_at=utcnow_iso(),
            ),
            provider=provider,
        )

    def fail(self, stage: Stage, error: str) -> StageTracker:
        current = self.stages[stage]
        return self._with_stage(
            stage,
            replace(
                current,
                status="error",
                message=None,
                error=error,
                updated_at=utcnow_iso(),
            ),
        )

    def settle_idle(self, stage: Stage, message: str) -> StageTracker:
        current = self.stages[stage]
        return self._with_stage(
            stage,
            replace(
                current,
                status="idle",
                message=message,
                warning=None,
                error=None,
                updated_at=utcnow_iso(),
            ),
        )

    def reset(self, provider: str) -> StageTracker:
        return StageTracker.initial(provider)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"provider": self.provider}
        for stage in STAGES:
            payload[stage] = self.stages[stage].to_dict()
        return payload
