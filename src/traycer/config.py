from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from traycer.models import (
    DEFAULT_TASK_PROMPT,
    DEFAULT_TASK_TITLE,
    PLAN_TONES,
    REVIEW_STRICTNESS_LEVELS,
    require_choice,
)

ProviderName = Literal["local", "claude", "codex", "codex_sdk"]

PROVIDER_NAMES: tuple[str, ...] = ("local", "claude", "codex", "codex_sdk")
PROVIDER_ENV_VAR = "TRAYCER_PROVIDER"
DEFAULT_CONFIG_FILE = "traycer.toml"


@dataclass(slots=True)
class TaskConfig:
    title: str = DEFAULT_TASK_TITLE
    prompt: str = DEFAULT_TASK_PROMPT


@dataclass(slots=True)
class BackendConfig:
    provider: ProviderName = "local"
    fallback: ProviderName = "local"
    max_retries: int = 1
    retry_backoff_seconds: float = 0.5
    timeout_seconds: float = 90.0
    local_latency_seconds: float = 0.0

    def __post_init__(self) -> None:
        require_choice("provider", self.provider, PROVIDER_NAMES)
        require_choice("fallback provider", self.fallback, PROVIDER_NAMES)


@dataclass(slots=True)
class AgentsConfig:
    model: str = ""


@dataclass(slots=True)
class GenerationConfig:
    focus_areas: list[str] = field(
        default_factory=lambda: ["planning", "implementation", "review"]
    )
    emphasize_tests: bool = True
    tone: str = "detailed"
    strictness: str = "balanced"

    def __post_init__(self) -> None:
        require_choice("tone", self.tone, PLAN_TONES)
        require_choice("strictness", self.strictness, REVIEW_STRICTNESS_LEVELS)


@dataclass(slots=True)
class TraycerConfig:
    task: TaskConfig = field(default_factory=TaskConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    agents: AgentsConfig = field(default_factory=AgentsConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)

    @classmethod
    def default(cls) -> TraycerConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> TraycerConfig:
        return cls(
            task=TaskConfig(**data.get("task", {})),
            backend=BackendConfig(**data.get("backend", {})),
            agents=AgentsConfig(**data.get("agents", {})),
            generation=GenerationConfig(**data.get("generation", {})),
        )

    def to_dict(self) -> dict:
        return {
            "task": {
                "title": self.task.title,
                "prompt": self.task.prompt,
            },
            "backend": {
                "provider": self.backend.provider,
                "fallback": self.backend.fallback,
                "max_retries": self.backend.max_retries,
                "retry_backoff_seconds": self.backend.retry_backoff_seconds,
                "timeout_seconds": self.backend.timeout_seconds,
                "local_latency_seconds": self.backend.local_latency_seconds,
            },
            "agents": {
                "model": self.agents.model,
            },
            "generation": {
                "focus_areas": list(self.generation.focus_areas),
                "emphasize_tests": self.generation.emphasize_tests,
                "tone": self.generation.tone,
                "strictness": self.generation.strictness,
            },
        }


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: TraycerConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    for section in ("task", "backend", "agents", "generation"):
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> TraycerConfig:
    if not path.exists():
        return TraycerConfig.default()
    return TraycerConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: TraycerConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")


def preferred_provider(config: TraycerConfig) -> str:
    override = os.environ.get(PROVIDER_ENV_VAR, "").strip()
    if override:
        require_choice(f"{PROVIDER_ENV_VAR} provider", override, PROVIDER_NAMES)
        return override
    return config.backend.provider
