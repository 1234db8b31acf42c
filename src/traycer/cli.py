from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import click

from traycer.config import (
    DEFAULT_CONFIG_FILE,
    PROVIDER_NAMES,
    TraycerConfig,
    load_config,
    preferred_provider,
    save_config,
)
from traycer.gateway import build_gateway
from traycer.models import (
    PLAN_TONES,
    REVIEW_STRICTNESS_LEVELS,
    PlanGenerationOptions,
    ReviewRunOptions,
    create_initial_task,
)
from traycer.status import Stage, StageStatus, describe_provider
from traycer.workspace import Workspace


@dataclass(slots=True)
class Runtime:
    repo_root: Path
    config_path: Path
    config: TraycerConfig
    workspace: Workspace
    events: list[dict[str, Any]] = field(default_factory=list)


def _resolve_config_path(repo_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = repo_root / config_path
    return config_path.resolve()


def _record_event(events: list[dict[str, Any]], event: dict[str, Any]) -> None:
    event_payload = dict(event)
    event_payload["at"] = datetime.now(UTC).replace(microsecond=0).isoformat()
    events.append(event_payload)
    del events[:-200]


def _read_config(config_path: Path) -> TraycerConfig:
    try:
        return load_config(config_path)
    except (ValueError, TypeError) as exc:
        raise click.ClickException(f"Invalid configuration in {config_path}: {exc}") from exc


def _load_runtime(repo_root: Path, config_path: Path, provider: str | None = None) -> Runtime:
    config = _read_config(config_path)
    try:
        selected = provider or preferred_provider(config)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    events: list[dict[str, Any]] = []

    def hook(event: dict[str, Any]) -> None:
        _record_event(events, event)

    gateway = build_gateway(
        config, provider=selected, working_directory=repo_root, event_hook=hook
    )
    workspace = Workspace(
        gateway,
        provider=selected,
        provider_factory=lambda: provider or preferred_provider(config),
        task_factory=lambda: create_initial_task(config.task.title, config.task.prompt),
        event_hook=hook,
    )
    return Runtime(
        repo_root=repo_root,
        config_path=config_path,
        config=config,
        workspace=workspace,
        events=events,
    )


def _plan_options(
    config: TraycerConfig,
    prompt: str,
    focus: tuple[str, ...],
    tone: str | None,
    emphasize_tests: bool | None,
) -> PlanGenerationOptions:
    return PlanGenerationOptions(
        prompt=prompt,
        focus_areas=focus or tuple(config.generation.focus_areas),
        emphasize_tests=(
            config.generation.emphasize_tests if emphasize_tests is None else emphasize_tests
        ),
        tone=tone or config.generation.tone,  # type: ignore[arg-type]
    )


def _ensure_stage_ok(stage: Stage, status: StageStatus) -> None:
    if status.status == "error":
        raise click.ClickException(f"{stage} failed: {status.error}")
    if status.warning:
        click.echo(f"warning ({stage}): {status.warning}", err=True)


def _echo_events(runtime: Runtime) -> None:
    for event in runtime.events:
        click.echo(json.dumps(event, ensure_ascii=False), err=True)


def plan_options_decorator(command: Any) -> Any:
    command = click.option(
        "--tests/--no-tests",
        "emphasize_tests",
        default=None,
        help="Ask the planner to emphasize test impact.",
    )(command)
    command = click.option("--tone", type=click.Choice(PLAN_TONES), default=None)(command)
    command = click.option("--focus", "focus", multiple=True, help="Focus area; repeatable.")(
        command
    )
    return command


@click.group()
def cli() -> None:
    """Traycer workspace CLI."""


@cli.command("init")
@click.option("--provider", type=click.Choice(PROVIDER_NAMES), default=None)
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def init_command(provider: str | None, config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    config = _read_config(config_path)
    if provider:
        config.backend.provider = provider  # type: ignore[assignment]
    save_config(config_path, config)

    click.echo(f"Initialized Traycer in {repo_root}")
    click.echo(f"Config: {config_path}")
    click.echo(f"Provider: {describe_provider(config.backend.provider)}")


@cli.command("backend")
@click.argument("provider", type=click.Choice(PROVIDER_NAMES))
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def backend_command(provider: str, config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    config = _read_config(config_path)
    config.backend.provider = provider  # type: ignore[assignment]
    save_config(config_path, config)
    click.echo(f"Primary provider set to {provider}")


@cli.command("providers")
def providers_command() -> None:
    for provider in PROVIDER_NAMES:
        click.echo(f"{provider:<10} {describe_provider(provider)}")


@cli.command("plan")
@click.argument("prompt")
@plan_options_decorator
@click.option("--provider", type=click.Choice(PROVIDER_NAMES), default=None)
@click.option("--verbose", is_flag=True, default=False)
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def plan_command(
    prompt: str,
    focus: tuple[str, ...],
    tone: str | None,
    emphasize_tests: bool | None,
    provider: str | None,
    verbose: bool,
    config_value: str,
) -> None:
    repo_root = Path.cwd().resolve()
    runtime = _load_runtime(repo_root, _resolve_config_path(repo_root, config_value), provider)
    options = _plan_options(runtime.config, prompt, focus, tone, emphasize_tests)

    status = asyncio.run(runtime.workspace.regenerate_plan(options))
    if verbose:
        _echo_events(runtime)
    _ensure_stage_ok("planning", status)

    payload = {
        "prompt": runtime.workspace.task.prompt,
        "provider": status.provider,
        "plan": [step.to_dict() for step in runtime.workspace.task.plan],
    }
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@cli.command("run")
@click.argument("prompt")
@plan_options_decorator
@click.option("--strictness", type=click.Choice(REVIEW_STRICTNESS_LEVELS), default=None)
@click.option("--mark-ready/--no-mark-ready", default=True, show_default=True)
@click.option("--provider", type=click.Choice(PROVIDER_NAMES), default=None)
@click.option("--verbose", is_flag=True, default=False)
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def run_command(
    prompt: str,
    focus: tuple[str, ...],
    tone: str | None,
    emphasize_tests: bool | None,
    strictness: str | None,
    mark_ready: bool,
    provider: str | None,
    verbose: bool,
    config_value: str,
) -> None:
    repo_root = Path.cwd().resolve()
    runtime = _load_runtime(repo_root, _resolve_config_path(repo_root, config_value), provider)
    workspace = runtime.workspace
    options = _plan_options(runtime.config, prompt, focus, tone, emphasize_tests)
    review_options = ReviewRunOptions(
        strictness=strictness or runtime.config.generation.strictness  # type: ignore[arg-type]
    )

    async def _pipeline() -> None:
        _ensure_stage_ok("planning", await workspace.regenerate_plan(options))
        _ensure_stage_ok("implementation", await workspace.seed_implementation())
        if mark_ready:
            workspace.mark_all_changes_ready()
        _ensure_stage_ok("review", await workspace.run_review(review_options))

    try:
        asyncio.run(_pipeline())
    finally:
        if verbose:
            _echo_events(runtime)

    click.echo(json.dumps(workspace.snapshot(), ensure_ascii=False, indent=2))
