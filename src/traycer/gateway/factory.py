from __future__ import annotations

from pathlib import Path

from traycer.backends import (
    AgentBackend,
    ClaudeCodeBackend,
    CodexBackend,
    CodexSDKBackend,
    ResilientBackend,
    RetryPolicy,
)
from traycer.backends.streaming import BackendEventHook
from traycer.config import TraycerConfig, preferred_provider
from traycer.gateway.agent import AgentGateway
from traycer.gateway.base import GenerationGateway
from traycer.gateway.local import LocalGateway


def build_single_backend(
    provider: str,
    working_directory: Path | None = None,
    event_hook: BackendEventHook | None = None,
) -> AgentBackend:
    if provider == "claude":
        return ClaudeCodeBackend(working_directory=working_directory, event_hook=event_hook)
    if provider == "codex":
        return CodexBackend(working_directory=working_directory, event_hook=event_hook)
    if provider == "codex_sdk":
        return CodexSDKBackend(working_directory=working_directory, event_hook=event_hook)
    raise ValueError(f"Provider '{provider}' has no agent backend.")


def build_gateway(
    config: TraycerConfig,
    *,
    provider: str | None = None,
    working_directory: Path | None = None,
    event_hook: BackendEventHook | None = None,
) -> GenerationGateway:
    primary = provider or preferred_provider(config)
    local = LocalGateway(latency_seconds=float(config.backend.local_latency_seconds))
    if primary == "local":
        return local

    fallback = config.backend.fallback
    fallback_backend = None
    if fallback not in {"local", primary}:
        fallback_backend = build_single_backend(fallback, working_directory, event_hook)
    policy = RetryPolicy(
        max_retries=max(0, int(config.backend.max_retries)),
        backoff_seconds=max(0.0, float(config.backend.retry_backoff_seconds)),
        timeout_seconds=max(5.0, float(config.backend.timeout_seconds)),
    )
    backend = ResilientBackend(
        primary_name=primary,
        primary_backend=build_single_backend(primary, working_directory, event_hook),
        fallback_name=fallback if fallback_backend is not None else None,
        fallback_backend=fallback_backend,
        retry_policy=policy,
        event_hook=event_hook,
    )
    return AgentGateway(
        backend,
        model=config.agents.model or None,
        local_fallback=local if fallback == "local" else None,
        event_hook=event_hook,
    )
