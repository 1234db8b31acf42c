from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from traycer.backends.base import (
    AgentBackend,
    BackendExecutionError,
    BackendReply,
    BackendTimeoutError,
)
from traycer.backends.streaming import BackendEventHook


@dataclass(slots=True)
class RetryPolicy:
    max_retries: int = 1
    backoff_seconds: float = 0.5
    timeout_seconds: float = 90.0


class ResilientBackend(AgentBackend):
    """Wraps primary/fallback backends with timeout, retry, and failover.

    ``complete`` reports which backend produced the reply; when the fallback
    answered, ``BackendReply.fallback_from`` names the primary that failed.
    """

    def __init__(
        self,
        primary_name: str,
        primary_backend: AgentBackend,
        fallback_name: str | None = None,
        fallback_backend: AgentBackend | None = None,
        retry_policy: RetryPolicy | None = None,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        self.primary_name = primary_name
        self.primary_backend = primary_backend
        self.fallback_name = fallback_name
        self.fallback_backend = fallback_backend
        self.retry_policy = retry_policy or RetryPolicy()
        self.event_hook = event_hook
        self.name = primary_name

    def _emit(self, event: dict[str, Any]) -> None:
        if self.event_hook:
            self.event_hook(event)

    def _attempt_order(self) -> list[tuple[str, AgentBackend]]:
        attempts: list[tuple[str, AgentBackend]] = [(self.primary_name, self.primary_backend)]
        if (
            self.fallback_name is not None
            and self.fallback_backend is not None
            and self.fallback_name != self.primary_name
        ):
            attempts.append((self.fallback_name, self.fallback_backend))
        return attempts

    async def _collect(
        self,
        backend: AgentBackend,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> str:
        async def _consume() -> str:
            chunks: list[str] = []
            async for chunk in backend.execute(system_prompt, user_prompt, context):
                chunks.append(chunk)
            return "".join(chunks).strip()

        try:
            return await asyncio.wait_for(_consume(), timeout=self.retry_policy.timeout_seconds)
        except TimeoutError as exc:
            raise BackendTimeoutError(
                f"Backend request timed out after {self.retry_policy.timeout_seconds:.1f}s",
                retriable=True,
            ) from exc

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> BackendReply:
        attempts = self._attempt_order()
        errors: list[str] = []
        for index, (backend_name, backend) in enumerate(attempts):
            if index > 0:
                self._emit(
                    {
                        "event": "backend_failover_start",
                        "from": self.primary_name,
                        "to": backend_name,
                    }
                )
            for attempt in range(self.retry_policy.max_retries + 1):
                if attempt > 0:
                    delay = self.retry_policy.backoff_seconds * (2 ** (attempt - 1))
                    self._emit(
                        {
                            "event": "backend_retry",
                            "backend": backend_name,
                            "attempt": attempt,
                            "delay_seconds": delay,
                        }
                    )
                    await asyncio.sleep(delay)
                try:
                    content = await self._collect(backend, system_prompt, user_prompt, context)
                except BackendExecutionError as exc:
                    errors.append(f"{backend_name}[{attempt}]: {exc}")
                    self._emit(
                        {
                            "event": "backend_attempt_failed",
                            "backend": backend_name,
                            "attempt": attempt,
                            "error": str(exc),
                            "retriable": exc.retriable,
                        }
                    )
                    if not exc.retriable:
                        break
                    continue
                except Exception as exc:
                    errors.append(f"{backend_name}[{attempt}]: {exc}")
                    self._emit(
                        {
                            "event": "backend_attempt_failed",
                            "backend": backend_name,
                            "attempt": attempt,
                            "error": str(exc),
                            "retriable": True,
                        }
                    )
                    continue

                fallback_from = None
                if backend_name != self.primary_name:
                    fallback_from = self.primary_name
                    self._emit(
                        {
                            "event": "backend_fallback_success",
                            "backend": backend_name,
                            "attempt": attempt,
                        }
                    )
                return BackendReply(
                    content=content,
                    backend=backend_name,
                    fallback_from=fallback_from,
                    failures=tuple(errors),
                )

        summary = "; ".join(errors[-6:])
        raise BackendExecutionError(
            f"All backend attempts failed. {summary}",
            backend=self.primary_name,
            retriable=False,
        )

    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> AsyncIterator[str]:
        reply = await self.complete(system_prompt, user_prompt, context)
        if reply.content:
            yield reply.content
