from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any


class BackendExecutionError(RuntimeError):
    """Raised when a backend call fails."""

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        exit_code: int | None = None,
        retriable: bool = True,
    ) -> None:
        super().__init__(message)
        self.backend = backend
        self.exit_code = exit_code
        self.retriable = retriable


class BackendTimeoutError(BackendExecutionError):
    """Raised when a backend call exceeds the configured timeout."""


class BackendProcessError(BackendExecutionError):
    """Raised when a backend process cannot be started or read."""


@dataclass(frozen=True, slots=True)
class BackendReply:
    content: str
    backend: str
    fallback_from: str | None = None
    failures: tuple[str, ...] = ()


class AgentBackend(ABC):
    name: str = "backend"

    @abstractmethod
    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> AsyncIterator[str]:
        """Run a prompt and stream textual chunks."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> BackendReply:
        chunks: list[str] = []
        async for chunk in self.execute(system_prompt, user_prompt, context):
            chunks.append(chunk)
        return BackendReply(content="".join(chunks).strip(), backend=self.name)
