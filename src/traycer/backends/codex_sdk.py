from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from traycer.backends.base import AgentBackend, BackendExecutionError
from traycer.backends.codex import CodexBackend
from traycer.backends.streaming import BackendEventHook, render_user_prompt


class CodexSDKBackend(AgentBackend):
    """OpenAI Responses API backend; drops to the Codex CLI when no client is available."""

    name = "codex_sdk"

    def __init__(
        self,
        *,
        model: str = "gpt-5-codex",
        working_directory: Path | None = None,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        self.model = model
        self.cli_fallback = CodexBackend(
            working_directory=working_directory, event_hook=event_hook
        )
        self._client: Any | None = None
        try:
            from openai import OpenAI

            self._client = OpenAI()
        except Exception:
            # Missing credentials surface here; the CLI path still works.
            self._client = None

    @staticmethod
    def _extract_text(payload: Any) -> str:
        if payload is None:
            return ""
        output_text = getattr(payload, "output_text", None)
        if isinstance(output_text, str):
            return output_text
        if isinstance(payload, dict):
            value = payload.get("output_text")
            if isinstance(value, str):
                return value
        return str(output_text or "")

    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> AsyncIterator[str]:
        if self._client is None:
            async for chunk in self.cli_fallback.execute(system_prompt, user_prompt, context):
                yield chunk
            return

        requested_model = context.get("model")
        model_name = (
            requested_model.strip()
            if isinstance(requested_model, str) and requested_model.strip()
            else self.model
        )
        prompt = render_user_prompt(user_prompt, context)

        def _request() -> Any:
            return self._client.responses.create(
                model=model_name,
                input=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
            )

        try:
            payload = await asyncio.to_thread(_request)
        except Exception as exc:
            raise BackendExecutionError(
                f"Codex SDK execution failed: {exc}",
                backend=self.name,
                retriable=True,
            ) from exc

        content = self._extract_text(payload).strip()
        if content:
            yield content
