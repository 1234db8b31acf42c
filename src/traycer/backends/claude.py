from __future__ import annotations

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from traycer.backends.streaming import BackendEventHook, StreamingCliBackend, render_user_prompt


class ClaudeCodeBackend(StreamingCliBackend):
    name = "claude"
    binary_label = "Claude"
    yield_raw_lines = True

    def __init__(
        self,
        binary: str = "claude",
        working_directory: Path | None = None,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        super().__init__(binary, working_directory=working_directory, event_hook=event_hook)

    def build_command(
        self, system_prompt: str, user_prompt: str, context: dict[str, Any]
    ) -> list[str]:
        _ = system_prompt
        command = [
            self.binary,
            "-p",
            render_user_prompt(user_prompt, context),
            "--output-format",
            "stream-json",
        ]
        requested_model = context.get("model")
        if isinstance(requested_model, str) and requested_model.strip():
            command.extend(["--model", requested_model.strip()])
        return command

    @contextmanager
    def _process_env(self, system_prompt: str) -> Iterator[dict[str, str] | None]:
        # The CLI reads its system prompt from the file named by CLAUDE_MD.
        with tempfile.NamedTemporaryFile(mode="w", suffix=".md", encoding="utf-8") as temp_file:
            temp_file.write(system_prompt)
            temp_file.flush()
            env = os.environ.copy()
            env["CLAUDE_MD"] = temp_file.name
            yield env
