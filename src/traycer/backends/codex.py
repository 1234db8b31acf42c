from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from traycer.backends.streaming import BackendEventHook, StreamingCliBackend, render_user_prompt


class CodexBackend(StreamingCliBackend):
    name = "codex"
    binary_label = "Codex"

    def __init__(
        self,
        binary: str = "codex",
        working_directory: Path | None = None,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        super().__init__(binary, working_directory=working_directory, event_hook=event_hook)

    def build_command(
        self, system_prompt: str, user_prompt: str, context: dict[str, Any]
    ) -> list[str]:
        command = [
            self.binary,
            "exec",
            "--json",
            "-c",
            f"instructions={json.dumps(system_prompt, ensure_ascii=False)}",
        ]
        requested_model = context.get("model")
        if isinstance(requested_model, str) and requested_model.strip():
            command.extend(["-m", requested_model.strip()])
        command.append(render_user_prompt(user_prompt, context))
        return command
