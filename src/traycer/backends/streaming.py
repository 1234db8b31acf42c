from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Any

from traycer.backends.base import AgentBackend, BackendExecutionError, BackendProcessError

BackendEventHook = Callable[[dict[str, Any]], None]


def render_user_prompt(user_prompt: str, context: dict[str, Any]) -> str:
    visible = {key: value for key, value in context.items() if not key.startswith("_")}
    if not visible:
        return user_prompt
    return "\n\n".join(
        [user_prompt, "Context JSON:", json.dumps(visible, ensure_ascii=False, indent=2)]
    )


def extract_stream_content(event: dict[str, Any]) -> str:
    content = event.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text = item.get("text")
                if isinstance(text, str):
                    parts.append(text)
        return "".join(parts)

    delta = event.get("delta")
    if isinstance(delta, str):
        return delta

    message = event.get("message")
    if isinstance(message, str):
        return message
    if isinstance(message, dict):
        msg_content = message.get("content")
        if isinstance(msg_content, str):
            return msg_content
    return ""


def appears_partial_json(raw: str) -> bool:
    return raw.count("{") > raw.count("}") or raw.count("[") > raw.count("]")


class StreamingCliBackend(AgentBackend):
    """Runs an agent CLI that prints one JSON event per stdout line.

    Lines that are not JSON are buffered while they look like a split object,
    then either yielded verbatim (``yield_raw_lines``) or dropped with a
    telemetry event.
    """

    name = "cli"
    binary_label = "Agent"
    yield_raw_lines = False

    def __init__(
        self,
        binary: str,
        working_directory: Path | None = None,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        self.binary = binary
        self.working_directory = working_directory
        self.event_hook = event_hook

    def _emit(self, payload: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(payload)

    def build_command(
        self, system_prompt: str, user_prompt: str, context: dict[str, Any]
    ) -> list[str]:
        raise NotImplementedError

    @contextmanager
    def _process_env(self, system_prompt: str) -> Iterator[dict[str, str] | None]:
        _ = system_prompt
        yield None

    async def _reap(
        self, process: asyncio.subprocess.Process, stderr_task: asyncio.Task[bytes] | None
    ) -> None:
        if process.returncode is None:
            # Reached on timeout or cancellation while the child is still streaming.
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            self._emit({"event": f"{self.name}_cli_killed", "pid": process.pid})
        if stderr_task is not None and not stderr_task.done():
            stderr_task.cancel()

    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> AsyncIterator[str]:
        command = self.build_command(system_prompt, user_prompt, context)
        self._emit(
            {
                "event": f"{self.name}_cli_start",
                "command": command[:3],
                "has_context": bool(context),
                "model": context.get("model"),
            }
        )
        with self._process_env(system_prompt) as env:
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    cwd=str(self.working_directory) if self.working_directory else None,
                    env=env,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError as exc:
                raise BackendProcessError(
                    f"{self.binary_label} binary not found: {self.binary}",
                    backend=self.name,
                    retriable=False,
                ) from exc

            if process.stdout is None:
                raise BackendProcessError(
                    f"{self.binary_label} backend did not expose stdout.",
                    backend=self.name,
                    retriable=False,
                )

            # Drained alongside stdout so a chatty child cannot stall on a full pipe.
            stderr_task = (
                asyncio.create_task(process.stderr.read()) if process.stderr is not None else None
            )
            try:
                parse_buffer = ""
                async for raw_line in process.stdout:
                    line = raw_line.decode("utf-8", errors="replace").strip()
                    if not line:
                        continue
                    candidate = f"{parse_buffer}{line}" if parse_buffer else line
                    try:
                        event = json.loads(candidate)
                        parse_buffer = ""
                    except json.JSONDecodeError:
                        if appears_partial_json(candidate):
                            parse_buffer = candidate
                            continue
                        parse_buffer = ""
                        if self.yield_raw_lines:
                            yield line
                        else:
                            self._emit(
                                {"event": f"{self.name}_json_parse_fallback", "line": line[:200]}
                            )
                        continue

                    content = extract_stream_content(event) if isinstance(event, dict) else ""
                    if content:
                        yield content

                if parse_buffer:
                    if self.yield_raw_lines:
                        yield parse_buffer
                    else:
                        self._emit(
                            {"event": f"{self.name}_json_buffer_flush", "bytes": len(parse_buffer)}
                        )

                return_code = await process.wait()
                stderr_output = ""
                if stderr_task is not None:
                    stderr_output = (await stderr_task).decode("utf-8", errors="replace").strip()
            finally:
                await self._reap(process, stderr_task)
        self._emit({"event": f"{self.name}_cli_exit", "exit_code": return_code})
        if return_code != 0:
            raise BackendExecutionError(
                f"{self.binary_label} backend failed with exit code {return_code}: "
                f"{stderr_output}",
                backend=self.name,
                exit_code=return_code,
                retriable=True,
            )
