from traycer.backends.base import (
    AgentBackend,
    BackendExecutionError,
    BackendProcessError,
    BackendReply,
    BackendTimeoutError,
)
from traycer.backends.claude import ClaudeCodeBackend
from traycer.backends.codex import CodexBackend
from traycer.backends.codex_sdk import CodexSDKBackend
from traycer.backends.resilient import ResilientBackend, RetryPolicy

__all__ = [
    "AgentBackend",
    "BackendExecutionError",
    "BackendProcessError",
    "BackendReply",
    "BackendTimeoutError",
    "ClaudeCodeBackend",
    "CodexBackend",
    "CodexSDKBackend",
    "ResilientBackend",
    "RetryPolicy",
]
