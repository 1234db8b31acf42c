"""Traycer workspace: plan, implement, and review a task with AI providers."""

__version__ = "0.1.0"
