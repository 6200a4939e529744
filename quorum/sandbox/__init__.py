"""Sandboxed execution of generated Python code."""

from quorum.sandbox.executor import ExecutionResult, SandboxExecutor

__all__ = ["ExecutionResult", "SandboxExecutor"]
