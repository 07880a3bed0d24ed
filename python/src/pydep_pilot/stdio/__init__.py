"""
Process Execution Module

Runs the package manager as a cancellable child process and mirrors every
invocation to the diagnostic log.

Components:
- executor: asyncio subprocess runner with exit-status classification
- diagnostics: bounded line log of commands and their output
"""

from .diagnostics import DiagnosticLog
from .executor import CommandExecutor

__all__ = [
    "CommandExecutor",
    "DiagnosticLog"
]
