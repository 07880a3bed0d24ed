"""
PyDep Pilot Errors

Exception hierarchy for the synchronization engine. Best-effort registry
lookups do not raise; they return None or an empty list instead.
"""


class PilotError(Exception):
    """Base class for engine errors."""


class OperationCancelled(PilotError):
    """The operation's cancellation token fired before it completed."""


class ExecutionError(PilotError):
    """Running an external command failed."""


class SpawnFailed(ExecutionError):
    """The process could not be started."""


class NonZeroExit(ExecutionError):
    """The process exited with a nonzero status."""

    def __init__(self, code: int, stderr: str):
        super().__init__(stderr or "Command failed")
        self.code = code
        self.stderr = stderr


class PipError(PilotError):
    """A package-manager level failure."""


class ParseFailed(PipError):
    """The machine-readable package listing could not be parsed."""


class NoInterpreterConfigured(PipError):
    """No usable Python interpreter is configured."""


class InvalidPackageSpec(PipError, ValueError):
    """A package name or requirements path was blank."""


class RegistryError(PilotError):
    """A registry request failed."""


class NoResults(RegistryError):
    """The search page contained no result list."""
