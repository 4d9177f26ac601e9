"""
Domain exceptions for Warrant.

Follows the "Fail Fast" and "Strict Types" principles.
All application errors inherit from WarrantError.

Step-level errors (SpawnFailed, CommandTimeout, CommandFailed) are raised by
the command runner and captured by the executor as StepResults. Only
ConfigurationError and ReportWriteError may end an invocation.
"""


class WarrantError(Exception):
    """Base class for all Warrant exceptions."""

    def __init__(self, message: str, context: dict = None):
        super().__init__(message)
        self.context = context or {}


class ConfigurationError(WarrantError):
    """Raised when step declarations or configuration are invalid."""

    pass


class DuplicateStepId(ConfigurationError):
    """Raised when a step id is registered twice."""

    def __init__(self, step_id: str):
        super().__init__(f"Step '{step_id}' is already registered", {"step_id": step_id})
        self.step_id = step_id


class InvalidDependency(ConfigurationError):
    """Raised when a step depends on an unknown step id."""

    def __init__(self, step_id: str, dependency: str):
        super().__init__(
            f"Step '{step_id}' depends on unknown step '{dependency}'",
            {"step_id": step_id, "dependency": dependency},
        )
        self.step_id = step_id
        self.dependency = dependency


class CyclicDependency(ConfigurationError):
    """Raised when the step dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        super().__init__(
            f"Cyclic step dependency: {' -> '.join(cycle)}",
            {"cycle": list(cycle)},
        )
        self.cycle = list(cycle)


class InvalidRetryPolicy(ConfigurationError):
    """Raised when a non-idempotent step declares retries."""

    def __init__(self, step_id: str, max_attempts: int):
        super().__init__(
            f"Step '{step_id}' declares {max_attempts} attempts but is not marked idempotent",
            {"step_id": step_id, "max_attempts": max_attempts},
        )
        self.step_id = step_id


class SpawnFailed(WarrantError):
    """Raised when a command cannot be started (e.g. missing toolchain binary)."""

    def __init__(self, command: list[str], reason: str):
        super().__init__(
            f"Could not start '{' '.join(command)}': {reason}",
            {"command": list(command)},
        )
        self.command = list(command)
        self.reason = reason


class CommandTimeout(WarrantError):
    """Raised when a command exceeds its timeout and has been killed."""

    def __init__(self, command: list[str], timeout_seconds: float, duration_ms: int = 0,
                 stdout: str = "", stderr: str = ""):
        super().__init__(
            f"'{' '.join(command)}' timed out after {timeout_seconds}s",
            {"command": list(command), "timeout": timeout_seconds},
        )
        self.command = list(command)
        self.timeout_seconds = timeout_seconds
        self.duration_ms = duration_ms
        self.stdout = stdout
        self.stderr = stderr


class CommandFailed(WarrantError):
    """Raised when a command exits with a non-zero status."""

    def __init__(self, command: list[str], exit_code: int, stderr: str = "",
                 stdout: str = "", duration_ms: int = 0):
        super().__init__(
            f"'{' '.join(command)}' exited with code {exit_code}",
            {"command": list(command), "exit_code": exit_code},
        )
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout
        self.duration_ms = duration_ms


class ReportWriteError(WarrantError):
    """Raised when the report artifact cannot be written."""

    pass


class RunSealedError(WarrantError):
    """Raised when a sealed ValidationRun is mutated."""

    pass
