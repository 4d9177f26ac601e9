"""Process execution infrastructure."""

from warrant.shared.infrastructure.execution.command_executor import (
    CommandExecutor,
    CommandResult,
    CommandRunner,
)

__all__ = ["CommandExecutor", "CommandResult", "CommandRunner"]
