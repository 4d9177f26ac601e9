"""
Pipeline domain enums.

Defines step outcomes, severities and the run verdict.
"""

from enum import Enum


class StepState(Enum):
    """
    Terminal state of one step attempt.

    Results are only created once a step has finished, been skipped or been
    blocked, so there is no PENDING/RUNNING member.
    """

    PASSED = "PASSED"
    FAILED = "FAILED"  # Non-zero exit, or the command could not be spawned
    TIMEOUT = "TIMEOUT"  # Killed after its timeout, or in flight when the run was cancelled
    BLOCKED = "BLOCKED"  # A dependency did not reach an acceptable state
    SKIPPED = "SKIPPED"  # Excluded by the operator, or never started before cancellation

    @property
    def is_failure(self) -> bool:
        return self in (StepState.FAILED, StepState.TIMEOUT)


class Severity(Enum):
    """
    Step severity.

    CRITICAL failures block dependents and the whole run;
    ADVISORY failures are reported but do not block.
    """

    CRITICAL = "CRITICAL"
    ADVISORY = "ADVISORY"

    @property
    def rank(self) -> int:
        """Sort key, most severe first."""
        return 0 if self is Severity.CRITICAL else 1


class FindingStatus(Enum):
    """Outcome of checking one claim against step results."""

    SUPPORTED = "SUPPORTED"
    CONTRADICTED = "CONTRADICTED"
    UNVERIFIABLE = "UNVERIFIABLE"  # No step covers the claim's scope


class Verdict(Enum):
    """Overall outcome of a validation run."""

    INCOMPLETE = "INCOMPLETE"
    PARTIALLY_VALIDATED = "PARTIALLY_VALIDATED"
    FULLY_VALIDATED = "FULLY_VALIDATED"
