"""Pipeline domain package."""

from warrant.pipeline.domain.enums import FindingStatus, Severity, StepState, Verdict
from warrant.pipeline.domain.models import (
    Claim,
    CorrelationFinding,
    PipelineConfig,
    Step,
    StepResult,
    ValidationRun,
    final_results,
)

__all__ = [
    "Claim",
    "CorrelationFinding",
    "FindingStatus",
    "PipelineConfig",
    "Severity",
    "Step",
    "StepResult",
    "StepState",
    "ValidationRun",
    "Verdict",
    "final_results",
]
