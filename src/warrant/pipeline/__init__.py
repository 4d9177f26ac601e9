"""Pipeline module - verification pipeline orchestration."""

from warrant.pipeline.domain.models import (
    Claim,
    CorrelationFinding,
    PipelineConfig,
    Step,
    StepResult,
    ValidationRun,
)
from warrant.pipeline.domain.enums import FindingStatus, Severity, StepState, Verdict
from warrant.pipeline.application.registry import StepRegistry
from warrant.pipeline.application.executor import StepExecutor
