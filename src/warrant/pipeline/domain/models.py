"""
Pipeline domain models.

Core entities for verification pipeline runs.
"""

import shlex
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from warrant.pipeline.domain.enums import FindingStatus, Severity, StepState, Verdict
from warrant.shared.domain.base_model import BaseDomainModel
from warrant.shared.domain.exceptions import RunSealedError
from warrant.shared.infrastructure.resilience.retry import NO_RETRY, RetryPolicy


@dataclass(frozen=True)
class Step(BaseDomainModel):
    """
    A declared unit of verification wrapping one external command.

    `command` may be given as a string; it is split with shlex.
    `timeout` of None means "use the run default".
    """

    id: str
    command: tuple[str, ...]
    depends_on: tuple[str, ...] = ()
    timeout: Optional[float] = None
    retry_policy: RetryPolicy = NO_RETRY
    severity: Severity = Severity.CRITICAL
    idempotent: bool = False
    description: str = ""
    cwd: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValueError("step id must not be empty")
        command = self.command
        if isinstance(command, str):
            command = shlex.split(command)
        command = tuple(str(part) for part in command)
        if not command:
            raise ValueError(f"step '{self.id}' has an empty command")
        object.__setattr__(self, "command", command)
        object.__setattr__(self, "depends_on", tuple(self.depends_on))
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"step '{self.id}' timeout must be positive")

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)

    def effective_timeout(self, default: float) -> float:
        return self.timeout if self.timeout is not None else default


@dataclass(frozen=True)
class StepResult(BaseDomainModel):
    """
    Outcome of one step attempt. Immutable once created.

    exit_code is None when the process never produced one: spawn failures,
    timeouts, and steps that never ran.
    """

    step_id: str
    state: StepState
    attempt: int = 1
    exit_code: Optional[int] = None
    duration_ms: int = 0
    stdout: str = ""
    stderr: str = ""
    truncated: bool = False
    reason: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.state is StepState.PASSED

    @classmethod
    def blocked(cls, step_id: str, reason: str) -> "StepResult":
        return cls(step_id=step_id, state=StepState.BLOCKED, attempt=0, reason=reason)

    @classmethod
    def skipped(cls, step_id: str, reason: str) -> "StepResult":
        return cls(step_id=step_id, state=StepState.SKIPPED, attempt=0, reason=reason)


def final_results(attempts: Iterable[StepResult], order: Optional[Sequence[str]] = None) -> List[StepResult]:
    """
    Reduce every recorded attempt to one result per step.

    The highest attempt supersedes earlier ones. Results come back in `order`
    when given (ids missing from `attempts` are left out), otherwise in order
    of first appearance.
    """
    latest: Dict[str, StepResult] = {}
    for result in attempts:
        current = latest.get(result.step_id)
        if current is None or result.attempt >= current.attempt:
            latest[result.step_id] = result
    if order is None:
        return list(latest.values())
    return [latest[step_id] for step_id in order if step_id in latest]


@dataclass(frozen=True)
class Claim(BaseDomainModel):
    """A structured success assertion extracted from an LLM narrative."""

    text: str
    scope: str
    confidence: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("claim confidence must be within [0, 1]")


@dataclass(frozen=True)
class CorrelationFinding(BaseDomainModel):
    """Result of checking one claim against step results."""

    claim: Claim
    status: FindingStatus
    step_ids: tuple[str, ...] = ()
    detail: str = ""


@dataclass
class PipelineConfig(BaseDomainModel):
    """
    Effective settings for one run.

    Built from Settings, overridden by CLI flags.
    """

    default_step_timeout: float = 300.0
    max_parallelism: int = 1
    run_timeout: Optional[float] = None  # Whole-run deadline; expiry cancels the run
    strict: bool = False  # Promote every ADVISORY step to CRITICAL
    skip: tuple[str, ...] = ()  # Step ids excluded by the operator
    output_excerpt_limit: int = 4000
    log_dir: Optional[str] = None  # Per-step raw logs; None disables them
    kill_grace_period: float = 5.0
    scopes: Dict[str, List[str]] = field(default_factory=dict)  # Claim scope -> step ids


@dataclass
class ValidationRun(BaseDomainModel):
    """
    Aggregate root for one invocation.

    Holds the registry snapshot, every step attempt, the claim findings and
    the verdict. Mutated only through its recording methods; after seal()
    any assignment raises RunSealedError.
    """

    project: str
    steps: tuple[Step, ...]
    narrative_source: Optional[str] = None
    strict: bool = False
    run_id: str = field(default_factory=lambda: str(uuid4()))
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    attempts: tuple[StepResult, ...] = ()
    claims: tuple[Claim, ...] = ()
    findings: tuple[CorrelationFinding, ...] = ()
    verdict: Optional[Verdict] = None
    confidence: float = 0.0
    verdict_reasons: tuple[str, ...] = ()
    cancelled: bool = False
    _sealed: bool = field(default=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("_sealed", False):
            raise RunSealedError(f"ValidationRun {self.run_id} is sealed", {"field": name})
        super().__setattr__(name, value)

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    @property
    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]

    @property
    def results(self) -> List[StepResult]:
        """Final result per step, in declaration order."""
        return final_results(self.attempts, self.step_ids)

    def step(self, step_id: str) -> Step:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(step_id)

    def result_for(self, step_id: str) -> Optional[StepResult]:
        for result in self.results:
            if result.step_id == step_id:
                return result
        return None

    def attempts_for(self, step_id: str) -> List[StepResult]:
        return sorted((r for r in self.attempts if r.step_id == step_id), key=lambda r: r.attempt)

    def record_results(self, results: Iterable[StepResult], cancelled: bool = False) -> None:
        self.attempts = self.attempts + tuple(results)
        self.cancelled = self.cancelled or cancelled

    def record_claims(self, claims: Iterable[Claim]) -> None:
        self.claims = self.claims + tuple(claims)

    def record_findings(self, findings: Iterable[CorrelationFinding]) -> None:
        self.findings = self.findings + tuple(findings)

    def conclude(self, verdict: Verdict, confidence: float, reasons: Sequence[str]) -> None:
        """Store the aggregated verdict and stamp the finish time."""
        self.verdict = verdict
        self.confidence = confidence
        self.verdict_reasons = tuple(reasons)
        self.finished_at = datetime.now(timezone.utc)

    def seal(self) -> None:
        """Make the run immutable. Idempotent."""
        if not self._sealed:
            super().__setattr__("_sealed", True)

    @property
    def duration_ms(self) -> int:
        if self.finished_at is None:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() * 1000)
