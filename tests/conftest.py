"""Shared test fixtures for Warrant Core test suite."""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import pytest

from warrant.pipeline.domain.enums import Severity
from warrant.pipeline.domain.models import PipelineConfig, Step
from warrant.shared.domain.exceptions import CommandTimeout
from warrant.shared.infrastructure.execution.command_executor import CommandResult
from warrant.shared.infrastructure.resilience.retry import NO_RETRY, RetryPolicy


@dataclass
class Outcome:
    """Scripted result of one fake command invocation."""

    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    delay: float = 0.0
    error: Optional[Exception] = None


class FakeCommandRunner:
    """
    CommandRunner test double.

    `script` maps a command line ("run build") to one Outcome or a list of
    Outcomes consumed one per attempt (the last one repeats). A delay longer
    than the timeout behaves like a real timeout.
    """

    def __init__(self, script: Optional[Dict[str, Union[Outcome, Sequence[Outcome]]]] = None):
        self.script: Dict[str, List[Outcome]] = {}
        for key, value in (script or {}).items():
            self.script[key] = [value] if isinstance(value, Outcome) else list(value)
        self.calls: List[str] = []
        self.cwds: Dict[str, object] = {}
        self.envs: Dict[str, object] = {}
        self.active = 0
        self.max_active = 0

    def _next(self, key: str) -> Outcome:
        outcomes = self.script.get(key)
        if not outcomes:
            return Outcome()
        return outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]

    async def run_async(self, command, timeout, cwd=None, env=None) -> CommandResult:
        key = " ".join(command)
        self.calls.append(key)
        self.cwds[key] = cwd
        self.envs[key] = env
        outcome = self._next(key)

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if outcome.delay:
                if outcome.delay > timeout:
                    await asyncio.sleep(timeout)
                    raise CommandTimeout(list(command), timeout, duration_ms=int(timeout * 1000))
                await asyncio.sleep(outcome.delay)
            else:
                await asyncio.sleep(0)
            if outcome.error is not None:
                raise outcome.error
            return CommandResult(
                command=tuple(command),
                exit_code=outcome.exit_code,
                stdout=outcome.stdout,
                stderr=outcome.stderr,
                duration_ms=int(outcome.delay * 1000),
            )
        finally:
            self.active -= 1


def make_step(
    step_id: str,
    *depends_on: str,
    severity: Severity = Severity.CRITICAL,
    max_attempts: int = 1,
    retry: Optional[RetryPolicy] = None,
    **kwargs,
) -> Step:
    """Step whose command line is "run <step_id>"."""
    if retry is None and max_attempts > 1:
        retry = RetryPolicy(max_attempts=max_attempts, initial_delay=0.0)
    if retry is not None and retry.retries_enabled:
        kwargs.setdefault("idempotent", True)
    return Step(
        id=step_id,
        command=f"run {step_id}",
        depends_on=depends_on,
        severity=severity,
        retry_policy=retry or NO_RETRY,
        **kwargs,
    )


@pytest.fixture
def step_factory():
    """Factory for steps with a predictable "run <id>" command."""
    return make_step


@pytest.fixture
def fake_runner_factory():
    """Factory for scripted command runners."""
    return FakeCommandRunner


@pytest.fixture
def pipeline_config():
    """Fast PipelineConfig for testing."""
    return PipelineConfig(
        default_step_timeout=5.0,
        max_parallelism=4,
        output_excerpt_limit=4000,
        kill_grace_period=0.5,
    )


@pytest.fixture
def project_root(tmp_path):
    """Create a temporary project root directory."""
    return tmp_path
