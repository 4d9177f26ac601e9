"""
Step executor.

Runs registry steps to completion honoring the dependency DAG, a bounded
worker budget, per-step timeouts, retries and run-wide cancellation.
Step-level errors never escape: every declared step ends with a terminal
StepResult.
"""

import asyncio
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set

from warrant.pipeline.application.registry import StepRegistry
from warrant.pipeline.domain.enums import Severity, StepState
from warrant.pipeline.domain.models import PipelineConfig, Step, StepResult
from warrant.shared.domain.exceptions import CommandFailed, CommandTimeout, ConfigurationError, SpawnFailed
from warrant.shared.infrastructure.execution.command_executor import CommandExecutor, CommandRunner
from warrant.shared.infrastructure.logging import get_logger
from warrant.shared.utils.text_utils import truncate_excerpt

logger = get_logger(__name__)


class StepExecutor:
    """Executes registry steps concurrently, dependents after their dependencies."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        config: Optional[PipelineConfig] = None,
        project_root: Optional[str | Path] = None,
        progress_callback: Optional[Callable] = None,
    ):
        """
        Initialize step executor.

        Args:
            runner: Command runner collaborator (subprocess-backed by default)
            config: Effective run configuration
            project_root: Working directory for step commands
            progress_callback: Optional callback(event, data) for progress updates
        """
        self.config = config or PipelineConfig()
        self.runner = runner or CommandExecutor(kill_grace_period=self.config.kill_grace_period)
        self.project_root = Path(project_root) if project_root else None
        self.progress_callback = progress_callback
        self.cancelled = False
        self._cancel_requested = False
        self._cancel_event: Optional[asyncio.Event] = None
        self._attempts: Dict[str, List[StepResult]] = {}
        self._in_flight: Dict[str, int] = {}
        self._logged: Set[str] = set()

    def cancel(self) -> None:
        """Request cancellation of the current (or next) run."""
        self._cancel_requested = True
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def run_async(self, registry: StepRegistry, skip: Iterable[str] = ()) -> List[StepResult]:
        """
        Run every step of `registry`.

        Returns every attempt, ordered by declaration order then attempt.
        Skipped steps are recorded as SKIPPED rather than dropped.

        Raises:
            ConfigurationError: invalid registry, or an unknown id in `skip`
        """
        registry.validate()
        skip = list(skip)
        for step_id in skip:
            if step_id not in registry:
                raise ConfigurationError(f"Cannot skip unknown step '{step_id}'", {"step_id": step_id})

        self.cancelled = False
        self._attempts = {step_id: [] for step_id in registry.step_ids}
        self._in_flight = {}
        self._logged = set()
        self._cancel_event = asyncio.Event()
        if self._cancel_requested:
            self._cancel_event.set()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.run_timeout if self.config.run_timeout else None
        semaphore = asyncio.Semaphore(max(1, self.config.max_parallelism))

        final: Dict[str, StepResult] = {}
        satisfied: Set[str] = set()
        started: Set[str] = set()
        pending: List[str] = []
        for step in registry:
            if step.id in skip:
                final[step.id] = self._record(StepResult.skipped(step.id, "excluded by operator"), step)
                started.add(step.id)
            else:
                pending.append(step.id)

        logger.info(
            "run_started",
            steps=len(registry),
            skipped=len(skip),
            max_parallelism=self.config.max_parallelism,
        )

        running: Dict[asyncio.Task, str] = {}
        cancel_waiter = asyncio.create_task(self._cancel_event.wait())
        try:
            while True:
                self._block_unreachable(registry, pending, final, satisfied, started)

                reason = self._abort_reason(deadline, loop.time())
                if reason and (pending or running):
                    await self._cancel_in_flight(registry, running, final, reason)
                    for step_id in pending:
                        final[step_id] = self._record(
                            StepResult.skipped(step_id, f"not started: {reason}"), registry.get(step_id)
                        )
                    pending.clear()
                    running.clear()
                    self.cancelled = True
                    logger.warning("run_cancelled", reason=reason)
                    break

                for step in registry.ready_queue(satisfied, started):
                    started.add(step.id)
                    pending.remove(step.id)
                    task = asyncio.create_task(self._run_step_async(step, semaphore))
                    running[task] = step.id

                if not running:
                    break

                wait_timeout = None if deadline is None else max(0.0, deadline - loop.time())
                done, _ = await asyncio.wait(
                    set(running) | {cancel_waiter},
                    timeout=wait_timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                for task in done:
                    if task is cancel_waiter:
                        continue
                    step_id = running.pop(task)
                    result = task.result()
                    final[step_id] = result
                    if self._satisfies(registry.get(step_id), result):
                        satisfied.add(step_id)
        finally:
            cancel_waiter.cancel()
            for task in running:
                task.cancel()
            self._cancel_requested = False

        logger.info(
            "run_finished",
            passed=sum(1 for r in final.values() if r.state is StepState.PASSED),
            total=len(final),
            cancelled=self.cancelled,
        )
        return [
            result
            for step_id in registry.step_ids
            for result in sorted(self._attempts[step_id], key=lambda r: r.attempt)
        ]

    def _abort_reason(self, deadline: Optional[float], now: float) -> Optional[str]:
        if self._cancel_event is not None and self._cancel_event.is_set():
            return "run cancelled by operator"
        if deadline is not None and now >= deadline:
            return f"run timeout of {self.config.run_timeout:g}s exceeded"
        return None

    @staticmethod
    def _satisfies(step: Step, result: StepResult) -> bool:
        """Whether dependents of `step` may run given its final result."""
        if result.state is StepState.PASSED:
            return True
        return step.severity is Severity.ADVISORY and result.state.is_failure

    def _block_unreachable(
        self,
        registry: StepRegistry,
        pending: List[str],
        final: Dict[str, StepResult],
        satisfied: Set[str],
        started: Set[str],
    ) -> None:
        """Mark pending steps with a finished, unsatisfied dependency as BLOCKED, transitively."""
        changed = True
        while changed:
            changed = False
            for step_id in list(pending):
                step = registry.get(step_id)
                for dependency in step.depends_on:
                    if dependency in final and dependency not in satisfied:
                        blocker = final[dependency]
                        reason = f"dependency '{dependency}' is {blocker.state.value}"
                        final[step_id] = self._record(StepResult.blocked(step_id, reason), step)
                        started.add(step_id)
                        pending.remove(step_id)
                        logger.info("step_blocked", step_id=step_id, dependency=dependency)
                        changed = True
                        break

    async def _run_step_async(self, step: Step, semaphore: asyncio.Semaphore) -> StepResult:
        """Run all attempts of one step, strictly one after another."""
        async with semaphore:
            policy = step.retry_policy
            attempt = 1
            while True:
                self._in_flight[step.id] = attempt
                result = await self._attempt_async(step, attempt)
                self._in_flight.pop(step.id, None)

                if result.passed or not self._should_retry(step, result, attempt):
                    return result

                delay = policy.delay_for(attempt)
                logger.info(
                    "step_retry_scheduled",
                    step_id=step.id,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    delay=delay,
                )
                await asyncio.sleep(delay)
                attempt += 1

    @staticmethod
    def _should_retry(step: Step, result: StepResult, attempt: int) -> bool:
        policy = step.retry_policy
        if attempt >= policy.max_attempts:
            return False
        if result.state is StepState.TIMEOUT:
            return policy.retry_on_timeout
        # exit_code None means the binary never started; re-running will not fix that
        return result.state is StepState.FAILED and result.exit_code is not None

    async def _attempt_async(self, step: Step, attempt: int) -> StepResult:
        timeout = step.effective_timeout(self.config.default_step_timeout)
        self._notify("step_started", {"step_id": step.id, "attempt": attempt})
        logger.debug("step_started", step_id=step.id, attempt=attempt, timeout=timeout)

        start = time.perf_counter()
        stdout, stderr = "", ""
        exit_code: Optional[int] = None
        try:
            outcome = (await self.runner.run_async(
                list(step.command),
                timeout=timeout,
                cwd=self._resolve_cwd(step),
                env=dict(step.env) or None,
            )).check()
        except CommandFailed as e:
            state, reason = StepState.FAILED, f"exited with code {e.exit_code}"
            exit_code = e.exit_code
            duration_ms = e.duration_ms
            stdout, stderr = e.stdout, e.stderr
        except SpawnFailed as e:
            state, reason = StepState.FAILED, f"could not start command: {e.reason}"
            duration_ms = int((time.perf_counter() - start) * 1000)
        except CommandTimeout as e:
            state, reason = StepState.TIMEOUT, f"timed out after {timeout:g}s"
            duration_ms = e.duration_ms or int((time.perf_counter() - start) * 1000)
            stdout, stderr = e.stdout, e.stderr
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # A broken runner must not take the run down with it
            logger.error("command_runner_error", step_id=step.id, error=str(e), error_type=type(e).__name__)
            state, reason = StepState.FAILED, f"command runner error: {e}"
            duration_ms = int((time.perf_counter() - start) * 1000)
        else:
            exit_code = outcome.exit_code
            duration_ms = outcome.duration_ms
            stdout, stderr = outcome.stdout, outcome.stderr
            state, reason = StepState.PASSED, None

        limit = self.config.output_excerpt_limit
        stdout_excerpt, stdout_cut = truncate_excerpt(stdout, limit)
        stderr_excerpt, stderr_cut = truncate_excerpt(stderr, limit)
        result = StepResult(
            step_id=step.id,
            state=state,
            attempt=attempt,
            exit_code=exit_code,
            duration_ms=duration_ms,
            stdout=stdout_excerpt,
            stderr=stderr_excerpt,
            truncated=stdout_cut or stderr_cut,
            reason=reason,
        )
        self._record(result, step, stdout, stderr)

        logger.info(
            "step_finished",
            step_id=step.id,
            state=state.value,
            attempt=attempt,
            exit_code=exit_code,
            duration_ms=duration_ms,
        )
        self._notify("step_finished", {"step_id": step.id, "state": state.value, "attempt": attempt})
        return result

    async def _cancel_in_flight(
        self,
        registry: StepRegistry,
        running: Dict[asyncio.Task, str],
        final: Dict[str, StepResult],
        reason: str,
    ) -> None:
        """Cancel running steps; their process groups are killed before the tasks finish."""
        tasks = list(running)
        for task in tasks:
            task.cancel()
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        for task, outcome in zip(tasks, outcomes):
            step_id = running[task]
            step = registry.get(step_id)
            if isinstance(outcome, StepResult):
                # Finished before the cancellation landed
                final[step_id] = outcome
                continue
            attempt = self._in_flight.pop(step_id, None)
            if attempt is not None:
                final[step_id] = self._record(
                    StepResult(step_id=step_id, state=StepState.TIMEOUT, attempt=attempt, reason=reason),
                    step,
                )
            elif self._attempts[step_id]:
                # Cancelled during retry backoff: the last attempt stands
                final[step_id] = self._attempts[step_id][-1]
            else:
                final[step_id] = self._record(
                    StepResult.skipped(step_id, f"not started: {reason}"), step
                )

    def _record(self, result: StepResult, step: Step, stdout: str = "", stderr: str = "") -> StepResult:
        self._attempts[result.step_id].append(result)
        self._write_log(step, result, stdout, stderr)
        return result

    def _resolve_cwd(self, step: Step) -> Optional[Path]:
        if step.cwd is None:
            return self.project_root
        cwd = Path(step.cwd)
        if not cwd.is_absolute() and self.project_root is not None:
            cwd = self.project_root / cwd
        return cwd

    def _write_log(self, step: Step, result: StepResult, stdout: str, stderr: str) -> None:
        """Append the full, untruncated output of an attempt to <log_dir>/<stepId>.log."""
        if not self.config.log_dir:
            return
        log_path = Path(self.config.log_dir) / f"{step.id}.log"
        mode = "a" if step.id in self._logged else "w"
        lines = [
            f"=== {step.id} attempt {result.attempt} ===",
            f"command: {step.command_line}",
            f"state: {result.state.value}",
            f"exit_code: {result.exit_code}",
            f"duration_ms: {result.duration_ms}",
        ]
        if result.reason:
            lines.append(f"reason: {result.reason}")
        lines += ["--- stdout ---", stdout, "--- stderr ---", stderr, ""]
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(log_path, mode, encoding="utf-8") as f:
                f.write("\n".join(lines))
            self._logged.add(step.id)
        except OSError as e:
            logger.warning("step_log_write_failed", step_id=step.id, path=str(log_path), error=str(e))

    def _notify(self, event: str, data: dict) -> None:
        if self.progress_callback:
            self.progress_callback(event, data)
