"""
Verification pipeline orchestrator.

Wires registry, executor, correlator and aggregator into one run:

    registry -> executor -> correlator -> aggregator -> ValidationRun

Report rendering (which seals the run) is left to the caller.
"""

from pathlib import Path
from typing import Callable, Iterable, Optional

from warrant.claims.extractor import ClaimExtractor, PatternClaimExtractor
from warrant.pipeline.application.aggregator import StatusAggregator
from warrant.pipeline.application.correlator import EvidenceCorrelator
from warrant.pipeline.application.executor import StepExecutor
from warrant.pipeline.application.registry import StepRegistry
from warrant.pipeline.domain.models import Claim, PipelineConfig, ValidationRun
from warrant.shared.infrastructure.execution.command_executor import CommandRunner
from warrant.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class VerificationPipeline:
    """Runs the declared steps and judges a narrative's claims against them."""

    def __init__(
        self,
        registry: StepRegistry,
        config: Optional[PipelineConfig] = None,
        runner: Optional[CommandRunner] = None,
        claim_extractor: Optional[ClaimExtractor] = None,
        project_root: Optional[str | Path] = None,
        progress_callback: Optional[Callable] = None,
    ):
        self.config = config or PipelineConfig()
        # Fail before anything runs: cycles and dangling dependencies are fatal
        registry.validate()
        self.registry = registry.promoted() if self.config.strict else registry
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.claim_extractor = claim_extractor or PatternClaimExtractor()
        self.executor = StepExecutor(
            runner=runner,
            config=self.config,
            project_root=self.project_root,
            progress_callback=progress_callback,
        )
        self.correlator = EvidenceCorrelator(self.config.scopes)
        self.aggregator = StatusAggregator()

    def cancel(self) -> None:
        """Abort the run; the verdict is still produced."""
        self.executor.cancel()

    async def run_async(
        self,
        narrative: Optional[str] = None,
        claims: Optional[Iterable[Claim]] = None,
        narrative_source: Optional[str] = None,
    ) -> ValidationRun:
        """
        Execute the pipeline.

        Claims come from `claims` when given, otherwise from running the
        claim extractor over `narrative`.
        """
        run = ValidationRun(
            project=str(self.project_root),
            steps=tuple(self.registry.steps),
            narrative_source=narrative_source,
            strict=self.config.strict,
        )
        logger.info(
            "pipeline_started",
            run_id=run.run_id,
            project=run.project,
            steps=len(run.steps),
            strict=run.strict,
        )

        if claims is not None:
            run.record_claims(claims)
        elif narrative:
            run.record_claims(self.claim_extractor.extract(narrative))

        results = await self.executor.run_async(self.registry, skip=self.config.skip)
        run.record_results(results, cancelled=self.executor.cancelled)

        run.record_findings(self.correlator.correlate(run.claims, run.attempts))

        aggregation = self.aggregator.aggregate(run.steps, run.attempts, run.findings)
        run.conclude(aggregation.verdict, aggregation.confidence, aggregation.reasons)

        logger.info(
            "pipeline_completed",
            run_id=run.run_id,
            verdict=aggregation.verdict.value,
            confidence=aggregation.confidence,
            cancelled=run.cancelled,
        )
        return run
