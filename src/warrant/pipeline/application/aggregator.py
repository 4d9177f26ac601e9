"""
Status aggregator.

Reduces step results and claim findings to one verdict with a strict
worst-case rule, and records the derivation so the verdict is explainable.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from warrant.pipeline.domain.enums import FindingStatus, Severity, StepState, Verdict
from warrant.pipeline.domain.models import CorrelationFinding, Step, StepResult, final_results
from warrant.shared.domain.base_model import BaseDomainModel
from warrant.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Aggregation(BaseDomainModel):
    """Verdict plus the rule that produced it and the reasons behind it."""

    verdict: Verdict
    confidence: float
    rule: str
    reasons: tuple[str, ...]


class StatusAggregator:
    """
    Applies the verdict rules, first match wins:

    1. any CRITICAL step BLOCKED, FAILED or TIMEOUT -> INCOMPLETE
    2. no CRITICAL step declared, or one SKIPPED or without a result -> INCOMPLETE
    3. any ADVISORY step FAILED/TIMEOUT, or any CONTRADICTED claim -> PARTIALLY_VALIDATED
    4. every step PASSED and no CONTRADICTED claim -> FULLY_VALIDATED

    Anything else is an advisory step that produced no evidence, which is
    PARTIALLY_VALIDATED.
    """

    def aggregate(
        self,
        steps: Iterable[Step],
        results: Iterable[StepResult],
        findings: Optional[Iterable[CorrelationFinding]] = None,
    ) -> Aggregation:
        steps = list(steps)
        findings = list(findings or [])
        latest = {r.step_id: r for r in final_results(results)}

        def state_of(step: Step) -> Optional[StepState]:
            result = latest.get(step.id)
            return result.state if result else None

        critical = [s for s in steps if s.severity is Severity.CRITICAL]
        advisory = [s for s in steps if s.severity is Severity.ADVISORY]
        contradicted = [f for f in findings if f.status is FindingStatus.CONTRADICTED]

        confidence = self.confidence(steps, latest.values(), findings)
        reasons: List[str] = []

        critical_broken = [
            s for s in critical
            if state_of(s) in (StepState.BLOCKED, StepState.FAILED, StepState.TIMEOUT)
        ]
        if critical_broken:
            reasons += [f"critical step '{s.id}' is {state_of(s).value}" for s in critical_broken]
            return self._done(Verdict.INCOMPLETE, confidence, "critical-step-failed", reasons)

        # Missing critical evidence outranks advisory failures and contradictions.
        if not critical:
            reasons.append("no critical step was declared, so nothing vouches for the project")
            return self._done(Verdict.INCOMPLETE, confidence, "no-critical-evidence", reasons)

        missing_critical = [s for s in critical if state_of(s) is not StepState.PASSED]
        if missing_critical:
            reasons += [
                f"critical step '{s.id}' produced no evidence ({state_of(s).value if state_of(s) else 'no result'})"
                for s in missing_critical
            ]
            return self._done(Verdict.INCOMPLETE, confidence, "no-critical-evidence", reasons)

        advisory_failed = [s for s in advisory if state_of(s) in (StepState.FAILED, StepState.TIMEOUT)]
        if advisory_failed or contradicted:
            reasons += [f"advisory step '{s.id}' is {state_of(s).value}" for s in advisory_failed]
            reasons += [f"claim \"{f.claim.text}\" is contradicted: {f.detail}" for f in contradicted]
            return self._done(Verdict.PARTIALLY_VALIDATED, confidence, "advisory-failed-or-claim-contradicted", reasons)

        if all(state_of(s) is StepState.PASSED for s in steps):
            reasons.append(f"all {len(steps)} steps passed")
            if findings:
                supported = sum(1 for f in findings if f.status is FindingStatus.SUPPORTED)
                reasons.append(f"{supported} of {len(findings)} claims supported, none contradicted")
            return self._done(Verdict.FULLY_VALIDATED, confidence, "all-steps-passed", reasons)

        missing = [s for s in steps if state_of(s) is not StepState.PASSED]
        reasons += [
            f"advisory step '{s.id}' produced no evidence ({state_of(s).value if state_of(s) else 'no result'})"
            for s in missing
        ]
        return self._done(Verdict.PARTIALLY_VALIDATED, confidence, "advisory-evidence-missing", reasons)

    @staticmethod
    def confidence(
        steps: Iterable[Step],
        results: Iterable[StepResult],
        findings: Iterable[CorrelationFinding],
    ) -> float:
        """
        passed_critical / total_critical, weighted by the share of claims not
        contradicted, clamped to [0, 1]. Informational only.
        """
        latest = {r.step_id: r for r in final_results(results)}
        critical = [s for s in steps if s.severity is Severity.CRITICAL]
        if not critical:
            return 0.0
        passed = sum(1 for s in critical if s.id in latest and latest[s.id].passed)
        findings = list(findings)
        claim_factor = 1.0
        if findings:
            contradicted = sum(1 for f in findings if f.status is FindingStatus.CONTRADICTED)
            claim_factor = 1.0 - contradicted / len(findings)
        score = (passed / len(critical)) * claim_factor
        return round(min(1.0, max(0.0, score)), 4)

    @staticmethod
    def _done(verdict: Verdict, confidence: float, rule: str, reasons: List[str]) -> Aggregation:
        logger.info("verdict_computed", verdict=verdict.value, rule=rule, confidence=confidence)
        return Aggregation(verdict=verdict, confidence=confidence, rule=rule, reasons=tuple(reasons))
