"""
Evidence correlator.

Checks structured claims against step results. Never reads free text:
claims arrive already extracted, so correlation is deterministic.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from warrant.pipeline.domain.enums import FindingStatus
from warrant.pipeline.domain.models import Claim, CorrelationFinding, StepResult, final_results
from warrant.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class EvidenceCorrelator:
    """Matches claims to steps through an injected scope mapping."""

    def __init__(self, scopes: Optional[Mapping[str, Sequence[str]]] = None):
        """
        Args:
            scopes: claim scope -> step ids covering it, e.g. {"tests": ["unit_tests"]}.
                A scope equal to a step id always covers that step.
        """
        self.scopes: Dict[str, List[str]] = {
            scope.lower(): list(step_ids) for scope, step_ids in (scopes or {}).items()
        }

    def resolve(self, scope: str, known_steps: Iterable[str]) -> List[str]:
        """Step ids covering `scope`, restricted to steps that produced results."""
        known = list(known_steps)
        candidates = list(self.scopes.get(scope.lower(), []))
        if scope in known and scope not in candidates:
            candidates.append(scope)
        return [step_id for step_id in candidates if step_id in known]

    def correlate(self, claims: Iterable[Claim], results: Iterable[StepResult]) -> List[CorrelationFinding]:
        """One finding per claim, in claim order."""
        latest = {result.step_id: result for result in final_results(results)}
        findings: List[CorrelationFinding] = []

        for claim in claims:
            step_ids = self.resolve(claim.scope, latest)
            if not step_ids:
                finding = CorrelationFinding(
                    claim=claim,
                    status=FindingStatus.UNVERIFIABLE,
                    detail=f"no step covers scope '{claim.scope}'",
                )
            else:
                failing = [latest[step_id] for step_id in step_ids if not latest[step_id].passed]
                if failing:
                    finding = CorrelationFinding(
                        claim=claim,
                        status=FindingStatus.CONTRADICTED,
                        step_ids=tuple(step_ids),
                        detail=", ".join(f"{r.step_id} is {r.state.value}" for r in failing),
                    )
                else:
                    finding = CorrelationFinding(
                        claim=claim,
                        status=FindingStatus.SUPPORTED,
                        step_ids=tuple(step_ids),
                        detail=", ".join(f"{step_id} PASSED" for step_id in step_ids),
                    )
            logger.debug(
                "claim_correlated",
                scope=claim.scope,
                status=finding.status.value,
                steps=list(finding.step_ids),
            )
            findings.append(finding)

        return findings
