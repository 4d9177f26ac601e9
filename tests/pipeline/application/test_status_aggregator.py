"""
Tests for StatusAggregator.

The verdict rules are worst-case: a failed critical step always wins, and
claims can lower a verdict but never raise it.
"""

import pytest

from conftest import make_step
from warrant.pipeline.application.aggregator import StatusAggregator
from warrant.pipeline.domain.enums import FindingStatus, Severity, StepState, Verdict
from warrant.pipeline.domain.models import Claim, CorrelationFinding, StepResult

STEPS = [
    make_step("build"),
    make_step("test", "build"),
    make_step("lint", "build", severity=Severity.ADVISORY),
]


def _results(**states):
    return [StepResult(step_id=step_id, state=state) for step_id, state in states.items()]


def _finding(status, scope="tests"):
    return CorrelationFinding(claim=Claim(text=f"{scope} claim", scope=scope), status=status)


@pytest.fixture
def aggregator():
    return StatusAggregator()


class TestVerdictRules:
    """Test the verdict rules in priority order."""

    def test_all_passed(self, aggregator):
        aggregation = aggregator.aggregate(
            STEPS, _results(build=StepState.PASSED, test=StepState.PASSED, lint=StepState.PASSED),
        )

        assert aggregation.verdict is Verdict.FULLY_VALIDATED
        assert aggregation.rule == "all-steps-passed"
        assert aggregation.confidence == 1.0
        assert aggregation.reasons == ("all 3 steps passed",)

    @pytest.mark.parametrize("state", [StepState.FAILED, StepState.TIMEOUT, StepState.BLOCKED])
    def test_critical_not_passing_is_incomplete(self, aggregator, state):
        aggregation = aggregator.aggregate(
            STEPS, _results(build=StepState.PASSED, test=state, lint=StepState.PASSED),
        )

        assert aggregation.verdict is Verdict.INCOMPLETE
        assert aggregation.rule == "critical-step-failed"
        assert aggregation.reasons == (f"critical step 'test' is {state.value}",)

    @pytest.mark.parametrize("state", [StepState.FAILED, StepState.TIMEOUT])
    def test_advisory_failure_is_partial(self, aggregator, state):
        aggregation = aggregator.aggregate(
            STEPS, _results(build=StepState.PASSED, test=StepState.PASSED, lint=state),
        )

        assert aggregation.verdict is Verdict.PARTIALLY_VALIDATED
        assert aggregation.rule == "advisory-failed-or-claim-contradicted"
        assert aggregation.confidence == 1.0

    def test_contradicted_claim_is_partial(self, aggregator):
        aggregation = aggregator.aggregate(
            STEPS,
            _results(build=StepState.PASSED, test=StepState.PASSED, lint=StepState.PASSED),
            [_finding(FindingStatus.CONTRADICTED), _finding(FindingStatus.SUPPORTED, "build")],
        )

        assert aggregation.verdict is Verdict.PARTIALLY_VALIDATED
        assert aggregation.confidence == 0.5
        assert any("contradicted" in reason for reason in aggregation.reasons)

    def test_critical_failure_outranks_contradiction(self, aggregator):
        aggregation = aggregator.aggregate(
            STEPS,
            _results(build=StepState.FAILED, test=StepState.BLOCKED, lint=StepState.BLOCKED),
            [_finding(FindingStatus.CONTRADICTED)],
        )

        assert aggregation.verdict is Verdict.INCOMPLETE

    def test_supported_claims_cannot_rescue_failure(self, aggregator):
        aggregation = aggregator.aggregate(
            STEPS,
            _results(build=StepState.PASSED, test=StepState.FAILED, lint=StepState.PASSED),
            [_finding(FindingStatus.SUPPORTED, "build")],
        )

        assert aggregation.verdict is Verdict.INCOMPLETE

    def test_unverifiable_claim_does_not_downgrade(self, aggregator):
        aggregation = aggregator.aggregate(
            STEPS,
            _results(build=StepState.PASSED, test=StepState.PASSED, lint=StepState.PASSED),
            [_finding(FindingStatus.UNVERIFIABLE, "feature:dark-mode")],
        )

        assert aggregation.verdict is Verdict.FULLY_VALIDATED


class TestMissingEvidence:
    """Test verdicts when steps did not produce evidence."""

    def test_skipped_advisory_is_partial(self, aggregator):
        aggregation = aggregator.aggregate(
            STEPS, _results(build=StepState.PASSED, test=StepState.PASSED, lint=StepState.SKIPPED),
        )

        assert aggregation.verdict is Verdict.PARTIALLY_VALIDATED
        assert aggregation.rule == "advisory-evidence-missing"

    def test_blocked_advisory_is_partial(self, aggregator):
        aggregation = aggregator.aggregate(
            STEPS, _results(build=StepState.PASSED, test=StepState.PASSED, lint=StepState.BLOCKED),
        )

        assert aggregation.verdict is Verdict.PARTIALLY_VALIDATED

    def test_skipped_critical_is_incomplete(self, aggregator):
        aggregation = aggregator.aggregate(
            STEPS, _results(build=StepState.PASSED, test=StepState.SKIPPED, lint=StepState.PASSED),
        )

        assert aggregation.verdict is Verdict.INCOMPLETE
        assert aggregation.rule == "no-critical-evidence"

    def test_critical_without_result_is_incomplete(self, aggregator):
        aggregation = aggregator.aggregate(STEPS, _results(build=StepState.PASSED))

        assert aggregation.verdict is Verdict.INCOMPLETE

    def test_no_critical_steps_is_incomplete(self, aggregator):
        steps = [make_step("lint", severity=Severity.ADVISORY)]

        aggregation = aggregator.aggregate(steps, _results(lint=StepState.PASSED))

        assert aggregation.verdict is Verdict.INCOMPLETE
        assert aggregation.confidence == 0.0

    def test_empty_registry_is_incomplete(self, aggregator):
        assert aggregator.aggregate([], []).verdict is Verdict.INCOMPLETE

    def test_skipped_critical_outranks_contradiction(self, aggregator):
        aggregation = aggregator.aggregate(
            STEPS,
            _results(build=StepState.SKIPPED, test=StepState.SKIPPED, lint=StepState.SKIPPED),
            [_finding(FindingStatus.CONTRADICTED)],
        )

        assert aggregation.verdict is Verdict.INCOMPLETE
        assert aggregation.rule == "no-critical-evidence"
        assert not any("contradicted" in reason for reason in aggregation.reasons)

    def test_skipped_critical_outranks_advisory_failure(self, aggregator):
        steps = [make_step("build"), make_step("lint", severity=Severity.ADVISORY)]

        aggregation = aggregator.aggregate(steps, _results(build=StepState.SKIPPED, lint=StepState.FAILED))

        assert aggregation.verdict is Verdict.INCOMPLETE
        assert aggregation.reasons == ("critical step 'build' produced no evidence (SKIPPED)",)

    def test_missing_critical_result_outranks_advisory_failure(self, aggregator):
        aggregation = aggregator.aggregate(STEPS, _results(build=StepState.PASSED, lint=StepState.TIMEOUT))

        assert aggregation.verdict is Verdict.INCOMPLETE
        assert aggregation.reasons == ("critical step 'test' produced no evidence (no result)",)

    def test_no_critical_steps_with_advisory_failure_is_incomplete(self, aggregator):
        steps = [make_step("lint", severity=Severity.ADVISORY)]

        aggregation = aggregator.aggregate(steps, _results(lint=StepState.FAILED))

        assert aggregation.verdict is Verdict.INCOMPLETE


class TestConfidence:
    """Test the informational confidence score."""

    def test_share_of_critical_passed(self):
        steps = [make_step("a"), make_step("b"), make_step("c")]

        score = StatusAggregator.confidence(steps, _results(a=StepState.PASSED, b=StepState.FAILED), [])

        assert score == 0.3333

    def test_weighted_by_claims(self):
        steps = [make_step("a")]
        findings = [
            _finding(FindingStatus.CONTRADICTED),
            _finding(FindingStatus.SUPPORTED),
            _finding(FindingStatus.UNVERIFIABLE),
            _finding(FindingStatus.SUPPORTED),
        ]

        assert StatusAggregator.confidence(steps, _results(a=StepState.PASSED), findings) == 0.75

    def test_last_attempt_counts(self):
        steps = [make_step("a", max_attempts=2)]
        results = [
            StepResult(step_id="a", state=StepState.FAILED, attempt=1),
            StepResult(step_id="a", state=StepState.PASSED, attempt=2),
        ]

        assert StatusAggregator.confidence(steps, results, []) == 1.0
