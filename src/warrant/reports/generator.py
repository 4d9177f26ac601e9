"""Report generator for validation runs."""

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Tuple

from warrant.pipeline.domain.enums import FindingStatus, Severity, StepState
from warrant.pipeline.domain.models import CorrelationFinding, Step, StepResult, ValidationRun
from warrant.reports.domain.models import Issue, IssueKind
from warrant.shared.domain.exceptions import ReportWriteError
from warrant.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SECTION_ORDER = ("Status", "Confidence", "Issues Found", "Recommendations", "Evidence")

_IMPACT = {
    Severity.CRITICAL: "Blocks validation: the verdict cannot be better than INCOMPLETE.",
    Severity.ADVISORY: "Recorded as a warning: the verdict cannot be better than PARTIALLY_VALIDATED.",
}
_CLAIM_IMPACT = (
    "The narrative reports a success the evidence does not support: "
    "the verdict cannot be better than PARTIALLY_VALIDATED."
)


def _cell(value: Any) -> str:
    """Escape a value for a markdown table cell."""
    return str(value).replace("|", "\\|").replace("\n", " ")


class ReportGenerator:
    """
    Render a ValidationRun as markdown and JSON.

    Rendering reads only what the run stores, so the same sealed run always
    renders to the same bytes. Steps appear in declaration order, never in
    completion order.
    """

    def build_issues(self, run: ValidationRun) -> List[Issue]:
        """
        Issues sorted by severity, then step declaration order, with step
        issues ahead of claim issues on the same step.
        """
        order = {step_id: index for index, step_id in enumerate(run.step_ids)}
        results = {r.step_id: r for r in run.results}
        keyed: List[Tuple[Tuple[int, int, int, int], Dict[str, Any]]] = []

        for result in run.results:
            if result.passed:
                continue
            step = run.step(result.step_id)
            attempts = len([a for a in run.attempts_for(step.id) if a.attempt > 0])
            entry = self._step_issue(step, result, attempts, results)
            keyed.append(((step.severity.rank, order[step.id], 0, 0), entry))

        for position, finding in enumerate(run.findings):
            if finding.status is not FindingStatus.CONTRADICTED:
                continue
            offending = [
                step_id for step_id in finding.step_ids
                if step_id in results and not results[step_id].passed
            ] or list(finding.step_ids)
            anchor = min(offending, key=lambda step_id: order.get(step_id, len(order)))
            severity = run.step(anchor).severity
            entry = self._claim_issue(finding, severity, anchor)
            keyed.append(((severity.rank, order.get(anchor, len(order)), 1, position), entry))

        keyed.sort(key=lambda item: item[0])
        return [Issue(number=number, **entry) for number, (_, entry) in enumerate(keyed, start=1)]

    def _step_issue(self, step: Step, result: StepResult, attempts: int,
                    results: Dict[str, StepResult]) -> Dict[str, Any]:
        command = step.command_line
        state = result.state
        if state is StepState.FAILED and result.exit_code is None:
            detail = f"`{command}` could not be run: {result.reason}."
            recommendation = (
                f"Install the tool that provides `{step.command[0]}` (or fix its path) "
                f"so `{step.id}` can run."
            )
        elif state is StepState.FAILED:
            detail = (
                f"`{command}` exited with code {result.exit_code}"
                f" after {attempts} attempt{'s' if attempts != 1 else ''}."
            )
            recommendation = f"Fix the errors reported by `{command}` (full output in `{step.id}.log`)."
        elif state is StepState.TIMEOUT:
            detail = f"`{command}` {result.reason}."
            recommendation = (
                f"Find out why `{step.id}` does not finish; raise its timeout only if "
                f"the work is legitimately slow."
            )
        elif state is StepState.BLOCKED:
            detail = f"Not run: {result.reason}."
            unmet = [
                dep for dep in step.depends_on
                if dep in results and results[dep].state is not StepState.PASSED
            ] or list(step.depends_on)
            recommendation = (
                f"Resolve {', '.join(f'`{dep}`' for dep in unmet)} first; "
                f"`{step.id}` runs once its dependencies pass."
            )
        else:
            detail = f"Not run: {result.reason}."
            recommendation = f"Run `{step.id}` to collect its evidence."
        return {
            "kind": IssueKind.STEP,
            "severity": step.severity,
            "title": f"`{step.id}` {state.value}",
            "detail": detail,
            "impact": _IMPACT[step.severity],
            "recommendation": recommendation,
            "step_id": step.id,
        }

    @staticmethod
    def _claim_issue(finding: CorrelationFinding, severity: Severity, anchor: str) -> Dict[str, Any]:
        steps = ", ".join(f"`{step_id}`" for step_id in finding.step_ids)
        return {
            "kind": IssueKind.CLAIM,
            "severity": severity,
            "title": f"Claim contradicted: \"{finding.claim.text}\"",
            "detail": f"Scope `{finding.claim.scope}` is covered by {steps}: {finding.detail}.",
            "impact": _CLAIM_IMPACT,
            "recommendation": (
                f"Correct the claim \"{finding.claim.text}\" or fix {steps} so that it holds."
            ),
            "step_id": anchor,
        }

    def to_dict(self, run: ValidationRun) -> Dict[str, Any]:
        """Machine-readable report."""
        steps = []
        for step in run.steps:
            result = run.result_for(step.id)
            steps.append({
                "id": step.id,
                "severity": step.severity.value,
                "command": list(step.command),
                "dependsOn": list(step.depends_on),
                "state": result.state.value if result else None,
                "exitCode": result.exit_code if result else None,
                "durationMs": result.duration_ms if result else None,
                "attempt": result.attempt if result else None,
                "reason": result.reason if result else None,
                "attempts": [attempt.to_json() for attempt in run.attempts_for(step.id)],
            })
        return {
            "runId": run.run_id,
            "project": run.project,
            "narrativeSource": run.narrative_source,
            "strict": run.strict,
            "cancelled": run.cancelled,
            "startedAt": run.started_at.isoformat(),
            "finishedAt": run.finished_at.isoformat() if run.finished_at else None,
            "durationMs": run.duration_ms,
            "verdict": run.verdict.value if run.verdict else None,
            "confidence": run.confidence,
            "derivation": list(run.verdict_reasons),
            "steps": steps,
            "findings": [finding.to_json() for finding in run.findings],
            "issues": [issue.to_json() for issue in self.build_issues(run)],
        }

    def render_json(self, run: ValidationRun) -> str:
        return json.dumps(self.to_dict(run), indent=2, ensure_ascii=False) + "\n"

    def render_markdown(self, run: ValidationRun) -> str:
        """Human-readable report with the fixed section order."""
        issues = self.build_issues(run)
        results = run.results
        lines: List[str] = [
            "# Verification Report",
            "",
            f"- Run: `{run.run_id}`",
            f"- Project: `{run.project}`",
            f"- Narrative: `{run.narrative_source or 'none'}`",
            f"- Started: {run.started_at.isoformat()}",
            f"- Finished: {run.finished_at.isoformat() if run.finished_at else 'n/a'}",
            f"- Mode: {'strict (advisory steps promoted to critical)' if run.strict else 'standard'}",
            "",
        ]

        # Status
        lines += ["## Status", "", f"**Verdict:** {run.verdict.value if run.verdict else 'UNDETERMINED'}", ""]
        if run.cancelled:
            lines += ["_The run was cancelled before every step finished._", ""]
        counts = {state: sum(1 for r in results if r.state is state) for state in StepState}
        summary = ", ".join(f"{count} {state.value}" for state, count in counts.items() if count)
        lines += [f"Steps: {len(run.steps)} declared ({summary or 'none run'}).", "", "Derivation:", ""]
        lines += [f"- {reason}" for reason in run.verdict_reasons] or ["- no rule applied"]
        lines.append("")

        # Confidence
        critical = [s for s in run.steps if s.severity is Severity.CRITICAL]
        passed_critical = sum(1 for s in critical if (r := run.result_for(s.id)) is not None and r.passed)
        contradicted = sum(1 for f in run.findings if f.status is FindingStatus.CONTRADICTED)
        lines += [
            "## Confidence",
            "",
            f"**{run.confidence:.2f}** ({passed_critical}/{len(critical)} critical steps passed; "
            f"{contradicted}/{len(run.findings)} claims contradicted). "
            "Informational only; it never raises the verdict.",
            "",
        ]

        # Issues Found
        lines += ["## Issues Found", ""]
        if not issues:
            lines += ["No issues found.", ""]
        for issue in issues:
            lines += [
                f"{issue.number}. **[{issue.severity.value}] {issue.title}**",
                f"   - Severity: {issue.severity.value}",
                f"   - Detail: {issue.detail}",
                f"   - Impact: {issue.impact}",
                f"   - Recommendation: {issue.recommendation}",
            ]
        if issues:
            lines.append("")

        # Recommendations
        lines += ["## Recommendations", ""]
        if not issues:
            lines += ["None.", ""]
        else:
            lines += [f"{issue.number}. {issue.recommendation}" for issue in issues]
            lines.append("")

        # Evidence
        lines += [
            "## Evidence",
            "",
            "### Steps",
            "",
            "| # | Step | Severity | State | Exit code | Attempts | Duration (ms) | Depends on |",
            "|---|------|----------|-------|-----------|----------|---------------|------------|",
        ]
        for index, step in enumerate(run.steps, start=1):
            result = run.result_for(step.id)
            attempts = len([a for a in run.attempts_for(step.id) if a.attempt > 0])
            lines.append(
                f"| {index} | `{step.id}` | {step.severity.value} "
                f"| {result.state.value if result else 'n/a'} "
                f"| {_cell(result.exit_code) if result and result.exit_code is not None else '-'} "
                f"| {attempts} | {result.duration_ms if result else 0} "
                f"| {_cell(', '.join(step.depends_on)) or '-'} |"
            )
        lines.append("")

        lines += ["### Claims", ""]
        if not run.findings:
            lines += ["No claims were extracted from the narrative.", ""]
        else:
            lines += [
                "| # | Claim | Scope | Confidence | Finding | Steps |",
                "|---|-------|-------|------------|---------|-------|",
            ]
            for index, finding in enumerate(run.findings, start=1):
                lines.append(
                    f"| {index} | {_cell(finding.claim.text)} | `{_cell(finding.claim.scope)}` "
                    f"| {finding.claim.confidence:.2f} | {finding.status.value} "
                    f"| {_cell(', '.join(finding.step_ids)) or '-'} |"
                )
            lines.append("")

        failing = [r for r in results if r.state.is_failure]
        if failing:
            lines += ["### Output of failed steps", ""]
            for result in failing:
                lines += [f"#### `{result.step_id}` (attempt {result.attempt})", ""]
                if result.truncated:
                    lines += ["_Output truncated; the step log holds the full text._", ""]
                for label, text in (("stderr", result.stderr), ("stdout", result.stdout)):
                    if text.strip():
                        lines += [f"{label}:", "", "````text", text.rstrip("\n"), "````", ""]

        return "\n".join(lines).rstrip("\n") + "\n"

    @staticmethod
    def json_path_for(report_path: Path) -> Path:
        """JSON sibling of a report; never the report file itself."""
        report_path = Path(report_path)
        if report_path.suffix.lower() == ".json":
            return report_path.with_name(f"{report_path.stem}.report.json")
        return report_path.with_suffix(".json")

    @staticmethod
    def _stage(path: Path, text: str) -> str:
        """Write text to a temp file beside `path` and return its name."""
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise
        return tmp_path

    def write(self, run: ValidationRun, report_path: Path) -> Tuple[Path, Path]:
        """
        Seal the run, then write the markdown report and its JSON sibling.

        Both files are staged before either is moved into place, so a failed
        write leaves neither artifact behind.

        Raises:
            ReportWriteError: a file could not be written
        """
        if run.verdict is None:
            raise ValueError("cannot report a run without a verdict")
        run.seal()

        report_path = Path(report_path)
        json_path = self.json_path_for(report_path)
        markdown = self.render_markdown(run)
        payload = self.render_json(run)
        staged: List[str] = []
        placed = False
        try:
            report_path.parent.mkdir(parents=True, exist_ok=True)
            staged.append(self._stage(report_path, markdown))
            staged.append(self._stage(json_path, payload))
            os.replace(staged[0], report_path)
            placed = True
            os.replace(staged[1], json_path)
        except OSError as e:
            leftovers = staged + ([str(report_path)] if placed else [])
            for leftover in leftovers:
                with contextlib.suppress(OSError):
                    os.unlink(leftover)
            logger.error("report_write_failed", path=str(report_path), error=str(e))
            raise ReportWriteError(f"Cannot write report to {report_path}: {e}", {"path": str(report_path)}) from e

        logger.info("report_written", path=str(report_path), json_path=str(json_path))
        return report_path, json_path
