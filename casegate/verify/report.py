"""Compose run results into the caller-facing VerificationReport."""

from __future__ import annotations

from typing import Optional

from casegate.models import AggregateResult, GapList, RemediationTask, VerificationReport
from casegate.verify.errors import ReportShapeError
from casegate.verify.registry import GateRegistry


class ReportAggregator:
    """Shapes an AggregateResult (+ GapList when failing) into one report."""

    def __init__(self, registry: GateRegistry):
        self.registry = registry

    def compose(self, result: AggregateResult, gaps: Optional[GapList] = None) -> VerificationReport:
        names = list(result.gates)
        if names != list(self.registry.names):
            missing = [n for n in self.registry.names if n not in result.gates]
            extra = [n for n in names if n not in self.registry]
            raise ReportShapeError(
                f"Gate results do not match the registry (missing={missing}, unexpected={extra})"
            )
        if result.overall_passed:
            gaps = None
        elif gaps is None:
            raise ReportShapeError("A failing result must be composed with its gap list")

        return VerificationReport(
            case_dir=result.case_dir,
            overall_passed=result.overall_passed,
            gates=result.gates,
            summary=result.summary,
            blocking_gates=result.failed_gates,
            blocking=gaps.blocking if gaps is not None else None,
            advisory=gaps.advisory if gaps is not None else None,
        )


def build_remediation_tasks(gaps: GapList) -> list[RemediationTask]:
    """One pending HIGH-priority task per blocking gap, keyed by gap ID."""
    return [
        RemediationTask(
            id=f"TGAP-{gap.gap_id}",
            description=f"Fix {gap.type.value}: {gap.description}",
            gap_id=gap.gap_id,
            gate=gap.subject.get("gate") or gap.source,
        )
        for gap in gaps.blocking
    ]
