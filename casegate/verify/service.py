"""Entry points used by the CLI, the HTTP API and pipeline callers."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from casegate.gates.base import GateContext
from casegate.models import AggregateResult, GapList, VerificationReport
from casegate.verify.errors import CaseNotFoundError
from casegate.verify.gaps import GapSynthesizer
from casegate.verify.registry import GateRegistry, default_registry
from casegate.verify.report import ReportAggregator
from casegate.verify.runner import GateRunner

logger = logging.getLogger(__name__)


def _case_path(case_dir: Path | str) -> Path:
    path = Path(case_dir)
    if not path.is_dir():
        raise CaseNotFoundError(str(case_dir))
    return path


def run(
    case_dir: Path | str,
    ctx: GateContext | None = None,
    registry: GateRegistry | None = None,
    cancel_event: threading.Event | None = None,
) -> AggregateResult:
    """Run every registered gate against the case."""
    path = _case_path(case_dir)
    return GateRunner(registry=registry, ctx=ctx).run(path, cancel_event=cancel_event)


def generate_gaps(
    case_dir: Path | str,
    ctx: GateContext | None = None,
    registry: GateRegistry | None = None,
) -> GapList:
    """Run the gates and return the current gap backlog (empty when all pass)."""
    return GapSynthesizer().from_result(run(case_dir, ctx=ctx, registry=registry))


def verify_case(
    case_dir: Path | str,
    ctx: GateContext | None = None,
    registry: GateRegistry | None = None,
    cancel_event: threading.Event | None = None,
) -> VerificationReport:
    """Run the gates once and compose the full report, gaps included when failing."""
    if registry is None:
        registry = default_registry()
    result = run(case_dir, ctx=ctx, registry=registry, cancel_event=cancel_event)
    gaps = None if result.overall_passed else GapSynthesizer().from_result(result)
    report = ReportAggregator(registry).compose(result, gaps)
    if not report.overall_passed:
        logger.warning(
            "Case %s CANNOT TERMINATE: blocking gates %s",
            report.case_dir,
            ", ".join(report.blocking_gates),
        )
    return report
