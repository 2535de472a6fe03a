"""Pydantic models for gate verdicts, aggregate results and the gap backlog.

These models define the canonical JSON shape of a verification run. A gate
returns a ``GateVerdict``; the runner wraps it into a ``GateReport``; the
reports fold into an ``AggregateResult``; failing reports become ``Gap``
records collected in a ``GapList``; and ``VerificationReport`` is the single
object handed back to a CLI, API or pipeline caller.

Everything produced by a run is frozen. Nothing here is persisted by the core.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Gate verdicts
# ---------------------------------------------------------------------------

class VerdictKind(str, Enum):
    """What a gate is saying about the case."""
    ok = "ok"
    content = "content"                # artifacts do not satisfy the check
    infrastructure = "infrastructure"  # credential / service unavailable


class FailureKind(str, Enum):
    """Why a GateReport did not pass."""
    content = "content"
    infrastructure = "infrastructure"
    error = "error"      # the gate raised
    timeout = "timeout"  # the gate exceeded its time budget


class GapType(str, Enum):
    """Closed set of remediation item types."""
    gate_failed = "GATE_FAILED"
    missing_evidence = "MISSING_EVIDENCE"
    uncited_assertion = "UNCITED_ASSERTION"
    claim_unsupported = "CLAIM_UNSUPPORTED"
    task_incomplete = "TASK_INCOMPLETE"
    adversarial_incomplete = "ADVERSARIAL_INCOMPLETE"
    contradiction_unexplored = "CONTRADICTION_UNEXPLORED"
    rigor_incomplete = "RIGOR_INCOMPLETE"
    legal_risk = "LEGAL_RISK"
    state_inconsistent = "STATE_INCONSISTENT"
    insufficient_corroboration = "INSUFFICIENT_CORROBORATION"


class Severity(str, Enum):
    blocker = "BLOCKER"
    high = "HIGH"
    medium = "MEDIUM"
    low = "LOW"


GAP_SEVERITY: dict[GapType, Severity] = {
    GapType.gate_failed: Severity.blocker,
    GapType.missing_evidence: Severity.blocker,
    GapType.uncited_assertion: Severity.blocker,
    GapType.claim_unsupported: Severity.high,
    GapType.task_incomplete: Severity.high,
    GapType.adversarial_incomplete: Severity.medium,
    GapType.contradiction_unexplored: Severity.medium,
    GapType.rigor_incomplete: Severity.medium,
    GapType.legal_risk: Severity.high,
    GapType.state_inconsistent: Severity.high,
    GapType.insufficient_corroboration: Severity.blocker,
}


class FailureSignal(BaseModel):
    """A typed failure raised by a gate or any other internal check.

    ``subject`` holds the locating attributes (gate name, source ID, task ID,
    ...) that, together with ``type``, define the underlying failure.
    """
    model_config = ConfigDict(frozen=True)

    type: GapType
    source: str = Field(..., description="Gate or check that emitted the signal")
    subject: dict[str, str] = Field(default_factory=dict)
    message: str = ""
    blocking: Optional[bool] = None
    suggested_actions: list[str] = Field(default_factory=list)


class GateVerdict(BaseModel):
    """The single result type every gate returns."""
    model_config = ConfigDict(frozen=True)

    passed: bool
    reason: Optional[str] = None
    kind: VerdictKind = VerdictKind.ok
    details: dict[str, Any] = Field(default_factory=dict)
    signals: list[FailureSignal] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_reason(self) -> "GateVerdict":
        if not self.passed and not (self.reason and self.reason.strip()):
            raise ValueError("a failing verdict requires a reason")
        if self.passed and self.kind is not VerdictKind.ok:
            raise ValueError("a passing verdict must have kind 'ok'")
        if not self.passed and self.kind is VerdictKind.ok:
            raise ValueError("a failing verdict needs kind 'content' or 'infrastructure'")
        return self

    @classmethod
    def ok(cls, details: dict[str, Any] | None = None, reason: str | None = None) -> "GateVerdict":
        return cls(passed=True, reason=reason, details=details or {})

    @classmethod
    def fail(
        cls,
        reason: str,
        details: dict[str, Any] | None = None,
        signals: list[FailureSignal] | None = None,
    ) -> "GateVerdict":
        return cls(
            passed=False,
            reason=reason,
            kind=VerdictKind.content,
            details=details or {},
            signals=signals or [],
        )

    @classmethod
    def unavailable(cls, reason: str, details: dict[str, Any] | None = None) -> "GateVerdict":
        """Infrastructure failure: the check could not be performed at all."""
        return cls(
            passed=False,
            reason=reason,
            kind=VerdictKind.infrastructure,
            details=details or {},
        )


# ---------------------------------------------------------------------------
# Run results
# ---------------------------------------------------------------------------

class GateReport(BaseModel):
    """Exactly one per registered gate per run."""
    model_config = ConfigDict(frozen=True)

    gate: str
    passed: bool
    reason: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    details: dict[str, Any] = Field(default_factory=dict)
    duration_ms: int = 0
    signals: list[FailureSignal] = Field(default_factory=list, exclude=True)


class RunSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    passed: int
    failed: int
    total: int


class AggregateResult(BaseModel):
    """Every gate's report for one case, plus the overall decision."""
    model_config = ConfigDict(frozen=True)

    case_dir: str
    gates: dict[str, GateReport]
    overall_passed: bool

    @model_validator(mode="after")
    def _check_overall(self) -> "AggregateResult":
        expected = all(report.passed for report in self.gates.values())
        if self.overall_passed != expected:
            raise ValueError("overall_passed must be the AND of every gate's verdict")
        return self

    @property
    def failed_gates(self) -> list[str]:
        return [name for name, report in self.gates.items() if not report.passed]

    @property
    def summary(self) -> RunSummary:
        failed = len(self.failed_gates)
        return RunSummary(passed=len(self.gates) - failed, failed=failed, total=len(self.gates))


# ---------------------------------------------------------------------------
# Gaps
# ---------------------------------------------------------------------------

class Gap(BaseModel):
    """One deduplicated, stably identified remediation item."""
    model_config = ConfigDict(frozen=True)

    gap_id: str
    type: GapType
    severity: Severity
    source: str
    reported_by: list[str] = Field(default_factory=list)
    subject: dict[str, str] = Field(default_factory=dict)
    description: str = ""
    blocking: bool = True
    suggested_actions: list[str] = Field(default_factory=list)


class GapStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_gaps: int = 0
    blocking_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0


class GapList(BaseModel):
    model_config = ConfigDict(frozen=True)

    blocking: list[Gap] = Field(default_factory=list)
    advisory: list[Gap] = Field(default_factory=list)

    @property
    def gap_ids(self) -> set[str]:
        return {g.gap_id for g in self.blocking} | {g.gap_id for g in self.advisory}

    @property
    def stats(self) -> GapStats:
        return GapStats(
            total_gaps=len(self.blocking) + len(self.advisory),
            blocking_count=len(self.blocking),
            high_count=sum(1 for g in self.advisory if g.severity is Severity.high),
            medium_count=sum(1 for g in self.advisory if g.severity is Severity.medium),
            low_count=sum(1 for g in self.advisory if g.severity is Severity.low),
        )


# ---------------------------------------------------------------------------
# Caller-facing report
# ---------------------------------------------------------------------------

class VerificationReport(BaseModel):
    """The single structured object returned to CLI / API / pipeline callers."""
    model_config = ConfigDict(frozen=True)

    case_dir: str
    overall_passed: bool
    gates: dict[str, GateReport]
    summary: RunSummary
    blocking_gates: list[str] = Field(default_factory=list)
    blocking: Optional[list[Gap]] = None
    advisory: Optional[list[Gap]] = None


class RemediationTask(BaseModel):
    """A pending task derived from a blocking gap (``--fix``)."""
    id: str
    description: str
    gap_id: str
    gate: Optional[str] = None
    priority: str = "HIGH"
    status: str = "pending"
