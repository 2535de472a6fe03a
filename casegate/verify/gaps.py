"""Gap synthesis: failure signals -> deduplicated, stably identified gaps.

A gap's identity is a content hash of its type and locating subject. The
human-readable message and the emitting gate are not part of it, so
rewording a reason, or a second gate reporting the same missing source,
never produces a new ID.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import defaultdict
from typing import Iterable, Mapping

from casegate.models import (
    GAP_SEVERITY,
    AggregateResult,
    FailureKind,
    FailureSignal,
    Gap,
    GapList,
    GapType,
    GateReport,
    Severity,
)

logger = logging.getLogger(__name__)

GAP_ID_PREFIX = "G"
GAP_ID_LENGTH = 10

DEFAULT_ACTIONS: dict[GapType, list[str]] = {
    GapType.gate_failed: ["Address the gate failure and re-run verification"],
    GapType.missing_evidence: ["Capture the cited source into evidence/web/<source_id>/"],
    GapType.uncited_assertion: ["Add [S###] citations backed by captured sources"],
    GapType.claim_unsupported: ["Correct the claim or cite a source that supports it"],
    GapType.task_incomplete: ["Complete the task and write its findings file"],
    GapType.adversarial_incomplete: ["Complete the adversarial pass and record its findings"],
    GapType.contradiction_unexplored: ["Write a findings file exploring each contradiction"],
    GapType.rigor_incomplete: ["Complete the rigor checkpoint and create the tasks it references"],
    GapType.legal_risk: ["Resolve the legal review's open issues"],
    GapType.state_inconsistent: ["Reconcile task status with the files on disk"],
    GapType.insufficient_corroboration: [
        "Find and capture an independent corroborating source, then update the claim record"
    ],
}

_FAILURE_KIND_ACTIONS: dict[FailureKind, str] = {
    FailureKind.infrastructure: "Restore the missing credential or service, then re-run verification",
    FailureKind.error: "Fix the gate execution error, then re-run verification",
    FailureKind.timeout: "Investigate the gate timeout, then re-run verification",
}


def canonical_subject(subject: Mapping[str, object]) -> dict[str, str]:
    return {str(k): str(v).strip() for k, v in sorted(subject.items())}


def compute_gap_id(gap_type: GapType, subject: Mapping[str, object]) -> str:
    """Content-addressed gap ID: ``G`` + 10 uppercase hex digits."""
    payload = json.dumps(
        {"type": GapType(gap_type).value, "subject": canonical_subject(subject)},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    digest = hashlib.sha1(payload.encode("utf-8")).hexdigest()
    return GAP_ID_PREFIX + digest[:GAP_ID_LENGTH].upper()


def gate_failed_signal(report: GateReport) -> FailureSignal:
    actions = []
    if report.failure_kind in _FAILURE_KIND_ACTIONS:
        actions.append(_FAILURE_KIND_ACTIONS[report.failure_kind])
    return FailureSignal(
        type=GapType.gate_failed,
        source=report.gate,
        subject={"gate": report.gate},
        message=f"Gate '{report.gate}' failed: {report.reason}",
        blocking=True,
        suggested_actions=actions,
    )


def signals_from_result(result: AggregateResult) -> list[FailureSignal]:
    """One GATE_FAILED signal per failing report, plus the report's own signals."""
    signals: list[FailureSignal] = []
    for report in result.gates.values():
        if report.passed:
            continue
        signals.append(gate_failed_signal(report))
        signals.extend(report.signals)
    return signals


def _resolved_blocking(signal: FailureSignal) -> bool:
    if signal.blocking is not None:
        return signal.blocking
    return GAP_SEVERITY[signal.type] is Severity.blocker


class GapSynthesizer:
    """Builds a GapList. Stateless: the same input always yields the same output."""

    def from_result(self, result: AggregateResult) -> GapList:
        if result.overall_passed:
            return GapList()
        return self.synthesize(signals_from_result(result))

    def synthesize(self, signals: Iterable[FailureSignal]) -> GapList:
        grouped: dict[str, list[FailureSignal]] = defaultdict(list)
        for signal in signals:
            grouped[compute_gap_id(signal.type, signal.subject)].append(signal)

        blocking: list[Gap] = []
        advisory: list[Gap] = []
        for gap_id in sorted(grouped):
            gap = self._merge(gap_id, grouped[gap_id])
            (blocking if gap.blocking else advisory).append(gap)

        logger.debug("Synthesized %d blocking and %d advisory gaps", len(blocking), len(advisory))
        return GapList(blocking=blocking, advisory=advisory)

    def _merge(self, gap_id: str, signals: list[FailureSignal]) -> Gap:
        ordered = sorted(signals, key=lambda s: (s.source, s.message))
        first = ordered[0]
        gap_type = first.type
        actions = {a for s in ordered for a in s.suggested_actions}
        if not actions:
            actions = set(DEFAULT_ACTIONS.get(gap_type, []))
        reported_by = sorted({s.source for s in ordered})
        return Gap(
            gap_id=gap_id,
            type=gap_type,
            severity=GAP_SEVERITY[gap_type],
            source=reported_by[0],
            reported_by=reported_by,
            subject=canonical_subject(first.subject),
            description=first.message or f"{gap_type.value} reported by {first.source}",
            blocking=any(_resolved_blocking(s) for s in ordered),
            suggested_actions=sorted(actions),
        )
