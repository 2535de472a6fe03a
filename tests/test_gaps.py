"""Tests for gap synthesis: stable IDs, deduplication and ordering."""

from __future__ import annotations

import re

from casegate.models import (
    AggregateResult,
    FailureKind,
    FailureSignal,
    GapType,
    GateReport,
    Severity,
)
from casegate.verify.gaps import GapSynthesizer, compute_gap_id, signals_from_result


def report(gate: str, passed: bool = True, reason: str | None = None, **kwargs) -> GateReport:
    if not passed:
        kwargs.setdefault("failure_kind", FailureKind.content)
    return GateReport(gate=gate, passed=passed, reason=reason, **kwargs)


def aggregate(*reports: GateReport) -> AggregateResult:
    return AggregateResult(
        case_dir="cases/acme",
        gates={r.gate: r for r in reports},
        overall_passed=all(r.passed for r in reports),
    )


def missing(source: str, source_id: str, message: str = "no evidence") -> FailureSignal:
    return FailureSignal(
        type=GapType.missing_evidence,
        source=source,
        subject={"source_id": source_id},
        message=message,
    )


class TestGapId:
    def test_format(self):
        gap_id = compute_gap_id(GapType.gate_failed, {"gate": "claims"})
        assert re.fullmatch(r"G[0-9A-F]{10}", gap_id)

    def test_deterministic(self):
        assert compute_gap_id(GapType.gate_failed, {"gate": "claims"}) == compute_gap_id(
            GapType.gate_failed, {"gate": "claims"}
        )

    def test_subject_key_order_irrelevant(self):
        a = compute_gap_id(GapType.claim_unsupported, {"source_id": "S001", "file": "summary.md"})
        b = compute_gap_id(GapType.claim_unsupported, {"file": "summary.md", "source_id": "S001"})
        assert a == b

    def test_subject_values_stripped(self):
        assert compute_gap_id(GapType.missing_evidence, {"source_id": " S001 "}) == compute_gap_id(
            GapType.missing_evidence, {"source_id": "S001"}
        )

    def test_type_and_subject_both_matter(self):
        ids = {
            compute_gap_id(GapType.gate_failed, {"gate": "claims"}),
            compute_gap_id(GapType.gate_failed, {"gate": "legal"}),
            compute_gap_id(GapType.missing_evidence, {"gate": "claims"}),
        }
        assert len(ids) == 3


class TestSignalsFromResult:
    def test_one_gate_failed_per_failing_report(self):
        result = aggregate(
            report("coverage"),
            report("claims", passed=False, reason="Missing credential: OPENAI_API_KEY not set",
                   failure_kind=FailureKind.infrastructure),
            report("legal", passed=False, reason="No legal review file found"),
        )
        signals = signals_from_result(result)
        assert [(s.type, s.subject) for s in signals] == [
            (GapType.gate_failed, {"gate": "claims"}),
            (GapType.gate_failed, {"gate": "legal"}),
        ]
        assert "Restore the missing credential" in signals[0].suggested_actions[0]

    def test_passing_reports_contribute_nothing(self):
        signal = missing("sources", "S001")
        result = aggregate(report("sources", signals=[signal]), report("legal", passed=False, reason="x"))
        assert all(s.source != "sources" for s in signals_from_result(result))

    def test_fine_grained_signals_follow_gate_failed(self):
        result = aggregate(
            report("sources", passed=False, reason="1 citations missing evidence",
                   signals=[missing("sources", "S002")]),
        )
        types = [s.type for s in signals_from_result(result)]
        assert types == [GapType.gate_failed, GapType.missing_evidence]


class TestSynthesize:
    def test_reworded_reason_keeps_id(self):
        first = aggregate(report("claims", passed=False, reason="OPENAI_API_KEY not set"))
        second = aggregate(report("claims", passed=False, reason="Missing credential: no API key"))
        synth = GapSynthesizer()
        assert synth.from_result(first).gap_ids == synth.from_result(second).gap_ids

    def test_duplicate_signals_collapse(self):
        gaps = GapSynthesizer().synthesize([
            missing("sources", "S002", "Citation S002 has no captured evidence (missing)"),
            missing("coverage", "S002", "Sources captured below threshold"),
            missing("sources", "S003"),
        ])
        assert len(gaps.blocking) == 2
        merged = next(g for g in gaps.blocking if g.subject == {"source_id": "S002"})
        assert merged.reported_by == ["coverage", "sources"]
        assert merged.source == "coverage"
        assert merged.description == "Sources captured below threshold"

    def test_blocking_is_or_of_merged_signals(self):
        advisory = FailureSignal(
            type=GapType.contradiction_unexplored, source="contradictions", subject={"check": "x"},
        )
        forced = advisory.model_copy(update={"source": "rigor", "blocking": True})
        gaps = GapSynthesizer().synthesize([advisory, forced])
        assert len(gaps.blocking) == 1
        assert gaps.advisory == []

    def test_blocking_defaults_from_severity(self):
        gaps = GapSynthesizer().synthesize([
            missing("sources", "S001"),
            FailureSignal(type=GapType.task_incomplete, source="tasks", subject={"task_id": "T002"}),
            FailureSignal(type=GapType.rigor_incomplete, source="rigor", subject={"check": "file"}),
        ])
        assert [g.type for g in gaps.blocking] == [GapType.missing_evidence]
        assert {g.severity for g in gaps.advisory} == {Severity.high, Severity.medium}

    def test_explicit_override_makes_blocker_type_advisory(self):
        signal = missing("sources", "S001").model_copy(update={"blocking": False})
        gaps = GapSynthesizer().synthesize([signal])
        assert gaps.blocking == []
        assert gaps.advisory[0].severity is Severity.blocker

    def test_gate_failed_is_blocker(self):
        gaps = GapSynthesizer().from_result(aggregate(report("rigor", passed=False, reason="x")))
        assert gaps.blocking[0].severity is Severity.blocker
        assert gaps.blocking[0].subject == {"gate": "rigor"}

    def test_sorted_by_gap_id(self):
        gaps = GapSynthesizer().synthesize([missing("sources", f"S{i:03d}") for i in range(20)])
        ids = [g.gap_id for g in gaps.blocking]
        assert ids == sorted(ids)

    def test_default_actions_filled(self):
        gaps = GapSynthesizer().synthesize([missing("sources", "S001")])
        assert gaps.blocking[0].suggested_actions == [
            "Capture the cited source into evidence/web/<source_id>/"
        ]

    def test_passing_result_yields_no_gaps(self):
        gaps = GapSynthesizer().from_result(aggregate(report("a"), report("b")))
        assert gaps.blocking == []
        assert gaps.advisory == []

    def test_idempotent(self):
        result = aggregate(
            report("tasks", passed=False, reason="1 HIGH priority tasks not completed",
                   signals=[FailureSignal(type=GapType.task_incomplete, source="tasks",
                                          subject={"task_id": "T002"})]),
            report("legal", passed=False, reason="No legal review file found"),
        )
        synth = GapSynthesizer()
        assert synth.from_result(result) == synth.from_result(result)

    def test_stats(self):
        gaps = GapSynthesizer().synthesize([
            missing("sources", "S001"),
            FailureSignal(type=GapType.task_incomplete, source="tasks", subject={"task_id": "T002"}),
            FailureSignal(type=GapType.rigor_incomplete, source="rigor", subject={"check": "file"}),
        ])
        stats = gaps.stats
        assert stats.total_gaps == 3
        assert stats.blocking_count == 1
        assert stats.high_count == 1
        assert stats.medium_count == 1
        assert stats.low_count == 0
