"""End-to-end runs of the default registry against a fixture case."""

from __future__ import annotations

import pytest

from conftest import write

from casegate.models import FailureKind, GapList, GapType
from casegate.verify import service
from casegate.verify.errors import CaseNotFoundError, ReportShapeError
from casegate.verify.registry import default_registry
from casegate.verify.report import ReportAggregator, build_remediation_tasks


class TestMissingCredentialScenario:
    def test_only_claims_fails(self, case_dir, ctx):
        result = service.run(case_dir, ctx=ctx)
        assert result.overall_passed is False
        assert list(result.gates) == list(default_registry().names)
        claims = result.gates["claims"]
        assert claims.passed is False
        assert claims.failure_kind is FailureKind.infrastructure
        assert "OPENAI_API_KEY" in claims.reason
        others = {name: r.passed for name, r in result.gates.items() if name != "claims"}
        assert all(others.values()), {n: result.gates[n].reason for n, ok in others.items() if not ok}

    def test_gap_ids_stable_across_runs(self, case_dir, ctx):
        first = service.generate_gaps(case_dir, ctx=ctx)
        second = service.generate_gaps(case_dir, ctx=ctx)
        assert len(first.blocking) == 1
        gap = first.blocking[0]
        assert gap.type is GapType.gate_failed
        assert gap.subject == {"gate": "claims"}
        assert first.gap_ids == second.gap_ids

    def test_credential_fix_clears_backlog(self, case_dir, ctx_with_key, verified_llm):
        result = service.run(case_dir, ctx=ctx_with_key)
        assert result.overall_passed is True
        assert service.generate_gaps(case_dir, ctx=ctx_with_key).blocking == []


class TestVerifyCase:
    def test_failing_report_carries_gaps(self, case_dir, ctx):
        report = service.verify_case(case_dir, ctx=ctx)
        assert report.overall_passed is False
        assert report.blocking_gates == ["claims"]
        assert report.summary.passed == 8
        assert report.summary.total == 9
        assert [g.subject for g in report.blocking] == [{"gate": "claims"}]

    def test_passing_report_has_no_gaps(self, case_dir, ctx_with_key, verified_llm):
        report = service.verify_case(case_dir, ctx=ctx_with_key)
        assert report.overall_passed is True
        assert report.blocking is None
        assert report.advisory is None

    def test_cross_gate_duplicate_collapses(self, case_dir, ctx):
        write(case_dir, "findings/T001-findings.md", "Margins fell sharply in 2024. [S002]\n")
        report = service.verify_case(case_dir, ctx=ctx)
        missing = [g for g in report.blocking if g.type is GapType.missing_evidence]
        assert len(missing) == 1
        assert missing[0].subject == {"source_id": "S002"}
        assert missing[0].reported_by == ["content", "coverage", "sources"]
        assert missing[0].source == "content"

    def test_under_corroborated_claim_is_one_blocking_gap(self, case_dir, ctx):
        write(case_dir, "claims/C0001.json", {
            "id": "C0001",
            "supporting_sources": ["S001"],
            "corroboration": {"min_sources": 2, "requires_primary": True},
        })
        report = service.verify_case(case_dir, ctx=ctx)
        assert "coverage" in report.blocking_gates
        gaps = [g for g in report.blocking if g.type is GapType.insufficient_corroboration]
        assert len(gaps) == 1
        assert gaps[0].subject == {"claim_id": "C0001"}
        assert gaps[0].reported_by == ["coverage"]

    def test_gate_exception_isolated(self, case_dir, ctx):
        write(case_dir, "extraction.json", "{broken")
        result = service.run(case_dir, ctx=ctx)
        assert result.gates["contradictions"].failure_kind is FailureKind.error
        assert result.gates["contradictions"].reason.startswith("Gate execution error: JSONDecodeError")
        assert result.gates["tasks"].passed is True
        assert result.gates["legal"].passed is True

    def test_remediation_tasks_keyed_by_gap(self, case_dir, ctx):
        report = service.verify_case(case_dir, ctx=ctx)
        tasks = build_remediation_tasks(GapList(blocking=report.blocking, advisory=report.advisory))
        assert [t.id for t in tasks] == [f"TGAP-{g.gap_id}" for g in report.blocking]
        assert tasks[0].gate == "claims"
        assert tasks[0].priority == "HIGH"
        assert tasks[0].status == "pending"

    def test_missing_case_dir(self, tmp_path, ctx):
        with pytest.raises(CaseNotFoundError):
            service.run(tmp_path / "nope", ctx=ctx)

    def test_evaluation_does_not_write(self, case_dir, ctx):
        before = sorted(p.relative_to(case_dir) for p in case_dir.rglob("*"))
        service.verify_case(case_dir, ctx=ctx)
        after = sorted(p.relative_to(case_dir) for p in case_dir.rglob("*"))
        assert before == after


class TestReportAggregator:
    def test_shape_mismatch_raises(self, case_dir, ctx):
        from casegate.gates.base import Gate
        from casegate.models import GateVerdict
        from casegate.verify.registry import GateRegistry

        class Only(Gate):
            name = "only"

            def evaluate(self, case_dir, ctx):
                return GateVerdict.ok()

        result = service.run(case_dir, ctx=ctx, registry=GateRegistry([Only()]))
        with pytest.raises(ReportShapeError):
            ReportAggregator(default_registry()).compose(result)

    def test_failing_result_requires_gaps(self, case_dir, ctx):
        result = service.run(case_dir, ctx=ctx)
        with pytest.raises(ReportShapeError):
            ReportAggregator(default_registry()).compose(result)
