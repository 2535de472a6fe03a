"""Tests for the casegate command line."""

from __future__ import annotations

import json

from click.testing import CliRunner

from conftest import write

from casegate.cli.main import cli
from casegate.config import settings


runner = CliRunner()


class TestVerifyCommand:
    def test_failing_case_exits_1(self, case_dir):
        result = runner.invoke(cli, ["verify", str(case_dir)])
        assert result.exit_code == 1
        assert "claims" in result.output
        assert "OVERALL: FAIL" in result.output

    def test_passing_case_exits_0(self, case_dir, verified_llm, monkeypatch):
        monkeypatch.setattr(settings, "openai_api_key", "sk-test")
        result = runner.invoke(cli, ["verify", str(case_dir)])
        assert result.exit_code == 0, result.output
        assert "OVERALL: PASS" in result.output

    def test_json_output(self, case_dir):
        result = runner.invoke(cli, ["verify", str(case_dir), "--json"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["overall_passed"] is False
        assert list(data["gates"]) == [
            "coverage", "tasks", "adversarial", "sources", "content",
            "claims", "contradictions", "rigor", "legal",
        ]
        assert data["gates"]["claims"]["failure_kind"] == "infrastructure"
        assert "signals" not in data["gates"]["claims"]
        assert data["blocking"][0]["type"] == "GATE_FAILED"
        assert "remediation_tasks" not in data

    def test_fix_adds_remediation_tasks(self, case_dir):
        result = runner.invoke(cli, ["verify", str(case_dir), "--json", "--fix"])
        data = json.loads(result.stdout)
        gap_id = data["blocking"][0]["gap_id"]
        assert data["remediation_tasks"][0]["id"] == f"TGAP-{gap_id}"
        assert data["remediation_tasks"][0]["status"] == "pending"

    def test_write_persists_results(self, case_dir):
        result = runner.invoke(cli, ["verify", str(case_dir), "--write"])
        assert result.exit_code == 1
        saved = json.loads((case_dir / "control" / "gate_results.json").read_text())
        assert "generated_at" in saved
        assert saved["summary"] == {"passed": 8, "failed": 1, "total": 9}

    def test_without_write_nothing_persisted(self, case_dir):
        runner.invoke(cli, ["verify", str(case_dir)])
        assert not (case_dir / "control").exists()

    def test_missing_case_is_usage_error(self, tmp_path):
        result = runner.invoke(cli, ["verify", str(tmp_path / "missing")])
        assert result.exit_code == 2

    def test_missing_argument_is_usage_error(self):
        result = runner.invoke(cli, ["verify"])
        assert result.exit_code == 2


class TestGapsCommand:
    def test_blocking_gaps_exit_1(self, case_dir):
        result = runner.invoke(cli, ["gaps", str(case_dir), "--json"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["stats"]["blocking_count"] == 1
        assert data["blocking"][0]["subject"] == {"gate": "claims"}

    def test_gap_ids_identical_between_invocations(self, case_dir):
        first = json.loads(runner.invoke(cli, ["gaps", str(case_dir), "--json"]).stdout)
        second = json.loads(runner.invoke(cli, ["gaps", str(case_dir), "--json"]).stdout)
        assert [g["gap_id"] for g in first["blocking"]] == [g["gap_id"] for g in second["blocking"]]

    def test_write_persists_gaps(self, case_dir):
        write(case_dir, "tasks/T002.json", {"id": "T002", "priority": "HIGH", "status": "pending"})
        result = runner.invoke(cli, ["gaps", str(case_dir), "--write"])
        assert result.exit_code == 1
        saved = json.loads((case_dir / "control" / "gaps.json").read_text())
        assert "generated_at" in saved
        types = {g["type"] for g in saved["blocking"] + saved["advisory"]}
        assert "TASK_INCOMPLETE" in types

    def test_write_persists_digest_with_iteration(self, case_dir):
        write(case_dir, "state.json", {"iteration": 4})
        runner.invoke(cli, ["gaps", str(case_dir), "--write"])
        gaps = json.loads((case_dir / "control" / "gaps.json").read_text())
        digest = json.loads((case_dir / "control" / "digest.json").read_text())
        assert gaps["iteration"] == 4
        assert digest["iteration"] == 4
        assert digest["blocking_gaps"] == 1
        assert digest["total_gaps"] == gaps["stats"]["total_gaps"]
        assert digest["can_terminate"] is False
        assert digest["generated_at"] == gaps["generated_at"]

    def test_iteration_defaults_to_1(self, case_dir):
        write(case_dir, "state.json", "{not json")
        runner.invoke(cli, ["gaps", str(case_dir), "--write"])
        digest = json.loads((case_dir / "control" / "digest.json").read_text())
        assert digest["iteration"] == 1

    def test_digest_allows_termination_when_nothing_blocks(self, case_dir, verified_llm, monkeypatch):
        monkeypatch.setattr(settings, "openai_api_key", "sk-test")
        result = runner.invoke(cli, ["gaps", str(case_dir), "--write"])
        assert result.exit_code == 0, result.output
        digest = json.loads((case_dir / "control" / "digest.json").read_text())
        assert digest == {
            "iteration": 1,
            "generated_at": digest["generated_at"],
            "blocking_gaps": 0,
            "total_gaps": 0,
            "can_terminate": True,
        }

    def test_no_blocking_gaps_exit_0(self, case_dir, verified_llm, monkeypatch):
        monkeypatch.setattr(settings, "openai_api_key", "sk-test")
        result = runner.invoke(cli, ["gaps", str(case_dir)])
        assert result.exit_code == 0, result.output


class TestGatesCommand:
    def test_lists_registry(self):
        result = runner.invoke(cli, ["gates"])
        assert result.exit_code == 0
        for name in ("coverage", "claims", "legal"):
            assert name in result.output
