"""Filesystem-structure gates: coverage, tasks, adversarial, sources, contradictions.

The filesystem is the only source of truth: no self-reported flags in
``state.json`` are consulted.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from casegate.gates import case_files
from casegate.gates.base import Gate, GateContext
from casegate.models import GapType, GateVerdict

logger = logging.getLogger(__name__)

_FACT_CHECK_VERDICT = re.compile(r"\*\*(VERIFIED|DEBUNKED|PARTIAL|UNVERIFIED|CONTESTED)\*\*")
_ADVERSARIAL_FINDING = ("adversarial", "opposing", "falsification")
_CONTRADICTION_FINDING = ("contradiction", "conflict", "inconsisten")


def load_extraction(case_dir: Path) -> dict:
    """Parse ``extraction.json``; absent means nothing was extracted."""
    path = case_dir / "extraction.json"
    if not path.is_file():
        return {}
    data = case_files.load_json(path)
    return data if isinstance(data, dict) else {}


def _pct(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"


# ---------------------------------------------------------------------------
# Coverage
# ---------------------------------------------------------------------------


class CoverageGate(Gate):
    """Required files exist, summary cites sources, coverage ratios hit thresholds.

    Claim records under ``claims/`` must also meet their corroboration
    requirements (source count, independence rule, primary source).
    """

    name = "coverage"
    title = "Coverage"

    def evaluate(self, case_dir: Path, ctx: GateContext) -> GateVerdict:
        cfg = ctx.settings
        failures: list[str] = []
        signals = []
        details: dict = {}

        for rel in cfg.required_files:
            if not (case_dir / rel).is_file():
                failures.append(f"Missing required file: {rel}")

        summary = case_files.read_text(case_dir / "summary.md")
        if summary is not None:
            total, unique = case_files.count_citations(summary)
            details["citation_density"] = {
                "total_citations": total,
                "unique_sources": len(unique),
                "total_lines": len(summary.split("\n")),
            }
            if total == 0:
                msg = "summary.md has ZERO source citations - sources must be cited [SXXX]"
                failures.append(msg)
                signals.append(self.signal(GapType.uncited_assertion, msg, file="summary.md"))

        extraction = load_extraction(case_dir)
        ratios = [
            (
                "people",
                len(extraction.get("people") or []),
                case_files.count_markdown_sections(case_files.read_text(case_dir / "people.md")),
                cfg.people_investigated_threshold,
                "People investigated",
            ),
            (
                "entities",
                len(extraction.get("entities") or []),
                case_files.count_markdown_sections(case_files.read_text(case_dir / "organizations.md")),
                cfg.entities_investigated_threshold,
                "Entities investigated",
            ),
            (
                "claims",
                len(extraction.get("claims") or []),
                len(_FACT_CHECK_VERDICT.findall(case_files.read_text(case_dir / "fact-check.md") or "")),
                cfg.claims_verified_threshold,
                "Claims verified",
            ),
        ]
        for key, expected, done, threshold, label in ratios:
            if expected == 0:
                continue
            ratio = done / expected
            details[key] = {"ratio": ratio, "threshold": threshold, "done": done, "expected": expected}
            if ratio < threshold:
                failures.append(f"{label}: {_pct(ratio)} ({done}/{expected}) < {_pct(threshold)}")

        citations = case_files.extract_citations(case_dir, cfg.files_to_scan)
        if citations:
            missing = case_files.missing_evidence(case_dir, citations)
            captured = len(citations) - len(missing)
            ratio = captured / len(citations)
            details["sources"] = {
                "ratio": ratio,
                "threshold": cfg.sources_captured_threshold,
                "captured": captured,
                "cited": len(citations),
            }
            if ratio < cfg.sources_captured_threshold:
                failures.append(
                    f"Sources captured: {_pct(ratio)} ({captured}/{len(citations)}) "
                    f"< {_pct(cfg.sources_captured_threshold)} - CAPTURE BEFORE CITE VIOLATION"
                )
                signals.extend(
                    self.signal(
                        GapType.missing_evidence,
                        f"Citation {source_id} has no captured evidence ({problem})",
                        source_id=source_id,
                    )
                    for source_id, problem in missing
                )

        records = case_files.load_claim_records(case_dir)
        if records:
            index = case_files.load_sources_index(case_dir)
            insufficient = []
            for record in records:
                claim_id = str(record["id"])
                issues = case_files.corroboration_issues(record, index)
                if not issues:
                    continue
                insufficient.append(claim_id)
                signals.extend(
                    self.signal(
                        GapType.insufficient_corroboration,
                        f"Claim {claim_id}: {issue}",
                        claim_id=claim_id,
                    )
                    for issue in issues
                )
            details["corroboration"] = {
                "total": len(records),
                "verified": len(records) - len(insufficient),
                "insufficient": len(insufficient),
            }
            if insufficient:
                failures.append(
                    f"{len(insufficient)} claims below corroboration threshold: {', '.join(insufficient)}"
                )

        if failures:
            return GateVerdict.fail("; ".join(failures), details=details, signals=signals)
        return GateVerdict.ok(details=details)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TasksGate(Gate):
    """HIGH-priority tasks completed; completed tasks have findings files."""

    name = "tasks"
    title = "Tasks"

    def evaluate(self, case_dir: Path, ctx: GateContext) -> GateVerdict:
        tasks = case_files.load_tasks(case_dir)
        if not tasks:
            return GateVerdict.fail(
                "No task files found in tasks/ directory",
                signals=[self.signal(GapType.task_incomplete, "No tasks defined", task_id="*")],
            )

        main, adversarial = case_files.split_tasks(tasks)
        completed = [t for t in main if t.get("status") == "completed"]
        high_incomplete = [
            t for t in main
            if str(t.get("priority") or "").upper() == "HIGH" and t.get("status") != "completed"
        ]
        details = {
            "total": len(main),
            "completed": len(completed),
            "pending": sum(1 for t in main if t.get("status") == "pending"),
            "in_progress": sum(1 for t in main if t.get("status") == "in_progress"),
            "incomplete": len(main) - len(completed),
            "high_priority_incomplete": len(high_incomplete),
            "adversarial_total": len(adversarial),
            "adversarial_incomplete": sum(1 for t in adversarial if t.get("status") != "completed"),
        }

        failures: list[str] = []
        signals = []
        if high_incomplete:
            labels = ", ".join(case_files.task_label(t) for t in high_incomplete)
            failures.append(f"{len(high_incomplete)} HIGH priority tasks not completed: {labels}")
            signals.extend(
                self.signal(
                    GapType.task_incomplete,
                    f"HIGH priority task {t['id']} is {t.get('status') or 'unknown'}",
                    task_id=t["id"],
                )
                for t in high_incomplete
            )

        for task in completed:
            rel, path = case_files.findings_path_for(case_dir, task)
            if not path.is_file():
                msg = f"Task {task['id']} marked complete but findings file missing: {rel}"
                failures.append(msg)
                signals.append(self.signal(GapType.state_inconsistent, msg, task_id=task["id"], file=rel))

        if failures:
            return GateVerdict.fail("; ".join(failures), details=details, signals=signals)
        return GateVerdict.ok(details=details)


# ---------------------------------------------------------------------------
# Adversarial
# ---------------------------------------------------------------------------


class AdversarialGate(Gate):
    """Adversarial (A###) tasks exist, are all completed, and left findings."""

    name = "adversarial"
    title = "Adversarial pass"

    def evaluate(self, case_dir: Path, ctx: GateContext) -> GateVerdict:
        _, adversarial = case_files.split_tasks(case_files.load_tasks(case_dir))
        findings = [
            p.name for p in case_files.findings_files(case_dir)
            if p.name.startswith("A") or any(k in p.name for k in _ADVERSARIAL_FINDING)
        ]
        details = {
            "adversarial_tasks": len(adversarial),
            "adversarial_completed": sum(1 for t in adversarial if t.get("status") == "completed"),
            "adversarial_files": len(findings),
        }

        if not adversarial:
            msg = "No adversarial tasks (A###.json) found"
            return GateVerdict.fail(
                msg,
                details=details,
                signals=[self.signal(GapType.adversarial_incomplete, msg, check="tasks")],
            )

        incomplete = [t for t in adversarial if t.get("status") != "completed"]
        if incomplete:
            labels = ", ".join(case_files.task_label(t) for t in incomplete)
            return GateVerdict.fail(
                f"{len(incomplete)} adversarial tasks not completed: {labels}",
                details=details,
                signals=[
                    self.signal(
                        GapType.adversarial_incomplete,
                        f"Adversarial task {t['id']} is {t.get('status') or 'unknown'}",
                        task_id=t["id"],
                    )
                    for t in incomplete
                ],
            )

        if not findings:
            msg = "Adversarial tasks exist but no findings files found"
            return GateVerdict.fail(
                msg,
                details=details,
                signals=[self.signal(GapType.adversarial_incomplete, msg, check="findings")],
            )
        return GateVerdict.ok(details=details)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class SourcesGate(Gate):
    """Capture before cite: every cited source has a non-empty evidence folder."""

    name = "sources"
    title = "Sources"

    def evaluate(self, case_dir: Path, ctx: GateContext) -> GateVerdict:
        citations = case_files.extract_citations(case_dir, ctx.settings.files_to_scan)
        if not case_files.evidence_dir(case_dir).is_dir() and not citations:
            return GateVerdict.ok(details={"note": "No citations and no evidence directory"})

        missing = case_files.missing_evidence(case_dir, citations)
        details = {
            "citations_total": len(citations),
            "evidence_folders": len(case_files.evidence_folders(case_dir)),
            "missing_count": len(missing),
        }
        if not missing:
            return GateVerdict.ok(details=details)

        labels = [sid if problem == "missing" else f"{sid} (empty folder)" for sid, problem in missing]
        details["missing"] = labels
        more = "..." if len(labels) > 10 else ""
        return GateVerdict.fail(
            f"{len(missing)} citations missing evidence: {', '.join(labels[:10])}{more}"
            " - CAPTURE BEFORE CITE VIOLATION",
            details=details,
            signals=[
                self.signal(
                    GapType.missing_evidence,
                    f"Citation {sid} has no captured evidence ({problem})",
                    source_id=sid,
                )
                for sid, problem in missing
            ],
        )


# ---------------------------------------------------------------------------
# Contradictions
# ---------------------------------------------------------------------------


class ContradictionsGate(Gate):
    """Every contradiction listed in extraction.json has an exploring finding."""

    name = "contradictions"
    title = "Contradictions"

    def evaluate(self, case_dir: Path, ctx: GateContext) -> GateVerdict:
        identified = len(load_extraction(case_dir).get("contradictions") or [])
        explored = sum(
            1 for p in case_files.findings_files(case_dir)
            if any(k in p.name for k in _CONTRADICTION_FINDING)
        )
        details = {"identified": identified, "explored": explored}

        if identified == 0:
            details["note"] = "No contradictions identified"
            return GateVerdict.ok(details=details)
        if explored >= identified:
            return GateVerdict.ok(details=details)

        msg = f"{identified - explored} contradictions not explored (100% required)"
        return GateVerdict.fail(
            msg,
            details=details,
            signals=[self.signal(GapType.contradiction_unexplored, msg, check="contradictions")],
        )
