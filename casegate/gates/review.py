"""Review gates: rigor checkpoint and legal review.

Both inspect the *outcome* written into a review document, not just its
presence.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from casegate.gates import case_files
from casegate.gates.base import Gate, GateContext
from casegate.models import GapType, GateVerdict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Rigor checkpoint
# ---------------------------------------------------------------------------

RIGOR_FILES = (
    "findings/rigor-checkpoint.md",
    "rigor-checkpoint.md",
    "findings/20-framework-validation.md",
)

_CHECK_MARK = re.compile(r"\bPASS\b|\bADDRESSED\b|\bCOVERED\b|\[x\]", re.IGNORECASE)
_GAP_MARK = re.compile(r"\bFAIL\b|\bGAP\b|\bMISSING\b", re.IGNORECASE)
_RIGOR_TASK_REF = re.compile(r"\bR0[0-9]{2}\b")

DOMAIN_FRAMEWORK_PATTERNS = [
    re.compile(r"first\s*principles|scientific\s*reality", re.IGNORECASE),
    re.compile(r"domain\s*expert|expert\s*blind\s*spot", re.IGNORECASE),
    re.compile(r"marketing\s*vs\s*scien", re.IGNORECASE),
    re.compile(r"subject\s*experience|ground\s*truth", re.IGNORECASE),
    re.compile(r"contrarian\s*expert", re.IGNORECASE),
]

SCIENTIFIC_SOURCE_PATTERNS = [
    re.compile(r"peer[\s-]*review", re.IGNORECASE),
    re.compile(r"journal\s*(of|article)", re.IGNORECASE),
    re.compile(r"academic\s*(study|source|research)", re.IGNORECASE),
    re.compile(r"veterinary|etholog", re.IGNORECASE),
    re.compile(r"scientific\s*(consensus|study|research)", re.IGNORECASE),
]

_INTERNAL_NOT_READY = [
    re.compile(r"publication\s*status[:\s]*NOT\s*READY", re.IGNORECASE),
    re.compile(r"legal\s*compliance[^:]*:\s*NOT\s*READY", re.IGNORECASE),
    re.compile(r"\*\*publication\s*readiness[^*]*\*\*[:\s]*NOT\s*READY", re.IGNORECASE),
]
_LEGAL_COMPLIANCE_SECTION = re.compile(r"### Legal Compliance[\s\S]*?(?=###|$)", re.IGNORECASE)


class RigorGate(Gate):
    """Rigor checkpoint exists, covers domain frameworks and reports no open gaps."""

    name = "rigor"
    title = "Rigor checkpoint"

    def evaluate(self, case_dir: Path, ctx: GateContext) -> GateVerdict:
        cfg = ctx.settings
        path = case_files.first_existing(case_dir, RIGOR_FILES)
        if path is None:
            return self._fail("No rigor checkpoint file found", {}, check="file")

        content = path.read_text(encoding="utf-8", errors="replace")
        checks = len(_CHECK_MARK.findall(content))
        gaps = len(_GAP_MARK.findall(content))
        details: dict = {
            "file": path.relative_to(case_dir).as_posix(),
            "checks_passed": checks,
            "gaps_found": gaps,
            "domain_frameworks_found": sum(1 for p in DOMAIN_FRAMEWORK_PATTERNS if p.search(content)),
            "scientific_source_mentions": sum(1 for p in SCIENTIFIC_SOURCE_PATTERNS if p.search(content)),
        }

        if details["domain_frameworks_found"] == 0:
            return self._fail(
                "Rigor checkpoint missing Domain Expertise frameworks (21-25)",
                details,
                check="domain-frameworks",
            )
        if details["scientific_source_mentions"] == 0:
            details["warning"] = "No peer-reviewed or scientific sources mentioned"

        legal_section = _LEGAL_COMPLIANCE_SECTION.search(content)
        if legal_section and re.search(r"NOT\s*READY", legal_section.group(0), re.IGNORECASE):
            details["legal_not_ready"] = True
            return self._fail(
                "Rigor checkpoint shows Legal Compliance NOT READY - must resolve legal issues",
                details,
                check="legal-compliance",
            )

        if any(p.search(content) for p in _INTERNAL_NOT_READY):
            details["internal_not_ready"] = True
            return self._fail(
                "Rigor checkpoint contains NOT READY status - internal issues must be resolved",
                details,
                check="not-ready",
            )

        if checks < cfg.rigor_min_checks:
            return self._fail(
                f"Only {checks} framework checks found (need >={cfg.rigor_min_checks})",
                details,
                check="framework-checks",
            )

        if gaps > cfg.rigor_max_gaps:
            return self._fail(
                f"Rigor checkpoint has {gaps} gaps/failures - all frameworks must pass",
                details,
                check="framework-gaps",
            )

        referenced = sorted(set(_RIGOR_TASK_REF.findall(content)))
        if referenced:
            missing = [tid for tid in referenced if not (case_dir / "tasks" / f"{tid}.json").is_file()]
            details["rigor_tasks_referenced"] = len(referenced)
            details["rigor_tasks_missing"] = len(missing)
            created_ratio = (len(referenced) - len(missing)) / len(referenced)
            if created_ratio < cfg.rigor_task_created_ratio:
                more = "..." if len(missing) > 5 else ""
                return GateVerdict.fail(
                    f"Rigor checkpoint references {len(referenced)} R### tasks but "
                    f"{len(missing)} were never created ({', '.join(missing[:5])}{more})",
                    details=details,
                    signals=[
                        self.signal(
                            GapType.rigor_incomplete,
                            f"Rigor task {tid} referenced but never created",
                            task_id=tid,
                        )
                        for tid in missing
                    ],
                )

        return GateVerdict.ok(details=details)

    def _fail(self, reason: str, details: dict, check: str) -> GateVerdict:
        return GateVerdict.fail(
            reason,
            details=details,
            signals=[self.signal(GapType.rigor_incomplete, reason, check=check)],
        )


# ---------------------------------------------------------------------------
# Legal review
# ---------------------------------------------------------------------------

LEGAL_FILES = ("legal/legal-review.md", "legal-review.md", "legal-assessment.md")

_RISK_LEVEL = re.compile(r"risk\s*(level|rating|assessment)", re.IGNORECASE)
_CLASSIFICATION = re.compile(r"public\s*figure|private\s*individual", re.IGNORECASE)
_RECOMMENDATIONS = re.compile(r"recommend|mitigation", re.IGNORECASE)
_NOT_READY = re.compile(r"publication\s*readiness[:\s]*\*?\*?NOT\s*READY", re.IGNORECASE)
_READY = re.compile(r"publication\s*readiness[:\s]*\*?\*?READY\*?\*?(?!\s*WITH)", re.IGNORECASE)
_READY_WITH_CHANGES = re.compile(
    r"publication\s*readiness[:\s]*\*?\*?READY\s*WITH\s*CHANGES", re.IGNORECASE
)
_CRITICAL_HEADING = re.compile(r"critical\s*\(must\s*address[^)]*\)", re.IGNORECASE)
_CRITICAL_SECTION = re.compile(r"### Critical.*?(?=###|$)", re.IGNORECASE | re.DOTALL)
_TABLE_ROW_NUMBERED = re.compile(r"^\s*\|\s*\d+", re.MULTILINE)
_HIGH_RISK_ROW = re.compile(r"\|\s*HIGH\s*\|")


class LegalGate(Gate):
    """Legal review exists, classifies the subject, and clears publication."""

    name = "legal"
    title = "Legal review"

    def evaluate(self, case_dir: Path, ctx: GateContext) -> GateVerdict:
        path = case_files.first_existing(case_dir, LEGAL_FILES)
        if path is None:
            return self._fail("No legal review file found", {}, check="file")

        content = path.read_text(encoding="utf-8", errors="replace")
        has_risk = bool(_RISK_LEVEL.search(content))
        has_class = bool(_CLASSIFICATION.search(content))
        ready_with_changes = bool(_READY_WITH_CHANGES.search(content))
        details: dict = {
            "file": path.relative_to(case_dir).as_posix(),
            "size": len(content),
            "has_risk_level": has_risk,
            "has_classification": has_class,
            "has_recommendations": bool(_RECOMMENDATIONS.search(content)),
            "publication_ready": bool(_READY.search(content)),
            "ready_with_changes": ready_with_changes,
            "not_ready": bool(_NOT_READY.search(content)),
            "high_risk_claims": len(_HIGH_RISK_ROW.findall(content)),
        }

        if details["not_ready"]:
            return self._fail(
                "Legal review explicitly says NOT READY for publication - must resolve blocking issues first",
                details,
                check="not-ready",
            )

        if not has_risk and not has_class:
            return self._fail(
                "Legal review file exists but lacks required risk level or subject classification sections",
                details,
                check="sections",
            )

        if _CRITICAL_HEADING.search(content):
            section = _CRITICAL_SECTION.search(content)
            critical = len(_TABLE_ROW_NUMBERED.findall(section.group(0))) if section else 0
            if critical:
                details["critical_gaps"] = critical
                return self._fail(
                    f"Legal review has {critical} critical gaps that must be addressed before publication",
                    details,
                    check="critical-items",
                )

        if ready_with_changes:
            details["note"] = "Legal review says READY WITH CHANGES - minor fixes may be needed"
        elif not details["publication_ready"]:
            details["note"] = "Legal review has required sections; no explicit readiness status found"
        return GateVerdict.ok(details=details)

    def _fail(self, reason: str, details: dict, check: str) -> GateVerdict:
        return GateVerdict.fail(
            reason,
            details=details,
            signals=[self.signal(GapType.legal_risk, reason, check=check)],
        )
