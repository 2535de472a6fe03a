"""Content gate: cited claims must be findable in their captured evidence.

A claim is matched by key phrases (quotes, numbers, dates, proper nouns and
long words) rather than verbatim, so light paraphrase still verifies.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path

from casegate.gates import case_files
from casegate.gates.base import Gate, GateContext
from casegate.models import GapType, GateVerdict

logger = logging.getLogger(__name__)


def group_by_source(claims: list[case_files.CitedClaim]) -> dict[str, list[case_files.CitedClaim]]:
    grouped: dict[str, list[case_files.CitedClaim]] = defaultdict(list)
    for claim in claims:
        grouped[claim.source_id].append(claim)
    return dict(sorted(grouped.items()))


def _short(text: str, limit: int = 80) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class ContentGate(Gate):
    name = "content"
    title = "Content in evidence"

    def evaluate(self, case_dir: Path, ctx: GateContext) -> GateVerdict:
        cfg = ctx.settings
        claims = case_files.extract_case_claims(case_dir, cfg.files_to_scan)
        stats = {"total": len(claims), "verified": 0, "partial": 0, "not_found": 0, "no_evidence": 0}
        signals = []
        samples: list[dict] = []

        for source_id, source_claims in group_by_source(claims).items():
            evidence = case_files.load_evidence_text(case_dir, source_id)
            if not evidence.has_evidence:
                stats["no_evidence"] += len(source_claims)
                signals.append(
                    self.signal(
                        GapType.missing_evidence,
                        f"{len(source_claims)} claims cite {source_id} but no readable evidence exists",
                        source_id=source_id,
                    )
                )
                continue

            for claim in source_claims:
                matches = case_files.search_phrases(evidence.text, claim.key_phrases)
                ratio = len(matches) / max(len(claim.key_phrases), 1)
                if ratio >= cfg.content_verified_ratio:
                    stats["verified"] += 1
                elif ratio >= cfg.content_partial_ratio:
                    stats["partial"] += 1
                else:
                    stats["not_found"] += 1
                    samples.append({
                        "source_id": source_id,
                        "file": claim.file,
                        "line": claim.line,
                        "claim": _short(claim.claim),
                        "matched": f"{len(matches)}/{len(claim.key_phrases)}",
                    })
                    signals.append(
                        self.signal(
                            GapType.claim_unsupported,
                            f"{claim.file}:{claim.line} claim not found in {source_id}: {_short(claim.claim)}",
                            source_id=source_id,
                            file=claim.file,
                            claim=case_files.claim_digest(claim.claim),
                        )
                    )

        checkable = stats["total"] - stats["no_evidence"]
        rate = (stats["verified"] + stats["partial"]) / checkable * 100 if checkable else 0.0
        details: dict = {**stats, "verification_rate": round(rate, 1)}
        if samples:
            details["samples"] = samples[:5]
        logger.debug("Content check for %s: %s", case_dir, stats)

        if stats["total"] == 0:
            reason = "No claims found to verify - investigation may be incomplete"
            return GateVerdict.fail(reason, details=details, signals=[
                self.signal(GapType.uncited_assertion, reason, file="*"),
            ])
        if stats["no_evidence"]:
            return GateVerdict.fail(
                f"{stats['no_evidence']} claims have NO EVIDENCE content readable"
                " - cannot verify content without evidence",
                details=details,
                signals=signals,
            )
        if stats["not_found"]:
            return GateVerdict.fail(
                f"{stats['not_found']} claims not found in evidence content (100% required)",
                details=details,
                signals=signals,
            )
        if stats["verified"] == 0:
            return GateVerdict.fail(
                f"0 claims verified out of {stats['total']} - verification not actually performed",
                details=details,
            )
        return GateVerdict.ok(details=details)
