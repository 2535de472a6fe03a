"""Claims gate: LLM fact-check of every cited claim against its evidence."""

from __future__ import annotations

import logging
import math
from pathlib import Path

from casegate.clients.openai_client import LLMClient
from casegate.gates import case_files
from casegate.gates.base import Gate, GateContext
from casegate.gates.content import group_by_source
from casegate.models import GapType, GateVerdict

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a fact-checking assistant. Your job is to verify whether a specific \
claim is supported by the provided source evidence.

Respond in this exact JSON format:
{
  "verdict": "VERIFIED" | "NOT_FOUND" | "PARTIAL" | "CONTRADICTED",
  "confidence": 0.0-1.0,
  "explanation": "Brief explanation of your verdict",
  "relevant_quote": "Exact quote from evidence that supports or contradicts the claim, if found"
}

Verdicts:
- VERIFIED: The claim is clearly supported by the evidence
- NOT_FOUND: The claim is not present in the evidence (possible hallucination)
- PARTIAL: Some aspects of the claim are supported, others are not
- CONTRADICTED: The evidence contradicts the claim

Be strict. If the evidence doesn't explicitly support the claim, mark it NOT_FOUND.
"""

VERDICTS = ("VERIFIED", "NOT_FOUND", "PARTIAL", "CONTRADICTED")


def build_user_prompt(claim: str, evidence: str, url: str | None) -> str:
    return (
        f'CLAIM TO VERIFY:\n"{claim}"\n\n'
        f"SOURCE EVIDENCE (from {url or 'captured document'}):\n---\n{evidence}\n---\n\n"
        "Analyze whether this claim is supported by the evidence above."
    )


class ClaimsGate(Gate):
    name = "claims"
    title = "AI claim verification"

    def evaluate(self, case_dir: Path, ctx: GateContext) -> GateVerdict:
        cfg = ctx.settings
        if not ctx.openai_api_key:
            return GateVerdict.unavailable(
                "Missing credential: OPENAI_API_KEY not set - cannot run AI claim verification",
                details={"skipped": True},
            )

        claims = case_files.extract_case_claims(case_dir, cfg.files_to_scan)
        stats = {
            "total": len(claims), "verified": 0, "partial": 0, "not_found": 0,
            "contradicted": 0, "no_evidence": 0, "errors": 0,
        }
        signals = []
        llm = LLMClient(api_key=ctx.openai_api_key, model=cfg.openai_model)

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

            excerpt = evidence.text[: cfg.claims_max_evidence_chars]
            for claim in source_claims:
                try:
                    result = llm.chat_json(
                        SYSTEM_PROMPT, build_user_prompt(claim.claim, excerpt, evidence.url)
                    )
                except Exception as e:
                    logger.warning("AI verification failed for %s:%d: %s", claim.file, claim.line, e)
                    stats["errors"] += 1
                    continue

                verdict = str(result.get("verdict", "")).upper()
                if verdict not in VERDICTS:
                    stats["errors"] += 1
                    continue
                stats[verdict.lower()] += 1
                if verdict in ("NOT_FOUND", "CONTRADICTED"):
                    explanation = result.get("explanation") or verdict
                    signals.append(
                        self.signal(
                            GapType.claim_unsupported,
                            f"{claim.file}:{claim.line} {verdict} in {source_id}: {explanation}",
                            source_id=source_id,
                            file=claim.file,
                            claim=case_files.claim_digest(claim.claim),
                        )
                    )

        total = stats["total"]
        error_threshold = max(cfg.claims_min_error_allowance, math.ceil(total * cfg.claims_error_ratio))
        problems = stats["not_found"] + stats["contradicted"]
        checked = total - stats["no_evidence"] - stats["errors"]
        rate = (stats["verified"] + stats["partial"]) / checked * 100 if checked else 0.0
        details: dict = {**stats, "error_threshold": error_threshold, "verification_rate": round(rate, 1)}

        if total == 0:
            return GateVerdict.fail(
                "No claims found to verify - investigation may be incomplete", details=details
            )
        if stats["no_evidence"]:
            return GateVerdict.fail(
                f"{stats['no_evidence']} claims have NO EVIDENCE"
                " - AI cannot verify claims without captured evidence",
                details=details,
                signals=signals,
            )
        if stats["errors"] > error_threshold:
            # Too many transport failures to trust the result.
            return GateVerdict.unavailable(
                f"{stats['errors']} claims had AI verification errors "
                f"(>{error_threshold} threshold) - cannot pass",
                details=details,
            )
        if problems:
            return GateVerdict.fail(
                f"{problems} claims failed AI verification "
                f"({stats['not_found']} not found, {stats['contradicted']} contradicted)",
                details=details,
                signals=signals,
            )
        if stats["verified"] == 0:
            return GateVerdict.fail(
                f"0 claims verified out of {total} - AI verification not actually performed",
                details=details,
            )
        if stats["errors"]:
            return GateVerdict.ok(
                details=details,
                reason=f"Passed with {stats['errors']} API errors (within {error_threshold} threshold)",
            )
        return GateVerdict.ok(details=details)
