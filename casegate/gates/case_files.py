"""Read-only access to case artifacts shared by the gates.

Case layout:
- ``summary.md`` and other deliverables cite sources as ``[S###]``
- ``findings/*.md`` hold per-task findings
- ``tasks/*.json`` hold task records (``T###`` main, ``A###`` adversarial)
- ``evidence/web/S###/`` hold captures (``capture.md``, ``capture.html``,
  ``capture.pdf``, ``capture.txt``, ``metadata.json``)
- ``evidence/documents/S###_*`` hold uploaded documents
- ``claims/C####.json`` hold claim records with corroboration requirements
- ``sources.json`` maps source IDs to url / category metadata

Nothing in this module writes to the case.
"""

from __future__ import annotations

import hashlib
import html
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import urlparse

import pdfplumber

logger = logging.getLogger(__name__)

CITATION_PATTERN = re.compile(r"\[S(\d{3,4})\]")

# ---------------------------------------------------------------------------
# Files & JSON
# ---------------------------------------------------------------------------


def read_text(path: Path) -> str | None:
    """Return file contents, or None when the file does not exist."""
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8", errors="replace")


def load_json(path: Path) -> Any:
    """Parse a JSON artifact. Malformed JSON raises ``json.JSONDecodeError``."""
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def first_existing(case_dir: Path, candidates: Iterable[str]) -> Path | None:
    for rel in candidates:
        path = case_dir / rel
        if path.is_file():
            return path
    return None


def findings_files(case_dir: Path) -> list[Path]:
    findings_dir = case_dir / "findings"
    if not findings_dir.is_dir():
        return []
    return sorted(p for p in findings_dir.iterdir() if p.is_file())


def scan_paths(case_dir: Path, files_to_scan: Iterable[str]) -> list[Path]:
    """Deliverables that may carry citations: configured files + findings/*.md."""
    paths = [case_dir / rel for rel in files_to_scan if (case_dir / rel).is_file()]
    paths.extend(p for p in findings_files(case_dir) if p.suffix == ".md")
    return paths


def count_markdown_sections(text: str | None) -> int:
    """Count ``## `` headers, the unit of an investigated person/entity/position."""
    if not text:
        return 0
    return len(re.findall(r"^##\s+", text, re.MULTILINE))


# ---------------------------------------------------------------------------
# Citations
# ---------------------------------------------------------------------------


def count_citations(text: str) -> tuple[int, set[str]]:
    """Return (total citation count, unique source IDs)."""
    matches = CITATION_PATTERN.findall(text)
    return len(matches), {f"S{m}" for m in matches}


def extract_citations(case_dir: Path, files_to_scan: Iterable[str]) -> list[str]:
    """Sorted unique ``S###`` IDs cited anywhere in the case deliverables."""
    cited: set[str] = set()
    for path in scan_paths(case_dir, files_to_scan):
        _, unique = count_citations(read_text(path) or "")
        cited |= unique
    return sorted(cited)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


def load_tasks(case_dir: Path) -> list[dict]:
    """Load every ``tasks/*.json`` record, skipping unparseable files."""
    tasks_dir = case_dir / "tasks"
    if not tasks_dir.is_dir():
        return []
    tasks = []
    for path in sorted(tasks_dir.glob("*.json")):
        try:
            task = load_json(path)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed task file %s", path)
            continue
        if isinstance(task, dict):
            tasks.append(task)
    return tasks


def is_adversarial(task: dict) -> bool:
    return str(task.get("id") or "").startswith("A")


def split_tasks(tasks: list[dict]) -> tuple[list[dict], list[dict]]:
    """Split into (main tasks, adversarial ``A###`` tasks); tasks without IDs are dropped."""
    main = [t for t in tasks if t.get("id") and not is_adversarial(t)]
    adversarial = [t for t in tasks if t.get("id") and is_adversarial(t)]
    return main, adversarial


def task_label(task: dict) -> str:
    return f"{task.get('id')}({task.get('status') or 'unknown'})"


def findings_path_for(case_dir: Path, task: dict) -> tuple[str, Path]:
    rel = task.get("findings_file") or f"findings/{task['id']}-findings.md"
    return rel, case_dir / rel


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------


def evidence_dir(case_dir: Path) -> Path:
    return case_dir / "evidence" / "web"


def evidence_folders(case_dir: Path) -> dict[str, Path]:
    root = evidence_dir(case_dir)
    if not root.is_dir():
        return {}
    return {p.name: p for p in sorted(root.iterdir()) if p.is_dir() and p.name.startswith("S")}


def missing_evidence(case_dir: Path, citations: list[str]) -> list[tuple[str, str]]:
    """Return ``(source_id, problem)`` for each citation without usable evidence."""
    folders = evidence_folders(case_dir)
    missing = []
    for source_id in citations:
        folder = folders.get(source_id)
        if folder is None:
            missing.append((source_id, "missing"))
        elif not any(folder.iterdir()):
            missing.append((source_id, "empty"))
    return missing


def load_sources_index(case_dir: Path) -> dict[str, dict]:
    """``sources.json`` keyed by source ID; absent or malformed means empty."""
    path = case_dir / "sources.json"
    if not path.is_file():
        return {}
    try:
        data = load_json(path)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed %s", path)
        return {}
    return data if isinstance(data, dict) else {}


def source_category(source: Any) -> str | None:
    """Category used by corroboration rules, derived from ``source_type`` if unset."""
    if not isinstance(source, dict):
        return None
    category = source.get("category")
    if isinstance(category, str) and category.strip():
        return category.strip().lower()
    source_type = str(source.get("source_type") or "").lower()
    if "primary" in source_type:
        return "primary"
    if any(k in source_type for k in ("official", "government", "court", "database")):
        return "government"
    if "news" in source_type or "press" in source_type:
        return "news"
    if any(k in source_type for k in ("social", "twitter", "x_")):
        return "social"
    return None


# ---------------------------------------------------------------------------
# Claim records & corroboration
# ---------------------------------------------------------------------------

_CLAIM_RECORD = re.compile(r"^C\d{4,}\.json$", re.IGNORECASE)


def load_claim_records(case_dir: Path) -> list[dict]:
    """Load ``claims/C####.json`` records, skipping unparseable files."""
    claims_dir = case_dir / "claims"
    if not claims_dir.is_dir():
        return []
    records = []
    for path in sorted(claims_dir.iterdir()):
        if not _CLAIM_RECORD.match(path.name):
            continue
        try:
            record = load_json(path)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed claim file %s", path)
            continue
        if isinstance(record, dict):
            record.setdefault("id", path.stem)
            records.append(record)
    return records


def _domains(source_ids: list[str], index: dict[str, dict]) -> set[str]:
    domains = set()
    for sid in source_ids:
        url = (index.get(sid) or {}).get("url")
        if url:
            host = urlparse(str(url)).hostname or ""
            if host:
                domains.add(host.removeprefix("www."))
    return domains


def meets_independence(source_ids: list[str], rule: str, index: dict[str, dict]) -> bool:
    if len(source_ids) < 2:
        return False
    categories = [source_category(index.get(sid)) for sid in source_ids]
    if rule == "different_domain":
        return len(_domains(source_ids, index)) >= 2
    if rule == "primary_plus_secondary":
        return "primary" in categories and any(c != "primary" for c in categories)
    if rule == "different_domain_or_primary":
        return "primary" in categories or len(_domains(source_ids, index)) >= 2
    # Unknown rules are not enforced.
    return True


def corroboration_issues(claim: dict, index: dict[str, dict]) -> list[str]:
    """Reasons a claim record falls short of its corroboration requirements."""
    rules = claim.get("corroboration") or {}
    supporting = [str(s) for s in claim.get("supporting_sources") or []]
    min_sources = rules.get("min_sources") or 1
    issues = []
    if len(supporting) < min_sources:
        issues.append(f"Has {len(supporting)} sources, requires {min_sources}")
    rule = rules.get("independence_rule")
    if rule and len(supporting) >= 2 and not meets_independence(supporting, rule, index):
        issues.append(f"Sources do not meet independence rule: {rule}")
    if rules.get("requires_primary") is True:
        if not any(source_category(index.get(sid)) == "primary" for sid in supporting):
            issues.append("Requires primary source but none found")
    return issues


@dataclass
class EvidenceText:
    """Combined readable text captured for one source."""
    text: str = ""
    sources: list[str] = field(default_factory=list)
    url: str | None = None

    @property
    def has_evidence(self) -> bool:
        return bool(self.sources)


def strip_html(raw: str) -> str:
    text = re.sub(r"<(script|style|noscript)[^>]*>[\s\S]*?</\1>", " ", raw, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def strip_markdown(raw: str) -> str:
    text = re.sub(r"```[\s\S]*?```", "", raw)
    text = re.sub(r"!\[[^\]]*\]\([^)]*\)", "", text)
    text = re.sub(r"\[([^\]]*)\]\([^)]*\)", r"\1", text)
    text = re.sub(r"^#{1,6}\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"\*\*([^*]+)\*\*", r"\1", text)
    text = re.sub(r"\*([^*]+)\*", r"\1", text)
    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = re.sub(r"^\s*[-*+]\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"^\s*\d+\.\s+", "", text, flags=re.MULTILINE)
    return re.sub(r"\s+", " ", text).strip()


def extract_pdf_text(path: Path) -> str | None:
    """Extract text from a captured PDF, preferring a pre-extracted sibling."""
    for sibling in (path.with_suffix(".txt"), path.parent / "extracted_text.txt"):
        if sibling.is_file():
            return sibling.read_text(encoding="utf-8", errors="replace")
    try:
        with pdfplumber.open(path) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        logger.warning("pdfplumber could not read %s: %s", path, e)
        return None
    text = "\n\n".join(p for p in pages if p)
    return text or None


def load_evidence_text(case_dir: Path, source_id: str) -> EvidenceText:
    """Load every readable capture for ``source_id``."""
    web_dir = evidence_dir(case_dir) / source_id
    evidence = EvidenceText()
    parts: list[str] = []

    meta_path = web_dir / "metadata.json"
    if meta_path.is_file():
        try:
            meta = load_json(meta_path)
            evidence.url = meta.get("url") if isinstance(meta, dict) else None
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed metadata %s", meta_path)

    md_text = read_text(web_dir / "capture.md")
    if md_text:
        parts.append(strip_markdown(md_text))
        evidence.sources.append("markdown")

    html_text = read_text(web_dir / "capture.html")
    if html_text:
        parts.append(strip_html(html_text))
        evidence.sources.append("html")

    txt_text = read_text(web_dir / "capture.txt")
    if txt_text:
        parts.append(txt_text)
        evidence.sources.append("text")

    pdf_path = web_dir / "capture.pdf"
    if pdf_path.is_file():
        pdf_text = extract_pdf_text(pdf_path)
        if pdf_text:
            parts.append(pdf_text)
            evidence.sources.append("pdf")

    docs_dir = case_dir / "evidence" / "documents"
    if docs_dir.is_dir():
        for doc in sorted(docs_dir.glob(f"{source_id}_*")):
            if doc.suffix == ".txt":
                doc_text = read_text(doc)
            elif doc.suffix == ".pdf":
                doc_text = extract_pdf_text(doc)
            else:
                continue
            if doc_text:
                parts.append(doc_text)
                evidence.sources.append(f"document-{doc.name}")

    evidence.text = " ".join(parts)
    return evidence


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------

_STOP_WORDS = {
    "that", "this", "with", "from", "were", "have", "been", "will", "would",
    "could", "should", "about", "their", "there", "which", "while", "being",
    "these", "those", "other", "after", "before", "through", "during",
    "between", "because", "against", "according",
}
_PROPER_SKIP = {"The", "This", "That", "They", "What", "When", "Where", "Which", "While"}


@dataclass
class CitedClaim:
    """One cited line in a deliverable, paired with one of its sources."""
    source_id: str
    claim: str
    key_phrases: list[str]
    file: str
    line: int


def extract_key_phrases(claim: str) -> list[str]:
    """Searchable phrases: quotes, numbers, dates, proper nouns, long words."""
    phrases: list[str] = []
    phrases.extend(q for q in re.findall(r'"([^"]+)"', claim))
    phrases.extend(n for n in re.findall(r"\$?[\d,]+\.?\d*%?", claim) if len(n) > 1)
    phrases.extend(re.findall(r"\b\d{4}\b", claim))
    phrases.extend(
        p for p in re.findall(r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*", claim)
        if len(p) > 2 and p not in _PROPER_SKIP
    )
    phrases.extend(
        w for w in re.split(r"\W+", claim.lower()) if len(w) >= 5 and w not in _STOP_WORDS
    )
    return list(dict.fromkeys(phrases))


def extract_claims(path: Path, label: str) -> list[CitedClaim]:
    text = read_text(path)
    if not text:
        return []
    claims = []
    for line_num, line in enumerate(text.split("\n"), 1):
        source_ids = sorted({f"S{m}" for m in CITATION_PATTERN.findall(line)})
        if not source_ids:
            continue
        claim_text = CITATION_PATTERN.sub("", line)
        claim_text = re.sub(r"^\s*[-*]\s*", "", claim_text)
        claim_text = re.sub(r"^\s*\d+\.\s*", "", claim_text)
        claim_text = re.sub(r"^#+\s*", "", claim_text)
        claim_text = claim_text.replace("**", "")
        claim_text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", claim_text).strip()
        if len(claim_text) <= 15:
            continue
        phrases = extract_key_phrases(claim_text)
        for source_id in source_ids:
            claims.append(CitedClaim(source_id, claim_text, phrases, label, line_num))
    return claims


def extract_case_claims(case_dir: Path, files_to_scan: Iterable[str]) -> list[CitedClaim]:
    """Every cited claim across the deliverables, in file order."""
    claims = []
    for path in scan_paths(case_dir, files_to_scan):
        claims.extend(extract_claims(path, path.relative_to(case_dir).as_posix()))
    return claims


def search_phrases(text: str, phrases: list[str]) -> list[str]:
    """Return the phrases that occur in ``text`` (case-insensitive)."""
    haystack = text.lower()
    return [p for p in phrases if p.lower() in haystack]


def claim_digest(claim: str) -> str:
    """Short content hash identifying a claim independent of its line number."""
    normalized = re.sub(r"\s+", " ", claim).strip().lower()
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:10]
