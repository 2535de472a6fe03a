"""Shared test fixtures."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

os.environ["OPENAI_API_KEY"] = ""
os.environ["CASEGATE_API_KEY"] = ""  # disable auth for tests

from casegate.config import Settings
from casegate.gates.base import GateContext

CLAIM = "Acme Corporation reported revenue of $5 million in 2023."


def write(case_dir: Path, rel: str, content: str | dict) -> Path:
    """Write a case artifact, creating parent folders."""
    path = case_dir / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, dict):
        content = json.dumps(content, indent=2)
    path.write_text(content, encoding="utf-8")
    return path


def build_case(case_dir: Path) -> Path:
    """A minimal case that satisfies every gate (claims needs a credential)."""
    case_dir.mkdir(parents=True, exist_ok=True)
    write(case_dir, "summary.md", f"# Acme Corporation\n\n{CLAIM} [S001]\n")
    write(case_dir, "evidence/web/S001/capture.md", f"# Annual report\n\n{CLAIM}\n")
    write(case_dir, "evidence/web/S001/metadata.json", {"url": "https://example.com/acme-annual-report"})
    write(case_dir, "tasks/T001.json", {"id": "T001", "priority": "HIGH", "status": "completed"})
    write(case_dir, "tasks/A001.json", {"id": "A001", "priority": "MEDIUM", "status": "completed"})
    write(case_dir, "findings/T001-findings.md", "# T001 findings\n\nRevenue figures confirmed.\n")
    write(case_dir, "findings/A001-findings.md", "# A001 adversarial pass\n\nNo counter-evidence located.\n")
    checks = "\n".join(f"- [x] Framework {i} addressed" for i in range(1, 21))
    write(
        case_dir,
        "rigor-checkpoint.md",
        f"# Rigor checkpoint\n\n## Framework 21: First principles\n\n{checks}\n",
    )
    write(
        case_dir,
        "legal/legal-review.md",
        "# Legal review\n\n"
        "Risk level: LOW\n"
        "Subject classification: public figure\n"
        "Publication readiness: READY\n",
    )
    return case_dir


@pytest.fixture
def case_dir(tmp_path) -> Path:
    return build_case(tmp_path / "acme")


@pytest.fixture
def ctx() -> GateContext:
    """Context with no OpenAI credential."""
    return GateContext(settings=Settings(openai_api_key=""))


@pytest.fixture
def ctx_with_key() -> GateContext:
    return GateContext(settings=Settings(openai_api_key="sk-test"))


@pytest.fixture
def verified_llm():
    """Patch the claims gate's LLM client to confirm every claim."""
    from unittest.mock import patch

    with patch("casegate.gates.claims.LLMClient") as mock_cls:
        mock_cls.return_value.chat_json.return_value = {
            "verdict": "VERIFIED",
            "confidence": 0.95,
            "explanation": "Stated directly in the annual report.",
        }
        yield mock_cls
