"""Centralised configuration loaded from environment variables / .env file."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OpenAI (claims gate)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"

    # Logging
    log_level: str = "INFO"

    # Runner
    gate_timeout_seconds: float = 120.0
    gate_max_workers: int = 0  # 0 = one worker per registered gate

    # Case layout
    required_files: list[str] = ["summary.md"]
    files_to_scan: list[str] = [
        "summary.md",
        "fact-check.md",
        "timeline.md",
        "people.md",
        "positions.md",
        "statements.md",
        "organizations.md",
        "theories.md",
    ]

    # Coverage thresholds (1.0 = 100%, no partial credit)
    people_investigated_threshold: float = 1.0
    entities_investigated_threshold: float = 1.0
    claims_verified_threshold: float = 1.0
    sources_captured_threshold: float = 1.0

    # Rigor checkpoint
    rigor_min_checks: int = 20
    rigor_max_gaps: int = 2
    rigor_task_created_ratio: float = 0.8

    # Content / claims verification
    content_verified_ratio: float = 0.5
    content_partial_ratio: float = 0.2
    claims_error_ratio: float = 0.05
    claims_min_error_allowance: int = 3
    claims_max_evidence_chars: int = 30000

    # HTTP API
    cases_root: Path = Path("./cases")
    casegate_api_key: str = ""

    @property
    def worker_count(self) -> int | None:
        """Executor size, or None to size it from the registry."""
        return self.gate_max_workers if self.gate_max_workers > 0 else None


settings = Settings()
