"""Gate capability interface and the execution context threaded through it."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from casegate.config import Settings
from casegate.models import FailureSignal, GapType, GateVerdict


@dataclass(frozen=True)
class GateContext:
    """Explicit configuration for one run.

    Built once at the call boundary (CLI, API, test) and passed to every gate,
    so no gate reads process-wide environment state on its own.
    """

    settings: Settings

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "GateContext":
        if settings is None:
            from casegate.config import settings as default_settings
            settings = default_settings
        return cls(settings=settings)

    @property
    def openai_api_key(self) -> str:
        return self.settings.openai_api_key


class Gate(ABC):
    """One named, independent verification check over a case.

    Gates only read case artifacts and keep no state between invocations.
    """

    name: ClassVar[str]
    title: ClassVar[str] = ""

    @abstractmethod
    def evaluate(self, case_dir: Path, ctx: GateContext) -> GateVerdict:
        """Evaluate the case and return a verdict."""

    def signal(self, type: GapType, message: str = "", **subject: str) -> FailureSignal:
        """Build a FailureSignal emitted by this gate."""
        return FailureSignal(
            type=type,
            source=self.name,
            subject={k: str(v) for k, v in subject.items()},
            message=message,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
