"""Gate registry: the ordered, read-only table of gates a run executes.

The registry is the single source of truth for which gates exist and in which
order their reports appear. It is built once and never mutated.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Iterator, Optional

from casegate.gates.base import Gate
from casegate.verify.errors import RegistryError


@dataclass(frozen=True)
class GateSpec:
    """Registry metadata for one gate."""

    name: str
    title: str
    timeout_seconds: Optional[float] = None  # None = runner default

    def to_dict(self) -> dict:
        return {"name": self.name, "title": self.title, "timeout_seconds": self.timeout_seconds}


class GateRegistry:
    """Immutable ordered mapping of gate name -> gate."""

    def __init__(self, gates: Iterable[Gate], timeouts: Optional[dict[str, float]] = None):
        entries: dict[str, tuple[GateSpec, Gate]] = {}
        timeouts = timeouts or {}
        for gate in gates:
            name = getattr(gate, "name", "")
            if not name:
                raise RegistryError(f"Gate {gate!r} has no name")
            if name in entries:
                raise RegistryError(f"Gate already registered: {name}")
            spec = GateSpec(name=name, title=gate.title or name, timeout_seconds=timeouts.get(name))
            entries[name] = (spec, gate)
        unknown = set(timeouts) - set(entries)
        if unknown:
            raise RegistryError(f"Timeout given for unknown gates: {', '.join(sorted(unknown))}")
        self._entries = entries
        self._names = tuple(entries)

    @property
    def names(self) -> tuple[str, ...]:
        return self._names

    def specs(self) -> list[GateSpec]:
        return [spec for spec, _ in self._entries.values()]

    def spec(self, name: str) -> GateSpec:
        return self._lookup(name)[0]

    def get(self, name: str) -> Gate:
        return self._lookup(name)[1]

    def items(self) -> list[tuple[GateSpec, Gate]]:
        return list(self._entries.values())

    def suggest_similar(self, unknown: str, limit: int = 3) -> list[str]:
        return difflib.get_close_matches(unknown, self._names, n=limit, cutoff=0.4)

    def _lookup(self, name: str) -> tuple[GateSpec, Gate]:
        try:
            return self._entries[name]
        except KeyError:
            msg = f"Unknown gate: {name}"
            suggestions = self.suggest_similar(name)
            if suggestions:
                msg += f". Did you mean: {', '.join(suggestions)}?"
            raise RegistryError(msg) from None

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"<GateRegistry {list(self._names)}>"


@lru_cache(maxsize=1)
def default_registry() -> GateRegistry:
    """The nine standard termination gates, in evaluation order."""
    from casegate.gates.claims import ClaimsGate
    from casegate.gates.content import ContentGate
    from casegate.gates.review import LegalGate, RigorGate
    from casegate.gates.structural import (
        AdversarialGate,
        ContradictionsGate,
        CoverageGate,
        SourcesGate,
        TasksGate,
    )

    return GateRegistry([
        CoverageGate(),
        TasksGate(),
        AdversarialGate(),
        SourcesGate(),
        ContentGate(),
        ClaimsGate(),
        ContradictionsGate(),
        RigorGate(),
        LegalGate(),
    ])
