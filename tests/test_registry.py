"""Tests for the gate registry."""

from __future__ import annotations

import pytest

from casegate.gates.base import Gate
from casegate.models import GateVerdict
from casegate.verify.errors import RegistryError
from casegate.verify.registry import GateRegistry, GateSpec, default_registry


class NamedGate(Gate):
    name = "named"
    title = "Named"

    def __init__(self, name: str):
        self.name = name

    def evaluate(self, case_dir, ctx):
        return GateVerdict.ok()


class TestDefaultRegistry:
    def test_nine_gates_in_order(self):
        assert default_registry().names == (
            "coverage",
            "tasks",
            "adversarial",
            "sources",
            "content",
            "claims",
            "contradictions",
            "rigor",
            "legal",
        )

    def test_built_once(self):
        assert default_registry() is default_registry()

    def test_specs_carry_titles(self):
        specs = default_registry().specs()
        assert all(isinstance(s, GateSpec) for s in specs)
        assert all(s.title for s in specs)
        assert default_registry().spec("claims").title == "AI claim verification"

    def test_lookup_returns_gate(self):
        gate = default_registry().get("legal")
        assert gate.name == "legal"


class TestRegistryConstruction:
    def test_duplicate_name_rejected(self):
        with pytest.raises(RegistryError, match="already registered: a"):
            GateRegistry([NamedGate("a"), NamedGate("b"), NamedGate("a")])

    def test_empty_name_rejected(self):
        with pytest.raises(RegistryError):
            GateRegistry([NamedGate("")])

    def test_timeout_override(self):
        registry = GateRegistry([NamedGate("a"), NamedGate("b")], timeouts={"b": 5.0})
        assert registry.spec("a").timeout_seconds is None
        assert registry.spec("b").timeout_seconds == 5.0

    def test_timeout_for_unknown_gate_rejected(self):
        with pytest.raises(RegistryError, match="unknown gates: z"):
            GateRegistry([NamedGate("a")], timeouts={"z": 1.0})

    def test_unknown_gate_suggests_similar(self):
        with pytest.raises(RegistryError, match="Did you mean: claims"):
            default_registry().get("claim")

    def test_preserves_insertion_order(self):
        registry = GateRegistry([NamedGate("z"), NamedGate("a"), NamedGate("m")])
        assert list(registry) == ["z", "a", "m"]
        assert len(registry) == 3
        assert "a" in registry
        assert "q" not in registry

    def test_names_are_immutable(self):
        registry = GateRegistry([NamedGate("a")])
        assert isinstance(registry.names, tuple)
        assert not hasattr(registry, "register")
