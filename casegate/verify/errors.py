"""Exceptions raised by the orchestration core.

Failures inside a gate never surface here: the runner converts them into
failing GateReports. These exceptions cover defects in the core or its
collaborators, and whole-run cancellation.
"""

from __future__ import annotations


class CasegateError(Exception):
    """Base class for orchestration errors."""


class RegistryError(CasegateError):
    """Invalid gate registration (duplicate or empty name, unknown gate)."""


class GateContractError(CasegateError):
    """A gate returned something other than a GateVerdict."""

    def __init__(self, gate: str, returned: object):
        self.gate = gate
        self.returned = returned
        super().__init__(
            f"Gate '{gate}' returned {type(returned).__name__}, expected GateVerdict"
        )


class ReportShapeError(CasegateError):
    """The aggregator was given results that do not match the registry."""


class RunCancelled(CasegateError):
    """The run was interrupted; partial results were discarded."""


class CaseNotFoundError(CasegateError):
    """The case location does not exist or is not a directory."""

    def __init__(self, case_dir: str):
        self.case_dir = case_dir
        super().__init__(f"Case directory not found: {case_dir}")
