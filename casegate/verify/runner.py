"""Gate runner: executes every registered gate against one case.

Each gate runs on its own daemon thread, at most ``max_workers`` at a time.
Each invocation is isolated: an exception or a timeout becomes a failing
GateReport for that gate only, and the run always yields exactly one report
per registered gate, in registry order.

A gate that exceeds its timeout is abandoned. Its thread stops counting
against ``max_workers`` so queued gates still start, and being a daemon it
never keeps the process alive.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from casegate.gates.base import Gate, GateContext
from casegate.models import AggregateResult, FailureKind, GateReport, GateVerdict
from casegate.verify.errors import GateContractError, RunCancelled
from casegate.verify.registry import GateRegistry, GateSpec, default_registry

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05


@dataclass
class _Outcome:
    returned: object = None
    error: Optional[BaseException] = None
    duration_ms: int = 0


class GateRunner:
    """Executes a registry of gates and folds their verdicts into an AggregateResult."""

    def __init__(
        self,
        registry: GateRegistry | None = None,
        ctx: GateContext | None = None,
        max_workers: int | None = None,
        default_timeout: float | None = None,
    ):
        self.registry = registry if registry is not None else default_registry()
        self.ctx = ctx or GateContext.from_settings()
        self.max_workers = max_workers or self.ctx.settings.worker_count or len(self.registry) or 1
        self.default_timeout = (
            default_timeout if default_timeout is not None else self.ctx.settings.gate_timeout_seconds
        )

    def timeout_for(self, spec: GateSpec) -> float:
        return spec.timeout_seconds if spec.timeout_seconds is not None else self.default_timeout

    def run(self, case_dir: Path | str, cancel_event: threading.Event | None = None) -> AggregateResult:
        """Run every gate and return the aggregate.

        Raises:
            GateContractError: a gate returned something other than a GateVerdict.
            RunCancelled: the run was interrupted; no partial result is returned.
        """
        case_dir = Path(case_dir)
        results: queue.Queue = queue.Queue()
        waiting = list(self.registry.items())
        running: dict[str, tuple[GateSpec, float]] = {}
        reports: dict[str, GateReport] = {}
        run_start = time.monotonic()
        logger.info("Running %d gates for %s", len(self.registry), case_dir)

        try:
            while waiting or running:
                if cancel_event is not None and cancel_event.is_set():
                    raise RunCancelled("Run cancelled")

                while waiting and len(running) < self.max_workers:
                    spec, gate = waiting.pop(0)
                    running[spec.name] = (spec, time.monotonic())
                    threading.Thread(
                        target=self._invoke,
                        args=(spec, gate, case_dir, results),
                        name=f"gate-{spec.name}",
                        daemon=True,
                    ).start()

                try:
                    name, outcome = results.get(timeout=POLL_INTERVAL)
                except queue.Empty:
                    pass
                else:
                    self._collect(name, outcome, running, reports)
                    while True:
                        try:
                            name, outcome = results.get_nowait()
                        except queue.Empty:
                            break
                        self._collect(name, outcome, running, reports)

                now = time.monotonic()
                for name, (spec, begun) in list(running.items()):
                    timeout = self.timeout_for(spec)
                    if now - begun >= timeout:
                        del running[name]
                        logger.warning("Gate %s timed out after %ss", name, timeout)
                        reports[name] = GateReport(
                            gate=name,
                            passed=False,
                            reason=f"Gate timed out after {timeout:g}s",
                            failure_kind=FailureKind.timeout,
                            details={"timeout_seconds": timeout},
                            duration_ms=int(timeout * 1000),
                        )
        except KeyboardInterrupt:
            raise RunCancelled("Run interrupted") from None

        ordered = {name: reports[name] for name in self.registry.names}
        result = AggregateResult(
            case_dir=str(case_dir),
            gates=ordered,
            overall_passed=all(r.passed for r in ordered.values()),
        )
        logger.info(
            "Gate verification for %s: %d/%d passed in %dms",
            case_dir,
            result.summary.passed,
            result.summary.total,
            int((time.monotonic() - run_start) * 1000),
        )
        return result

    def _collect(
        self,
        name: str,
        outcome: _Outcome,
        running: dict[str, tuple[GateSpec, float]],
        reports: dict[str, GateReport],
    ):
        # Late results from gates already reported as timed out are dropped.
        if name not in running:
            logger.debug("Discarding late result from gate %s", name)
            return
        spec, _ = running.pop(name)
        if isinstance(outcome.error, KeyboardInterrupt):
            raise RunCancelled(f"Run interrupted in gate {name}")
        reports[name] = self._report(spec, outcome)

    def _invoke(self, spec: GateSpec, gate: Gate, case_dir: Path, results: queue.Queue):
        begun = time.monotonic()
        logger.debug("Gate %s started", spec.name)
        try:
            returned = gate.evaluate(case_dir, self.ctx)
        except KeyboardInterrupt as e:
            results.put((spec.name, _Outcome(error=e)))
            return
        except (Exception, SystemExit) as e:
            logger.exception("Gate %s raised", spec.name)
            results.put((spec.name, _Outcome(error=e, duration_ms=int((time.monotonic() - begun) * 1000))))
            return
        duration = int((time.monotonic() - begun) * 1000)
        logger.debug("Gate %s finished in %dms", spec.name, duration)
        results.put((spec.name, _Outcome(returned=returned, duration_ms=duration)))

    def _report(self, spec: GateSpec, outcome: _Outcome) -> GateReport:
        if outcome.error is not None:
            err = outcome.error
            return GateReport(
                gate=spec.name,
                passed=False,
                reason=f"Gate execution error: {type(err).__name__}: {err}",
                failure_kind=FailureKind.error,
                details={"exception": type(err).__name__},
                duration_ms=outcome.duration_ms,
            )

        verdict = outcome.returned
        if not isinstance(verdict, GateVerdict):
            raise GateContractError(spec.name, verdict)

        if not verdict.passed:
            logger.warning("Gate %s failed: %s", spec.name, verdict.reason)
        return GateReport(
            gate=spec.name,
            passed=verdict.passed,
            reason=verdict.reason,
            failure_kind=None if verdict.passed else FailureKind(verdict.kind.value),
            details=verdict.details,
            duration_ms=outcome.duration_ms,
            signals=verdict.signals,
        )
