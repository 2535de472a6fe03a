"""FastAPI web API for casegate.

Exposes gate verification and gap synthesis over HTTP. Case names are
resolved under ``settings.cases_root``; nothing outside it is readable.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from casegate.config import settings
from casegate.gates.base import GateContext
from casegate.models import Gap, GapList, GapStats, RemediationTask, VerificationReport
from casegate.verify import service
from casegate.verify.errors import CasegateError, CaseNotFoundError, RunCancelled
from casegate.verify.registry import GateSpec, default_registry
from casegate.verify.report import build_remediation_tasks

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"

app = FastAPI(
    title="casegate",
    version=VERSION,
    description="Termination gates and gap backlog for research cases.",
)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

_bearer_scheme = HTTPBearer(auto_error=False)


def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
):
    """Require a valid Bearer token when CASEGATE_API_KEY is set."""
    expected = settings.casegate_api_key
    if not expected:
        return  # auth disabled – no key configured
    if not credentials or credentials.credentials != expected:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class CaseRequest(BaseModel):
    case: str = Field(..., description="Case directory, relative to the configured cases root")


class VerifyRequest(CaseRequest):
    fix: bool = Field(False, description="Include remediation tasks for blocking gaps")


class VerifyResponse(BaseModel):
    report: VerificationReport
    remediation_tasks: Optional[list[RemediationTask]] = None


class GapsResponse(BaseModel):
    case_dir: str
    stats: GapStats
    blocking: list[Gap]
    advisory: list[Gap]


class GateInfo(BaseModel):
    name: str
    title: str
    timeout_seconds: float


class HealthResponse(BaseModel):
    status: str
    version: str
    gates: int
    openai_configured: bool


def resolve_case(case: str) -> Path:
    """Map a request's case name onto a directory inside the cases root."""
    root = Path(settings.cases_root).resolve()
    path = (root / case).resolve()
    if path != root and root not in path.parents:
        raise HTTPException(status_code=400, detail="Case path escapes the cases root")
    if not path.is_dir():
        raise HTTPException(status_code=404, detail=f"Case not found: {case}")
    return path


def _gate_info(spec: GateSpec) -> GateInfo:
    timeout = spec.timeout_seconds if spec.timeout_seconds is not None else settings.gate_timeout_seconds
    return GateInfo(name=spec.name, title=spec.title, timeout_seconds=timeout)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health", response_model=HealthResponse)
def health_check():
    """Health check – verifies the service is running and shows config status."""
    return HealthResponse(
        status="ok",
        version=VERSION,
        gates=len(default_registry()),
        openai_configured=bool(settings.openai_api_key),
    )


@app.get("/gates", response_model=list[GateInfo], dependencies=[Depends(verify_api_key)])
def list_gates():
    """Registered gates in evaluation order."""
    return [_gate_info(spec) for spec in default_registry().specs()]


@app.post("/verify", response_model=VerifyResponse, dependencies=[Depends(verify_api_key)])
def verify_endpoint(request: VerifyRequest):
    """Run every gate against a case and return the full report."""
    case_dir = resolve_case(request.case)
    try:
        report = service.verify_case(case_dir, ctx=GateContext.from_settings(settings))
    except (CaseNotFoundError, RunCancelled) as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except CasegateError:
        logger.exception("Verification failed for %s", case_dir)
        raise HTTPException(status_code=500, detail="Verification failed. Check server logs.")

    tasks = None
    if request.fix:
        gaps = GapList(blocking=report.blocking or [], advisory=report.advisory or [])
        tasks = build_remediation_tasks(gaps)
    return VerifyResponse(report=report, remediation_tasks=tasks)


@app.post("/gaps", response_model=GapsResponse, dependencies=[Depends(verify_api_key)])
def gaps_endpoint(request: CaseRequest):
    """Run the gates and return the current gap backlog."""
    case_dir = resolve_case(request.case)
    try:
        gaps = service.generate_gaps(case_dir, ctx=GateContext.from_settings(settings))
    except (CaseNotFoundError, RunCancelled) as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except CasegateError:
        logger.exception("Gap generation failed for %s", case_dir)
        raise HTTPException(status_code=500, detail="Gap generation failed. Check server logs.")

    return GapsResponse(
        case_dir=str(case_dir),
        stats=gaps.stats,
        blocking=gaps.blocking,
        advisory=gaps.advisory,
    )
