"""API routes for PagePilot."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from pagepilot.session.service import PagePilotService

router = APIRouter()


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ExecuteRequest(BaseModel):
    """Body of ``POST /api/execute``."""

    url: str = Field(..., description="Absolute http(s) URL to visit.")
    actions: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Scripted actions, e.g. {\"type\": \"click\", \"selector\": \"#submit\"}.",
    )


class InteractRequest(BaseModel):
    """Body of ``POST /api/interact``."""

    url: str
    action: dict[str, Any]


def _service(request: Request) -> PagePilotService:
    return request.app.state.service


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.post("/api/execute")
async def execute(req: ExecuteRequest, request: Request) -> dict[str, Any]:
    """Visit a URL, run the actions and return the page snapshot.

    Page-level failures are reported in the body (``error``, ``url``,
    ``partial``) with status 200.
    """
    result = await _service(request).execute(req.url, req.actions)
    return result.model_dump(by_alias=True)


@router.post("/api/interact")
async def interact(req: InteractRequest, request: Request) -> dict[str, Any]:
    """Visit a URL and run exactly one action; never cached."""
    outcome = await _service(request).interact_once(req.url, req.action)
    return outcome.model_dump()
