"""Retry job routes for the metasync API."""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from metasync.api.routes.objects import ClientDep

router = APIRouter(prefix="/v1", tags=["Jobs"])


class JobResponse(BaseModel):
    """Retry job response model."""

    job_id: str
    action: str
    status: str
    attempts: int
    next_attempt_at: float | None = None
    last_error: str | None = None
    result: dict[str, Any] | None = None
    created_at: str
    updated_at: str


class CancelResponse(BaseModel):
    """Outcome of a cancel request."""

    job_id: str
    canceled: bool


@router.get("/jobs/{job_id}", response_model=JobResponse)
def get_job(job_id: str, client: ClientDep) -> JobResponse:
    """Return a retry job's state."""
    job = client.job_status(job_id).to_dict()
    return JobResponse(**{name: job[name] for name in JobResponse.model_fields})


@router.delete("/jobs/{job_id}", response_model=CancelResponse)
def cancel_job(job_id: str, client: ClientDep) -> CancelResponse:
    """Cancel an in-progress retry job; canceled is false if it already finished."""
    return CancelResponse(job_id=job_id, canceled=client.cancel_job(job_id))
