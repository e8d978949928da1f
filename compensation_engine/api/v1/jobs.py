"""Batch job status and manual triggers for operational recovery"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from compensation_engine.api.dependencies import get_request_id, get_scheduler
from compensation_engine.api.v1.schemas import JobRunResponse, JobStatusItem
from compensation_engine.domain.exceptions import UnknownJobError
from compensation_engine.services.scheduler import DistributionScheduler

router = APIRouter()


@router.get("/jobs", response_model=List[JobStatusItem])
def list_jobs(scheduler: DistributionScheduler = Depends(get_scheduler)):
    return [JobStatusItem(**entry) for entry in scheduler.status()]


@router.post("/jobs/{job_name}/trigger", response_model=JobRunResponse)
def trigger_job(
    job_name: str,
    request: Request,
    scheduler: DistributionScheduler = Depends(get_scheduler),
):
    """
    Run a batch job now and return its run summary.

    A job already in progress is not started twice; the response then has
    status "skipped".
    """
    request_id = get_request_id(request)
    try:
        summary = scheduler.trigger(job_name)
    except UnknownJobError as e:
        raise HTTPException(status_code=404, detail=str(e))

    logging.info(f"Job {job_name} triggered via API", extra={"request_id": request_id, "status": summary.status})
    return JobRunResponse(
        job=summary.job,
        status=summary.status,
        total=summary.total,
        processed=summary.processed,
        updated=summary.updated,
        skipped=summary.skipped,
        errors=summary.errors,
        failed_member_ids=summary.failed_member_ids,
        total_amount=summary.total_amount,
        duration_seconds=summary.duration_seconds,
    )
