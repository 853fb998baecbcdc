"""Download job API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, status

from arcod.auth.models import Caller
from arcod.core.dependencies import get_caller, get_current_user
from arcod.jobs.models import (
    DownloadListResponse,
    JobCreateRequest,
    JobCreateResponse,
    JobStatusResponse,
    StorageUsageResponse,
)
from arcod.jobs.service import JobsService


router = APIRouter(tags=["Downloads"])


@router.post("/downloads", response_model=JobCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_download(
    body: JobCreateRequest,
    caller: Caller = Depends(get_caller),
):
    return await JobsService.create_job(caller, body)


@router.get("/downloads", response_model=DownloadListResponse)
async def list_downloads(current_user: dict = Depends(get_current_user)):
    items = await JobsService.list_downloads(current_user)
    return DownloadListResponse(items=items)


@router.get("/downloads/{job_id}", response_model=JobStatusResponse)
async def get_download(job_id: str = Path(..., description="Job ID")):
    job = await JobsService.get_job(job_id)
    return JobStatusResponse.from_job(job)


@router.post("/downloads/{job_id}/cancel")
async def cancel_download(job_id: str = Path(..., description="Job ID")):
    await JobsService.cancel_job(job_id)
    return {"success": True}


@router.delete("/downloads/{job_id}")
async def delete_download(
    job_id: str = Path(..., description="Job ID"),
    current_user: dict = Depends(get_current_user),
):
    await JobsService.delete_job(job_id, current_user)
    return {"success": True, "message": "Download deleted successfully"}


@router.get("/storage", response_model=StorageUsageResponse)
async def get_storage(current_user: dict = Depends(get_current_user)):
    return await JobsService.storage_usage(current_user)
