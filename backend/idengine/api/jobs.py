from fastapi import APIRouter, Depends, HTTPException

from idengine.api.deps import require_backend_token
from idengine.db import jobs_repo
from idengine.schemas.jobs import JobCreate, JobRecord, JobResponse, JobsResponse
from idengine.services.jobs import enqueue

router = APIRouter()


@router.post("/jobs", response_model=JobResponse)
async def create_job_api(
    request: JobCreate, _: None = Depends(require_backend_token)
) -> JobResponse:
    job = await enqueue(request.kind.value, request.payload)
    return JobResponse(job_id=job["job_id"], status=job["status"])


@router.get("/jobs", response_model=JobsResponse)
async def list_jobs(_: None = Depends(require_backend_token)) -> JobsResponse:
    return JobsResponse(jobs=await jobs_repo.fetch_jobs())


@router.get("/jobs/{job_id}", response_model=JobRecord)
async def get_job(job_id: str, _: None = Depends(require_backend_token)) -> JobRecord:
    job = await jobs_repo.fetch_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="job not found")
    return JobRecord(**job)
