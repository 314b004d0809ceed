"""
EDL Generation API Endpoints
Async EDL generation: submit, poll, pipeline step callbacks, shot list
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field
import logging

from shotline.database import get_db
from shotline.api.deps import get_current_user_id, get_dispatcher, verify_pipeline_token
from shotline.services.edl_jobs import EdlJobService
from shotline.services.edl_submission import EdlSubmissionGate
from shotline.services.errors import (
    EdlValidationError,
    InvalidStateTransitionError,
    JobNotFoundError,
    JobPersistenceError,
    PipelineHandoffError,
    ProjectNotFoundError,
)
from shotline.services.pipeline_dispatcher import PipelineDispatcher
from shotline.services.shot_list_loader import ShotListLoader, ShotListUnavailableError

logger = logging.getLogger(__name__)
router = APIRouter()


# Request Models
class GenerateEdlRequest(BaseModel):
    """Body of POST generate-edl-async"""
    user_intent: Optional[str] = Field(None, alias="userIntent")
    script_content: Optional[str] = Field(None, alias="scriptContent")

    class Config:
        populate_by_name = True


class PipelineResults(BaseModel):
    """Final output reported with the last step"""
    shot_list: List[Dict[str, Any]] = Field(default_factory=list, alias="shotList")
    final_duration: Optional[float] = Field(None, alias="finalDuration")
    script_coverage: Optional[float] = Field(None, alias="scriptCoverage")
    total_chunks: Optional[int] = Field(None, alias="totalChunks")

    class Config:
        populate_by_name = True


class StepUpdateRequest(BaseModel):
    """Progress report from the external pipeline"""
    status: Literal["running", "completed", "failed"]
    error_message: Optional[str] = Field(None, alias="errorMessage")
    results: Optional[PipelineResults] = None

    class Config:
        populate_by_name = True


@router.post("/{project_id}/generate-edl-async")
def generate_edl_async(
    project_id: str,
    request: GenerateEdlRequest,
    user_id: str = Depends(get_current_user_id),
    dispatcher: PipelineDispatcher = Depends(get_dispatcher),
    db: Session = Depends(get_db)
):
    """
    Start EDL generation for a project.

    Returns once the pipeline has accepted the job; the pipeline runs out of
    process. Runs in the threadpool: dispatch blocks until the pipeline answers.
    A project with a pending/running job gets that job back instead of a
    new one.

    Returns:
        {"jobId": str, "status": str, "message": str}
    """
    gate = EdlSubmissionGate(db, dispatcher)
    try:
        result = gate.submit(project_id, user_id, request.user_intent, request.script_content)
    except EdlValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProjectNotFoundError:
        raise HTTPException(status_code=404, detail="Project not found or access denied")
    except JobPersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except PipelineHandoffError as e:
        return JSONResponse(
            status_code=500,
            content={
                "error": "EDL generation failed",
                "message": e.reason,
                "jobId": e.job_id,
            },
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error starting EDL generation: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return JSONResponse(
        status_code=201 if result.created else 200,
        content={
            "jobId": result.job_id,
            "status": result.status,
            "message": result.message,
        },
    )


@router.get("/{project_id}/generate-edl-async")
async def get_edl_job_status(
    project_id: str,
    job_id: Optional[str] = Query(None, alias="jobId"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Poll an EDL generation job.

    Clients re-poll (every ~2s) while status is pending/running.
    """
    if not job_id:
        raise HTTPException(status_code=400, detail="Job ID is required")

    jobs = EdlJobService(db)
    try:
        job = jobs.get_job(job_id, user_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found or access denied")

    if job.project_id != project_id:
        raise HTTPException(status_code=404, detail="Job not found or access denied")

    return jobs.snapshot(job)


@router.post(
    "/{project_id}/generate-edl-async/{job_id}/steps/{step_number}",
    dependencies=[Depends(verify_pipeline_token)]
)
async def report_edl_step(
    project_id: str,
    job_id: str,
    step_number: int,
    update: StepUpdateRequest,
    db: Session = Depends(get_db)
):
    """
    Step callback for the external pipeline.

    running/completed/failed per step; the completion of the last step
    carries the shot list and summary in ``results``.
    """
    jobs = EdlJobService(db)
    try:
        job = jobs.get_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    if job.project_id != project_id:
        raise HTTPException(status_code=404, detail="Job not found")
    if step_number < 1 or step_number > len(job.steps):
        raise HTTPException(status_code=400, detail=f"Invalid step number: {step_number}")

    try:
        if update.status == "running":
            jobs.start_step(job, step_number)
        elif update.status == "completed":
            results = update.results.model_dump() if update.results else None
            jobs.complete_step(job, step_number, results)
        else:
            jobs.fail_step(job, step_number, update.error_message or "Pipeline step failed")
        db.commit()
    except InvalidStateTransitionError as e:
        db.rollback()
        logger.warning(f"Rejected step update for job {job_id}: {e}")
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        # Malformed shot list in results
        db.rollback()
        raise HTTPException(status_code=422, detail=str(e))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error recording step update for job {job_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record step update")

    return jobs.snapshot(job)


@router.get("/{project_id}/shot-list")
async def get_shot_list(
    project_id: str,
    job_id: Optional[str] = Query(None, alias="jobId"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Shot list of a job (default: the project's latest completed job)"""
    loader = ShotListLoader(db)
    try:
        loaded = loader.load(project_id, user_id, job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found or access denied")
    except ShotListUnavailableError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {
        "jobId": loaded.job.id,
        "shotCount": len(loaded.shots),
        "totalDuration": loaded.total_duration,
        "shots": [shot.model_dump() for shot in loaded.shots],
    }
