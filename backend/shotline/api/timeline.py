"""
Timeline API Endpoints
Place a finished EDL job's shots on the project timeline
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional, Literal
from pydantic import BaseModel, Field
import logging

from shotline.database import get_db
from shotline.api.deps import get_owned_project, get_timeline_registry
from shotline.models.project import Project
from shotline.services.errors import (
    JobNotFoundError,
    TimelineApplyError,
    TimelineNotReadyError,
    TimelineValidationError,
)
from shotline.services.shot_list_loader import ShotListLoader, ShotListUnavailableError
from shotline.services.timeline_apply import TimelineRegistry, get_applier
from shotline.services.timeline_compiler import TimelineCompiler

logger = logging.getLogger(__name__)
router = APIRouter()


class ApplyShotListRequest(BaseModel):
    job_id: Optional[str] = Field(None, alias="jobId")
    strategy: Literal["direct", "event_batch"] = "direct"
    track_id: Optional[str] = Field(None, alias="trackId")
    itemized: bool = False  # list skipped shots individually

    class Config:
        populate_by_name = True


@router.get("/{project_id}")
async def get_timeline(
    project_id: str,
    project: Project = Depends(get_owned_project),
    timelines: TimelineRegistry = Depends(get_timeline_registry)
):
    context = timelines.get(project_id)
    return {
        "projectId": project_id,
        "revision": context.revision,
        "ready": context.is_ready(),
        "state": context.state.to_payload(),
    }


@router.post("/{project_id}/apply-shot-list")
async def apply_shot_list(
    project_id: str,
    request: ApplyShotListRequest,
    project: Project = Depends(get_owned_project),
    timelines: TimelineRegistry = Depends(get_timeline_registry),
    db: Session = Depends(get_db)
):
    """
    Match, compile and apply a job's shot list in one timeline update.

    Unmatched shots are skipped and counted. Re-applying the same job is a
    no-op. A timeline that never becomes ready returns 409 and nothing is
    applied, so the call can simply be retried.
    """
    loader = ShotListLoader(db)
    try:
        loaded = loader.load(project_id, project.user_id, request.job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found or access denied")
    except ShotListUnavailableError as e:
        raise HTTPException(status_code=404, detail=str(e))

    compiler = TimelineCompiler()
    try:
        compilation = compiler.compile_shot_list(loaded.shots, loaded.videos)
    except TimelineValidationError as e:
        logger.error(f"Compiled timeline for job {loaded.job.id} is invalid: {e}")
        raise HTTPException(status_code=500, detail=f"Invalid timeline: {str(e)}")

    context = timelines.get(project_id)
    applier = get_applier(request.strategy)
    try:
        state = await applier.apply(
            context,
            compilation.items,
            track_id=request.track_id,
            source_id=loaded.job.id
        )
    except TimelineNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TimelineApplyError as e:
        logger.error(f"Timeline apply failed for job {loaded.job.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    response = compilation.summary(itemized=request.itemized)
    response.update({
        "jobId": loaded.job.id,
        "strategy": applier.name,
        "itemIds": state.applied_sources.get(loaded.job.id, []),
        "timelineDuration": state.duration,
        "revision": context.revision,
    })
    return response


@router.post("/{project_id}/undo")
async def undo_timeline(
    project_id: str,
    project: Project = Depends(get_owned_project),
    timelines: TimelineRegistry = Depends(get_timeline_registry)
):
    context = timelines.get(project_id)
    async with context.lock:
        undone = context.undo()
    return {
        "undone": undone,
        "revision": context.revision,
        "state": context.state.to_payload(),
    }
