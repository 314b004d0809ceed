"""
Shared request dependencies
"""
from typing import Optional
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session
import hmac

from shotline.config import get_settings
from shotline.database import get_db
from shotline.models.project import Project
from shotline.services.pipeline_dispatcher import PipelineDispatcher, get_pipeline_dispatcher
from shotline.services.timeline_apply import TimelineRegistry


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller id forwarded by the auth gateway in front of this service"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def verify_pipeline_token(x_pipeline_token: Optional[str] = Header(None)):
    """Step callbacks must carry PIPELINE_CALLBACK_TOKEN when one is configured"""
    expected = get_settings().PIPELINE_CALLBACK_TOKEN
    if expected and not hmac.compare_digest(x_pipeline_token or "", expected):
        raise HTTPException(status_code=401, detail="Invalid pipeline token")


def get_dispatcher() -> PipelineDispatcher:
    return get_pipeline_dispatcher()


def get_timeline_registry(request: Request) -> TimelineRegistry:
    return request.app.state.timelines


def get_owned_project(
    project_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> Project:
    """The path's project, when it belongs to the caller"""
    project = (
        db.query(Project)
        .filter(Project.id == project_id, Project.user_id == user_id)
        .first()
    )
    if not project:
        raise HTTPException(status_code=404, detail="Project not found or access denied")
    return project
