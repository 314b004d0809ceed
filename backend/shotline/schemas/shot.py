"""
Shot list schemas
Shapes of the shot records produced by the SHOT_LIST_GENERATOR agent
"""
from pydantic import BaseModel, Field, model_validator
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Allowed drift between the reported duration and end - start (seconds)
DURATION_TOLERANCE = 0.05


class PreciseTiming(BaseModel):
    """Source-relative bounds in seconds"""
    start: float
    end: float
    duration: Optional[float] = None

    @model_validator(mode="after")
    def _reconcile_duration(self):
        span = self.end - self.start
        if self.duration is None:
            self.duration = span
        elif abs(self.duration - span) > DURATION_TOLERANCE:
            logger.warning(
                f"Shot duration {self.duration}s disagrees with end-start {span:.3f}s, using end-start"
            )
            self.duration = span
        return self


class ShotRecord(BaseModel):
    """One decided segment of source footage"""
    chunk_id: str
    shot_number: int = Field(..., ge=1)
    precise_timing: PreciseTiming
    script_segment: Optional[str] = None
    content_preview: Optional[str] = ""
    narrative_purpose: Optional[str] = ""
    cut_reasoning: Optional[str] = ""
    quality_notes: Optional[str] = ""

    class Config:
        # The pipeline may attach extra analysis fields
        extra = "allow"
