"""
Timeline item schemas
Placement units understood by the editing timeline (all times in milliseconds)
"""
from pydantic import BaseModel, Field
from typing import Dict, Any, List


class TimeRange(BaseModel):
    start: int = Field(..., alias="from")
    end: int = Field(..., alias="to")

    class Config:
        populate_by_name = True

    @property
    def length(self) -> int:
        return self.end - self.start


class VideoDetails(BaseModel):
    src: str
    width: int = 1080
    height: int = 1920
    volume: float = 1
    left: int = 0
    top: int = 0


class TimelineItem(BaseModel):
    id: str
    name: str = ""
    type: str = "video"
    display: TimeRange
    trim: TimeRange
    duration: int
    details: VideoDetails
    metadata: Dict[str, Any] = {}
    playback_rate: float = Field(1, alias="playbackRate")

    class Config:
        populate_by_name = True

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with the timeline's wire names (from/to, playbackRate)"""
        return self.model_dump(by_alias=True)


class Track(BaseModel):
    id: str
    type: str = "main"
    items: List[str] = []
    accepts: List[str] = ["video", "image"]
    index: int = 0


class SkippedShot(BaseModel):
    shot_number: int
    chunk_id: str
    reason: str  # "no_match" | "non_positive_duration"


class CompilationResult(BaseModel):
    items: List[TimelineItem] = []
    skipped: List[SkippedShot] = []
    total_shots: int = 0
    duration_ms: int = 0

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def message(self) -> str:
        if not self.skipped:
            return f"Compiled {len(self.items)} of {self.total_shots} shots"
        return f"Could not match {self.skipped_count} of {self.total_shots} shots"

    def summary(self, itemized: bool = False) -> Dict[str, Any]:
        result = {
            "applied": len(self.items),
            "skipped": self.skipped_count,
            "totalShots": self.total_shots,
            "durationMs": self.duration_ms,
            "message": self.message,
        }
        if itemized:
            result["skippedShots"] = [s.model_dump() for s in self.skipped]
        return result



class TimelineState(BaseModel):
    """Whole timeline snapshot; replaced as a unit, never edited in place"""
    tracks: List[Track] = []
    track_items_map: Dict[str, TimelineItem] = {}
    track_item_ids: List[str] = []
    duration: int = 0
    size: Dict[str, int] = {"width": 1080, "height": 1920}
    # source id (e.g. EDL job id) -> item ids it contributed
    applied_sources: Dict[str, List[str]] = {}

    def track(self, track_id: str):
        for track in self.tracks:
            if track.id == track_id:
                return track
        return None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "tracks": [t.model_dump() for t in self.tracks],
            "trackItemsMap": {k: v.to_payload() for k, v in self.track_items_map.items()},
            "trackItemIds": list(self.track_item_ids),
            "duration": self.duration,
            "size": dict(self.size),
            "appliedSources": {k: list(v) for k, v in self.applied_sources.items()},
        }
