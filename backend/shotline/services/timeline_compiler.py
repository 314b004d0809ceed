"""
Timeline Compiler Service
Converts an ordered shot list into contiguous timeline placements
"""
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
import uuid
import logging

from shotline.config import get_settings
from shotline.models.video import Video
from shotline.schemas.shot import ShotRecord
from shotline.schemas.timeline import (
    CompilationResult,
    SkippedShot,
    TimelineItem,
    TimeRange,
    VideoDetails,
)
from shotline.services.errors import TimelineValidationError
from shotline.services.shot_matcher import ShotMatcher
from shotline.services.storage import StorageService

logger = logging.getLogger(__name__)
settings = get_settings()

SKIP_NO_MATCH = "no_match"
SKIP_NON_POSITIVE = "non_positive_duration"


def _new_item_id() -> str:
    return uuid.uuid4().hex


def to_ms(seconds: float) -> int:
    return int(round(seconds * 1000))


class TimelineCompiler:
    """
    Places matched shots back to back on the output timeline.

    Placement values only depend on the inputs; item ids come from
    ``id_factory`` and differ between runs unless the caller supplies a
    deterministic factory.
    """

    def __init__(
        self,
        id_factory: Optional[Callable[[], str]] = None,
        url_resolver: Optional[Callable[[Optional[str]], str]] = None,
        width: Optional[int] = None,
        height: Optional[int] = None
    ):
        self.id_factory = id_factory or _new_item_id
        self.url_resolver = url_resolver or StorageService.resolve_url
        self.width = width or settings.TIMELINE_WIDTH
        self.height = height or settings.TIMELINE_HEIGHT

    def compile(
        self,
        pairs: Sequence[Tuple[ShotRecord, Video]]
    ) -> CompilationResult:
        """
        Compile (shot, video) pairs, already sorted by shot_number.

        Args:
            pairs: Matched shots in placement order

        Returns:
            CompilationResult with contiguous items starting at 0
        """
        items: List[TimelineItem] = []
        skipped: List[SkippedShot] = []
        position_ms = 0

        for shot, video in pairs:
            timing = shot.precise_timing
            trim_from = to_ms(timing.start)
            trim_to = to_ms(timing.end)
            duration_ms = trim_to - trim_from

            if duration_ms <= 0:
                logger.warning(
                    f"Skipping shot {shot.shot_number} ({shot.chunk_id}): "
                    f"non-positive duration {duration_ms}ms"
                )
                skipped.append(SkippedShot(
                    shot_number=shot.shot_number,
                    chunk_id=shot.chunk_id,
                    reason=SKIP_NON_POSITIVE
                ))
                continue

            items.append(self._build_item(shot, video, position_ms, trim_from, trim_to))
            position_ms += duration_ms

        self.validate(items)

        return CompilationResult(
            items=items,
            skipped=skipped,
            total_shots=len(pairs),
            duration_ms=position_ms
        )

    def compile_shot_list(
        self,
        shots: Iterable[ShotRecord],
        videos: Iterable[Video]
    ) -> CompilationResult:
        """
        Match every shot against the project's videos and compile the matches.

        Unmatched shots are reported in ``skipped`` and take no room on the
        timeline.
        """
        shots = sorted(shots, key=lambda s: s.shot_number)
        matcher = ShotMatcher(videos)

        pairs: List[Tuple[ShotRecord, Video]] = []
        unmatched: List[SkippedShot] = []
        for shot in shots:
            video, tier = matcher.match_with_tier(shot.chunk_id)
            if video is None:
                logger.warning(f"No matching video found for shot {shot.shot_number} ({shot.chunk_id})")
                unmatched.append(SkippedShot(
                    shot_number=shot.shot_number,
                    chunk_id=shot.chunk_id,
                    reason=SKIP_NO_MATCH
                ))
                continue
            logger.debug(f"Shot {shot.shot_number} matched video {video.id} ({tier})")
            pairs.append((shot, video))

        result = self.compile(pairs)
        result.skipped = sorted(unmatched + result.skipped, key=lambda s: s.shot_number)
        result.total_shots = len(shots)

        logger.info(
            f"Compiled {len(result.items)}/{result.total_shots} shots "
            f"({result.duration_ms}ms, {result.skipped_count} skipped)"
        )
        return result

    def _build_item(
        self,
        shot: ShotRecord,
        video: Video,
        position_ms: int,
        trim_from: int,
        trim_to: int
    ) -> TimelineItem:
        duration_ms = trim_to - trim_from
        src = self.url_resolver(video.s3_location)

        metadata: Dict[str, Any] = {
            "previewUrl": video.thumbnail_url or src,
            "filename": shot.chunk_id,
            "videoId": video.id,
            "shotNumber": shot.shot_number,
            "scriptSegment": shot.script_segment,
            "contentPreview": shot.content_preview,
            "narrativePurpose": shot.narrative_purpose,
            "cutReasoning": shot.cut_reasoning,
            "qualityNotes": shot.quality_notes,
        }

        return TimelineItem(
            id=self.id_factory(),
            name=f"Shot {shot.shot_number}: {shot.content_preview or ''}".rstrip(": "),
            type="video",
            display=TimeRange(start=position_ms, end=position_ms + duration_ms),
            trim=TimeRange(start=trim_from, end=trim_to),
            duration=duration_ms,
            details=VideoDetails(src=src, width=self.width, height=self.height),
            metadata=metadata,
            playback_rate=1
        )

    @staticmethod
    def validate(items: Sequence[TimelineItem]):
        """Check placement invariants before items leave the compiler"""
        errors = []
        expected_from = 0
        seen_ids = set()

        for i, item in enumerate(items):
            if item.display.start != expected_from:
                errors.append(
                    f"Item {i}: display.from {item.display.start} != {expected_from}"
                )
            if item.display.length != item.duration:
                errors.append(f"Item {i}: display length {item.display.length} != duration {item.duration}")
            if item.trim.length != item.duration:
                errors.append(f"Item {i}: trim length {item.trim.length} != duration {item.duration}")
            if item.duration <= 0:
                errors.append(f"Item {i}: duration {item.duration} is not positive")
            if item.id in seen_ids:
                errors.append(f"Item {i}: duplicate id {item.id}")
            seen_ids.add(item.id)
            expected_from = item.display.end

        if errors:
            raise TimelineValidationError("; ".join(errors))
