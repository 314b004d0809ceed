"""
Shot Matcher Service
Maps shot chunk identifiers to the uploaded videos of a project
"""
from typing import Dict, List, Optional, Tuple, Iterable
import re
import logging

from shotline.models.video import Video

logger = logging.getLogger(__name__)

_EXTENSION = re.compile(r"\.[^/.]+$")
_TIMESTAMP_PREFIX = re.compile(r"^\d+-")

CHUNK_SEPARATOR = "_chunk_"
# Suffix the chunker appends to whole-file chunks
DEFAULT_CHUNK_SUFFIX = "_chunk_1_0.0-0.0s"

TIER_EXACT = "exact"
TIER_PREFIX = "prefix_normalized"
TIER_SUBSTRING = "substring"


def strip_extension(filename: str) -> str:
    return _EXTENSION.sub("", filename)


def strip_timestamp_prefix(name: str) -> str:
    return _TIMESTAMP_PREFIX.sub("", name, count=1)


def chunk_base(chunk_id: str) -> str:
    """IMG_1462_chunk_1_0.0-0.0s -> IMG_1462"""
    return chunk_id.split(CHUNK_SEPARATOR, 1)[0]


class ShotMatcher:
    """
    Tiered chunk_id -> video lookup.

    Chunk ids are machine generated and only loosely follow the uploaded
    filenames, so matching falls through three tiers:

    1. exact: extension-stripped filename (or its default chunk form) equals
       the chunk id or the chunk id's base
    2. prefix_normalized: same comparison with a leading ``<digits>-`` upload
       timestamp removed on both sides
    3. substring: chunk id contains an identifier or vice versa

    The first video to claim an identifier keeps it, so results only depend
    on the order of the videos passed in.
    """

    def __init__(self, videos: Iterable[Video]):
        self._exact: Dict[str, Video] = {}
        self._normalized: Dict[str, Video] = {}
        self._identifiers: List[Tuple[str, Video]] = []

        for video in videos:
            self._register(video)

        logger.debug(
            f"Shot matcher indexed {len(self._identifiers)} identifiers "
            f"({len(self._exact)} exact, {len(self._normalized)} normalized)"
        )

    def _register(self, video: Video):
        if not video.s3_location:
            logger.warning(f"Skipping video with no storage location: {video.id}")
            return

        filename = video.display_name
        base = strip_extension(filename)
        if not base:
            logger.warning(f"Skipping video with no filename: {video.id}")
            return

        self._claim(self._exact, base, video)
        self._claim(self._exact, f"{base}{DEFAULT_CHUNK_SUFFIX}", video)

        normalized = strip_timestamp_prefix(base)
        if normalized and normalized != base:
            self._claim(self._normalized, normalized, video)
            self._claim(self._normalized, f"{normalized}{DEFAULT_CHUNK_SUFFIX}", video)

    def _claim(self, index: Dict[str, Video], identifier: str, video: Video):
        if identifier in index:
            return
        index[identifier] = video
        self._identifiers.append((identifier, video))

    def match_with_tier(self, chunk_id: str) -> Tuple[Optional[Video], Optional[str]]:
        """Return (video, tier) or (None, None) when nothing matches"""
        if not chunk_id:
            return None, None

        candidates = [chunk_id, chunk_base(chunk_id)]

        # Tier 1: exact
        for candidate in candidates:
            if candidate in self._exact:
                return self._exact[candidate], TIER_EXACT

        # Tier 2: strip upload timestamp prefix and retry
        for candidate in candidates:
            normalized = strip_timestamp_prefix(candidate)
            if not normalized:
                continue
            if normalized in self._normalized:
                return self._normalized[normalized], TIER_PREFIX
            if normalized != candidate and normalized in self._exact:
                return self._exact[normalized], TIER_PREFIX

        # Tier 3: substring either way
        for identifier, video in self._identifiers:
            if identifier in chunk_id or chunk_id in identifier:
                return video, TIER_SUBSTRING

        return None, None

    def match(self, chunk_id: str) -> Optional[Video]:
        video, _ = self.match_with_tier(chunk_id)
        return video
