"""
Timeline Apply Service
Applies compiled shot lists to a project's timeline in one state transition
"""
from collections import OrderedDict, defaultdict
from typing import Any, Callable, Dict, List, Optional, Sequence
import asyncio
import logging

from shotline.config import get_settings
from shotline.schemas.timeline import TimelineItem, TimelineState, Track
from shotline.services.errors import TimelineApplyError, TimelineNotReadyError

logger = logging.getLogger(__name__)

EDITOR_PREFIX = "editor"
EDITOR_ADD_MULTIPLE_VIDEOS = f"{EDITOR_PREFIX}:addMultipleVideos"


def merge_items(
    state: TimelineState,
    items: Sequence[TimelineItem],
    track_id: str,
    source_id: Optional[str] = None
) -> TimelineState:
    """
    Build the state that results from appending ``items`` to ``track_id``.

    The input state is not modified. The track is created when missing and
    the duration grows to cover the last item.
    """
    new_state = state.model_copy(deep=True)
    item_ids = [item.id for item in items]

    track = new_state.track(track_id)
    if track is None:
        new_state.tracks.append(Track(
            id=track_id,
            type="main",
            items=item_ids,
            index=len(new_state.tracks),
        ))
    else:
        track.items = track.items + item_ids

    for item in items:
        new_state.track_items_map[item.id] = item.model_copy(deep=True)
    new_state.track_item_ids = new_state.track_item_ids + item_ids
    if source_id:
        new_state.applied_sources[source_id] = item_ids

    if items:
        new_state.duration = max(new_state.duration, max(item.display.end for item in items))
    return new_state


class TimelineEventBus:
    """Minimal synchronous event dispatch scoped to one timeline"""

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = defaultdict(list)

    def subscribe(self, event: str, handler: Callable[[Dict[str, Any], Dict[str, Any]], None]):
        self._handlers[event].append(handler)

    def dispatch(self, event: str, payload: Optional[Dict[str, Any]] = None, options: Optional[Dict[str, Any]] = None) -> int:
        """Run handlers in subscription order; returns how many ran"""
        handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            handler(payload or {}, options or {})
        return len(handlers)


class TimelineContext:
    """
    Owned handle on one editing timeline.

    ``replace_state`` is the only writer: each call swaps the whole state
    and records a single undo entry. Callers hold the handle (see
    TimelineRegistry); there is no module level timeline.
    """

    def __init__(
        self,
        timeline_id: str,
        width: int = 1080,
        height: int = 1920,
        ready: bool = True
    ):
        self.timeline_id = timeline_id
        self._state = TimelineState(size={"width": width, "height": height})
        self._history: List[TimelineState] = []
        self._ready = ready
        self.revision = 0
        self.lock = asyncio.Lock()
        self.events = TimelineEventBus()
        self.events.subscribe(EDITOR_ADD_MULTIPLE_VIDEOS, self._on_add_multiple_videos)

    @property
    def state(self) -> TimelineState:
        return self._state

    @property
    def history_depth(self) -> int:
        return len(self._history)

    def is_ready(self) -> bool:
        return self._ready

    def mark_ready(self, ready: bool = True):
        self._ready = ready

    def replace_state(self, new_state: TimelineState, kind: str = "update", update_history: bool = True):
        if update_history:
            self._history.append(self._state)
        self._state = new_state
        self.revision += 1
        logger.debug(f"Timeline {self.timeline_id} state replaced ({kind}), revision {self.revision}")

    def undo(self) -> bool:
        if not self._history:
            return False
        self._state = self._history.pop()
        self.revision += 1
        logger.info(f"Timeline {self.timeline_id} undo, revision {self.revision}")
        return True

    def _on_add_multiple_videos(self, payload: Dict[str, Any], options: Dict[str, Any]):
        items = [TimelineItem.model_validate(item) for item in payload.get("trackItems", [])]
        track_id = options.get("resourceId") or get_settings().TIMELINE_TRACK_ID
        # The whole batch folds into one state update
        new_state = merge_items(self._state, items, track_id, options.get("sourceId"))
        self.replace_state(new_state, kind="add")


class TimelineApplier:
    """
    Base apply strategy.

    ``apply`` waits for the timeline to become ready, then makes all items
    visible in one step or raises with the state untouched. Applies on the
    same context run one at a time.
    """

    name = "base"

    def __init__(self, poll_interval: Optional[float] = None, ready_timeout: Optional[float] = None):
        settings = get_settings()
        self.poll_interval = poll_interval if poll_interval is not None else settings.TIMELINE_READY_POLL_SECONDS
        self.ready_timeout = ready_timeout if ready_timeout is not None else settings.TIMELINE_READY_TIMEOUT_SECONDS

    async def apply(
        self,
        context: TimelineContext,
        items: Sequence[TimelineItem],
        track_id: Optional[str] = None,
        source_id: Optional[str] = None
    ) -> TimelineState:
        """
        Args:
            items: Compiled items in placement order
            track_id: Target track, created when missing
            source_id: Identifies the batch (e.g. the EDL job id). A source
                that is already on the timeline is not applied twice.
        """
        track_id = track_id or get_settings().TIMELINE_TRACK_ID
        items = list(items)

        async with context.lock:
            await self._wait_until_ready(context)

            if source_id and source_id in context.state.applied_sources:
                logger.info(f"Source {source_id} already applied to timeline {context.timeline_id}")
                return context.state

            if not items:
                logger.warning(f"No items to apply to timeline {context.timeline_id}")
                return context.state

            revision = context.revision
            self._apply(context, items, track_id, source_id)
            if context.revision == revision:
                raise TimelineApplyError(
                    f"Timeline {context.timeline_id} did not accept {len(items)} items ({self.name})"
                )

            logger.info(
                f"Applied {len(items)} items to timeline {context.timeline_id} "
                f"track {track_id} ({self.name}), duration {context.state.duration}ms"
            )
            return context.state

    async def _wait_until_ready(self, context: TimelineContext):
        loop = asyncio.get_running_loop()
        started = loop.time()
        while not context.is_ready():
            waited = loop.time() - started
            if waited >= self.ready_timeout:
                raise TimelineNotReadyError(context.timeline_id, waited)
            logger.debug(f"Timeline {context.timeline_id} not ready, waiting...")
            await asyncio.sleep(self.poll_interval)

    def _apply(self, context: TimelineContext, items: List[TimelineItem], track_id: str, source_id: Optional[str]):
        raise NotImplementedError


class DirectStateApplier(TimelineApplier):
    """Compute the merged state and replace it in one call"""

    name = "direct"

    def _apply(self, context: TimelineContext, items: List[TimelineItem], track_id: str, source_id: Optional[str]):
        new_state = merge_items(context.state, items, track_id, source_id)
        context.replace_state(new_state, kind="add")


class EventBatchApplier(TimelineApplier):
    """Dispatch one add-multiple event; the timeline's handler folds the batch"""

    name = "event_batch"

    def _apply(self, context: TimelineContext, items: List[TimelineItem], track_id: str, source_id: Optional[str]):
        handled = context.events.dispatch(
            EDITOR_ADD_MULTIPLE_VIDEOS,
            payload={"trackItems": [item.to_payload() for item in items]},
            options={"resourceId": track_id, "scaleMode": "fit", "sourceId": source_id},
        )
        if not handled:
            raise TimelineApplyError(f"No handler for {EDITOR_ADD_MULTIPLE_VIDEOS} on timeline {context.timeline_id}")


APPLIERS = {
    DirectStateApplier.name: DirectStateApplier,
    EventBatchApplier.name: EventBatchApplier,
}


def get_applier(strategy: str = DirectStateApplier.name, **kwargs) -> TimelineApplier:
    try:
        return APPLIERS[strategy](**kwargs)
    except KeyError:
        raise ValueError(f"Unknown apply strategy: {strategy}. Use one of {sorted(APPLIERS)}")


class TimelineRegistry:
    """
    Holds one TimelineContext per project.

    At most ``max_contexts`` are kept; the least recently used idle context
    is dropped first, taking its undo history with it.
    """

    def __init__(
        self,
        width: Optional[int] = None,
        height: Optional[int] = None,
        max_contexts: Optional[int] = None
    ):
        settings = get_settings()
        self.width = width or settings.TIMELINE_WIDTH
        self.height = height or settings.TIMELINE_HEIGHT
        self.max_contexts = max_contexts or settings.TIMELINE_MAX_CONTEXTS
        self._contexts: "OrderedDict[str, TimelineContext]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._contexts)

    def __contains__(self, project_id: str) -> bool:
        return project_id in self._contexts

    def get(self, project_id: str) -> TimelineContext:
        context = self._contexts.get(project_id)
        if context is not None:
            self._contexts.move_to_end(project_id)
            return context

        context = TimelineContext(project_id, width=self.width, height=self.height)
        self._contexts[project_id] = context
        self._evict()
        return context

    def _evict(self):
        # The newest entry is the one being handed out
        for project_id in list(self._contexts)[:-1]:
            if len(self._contexts) <= self.max_contexts:
                return
            if self._contexts[project_id].lock.locked():
                continue
            del self._contexts[project_id]
            logger.info(f"Evicted timeline {project_id} ({len(self._contexts)} kept)")
