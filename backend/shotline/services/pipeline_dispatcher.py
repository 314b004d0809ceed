"""
Pipeline Dispatcher
Hands EDL jobs to the external multi-agent pipeline (fire and forget)
"""
from typing import Any, Dict, Optional
import httpx
import logging

from shotline.config import get_settings

logger = logging.getLogger(__name__)


class PipelineDispatchError(Exception):
    """The pipeline did not accept the job"""
    pass


class PipelineDispatcher:
    """
    Base dispatcher. ``dispatch`` returns once the pipeline has accepted
    the payload; results arrive later through the step callbacks.
    """

    def dispatch(self, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class HttpPipelineDispatcher(PipelineDispatcher):
    """POST the job to the pipeline endpoint; any 2xx counts as accepted"""

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.client = client

    def dispatch(self, payload: Dict[str, Any]) -> None:
        if not self.endpoint:
            raise PipelineDispatchError("EDL_PIPELINE_ENDPOINT is not configured")

        logger.info(
            f"Calling EDL pipeline for job {payload.get('job_id')}: "
            f"project={payload.get('project_id')}, "
            f"script_content_length={len(payload.get('script_content') or '')}"
        )

        try:
            if self.client is not None:
                response = self.client.post(self.endpoint, json=payload, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.endpoint, json=payload)
        except httpx.HTTPError as e:
            raise PipelineDispatchError(f"Pipeline request failed: {e}") from e

        if not response.is_success:
            raise PipelineDispatchError(
                f"Pipeline returned {response.status_code}: {response.reason_phrase}"
            )

        logger.info(f"EDL pipeline accepted job {payload.get('job_id')} ({response.status_code})")


class CeleryPipelineDispatcher(PipelineDispatcher):
    """Publish the job to a worker pool listening on the Celery broker"""

    def __init__(self, task_name: str, celery=None):
        self.task_name = task_name
        self.celery = celery

    def dispatch(self, payload: Dict[str, Any]) -> None:
        celery = self.celery
        if celery is None:
            # Import here to avoid connecting to the broker at import time
            from shotline.workers.celery_app import celery_app
            celery = celery_app

        try:
            result = celery.send_task(self.task_name, kwargs=payload)
        except Exception as e:
            raise PipelineDispatchError(f"Failed to publish {self.task_name}: {e}") from e

        logger.info(f"Queued {self.task_name} for job {payload.get('job_id')}: task {result.id}")


def get_pipeline_dispatcher() -> PipelineDispatcher:
    """Dispatcher for the configured PIPELINE_BACKEND"""
    settings = get_settings()
    if settings.PIPELINE_BACKEND == "celery":
        return CeleryPipelineDispatcher(settings.EDL_PIPELINE_TASK)
    return HttpPipelineDispatcher(
        settings.EDL_PIPELINE_ENDPOINT,
        timeout=settings.PIPELINE_TIMEOUT_SECONDS
    )
