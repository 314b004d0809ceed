"""
EDL Job Client
Submits EDL generation and polls the job until it finishes
"""
from typing import Any, Callable, Dict, Optional
import time
import requests
import logging

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "failed")


class EdlClientError(Exception):
    """The service rejected a request"""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class EdlJobTimeout(Exception):
    pass


class EdlJobClient:
    """
    Thin client for the generate-edl-async endpoints.

    Polling is cooperative: one status request, then a fixed sleep, until the
    job reaches completed or failed. Stopping the poll does not stop the job.
    """

    def __init__(
        self,
        base_url: str,
        user_id: str,
        poll_interval: float = 2.0,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"X-User-Id": user_id})
        self._sleep = sleep

    def _url(self, project_id: str) -> str:
        return f"{self.base_url}/timeline/{project_id}/generate-edl-async"

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok:
            message = data.get("message") or data.get("detail") or data.get("error") or response.reason
            raise EdlClientError(response.status_code, str(message))
        return data

    def submit(self, project_id: str, user_intent: str, script_content: Optional[str] = None) -> Dict[str, Any]:
        """Returns {jobId, status, message}"""
        body = {"userIntent": user_intent}
        if script_content:
            body["scriptContent"] = script_content
        response = self.session.post(self._url(project_id), json=body, timeout=self.timeout)
        data = self._json(response)
        logger.info(f"EDL job {data.get('jobId')} {data.get('status')}: {data.get('message')}")
        return data

    def get_status(self, project_id: str, job_id: str) -> Dict[str, Any]:
        response = self.session.get(
            self._url(project_id),
            params={"jobId": job_id},
            timeout=self.timeout
        )
        return self._json(response)

    def wait_for_completion(
        self,
        project_id: str,
        job_id: str,
        max_wait: float = 900.0,
        on_progress: Optional[Callable[[Dict[str, Any]], None]] = None
    ) -> Dict[str, Any]:
        """
        Poll until the job is completed or failed and return the last snapshot.

        Raises:
            EdlJobTimeout: job still active after ``max_wait`` seconds
        """
        waited = 0.0
        while True:
            status = self.get_status(project_id, job_id)
            if on_progress:
                on_progress(status)

            progress = status.get("progress", {})
            logger.info(
                f"EDL job {job_id}: {status.get('status')} "
                f"({progress.get('completed', 0)}/{progress.get('total', 0)}, "
                f"{status.get('currentStep')})"
            )

            if status.get("status") in TERMINAL_STATUSES:
                return status

            if waited >= max_wait:
                raise EdlJobTimeout(f"EDL job {job_id} still {status.get('status')} after {waited:.0f}s")

            self._sleep(self.poll_interval)
            waited += self.poll_interval

    def generate(
        self,
        project_id: str,
        user_intent: str,
        script_content: Optional[str] = None,
        max_wait: float = 900.0
    ) -> Dict[str, Any]:
        """Submit and wait; returns the final snapshot"""
        submitted = self.submit(project_id, user_intent, script_content)
        return self.wait_for_completion(project_id, submitted["jobId"], max_wait=max_wait)
