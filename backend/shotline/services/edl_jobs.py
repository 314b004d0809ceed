"""
EDL Job Service
State machine for EDL generation jobs and their four agent steps
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from shotline.models.edl_job import EdlJob, EdlJobStatus
from shotline.models.edl_step import EdlStep, StepStatus, STEP_LABELS
from shotline.schemas.shot import ShotRecord
from shotline.services.errors import InvalidStateTransitionError, JobNotFoundError

logger = logging.getLogger(__name__)

# Allowed status moves; anything else is rejected
JOB_TRANSITIONS = {
    EdlJobStatus.PENDING.value: {EdlJobStatus.RUNNING.value, EdlJobStatus.FAILED.value},
    EdlJobStatus.RUNNING.value: {EdlJobStatus.COMPLETED.value, EdlJobStatus.FAILED.value},
    EdlJobStatus.COMPLETED.value: set(),
    EdlJobStatus.FAILED.value: set(),
}

STEP_TRANSITIONS = {
    StepStatus.PENDING.value: {StepStatus.RUNNING.value, StepStatus.FAILED.value},
    StepStatus.RUNNING.value: {StepStatus.COMPLETED.value, StepStatus.FAILED.value},
    StepStatus.COMPLETED.value: set(),
    StepStatus.FAILED.value: set(),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class EdlJobService:
    """
    Reads and advances EDL generation jobs.

    Transition methods flush their changes; the caller owns the commit.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_job(self, job_id: str, user_id: Optional[str] = None) -> EdlJob:
        query = self.db.query(EdlJob).filter(EdlJob.id == job_id)
        if user_id is not None:
            query = query.filter(EdlJob.user_id == user_id)
        job = query.first()
        if not job:
            raise JobNotFoundError(job_id)
        return job

    def latest_completed_job(self, project_id: str, user_id: str) -> Optional[EdlJob]:
        """Newest completed job for the project that produced shots"""
        jobs = (
            self.db.query(EdlJob)
            .filter(
                EdlJob.project_id == project_id,
                EdlJob.user_id == user_id,
                EdlJob.status == EdlJobStatus.COMPLETED.value,
                EdlJob.shot_list.isnot(None),
            )
            .order_by(EdlJob.completed_at.desc())
            .all()
        )
        for job in jobs:
            if job.shot_list:
                return job
        return None

    @staticmethod
    def completed_steps(job: EdlJob) -> int:
        return sum(1 for step in job.steps if step.status == StepStatus.COMPLETED.value)

    @staticmethod
    def shot_records(job: EdlJob) -> List[ShotRecord]:
        return [ShotRecord.model_validate(shot) for shot in (job.shot_list or [])]

    def snapshot(self, job: EdlJob) -> Dict[str, Any]:
        """
        Poll view of a job. Pure projection over the job and step rows.

        Returns:
            {jobId, status, currentStep, progress, steps, error?, results?}
        """
        completed = self.completed_steps(job)
        total = len(job.steps) or job.total_steps or len(STEP_LABELS)
        percentage = round(100 * completed / total) if total else 0

        status = {
            "jobId": job.id,
            "status": job.status,
            "currentStep": job.current_step or "initializing",
            "progress": {
                "completed": completed,
                "total": total,
                "percentage": percentage,
            },
            "steps": [
                {
                    "step_number": step.step_number,
                    "agent_name": step.agent_name,
                    "status": step.status,
                    "started_at": _isoformat(step.started_at),
                    "completed_at": _isoformat(step.completed_at),
                }
                for step in sorted(job.steps, key=lambda s: s.step_number)
            ],
        }

        if job.error_message:
            status["error"] = {
                "message": job.error_message,
                "step": job.error_step or "unknown",
            }

        if job.status == EdlJobStatus.COMPLETED.value:
            shot_list = job.shot_list if isinstance(job.shot_list, list) else []
            status["results"] = {
                "finalDuration": job.final_video_duration or 0,
                "scriptCoverage": job.script_coverage_percentage or 0,
                "totalChunks": job.total_chunks_count or len(shot_list),
                "canCreateTimeline": len(shot_list) > 0,
            }

        return status

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _step(self, job: EdlJob, step_number: int) -> EdlStep:
        for step in job.steps:
            if step.step_number == step_number:
                return step
        raise InvalidStateTransitionError("step", f"missing step {step_number}", "any")

    def _set_job_status(self, job: EdlJob, target: EdlJobStatus):
        if target.value not in JOB_TRANSITIONS[job.status]:
            raise InvalidStateTransitionError("job", job.status, target.value)
        job.status = target.value

    def _set_step_status(self, step: EdlStep, target: StepStatus):
        if target.value not in STEP_TRANSITIONS[step.status]:
            raise InvalidStateTransitionError(
                f"step {step.step_number}", step.status, target.value
            )
        step.status = target.value

    def _refresh_current_step(self, job: EdlJob):
        running = [s for s in job.steps if s.status == StepStatus.RUNNING.value]
        completed = [s for s in job.steps if s.status == StepStatus.COMPLETED.value]
        if running:
            job.current_step = max(running, key=lambda s: s.step_number).label
        elif completed:
            job.current_step = max(completed, key=lambda s: s.step_number).label

    def start(self, job: EdlJob):
        """Handoff succeeded or is about to: job and step 1 become running"""
        now = utcnow()
        self._set_job_status(job, EdlJobStatus.RUNNING)
        job.started_at = now

        first = self._step(job, 1)
        self._set_step_status(first, StepStatus.RUNNING)
        first.started_at = now
        job.current_step = first.label

        self.db.flush()
        logger.info(f"EDL job {job.id} running ({job.current_step})")

    def start_step(self, job: EdlJob, step_number: int):
        if job.is_terminal:
            raise InvalidStateTransitionError("job", job.status, f"step {step_number} running")

        step = self._step(job, step_number)
        if step.status == StepStatus.RUNNING.value:
            return

        blocking = [
            s.step_number for s in job.steps
            if s.step_number < step_number and s.status != StepStatus.COMPLETED.value
        ]
        if blocking:
            raise InvalidStateTransitionError(
                f"step {step_number}",
                f"{step.status} (steps {blocking} not completed)",
                StepStatus.RUNNING.value,
            )

        if job.status == EdlJobStatus.PENDING.value:
            self._set_job_status(job, EdlJobStatus.RUNNING)
            job.started_at = job.started_at or utcnow()

        self._set_step_status(step, StepStatus.RUNNING)
        step.started_at = utcnow()
        self._refresh_current_step(job)
        self.db.flush()
        logger.info(f"EDL job {job.id}: step {step_number} ({step.agent_name}) running")

    def complete_step(self, job: EdlJob, step_number: int, results: Optional[Dict[str, Any]] = None):
        """
        Mark a step completed. A step that was never reported running is
        started first. Completing the last step completes the job.

        Args:
            results: Final pipeline output, expected with the last step:
                {shot_list, final_duration, script_coverage, total_chunks}
        """
        step = self._step(job, step_number)
        if step.status == StepStatus.PENDING.value:
            self.start_step(job, step_number)
        elif job.is_terminal:
            raise InvalidStateTransitionError("job", job.status, f"step {step_number} completed")

        self._set_step_status(step, StepStatus.COMPLETED)
        step.completed_at = utcnow()
        self._refresh_current_step(job)

        if results:
            self._store_results(job, results)

        if all(s.status == StepStatus.COMPLETED.value for s in job.steps):
            self._complete(job)

        self.db.flush()
        logger.info(f"EDL job {job.id}: step {step_number} ({step.agent_name}) completed")

    def fail_step(self, job: EdlJob, step_number: int, error_message: str):
        """A failed step fails the job; later steps stay pending"""
        if job.is_terminal:
            raise InvalidStateTransitionError("job", job.status, f"step {step_number} failed")

        step = self._step(job, step_number)
        self._set_step_status(step, StepStatus.FAILED)
        step.completed_at = utcnow()
        self.fail(job, error_message, step.label)
        logger.warning(f"EDL job {job.id}: step {step_number} ({step.agent_name}) failed: {error_message}")

    def fail_handoff(self, job: EdlJob, error_message: str):
        """The pipeline never received the job, so the running first step can't finish"""
        for step in job.steps:
            if step.status == StepStatus.RUNNING.value:
                self._set_step_status(step, StepStatus.FAILED)
                step.completed_at = utcnow()
        self.fail(job, error_message, "pipeline_invocation")

    def fail(self, job: EdlJob, error_message: str, error_step: str):
        self._set_job_status(job, EdlJobStatus.FAILED)
        job.error_message = error_message
        job.error_step = error_step
        job.completed_at = utcnow()
        self.db.flush()
        logger.error(f"EDL job {job.id} failed at {error_step}: {error_message}")

    def _store_results(self, job: EdlJob, results: Dict[str, Any]):
        shot_list = results.get("shot_list")
        if shot_list is not None:
            # Validate before persisting; stored in placement order
            shots = sorted(
                (ShotRecord.model_validate(s) for s in shot_list),
                key=lambda s: s.shot_number,
            )
            numbers = [s.shot_number for s in shots]
            duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
            if duplicates:
                raise ValueError(f"Duplicate shot_number in shot list: {duplicates}")
            job.shot_list = [s.model_dump() for s in shots]
        if results.get("final_duration") is not None:
            job.final_video_duration = results["final_duration"]
        if results.get("script_coverage") is not None:
            job.script_coverage_percentage = results["script_coverage"]
        if results.get("total_chunks") is not None:
            job.total_chunks_count = results["total_chunks"]

    def _complete(self, job: EdlJob):
        self._set_job_status(job, EdlJobStatus.COMPLETED)
        job.completed_at = utcnow()
        if job.total_chunks_count is None:
            job.total_chunks_count = len(job.shot_list or [])
        if job.final_video_duration is None and job.shot_list:
            job.final_video_duration = round(
                sum(s["precise_timing"]["duration"] for s in job.shot_list), 3
            )
        logger.info(f"EDL job {job.id} completed with {job.total_chunks_count} shots")
