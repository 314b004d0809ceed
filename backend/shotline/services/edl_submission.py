"""
EDL Submission Gate
Creates EDL generation jobs, one active job per project, and hands them
to the external pipeline
"""
from typing import List, Optional, Tuple
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from shotline.models.edl_job import EdlJob, EdlJobStatus, ACTIVE_STATUSES
from shotline.models.edl_step import EdlStep, StepStatus, PIPELINE_STEPS
from shotline.models.project import Project
from shotline.services.edl_jobs import EdlJobService
from shotline.services.errors import (
    EdlValidationError,
    JobPersistenceError,
    PipelineHandoffError,
    ProjectNotFoundError,
)
from shotline.services.pipeline_dispatcher import PipelineDispatcher

logger = logging.getLogger(__name__)


class SubmissionResult(BaseModel):
    job_id: str
    status: str
    message: str
    created: bool


class EdlSubmissionGate:
    """
    Single entry point for starting EDL generation.

    The active-job check is backed by the ``uq_edl_jobs_active_project``
    partial unique index: when two submissions race past the read, the
    loser's insert fails and it returns the winner's job instead.
    """

    def __init__(self, db: Session, dispatcher: PipelineDispatcher):
        self.db = db
        self.dispatcher = dispatcher
        self.jobs = EdlJobService(db)

    def submit(
        self,
        project_id: str,
        user_id: str,
        user_intent: Optional[str],
        script_content: Optional[str] = None
    ) -> SubmissionResult:
        """
        Start EDL generation for a project, or return the job already running.

        Raises:
            EdlValidationError: missing project id or intent
            ProjectNotFoundError: project missing or not owned by user
            JobPersistenceError: job or step rows could not be written
            PipelineHandoffError: pipeline rejected the job (job is failed)
        """
        if not project_id:
            raise EdlValidationError("Project ID is required")
        if not user_intent or not user_intent.strip():
            raise EdlValidationError("User intent is required")

        project = (
            self.db.query(Project)
            .filter(Project.id == project_id, Project.user_id == user_id)
            .first()
        )
        if not project:
            raise ProjectNotFoundError(project_id)

        logger.info(
            f"Processing EDL generation for project {project_id} (user {user_id}), "
            f"script content length: {len(script_content or '')}"
        )

        existing = self._find_active_job(project_id, user_id)
        if existing:
            return self._already_running(existing)

        job, created = self._create_job(project_id, user_id, user_intent, script_content or "")
        if not created:
            # Lost the creation race; job belongs to the winning submission
            return self._already_running(job)

        self._start_and_dispatch(job)

        return SubmissionResult(
            job_id=job.id,
            status=job.status,
            message="EDL generation started successfully",
            created=True
        )

    def _find_active_job(self, project_id: str, user_id: Optional[str] = None) -> Optional[EdlJob]:
        query = self.db.query(EdlJob).filter(
            EdlJob.project_id == project_id,
            EdlJob.status.in_(ACTIVE_STATUSES),
        )
        if user_id is not None:
            query = query.filter(EdlJob.user_id == user_id)
        return query.order_by(EdlJob.created_at.desc()).first()

    def _already_running(self, job: EdlJob) -> SubmissionResult:
        logger.info(f"EDL generation already in progress for project {job.project_id}: {job.id}")
        return SubmissionResult(
            job_id=job.id,
            status=job.status,
            message="EDL generation already in progress for this project",
            created=False
        )

    @staticmethod
    def _build_steps() -> List[EdlStep]:
        return [
            EdlStep(
                step_number=step.step_number,
                agent_name=step.agent_name,
                step_name=step.step_name,
                status=StepStatus.PENDING.value,
            )
            for step in PIPELINE_STEPS
        ]

    def _create_job(
        self,
        project_id: str,
        user_id: str,
        user_intent: str,
        script_content: str
    ) -> Tuple[EdlJob, bool]:
        """Insert the job and its steps in one transaction. Returns (job, created)"""
        job = EdlJob(
            project_id=project_id,
            user_id=user_id,
            status=EdlJobStatus.PENDING.value,
            user_intent=user_intent,
            script_content=script_content,
            current_step="initializing",
            total_steps=len(PIPELINE_STEPS),
        )

        try:
            self.db.add(job)
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            winner = self._find_active_job(project_id)
            if winner:
                return winner, False
            logger.error(f"Error creating EDL generation job for project {project_id}", exc_info=True)
            raise JobPersistenceError("Failed to create EDL generation job")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating EDL generation job: {e}", exc_info=True)
            raise JobPersistenceError("Failed to create EDL generation job") from e

        try:
            for step in self._build_steps():
                job.steps.append(step)
            self.db.flush()
            self.db.commit()
        except SQLAlchemyError as e:
            # Rolls back the job row too, so no job is left without steps
            self.db.rollback()
            logger.error(f"Error creating EDL generation steps: {e}", exc_info=True)
            raise JobPersistenceError("Failed to create EDL generation steps") from e

        logger.info(f"EDL generation job and steps created: {job.id}")
        return job, True

    def _start_and_dispatch(self, job: EdlJob):
        self.jobs.start(job)
        self.db.commit()

        payload = {
            "project_id": job.project_id,
            "user_intent": job.user_intent,
            "job_id": job.id,
            "script_content": job.script_content or "",
        }

        try:
            self.dispatcher.dispatch(payload)
        except Exception as e:
            logger.error(f"EDL pipeline invocation failed for job {job.id}: {e}", exc_info=True)
            self.jobs.fail_handoff(job, str(e) or "Pipeline invocation failed")
            self.db.commit()
            raise PipelineHandoffError(job.id, str(e)) from e
