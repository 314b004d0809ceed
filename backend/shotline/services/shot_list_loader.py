"""
Shot List Loader
Fetches a finished job's shot list together with the project's videos
"""
from typing import List, Optional
from sqlalchemy.orm import Session
import logging

from shotline.models.edl_job import EdlJob, EdlJobStatus
from shotline.models.video import Video
from shotline.schemas.shot import ShotRecord
from shotline.services.edl_jobs import EdlJobService
from shotline.services.errors import EdlError, JobNotFoundError

logger = logging.getLogger(__name__)


class ShotListUnavailableError(EdlError):
    """The job exists but has no shot list to place yet"""
    pass


class LoadedShotList:

    def __init__(self, job: EdlJob, shots: List[ShotRecord], videos: List[Video]):
        self.job = job
        self.shots = shots
        self.videos = videos

    @property
    def total_duration(self) -> float:
        return round(sum(s.precise_timing.duration for s in self.shots), 3)


class ShotListLoader:

    def __init__(self, db: Session):
        self.db = db
        self.jobs = EdlJobService(db)

    def load(self, project_id: str, user_id: str, job_id: Optional[str] = None) -> LoadedShotList:
        """
        Load the shot list of ``job_id``, or of the project's latest completed
        job when no id is given.

        Raises:
            JobNotFoundError: unknown job, or job of another project/user
            ShotListUnavailableError: job not completed or has no shots
        """
        if job_id:
            job = self.jobs.get_job(job_id, user_id)
            if job.project_id != project_id:
                raise JobNotFoundError(job_id)
        else:
            job = self.jobs.latest_completed_job(project_id, user_id)
            if job is None:
                raise ShotListUnavailableError("No completed EDL jobs found for this project")

        if job.status != EdlJobStatus.COMPLETED.value:
            raise ShotListUnavailableError(f"EDL job {job.id} is {job.status}, not completed")

        shots = self.jobs.shot_records(job)
        if not shots:
            raise ShotListUnavailableError("No shots found for this EDL job")

        videos = (
            self.db.query(Video)
            .filter(Video.project_id == project_id, Video.user_id == user_id)
            .order_by(Video.created_at.asc(), Video.id.asc())
            .all()
        )

        loaded = LoadedShotList(job, shots, videos)
        logger.info(
            f"Loaded {len(shots)} shots with total duration {loaded.total_duration}s "
            f"and {len(videos)} candidate videos for job {job.id}"
        )
        return loaded
