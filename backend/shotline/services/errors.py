"""
EDL pipeline error types.

All errors inherit from EdlError so routers can catch them in one place.
"""


class EdlError(Exception):
    """Base exception for EDL generation and timeline assembly failures."""
    pass


class EdlValidationError(EdlError):
    """Raised when a submission is missing required input. No job is created."""
    pass


class ProjectNotFoundError(EdlError):

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found or access denied: {project_id}")


class JobNotFoundError(EdlError):

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found or access denied: {job_id}")


class InvalidStateTransitionError(EdlError):
    """Raised when attempting an illegal job or step transition."""

    def __init__(self, entity_type: str, current_state: str, target_state: str):
        self.entity_type = entity_type
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid {entity_type} state transition: "
            f"{current_state} -> {target_state}"
        )


class JobPersistenceError(EdlError):
    """Raised when the job or its step records could not be written."""
    pass


class PipelineHandoffError(EdlError):
    """Raised when the external pipeline did not accept the job."""

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Pipeline invocation failed for job {job_id}: {reason}")


class TimelineValidationError(EdlError):
    """Raised when compiled timeline items break placement invariants."""
    pass


class TimelineNotReadyError(EdlError):
    """Raised when the timeline never became ready. The apply can be retried."""

    def __init__(self, timeline_id: str, waited: float):
        self.timeline_id = timeline_id
        self.waited = waited
        super().__init__(f"Timeline {timeline_id} not ready after {waited:.1f}s")


class TimelineApplyError(EdlError):
    """Raised when the timeline rejected an apply. State is left untouched."""
    pass
