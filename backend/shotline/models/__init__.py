"""
Database models for the EDL generation service.
"""
# EDL generation jobs and their agent steps
from shotline.models.edl_job import EdlJob, EdlJobStatus, ACTIVE_STATUSES, TERMINAL_STATUSES
from shotline.models.edl_step import EdlStep, StepStatus, PipelineStep, PIPELINE_STEPS

# Externally managed records (read-only here)
from shotline.models.project import Project
from shotline.models.video import Video

__all__ = [
    "EdlJob",
    "EdlJobStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "EdlStep",
    "StepStatus",
    "PipelineStep",
    "PIPELINE_STEPS",
    "Project",
    "Video",
]
