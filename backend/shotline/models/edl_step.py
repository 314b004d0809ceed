"""
EDL Generation Step Model
One of the four ordered agent stages of an EDL generation job
"""
from sqlalchemy import Column, String, Integer, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from shotline.database import Base
import enum

class StepStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

class PipelineStep:
    """Canonical definition of a pipeline stage"""

    def __init__(self, step_number: int, agent_name: str, step_name: str, label: str):
        self.step_number = step_number
        self.agent_name = agent_name
        self.step_name = step_name
        self.label = label

    def __repr__(self):
        return f"<PipelineStep({self.step_number}, {self.agent_name})>"

# Fixed execution order of the external agent pipeline
PIPELINE_STEPS = (
    PipelineStep(1, "SCRIPT_ANALYZER", "Script Analysis", "script_analysis"),
    PipelineStep(2, "CONTENT_MATCHER", "Content Matching", "content_matching"),
    PipelineStep(3, "EDL_GENERATOR", "EDL Generation", "edl_generation"),
    PipelineStep(4, "SHOT_LIST_GENERATOR", "Shot List Generation", "shot_list_generation"),
)

STEP_LABELS = {step.step_number: step.label for step in PIPELINE_STEPS}

class EdlStep(Base):
    __tablename__ = "edl_generation_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(36), ForeignKey("edl_generation_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    step_number = Column(Integer, nullable=False)
    agent_name = Column(String(50), nullable=False)
    step_name = Column(String(100), nullable=False)

    status = Column(String(20), nullable=False, default=StepStatus.PENDING.value)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    job = relationship("EdlJob", back_populates="steps")

    __table_args__ = (
        UniqueConstraint("job_id", "step_number", name="uq_edl_steps_job_step"),
    )

    @property
    def label(self) -> str:
        return STEP_LABELS.get(self.step_number, self.step_name)

    def __repr__(self):
        return f"<EdlStep(job_id={self.job_id}, step={self.step_number}, status={self.status})>"
