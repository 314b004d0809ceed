"""
EDL Generation Job Model
Tracks one request to generate an Edit Decision List for a project
"""
from sqlalchemy import Column, String, Integer, JSON, Text, Float, DateTime, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shotline.database import Base
from shotline.models.edl_step import PIPELINE_STEPS
import uuid
import enum

class EdlJobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

ACTIVE_STATUSES = (EdlJobStatus.PENDING.value, EdlJobStatus.RUNNING.value)
TERMINAL_STATUSES = (EdlJobStatus.COMPLETED.value, EdlJobStatus.FAILED.value)

# Partial index predicate: at most one active job per project
_ACTIVE_PREDICATE = text("status IN ('pending', 'running')")

class EdlJob(Base):
    __tablename__ = "edl_generation_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)

    # Input data
    user_intent = Column(Text, nullable=False)
    script_content = Column(Text, nullable=False, default="")

    # Status tracking
    status = Column(String(20), nullable=False, default=EdlJobStatus.PENDING.value)
    current_step = Column(String(50), nullable=False, default="initializing")
    total_steps = Column(Integer, nullable=False, default=len(PIPELINE_STEPS))
    error_message = Column(Text)
    error_step = Column(String(50))

    # Results (populated on completion)
    shot_list = Column(JSON, nullable=True)  # [{chunk_id, shot_number, precise_timing, ...}]
    final_video_duration = Column(Float, nullable=True)
    script_coverage_percentage = Column(Float, nullable=True)
    total_chunks_count = Column(Integer, nullable=True)

    # Timestamps (TIMESTAMPTZ in database)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    steps = relationship(
        "EdlStep",
        back_populates="job",
        order_by="EdlStep.step_number",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index(
            "uq_edl_jobs_active_project",
            "project_id",
            unique=True,
            sqlite_where=_ACTIVE_PREDICATE,
            postgresql_where=_ACTIVE_PREDICATE,
        ),
        Index("idx_edl_jobs_project_status", "project_id", "status"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<EdlJob(id={self.id}, project_id={self.project_id}, status={self.status})>"
