"""
Uploaded video asset model
Rows are written by the upload service; the EDL pipeline only reads them
"""
from sqlalchemy import Column, String, Float, Text, DateTime, Index
from sqlalchemy.sql import func
from shotline.database import Base
import uuid

class Video(Base):
    __tablename__ = "videos"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False)

    # Storage location, e.g. s3://bucket/uploads/1750320963985-clip.mp4
    s3_location = Column(Text)
    file_name = Column(String(255))
    original_name = Column(String(255))

    duration = Column(Float)  # seconds
    thumbnail_url = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_videos_project_user", "project_id", "user_id"),
    )

    @property
    def display_name(self) -> str:
        return self.original_name or self.file_name or ""

    def __repr__(self):
        return f"<Video(id={self.id}, name={self.display_name})>"
