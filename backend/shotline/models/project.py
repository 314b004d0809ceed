from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from shotline.database import Base
import uuid

class Project(Base):
    """Editing project owned by a single user. Managed outside this service."""
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    title = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Project(id={self.id}, user_id={self.user_id})>"
