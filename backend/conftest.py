"""Shared pytest fixtures"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shotline.api.deps import get_dispatcher
from shotline.database import Base, get_db
from shotline.main import app
from shotline.models import Project, Video
from shotline.services.pipeline_dispatcher import PipelineDispatcher
from shotline.services.timeline_apply import TimelineRegistry

USER_ID = "user-1"
PROJECT_ID = "project-1"


class RecordingDispatcher(PipelineDispatcher):
    """Accepts every job and remembers the payloads; or fails with ``error``"""

    def __init__(self, error: Exception = None):
        self.payloads = []
        self.error = error

    def dispatch(self, payload):
        if self.error is not None:
            raise self.error
        self.payloads.append(payload)


# ============================================================
# Database
# ============================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def project(db):
    project = Project(id=PROJECT_ID, user_id=USER_ID, title="Where are my keys")
    db.add(project)
    db.commit()
    return project


@pytest.fixture
def videos(db, project):
    rows = [
        Video(id="video-1462", project_id=PROJECT_ID, user_id=USER_ID,
              original_name="IMG_1462.mp4", file_name="1750320963985-IMG_1462.mp4",
              s3_location="s3://shotline-uploads/uploads/IMG_1462.mp4", duration=6.0),
        Video(id="video-1271", project_id=PROJECT_ID, user_id=USER_ID,
              original_name="IMG_1271.mov", file_name="IMG_1271.mov",
              s3_location="s3://shotline-uploads/uploads/IMG_1271.mov", duration=4.2),
        Video(id="video-1272", project_id=PROJECT_ID, user_id=USER_ID,
              original_name="IMG_1272.mp4", file_name="IMG_1272.mp4",
              s3_location="https://cdn.example.com/IMG_1272.mp4",
              thumbnail_url="https://cdn.example.com/IMG_1272.jpg", duration=6.1),
    ]
    db.add_all(rows)
    db.commit()
    return rows


# ============================================================
# Shot lists
# ============================================================

def make_shot(chunk_id, shot_number, start, end, duration=None, **extra):
    shot = {
        "chunk_id": chunk_id,
        "shot_number": shot_number,
        "precise_timing": {
            "start": start,
            "end": end,
            "duration": duration if duration is not None else round(end - start, 3),
        },
        "script_segment": f"segment_{shot_number}",
        "content_preview": f"Shot {shot_number} preview",
        "narrative_purpose": "",
        "cut_reasoning": "Natural sentence boundary",
        "quality_notes": "Clear audio",
    }
    shot.update(extra)
    return shot


@pytest.fixture
def shot_list():
    return [
        make_shot("IMG_1462_chunk_1_0.0-0.0s", 1, 0.2, 4.8, 4.6),
        make_shot("IMG_1271_chunk_1_0.0-0.0s", 2, 0.1, 3.9, 3.8),
        make_shot("IMG_1272_chunk_1_0.0-0.0s", 3, 0.2, 5.8, 5.6),
    ]


# ============================================================
# API
# ============================================================

@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def client(session_factory, dispatcher):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.state.timelines = TimelineRegistry()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"X-User-Id": USER_ID}
