from pydantic_settings import BaseSettings
from functools import lru_cache
import os

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Shotline EDL Service"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Security
    ALLOWED_ORIGINS: list = []  # Will be set dynamically

    # Database
    DATABASE_URL: str = "sqlite:///./shotline.db"
    DB_ECHO: bool = False

    # Redis/Celery
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = ""
    CELERY_RESULT_BACKEND: str = ""

    # External EDL pipeline
    PIPELINE_BACKEND: str = "http"  # "http" or "celery"
    EDL_PIPELINE_ENDPOINT: str = ""
    EDL_PIPELINE_TASK: str = "edl.generate"
    PIPELINE_TIMEOUT_SECONDS: float = 10.0
    PIPELINE_CALLBACK_TOKEN: str = ""

    # Client polling
    POLL_INTERVAL_SECONDS: float = 2.0
    POLL_TIMEOUT_SECONDS: float = 900.0

    # Object storage
    AWS_REGION: str = "us-east-1"

    # Timeline
    TIMELINE_TRACK_ID: str = "main"
    TIMELINE_WIDTH: int = 1080
    TIMELINE_HEIGHT: int = 1920
    TIMELINE_READY_POLL_SECONDS: float = 0.1
    TIMELINE_READY_TIMEOUT_SECONDS: float = 10.0
    TIMELINE_MAX_CONTEXTS: int = 256  # least recently used contexts are evicted past this

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False

    def __init__(self, **kwargs):
        super().__init__(**kwargs)

        # Set Celery URLs if not provided
        if not self.CELERY_BROKER_URL:
            self.CELERY_BROKER_URL = self.REDIS_URL
        if not self.CELERY_RESULT_BACKEND:
            self.CELERY_RESULT_BACKEND = self.REDIS_URL

        # Set CORS origins dynamically
        if not self.ALLOWED_ORIGINS:
            if self.ENVIRONMENT == "production":
                frontend_url = os.getenv("FRONTEND_URL")
                if frontend_url and not frontend_url.startswith("http"):
                    self.ALLOWED_ORIGINS = [f"https://{frontend_url}"]
                elif frontend_url:
                    self.ALLOWED_ORIGINS = [frontend_url]
                else:
                    self.ALLOWED_ORIGINS = ["*"]
            else:
                self.ALLOWED_ORIGINS = ["http://localhost:3000", "http://localhost:8000"]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
