from celery import Celery
from shotline.config import get_settings

settings = get_settings()

# Producer side only: the EDL agents run in their own worker deployment and
# consume settings.EDL_PIPELINE_TASK from this broker.
celery_app = Celery(
    "shotline",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_ignore_result=True,
)
