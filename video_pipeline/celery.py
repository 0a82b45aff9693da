import logging
import os

from celery import Celery
from celery.signals import worker_process_shutdown

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "video_pipeline.settings")

logger = logging.getLogger(__name__)

celery_app = Celery("video_pipeline")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks()


@worker_process_shutdown.connect
def _release_asset_store(**kwargs):
    """Drop the per-process storage client when a worker process exits."""
    from videos.storage import reset_asset_store

    reset_asset_store()
    logger.info("Released remote asset store for worker pid=%s", kwargs.get("pid"))
