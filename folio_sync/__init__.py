from folio_sync.celery import app as celery_app
from folio_sync.version import VERSION, get_version

__all__ = ["celery_app", "VERSION", "get_version"]
