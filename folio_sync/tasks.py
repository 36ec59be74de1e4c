from datetime import timedelta
from logging import getLogger

from django.utils import timezone

from folio_sync.aspace_to_folio.synchronizer import FolioSynchronizer
from folio_sync.decorators import locked_task
from folio_sync.logging import FolioSyncLogger

from .celery import app as celery_app

logger = getLogger(__name__)
structured_logger = FolioSyncLogger.get_logger(__name__)


def run_synchronization(instance_key, last_x_hours=None, synchronizer=None):
    """
    Synchronize one ArchivesSpace instance with FOLIO and return the errors
    of the run as ``{kind: [str, ...]}``.

    ``last_x_hours`` limits the run to resources modified within that many
    hours; without it every resource is fetched.
    """
    synchronizer = synchronizer or FolioSynchronizer(instance_key)
    modified_since = None
    if last_x_hours:
        modified_since = timezone.now() - timedelta(hours=last_x_hours)

    errors = synchronizer.fetch_and_sync_resources_to_folio(modified_since)

    for kind, kind_errors in errors.items():
        for error in kind_errors:
            logger.warning("%s: %s", error.label, error)

    return {kind: [str(error) for error in kind_errors] for kind, kind_errors in errors.items()}


def instance_lock_key(instance_key, *args, **kwargs):
    return instance_key


@celery_app.task(bind=True, ignore_result=False)
@locked_task(lock_key=instance_lock_key)
def sync_archivesspace_to_folio(self, instance_key, last_x_hours=None):
    """
    Run :func:`run_synchronization` for one ArchivesSpace instance.

    Runs for the same instance are serialized by ``locked_task`` whatever
    their other arguments; a run which finds the lock held does nothing.
    """
    structured_logger.info(
        "Starting ArchivesSpace to FOLIO sync task.",
        event_code="sync_task_started",
        instance_key=instance_key,
        last_x_hours=last_x_hours,
    )
    return run_synchronization(instance_key, last_x_hours=last_x_hours)
