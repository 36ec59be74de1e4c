import threading
from logging import getLogger

from folio_sync.archives_space.client import ArchivesSpaceClient
from folio_sync.archives_space.resource_fetcher import ResourceFetcher
from folio_sync.archives_space.resource_updater import ResourceUpdater
from folio_sync.aspace_to_folio.batch_processor import BatchProcessor
from folio_sync.aspace_to_folio.marc_downloader import MarcDownloader
from folio_sync.config import SyncConfig
from folio_sync.folio.client import FolioClient
from folio_sync.logging import FolioSyncLogger
from folio_sync.models import PendingUpdate, SyncRecord

logger = getLogger(__name__)
structured_logger = FolioSyncLogger.get_logger(__name__)


class FolioSynchronizer:
    """
    Runs a complete synchronization for one ArchivesSpace instance:

    1. record recently modified resources locally
    2. download their MARC XML
    3. submit the pending records to FOLIO
    4. write new FOLIO HRIDs back to ArchivesSpace

    Each step collects its own errors; none of them stops the following
    steps. After a run every collection is available from :attr:`errors`.
    """

    def __init__(self, instance_key, folio_client=None, aspace_client=None, config=None):
        self.instance_key = instance_key
        self.folio_client = folio_client or FolioClient.from_settings()
        self.aspace_client = aspace_client or ArchivesSpaceClient.from_settings(
            instance_key
        )
        self.config = config or SyncConfig.from_settings()
        self._cancelled = threading.Event()
        self.reset()

    def reset(self):
        self.fetching_errors = []
        self.saving_errors = []
        self.downloading_errors = []
        self.processing_errors = []
        self.batch_errors = []
        self.syncing_errors = []
        self.linking_errors = []
        self.batch_processor = None

    @property
    def errors(self):
        return {
            "fetching": self.fetching_errors,
            "saving": self.saving_errors,
            "downloading": self.downloading_errors,
            "processing": self.processing_errors,
            "batch": self.batch_errors,
            "syncing": self.syncing_errors,
            "linking": self.linking_errors,
        }

    def has_errors(self):
        return any(self.errors.values())

    def fetch_and_sync_resources_to_folio(self, modified_since=None):
        """
        Run every step. ``modified_since`` limits the ArchivesSpace fetch to
        resources modified after the given datetime.
        """
        self.reset()
        structured_logger.info(
            "Starting synchronization.",
            event_code="sync_started",
            instance_key=self.instance_key,
            modified_since=modified_since.isoformat() if modified_since else None,
        )

        self.fetch_resources(modified_since)
        self.download_marc_records()
        self.sync_resources_to_folio()
        self.update_archivesspace_records()

        structured_logger.info(
            "Finished synchronization.",
            event_code="sync_finished",
            instance_key=self.instance_key,
            **{f"{kind}_errors": len(errors) for kind, errors in self.errors.items()},
        )
        return self.errors

    def fetch_resources(self, modified_since=None):
        fetcher = ResourceFetcher(self.aspace_client)
        fetcher.fetch_and_save_recent_resources(
            modified_since.timestamp() if modified_since else None
        )
        self.fetching_errors.extend(fetcher.fetching_errors)
        self.saving_errors.extend(fetcher.saving_errors)

    def download_marc_records(self):
        downloader = MarcDownloader(
            self.aspace_client,
            self.folio_client,
            self.config.marc_download_base_directory,
        )
        downloader.download_pending_marc_records()
        self.downloading_errors.extend(downloader.downloading_errors)

    def sync_resources_to_folio(self):
        if self.cancelled:
            logger.info(
                "Synchronization of %s was cancelled; not submitting to FOLIO",
                self.instance_key,
            )
            return

        self.batch_processor = BatchProcessor(
            self.folio_client,
            self.instance_key,
            self.config,
            cancel_event=self._cancelled,
        )
        self.batch_processor.process_records(
            SyncRecord.objects.pending(self.instance_key, PendingUpdate.TO_FOLIO)
        )
        self.processing_errors.extend(self.batch_processor.processing_errors)
        self.batch_errors.extend(self.batch_processor.batch_errors)
        self.syncing_errors.extend(self.batch_processor.syncing_errors)

    def update_archivesspace_records(self):
        updater = ResourceUpdater(self.aspace_client)
        updater.update_records(
            SyncRecord.objects.pending(
                self.instance_key, PendingUpdate.TO_ARCHIVESSPACE
            )
        )
        self.linking_errors.extend(updater.linking_errors)

    @property
    def cancelled(self):
        return self._cancelled.is_set()

    def cancel(self):
        """
        Stop submitting batches to FOLIO, for the current run and any later
        run of this synchronizer. Fetching, downloading and writing HRIDs back
        still happen, and a batch already submitted is still waited for.
        """
        logger.info("Cancelling synchronization of %s", self.instance_key)
        self._cancelled.set()
