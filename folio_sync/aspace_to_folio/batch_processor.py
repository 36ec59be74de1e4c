import threading
from concurrent.futures import ThreadPoolExecutor
from logging import getLogger

from django.db import connection

from folio_sync.aspace_to_folio.job_result_processor import JobResultProcessor
from folio_sync.aspace_to_folio.record_processor import RecordProcessor
from folio_sync.errors import BatchError
from folio_sync.folio.job_execution import JobExecution
from folio_sync.logging import FolioSyncLogger

logger = getLogger(__name__)
structured_logger = FolioSyncLogger.get_logger(__name__)


def partition(records, size):
    records = list(records)
    return [records[i : i + size] for i in range(0, len(records), size)]


class BatchProcessor:
    """
    Sends pending records to FOLIO, one job execution per batch of
    ``config.batch_size`` records.

    A batch that fails is recorded in ``batch_errors`` and does not stop the
    remaining batches. Records that could not be prepared end up in
    ``processing_errors`` and results that could not be applied in
    ``syncing_errors``.
    """

    def __init__(
        self,
        folio_client,
        instance_key,
        config,
        record_processor=None,
        job_execution_factory=JobExecution.from_config,
        cancel_event=None,
    ):
        self.folio_client = folio_client
        self.instance_key = instance_key
        self.config = config
        self.record_processor = record_processor or RecordProcessor(
            config.marc_download_base_directory
        )
        self.job_execution_factory = job_execution_factory

        self.batch_errors = []
        self.syncing_errors = []
        self._errors_lock = threading.Lock()
        self._cancelled = threading.Event() if cancel_event is None else cancel_event

    @property
    def processing_errors(self):
        return self.record_processor.processing_errors

    @property
    def cancelled(self):
        return self._cancelled.is_set()

    def cancel(self):
        """
        Stop starting new batches. A batch which has already been submitted
        is still waited for.
        """
        logger.info("Cancelling batch processing for %s", self.instance_key)
        self._cancelled.set()

    def process_records(self, records):
        batches = partition(records, self.config.batch_size)
        logger.info(
            "Processing %d records for %s in %d batches",
            sum(len(batch) for batch in batches),
            self.instance_key,
            len(batches),
        )

        if self.config.max_workers > 1 and len(batches) > 1:
            with ThreadPoolExecutor(
                max_workers=self.config.max_workers,
                thread_name_prefix="folio-sync-batch",
            ) as executor:
                for future in [
                    executor.submit(self._process_batch_in_thread, batch)
                    for batch in batches
                ]:
                    future.result()
        else:
            for batch in batches:
                self.process_batch(batch)

        logger.info(
            "Finished %s: %d processing errors, %d batch errors, %d syncing errors",
            self.instance_key,
            len(self.processing_errors),
            len(self.batch_errors),
            len(self.syncing_errors),
        )

    def _process_batch_in_thread(self, batch):
        try:
            self.process_batch(batch)
        finally:
            connection.close()

    def process_batch(self, batch):
        if self.cancelled:
            logger.info("Skipping batch of %d records after cancellation", len(batch))
            return

        try:
            units = [
                unit
                for unit in (self.record_processor.process_record(record) for record in batch)
                if unit is not None
            ]
            if not units:
                logger.info("No records left to submit in batch of %d", len(batch))
                return

            self.submit_batch(units)
        except Exception as exc:
            structured_logger.exception(
                "Batch failed.",
                event_code="batch_failed",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
                instance_key=self.instance_key,
                batch_size=len(batch),
            )
            with self._errors_lock:
                self.batch_errors.append(
                    BatchError(
                        f"Failed to process a batch of {len(batch)} records: {exc}",
                        batch_size=len(batch),
                    )
                )

    def submit_batch(self, units):
        job_execution = self.job_execution_factory(
            self.folio_client, self.config, len(units)
        )
        for unit in units:
            job_execution.add_record(unit.marc_record, unit.metadata)
        job_execution.start()

        summary = job_execution.wait_until_complete(
            poll_interval=self.config.poll_interval,
            startup_grace_period=self.config.startup_grace_period,
            max_poll_duration=self.config.max_poll_duration,
        )

        result_processor = JobResultProcessor.from_config(
            self.folio_client, self.instance_key, self.config
        )
        result_processor.process_results(summary)

        with self._errors_lock:
            self.syncing_errors.extend(result_processor.syncing_errors)
