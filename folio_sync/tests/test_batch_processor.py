import tempfile
import threading
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase, TestCase

from folio_sync.aspace_to_folio.batch_processor import BatchProcessor, partition
from folio_sync.errors import BatchError, ProcessingError
from folio_sync.exceptions import FolioRequestError, JobStalledError
from folio_sync.models import PendingUpdate, SyncRecord

from .utils import (
    FakeFolioClient,
    create_marc_record,
    create_sync_config,
    create_sync_record,
    write_marc_xml,
)


class PartitionTests(SimpleTestCase):
    def test_partition(self):
        self.assertEqual(partition(range(5), 2), [[0, 1], [2, 3], [4]])
        self.assertEqual(partition([], 2), [])


class BatchProcessorTests(TestCase):
    def setUp(self):
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.marc_directory = temp_dir.name
        self.client = FakeFolioClient()

    def create_records(self, count, with_marc=True):
        records = []
        for resource_id in range(1, count + 1):
            record = create_sync_record(resource_id=resource_id)
            if with_marc:
                write_marc_xml(
                    self.marc_directory,
                    record.archivesspace_marc_xml_path,
                    create_marc_record(f"Collection {resource_id}"),
                )
            records.append(record)
        return records

    def make_processor(self, **config):
        config.setdefault("marc_download_base_directory", self.marc_directory)
        return BatchProcessor(self.client, "cul", create_sync_config(**config))

    def test_five_records_in_batches_of_two(self):
        records = self.create_records(5)
        processor = self.make_processor(batch_size=2, chunk_size=1)

        processor.process_records(records)

        self.assertEqual(self.client.job_count, 3)
        self.assertEqual(self.client.chunk_counts(), [3, 3, 2])
        self.assertEqual(
            [len(self.client.submitted_orders(f"job-{i}")) for i in (1, 2, 3)], [2, 2, 1]
        )
        self.assertEqual(processor.batch_errors, [])
        self.assertEqual(processor.processing_errors, [])
        self.assertEqual(processor.syncing_errors, [])

        self.assertEqual(
            list(
                SyncRecord.objects.order_by("resource_id").values_list(
                    "pending_update", "folio_hrid"
                )
            ),
            [
                (PendingUpdate.TO_ARCHIVESSPACE, "job-1-h0"),
                (PendingUpdate.TO_ARCHIVESSPACE, "job-1-h1"),
                (PendingUpdate.TO_ARCHIVESSPACE, "job-2-h0"),
                (PendingUpdate.TO_ARCHIVESSPACE, "job-2-h1"),
                (PendingUpdate.TO_ARCHIVESSPACE, "job-3-h0"),
            ],
        )

    def test_chunk_size_defaults_to_batch_size(self):
        records = self.create_records(5)
        processor = self.make_processor(batch_size=2)

        processor.process_records(records)

        self.assertEqual(self.client.chunk_counts(), [2, 2, 2])

    def test_record_with_missing_marc_is_left_out(self):
        records = self.create_records(3)
        missing = create_sync_record(resource_id=99)
        processor = self.make_processor(batch_size=4)

        processor.process_records([records[0], missing, records[1], records[2]])

        self.assertEqual(self.client.job_count, 1)
        self.assertEqual(self.client.submitted_orders("job-1"), [0, 1, 2])
        self.assertEqual(
            processor.processing_errors,
            [ProcessingError(processor.processing_errors[0].message, "repositories/1/resources/99")],
        )
        missing.refresh_from_db()
        self.assertEqual(missing.pending_update, PendingUpdate.TO_FOLIO)
        self.assertEqual(
            SyncRecord.objects.filter(pending_update=PendingUpdate.TO_ARCHIVESSPACE).count(), 3
        )

    def test_unexpected_record_failure_does_not_drop_siblings(self):
        records = self.create_records(3)
        processor = self.make_processor(batch_size=3)
        real_enhance = processor.record_processor.enhance

        def enhance(marc_record, folio_marc, hrid):
            if marc_record["245"]["a"] == "Collection 2":
                raise IndexError("boom")
            return real_enhance(marc_record, folio_marc, hrid)

        processor.record_processor.enhance = enhance

        processor.process_records(records)

        self.assertEqual(processor.batch_errors, [])
        self.assertEqual(self.client.job_count, 1)
        self.assertEqual(self.client.submitted_orders("job-1"), [0, 1])
        self.assertEqual(
            [error.resource_uri for error in processor.processing_errors],
            ["repositories/1/resources/2"],
        )
        self.assertEqual(
            list(
                SyncRecord.objects.order_by("resource_id").values_list(
                    "pending_update", flat=True
                )
            ),
            [
                PendingUpdate.TO_ARCHIVESSPACE,
                PendingUpdate.TO_FOLIO,
                PendingUpdate.TO_ARCHIVESSPACE,
            ],
        )

    def test_batch_without_valid_records_is_skipped(self):
        records = self.create_records(2, with_marc=False)
        processor = self.make_processor(batch_size=2)

        processor.process_records(records)

        self.assertEqual(self.client.job_count, 0)
        self.assertEqual(len(processor.processing_errors), 2)
        self.assertEqual(processor.batch_errors, [])

    def test_failed_batch_does_not_stop_other_batches(self):
        records = self.create_records(4)
        processor = self.make_processor(batch_size=2)
        original_post = self.client.post.side_effect

        def failing_first_job(path, body=None):
            if path == "/change-manager/jobExecutions/job-1/records":
                raise FolioRequestError("unavailable", status_code=503)
            return original_post(path, body)

        self.client.post.side_effect = failing_first_job

        processor.process_records(records)

        self.assertEqual(
            processor.batch_errors,
            [BatchError(processor.batch_errors[0].message, batch_size=2)],
        )
        self.assertIn("unavailable", processor.batch_errors[0].message)
        self.assertEqual(
            list(
                SyncRecord.objects.order_by("resource_id").values_list(
                    "pending_update", flat=True
                )
            ),
            [
                PendingUpdate.TO_FOLIO,
                PendingUpdate.TO_FOLIO,
                PendingUpdate.TO_ARCHIVESSPACE,
                PendingUpdate.TO_ARCHIVESSPACE,
            ],
        )

    def test_polling_timeout_becomes_batch_error(self):
        records = self.create_records(2)
        job_execution = MagicMock()
        job_execution.wait_until_complete.side_effect = JobStalledError("no progress")
        processor = BatchProcessor(
            self.client,
            "cul",
            create_sync_config(marc_download_base_directory=self.marc_directory),
            job_execution_factory=MagicMock(return_value=job_execution),
        )

        processor.process_records(records)

        self.assertEqual(len(processor.batch_errors), 1)
        self.assertIn("no progress", processor.batch_errors[0].message)
        self.assertEqual(job_execution.add_record.call_count, 2)
        job_execution.start.assert_called_once_with()

    def test_failed_results_are_syncing_errors(self):
        self.client.status_for = lambda job_id, order: "ERROR" if order == 1 else "CREATED"
        records = self.create_records(2)
        processor = self.make_processor(batch_size=2)

        processor.process_records(records)

        self.assertEqual(
            [error.resource_uri for error in processor.syncing_errors],
            ["repositories/1/resources/2"],
        )

    def test_job_sized_to_surviving_records(self):
        records = self.create_records(1) + [create_sync_record(resource_id=50)]
        factory = MagicMock(side_effect=AssertionError("stop"))
        config = create_sync_config(marc_download_base_directory=self.marc_directory)
        processor = BatchProcessor(self.client, "cul", config, job_execution_factory=factory)

        processor.process_records(records)

        factory.assert_called_once_with(self.client, config, 1)

    def test_cancel_stops_new_batches(self):
        records = self.create_records(4)
        processor = self.make_processor(batch_size=2)
        original_post = self.client.post.side_effect

        def cancel_after_first_job(path, body=None):
            result = original_post(path, body)
            if body and body.get("recordsMetadata", {}).get("last"):
                processor.cancel()
            return result

        self.client.post.side_effect = cancel_after_first_job

        processor.process_records(records)

        self.assertTrue(processor.cancelled)
        self.assertEqual(self.client.job_count, 1)
        self.assertEqual(
            SyncRecord.objects.filter(pending_update=PendingUpdate.TO_ARCHIVESSPACE).count(), 2
        )

    def test_shared_cancel_event_set_beforehand(self):
        records = self.create_records(2)
        cancel_event = threading.Event()
        cancel_event.set()
        processor = BatchProcessor(
            self.client,
            "cul",
            create_sync_config(marc_download_base_directory=self.marc_directory),
            cancel_event=cancel_event,
        )

        processor.process_records(records)

        self.assertTrue(processor.cancelled)
        self.assertEqual(self.client.job_count, 0)
        self.assertEqual(
            SyncRecord.objects.filter(pending_update=PendingUpdate.TO_FOLIO).count(), 2
        )


class ConcurrentBatchProcessorTests(SimpleTestCase):
    @patch("folio_sync.aspace_to_folio.batch_processor.connection")
    def test_batches_run_in_worker_pool(self, mock_connection):
        record_processor = MagicMock()
        record_processor.processing_errors = []
        record_processor.process_record.return_value = None
        processor = BatchProcessor(
            MagicMock(),
            "cul",
            create_sync_config(batch_size=2, max_workers=3),
            record_processor=record_processor,
        )

        processor.process_records(list(range(7)))

        processed = sorted(
            call.args[0] for call in record_processor.process_record.call_args_list
        )
        self.assertEqual(processed, list(range(7)))
        self.assertEqual(mock_connection.close.call_count, 4)
