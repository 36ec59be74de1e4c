import warnings
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase

from folio_sync.logging import FolioSyncLogger
from folio_sync.models import PendingUpdate, SyncRecord


class FolioSyncLoggerTests(SimpleTestCase):
    def setUp(self):
        self.mock_structlog_logger = MagicMock()
        self.logger = FolioSyncLogger(self.mock_structlog_logger)

    def test_info_logs_with_event(self):
        self.logger.info("info msg", event_code="info_event", key="value")

        args, kwargs = self.mock_structlog_logger.info.call_args
        self.assertEqual(args[0], "info msg")
        self.assertEqual(kwargs["event_code"], "info_event")
        self.assertEqual(kwargs["key"], "value")

    def test_missing_event_code_raises(self):
        with self.assertRaises(ValueError):
            self.logger.info("msg", event_code=None)

    def test_missing_message_raises(self):
        with self.assertRaises(ValueError):
            self.logger.log("info", "", event_code="event")

    def test_warning_requires_reason_and_reason_code(self):
        with self.assertRaises(TypeError):
            self.logger.warning("msg", event_code="event", reason="only reason")

        with self.assertRaises(ValueError):
            self.logger.log("error", "msg", event_code="event", reason="x", reason_code="")

        self.logger.warning(
            "msg", event_code="event", reason="a reason", reason_code="a_code"
        )
        args, kwargs = self.mock_structlog_logger.warning.call_args
        self.assertEqual(kwargs["reason"], "a reason")
        self.assertEqual(kwargs["reason_code"], "a_code")

    def test_record_extractor(self):
        record = SyncRecord(
            archivesspace_instance_key="cul",
            repository_id=2,
            resource_id=7,
            folio_hrid="in042",
            pending_update=PendingUpdate.TO_ARCHIVESSPACE,
        )

        self.logger.info("msg", event_code="event", record=record)

        args, kwargs = self.mock_structlog_logger.info.call_args
        self.assertNotIn("record", kwargs)
        self.assertEqual(kwargs["instance_key"], "cul")
        self.assertEqual(kwargs["repository_id"], 2)
        self.assertEqual(kwargs["resource_id"], 7)
        self.assertEqual(kwargs["folio_hrid"], "in042")
        self.assertEqual(kwargs["pending_update"], "to_archivesspace")

    def test_job_execution_extractor(self):
        job_execution = SimpleNamespace(id="job-1", expected_count=4)

        self.logger.info("msg", event_code="event", job_execution=job_execution)

        args, kwargs = self.mock_structlog_logger.info.call_args
        self.assertEqual(kwargs["job_execution_id"], "job-1")
        self.assertEqual(kwargs["expected_count"], 4)

    def test_explicit_key_overrides_extracted(self):
        job_execution = SimpleNamespace(id="job-1", expected_count=4)

        self.logger.info(
            "msg", event_code="event", job_execution=job_execution, expected_count=9
        )

        args, kwargs = self.mock_structlog_logger.info.call_args
        self.assertEqual(kwargs["expected_count"], 9)

    def test_none_values_are_skipped(self):
        record = SyncRecord(archivesspace_instance_key="cul", repository_id=2, resource_id=7)

        self.logger.info("msg", event_code="event", record=record, explicit=None)

        args, kwargs = self.mock_structlog_logger.info.call_args
        self.assertNotIn("folio_hrid", kwargs)
        self.assertNotIn("explicit", kwargs)

    def test_bind_adds_context(self):
        bound = self.logger.bind(instance_key="barnard")

        bound.info("msg", event_code="event")

        self.assertIsInstance(bound, FolioSyncLogger)
        args, kwargs = self.mock_structlog_logger.info.call_args
        self.assertEqual(kwargs["instance_key"], "barnard")

    def test_register_extractor_warns_when_overriding_default(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            self.logger.register_extractor("record", lambda o: {"record_id": 1})

        self.assertEqual(len(caught), 1)

    def test_unregister_extractor(self):
        self.logger.register_extractor("thing", lambda o: {"thing_id": o.id})
        self.logger.unregister_extractor("thing")

        self.assertNotIn("thing", self.logger._extractors)

    def test_exception_requires_reason(self):
        try:
            raise ValueError("boom")
        except ValueError:
            self.logger.exception(
                "failed", event_code="event", reason="boom", reason_code="ValueError"
            )

        args, kwargs = self.mock_structlog_logger.exception.call_args
        self.assertEqual(args[0], "failed")
        self.assertEqual(kwargs["reason_code"], "ValueError")

    def test_get_logger_uses_structlog(self):
        with patch("folio_sync.logging.structlog.get_logger") as mock_get_logger:
            logger = FolioSyncLogger.get_logger("folio_sync.tests")

        mock_get_logger.assert_called_once_with("structlog.folio_sync.tests")
        self.assertIs(logger._logger, mock_get_logger.return_value)
