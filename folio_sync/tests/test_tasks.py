from datetime import timedelta
from unittest import mock

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone

from folio_sync.decorators import task_lock_key
from folio_sync.errors import BatchError, FetchingError, SyncingError
from folio_sync.tasks import (
    instance_lock_key,
    run_synchronization,
    sync_archivesspace_to_folio,
)


def synchronizer_with_errors(**errors):
    synchronizer = mock.MagicMock()
    all_errors = {
        "fetching": [],
        "saving": [],
        "downloading": [],
        "processing": [],
        "batch": [],
        "syncing": [],
        "linking": [],
    }
    all_errors.update(errors)
    synchronizer.fetch_and_sync_resources_to_folio.return_value = all_errors
    return synchronizer


class RunSynchronizationTests(TestCase):
    def test_returns_errors_as_text(self):
        synchronizer = synchronizer_with_errors(
            fetching=[FetchingError("unreachable", resource_uri="repositories/2")],
            batch=[BatchError("job stalled", batch_size=3)],
        )

        errors = run_synchronization("cul", synchronizer=synchronizer)

        synchronizer.fetch_and_sync_resources_to_folio.assert_called_once_with(None)
        self.assertEqual(errors["fetching"], ["repositories/2: unreachable"])
        self.assertEqual(errors["batch"], ["Batch of 3 records: job stalled"])
        self.assertEqual(errors["linking"], [])

    def test_last_x_hours(self):
        synchronizer = synchronizer_with_errors()
        before = timezone.now()

        run_synchronization("cul", last_x_hours=24, synchronizer=synchronizer)

        (modified_since,) = synchronizer.fetch_and_sync_resources_to_folio.call_args.args
        self.assertGreaterEqual(modified_since, before - timedelta(hours=24))
        self.assertLessEqual(modified_since, timezone.now() - timedelta(hours=24))

    @mock.patch("folio_sync.tasks.FolioSynchronizer")
    def test_builds_synchronizer_for_instance(self, synchronizer_class):
        synchronizer_class.return_value = synchronizer_with_errors()

        run_synchronization("barnard")

        synchronizer_class.assert_called_once_with("barnard")


class SyncArchivesSpaceToFolioTaskTests(TestCase):
    def setUp(self):
        cache.clear()
        self.addCleanup(cache.clear)

    @mock.patch("folio_sync.tasks.run_synchronization")
    def test_runs_synchronization(self, run_synchronization_mock):
        run_synchronization_mock.return_value = {"syncing": ["failed"]}

        result = sync_archivesspace_to_folio.apply(
            args=("cul",), kwargs={"last_x_hours": 6}
        ).get()

        self.assertEqual(result, {"syncing": ["failed"]})
        run_synchronization_mock.assert_called_once_with("cul", last_x_hours=6)

    def test_lock_key_is_the_instance(self):
        self.assertEqual(
            task_lock_key(
                sync_archivesspace_to_folio.name,
                ("cul",),
                {"last_x_hours": 24},
                lock_key=instance_lock_key,
            ),
            f"{sync_archivesspace_to_folio.name}:cul",
        )
        self.assertEqual(
            instance_lock_key(instance_key="barnard", last_x_hours=None), "barnard"
        )

    @mock.patch("folio_sync.tasks.run_synchronization")
    def test_skips_when_instance_is_locked(self, run_synchronization_mock):
        cache.add(f"{sync_archivesspace_to_folio.name}:cul", "another-worker")

        result = sync_archivesspace_to_folio.apply(
            args=("cul",), kwargs={"last_x_hours": None}
        ).get()

        self.assertIsNone(result)
        run_synchronization_mock.assert_not_called()

        sync_archivesspace_to_folio.apply(
            args=("cul",), kwargs={"last_x_hours": None, "force": True}
        ).get()
        run_synchronization_mock.assert_called_once_with("cul", last_x_hours=None)

    @mock.patch("folio_sync.tasks.run_synchronization")
    def test_runs_with_different_options_exclude_each_other(
        self, run_synchronization_mock
    ):
        nested_results = []

        def start_second_run(instance_key, last_x_hours=None):
            nested_results.append(
                sync_archivesspace_to_folio.apply(
                    args=(instance_key,), kwargs={"last_x_hours": None}
                ).get()
            )
            return {}

        run_synchronization_mock.side_effect = start_second_run

        sync_archivesspace_to_folio.apply(
            args=("cul",), kwargs={"last_x_hours": 24}
        ).get()

        self.assertEqual(nested_results, [None])
        run_synchronization_mock.assert_called_once_with("cul", last_x_hours=24)

    @mock.patch("folio_sync.tasks.run_synchronization")
    def test_other_instances_are_not_blocked(self, run_synchronization_mock):
        run_synchronization_mock.return_value = {}
        cache.add(f"{sync_archivesspace_to_folio.name}:cul", "another-worker")

        sync_archivesspace_to_folio.apply(
            args=("barnard",), kwargs={"last_x_hours": None}
        ).get()

        run_synchronization_mock.assert_called_once_with("barnard", last_x_hours=None)

    def test_error_records_are_logged(self):
        error = SyncingError("rejected", resource_uri="repositories/1/resources/5")
        synchronizer = synchronizer_with_errors(syncing=[error])

        with mock.patch("folio_sync.tasks.logger") as logger:
            run_synchronization("cul", synchronizer=synchronizer)

        logger.warning.assert_called_once_with("%s: %s", "Syncing errors", error)
