from logging import getLogger

from folio_sync.errors import SyncingError, resource_uri
from folio_sync.exceptions import IncompleteInstanceError
from folio_sync.folio.holdings import HoldingsCreator
from folio_sync.folio.job_execution_summary import SUCCESS_STATUSES
from folio_sync.logging import FolioSyncLogger
from folio_sync.models import PendingUpdate, SyncRecord

logger = getLogger(__name__)
structured_logger = FolioSyncLogger.get_logger(__name__)

#: Fields FOLIO rejects an instance update without
REQUIRED_INSTANCE_FIELDS = ("_version", "title", "instanceTypeId", "hrid", "source")


def build_suppression_update(instance_record, suppress_discovery):
    """
    Return the full instance record to PUT back with a new suppression flag.

    Raises:
        IncompleteInstanceError: If the fetched record lacks a field FOLIO
            requires on update.
    """
    missing = [
        name for name in REQUIRED_INSTANCE_FIELDS if instance_record.get(name) in (None, "")
    ]
    if missing:
        raise IncompleteInstanceError(
            "Instance %s is missing %s"
            % (instance_record.get("id", "(unknown id)"), ", ".join(missing))
        )

    updated = dict(instance_record)
    updated["discoverySuppress"] = suppress_discovery
    return updated


class JobResultProcessor:
    """
    Applies the results of a completed job execution.

    For each result it brings the FOLIO suppression flag in line with the
    local record, attaches a holdings record to new instances and moves the
    local :class:`~folio_sync.models.SyncRecord` to its next state. Problems
    with one result are collected in ``syncing_errors`` and never stop the
    others from being applied.
    """

    def __init__(
        self,
        folio_client,
        instance_key,
        holdings_creator=None,
        mark_failures_fix_required=False,
    ):
        self.folio_client = folio_client
        self.instance_key = instance_key
        self.holdings_creator = holdings_creator or HoldingsCreator(folio_client, {})
        self.mark_failures_fix_required = mark_failures_fix_required
        self.syncing_errors = []

    @classmethod
    def from_config(cls, folio_client, instance_key, config):
        return cls(
            folio_client,
            instance_key,
            holdings_creator=HoldingsCreator(
                folio_client, config.holdings_location_codes
            ),
            mark_failures_fix_required=config.mark_failures_fix_required,
        )

    def process_results(self, summary):
        processed = 0
        for result in summary.each_result():
            processed += 1
            uri = resource_uri(
                result.custom_metadata.get("repository_id"),
                result.custom_metadata.get("resource_id"),
            )
            try:
                self.process_result(result)
            except Exception as exc:
                self.record_error(uri, f"Unable to apply job result: {exc}", exc)

        logger.info(
            "Processed %d job results for %s (%d errors)",
            processed,
            self.instance_key,
            len(self.syncing_errors),
        )

    def record_error(self, uri, message, exc):
        structured_logger.exception(
            "Unable to apply job result.",
            event_code="job_result_failed",
            reason=str(exc),
            reason_code=exc.__class__.__name__,
            resource_uri=uri,
        )
        self.syncing_errors.append(SyncingError(message, resource_uri=uri))

    def process_result(self, result):
        metadata = result.custom_metadata
        uri = resource_uri(metadata.get("repository_id"), metadata.get("resource_id"))

        # Local state is applied even when these follow-ups fail.
        if result.action_status in SUCCESS_STATUSES and result.id_list:
            instance_id = result.id_list[0]
            try:
                self.update_suppression(
                    instance_id, bool(metadata.get("suppress_discovery"))
                )
            except Exception as exc:
                self.record_error(uri, f"Unable to update suppression: {exc}", exc)

            if result.action_status == "CREATED" and metadata.get("holdings_call_number"):
                try:
                    self.holdings_creator.create_holdings_for_instance(
                        instance_id,
                        metadata["holdings_call_number"],
                        metadata.get("permanent_location"),
                    )
                except Exception as exc:
                    self.record_error(
                        uri,
                        f"Unable to create holdings for instance {instance_id}: {exc}",
                        exc,
                    )

        try:
            record = SyncRecord.objects.get_by_key(
                self.instance_key,
                metadata.get("repository_id"),
                metadata.get("resource_id"),
            )
        except SyncRecord.DoesNotExist:
            self.syncing_errors.append(
                SyncingError("No local record for this job result", resource_uri=uri)
            )
            return

        if result.action_status in SUCCESS_STATUSES:
            self.update_record_state(record, result.hrid_list)
        else:
            self.handle_failed_result(record, result)

    def update_suppression(self, instance_id, suppress_discovery):
        """
        Set ``discoverySuppress`` on a FOLIO instance unless it already has
        the desired value. Returns True if an update was sent.
        """
        instance_record = self.folio_client.find_instance_record(instance_id)
        if bool(instance_record.get("discoverySuppress")) == suppress_discovery:
            logger.debug(
                "Instance %s already has discoverySuppress=%s",
                instance_id,
                suppress_discovery,
            )
            return False

        self.folio_client.update_instance_record(
            instance_id, build_suppression_update(instance_record, suppress_discovery)
        )
        structured_logger.info(
            "Updated instance suppression.",
            event_code="instance_suppression_updated",
            instance_id=instance_id,
            suppress_discovery=suppress_discovery,
        )
        return True

    def update_record_state(self, record, hrid_list):
        if hrid_list and record.folio_hrid != hrid_list[0]:
            record.transition(PendingUpdate.TO_ARCHIVESSPACE, folio_hrid=hrid_list[0])
        else:
            record.transition(PendingUpdate.NO_UPDATE)

        structured_logger.info(
            "Applied job result to local record.",
            event_code="sync_record_transitioned",
            record=record,
        )

    def handle_failed_result(self, record, result):
        message = "FOLIO did not create or update the record (status: %s)" % (
            result.action_status or "unknown"
        )
        error_detail = result.raw_result.get("error")
        if error_detail:
            message = f"{message}: {error_detail}"

        self.syncing_errors.append(SyncingError(message, resource_uri=record.resource_uri))

        if self.mark_failures_fix_required:
            record.transition(PendingUpdate.FIX_REQUIRED)

        structured_logger.warning(
            "FOLIO rejected record.",
            event_code="job_result_rejected",
            reason=message,
            reason_code=result.action_status or "unknown",
            record=record,
        )
