from logging import getLogger

from folio_sync.errors import LinkingError
from folio_sync.logging import FolioSyncLogger
from folio_sync.models import PendingUpdate

logger = getLogger(__name__)
structured_logger = FolioSyncLogger.get_logger(__name__)


class ResourceUpdater:
    """
    Writes the HRIDs of newly created FOLIO instances back to their
    ArchivesSpace resources.
    """

    def __init__(self, client):
        self.client = client
        self.linking_errors = []

    def update_records(self, records):
        for record in records:
            self.update_record(record)

    def update_record(self, record):
        try:
            resource = self.client.fetch_resource(record.repository_id, record.resource_id)
            self.client.update_resource(
                record.repository_id,
                record.resource_id,
                self.client.write_folio_hrid(resource, record.folio_hrid),
            )
            record.transition(PendingUpdate.NO_UPDATE)
        except Exception as exc:
            structured_logger.exception(
                "Unable to link ArchivesSpace resource.",
                event_code="resource_link_failed",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
                record=record,
            )
            self.linking_errors.append(
                LinkingError(str(exc), resource_uri=record.resource_uri)
            )
            return False

        structured_logger.info(
            "Linked ArchivesSpace resource to FOLIO.",
            event_code="resource_linked",
            record=record,
        )
        return True
