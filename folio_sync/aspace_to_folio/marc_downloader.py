import os
from logging import getLogger

from pymarc import record_to_xml

from folio_sync.errors import DownloadingError
from folio_sync.models import PendingUpdate, SyncRecord

logger = getLogger(__name__)


class MarcDownloader:
    """
    Saves the MARC XML of every record pending submission to FOLIO, plus the
    record FOLIO currently holds for it when the resource is already linked.
    """

    def __init__(self, aspace_client, folio_client, marc_directory):
        self.aspace_client = aspace_client
        self.folio_client = folio_client
        self.marc_directory = marc_directory
        self.instance_key = aspace_client.instance_key
        self.downloading_errors = []

    def download_pending_marc_records(self):
        records = SyncRecord.objects.pending(self.instance_key, PendingUpdate.TO_FOLIO)
        downloaded = 0
        for record in records:
            try:
                self.download_marc_for_record(record)
            except Exception as exc:
                logger.exception("Unable to download MARC for %s", record.resource_uri)
                self.downloading_errors.append(
                    DownloadingError(str(exc), resource_uri=record.resource_uri)
                )
            else:
                downloaded += 1
        logger.info(
            "Downloaded MARC for %d records of %s (%d errors)",
            downloaded,
            self.instance_key,
            len(self.downloading_errors),
        )

    def download_marc_for_record(self, record):
        aspace_marc = self.aspace_client.fetch_marc_xml_resource(
            record.repository_id, record.resource_id
        )
        self.save_marc_file(record.archivesspace_marc_xml_path, aspace_marc)

        if not record.folio_hrid:
            return

        folio_marc = self.folio_client.get_marc_record(record.folio_hrid)
        if folio_marc is not None:
            self.save_marc_file(
                record.folio_marc_xml_path, record_to_xml(folio_marc, namespace=True)
            )

    def save_marc_file(self, relative_path, marc_data):
        path = os.path.join(self.marc_directory, relative_path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as marc_file:
            marc_file.write(marc_data)
        return path
