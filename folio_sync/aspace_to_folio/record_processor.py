import os
from collections import namedtuple
from logging import getLogger
from xml.sax import SAXException

from pymarc import parse_xml_to_array

from folio_sync.aspace_to_folio.marc_enhancer import enhance
from folio_sync.errors import ProcessingError
from folio_sync.exceptions import MarcProcessingError
from folio_sync.logging import FolioSyncLogger

logger = getLogger(__name__)
structured_logger = FolioSyncLogger.get_logger(__name__)

SubmissionUnit = namedtuple("SubmissionUnit", ["marc_record", "metadata"])


def load_marc_xml(path):
    """
    Return the first record of a MARCXML file.

    Raises:
        MarcProcessingError: If the file is missing, unreadable or holds no
            record.
    """
    try:
        records = parse_xml_to_array(path)
    except (OSError, SAXException) as exc:
        raise MarcProcessingError(f"Unable to read MARC XML {path}: {exc}") from exc

    records = [record for record in records if record is not None]
    if not records:
        raise MarcProcessingError(f"No MARC record found in {path}")
    return records[0]


def permanent_location_code(marc_record):
    for field in marc_record.get_fields("049"):
        for value in field.get_subfields("a"):
            if value:
                return value
    return None


class RecordProcessor:
    """
    Turns a :class:`~folio_sync.models.SyncRecord` into a
    :class:`SubmissionUnit` ready to be added to a job execution.

    Failures never propagate: they are appended to ``processing_errors`` and
    :meth:`process_record` returns None so the caller can skip the record.
    """

    def __init__(self, marc_directory, enhance_function=enhance):
        self.marc_directory = marc_directory
        self.enhance = enhance_function
        self.processing_errors = []

    def process_record(self, record):
        try:
            marc_record = load_marc_xml(
                os.path.join(self.marc_directory, record.archivesspace_marc_xml_path)
            )

            folio_marc = None
            if record.folio_hrid:
                folio_marc_path = os.path.join(
                    self.marc_directory, record.folio_marc_xml_path
                )
                if os.path.exists(folio_marc_path):
                    folio_marc = load_marc_xml(folio_marc_path)

            enhanced = self.enhance(marc_record, folio_marc, record.folio_hrid)
            metadata = {
                "repository_id": record.repository_id,
                "resource_id": record.resource_id,
                "folio_hrid": record.folio_hrid,
                "suppress_discovery": record.is_folio_suppressed,
                "holdings_call_number": record.holdings_call_number,
                "permanent_location": permanent_location_code(enhanced),
            }
        except Exception as exc:
            message = str(exc)
            if not isinstance(exc, MarcProcessingError):
                message = f"Unexpected {exc.__class__.__name__}: {exc}"
            self.processing_errors.append(
                ProcessingError(message, resource_uri=record.resource_uri)
            )
            structured_logger.warning(
                "Skipping record that could not be processed.",
                event_code="record_processing_failed",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
                record=record,
            )
            return None

        logger.debug("Processed %s", record.resource_uri)
        return SubmissionUnit(enhanced, metadata)
