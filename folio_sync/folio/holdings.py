from logging import getLogger

from folio_sync.exceptions import FolioSyncException

logger = getLogger(__name__)


class HoldingsCreator:
    """
    Attaches a holdings record to a newly created FOLIO instance.

    ``location_codes`` maps the location code found in a record's 049$a to
    the UUID of the matching FOLIO location.
    """

    def __init__(self, client, location_codes):
        self.client = client
        self.location_codes = dict(location_codes or {})

    def resolve_location_id(self, location_code):
        try:
            return self.location_codes[location_code]
        except KeyError:
            raise FolioSyncException(
                f"Unknown holdings location code: {location_code!r}"
            ) from None

    def create_holdings_for_instance(self, instance_id, call_number, location_code):
        missing = [
            name
            for name, value in (
                ("holdings_call_number", call_number),
                ("permanent_location", location_code),
            )
            if not value
        ]
        if missing:
            raise FolioSyncException(
                "Missing required holdings metadata: %s" % ", ".join(missing)
            )

        permanent_location_id = self.resolve_location_id(location_code)
        response = self.client.create_holdings_record(
            instance_id, call_number, permanent_location_id
        )
        logger.info(
            "Created holdings record for instance %s with call number %s",
            instance_id,
            call_number,
        )
        return response
