from logging import getLogger

from folio_sync.archives_space.client import extract_id
from folio_sync.errors import FetchingError, SavingError
from folio_sync.exceptions import ArchivesSpaceRequestError
from folio_sync.logging import FolioSyncLogger
from folio_sync.models import PendingUpdate, SyncRecord

logger = getLogger(__name__)
structured_logger = FolioSyncLogger.get_logger(__name__)


class ResourceFetcher:
    """
    Walks the published repositories of an ArchivesSpace instance and
    records every recently modified resource as pending submission to FOLIO.
    """

    def __init__(self, client):
        self.client = client
        self.instance_key = client.instance_key
        self.fetching_errors = []
        self.saving_errors = []

    def fetch_and_save_recent_resources(self, modified_since=None):
        try:
            repositories = self.client.fetch_all_repositories()
        except ArchivesSpaceRequestError as exc:
            self.fetching_errors.append(
                FetchingError(f"Unable to list repositories: {exc}")
            )
            return

        for repository in repositories:
            if not repository.get("publish"):
                logger.info("Repository %s is not published, skipping", repository.get("uri"))
                continue
            self.fetch_and_save_repository_resources(
                extract_id(repository["uri"]), modified_since
            )

        logger.info(
            "Fetched resources for %s: %d fetching errors, %d saving errors",
            self.instance_key,
            len(self.fetching_errors),
            len(self.saving_errors),
        )

    def fetch_and_save_repository_resources(self, repo_id, modified_since=None):
        try:
            for page in self.client.retrieve_paginated_resources(repo_id, modified_since):
                for resource in page:
                    if resource.get("suppressed"):
                        continue
                    self.save_resource(repo_id, resource)
        except ArchivesSpaceRequestError as exc:
            structured_logger.error(
                "Unable to fetch resources.",
                event_code="resource_fetch_failed",
                reason=str(exc),
                reason_code="archivesspace_request_failed",
                instance_key=self.instance_key,
                repository_id=repo_id,
            )
            self.fetching_errors.append(
                FetchingError(str(exc), resource_uri=f"repositories/{repo_id}")
            )

    def save_resource(self, repo_id, resource):
        uri = resource.get("uri")
        try:
            fields = {
                "pending_update": PendingUpdate.TO_FOLIO,
                "is_folio_suppressed": not resource.get("publish", False),
                "holdings_call_number": self.client.read_call_number(resource, repo_id),
            }
            folio_hrid = self.client.read_folio_hrid(resource)
            if folio_hrid:
                fields["folio_hrid"] = folio_hrid

            record = SyncRecord.objects.upsert(
                self.instance_key, int(repo_id), int(extract_id(uri)), **fields
            )
        except Exception as exc:
            structured_logger.exception(
                "Unable to save resource.",
                event_code="resource_save_failed",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
                instance_key=self.instance_key,
                resource_uri=uri,
            )
            self.saving_errors.append(SavingError(str(exc), resource_uri=uri))
            return None

        logger.debug("Saved %s", record)
        return record
