"""
Error records collected during a synchronization run.

These are not exceptions. Each component appends them to a list instead of
raising, so that one resource's failure never stops the others from being
attempted. The synchronizer reports every collection at the end of a run.
"""


def resource_uri(repository_id, resource_id):
    return f"repositories/{repository_id}/resources/{resource_id}"


class SyncErrorRecord:
    #: Short label used when reporting a collection of these errors
    label = "Error"

    def __init__(self, message, resource_uri=None):
        self.message = message
        self.resource_uri = resource_uri

    def __str__(self):
        if self.resource_uri:
            return f"{self.resource_uri}: {self.message}"
        return self.message

    def __repr__(self):
        return "%s(resource_uri=%r, message=%r)" % (
            self.__class__.__name__,
            self.resource_uri,
            self.message,
        )

    def __eq__(self, other):
        return (
            type(self) is type(other)
            and self.message == other.message
            and self.resource_uri == other.resource_uri
        )

    def __hash__(self):
        return hash((type(self), self.resource_uri, self.message))


class ProcessingError(SyncErrorRecord):
    """
    A record could not be loaded or enhanced and was left out of its batch.
    """

    label = "Processing errors"


class SyncingError(SyncErrorRecord):
    """
    A job result could not be reconciled with FOLIO or the local database.
    """

    label = "Syncing errors"


class BatchError(SyncErrorRecord):
    """
    A whole batch failed while being submitted to FOLIO or polled.
    """

    label = "Batch errors"

    def __init__(self, message, batch_size):
        super().__init__(message)
        self.batch_size = batch_size

    def __str__(self):
        return f"Batch of {self.batch_size} records: {self.message}"

    def __repr__(self):
        return "BatchError(batch_size=%r, message=%r)" % (
            self.batch_size,
            self.message,
        )

    def __eq__(self, other):
        return super().__eq__(other) and self.batch_size == other.batch_size

    def __hash__(self):
        return hash((type(self), self.batch_size, self.message))


class FetchingError(SyncErrorRecord):
    label = "Fetching errors"


class SavingError(SyncErrorRecord):
    label = "Saving errors"


class DownloadingError(SyncErrorRecord):
    label = "Downloading errors"


class LinkingError(SyncErrorRecord):
    """
    ArchivesSpace could not be updated with the FOLIO HRID of a record.
    """

    label = "Linking errors"
