class FolioSyncException(Exception):
    """
    Base class for errors raised by the synchronization pipeline.
    """


class FolioRequestError(FolioSyncException):
    """
    Raised when a FOLIO API request fails or returns an unusable response.

    ``status_code`` is the HTTP status when one was received.
    """

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class ArchivesSpaceRequestError(FolioSyncException):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class RecordNotFoundError(FolioSyncException):
    pass


class MarcProcessingError(FolioSyncException):
    """
    Raised when a MARC record cannot be loaded or parsed.
    """


class MarcEnhancementError(MarcProcessingError):
    pass


class IncompleteInstanceError(FolioSyncException):
    """
    Raised when a fetched FOLIO instance lacks a field required to write it
    back.
    """


class JobProtocolError(FolioSyncException):
    """
    Raised when a FOLIO job execution handshake or chunk request fails.
    """


class JobStateError(FolioSyncException):
    pass


class CountMismatchError(FolioSyncException):
    def __init__(self, message, flushed_count=None, expected_count=None):
        super().__init__(message)
        self.flushed_count = flushed_count
        self.expected_count = expected_count


class JobTimeoutError(FolioSyncException):
    """
    Raised when polling a started job execution exceeds its time budget.
    """


class JobStalledError(JobTimeoutError):
    """
    Raised when FOLIO registers no records for a job within the startup grace
    period.
    """
