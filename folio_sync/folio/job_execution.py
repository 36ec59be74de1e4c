import time
import uuid
from logging import getLogger

from folio_sync.exceptions import (
    CountMismatchError,
    FolioRequestError,
    JobProtocolError,
    JobStalledError,
    JobStateError,
    JobTimeoutError,
)
from folio_sync.folio.job_execution_summary import JobExecutionSummary, is_terminal
from folio_sync.logging import FolioSyncLogger

logger = getLogger(__name__)
structured_logger = FolioSyncLogger.get_logger(__name__)

JOB_EXECUTIONS_PATH = "/change-manager/jobExecutions"


def serialize_marc(marc_record):
    if isinstance(marc_record, str):
        return marc_record
    if isinstance(marc_record, bytes):
        return marc_record.decode("utf-8")
    marc_record.force_utf8 = True
    return marc_record.as_marc().decode("utf-8")


class JobExecution:
    """
    A FOLIO Data Import job execution.

    The lifecycle is strictly ordered:

    1. :meth:`create` resolves the current user, creates the job and attaches
       the job profile.
    2. :meth:`add_record` buffers records and sends them in chunks of
       ``chunk_size``.
    3. :meth:`start` sends the remaining records, checks that exactly
       ``expected_count`` records were sent and then sends the empty
       terminating chunk.
    4. :meth:`wait_until_complete` polls the job log until every record has
       reached a terminal status and returns a
       :class:`~folio_sync.folio.job_execution_summary.JobExecutionSummary`.

    The number of records has to be known up front because FOLIO requires
    the total with every chunk.
    """

    def __init__(
        self,
        client,
        job_execution_id,
        expected_count,
        chunk_size,
        entries_page_size=100,
    ):
        self.client = client
        self.id = job_execution_id
        self.expected_count = expected_count
        self.chunk_size = chunk_size
        self.entries_page_size = entries_page_size

        self.flushed_count = 0
        self.started = False
        self.buffer = []
        self.custom_metadata = []

    def __repr__(self):
        return "<JobExecution %s expected=%d flushed=%d started=%s>" % (
            self.id,
            self.expected_count,
            self.flushed_count,
            self.started,
        )

    @classmethod
    def create(
        cls,
        client,
        job_profile_id,
        data_type,
        expected_count,
        chunk_size,
        entries_page_size=100,
    ):
        """
        Create a job execution in FOLIO and return an object bound to it.

        Raises:
            JobProtocolError: If any of the setup requests fails or FOLIO
                responds with something other than what was expected.
        """
        if expected_count < 1:
            raise ValueError("A job execution needs at least one record")
        if chunk_size < 1:
            raise ValueError("chunk_size must be a positive integer")

        job_profile_info = {"id": job_profile_id, "dataType": data_type}

        try:
            user_id = client.get("/bl-users/_self")["user"]["id"]
            response = client.post(
                JOB_EXECUTIONS_PATH,
                {
                    "sourceType": "ONLINE",
                    "userId": user_id,
                    "jobProfileInfo": job_profile_info,
                },
            )
            job_execution_id = response["jobExecutions"][0]["id"]
            client.put(
                f"{JOB_EXECUTIONS_PATH}/{job_execution_id}/jobProfile",
                job_profile_info,
            )
        except FolioRequestError as exc:
            raise JobProtocolError(f"Unable to create job execution: {exc}") from exc
        except (KeyError, IndexError, TypeError) as exc:
            raise JobProtocolError(
                f"Unexpected response while creating job execution: {exc!r}"
            ) from exc

        job_execution = cls(
            client,
            job_execution_id,
            expected_count,
            chunk_size,
            entries_page_size=entries_page_size,
        )
        structured_logger.info(
            "Created job execution.",
            event_code="job_execution_created",
            job_execution=job_execution,
            job_profile_id=job_profile_id,
        )
        return job_execution

    @classmethod
    def from_config(cls, client, config, expected_count):
        return cls.create(
            client,
            config.job_profile_uuid,
            config.data_type,
            expected_count,
            config.chunk_size,
            entries_page_size=config.entries_page_size,
        )

    def add_record(self, marc_record, custom_metadata=None):
        """
        Add one record to the job. ``custom_metadata`` is handed back with the
        record's result once the job completes.
        """
        if self.started:
            raise JobStateError(
                f"Cannot add records to job execution {self.id} after it has started"
            )

        self.custom_metadata.append(custom_metadata or {})
        self.buffer.append(marc_record)

        if len(self.buffer) >= self.chunk_size:
            self.flush()

    def flush(self, is_last=False):
        if self.started:
            raise JobStateError(f"Job execution {self.id} has already started")

        counter = self.flushed_count + len(self.buffer)
        payload = {
            "id": str(uuid.uuid4()),
            "recordsMetadata": {
                "last": is_last,
                "counter": counter,
                "contentType": "MARC_RAW",
                "total": self.expected_count,
            },
            "initialRecords": [
                {"record": serialize_marc(marc_record), "order": order}
                for order, marc_record in enumerate(self.buffer, start=self.flushed_count)
            ],
        }

        try:
            self.client.post(f"{JOB_EXECUTIONS_PATH}/{self.id}/records", payload)
        except FolioRequestError as exc:
            raise JobProtocolError(
                f"Unable to send records to job execution {self.id}: {exc}"
            ) from exc

        logger.debug(
            "Job execution %s: sent %d records (counter %d, last=%s)",
            self.id,
            len(self.buffer),
            counter,
            is_last,
        )
        self.flushed_count = counter
        self.buffer = []

    def start(self):
        if self.started:
            raise JobStateError(f"Job execution {self.id} has already started")

        if self.buffer:
            self.flush()

        if self.flushed_count != self.expected_count:
            raise CountMismatchError(
                "Job execution %s expected %d records but %d were sent"
                % (self.id, self.expected_count, self.flushed_count),
                flushed_count=self.flushed_count,
                expected_count=self.expected_count,
            )

        self.flush(is_last=True)
        self.started = True

        structured_logger.info(
            "Started job execution.",
            event_code="job_execution_started",
            job_execution=self,
        )

    def fetch_job_log_entries(self, offset=0):
        try:
            response = self.client.get(
                f"/metadata-provider/jobLogEntries/{self.id}",
                {"limit": self.entries_page_size, "offset": offset},
            )
        except FolioRequestError as exc:
            raise JobProtocolError(
                f"Unable to fetch job log entries for {self.id}: {exc}"
            ) from exc

        if not isinstance(response, dict):
            raise JobProtocolError(
                f"Unexpected job log response for {self.id}: {response!r}"
            )
        return int(response.get("totalRecords") or 0), response.get("entries") or []

    def fetch_all_job_log_entries(self):
        """
        Return the number of records FOLIO has registered for this job and
        all of its log entries, requested ``entries_page_size`` at a time.
        """
        total, entries = self.fetch_job_log_entries()
        entries = list(entries)
        offset = len(entries)
        while entries and offset < total:
            _, page = self.fetch_job_log_entries(offset=offset)
            if not page:
                break
            entries.extend(page)
            offset += len(page)
        return total, entries

    def wait_until_complete(
        self, poll_interval=2, startup_grace_period=120, max_poll_duration=60 * 60
    ):
        """
        Block until every record of the job has a terminal status.

        Raises:
            JobStateError: If the job has not been started.
            JobStalledError: If FOLIO has not registered a single record once
                ``startup_grace_period`` seconds have passed.
            JobTimeoutError: If polling takes longer than
                ``max_poll_duration`` seconds in total.
        """
        if not self.started:
            raise JobStateError(f"Job execution {self.id} has not been started")

        poll_started = time.monotonic()

        while True:
            time.sleep(poll_interval)
            elapsed = time.monotonic() - poll_started

            acknowledged, entries = self.fetch_all_job_log_entries()

            if acknowledged == 0:
                if elapsed > startup_grace_period:
                    structured_logger.error(
                        "Job execution did not start.",
                        event_code="job_execution_stalled",
                        reason=f"No records registered after {elapsed:.0f} seconds",
                        reason_code="no_progress",
                        job_execution=self,
                    )
                    raise JobStalledError(
                        "Job execution %s registered no records within %s seconds"
                        % (self.id, startup_grace_period)
                    )
            elif acknowledged >= self.expected_count:
                terminal_entries = [entry for entry in entries if is_terminal(entry)]
                logger.debug(
                    "Job execution %s: %d of %d records complete",
                    self.id,
                    len(terminal_entries),
                    self.expected_count,
                )
                if len(terminal_entries) >= self.expected_count:
                    structured_logger.info(
                        "Job execution complete.",
                        event_code="job_execution_completed",
                        job_execution=self,
                        elapsed_seconds=round(elapsed, 1),
                    )
                    return JobExecutionSummary(terminal_entries, self.custom_metadata)
            else:
                logger.debug(
                    "Job execution %s: %d of %d records registered",
                    self.id,
                    acknowledged,
                    self.expected_count,
                )

            if elapsed > max_poll_duration:
                structured_logger.error(
                    "Job execution timed out.",
                    event_code="job_execution_timeout",
                    reason=f"Still incomplete after {elapsed:.0f} seconds",
                    reason_code="poll_timeout",
                    job_execution=self,
                    acknowledged=acknowledged,
                )
                raise JobTimeoutError(
                    "Job execution %s did not complete within %s seconds"
                    % (self.id, max_poll_duration)
                )
