from collections import namedtuple

#: Per-record statuses after which FOLIO will not change an entry again
TERMINAL_STATUSES = frozenset(("CREATED", "UPDATED", "DISCARDED", "ERROR"))

#: Statuses that mean an instance record was written
SUCCESS_STATUSES = frozenset(("CREATED", "UPDATED"))

JobResult = namedtuple(
    "JobResult",
    ["raw_result", "custom_metadata", "action_status", "hrid_list", "id_list"],
)


def entry_action_status(entry):
    """
    Return the status of the instance produced for a job log entry, falling
    back to the status of the source record when no instance was produced.
    """
    related = entry.get("relatedInstanceInfo") or {}
    return related.get("actionStatus") or entry.get("sourceRecordActionStatus")


def is_terminal(entry):
    return entry_action_status(entry) in TERMINAL_STATUSES


def source_record_order(entry):
    """
    Return the submission position of a job log entry, or None when FOLIO
    did not report a usable one.
    """
    try:
        order = int(entry.get("sourceRecordOrder"))
    except (TypeError, ValueError):
        return None
    return order if order >= 0 else None


class JobExecutionSummary:
    """
    Outcome of a completed job execution, built from its job log entries and
    the metadata the caller attached to each submitted record.

    FOLIO does not return entries in submission order, so they are sorted by
    ``sourceRecordOrder`` before ``custom_metadata[i]`` is matched back to
    the record submitted at position ``i``.
    """

    def __init__(self, raw_entries, custom_metadata):
        # Entries without an order sort last and match no metadata
        self.raw_results = sorted(
            raw_entries,
            key=lambda entry: (
                source_record_order(entry) is None,
                source_record_order(entry) or 0,
            ),
        )
        self.custom_metadata = list(custom_metadata)
        self.records_processed = len(self.raw_results)

    def __repr__(self):
        return "<JobExecutionSummary records_processed=%d>" % self.records_processed

    def _metadata_for(self, order):
        if order is not None and 0 <= order < len(self.custom_metadata):
            return self.custom_metadata[order] or {}
        return {}

    def each_result(self):
        for raw_result in self.raw_results:
            related = raw_result.get("relatedInstanceInfo") or {}
            yield JobResult(
                raw_result=raw_result,
                custom_metadata=self._metadata_for(source_record_order(raw_result)),
                action_status=entry_action_status(raw_result),
                hrid_list=list(related.get("hridList") or []),
                id_list=list(related.get("idList") or []),
            )
