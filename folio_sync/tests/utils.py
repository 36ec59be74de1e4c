import os
from collections import defaultdict
from unittest.mock import MagicMock

from pymarc import Field, Record, Subfield, record_to_xml

from folio_sync.config import SyncConfig
from folio_sync.models import PendingUpdate, SyncRecord

JOB_PROFILE_UUID = "3fe97378-297c-40d9-9b42-232510afc58f"


def create_sync_record(
    *,
    archivesspace_instance_key="cul",
    repository_id=1,
    resource_id=123,
    pending_update=PendingUpdate.TO_FOLIO,
    is_folio_suppressed=False,
    **kwargs,
):
    return SyncRecord.objects.create(
        archivesspace_instance_key=archivesspace_instance_key,
        repository_id=repository_id,
        resource_id=resource_id,
        pending_update=pending_update,
        is_folio_suppressed=is_folio_suppressed,
        **kwargs,
    )


def create_marc_record(title="Test Collection", location_code=None, fields=()):
    record = Record(force_utf8=True)
    record.add_field(
        Field(
            tag="245",
            indicators=["1", "0"],
            subfields=[Subfield(code="a", value=title)],
        )
    )
    if location_code:
        record.add_ordered_field(
            Field(
                tag="049",
                indicators=[" ", " "],
                subfields=[Subfield(code="a", value=location_code)],
            )
        )
    for field in fields:
        record.add_ordered_field(field)
    return record


def write_marc_xml(directory, relative_path, marc_record):
    path = os.path.join(directory, relative_path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as marc_file:
        marc_file.write(record_to_xml(marc_record, namespace=True))
    return path


def create_sync_config(**kwargs):
    values = {
        "job_profile_uuid": JOB_PROFILE_UUID,
        "batch_size": 2,
        "poll_interval": 0,
        "startup_grace_period": 10,
        "max_poll_duration": 100,
    }
    values.update(kwargs)
    return SyncConfig(**values)


def job_log_entry(order, status="CREATED", hrid=None, instance_id=None, **kwargs):
    entry = {
        "sourceRecordOrder": order,
        "sourceRecordActionStatus": status,
        "relatedInstanceInfo": {
            "actionStatus": status,
            "hridList": [hrid] if hrid else [],
            "idList": [instance_id] if instance_id else [],
        },
    }
    entry.update(kwargs)
    return entry


def instance_record(instance_id="instance-1", discovery_suppress=False, **kwargs):
    record = {
        "id": instance_id,
        "_version": 3,
        "hrid": "in00001",
        "title": "Test Collection",
        "instanceTypeId": "instance-type-1",
        "source": "MARC",
        "discoverySuppress": discovery_suppress,
    }
    record.update(kwargs)
    return record


class FakeFolioClient:
    """
    In-memory stand-in for :class:`folio_sync.folio.client.FolioClient`
    which runs the Data Import job protocol.

    Every record sent to a job is registered immediately and completes with
    the status returned by ``status_for(job_id, order)`` (``CREATED`` by
    default). Job log entries are returned in reverse order.
    """

    def __init__(self, status_for=None, discovery_suppress=False):
        self.status_for = status_for or (lambda job_id, order: "CREATED")
        self.discovery_suppress = discovery_suppress
        self.chunks = defaultdict(list)
        self.job_count = 0

        self.get = MagicMock(side_effect=self._get)
        self.post = MagicMock(side_effect=self._post)
        self.put = MagicMock(side_effect=self._put)
        self.find_instance_record = MagicMock(
            side_effect=lambda instance_id: instance_record(
                instance_id, discovery_suppress=self.discovery_suppress
            )
        )
        self.update_instance_record = MagicMock(return_value=None)
        self.create_holdings_record = MagicMock(return_value={"id": "holdings-1"})

    def _get(self, path, params=None):
        if path == "/bl-users/_self":
            return {"user": {"id": "user-1"}}
        if path.startswith("/metadata-provider/jobLogEntries/"):
            job_id = path.rsplit("/", 1)[-1]
            entries = list(reversed(self.entries_for(job_id)))
            params = params or {}
            offset = params.get("offset", 0)
            limit = params.get("limit", len(entries))
            return {
                "totalRecords": len(entries),
                "entries": entries[offset : offset + limit],
            }
        raise AssertionError(f"Unexpected GET {path}")

    def _post(self, path, body=None):
        if path == "/change-manager/jobExecutions":
            self.job_count += 1
            return {"jobExecutions": [{"id": f"job-{self.job_count}"}]}
        if path.endswith("/records"):
            job_id = path.split("/")[-2]
            self.chunks[job_id].append(body)
            return None
        raise AssertionError(f"Unexpected POST {path}")

    def _put(self, path, body=None):
        if path.endswith("/jobProfile"):
            return None
        raise AssertionError(f"Unexpected PUT {path}")

    def submitted_orders(self, job_id):
        return [
            record["order"]
            for chunk in self.chunks[job_id]
            for record in chunk["initialRecords"]
        ]

    def entries_for(self, job_id):
        entries = []
        for order in self.submitted_orders(job_id):
            status = self.status_for(job_id, order)
            if status in ("CREATED", "UPDATED"):
                entries.append(
                    job_log_entry(
                        order,
                        status,
                        hrid=f"{job_id}-h{order}",
                        instance_id=f"{job_id}-instance-{order}",
                    )
                )
            else:
                entries.append(job_log_entry(order, status))
        return entries

    def chunk_counts(self):
        return [len(self.chunks[f"job-{i}"]) for i in range(1, self.job_count + 1)]
