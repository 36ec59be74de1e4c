from logging import getLogger

from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils.timezone import now

from folio_sync.errors import resource_uri
from folio_sync.exceptions import RecordNotFoundError

logger = getLogger(__name__)


class PendingUpdate(models.TextChoices):
    NO_UPDATE = "no_update", "No update pending"
    TO_FOLIO = "to_folio", "Pending submission to FOLIO"
    TO_ARCHIVESSPACE = "to_archivesspace", "Pending HRID update in ArchivesSpace"
    FIX_REQUIRED = "fix_required", "Requires manual attention"


#: State given to resources the first time they are observed
INITIAL_PENDING_UPDATE = PendingUpdate.TO_FOLIO

KEY_FIELDS = ("archivesspace_instance_key", "repository_id", "resource_id")


class SyncRecordQuerySet(models.QuerySet):
    def for_instance(self, instance_key):
        return self.filter(archivesspace_instance_key=instance_key)

    def pending(self, instance_key, pending_update):
        return self.for_instance(instance_key).filter(
            pending_update=pending_update
        ).order_by("pk")


class SyncRecordManager(models.Manager.from_queryset(SyncRecordQuerySet)):
    def get_by_key(self, instance_key, repository_id, resource_id):
        return self.get(
            archivesspace_instance_key=instance_key,
            repository_id=repository_id,
            resource_id=resource_id,
        )

    def upsert(
        self,
        instance_key,
        repository_id,
        resource_id,
        initial_state=INITIAL_PENDING_UPDATE,
        **fields,
    ):
        """
        Find the record for an ArchivesSpace resource or create it.

        Only the fields passed in are written to an existing record. A new
        record starts in ``initial_state`` and unsuppressed unless those
        fields are passed explicitly.

        Raises:
            ValidationError: If a key field is missing or a field value is
                not allowed.
        """
        key = dict(zip(KEY_FIELDS, (instance_key, repository_id, resource_id)))
        missing = [name for name, value in key.items() if value in (None, "")]
        if missing:
            raise ValidationError(
                {name: "This field is required." for name in missing}
            )

        unknown = set(fields) - {
            "folio_hrid",
            "pending_update",
            "is_folio_suppressed",
            "holdings_call_number",
        }
        if unknown:
            raise ValidationError(
                "Unknown SyncRecord fields: %s" % ", ".join(sorted(unknown))
            )

        state = fields.get("pending_update", initial_state)
        if state not in PendingUpdate.values:
            raise ValidationError({"pending_update": f"Unknown state {state!r}"})

        with transaction.atomic():
            record, created = self.select_for_update().get_or_create(
                **key,
                defaults={
                    "pending_update": initial_state,
                    "is_folio_suppressed": False,
                    **fields,
                },
            )
            if not created and fields:
                for name, value in fields.items():
                    setattr(record, name, value)
                record.save(update_fields=[*fields, "modified"])

        logger.debug(
            "%s %s", "Created" if created else "Updated", record.resource_uri
        )
        return record


class SyncRecord(models.Model):
    """
    Synchronization status of one ArchivesSpace resource.

    ``pending_update`` decides which part of the pipeline picks the record up
    next: ``to_folio`` records are submitted to FOLIO, ``to_archivesspace``
    records have a new HRID to write back to ArchivesSpace.
    """

    created = models.DateTimeField(auto_now_add=True)
    modified = models.DateTimeField(auto_now=True)

    archivesspace_instance_key = models.CharField(max_length=50)
    repository_id = models.PositiveIntegerField()
    resource_id = models.PositiveIntegerField()

    folio_hrid = models.CharField(
        help_text="HRID of the linked FOLIO instance record",
        max_length=100,
        unique=True,
        null=True,
        blank=True,
    )
    pending_update = models.CharField(
        max_length=20, choices=PendingUpdate.choices, db_index=True
    )
    is_folio_suppressed = models.BooleanField(
        help_text="Whether the FOLIO instance should be suppressed from discovery"
    )
    holdings_call_number = models.CharField(max_length=255, null=True, blank=True)

    objects = SyncRecordManager()

    class Meta:
        unique_together = (KEY_FIELDS,)

    def __str__(self):
        return "SyncRecord(instance=%s, uri=%s, hrid=%s, pending=%s)" % (
            self.archivesspace_instance_key,
            self.resource_uri,
            self.folio_hrid,
            self.pending_update,
        )

    @property
    def resource_uri(self):
        return resource_uri(self.repository_id, self.resource_id)

    @property
    def archivesspace_marc_xml_path(self):
        return "%s/%s-%s-aspace.xml" % (
            self.archivesspace_instance_key,
            self.repository_id,
            self.resource_id,
        )

    @property
    def folio_marc_xml_path(self):
        return "%s/%s-%s-folio.xml" % (
            self.archivesspace_instance_key,
            self.repository_id,
            self.resource_id,
        )

    def transition(self, pending_update, folio_hrid=None):
        """
        Move the record to a new pending state with a single-row UPDATE,
        optionally linking it to a FOLIO HRID.

        Raises:
            RecordNotFoundError: If the row no longer exists.
        """
        if pending_update not in PendingUpdate.values:
            raise ValueError(f"Unknown pending_update value {pending_update!r}")

        changes = {"pending_update": pending_update, "modified": now()}
        if folio_hrid is not None:
            changes["folio_hrid"] = folio_hrid

        with transaction.atomic():
            updated = SyncRecord.objects.filter(pk=self.pk).update(**changes)
        if not updated:
            raise RecordNotFoundError(f"No SyncRecord found for {self.resource_uri}")

        for name, value in changes.items():
            setattr(self, name, value)
