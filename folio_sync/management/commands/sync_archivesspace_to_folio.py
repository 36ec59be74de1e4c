"""
Management command to synchronize ArchivesSpace resources with FOLIO.

Usage:
    python manage.py sync_archivesspace_to_folio cul
    python manage.py sync_archivesspace_to_folio barnard --last-x-hours 24
    python manage.py sync_archivesspace_to_folio cul --force
"""

from timeit import default_timer

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from folio_sync.tasks import sync_archivesspace_to_folio


class Command(BaseCommand):
    help = "Synchronize the resources of one ArchivesSpace instance with FOLIO"

    def add_arguments(self, parser):
        parser.add_argument(
            "instance_key",
            help="Key of the ArchivesSpace instance in settings.ARCHIVESSPACE",
        )
        parser.add_argument(
            "--last-x-hours",
            type=int,
            default=None,
            help="Only fetch resources modified within this many hours",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Run even if another synchronization of this instance is running",
        )

    def handle(self, *, instance_key, last_x_hours, force, verbosity, **kwargs):
        if instance_key not in settings.ARCHIVESSPACE:
            raise CommandError(
                "Unknown ArchivesSpace instance %r. Choose from: %s"
                % (instance_key, ", ".join(sorted(settings.ARCHIVESSPACE)))
            )

        start_time = default_timer()

        errors = sync_archivesspace_to_folio.apply(
            args=(instance_key,),
            kwargs={"last_x_hours": last_x_hours, "force": force},
        ).get()

        if errors is None:
            self.stderr.write(
                "A synchronization of %s is already running; use --force to run anyway"
                % instance_key
            )
            return

        error_count = 0
        for kind, messages in errors.items():
            for message in messages:
                error_count += 1
                self.stderr.write(f"[{kind}] {message}")

        if verbosity > 0:
            self.stdout.write(
                "Synchronized %s in %0.1f seconds with %d errors"
                % (instance_key, default_timer() - start_time, error_count)
            )
