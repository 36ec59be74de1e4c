from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="SyncRecord",
            fields=[
                (
                    "id",
                    models.AutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("created", models.DateTimeField(auto_now_add=True)),
                ("modified", models.DateTimeField(auto_now=True)),
                ("archivesspace_instance_key", models.CharField(max_length=50)),
                ("repository_id", models.PositiveIntegerField()),
                ("resource_id", models.PositiveIntegerField()),
                (
                    "folio_hrid",
                    models.CharField(
                        blank=True,
                        help_text="HRID of the linked FOLIO instance record",
                        max_length=100,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "pending_update",
                    models.CharField(
                        choices=[
                            ("no_update", "No update pending"),
                            ("to_folio", "Pending submission to FOLIO"),
                            (
                                "to_archivesspace",
                                "Pending HRID update in ArchivesSpace",
                            ),
                            ("fix_required", "Requires manual attention"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                (
                    "is_folio_suppressed",
                    models.BooleanField(
                        help_text=(
                            "Whether the FOLIO instance should be suppressed "
                            "from discovery"
                        )
                    ),
                ),
                (
                    "holdings_call_number",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
            ],
            options={
                "unique_together": {
                    ("archivesspace_instance_key", "repository_id", "resource_id")
                },
            },
        ),
    ]
