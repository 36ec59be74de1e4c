from django.apps.config import AppConfig


class FolioSyncAppConfig(AppConfig):
    name = "folio_sync"
    verbose_name = "ArchivesSpace to FOLIO sync"
    default_auto_field = "django.db.models.AutoField"
