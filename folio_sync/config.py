from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


class SyncConfig:
    """
    Settings for one synchronization run, read once from
    ``settings.FOLIO_SYNC`` and passed to every component that needs them.
    """

    def __init__(
        self,
        *,
        job_profile_uuid,
        batch_size=50,
        chunk_size=None,
        data_type="MARC",
        poll_interval=2,
        startup_grace_period=120,
        max_poll_duration=60 * 60,
        entries_page_size=100,
        max_workers=1,
        mark_failures_fix_required=False,
        marc_download_base_directory="",
        holdings_location_codes=None,
    ):
        if not job_profile_uuid:
            raise ImproperlyConfigured("A FOLIO job profile UUID is required")
        for name, value in (
            ("batch_size", batch_size),
            ("entries_page_size", entries_page_size),
            ("max_workers", max_workers),
        ):
            if not isinstance(value, int) or value < 1:
                raise ImproperlyConfigured(f"{name} must be a positive integer")
        if chunk_size is not None and (not isinstance(chunk_size, int) or chunk_size < 1):
            raise ImproperlyConfigured("chunk_size must be a positive integer")
        if poll_interval < 0 or startup_grace_period < 0:
            raise ImproperlyConfigured("Polling intervals cannot be negative")

        self.job_profile_uuid = job_profile_uuid
        self.batch_size = batch_size
        self.chunk_size = chunk_size or batch_size
        self.data_type = data_type
        self.poll_interval = poll_interval
        self.startup_grace_period = startup_grace_period
        self.max_poll_duration = max_poll_duration
        self.entries_page_size = entries_page_size
        self.max_workers = max_workers
        self.mark_failures_fix_required = mark_failures_fix_required
        self.marc_download_base_directory = marc_download_base_directory
        self.holdings_location_codes = dict(holdings_location_codes or {})

    def __repr__(self):
        return (
            "SyncConfig(job_profile_uuid=%r, batch_size=%r, chunk_size=%r, "
            "max_workers=%r)"
            % (self.job_profile_uuid, self.batch_size, self.chunk_size, self.max_workers)
        )

    @classmethod
    def from_settings(cls, **overrides):
        values = dict(getattr(settings, "FOLIO_SYNC", {}))
        values.update(overrides)
        return cls(**values)
