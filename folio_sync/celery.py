import os

import sentry_sdk
from celery import Celery
from sentry_sdk.integrations.celery import CeleryIntegration

from folio_sync.version import get_version

SENTRY_BACKEND_DSN = os.environ.get("SENTRY_BACKEND_DSN", None)

if SENTRY_BACKEND_DSN:
    FOLIO_SYNC_ENVIRONMENT = os.environ.get("FOLIO_SYNC_ENVIRONMENT", None)
    sentry_sdk.init(
        SENTRY_BACKEND_DSN,
        environment=FOLIO_SYNC_ENVIRONMENT,
        release=get_version(),
        integrations=[CeleryIntegration()],
    )

app = Celery("folio_sync")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
