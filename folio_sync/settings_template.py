import os

import sentry_sdk
import structlog
from django.core.management.utils import get_random_secret_key
from sentry_sdk.integrations.django import DjangoIntegration

from folio_sync.version import get_version

DEFAULT_AUTO_FIELD = "django.db.models.AutoField"

# Build paths inside the project like this: os.path.join(SITE_ROOT_DIR, ...)
FOLIO_SYNC_APP_DIR = os.path.abspath(os.path.dirname(__file__))
SITE_ROOT_DIR = os.path.dirname(FOLIO_SYNC_APP_DIR)

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", get_random_secret_key())

FOLIO_SYNC_ENVIRONMENT = os.environ.get("FOLIO_SYNC_ENVIRONMENT", "development")

ALLOWED_HOSTS = ["*"]

DEBUG = False

LANGUAGE_CODE = "en-us"
TIME_ZONE = "America/New_York"
USE_I18N = True
USE_TZ = True

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("POSTGRESQL_DB", "folio_sync"),
        "USER": os.getenv("POSTGRESQL_USER", "folio_sync"),
        "PASSWORD": os.getenv("POSTGRESQL_PW"),
        "HOST": os.getenv("POSTGRESQL_HOST", "localhost"),
        "PORT": os.getenv("POSTGRESQL_PORT", "5432"),
        "CONN_MAX_AGE": 0,
    }
}

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "folio_sync.apps.FolioSyncAppConfig",
]

REDIS_ADDRESS = os.environ.get("REDIS_ADDRESS", "localhost")
REDIS_PORT = os.environ.get("REDIS_PORT", "")
if REDIS_PORT.isdigit():
    REDIS_PORT = int(REDIS_PORT)
else:
    REDIS_PORT = 6379

if REDIS_ADDRESS and REDIS_PORT:
    CACHES = {
        "default": {
            "BACKEND": "django_redis.cache.RedisCache",
            "LOCATION": f"redis://{REDIS_ADDRESS}:{REDIS_PORT}/1",
            "OPTIONS": {
                "CLIENT_CLASS": "django_redis.client.DefaultClient",
            },
        },
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        },
    }

CELERY_BROKER_URL = f"redis://{REDIS_ADDRESS}:{REDIS_PORT}/0"
CELERY_RESULT_BACKEND = f"redis://{REDIS_ADDRESS}:{REDIS_PORT}/0"

CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_IMPORTS = ("folio_sync.tasks",)

CELERY_BROKER_HEARTBEAT = 0
CELERY_BROKER_CONNECTION_RETRY = True
CELERY_BROKER_CONNECTION_RETRY_ON_STARTUP = True
CELERY_BROKER_TRANSPORT_OPTIONS = {
    "confirm_publish": True,
    "max_retries": 3,
    "interval_start": 0,
    "interval_step": 0.2,
    "interval_max": 0.5,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "long": {
            "format": "[{asctime} {levelname} {name}:{lineno}] {message}",
            "datefmt": "%Y-%m-%dT%H:%M:%S",
            "style": "{",
        },
        "short": {
            "format": "[{levelname} {name}] {message}",
            "datefmt": "%Y-%m-%dT%H:%M:%S",
            "style": "{",
        },
        "structlog_json": {
            "()": structlog.stdlib.ProcessorFormatter,
            "processor": structlog.processors.JSONRenderer(),
        },
        "structlog_console": {
            "()": structlog.stdlib.ProcessorFormatter,
            "processor": structlog.dev.ConsoleRenderer(),
        },
    },
    "handlers": {
        "stream": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "long",
        },
        "null": {"level": "INFO", "class": "logging.NullHandler"},
        "file": {
            "class": "logging.handlers.TimedRotatingFileHandler",
            "level": "INFO",
            "formatter": "long",
            "filename": f"{SITE_ROOT_DIR}/logs/folio_sync.log",
            "when": "H",
            "interval": 3,
            "backupCount": 16,
            "delay": True,
        },
        "celery": {
            "level": "INFO",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": f"{SITE_ROOT_DIR}/logs/celery.log",
            "formatter": "long",
            "maxBytes": 1024 * 1024 * 100,  # 100 mb
            "delay": True,
        },
        "structlog_file": {
            "class": "logging.handlers.TimedRotatingFileHandler",
            "level": "DEBUG",
            "formatter": "structlog_json",
            "filename": f"{SITE_ROOT_DIR}/logs/folio_sync-json.log",
            "when": "H",
            "interval": 3,
            "backupCount": 16,
            "delay": True,
        },
        "structlog_console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "structlog_console",
        },
    },
    "loggers": {
        "django": {"handlers": ["file"], "level": "INFO"},
        "celery": {"handlers": ["celery"], "level": "INFO"},
        "folio_sync": {"handlers": ["file"], "level": "INFO"},
        "structlog": {
            "handlers": ["structlog_file"],
            "level": "DEBUG",
            "propagate": True,
        },
    },
}

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

SENTRY_BACKEND_DSN = os.environ.get("SENTRY_BACKEND_DSN", "")

APPLICATION_VERSION = get_version()

sentry_sdk.init(
    dsn=SENTRY_BACKEND_DSN,
    environment=FOLIO_SYNC_ENVIRONMENT,
    release=APPLICATION_VERSION,
    integrations=[DjangoIntegration()],
)

################################################################################
# Remote systems
################################################################################

FOLIO = {
    "base_url": os.environ.get("FOLIO_BASE_URL", ""),
    "tenant": os.environ.get("FOLIO_TENANT", ""),
    "username": os.environ.get("FOLIO_USERNAME", ""),
    "password": os.environ.get("FOLIO_PASSWORD", ""),
    "timeout": int(os.environ.get("FOLIO_TIMEOUT", 60)),
}

#: One entry per ArchivesSpace instance, keyed by the instance key stored on
#: every SyncRecord. ``hrid_field`` names the resource field holding the FOLIO
#: HRID: ``id_0`` or ``user_defined.string_1``.
ARCHIVESSPACE = {
    "cul": {
        "base_url": os.environ.get("ARCHIVESSPACE_CUL_BASE_URL", ""),
        "username": os.environ.get("ARCHIVESSPACE_CUL_USERNAME", ""),
        "password": os.environ.get("ARCHIVESSPACE_CUL_PASSWORD", ""),
        "timeout": int(os.environ.get("ARCHIVESSPACE_TIMEOUT", 60)),
        "hrid_field": "id_0",
        "call_number_fields": {"default": "title", "2": "user_defined.string_1"},
    },
    "barnard": {
        "base_url": os.environ.get("ARCHIVESSPACE_BARNARD_BASE_URL", ""),
        "username": os.environ.get("ARCHIVESSPACE_BARNARD_USERNAME", ""),
        "password": os.environ.get("ARCHIVESSPACE_BARNARD_PASSWORD", ""),
        "timeout": int(os.environ.get("ARCHIVESSPACE_TIMEOUT", 60)),
        "hrid_field": "user_defined.string_1",
        "call_number_fields": {"default": "identifier"},
    },
}

FOLIO_SYNC = {
    #: Number of records submitted in a single FOLIO job execution
    "batch_size": int(os.environ.get("FOLIO_SYNC_BATCH_SIZE", 50)),
    #: Number of records sent per chunk request; None means batch_size
    "chunk_size": None,
    #: ArchivesSpace to FOLIO Data Import job profile
    "job_profile_uuid": os.environ.get(
        "FOLIO_SYNC_JOB_PROFILE_UUID", "3fe97378-297c-40d9-9b42-232510afc58f"
    ),
    "data_type": "MARC",
    #: Seconds between job progress requests
    "poll_interval": 2,
    #: Seconds a job may report no registered records before it is abandoned
    "startup_grace_period": 120,
    #: Upper bound in seconds on polling a single job
    "max_poll_duration": 60 * 60,
    #: Page size used when retrieving job log entries
    "entries_page_size": 100,
    #: Batches submitted concurrently
    "max_workers": 1,
    #: Move records whose job result failed to fix_required
    "mark_failures_fix_required": False,
    "marc_download_base_directory": os.environ.get(
        "FOLIO_SYNC_MARC_DIRECTORY",
        os.path.join(SITE_ROOT_DIR, "tmp", "downloaded_files"),
    ),
    #: Maps MARC 049$a location codes to FOLIO permanent location UUIDs
    "holdings_location_codes": {},
}
