from .settings_template import *  # NOQA ignore=F405
from .settings_template import LOGGING

DEBUG = True

LOGGING["handlers"]["stream"]["level"] = "DEBUG"
LOGGING["handlers"]["file"]["level"] = "DEBUG"
LOGGING["handlers"]["celery"]["level"] = "DEBUG"
LOGGING["loggers"] = {
    "django": {"handlers": ["file", "stream"], "level": "INFO"},
    "celery": {"handlers": ["celery", "stream"], "level": "DEBUG"},
    "folio_sync": {"handlers": ["file", "stream"], "level": "DEBUG"},
    "structlog": {
        "handlers": ["structlog_file", "structlog_console"],
        "level": "INFO",
    },
}
