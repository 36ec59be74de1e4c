import warnings
from types import MappingProxyType
from typing import Any, Callable, Optional

import structlog

_DEFAULT_EXTRACTORS: dict[str, Callable[[Any], dict[str, Any]]] = {}


def _register_default_extractor(
    context_key: str, extractor_function: Callable[[Any], dict[str, Any]]
):
    _DEFAULT_EXTRACTORS[context_key] = extractor_function


_register_default_extractor(
    "record",
    lambda record: {
        "instance_key": getattr(record, "archivesspace_instance_key", None),
        "repository_id": getattr(record, "repository_id", None),
        "resource_id": getattr(record, "resource_id", None),
        "folio_hrid": getattr(record, "folio_hrid", None),
        "pending_update": getattr(record, "pending_update", None),
    },
)

_register_default_extractor(
    "job_execution",
    lambda job_execution: {
        "job_execution_id": getattr(job_execution, "id", None),
        "expected_count": getattr(job_execution, "expected_count", None),
    },
)

_DEFAULT_EXTRACTORS = MappingProxyType(_DEFAULT_EXTRACTORS)


class FolioSyncLogger:
    """
    A structured logging wrapper around structlog that enforces consistent
    logging conventions across the synchronization pipeline.

    Every call requires a human-readable ``message`` and a machine-readable
    ``event_code``. Warnings and errors additionally require ``reason`` and
    ``reason_code``.

    Objects passed under a known context key are expanded into flat fields:

    - ``record`` -> ``instance_key``, ``repository_id``, ``resource_id``,
      ``folio_hrid``, ``pending_update``
    - ``job_execution`` -> ``job_execution_id``, ``expected_count``

    Explicit values override extracted ones, and ``None`` values are omitted.

    Usage:
        ```python
        structured_logger = FolioSyncLogger.get_logger(__name__)
        structured_logger.info(
            "Flushed chunk.",
            event_code="job_execution_chunk_flushed",
            job_execution=job_execution,
            counter=10,
        )
        ```

    ``bind()`` returns a logger that includes the given context in every
    subsequent call.
    """

    def __init__(self, logger, context: Optional[dict[str, Any]] = None):
        self._logger = logger
        self._context = context or {}
        self._extractors = _DEFAULT_EXTRACTORS.copy()

    @classmethod
    def get_logger(cls, name: str) -> "FolioSyncLogger":
        """
        Create a FolioSyncLogger for the given module name. The underlying
        structlog logger is named ``structlog.<name>``.
        """
        return cls(structlog.get_logger(f"structlog.{name}"))

    def register_extractor(
        self, key: str, extractor: Callable[[Any], dict[str, Any]]
    ) -> None:
        """
        Register a context extractor for this logger instance only.
        """
        self._extractors[key] = extractor
        if key in _DEFAULT_EXTRACTORS:
            warnings.warn(
                f"Extractor for '{key}' overrides a default extractor for this "
                f"logger only.",
                UserWarning,
                stacklevel=2,
            )

    def unregister_extractor(self, key: str) -> None:
        self._extractors.pop(key, None)

    def log(
        self,
        level: str,
        message: str,
        *,
        event_code: str,
        reason: Optional[str] = None,
        reason_code: Optional[str] = None,
        **context: Any,
    ) -> None:
        """
        Emit a structured log entry. Prefer the level methods over calling
        this directly.

        Raises:
            ValueError: If required fields are missing for the given level.
        """
        if not message:
            raise ValueError("Log message is required.")
        if not event_code:
            raise ValueError("Structured logs must include an 'event_code' field.")
        if level in ("warning", "error", "exception") and (
            not reason or not reason_code
        ):
            raise ValueError(
                "Warnings and errors must include both 'reason' and 'reason_code'."
            )

        context_data = {"event_code": event_code}
        if reason:
            context_data["reason"] = reason
        if reason_code:
            context_data["reason_code"] = reason_code

        bound_context = self._context

        for context_key, extractor_function in self._extractors.items():
            context_object = context.pop(context_key, bound_context.get(context_key))
            if context_object:
                extracted_fields = extractor_function(context_object)
                for key, value in extracted_fields.items():
                    if value is not None:
                        context_data.setdefault(key, value)

        for key, value in bound_context.items():
            if key not in self._extractors and key not in context and value is not None:
                context_data[key] = value

        for key, value in context.items():
            if value is not None:
                context_data[key] = value

        getattr(self._logger, level)(message, **context_data)

    def debug(self, message: str, *, event_code: str, **kwargs):
        self.log("debug", message, event_code=event_code, **kwargs)

    def info(self, message: str, *, event_code: str, **kwargs):
        self.log("info", message, event_code=event_code, **kwargs)

    def warning(
        self, message: str, *, event_code: str, reason: str, reason_code: str, **kwargs
    ):
        self.log(
            "warning",
            message,
            event_code=event_code,
            reason=reason,
            reason_code=reason_code,
            **kwargs,
        )

    def error(
        self, message: str, *, event_code: str, reason: str, reason_code: str, **kwargs
    ):
        self.log(
            "error",
            message,
            event_code=event_code,
            reason=reason,
            reason_code=reason_code,
            **kwargs,
        )

    def exception(
        self, message: str, *, event_code: str, reason: str, reason_code: str, **kwargs
    ):
        """
        Emit an error-level log including the active exception's traceback.
        """
        self.log(
            "exception",
            message,
            event_code=event_code,
            reason=reason,
            reason_code=reason_code,
            **kwargs,
        )

    def bind(self, **kwargs: Any) -> "FolioSyncLogger":
        new_context = self._context.copy()
        new_context.update(kwargs)
        return FolioSyncLogger(self._logger, context=new_context)
