import hashlib
import logging
from functools import wraps

from celery import Task

from folio_sync.contextmanagers import cache_lock

logger = logging.getLogger(__name__)


def task_lock_key(task_name, args, kwargs, lock_by_args=True, lock_key=None):
    if lock_key is not None:
        return f"{task_name}:{lock_key(*args, **kwargs)}"
    if not lock_by_args:
        return task_name
    raw_key = f"{args!r}:{sorted(kwargs.items())!r}"
    return f"{task_name}:{hashlib.sha256(raw_key.encode()).hexdigest()}"


def locked_task(function=None, lock_by_args: bool = True, lock_key=None):
    """
    Prevent concurrent runs of a bound Celery task.

    With ``lock_by_args`` (the default) two calls only exclude each other when
    they receive the same arguments. With ``lock_by_args=False`` the task name
    alone is the lock. ``lock_key`` is called with the task's arguments and
    its result is used instead, so calls which only differ in options can
    still exclude each other.

    Passing ``force=True`` runs the task even when the lock is held.

    The task must be bound and ``@app.task`` must be applied above this
    decorator::

        @app.task(bind=True)
        @locked_task(lock_key=lambda instance_key, **kwargs: instance_key)
        def sync(self, instance_key, last_x_hours=None):
            ...
    """

    def decorator(f):
        @wraps(f)
        def wrapped(self: Task, *args, **kwargs):
            force = kwargs.pop("force", False)
            key = task_lock_key(
                self.name, args, kwargs, lock_by_args=lock_by_args, lock_key=lock_key
            )

            with cache_lock(key, self.request.hostname or "unknown") as acquired:
                if acquired or force:
                    if not acquired:
                        logger.warning(
                            "Force-running task %s with key %s; lock not acquired",
                            self.name,
                            key,
                        )
                    return f(self, *args, **kwargs)

                logger.info(
                    "Task %s with key %s is already running; skipping", self.name, key
                )

        return wrapped

    return decorator(function) if function else decorator
