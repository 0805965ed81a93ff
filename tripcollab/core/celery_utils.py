"""Helpers for queueing Celery tasks without depending on the broker being up."""

from __future__ import annotations

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


def safe_celery_delay(task, *args, **kwargs) -> Optional[Any]:
    """
    Queue a Celery task, never raising.

    When the broker is unreachable (for example Redis is not running in local
    development) a warning is logged and None is returned, so the request that
    triggered the task still succeeds.

    Args:
        task: Celery task to queue
        *args: Positional task arguments
        **kwargs: Keyword task arguments

    Returns:
        The AsyncResult of task.delay(), or None if queueing failed
    """
    try:
        result = task.delay(*args, **kwargs)
        logger.debug(f"Celery task {task.name} queued with ID: {result.id}")
        return result

    except Exception as e:
        logger.warning(
            f"Failed to queue Celery task {task.name}: {e}. "
            f"Continuing without background task execution."
        )
        return None
