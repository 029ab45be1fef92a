"""Centralized error logging helpers for the collection path.

Nothing in the collection path may stop the tick loop, so failures are logged
here with full context and the caller degrades to zero values.
"""

import logging

from harborwatch.utils.security import sanitize_log_message


def log_and_continue(
    logger_instance: logging.Logger,
    error: Exception,
    context_message: str,
    log_level: str = "warning",
    exc_info: bool = False,
) -> None:
    """Log error but continue execution (for non-critical errors).

    Args:
        logger_instance: Logger instance to use
        error: The exception that was caught
        context_message: Context about where/why this error occurred
        log_level: Logging level to use (default: warning)
        exc_info: Attach the traceback (for unexpected exception types)

    Examples:
        >>> logger = logging.getLogger(__name__)
        >>> try:
        ...     stats = docker_stats_service.get_stats(container_id)
        >>> except SourceUnavailableError as e:
        ...     log_and_continue(logger, e, "Stats unavailable for web")
    """
    log_method = getattr(logger_instance, log_level, logger_instance.warning)
    log_method(
        f"{context_message}: {type(error).__name__}: {sanitize_log_message(str(error))}",
        exc_info=exc_info,
    )
