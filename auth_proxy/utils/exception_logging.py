"""
Exception logging helpers that are safe to call from request handlers and
background loops: they never raise, and they unpack exception groups raised
by task groups so each failure is visible in the log.
"""

import logging


def _safe_str(obj) -> str:
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception) -> str:
    """
    Describe an exception in one line, listing sub-exceptions of a group.

    Args:
        exception: The exception to format

    Returns:
        A string such as ``"boom (Sub-exceptions: ConnectError: refused)"``
    """
    if exception is None:
        return "None"
    main = _safe_str(exception)
    subs = _sub_exceptions(exception)
    if not subs:
        return main
    parts = [f"{type(sub).__name__}: {_safe_str(sub)}" for sub in subs]
    return f"{main} (Sub-exceptions: {'; '.join(parts)})"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its traceback, and each sub-exception of an
    exception group on its own line.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Health]", "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        safe_prefix = _safe_str(prefix) if prefix is not None else ""
        subs = _sub_exceptions(exception)
        if subs:
            logger.log(
                level,
                f"{safe_prefix} Exception with {len(subs)} sub-exceptions: "
                f"{_safe_str(exception)}",
            )
            for i, sub in enumerate(subs):
                logger.log(
                    level,
                    f"{safe_prefix} Sub-exception {i + 1}: "
                    f"{type(sub).__name__}: {_safe_str(sub)}",
                    exc_info=sub,
                )
            return
        logger.log(
            level,
            f"{safe_prefix} Exception: {_safe_str(exception)}",
            exc_info=exception if exception is not None else False,
        )
    except Exception:
        # Logging must never take the caller down with it
        try:
            logger.log(logging.ERROR, "Exception logging failed")
        except Exception:
            pass
