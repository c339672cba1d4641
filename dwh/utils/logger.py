import logging
import os
import sys

# ======================================================================================
#  Standard Logger
# ======================================================================================

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv("DWH_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return int(level)


def get_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """Return a logger that writes to stdout with the warehouse format.

    Args:
        name (str): The name of the logger.
        level (int | str, optional): Logging level. Defaults to ``DWH_LOG_LEVEL``
            from the environment, or INFO.

    Returns:
        logging.Logger: The configured logger instance.
    """

    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    formatter = logging.Formatter(LOG_FORMAT)

    # Reuse our stdout handler so repeated calls never duplicate output
    handler = None
    for existing_handler in logger.handlers:
        if isinstance(existing_handler, logging.StreamHandler) and getattr(existing_handler, "stream", None) is sys.stdout:
            handler = existing_handler
            break

    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        logger.addHandler(handler)

    handler.setFormatter(formatter)

    return logger


def set_log_level(level: int | str, prefix: str = "dwh") -> None:
    """Apply ``level`` to every already-created logger under ``prefix``."""
    resolved = _resolve_level(level)
    for name, obj in list(logging.root.manager.loggerDict.items()):
        if isinstance(obj, logging.Logger) and (name == prefix or name.startswith(prefix + ".")):
            obj.setLevel(resolved)
