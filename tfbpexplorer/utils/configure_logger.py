import logging
from typing import Literal

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logger(
    name: str,
    level: int = logging.INFO,
    handler_type: Literal["console", "file"] = "console",
    log_file: str | None = None,
) -> logging.Logger:
    """
    Configure a named logger with a single console or file handler.

    Calling this more than once replaces the previous handler rather than stacking
    duplicates, so the app can be reloaded in development without repeated lines.

    :param name: Logger name. The app logs through ``"shiny"``.
    :param level: Logging level, e.g. ``logging.DEBUG`` (10).
    :param handler_type: ``"console"`` for stderr, ``"file"`` to write to *log_file*.
    :param log_file: Required when *handler_type* is ``"file"``.
    :return: The configured logger.
    :raises ValueError: If *handler_type* is unknown or a file handler has no path.

    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    handler: logging.Handler
    if handler_type == "console":
        handler = logging.StreamHandler()
    elif handler_type == "file":
        if not log_file:
            raise ValueError("log_file must be provided for a file handler")
        handler = logging.FileHandler(log_file)
    else:
        raise ValueError(f"Invalid handler_type: {handler_type}")

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMAT))

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(handler)

    return logger
