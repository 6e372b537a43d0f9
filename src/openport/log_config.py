from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    verbose: bool = False, log_file: Optional[Union[str, Path]] = None
) -> logging.Logger:
    """Send openport's log records to stderr and, optionally, *log_file*.

    Only the ``openport`` logger is touched; the root logger and any handlers
    the host application installed stay as they are.  Calling it again
    replaces the handlers from the previous call.
    """
    logger = logging.getLogger("openport")

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    # Records are handled here, not again by the root logger
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if verbose:
        logger.debug("🔍 Verbose logging enabled")
    return logger
