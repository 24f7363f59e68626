"""
Logging setup for the agent.

Every module logs through logging.getLogger(__name__), i.e. below the
"munin_snmp" logger, so configuring that one logger covers the collector,
the cache, the responders and the lifecycle. main.run() calls
setup_logger() twice: once with the CLI verbosity so configuration errors
are reported, then again with the configured level and log file.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%d-%m-%Y %H:%M:%S"

ROOT_LOGGER = "munin_snmp"


def setup_logger(
    name: str = ROOT_LOGGER,
    level: str = "INFO",
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    (Re)configure the agent logger.

    Handlers from a previous call are closed and replaced, so the second
    call in main.run() switches to the configured destination instead of
    duplicating every line.

    Args:
        name: Logger to configure, module loggers below it inherit the handlers
        level: Level name from log_level (DEBUG, INFO, WARNING, ERROR);
            unknown names fall back to INFO
        log_file: Optional log file, its directory is created if missing

    Returns:
        logging.Logger: Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    # Records stop here, a host application's root handlers would double them
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
