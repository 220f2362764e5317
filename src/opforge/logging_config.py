"""Console logging for the opforge CLI."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "opforge"

VERBOSE_FORMAT = "%(name)s: %(message)s"
DEFAULT_FORMAT = "%(message)s"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Install a rich console handler on the ``opforge`` logger.

    The console writes to whatever ``sys.stderr`` is at emit time. Repeated
    configuration replaces a previously installed handler.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        show_time=verbose,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter(VERBOSE_FORMAT if verbose else DEFAULT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    return logger
