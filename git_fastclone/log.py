import logging
import sys


logger = logging.getLogger("git_fastclone")


def configure_logging(verbose: bool):
    """
    Configures the package logger: messages only, DEBUG when verbose.
    """
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter("%(message)s")
    handler.setFormatter(formatter)

    log_level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(log_level)

    if not logger.hasHandlers():
        logger.addHandler(handler)
