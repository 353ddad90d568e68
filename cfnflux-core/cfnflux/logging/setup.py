import logging
import sys
import warnings

from cfnflux import config

from .format import AddFormattedAttributes, DefaultFormatter

# log levels of third-party libraries, which would otherwise drown the reconcile logs
default_log_levels = {
    "boto3": logging.INFO,
    "botocore": logging.ERROR,
    "requests": logging.WARNING,
    "s3transfer": logging.INFO,
    "urllib3": logging.WARNING,
}

debug_log_levels = {
    "boto3": logging.DEBUG,
    "botocore": logging.INFO,
    "urllib3": logging.INFO,
}


def create_default_handler(log_level: int):
    log_handler = logging.StreamHandler(stream=sys.stderr)
    log_handler.setLevel(log_level)
    log_handler.setFormatter(DefaultFormatter())
    log_handler.addFilter(AddFormattedAttributes())
    return log_handler


def setup_logging(log_level=logging.INFO) -> None:
    """
    Configures the python logging environment for the controller.

    :param log_level: the optional log level.
    """
    # basically logging.basicConfig, but with our own handler
    log_handler = create_default_handler(log_level)

    # replace any existing handlers
    logging.basicConfig(level=log_level, handlers=[log_handler], force=True)

    warnings.filterwarnings("ignore")
    logging.captureWarnings(True)

    logging.root.setLevel(log_level)
    logging.getLogger("cfnflux").setLevel(log_level)
    for logger, level in default_log_levels.items():
        logging.getLogger(logger).setLevel(level)


def setup_logging_from_config() -> None:
    log_level = config.get_log_level()
    setup_logging(log_level)

    if log_level <= logging.DEBUG:
        for name, level in debug_log_levels.items():
            logging.getLogger(name).setLevel(level)
