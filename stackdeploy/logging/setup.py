import logging
import sys

from stackdeploy import config

from .format import AddFormattedAttributes, create_default_formatter

default_log_levels = {
    "boto3": logging.INFO,
    "botocore": logging.ERROR,
    "s3transfer": logging.INFO,
    "urllib3": logging.WARNING,
}

trace_log_levels = {
    "boto3": logging.DEBUG,
    "botocore": logging.DEBUG,
    "urllib3": logging.DEBUG,
}


def get_log_level_from_config():
    # overriding the log level if SD_LOG has been set
    if config.SD_LOG:
        if config.is_trace_logging_enabled():
            return logging.DEBUG
        log_level = str(config.SD_LOG).upper()
        return logging._nameToLevel[log_level]

    return logging.DEBUG if config.DEBUG else logging.WARNING


def create_default_handler(log_level: int):
    log_handler = logging.StreamHandler(stream=sys.stderr)
    log_handler.setLevel(log_level)
    log_handler.setFormatter(create_default_formatter())
    log_handler.addFilter(AddFormattedAttributes())
    return log_handler


def setup_logging_for_cli(log_level=logging.WARNING) -> None:
    """
    Configures the python logging environment for a single CLI invocation. Output goes to stderr, so stdout only
    carries what the provisioning API returned.

    :param log_level: the log level of the root and the stackdeploy loggers
    """
    log_handler = create_default_handler(log_level)

    # replace any existing handlers
    logging.basicConfig(level=log_level, handlers=[log_handler])

    logging.root.setLevel(log_level)
    logging.getLogger("stackdeploy").setLevel(log_level)
    for logger, level in default_log_levels.items():
        logging.getLogger(logger).setLevel(level)

    if config.is_trace_logging_enabled():
        for name, level in trace_log_levels.items():
            logging.getLogger(name).setLevel(level)


def setup_logging_from_config() -> None:
    setup_logging_for_cli(get_log_level_from_config())
