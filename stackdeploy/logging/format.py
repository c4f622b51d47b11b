"""Tools for formatting stackdeploy logs."""
import logging
from functools import lru_cache

MAX_NAME_LEN = 26

LOG_FORMAT = f"%(asctime)s.%(msecs)03d %(sd_level)5s --- %(sd_name)-{MAX_NAME_LEN}s : %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# level names longer than five characters
LEVEL_ABBREVIATIONS = {
    logging.CRITICAL: "FATAL",
    logging.WARNING: "WARN",
}


def create_default_formatter() -> logging.Formatter:
    """Formatter for ``LOG_FORMAT``, expects records passed through ``AddFormattedAttributes``."""
    return logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def abbreviate_level(levelno: int, levelname: str) -> str:
    return LEVEL_ABBREVIATIONS.get(levelno, levelname)[:5]


class AddFormattedAttributes(logging.Filter):
    """
    Sets ``sd_level`` and ``sd_name`` on every record: the level name cut to five characters, and the logger name
    compressed to ``max_name_len`` (e.g., ``s.cloudformation.client``).
    """

    max_name_len: int

    def __init__(self, max_name_len: int = MAX_NAME_LEN):
        super().__init__()
        self.max_name_len = max_name_len

    def filter(self, record):
        record.sd_level = abbreviate_level(record.levelno, record.levelname)
        record.sd_name = _compressed_logger_name(record.name, self.max_name_len)
        return True


@lru_cache(maxsize=256)
def _compressed_logger_name(name: str, length: int) -> str:
    return compress_logger_name(name, length)


def compress_logger_name(name: str, length: int) -> str:
    """
    Shortens a logger name to ``length`` characters by abbreviating leading parts to their first letter, e.g.,
    ``stackdeploy.cloudformation.client`` with length 26 becomes ``s.cloudformation.client``.
    """
    if len(name) <= length:
        return name

    parts = name.split(".")
    # every part takes at least one character, plus the dots in between
    used = 2 * len(parts) - 1

    kept = []
    for part in reversed(parts):
        needed = used + len(part) - 1
        if needed > length:
            break
        kept.insert(0, part)
        used = needed

    abbreviated = [part[0] for part in parts[: len(parts) - len(kept)]]
    if not kept:
        remaining = length - used
        if remaining > 0:
            abbreviated[-1] = parts[-1][: remaining + 1]

    return ".".join(abbreviated + kept)
