import logging
import os
from typing import Any, List, Optional, Tuple, Union

from stackdeploy.constants import (
    DEFAULT_CONFIG_DIR,
    FALSE_STRINGS,
    LOG_LEVELS,
    TRACE_LOG_LEVELS,
    TRUE_STRINGS,
)


def eval_log_type(env_var_name: str) -> Union[str, bool]:
    """Get the log type from environment variable"""
    sd_log = os.environ.get(env_var_name, "").lower().strip()
    return sd_log if sd_log in LOG_LEVELS else False


def parse_boolean_env(env_var_name: str) -> Optional[bool]:
    """Parse the value of the given env variable and return True/False, or None if it is not a boolean value."""
    value = os.environ.get(env_var_name, "").lower().strip()
    if value in TRUE_STRINGS:
        return True
    if value in FALSE_STRINGS:
        return False
    return None


def is_env_true(env_var_name: str) -> bool:
    """Whether the given environment variable has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() in TRUE_STRINGS


def is_env_not_false(env_var_name: str) -> bool:
    """Whether the given environment variable is empty or has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() not in FALSE_STRINGS


def load_environment(profiles: str = None, env=os.environ) -> List[str]:
    """Loads the environment variables from ~/.stackdeploy/{profile}.env, for each profile listed in the profiles.
    :param env: environment to load profile to. Defaults to `os.environ`
    :param profiles: a comma separated list of profiles to load (defaults to "default")
    :returns str: the list of the actually loaded profiles (might be the fallback)
    """
    if not profiles:
        profiles = "default"

    profiles = [profile.strip() for profile in profiles.split(",")]
    environment = {}
    import dotenv

    for profile in profiles:
        path = os.path.join(CONFIG_DIR, f"{profile}.env")
        if not os.path.exists(path):
            continue
        environment.update(dotenv.dotenv_values(path))

    for k, v in environment.items():
        # we do not want to override the environment
        if k not in env and v is not None:
            env[k] = v

    return profiles


# the configuration profile to load
CONFIG_PROFILE = os.environ.get("CONFIG_PROFILE", "").strip()

# host configuration directory
CONFIG_DIR = os.environ.get("CONFIG_DIR", "").strip() or DEFAULT_CONFIG_DIR

# keep this on top to populate environment
LOADED_PROFILES = load_environment(CONFIG_PROFILE)

# whether to enable verbose debug logging
SD_LOG = eval_log_type("SD_LOG")
DEBUG = is_env_true("DEBUG") or SD_LOG in TRACE_LOG_LEVELS

# custom endpoint for the CloudFormation API, e.g., http://localhost:4566 for an emulator
AWS_ENDPOINT_URL = os.environ.get("AWS_ENDPOINT_URL", "").strip() or None

# whether regions unknown to botocore are accepted
ALLOW_NONSTANDARD_REGIONS = is_env_true("ALLOW_NONSTANDARD_REGIONS")

# botocore retries are off unless explicitly enabled, failures surface on the first attempt
DISABLE_BOTO_RETRIES = is_env_not_false("DISABLE_BOTO_RETRIES")

# polling configuration used when waiting for a stack operation to finish
BOTO_WAITER_DELAY = int(os.environ.get("BOTO_WAITER_DELAY") or "5")
BOTO_WAITER_MAX_ATTEMPTS = int(os.environ.get("BOTO_WAITER_MAX_ATTEMPTS") or "720")


def is_trace_logging_enabled():
    if SD_LOG:
        log_level = str(SD_LOG).upper()
        return log_level.lower() in TRACE_LOG_LEVELS
    return False


# set log levels immediately, but will be overwritten later by setup_logging
if DEBUG:
    logging.getLogger("").setLevel(logging.DEBUG)
    logging.getLogger("stackdeploy").setLevel(logging.DEBUG)

LOG = logging.getLogger(__name__)
if is_trace_logging_enabled():
    LOG.debug("Loaded configuration profiles: %s", LOADED_PROFILES)

# list of config keys printed by `stackdeploy config show`
CONFIG_ENV_VARS = [
    "ALLOW_NONSTANDARD_REGIONS",
    "AWS_ENDPOINT_URL",
    "BOTO_WAITER_DELAY",
    "BOTO_WAITER_MAX_ATTEMPTS",
    "CONFIG_DIR",
    "CONFIG_PROFILE",
    "DEBUG",
    "DISABLE_BOTO_RETRIES",
    "SD_LOG",
]


def collect_config_items() -> List[Tuple[str, Any]]:
    """Returns a list of key-value tuples of stackdeploy configuration values."""
    none = object()  # sentinel object

    values = globals()

    result = []
    for k in sorted(CONFIG_ENV_VARS):
        v = values.get(k, none)
        if v is none:
            continue
        result.append((k, v))
    return result
