import os
import sys
from typing import List, Optional

# important: this needs to be free of stackdeploy imports, it runs before stackdeploy.config is loaded

PROFILE_OPTION = "--profile"


def set_profile_from_sys_argv():
    """
    Applies a ``--profile`` given on the command line to ``CONFIG_PROFILE``, so ``stackdeploy.config`` loads the
    matching ``<profile>.env`` files when it is imported.
    """
    profile = parse_profile_argument(sys.argv[1:])
    if profile:
        os.environ["CONFIG_PROFILE"] = profile


def parse_profile_argument(args: List[str]) -> Optional[str]:
    """
    Finds ``--profile NAME`` or ``--profile=NAME`` in the given arguments. Several profiles may be given as a comma
    separated list; whitespace around the names is dropped. Arguments after ``--`` are not options.

    :param args: list of CLI arguments
    :returns: the profile list, or None if no profile was given
    """
    value = None
    remaining = iter(args)
    for arg in remaining:
        if arg == "--":
            break
        option, sep, inline_value = arg.partition("=")
        if option != PROFILE_OPTION:
            continue
        value = inline_value if sep else next(remaining, None)
        break

    if value is None:
        return None
    profiles = [profile.strip() for profile in value.split(",")]
    return ",".join(profile for profile in profiles if profile) or None
