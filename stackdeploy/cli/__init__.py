# keep this free of stackdeploy.config imports, profiles are applied before the config is loaded (see main.py)
from .console import console

name = "cli"

__all__ = [
    "console",
]
