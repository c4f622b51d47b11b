from .client import StackClient
from .models import Parameter, StackRequest, StackState
from .templates import Template, load_parameters, load_template

__all__ = [
    "Parameter",
    "StackClient",
    "StackRequest",
    "StackState",
    "Template",
    "load_parameters",
    "load_template",
]
