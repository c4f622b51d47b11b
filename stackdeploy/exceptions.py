from typing import Iterable, Optional


class StackDeployError(Exception):
    """
    Base class of all errors raised by stackdeploy. Every error carries a short ``code`` and a human-readable
    ``message``; the CLI prints the message and exits with a non-zero status.
    """

    code: str = "StackDeployError"

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        if code:
            self.code = code
        super().__init__(self.message)


class TemplateError(StackDeployError):
    code = "TemplateError"


class ParameterFileError(StackDeployError):
    code = "ParameterFileError"


class DuplicateParameterError(ParameterFileError):
    code = "DuplicateParameter"

    def __init__(self, keys: Iterable[str]):
        self.keys = sorted(set(keys))
        super().__init__("Duplicate parameter keys: [%s]" % ", ".join(self.keys))


class MissingCapabilitiesError(StackDeployError):
    code = "MissingCapabilities"

    def __init__(self, capabilities: Iterable[str]):
        self.capabilities = sorted(set(capabilities))
        super().__init__("Requires capabilities : [%s]" % ", ".join(self.capabilities))


class InvalidStackNameError(StackDeployError):
    code = "InvalidStackName"


class InvalidRegionError(StackDeployError):
    code = "InvalidRegion"


class RemoteStackError(StackDeployError):
    """
    An error returned by the provisioning API. ``message`` is the remote message, unchanged.
    """

    code = "RemoteError"

    def __init__(self, message: str, code: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message, code=code)
        self.operation = operation


class StackAlreadyExistsError(RemoteStackError):
    code = "AlreadyExistsException"


class StackNotFoundError(RemoteStackError):
    code = "ValidationError"


class NoUpdatesError(RemoteStackError):
    code = "ValidationError"


class StackBusyError(RemoteStackError):
    code = "ValidationError"


class TemplateValidationError(RemoteStackError):
    code = "ValidationError"


class InsufficientCapabilitiesError(RemoteStackError):
    code = "InsufficientCapabilitiesException"


class StackOperationFailedError(StackDeployError):
    code = "StackOperationFailed"

    def __init__(self, message: str, stack_status: Optional[str] = None):
        super().__init__(message)
        self.stack_status = stack_status
