import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from stackdeploy.constants import CAPABILITIES, STACK_NAME_MAX_LENGTH, STACK_NAME_PATTERN
from stackdeploy.exceptions import InvalidStackNameError, StackDeployError


class StackStatus(str):
    CREATE_IN_PROGRESS = "CREATE_IN_PROGRESS"
    CREATE_FAILED = "CREATE_FAILED"
    CREATE_COMPLETE = "CREATE_COMPLETE"
    ROLLBACK_IN_PROGRESS = "ROLLBACK_IN_PROGRESS"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    ROLLBACK_COMPLETE = "ROLLBACK_COMPLETE"
    DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"
    DELETE_FAILED = "DELETE_FAILED"
    DELETE_COMPLETE = "DELETE_COMPLETE"
    UPDATE_IN_PROGRESS = "UPDATE_IN_PROGRESS"
    UPDATE_COMPLETE_CLEANUP_IN_PROGRESS = "UPDATE_COMPLETE_CLEANUP_IN_PROGRESS"
    UPDATE_COMPLETE = "UPDATE_COMPLETE"
    UPDATE_FAILED = "UPDATE_FAILED"
    UPDATE_ROLLBACK_IN_PROGRESS = "UPDATE_ROLLBACK_IN_PROGRESS"
    UPDATE_ROLLBACK_FAILED = "UPDATE_ROLLBACK_FAILED"
    UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS = "UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS"
    UPDATE_ROLLBACK_COMPLETE = "UPDATE_ROLLBACK_COMPLETE"
    REVIEW_IN_PROGRESS = "REVIEW_IN_PROGRESS"
    IMPORT_IN_PROGRESS = "IMPORT_IN_PROGRESS"
    IMPORT_COMPLETE = "IMPORT_COMPLETE"
    IMPORT_ROLLBACK_IN_PROGRESS = "IMPORT_ROLLBACK_IN_PROGRESS"
    IMPORT_ROLLBACK_FAILED = "IMPORT_ROLLBACK_FAILED"
    IMPORT_ROLLBACK_COMPLETE = "IMPORT_ROLLBACK_COMPLETE"


class StackState(str):
    """Coarse lifecycle state of a stack, derived from the status reported by the provisioning service."""

    ABSENT = "absent"
    CREATING = "creating"
    AVAILABLE = "available"
    UPDATING = "updating"
    FAILED = "failed"
    DELETING = "deleting"


_STATE_BY_STATUS: Dict[str, str] = {
    StackStatus.CREATE_IN_PROGRESS: StackState.CREATING,
    StackStatus.REVIEW_IN_PROGRESS: StackState.CREATING,
    StackStatus.ROLLBACK_IN_PROGRESS: StackState.CREATING,
    StackStatus.IMPORT_IN_PROGRESS: StackState.CREATING,
    StackStatus.CREATE_COMPLETE: StackState.AVAILABLE,
    StackStatus.UPDATE_COMPLETE: StackState.AVAILABLE,
    StackStatus.UPDATE_ROLLBACK_COMPLETE: StackState.AVAILABLE,
    StackStatus.IMPORT_COMPLETE: StackState.AVAILABLE,
    StackStatus.IMPORT_ROLLBACK_COMPLETE: StackState.AVAILABLE,
    StackStatus.UPDATE_IN_PROGRESS: StackState.UPDATING,
    StackStatus.UPDATE_COMPLETE_CLEANUP_IN_PROGRESS: StackState.UPDATING,
    StackStatus.UPDATE_ROLLBACK_IN_PROGRESS: StackState.UPDATING,
    StackStatus.UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS: StackState.UPDATING,
    StackStatus.IMPORT_ROLLBACK_IN_PROGRESS: StackState.UPDATING,
    StackStatus.CREATE_FAILED: StackState.FAILED,
    StackStatus.ROLLBACK_FAILED: StackState.FAILED,
    StackStatus.ROLLBACK_COMPLETE: StackState.FAILED,
    StackStatus.DELETE_FAILED: StackState.FAILED,
    StackStatus.UPDATE_FAILED: StackState.FAILED,
    StackStatus.UPDATE_ROLLBACK_FAILED: StackState.FAILED,
    StackStatus.IMPORT_ROLLBACK_FAILED: StackState.FAILED,
    StackStatus.DELETE_IN_PROGRESS: StackState.DELETING,
    StackStatus.DELETE_COMPLETE: StackState.ABSENT,
}


def get_stack_state(stack_status: Optional[str]) -> str:
    """
    Maps a remote stack status (e.g., ``UPDATE_ROLLBACK_IN_PROGRESS``) to a ``StackState``. A missing status means
    the stack does not exist.
    """
    if not stack_status:
        return StackState.ABSENT
    if stack_status in _STATE_BY_STATUS:
        return _STATE_BY_STATUS[stack_status]
    if stack_status.endswith("_FAILED"):
        return StackState.FAILED
    if stack_status.endswith("_IN_PROGRESS"):
        return StackState.UPDATING
    return StackState.AVAILABLE


def is_valid_stack_name(stack_name: str) -> bool:
    return bool(
        stack_name
        and len(stack_name) <= STACK_NAME_MAX_LENGTH
        and re.match(STACK_NAME_PATTERN, stack_name)
    )


def validate_stack_name(stack_name: str) -> str:
    if not is_valid_stack_name(stack_name):
        raise InvalidStackNameError(
            f"Stack name '{stack_name}' must start with a letter, contain only alphanumeric characters and "
            f"hyphens, and be at most {STACK_NAME_MAX_LENGTH} characters long"
        )
    return stack_name


class Parameter:
    key: str
    value: Optional[str]
    use_previous_value: bool

    def __init__(self, key: str, value: Optional[str] = None, use_previous_value: bool = False):
        if not key:
            raise StackDeployError("Parameter keys must not be empty")
        if value is None and not use_previous_value:
            raise StackDeployError(f"Parameter '{key}' requires either a value or UsePreviousValue")
        self.key = key
        self.value = None if use_previous_value else str(value)
        self.use_previous_value = use_previous_value

    def to_request(self) -> Dict:
        if self.use_previous_value:
            return {"ParameterKey": self.key, "UsePreviousValue": True}
        return {"ParameterKey": self.key, "ParameterValue": self.value}

    def __eq__(self, other):
        if not isinstance(other, Parameter):
            return False
        return (self.key, self.value, self.use_previous_value) == (
            other.key,
            other.value,
            other.use_previous_value,
        )

    def __repr__(self):
        if self.use_previous_value:
            return f"Parameter({self.key!r}, use_previous_value=True)"
        return f"Parameter({self.key!r}, {self.value!r})"


def find_duplicate_keys(keys: Iterable[str]) -> List[str]:
    seen = set()
    duplicates = []
    for key in keys:
        if key in seen and key not in duplicates:
            duplicates.append(key)
        seen.add(key)
    return duplicates


class StackRequest:
    """
    Everything needed for a single create or update call: the target stack and region, the raw template body, the
    ordered parameters, the acknowledged capabilities and optional stack tags.
    """

    stack_name: str
    region: str
    template_body: str
    parameters: List[Parameter]
    capabilities: Set[str]
    tags: List[Tuple[str, str]]

    def __init__(
        self,
        stack_name: str,
        region: str,
        template_body: str,
        parameters: Optional[List[Parameter]] = None,
        capabilities: Optional[Iterable[str]] = None,
        tags: Optional[List[Tuple[str, str]]] = None,
    ):
        self.stack_name = stack_name
        self.region = region
        self.template_body = template_body
        self.parameters = list(parameters or [])
        self.capabilities = set(capabilities or [])
        self.tags = list(tags or [])

        unknown = self.capabilities - set(CAPABILITIES)
        if unknown:
            raise StackDeployError(
                "Unknown capabilities: [%s], expected any of [%s]"
                % (", ".join(sorted(unknown)), ", ".join(CAPABILITIES))
            )

    @property
    def parameter_keys(self) -> List[str]:
        return [param.key for param in self.parameters]

    def to_request_kwargs(self) -> Dict:
        """Returns the keyword arguments for the boto3 `create_stack` / `update_stack` calls."""
        kwargs = {
            "StackName": self.stack_name,
            "TemplateBody": self.template_body,
            "Parameters": [param.to_request() for param in self.parameters],
        }
        if self.capabilities:
            kwargs["Capabilities"] = sorted(self.capabilities)
        if self.tags:
            kwargs["Tags"] = [{"Key": key, "Value": value} for key, value in self.tags]
        return kwargs

    def __repr__(self):
        return (
            f"StackRequest(stack_name={self.stack_name!r}, region={self.region!r}, "
            f"parameters={self.parameter_keys!r}, capabilities={sorted(self.capabilities)!r})"
        )
