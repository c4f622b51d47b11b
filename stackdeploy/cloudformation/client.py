import logging
from contextlib import contextmanager
from typing import Dict, Optional, Tuple

import boto3
from botocore.client import BaseClient
from botocore.exceptions import ClientError, WaiterError

from stackdeploy import config
from stackdeploy.aws.connect import connect_to
from stackdeploy.cloudformation.models import (
    StackRequest,
    StackState,
    find_duplicate_keys,
    get_stack_state,
    validate_stack_name,
)
from stackdeploy.cloudformation.templates import Template, parse_template
from stackdeploy.constants import (
    ERROR_ALREADY_EXISTS,
    ERROR_INSUFFICIENT_CAPABILITIES,
    ERROR_VALIDATION,
)
from stackdeploy.exceptions import (
    DuplicateParameterError,
    InsufficientCapabilitiesError,
    MissingCapabilitiesError,
    NoUpdatesError,
    RemoteStackError,
    StackAlreadyExistsError,
    StackBusyError,
    StackNotFoundError,
    StackOperationFailedError,
    TemplateValidationError,
)

LOG = logging.getLogger(__name__)

VERB_CREATE = "create"
VERB_UPDATE = "update"
VERB_DELETE = "delete"

WAITERS = {
    VERB_CREATE: "stack_create_complete",
    VERB_UPDATE: "stack_update_complete",
    VERB_DELETE: "stack_delete_complete",
}


def _classify_validation_error(message: str):
    lowered = message.lower()
    if "does not exist" in lowered:
        return StackNotFoundError
    if "no updates are to be performed" in lowered:
        return NoUpdatesError
    if "_in_progress state" in lowered:
        return StackBusyError
    if "template format error" in lowered or "template error" in lowered or "invalid template" in lowered:
        return TemplateValidationError
    return RemoteStackError


@contextmanager
def exception_mapper(operation: str):
    """Maps a ClientError of the CloudFormation API to a RemoteStackError, keeping the remote message unchanged."""
    try:
        yield
    except ClientError as err:
        error = err.response.get("Error", {})
        code = error.get("Code") or "Unknown"
        message = error.get("Message") or str(err)

        if code == ERROR_ALREADY_EXISTS:
            exception_type = StackAlreadyExistsError
        elif code == ERROR_INSUFFICIENT_CAPABILITIES:
            exception_type = InsufficientCapabilitiesError
        elif code == ERROR_VALIDATION:
            exception_type = _classify_validation_error(message)
        else:
            exception_type = RemoteStackError

        LOG.debug("%s failed with %s: %s", operation, code, message)
        raise exception_type(message, code=code, operation=operation) from err


class StackClient:
    """
    Issues stack lifecycle calls against the CloudFormation API. Each method performs a single remote call (``deploy``
    adds a describe call, ``wait`` polls); nothing is retried and no stack state is kept between calls.
    """

    client: BaseClient

    def __init__(self, client: BaseClient):
        self.client = client

    @classmethod
    def for_region(
        cls,
        region_name: str,
        endpoint_url: Optional[str] = None,
        session: Optional[boto3.Session] = None,
    ) -> "StackClient":
        return cls(connect_to(region_name=region_name, endpoint_url=endpoint_url, session=session))

    def describe(self, stack_name: str) -> Dict:
        """
        Returns the description of the given stack as returned by ``DescribeStacks``.

        :raises StackNotFoundError: if the stack does not exist
        """
        with exception_mapper("DescribeStacks"):
            response = self.client.describe_stacks(StackName=stack_name)
        stacks = response.get("Stacks") or []
        if not stacks:
            raise StackNotFoundError(
                f"Stack with id {stack_name} does not exist", code=ERROR_VALIDATION, operation="DescribeStacks"
            )
        return stacks[0]

    def get_state(self, stack_name: str) -> str:
        try:
            stack = self.describe(stack_name)
        except StackNotFoundError:
            return StackState.ABSENT
        return get_stack_state(stack.get("StackStatus"))

    def exists(self, stack_name: str) -> bool:
        return self.get_state(stack_name) != StackState.ABSENT

    def preflight(self, request: StackRequest, template: Optional[Template] = None) -> Template:
        """
        Local checks run before any create or update call.

        :raises InvalidStackNameError: if the stack name is malformed
        :raises DuplicateParameterError: if a parameter key is given more than once
        :raises MissingCapabilitiesError: if the template needs capabilities the request does not acknowledge
        """
        validate_stack_name(request.stack_name)

        duplicates = find_duplicate_keys(request.parameter_keys)
        if duplicates:
            raise DuplicateParameterError(duplicates)

        template = template or parse_template(request.template_body)
        missing = template.missing_capabilities(request.capabilities)
        if missing:
            raise MissingCapabilitiesError(missing)
        return template

    def create(self, request: StackRequest, template: Optional[Template] = None) -> str:
        """
        Creates a new stack.

        :return: the stack id returned by the provisioning service
        :raises StackAlreadyExistsError: if a stack with that name exists in the region
        :raises TemplateValidationError: if the template is rejected by the service
        :raises InsufficientCapabilitiesError: if the service demands capabilities that were not acknowledged
        """
        self.preflight(request, template)
        LOG.info("Creating stack %s in %s", request.stack_name, request.region)
        with exception_mapper("CreateStack"):
            response = self.client.create_stack(**request.to_request_kwargs())
        return response["StackId"]

    def update(self, request: StackRequest, template: Optional[Template] = None) -> Optional[str]:
        """
        Updates an existing stack.

        :return: the stack id returned by the provisioning service
        :raises StackNotFoundError: if the stack does not exist
        :raises NoUpdatesError: if neither template nor parameters changed
        :raises StackBusyError: if another operation on the stack is in progress
        """
        self.preflight(request, template)
        LOG.info("Updating stack %s in %s", request.stack_name, request.region)
        with exception_mapper("UpdateStack"):
            response = self.client.update_stack(**request.to_request_kwargs())
        return response.get("StackId")

    def delete(self, stack_name: str) -> None:
        validate_stack_name(stack_name)
        LOG.info("Deleting stack %s", stack_name)
        with exception_mapper("DeleteStack"):
            self.client.delete_stack(StackName=stack_name)

    def deploy(self, request: StackRequest, template: Optional[Template] = None) -> Tuple[str, Optional[str]]:
        """
        Creates the stack if it does not exist, updates it otherwise.

        :return: a tuple of the issued verb (``create`` or ``update``) and the returned stack id
        """
        template = self.preflight(request, template)
        if self.exists(request.stack_name):
            return VERB_UPDATE, self.update(request, template)
        return VERB_CREATE, self.create(request, template)

    def wait(self, stack_name: str, verb: str) -> None:
        """
        Blocks until the given lifecycle operation on the stack has finished.

        :raises StackOperationFailedError: if the stack ends up in a failure state or the waiter times out
        """
        waiter = self.client.get_waiter(WAITERS[verb])
        LOG.debug("Waiting for %s of stack %s", verb, stack_name)
        try:
            waiter.wait(
                StackName=stack_name,
                WaiterConfig={
                    "Delay": config.BOTO_WAITER_DELAY,
                    "MaxAttempts": config.BOTO_WAITER_MAX_ATTEMPTS,
                },
            )
        except WaiterError as e:
            stacks = (e.last_response or {}).get("Stacks") or [{}]
            status = stacks[0].get("StackStatus")
            reason = stacks[0].get("StackStatusReason")
            message = f"{e}"
            if status:
                message = f"{message} (status: {status}{', reason: ' + reason if reason else ''})"
            raise StackOperationFailedError(message, stack_status=status) from e
