import functools
import json
import logging
import os
from typing import Dict, List, Optional, Tuple

import click

from stackdeploy import __version__, config
from stackdeploy.cloudformation.client import VERB_CREATE, VERB_DELETE, VERB_UPDATE, StackClient
from stackdeploy.cloudformation.models import StackRequest, get_stack_state
from stackdeploy.cloudformation.templates import (
    Template,
    load_parameters,
    load_template,
    merge_parameters,
    parse_parameter_overrides,
)
from stackdeploy.constants import (
    CAPABILITIES,
    CAPABILITY_IAM,
    CAPABILITY_NAMED_IAM,
    DEFAULT_PARAMETERS_FILE,
    DEFAULT_TEMPLATE_FILE,
)
from stackdeploy.exceptions import ParameterFileError, StackDeployError

from .console import console

LOG = logging.getLogger(__name__)

VERB_DEPLOY = "deploy"


def _setup_cli_debug():
    from stackdeploy.logging.setup import setup_logging_for_cli

    config.DEBUG = True
    os.environ["DEBUG"] = "1"

    setup_logging_for_cli(logging.DEBUG)


def handle_errors(fn):
    """Turns a StackDeployError into exit code 1, printing the error message unchanged on stderr."""

    @functools.wraps(fn)
    def _wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except StackDeployError as e:
            if config.DEBUG:
                console.print_exception()
            click.echo(e.message, err=True)
            click.get_current_context().exit(1)

    return _wrapper


def create_stack_client(region: str, endpoint_url: Optional[str] = None) -> StackClient:
    return StackClient.for_region(region, endpoint_url=endpoint_url)


def parse_tags(tags: Tuple[str, ...]) -> List[Tuple[str, str]]:
    result = []
    for tag in tags:
        key, sep, value = tag.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"'{tag}' is not of the form Key=Value", param_hint="--tag")
        result.append((key, value))
    return result


@click.group(name="stackdeploy", help="Create, update and delete CloudFormation stacks from template files")
@click.version_option(version=__version__, message="%(version)s")
@click.option("--debug", is_flag=True, help="Enable CLI debugging mode")
@click.option("--profile", type=str, help="Set the configuration profile")
def stackdeploy(debug, profile):
    if profile:
        os.environ["CONFIG_PROFILE"] = profile
    if debug:
        _setup_cli_debug()
    else:
        from stackdeploy.logging.setup import setup_logging_from_config

        setup_logging_from_config()


def stack_options(fn):
    fn = click.option(
        "--endpoint-url",
        type=str,
        default=None,
        help="Custom endpoint of the CloudFormation API (default: $AWS_ENDPOINT_URL or AWS)",
    )(fn)
    fn = click.option("--region", type=str, required=True, help="Region of the stack")(fn)
    fn = click.option("--stack-name", type=str, required=True, help="Name of the stack")(fn)
    return fn


def stack_request_options(fn):
    fn = click.option(
        "--wait", is_flag=True, default=False, help="Block until the stack operation has finished"
    )(fn)
    fn = click.option("--tag", "tags", multiple=True, help="Stack tag as Key=Value (repeatable)")(fn)
    fn = click.option(
        "--iam",
        is_flag=True,
        default=False,
        help=f"Acknowledge that the stack may create IAM resources ({CAPABILITY_IAM}, {CAPABILITY_NAMED_IAM})",
    )(fn)
    fn = click.option(
        "--capabilities",
        multiple=True,
        type=click.Choice(CAPABILITIES),
        help="Capability to acknowledge (repeatable)",
    )(fn)
    fn = click.option(
        "--parameter-overrides",
        multiple=True,
        help="Parameter as Key=Value, replacing the value of the parameters file (repeatable)",
    )(fn)
    fn = click.option(
        "--parameters",
        "parameters_file",
        type=click.Path(dir_okay=False),
        default=None,
        help=f"Parameters file (default: {DEFAULT_PARAMETERS_FILE}, if present)",
    )(fn)
    fn = click.option(
        "--template-body",
        "template_file",
        type=click.Path(dir_okay=False),
        default=DEFAULT_TEMPLATE_FILE,
        show_default=True,
        help="Template file",
    )(fn)
    return stack_options(fn)


def load_request_parameters(parameters_file: Optional[str], overrides: Tuple[str, ...]):
    parameters = []
    if parameters_file:
        parameters = load_parameters(parameters_file)
    elif os.path.exists(DEFAULT_PARAMETERS_FILE):
        parameters = load_parameters(DEFAULT_PARAMETERS_FILE)
    else:
        LOG.debug("No parameters file given and %s not found, sending no parameters", DEFAULT_PARAMETERS_FILE)

    if overrides:
        parameters = merge_parameters(parameters, parse_parameter_overrides(overrides))
    return parameters


def build_request(
    stack_name: str,
    region: str,
    template: Template,
    parameters_file: Optional[str],
    parameter_overrides: Tuple[str, ...],
    capabilities: Tuple[str, ...],
    iam: bool,
    tags: Tuple[str, ...],
) -> StackRequest:
    granted = set(capabilities)
    if iam:
        granted.update((CAPABILITY_IAM, CAPABILITY_NAMED_IAM))

    return StackRequest(
        stack_name=stack_name,
        region=region,
        template_body=template.body,
        parameters=load_request_parameters(parameters_file, parameter_overrides),
        capabilities=granted,
        tags=parse_tags(tags),
    )


def run_stack_command(verb: str, stack_name: str, region: str, endpoint_url: Optional[str], wait: bool, **kwargs):
    from stackdeploy.aws.connect import validate_region

    validate_region(region)
    template = load_template(kwargs.pop("template_file"))
    request = build_request(stack_name, region, template, **kwargs)
    client = create_stack_client(region, endpoint_url=endpoint_url)

    if verb == VERB_CREATE:
        stack_id = client.create(request, template)
    elif verb == VERB_UPDATE:
        stack_id = client.update(request, template)
    else:
        verb, stack_id = client.deploy(request, template)

    click.echo(json.dumps({"StackId": stack_id}))

    if wait:
        wait_for_stack(client, stack_name, verb)


def wait_for_stack(client: StackClient, stack_name: str, verb: str):
    with console.status(f"Waiting for {verb} of stack {stack_name}"):
        client.wait(stack_name, verb)
    console.print(f"[green]:heavy_check_mark:[/green] {verb} of stack {stack_name} complete")


@stackdeploy.command(name="create", help="Create a new stack")
@stack_request_options
@handle_errors
def cmd_create(**kwargs):
    run_stack_command(VERB_CREATE, **kwargs)


@stackdeploy.command(name="update", help="Update an existing stack")
@stack_request_options
@handle_errors
def cmd_update(**kwargs):
    run_stack_command(VERB_UPDATE, **kwargs)


@stackdeploy.command(name="deploy", help="Create the stack if it does not exist, update it otherwise")
@stack_request_options
@handle_errors
def cmd_deploy(**kwargs):
    run_stack_command(VERB_DEPLOY, **kwargs)


@stackdeploy.command(name="delete", help="Delete a stack")
@stack_options
@click.option("--wait", is_flag=True, default=False, help="Block until the stack has been deleted")
@handle_errors
def cmd_delete(stack_name: str, region: str, endpoint_url: Optional[str], wait: bool):
    from stackdeploy.aws.connect import validate_region

    validate_region(region)
    client = create_stack_client(region, endpoint_url=endpoint_url)
    client.delete(stack_name)
    if wait:
        wait_for_stack(client, stack_name, VERB_DELETE)


@stackdeploy.command(name="status", help="Print the status of a stack as reported by CloudFormation")
@stack_options
@click.option("--format", type=click.Choice(["table", "plain", "json"]), default="table")
@handle_errors
def cmd_status(stack_name: str, region: str, endpoint_url: Optional[str], format: str):
    from stackdeploy.aws.connect import validate_region

    validate_region(region)
    client = create_stack_client(region, endpoint_url=endpoint_url)
    stack = client.describe(stack_name)
    state = get_stack_state(stack.get("StackStatus"))

    if format == "json":
        click.echo(json.dumps({**stack, "StackState": state}, default=str))
    elif format == "plain":
        for key in ("StackName", "StackId", "StackStatus", "StackStatusReason"):
            if stack.get(key):
                click.echo(f"{key}={stack[key]}")
        click.echo(f"StackState={state}")
    else:
        print_stack_table(stack, state)


def print_stack_table(stack: Dict, state: str):
    from rich.table import Table

    grid = Table(show_header=False)
    grid.add_column()
    grid.add_column()

    grid.add_row("Stack", f"[bold]{stack.get('StackName')}[/bold]")
    grid.add_row("Stack id", str(stack.get("StackId")))
    grid.add_row("Status", f"{stack.get('StackStatus')} ({state})")
    if stack.get("StackStatusReason"):
        grid.add_row("Reason", stack["StackStatusReason"])
    for output in stack.get("Outputs") or []:
        grid.add_row(f"Output {output.get('OutputKey')}", str(output.get("OutputValue")))
    console.print(grid)


@stackdeploy.command(name="validate", help="Check a template and its parameters locally, without any remote call")
@click.option(
    "--template-body",
    "template_file",
    type=click.Path(dir_okay=False),
    default=DEFAULT_TEMPLATE_FILE,
    show_default=True,
    help="Template file",
)
@click.option(
    "--parameters",
    "parameters_file",
    type=click.Path(dir_okay=False),
    default=None,
    help=f"Parameters file (default: {DEFAULT_PARAMETERS_FILE}, if present)",
)
@handle_errors
def cmd_validate(template_file: str, parameters_file: Optional[str]):
    template = load_template(template_file)
    parameters = load_request_parameters(parameters_file, ())

    undeclared = [param.key for param in parameters if param.key not in template.parameter_names]
    if undeclared:
        raise ParameterFileError(
            "Parameters: [%s] do not exist in the template" % ", ".join(undeclared)
        )

    required = sorted(template.required_capabilities())
    console.print(f"[green]:heavy_check_mark:[/green] template {template_file} valid")
    click.echo(
        json.dumps(
            {
                "Description": template.description,
                "Parameters": template.parameter_names,
                "ResourceTypes": template.resource_types,
                "Capabilities": required,
            }
        )
    )


@stackdeploy.group(name="config", help="Inspect your stackdeploy configuration")
def stackdeploy_config():
    pass


@stackdeploy_config.command(name="show", help="Print the current stackdeploy config values")
@click.option("--format", type=click.Choice(["table", "plain", "dict", "json"]), default="table")
def cmd_config_show(format):
    if format == "table":
        print_config_table()
    elif format == "plain":
        print_config_pairs()
    elif format == "dict":
        console.print(dict(config.collect_config_items()))
    elif format == "json":
        click.echo(json.dumps(dict(config.collect_config_items())))


def print_config_pairs():
    for key, value in config.collect_config_items():
        click.echo(f"{key}={value}")


def print_config_table():
    from rich.table import Table

    grid = Table(show_header=True)
    grid.add_column("Key")
    grid.add_column("Value")

    for key, value in config.collect_config_items():
        grid.add_row(key, str(value))

    console.print(grid)
