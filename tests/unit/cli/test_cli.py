import json
import shutil

import pytest
from click.testing import CliRunner

from stackdeploy import __version__, config
from stackdeploy.cli.stackdeploy import stackdeploy as cli
from stackdeploy.constants import CAPABILITY_IAM, CAPABILITY_NAMED_IAM


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Runs the CLI in an empty working directory, where ``stack.yml`` and ``parameters.json`` are looked up."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def network_stack(workdir, resources_dir):
    shutil.copy(f"{resources_dir}/network.yml", workdir / "stack.yml")
    shutil.copy(f"{resources_dir}/network-parameters.json", workdir / "parameters.json")
    return workdir


@pytest.fixture
def servers_stack(workdir, resources_dir):
    shutil.copy(f"{resources_dir}/servers.yml", workdir / "stack.yml")
    (workdir / "parameters.json").write_text('{"EnvironmentName": "udagram"}')
    return workdir


def parse_output(result) -> dict:
    """Returns the JSON document printed to stdout, skipping any status lines."""
    lines = [line for line in result.output.splitlines() if line.startswith("{")]
    assert lines, result.output
    return json.loads(lines[-1])


def stack_args(command, stack_name="udagram-network", region="us-east-1", *args):
    return [command, "--stack-name", stack_name, "--region", region, *args]


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("create", "update", "deploy", "delete", "status", "validate", "config"):
        assert command in result.output


class TestCreate:
    def test_create(self, runner, network_stack, cfn_backend, patch_stack_client):
        result = runner.invoke(cli, stack_args("create"))

        assert result.exit_code == 0, result.output
        stack = cfn_backend.stacks["udagram-network"]
        assert parse_output(result) == {"StackId": stack["StackId"]}
        assert patch_stack_client == [("us-east-1", None)]
        assert stack["Parameters"] == [
            {"ParameterKey": "EnvironmentName", "ParameterValue": "udagram"},
            {"ParameterKey": "VpcCIDR", "ParameterValue": "10.0.0.0/16"},
        ]
        with open(network_stack / "stack.yml") as fd:
            assert stack["TemplateBody"] == fd.read()

    def test_create_existing_stack(self, runner, network_stack, patch_stack_client):
        assert runner.invoke(cli, stack_args("create")).exit_code == 0

        result = runner.invoke(cli, stack_args("create"))

        assert result.exit_code == 1
        # the remote message is printed as is, without any prefix
        assert result.output.splitlines() == ["Stack [udagram-network] already exists"]

    def test_create_with_explicit_files(self, runner, workdir, resources_dir, cfn_backend, patch_stack_client):
        result = runner.invoke(
            cli,
            stack_args(
                "create",
                "udagram-network",
                "eu-west-1",
                "--template-body",
                f"{resources_dir}/network.yml",
                "--parameters",
                f"{resources_dir}/network-parameters.json",
                "--parameter-overrides",
                "EnvironmentName=prod",
                "--tag",
                "team=web",
                "--endpoint-url",
                "http://localhost:4566",
            ),
        )

        assert result.exit_code == 0, result.output
        assert patch_stack_client == [("eu-west-1", "http://localhost:4566")]
        stack = cfn_backend.stacks["udagram-network"]
        assert stack["Parameters"][0] == {"ParameterKey": "EnvironmentName", "ParameterValue": "prod"}
        assert stack["Tags"] == [{"Key": "team", "Value": "web"}]

    def test_create_without_parameters_file(self, runner, workdir, resources_dir, cfn_backend, patch_stack_client):
        shutil.copy(f"{resources_dir}/network.yml", workdir / "stack.yml")

        result = runner.invoke(cli, stack_args("create"))

        assert result.exit_code == 0, result.output
        assert cfn_backend.stacks["udagram-network"]["Parameters"] == []

    def test_missing_template(self, runner, workdir, patch_stack_client):
        result = runner.invoke(cli, stack_args("create"))

        assert result.exit_code == 1
        assert "Unable to read template file stack.yml" in result.output
        assert patch_stack_client == []

    def test_duplicate_parameters(self, runner, network_stack, cfn_backend, patch_stack_client):
        (network_stack / "parameters.json").write_text(
            json.dumps(
                [
                    {"ParameterKey": "EnvironmentName", "ParameterValue": "dev"},
                    {"ParameterKey": "EnvironmentName", "ParameterValue": "prod"},
                ]
            )
        )

        result = runner.invoke(cli, stack_args("create"))

        assert result.exit_code == 1
        assert "Duplicate parameter keys: [EnvironmentName]" in result.output
        assert cfn_backend.calls == []

    def test_invalid_region(self, runner, network_stack, patch_stack_client):
        result = runner.invoke(cli, stack_args("create", "udagram-network", "mars-north-1"))

        assert result.exit_code == 1
        assert "'mars-north-1' is not a valid AWS region name" in result.output
        assert patch_stack_client == []

    def test_invalid_stack_name(self, runner, network_stack, cfn_backend, patch_stack_client):
        result = runner.invoke(cli, stack_args("create", "udagram_network"))

        assert result.exit_code == 1
        assert cfn_backend.calls == []


class TestCapabilities:
    def test_iam_template_without_iam_flag(self, runner, servers_stack, cfn_backend, patch_stack_client):
        result = runner.invoke(cli, stack_args("create", "udagram-servers"))

        assert result.exit_code == 1
        assert "Requires capabilities : [CAPABILITY_IAM]" in result.output
        assert cfn_backend.calls == []

    def test_iam_flag(self, runner, servers_stack, cfn_backend, patch_stack_client):
        result = runner.invoke(cli, stack_args("create", "udagram-servers", "us-east-1", "--iam"))

        assert result.exit_code == 0, result.output
        _, request = cfn_backend.remote_calls("CreateStack")[0]
        assert request["Capabilities"] == [CAPABILITY_IAM, CAPABILITY_NAMED_IAM]

    def test_explicit_capabilities(self, runner, servers_stack, cfn_backend, patch_stack_client):
        result = runner.invoke(
            cli, stack_args("create", "udagram-servers", "us-east-1", "--capabilities", CAPABILITY_IAM)
        )

        assert result.exit_code == 0, result.output
        _, request = cfn_backend.remote_calls("CreateStack")[0]
        assert request["Capabilities"] == [CAPABILITY_IAM]

    def test_unknown_capability(self, runner, servers_stack, patch_stack_client):
        result = runner.invoke(
            cli, stack_args("create", "udagram-servers", "us-east-1", "--capabilities", "CAPABILITY_ALL")
        )

        assert result.exit_code == 2
        assert patch_stack_client == []


class TestUpdate:
    def test_update_absent_stack(self, runner, network_stack, patch_stack_client):
        result = runner.invoke(cli, stack_args("update"))

        assert result.exit_code == 1
        assert "Stack [udagram-network] does not exist" in result.output

    def test_update(self, runner, network_stack, cfn_backend, patch_stack_client):
        created = parse_output(runner.invoke(cli, stack_args("create")))

        result = runner.invoke(
            cli, stack_args("update", "udagram-network", "us-east-1", "--parameter-overrides", "VpcCIDR=10.1.0.0/16")
        )

        assert result.exit_code == 0, result.output
        assert parse_output(result) == created
        assert cfn_backend.stacks["udagram-network"]["StackStatus"] == "UPDATE_COMPLETE"

    def test_update_without_changes(self, runner, network_stack, patch_stack_client):
        runner.invoke(cli, stack_args("create"))

        result = runner.invoke(cli, stack_args("update"))

        assert result.exit_code == 1
        assert "No updates are to be performed." in result.output

    def test_deploy(self, runner, network_stack, cfn_backend, patch_stack_client):
        result = runner.invoke(cli, stack_args("deploy"))
        assert result.exit_code == 0, result.output
        assert len(cfn_backend.remote_calls("CreateStack")) == 1

        result = runner.invoke(
            cli, stack_args("deploy", "udagram-network", "us-east-1", "--parameter-overrides", "EnvironmentName=prod")
        )
        assert result.exit_code == 0, result.output
        assert len(cfn_backend.remote_calls("UpdateStack")) == 1


class TestDeleteAndStatus:
    def test_delete(self, runner, network_stack, cfn_backend, patch_stack_client):
        runner.invoke(cli, stack_args("create"))

        result = runner.invoke(cli, stack_args("delete", "udagram-network", "us-east-1", "--wait"))

        assert result.exit_code == 0, result.output
        assert "udagram-network" not in cfn_backend.stacks

    def test_create_and_wait(self, runner, network_stack, patch_stack_client):
        result = runner.invoke(cli, stack_args("create", "udagram-network", "us-east-1", "--wait"))

        assert result.exit_code == 0, result.output
        assert "create of stack udagram-network complete" in result.output

    def test_status(self, runner, network_stack, patch_stack_client):
        created = parse_output(runner.invoke(cli, stack_args("create")))

        result = runner.invoke(cli, stack_args("status", "udagram-network", "us-east-1", "--format", "json"))

        assert result.exit_code == 0, result.output
        status = parse_output(result)
        assert status["StackId"] == created["StackId"]
        assert status["StackStatus"] == "CREATE_COMPLETE"
        assert status["StackState"] == "available"

        result = runner.invoke(cli, stack_args("status", "udagram-network", "us-east-1", "--format", "plain"))
        assert "StackStatus=CREATE_COMPLETE" in result.output

    def test_status_of_absent_stack(self, runner, workdir, patch_stack_client):
        result = runner.invoke(cli, stack_args("status"))

        assert result.exit_code == 1
        assert "Stack with id udagram-network does not exist" in result.output


class TestValidate:
    def test_validate(self, runner, network_stack, patch_stack_client):
        result = runner.invoke(cli, ["validate"])

        assert result.exit_code == 0, result.output
        assert parse_output(result) == {
            "Description": "Network of a two-tier web application.",
            "Parameters": ["EnvironmentName", "VpcCIDR", "PublicSubnetCIDR"],
            "ResourceTypes": [
                "AWS::EC2::VPC",
                "AWS::EC2::InternetGateway",
                "AWS::EC2::VPCGatewayAttachment",
                "AWS::EC2::Subnet",
            ],
            "Capabilities": [],
        }
        assert patch_stack_client == []

    def test_validate_undeclared_parameters(self, runner, network_stack):
        (network_stack / "parameters.json").write_text('{"EnvironmentName": "dev", "KeyName": "x"}')

        result = runner.invoke(cli, ["validate"])

        assert result.exit_code == 1
        assert "Parameters: [KeyName] do not exist in the template" in result.output

    def test_validate_iam_template(self, runner, servers_stack):
        result = runner.invoke(cli, ["validate"])

        assert result.exit_code == 0, result.output
        assert parse_output(result)["Capabilities"] == [CAPABILITY_IAM]


class TestConfig:
    def test_config_show_json(self, runner, monkeypatch):
        monkeypatch.setattr(config, "BOTO_WAITER_DELAY", 2)

        result = runner.invoke(cli, ["config", "show", "--format", "json"])

        assert result.exit_code == 0, result.output
        values = json.loads(result.output)
        assert values["BOTO_WAITER_DELAY"] == 2
        assert "DISABLE_BOTO_RETRIES" in values

    def test_config_show_plain(self, runner, monkeypatch):
        monkeypatch.setattr(config, "ALLOW_NONSTANDARD_REGIONS", True)

        result = runner.invoke(cli, ["config", "show", "--format", "plain"])

        assert result.exit_code == 0, result.output
        assert "ALLOW_NONSTANDARD_REGIONS=True" in result.output
