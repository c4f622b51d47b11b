import json
from typing import Callable

import pytest

from stackdeploy.cloudformation.client import StackClient
from stackdeploy.testing.backend import FakeCloudFormationBackend
from stackdeploy.testing.config import (
    TEST_AWS_ACCESS_KEY_ID,
    TEST_AWS_REGION_NAME,
    TEST_AWS_SECRET_ACCESS_KEY,
)


@pytest.fixture(autouse=True)
def set_boto_test_credentials_and_region(monkeypatch):
    """
    Automatically sets the default credentials and region for all tests, so no test ever talks to a real account.
    """
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", TEST_AWS_ACCESS_KEY_ID)
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", TEST_AWS_SECRET_ACCESS_KEY)
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_AWS_REGION_NAME)
    monkeypatch.delenv("AWS_PROFILE", raising=False)


@pytest.fixture
def cfn_backend() -> FakeCloudFormationBackend:
    return FakeCloudFormationBackend()


@pytest.fixture
def stack_client(cfn_backend) -> StackClient:
    return StackClient(cfn_backend)


@pytest.fixture
def patch_stack_client(monkeypatch, cfn_backend):
    """Makes the CLI talk to the fake backend instead of creating a boto3 client."""
    created = []

    def _create_stack_client(region, endpoint_url=None):
        created.append((region, endpoint_url))
        return StackClient(cfn_backend)

    monkeypatch.setattr("stackdeploy.cli.stackdeploy.create_stack_client", _create_stack_client)
    return created


@pytest.fixture
def write_file(tmp_path) -> Callable[[str, object], str]:
    """Writes the given content (a string, or an object serialized as JSON) into a temporary file."""

    def _write(name: str, content) -> str:
        path = tmp_path / name
        if not isinstance(content, str):
            content = json.dumps(content)
        path.write_text(content)
        return str(path)

    return _write
