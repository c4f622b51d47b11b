import os

import pytest

pytest_plugins = [
    "stackdeploy.testing.pytest.fixtures",
]


@pytest.fixture(scope="session")
def resources_dir() -> str:
    return os.path.join(os.path.dirname(os.path.realpath(__file__)), "resources")


@pytest.fixture
def network_template(resources_dir) -> str:
    return os.path.join(resources_dir, "network.yml")


@pytest.fixture
def servers_template(resources_dir) -> str:
    return os.path.join(resources_dir, "servers.yml")
