import logging
from functools import lru_cache
from typing import Optional, Set

import boto3
from botocore.client import BaseClient
from botocore.config import Config

from stackdeploy import config as stackdeploy_config
from stackdeploy.constants import CLOUDFORMATION_SERVICE
from stackdeploy.exceptions import InvalidRegionError

LOG = logging.getLogger(__name__)


@lru_cache()
def get_valid_regions(service_name: str = CLOUDFORMATION_SERVICE) -> Set[str]:
    """Returns the region names botocore knows for the given service, across all partitions."""
    session = boto3.Session()
    valid_regions = set()
    for partition in session.get_available_partitions():
        for region in session.get_available_regions(service_name, partition_name=partition):
            valid_regions.add(region)
    return valid_regions


def validate_region(region_name: str, service_name: str = CLOUDFORMATION_SERVICE) -> str:
    if not region_name:
        raise InvalidRegionError("A region name is required")
    if (
        not stackdeploy_config.ALLOW_NONSTANDARD_REGIONS
        and region_name not in get_valid_regions(service_name)
    ):
        raise InvalidRegionError(
            f"'{region_name}' is not a valid AWS region name for {service_name}"
        )
    return region_name


def create_client_config(region_name: Optional[str] = None) -> Config:
    if stackdeploy_config.DISABLE_BOTO_RETRIES:
        # a single attempt per call, errors are surfaced as returned
        return Config(region_name=region_name, retries={"total_max_attempts": 1, "mode": "standard"})
    return Config(region_name=region_name)


def connect_to(
    service_name: str = CLOUDFORMATION_SERVICE,
    region_name: Optional[str] = None,
    endpoint_url: Optional[str] = None,
    session: Optional[boto3.Session] = None,
) -> BaseClient:
    """
    Creates a boto3 client for the given service.

    :param service_name: Service to build the client for, defaults to `cloudformation`
    :param region_name: Name of the AWS region to be associated with the client. Validated against the regions
        botocore knows, unless ALLOW_NONSTANDARD_REGIONS is set.
    :param endpoint_url: Full endpoint URL to be used by the client. Falls back to AWS_ENDPOINT_URL, and then to the
        regular AWS endpoint.
    :param session: boto3 session to create the client from. Credentials are resolved by the session.
    :return: boto3 client
    """
    region_name = validate_region(region_name, service_name)
    endpoint_url = endpoint_url or stackdeploy_config.AWS_ENDPOINT_URL
    session = session or boto3.Session()

    LOG.debug(
        "Creating %s client for region %s (endpoint: %s)",
        service_name,
        region_name,
        endpoint_url or "default",
    )
    return session.client(
        service_name=service_name,
        region_name=region_name,
        endpoint_url=endpoint_url,
        config=create_client_config(region_name),
    )
