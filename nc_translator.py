# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Translation of observed custom resource state into CNS requests.

Both functions are pure: they build a new CreateNetworkContainerRequest or
raise TranslationError, and never touch shared state.
"""

import ipaddress
import logging
from typing import Dict

from constants import NC_TYPE_DOCKER, NC_TYPE_KUBERNETES
from errors import TranslationError
from models import (
    CreateNetworkContainerRequest,
    IPConfiguration,
    IPSubnet,
    MultiTenantNetworkContainer,
    NodeNetworkConfigStatus,
    PodInfo,
    SecondaryIPConfig,
)

logger = logging.getLogger(__name__)


def _parse_ip(value: str, what: str) -> str:
    try:
        return str(ipaddress.ip_address(value))
    except ValueError as e:
        raise TranslationError(f"Invalid {what} {value!r}") from e


def _parse_prefix_length(cidr: str, what: str) -> int:
    try:
        return ipaddress.ip_network(cidr, strict=False).prefixlen
    except ValueError as e:
        raise TranslationError(f"Invalid {what} {cidr!r}") from e


def crd_status_to_nc_request(
        status: NodeNetworkConfigStatus) -> CreateNetworkContainerRequest:
    """
    Build the CNS request for the network container in a NodeNetworkConfig
    status.

    A node carries a single network container; a status listing none or
    more than one is rejected.
    """
    containers = status.network_containers
    if not containers:
        raise TranslationError("NodeNetworkConfig status has no network "
                               "containers")
    if len(containers) > 1:
        raise TranslationError(
            f"Only one network container per node is supported, "
            f"status lists {len(containers)}")

    nc = containers[0]
    if not nc.id:
        raise TranslationError("Network container is missing its id")

    primary_ip = _parse_ip(nc.primary_ip, "PrimaryIP")
    prefix_length = _parse_prefix_length(nc.subnet_address_space,
                                         "SubnetAddressSpace")

    secondary_ip_configs: Dict[str, SecondaryIPConfig] = {}
    for assignment in nc.ip_assignments:
        if not assignment.name:
            raise TranslationError(
                f"IP assignment {assignment.ip!r} is missing its name")
        secondary_ip_configs[assignment.name] = SecondaryIPConfig(
            ip_address=_parse_ip(assignment.ip, "SecondaryIP"),
            nc_version=nc.version)

    logger.debug(f"[TRANSLATE] NC {nc.id}: {len(secondary_ip_configs)} "
                 f"secondary IPs, /{prefix_length}")

    return CreateNetworkContainerRequest(
        network_container_id=nc.id,
        network_container_type=NC_TYPE_DOCKER,
        version=str(nc.version),
        ip_configuration=IPConfiguration(
            ip_subnet=IPSubnet(ip_address=primary_ip,
                               prefix_length=prefix_length),
            gateway_ip_address=nc.default_gateway,
        ),
        secondary_ip_configs=secondary_ip_configs,
    )


def multitenant_nc_to_request(
        nc: MultiTenantNetworkContainer) -> CreateNetworkContainerRequest:
    """Build the CNS request for a provisioned multi-tenant network container."""
    if not nc.spec.uuid:
        raise TranslationError(
            f"MultiTenantNetworkContainer {nc.namespace}/{nc.name} "
            "is missing spec.uuid")

    ip = _parse_ip(nc.status.ip, "IP")
    prefix_length = _parse_prefix_length(nc.status.ip_subnet, "IPSubnet")

    return CreateNetworkContainerRequest(
        network_container_id=nc.spec.uuid,
        network_container_type=NC_TYPE_KUBERNETES,
        version="0",
        ip_configuration=IPConfiguration(
            ip_subnet=IPSubnet(ip_address=ip, prefix_length=prefix_length),
            gateway_ip_address=nc.status.gateway,
        ),
        primary_interface_identifier=nc.status.primary_interface_identifier,
        orchestrator_context=PodInfo(pod_name=nc.name,
                                     pod_namespace=nc.namespace),
    )
