# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Data models and resource configuration for the NodeNetworkConfig reconciler.

This module contains:
- IP configuration lifecycle types (IPConfigState, IPConfigurationStatus)
- Pod identity (PodInfo) and cache keys (ObjectKey)
- NodeNetworkConfig and MultiTenantNetworkContainer custom resource models
- The CNS network container request shape (CreateNetworkContainerRequest)
- Custom resource coordinates (ResourceKind)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from errors import ConfigurationError, TranslationError

# ============================================================================
# IP Configuration Lifecycle
# ============================================================================


class IPConfigState(str, Enum):
    """Allocation lifecycle stage of a single IP address"""
    ALLOCATED = "Allocated"
    AVAILABLE = "Available"
    PENDING_PROGRAMMING = "PendingProgramming"
    PENDING_RELEASE = "PendingRelease"


@dataclass
class PodInfo:
    """Identity of the pod holding an IP address"""
    pod_name: str
    pod_namespace: str
    infra_container_id: str = ""
    interface_id: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "PodName": self.pod_name,
            "PodNamespace": self.pod_namespace,
            "InfraContainerID": self.infra_container_id,
            "InterfaceID": self.interface_id,
        }


@dataclass
class IPConfigurationStatus:
    """
    Position of one IP address in its allocation lifecycle.

    Owned by the local allocation service; the classifier in ipam_filter
    only reads it.
    """
    id: str
    state: IPConfigState
    nc_id: str = ""
    ip_address: str = ""
    pod_info: Optional[PodInfo] = None


# ============================================================================
# Cache Keys and Resource Coordinates
# ============================================================================


@dataclass(frozen=True)
class ObjectKey:
    """Namespace/name key of a cluster object"""
    namespace: str
    name: str

    @classmethod
    def from_object(cls, obj: Dict) -> 'ObjectKey':
        metadata = obj.get('metadata') or {}
        return cls(namespace=metadata.get('namespace', ''),
                   name=metadata.get('name', ''))

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


@dataclass(frozen=True)
class ResourceKind:
    """Group/version/plural coordinates of a custom resource kind"""
    group: str
    version: str
    plural: str
    kind: str

    def validate(self) -> None:
        """Fail if the kind cannot be addressed through CustomObjectsApi."""
        missing = [
            name for name in ('group', 'version', 'plural', 'kind')
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                f"Cannot register custom resource kind {self.kind or '?'}: "
                f"missing {', '.join(missing)}")
        if self.plural != self.plural.lower():
            raise ConfigurationError(
                f"Cannot register custom resource kind {self.kind}: "
                f"plural '{self.plural}' must be lowercase")


# ============================================================================
# NodeNetworkConfig
# ============================================================================


@dataclass
class Scaler:
    """IP pool scaling parameters published in NodeNetworkConfig status"""
    batch_size: int = 0
    release_threshold_percent: int = 0
    request_threshold_percent: int = 0
    max_ip_count: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'Scaler':
        data = data or {}
        return cls(
            batch_size=int(data.get('batchSize', 0)),
            release_threshold_percent=int(
                data.get('releaseThresholdPercent', 0)),
            request_threshold_percent=int(
                data.get('requestThresholdPercent', 0)),
            max_ip_count=int(data.get('maxIPCount', 0)),
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            'batchSize': self.batch_size,
            'releaseThresholdPercent': self.release_threshold_percent,
            'requestThresholdPercent': self.request_threshold_percent,
            'maxIPCount': self.max_ip_count,
        }


@dataclass
class NodeNetworkConfigSpec:
    """Desired state pushed upward by this agent"""
    requested_ip_count: int = 0
    ips_not_in_use: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'NodeNetworkConfigSpec':
        data = data or {}
        return cls(requested_ip_count=int(data.get('requestedIPCount', 0)),
                   ips_not_in_use=list(data.get('ipsNotInUse') or []))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'requestedIPCount': self.requested_ip_count,
            'ipsNotInUse': list(self.ips_not_in_use),
        }


@dataclass
class IPAssignment:
    """Secondary IP handed to the node, keyed by its allocation name (uuid)"""
    name: str
    ip: str


@dataclass
class NetworkContainer:
    """A provisioning unit: a block of IP addresses assigned to the node"""
    id: str
    primary_ip: str = ""
    subnet_name: str = ""
    ip_assignments: List[IPAssignment] = field(default_factory=list)
    default_gateway: str = ""
    subnet_address_space: str = ""
    version: int = 0

    @classmethod
    def from_dict(cls, data: Dict) -> 'NetworkContainer':
        return cls(
            id=data.get('id', ''),
            primary_ip=data.get('primaryIP', ''),
            subnet_name=data.get('subnetName', ''),
            ip_assignments=[
                IPAssignment(name=a.get('name', ''), ip=a.get('ip', ''))
                for a in data.get('ipAssignments') or []
            ],
            default_gateway=data.get('defaultGateway', ''),
            subnet_address_space=data.get('subnetAddressSpace', ''),
            version=int(data.get('version', 0)),
        )


@dataclass
class NodeNetworkConfigStatus:
    """Observed state written by the cluster control plane"""
    scaler: Scaler = field(default_factory=Scaler)
    network_containers: List[NetworkContainer] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'NodeNetworkConfigStatus':
        data = data or {}
        return cls(scaler=Scaler.from_dict(data.get('scaler')),
                   network_containers=[
                       NetworkContainer.from_dict(nc)
                       for nc in data.get('networkContainers') or []
                   ])


@dataclass
class NodeNetworkConfig:
    """
    NodeNetworkConfig custom resource.

    Decoding a structurally invalid spec or status raises TranslationError.
    """
    name: str
    namespace: str
    resource_version: str = ""
    spec: NodeNetworkConfigSpec = field(default_factory=NodeNetworkConfigSpec)
    status: NodeNetworkConfigStatus = field(
        default_factory=NodeNetworkConfigStatus)

    @classmethod
    def from_dict(cls, obj: Dict) -> 'NodeNetworkConfig':
        metadata = obj.get('metadata') or {}
        try:
            spec = NodeNetworkConfigSpec.from_dict(obj.get('spec'))
            status = NodeNetworkConfigStatus.from_dict(obj.get('status'))
        except (AttributeError, TypeError, ValueError) as e:
            raise TranslationError(
                "Malformed NodeNetworkConfig "
                f"{metadata.get('namespace', '')}/{metadata.get('name', '')}: "
                f"{e}") from e
        return cls(name=metadata.get('name', ''),
                   namespace=metadata.get('namespace', ''),
                   resource_version=metadata.get('resourceVersion', ''),
                   spec=spec,
                   status=status)


# ============================================================================
# MultiTenantNetworkContainer
# ============================================================================


@dataclass
class MultiTenantNetworkContainerSpec:
    uuid: str = ""
    network: str = ""
    subnet: str = ""
    node: str = ""
    interface_name: str = ""
    reservation_id: str = ""


@dataclass
class MultiTenantNetworkContainerStatus:
    state: str = ""
    primary_interface_identifier: str = ""
    ip: str = ""
    gateway: str = ""
    ip_subnet: str = ""
    mac_address: str = ""


@dataclass
class MultiTenantNetworkContainer:
    """Network container owned by a single multi-tenant pod"""
    name: str
    namespace: str
    spec: MultiTenantNetworkContainerSpec = field(
        default_factory=MultiTenantNetworkContainerSpec)
    status: MultiTenantNetworkContainerStatus = field(
        default_factory=MultiTenantNetworkContainerStatus)

    @classmethod
    def from_dict(cls, obj: Dict) -> 'MultiTenantNetworkContainer':
        metadata = obj.get('metadata') or {}
        spec = obj.get('spec') or {}
        status = obj.get('status') or {}
        if not isinstance(spec, dict) or not isinstance(status, dict):
            raise TranslationError(
                "Malformed MultiTenantNetworkContainer "
                f"{metadata.get('namespace', '')}/{metadata.get('name', '')}: "
                "spec and status must be objects")
        return cls(
            name=metadata.get('name', ''),
            namespace=metadata.get('namespace', ''),
            spec=MultiTenantNetworkContainerSpec(
                uuid=spec.get('uuid', ''),
                network=spec.get('network', ''),
                subnet=spec.get('subnet', ''),
                node=spec.get('node', ''),
                interface_name=spec.get('interfaceName', ''),
                reservation_id=spec.get('reservationID', ''),
            ),
            status=MultiTenantNetworkContainerStatus(
                state=status.get('state', ''),
                primary_interface_identifier=status.get(
                    'primaryInterfaceIdentifier', ''),
                ip=status.get('ip', ''),
                gateway=status.get('gateway', ''),
                ip_subnet=status.get('ipSubnet', ''),
                mac_address=status.get('macAddress', ''),
            ),
        )


# ============================================================================
# CNS Request Shapes
# ============================================================================


@dataclass
class IPSubnet:
    ip_address: str
    prefix_length: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'IPAddress': self.ip_address,
            'PrefixLength': self.prefix_length
        }


@dataclass
class IPConfiguration:
    ip_subnet: IPSubnet
    gateway_ip_address: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'IPSubnet': self.ip_subnet.to_dict(),
            'GatewayIPAddress': self.gateway_ip_address,
        }


@dataclass
class SecondaryIPConfig:
    ip_address: str
    nc_version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {'IPAddress': self.ip_address, 'NCVersion': self.nc_version}


@dataclass
class CreateNetworkContainerRequest:
    """Network container creation request consumed by CNS"""
    network_container_id: str
    network_container_type: str
    version: str
    ip_configuration: IPConfiguration
    secondary_ip_configs: Dict[str, SecondaryIPConfig] = field(
        default_factory=dict)
    primary_interface_identifier: str = ""
    orchestrator_context: Optional[PodInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        body = {
            'NetworkContainerid': self.network_container_id,
            'NetworkContainerType': self.network_container_type,
            'Version': self.version,
            'IPConfiguration': self.ip_configuration.to_dict(),
            'SecondaryIPConfigs': {
                name: cfg.to_dict()
                for name, cfg in self.secondary_ip_configs.items()
            },
        }
        if self.primary_interface_identifier:
            body['PrimaryInterfaceIdentifier'] = \
                self.primary_interface_identifier
        if self.orchestrator_context is not None:
            body['OrchestratorContext'] = self.orchestrator_context.to_dict()
        return body
