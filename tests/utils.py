import json
from typing import Dict, List, Optional
from unittest.mock import MagicMock

from kubernetes import client

NODE_NAME = "aks-nodepool1-12345-vmss000000"
NNC_NAMESPACE = "kube-system"

SCALER = {
    "batchSize": 10,
    "releaseThresholdPercent": 150,
    "requestThresholdPercent": 50,
    "maxIPCount": 250,
}


def make_network_container(nc_id: str = "nc-1",
                           version: int = 3,
                           assignments: Optional[List[Dict]] = None) -> Dict:
    if assignments is None:
        assignments = [
            {"name": "ip-uuid-1", "ip": "10.244.1.2"},
            {"name": "ip-uuid-2", "ip": "10.244.1.3"},
        ]
    return {
        "id": nc_id,
        "primaryIP": "10.244.1.1",
        "subnetName": "podnet",
        "ipAssignments": assignments,
        "defaultGateway": "10.244.0.1",
        "subnetAddressSpace": "10.244.0.0/16",
        "version": version,
    }


def make_nnc(name: str = NODE_NAME,
             network_containers: Optional[List[Dict]] = None,
             requested_ip_count: int = 10,
             resource_version: str = "100") -> Dict:
    return {
        "apiVersion": "acn.azure.com/v1alpha",
        "kind": "NodeNetworkConfig",
        "metadata": {
            "name": name,
            "namespace": NNC_NAMESPACE,
            "resourceVersion": resource_version,
        },
        "spec": {
            "requestedIPCount": requested_ip_count,
            "ipsNotInUse": [],
        },
        "status": {
            "scaler": dict(SCALER),
            "networkContainers": network_containers or [],
        },
    }


def make_mtnc(name: str = "pod-a",
              namespace: str = "tenant-1",
              node: str = NODE_NAME,
              state: str = "Succeeded",
              uuid: str = "mt-nc-1",
              ip: str = "192.168.0.4") -> Dict:
    return {
        "apiVersion": "multitenancy.acn.azure.com/v1alpha1",
        "kind": "MultiTenantNetworkContainer",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "resourceVersion": "7",
        },
        "spec": {
            "uuid": uuid,
            "network": "vnet-1",
            "subnet": "subnet-1",
            "node": node,
            "interfaceName": "eth1",
        },
        "status": {
            "state": state,
            "primaryInterfaceIdentifier": "10.0.0.10/24",
            "ip": ip,
            "gateway": "192.168.0.1",
            "ipSubnet": "192.168.0.0/24",
        },
    }


def make_pod(name: str,
             ip: Optional[str],
             host_network: bool = False,
             namespace: str = "default") -> client.V1Pod:
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        spec=client.V1PodSpec(containers=[],
                              host_network=host_network,
                              node_name=NODE_NAME),
        status=client.V1PodStatus(pod_ip=ip),
    )


def api_exception(status: int, body=None) -> client.exceptions.ApiException:
    exc = client.exceptions.ApiException(status=status, reason="error")
    exc.body = json.dumps(body) if isinstance(body, dict) else body
    return exc


def not_found_status(name: str = NODE_NAME) -> Dict:
    return {
        "kind": "Status",
        "apiVersion": "v1",
        "status": "Failure",
        "message": f'nodenetworkconfigs.acn.azure.com "{name}" not found',
        "reason": "NotFound",
        "details": {
            "name": name,
            "group": "acn.azure.com",
            "kind": "nodenetworkconfigs",
        },
        "code": 404,
    }


def kind_undefined_exception() -> client.exceptions.ApiException:
    return api_exception(404, "404 page not found\n")


def make_sink() -> MagicMock:
    return MagicMock(spec=[
        "reconcile_nc_state",
        "create_or_update_network_container",
        "delete_network_container",
    ])
