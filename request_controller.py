# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
NodeNetworkConfig request controller.

Keeps CNS's view of the network containers and IPs assigned to this node in
line with the node's NodeNetworkConfig custom resource:

- init() performs a cold start with direct (uncached) reads of the
  NodeNetworkConfig and the node's pods, and hands CNS a baseline before any
  watch event is processed
- start() runs the watch loop; every observed change is reconciled into CNS
- update_spec() pushes CNS-originated spec changes (e.g. requested IP count)
  back to the cluster
"""

import copy
import json
import logging
import os
from typing import Dict, Mapping, Optional

from kubernetes import client

import constants
from controller import ReconcileController
from direct_clients import DirectCRDGetter, DirectPodLister, load_kube_client
from errors import ConfigurationError, KindUndefinedError, NotFoundError
from models import (
    NodeNetworkConfig,
    NodeNetworkConfigSpec,
    ObjectKey,
    PodInfo,
    ResourceKind,
    Scaler,
)
from nc_translator import crd_status_to_nc_request
from watch_manager import CachedClient, WatchManager

NNC_RESOURCE = ResourceKind(group=constants.NNC_GROUP,
                            version=constants.NNC_VERSION,
                            plural=constants.NNC_PLURAL,
                            kind=constants.NNC_KIND)


def build_pod_info_by_ip(
        pods: client.V1PodList) -> Optional[Dict[str, PodInfo]]:
    """
    Map pod IP -> PodInfo for the pods in the list.

    Host network pods are skipped: their IP is the node's IP, not one CNS
    handed out. Pods without an IP yet are skipped as well. Returns None
    for an empty list.
    """
    if not pods.items:
        return None

    pod_info_by_ip: Dict[str, PodInfo] = {}
    for pod in pods.items:
        if pod.spec is not None and pod.spec.host_network:
            continue
        pod_ip = pod.status.pod_ip if pod.status is not None else None
        if not pod_ip:
            continue
        pod_info_by_ip[pod_ip] = PodInfo(pod_name=pod.metadata.name,
                                         pod_namespace=pod.metadata.namespace)
    return pod_info_by_ip


def _deep_merge(base: Dict, override: Mapping) -> Dict:
    """Return base with override merged in, recursing into nested dicts."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _fingerprint(obj: Dict) -> str:
    state = {"spec": obj.get("spec"), "status": obj.get("status")}
    return json.dumps(state, sort_keys=True, default=str)


class NodeNetworkConfigReconciler:
    """Pushes the node's NodeNetworkConfig into CNS on every change"""

    def __init__(self, cached_client: CachedClient, sink, node_name: str,
                 log: logging.Logger):
        self.cached_client = cached_client
        self.sink = sink
        self.node_name = node_name
        self.log = log
        self._last_applied: Optional[str] = None

    def mark_applied(self, obj: Dict) -> None:
        self._last_applied = _fingerprint(obj)

    def reconcile(self, key: ObjectKey) -> None:
        if key.name != self.node_name:
            return

        try:
            obj = self.cached_client.get(key)
        except NotFoundError:
            self.log.info(
                f"[RECONCILE] NodeNetworkConfig {key} not found, nothing to do")
            return

        fingerprint = _fingerprint(obj)
        if fingerprint == self._last_applied:
            self.log.debug(f"[RECONCILE] NodeNetworkConfig {key} unchanged")
            return

        nnc = NodeNetworkConfig.from_dict(obj)
        nc_request = None
        if nnc.status.network_containers:
            nc_request = crd_status_to_nc_request(nnc.status)

        self.log.info(f"[RECONCILE] Applying NodeNetworkConfig {key} "
                      f"(rv={nnc.resource_version}, "
                      f"containers={len(nnc.status.network_containers)})")
        self.sink.reconcile_nc_state(nc_request, None, nnc.status.scaler,
                                     nnc.spec)
        self._last_applied = fingerprint


class RequestController(ReconcileController):
    """
    Watches the node's NodeNetworkConfig status and updates its spec.

    Must be initialized (cold start) before it can be started.
    """

    def __init__(self,
                 sink,
                 log: logging.Logger,
                 node_name: str,
                 custom_api: client.CustomObjectsApi,
                 core_api: client.CoreV1Api,
                 namespace: str = constants.NNC_NAMESPACE):
        """
        Initialize RequestController.

        Args:
            sink: Local CNS service; must provide reconcile_nc_state()
            log: Logger used for all controller output
            node_name: Name of the node running this agent
            custom_api: Kubernetes CustomObjectsApi client
            core_api: Kubernetes CoreV1Api client
            namespace: Namespace holding the NodeNetworkConfig objects
        """
        if log is None:
            raise ConfigurationError(
                "a logger is required to construct the request controller")
        if not node_name:
            raise ConfigurationError(
                f"Must declare {constants.NODE_NAME_ENV_VAR} environment "
                "variable.")
        if not callable(getattr(sink, 'reconcile_nc_state', None)):
            raise ConfigurationError(
                "CNS sink must provide reconcile_nc_state()")
        NNC_RESOURCE.validate()

        self.node_name = node_name
        self.namespace = namespace
        self.sink = sink
        self.pod_lister = DirectPodLister(core_api)
        self.crd_getter = DirectCRDGetter(custom_api)

        # Reconciler and manager reference each other through the cache
        reconciler = NodeNetworkConfigReconciler(None, sink, node_name, log)
        try:
            manager = WatchManager(
                custom_api,
                NNC_RESOURCE,
                namespace,
                reconciler,
                field_selector=f"metadata.name={node_name}")
        except ValueError as e:
            log.error(f"[INIT] Error creating request controller manager: {e}")
            raise ConfigurationError(
                f"Error creating request controller manager: {e}") from e

        self.cached_client = CachedClient(manager, custom_api)
        reconciler.cached_client = self.cached_client
        self.reconciler = reconciler

        super().__init__("NodeNetworkConfig request controller",
                         manager,
                         log,
                         requires_init=True)

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.node_name)

    def _cold_start(self) -> None:
        """Hand CNS the node's live NodeNetworkConfig and pods."""
        try:
            obj = self.crd_getter.get(self.node_name, self.namespace,
                                      NNC_RESOURCE)
        except KindUndefinedError as e:
            self.fatal("NodeNetworkConfig CRD is not defined on cluster", e)
        except NotFoundError:
            self.log.warning(
                f"[INIT] NodeNetworkConfig {self.key} is not present on "
                "cluster, initializing CNS without network containers")
            self.sink.reconcile_nc_state(None, None, Scaler(),
                                         NodeNetworkConfigSpec())
            return

        nnc = NodeNetworkConfig.from_dict(obj)

        if not nnc.status.network_containers:
            self.log.info(
                f"[INIT] NodeNetworkConfig {self.key} has no network "
                "containers yet")
            self.sink.reconcile_nc_state(None, None, nnc.status.scaler,
                                         nnc.spec)
            self.reconciler.mark_applied(obj)
            return

        nc_request = crd_status_to_nc_request(nnc.status)

        pods = self.pod_lister.list_pods(constants.ALL_NAMESPACES,
                                         self.node_name)
        pod_info_by_ip = build_pod_info_by_ip(pods)

        self.log.info(
            f"[INIT] Reconciling NC {nc_request.network_container_id} with "
            f"{len(nc_request.secondary_ip_configs)} secondary IPs and "
            f"{len(pod_info_by_ip) if pod_info_by_ip else 0} pods")
        self.sink.reconcile_nc_state(nc_request, pod_info_by_ip,
                                     nnc.status.scaler, nnc.spec)
        self.reconciler.mark_applied(obj)

    def update_spec(self, spec: NodeNetworkConfigSpec) -> None:
        """
        Merge spec into the node's NodeNetworkConfig and write it back.

        A concurrent writer makes this raise ConflictError; the caller is
        expected to retry.
        """
        try:
            obj = self.cached_client.get(self.key)
        except Exception as e:
            self.log.error(f"[SPEC] Error getting CRD when updating spec: {e}")
            raise

        self.log.info(f"[SPEC] Received update for IP count {spec}")
        obj['spec'] = _deep_merge(obj.get('spec') or {}, spec.to_dict())
        self.log.debug(f"[SPEC] After merge {obj['spec']}")

        try:
            self.cached_client.update(obj)
        except Exception as e:
            self.log.error(f"[SPEC] Error updating CRD spec: {e}")
            raise


def new_request_controller(sink,
                           log: logging.Logger,
                           api_client: Optional[client.ApiClient] = None,
                           environ: Optional[Mapping[str, str]] = None,
                           kubeconfig: Optional[str] = None
                           ) -> RequestController:
    """Build a RequestController for the node named by $NODENAME."""
    if log is None:
        raise ConfigurationError(
            "a logger is required to construct the request controller")
    environ = os.environ if environ is None else environ
    node_name = environ.get(constants.NODE_NAME_ENV_VAR, "")
    if not node_name:
        raise ConfigurationError(
            f"Must declare {constants.NODE_NAME_ENV_VAR} environment variable.")

    if api_client is None:
        api_client = load_kube_client(kubeconfig)

    return RequestController(sink,
                             log,
                             node_name,
                             custom_api=client.CustomObjectsApi(api_client),
                             core_api=client.CoreV1Api(api_client))
