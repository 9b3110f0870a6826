# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
MultiTenantNetworkContainer controller.

Single-phase variant of the request controller: there is no cold start, the
reconciler alone drives every provisioned multi-tenant network container on
this node into CNS, and removes it from CNS once the object is gone.
"""

import logging
import os
import threading
from typing import Dict, List, Mapping, Optional

from kubernetes import client

import constants
from controller import ReconcileController
from direct_clients import load_kube_client
from errors import ConfigurationError, NotFoundError
from models import MultiTenantNetworkContainer, ObjectKey, ResourceKind
from nc_translator import multitenant_nc_to_request
from watch_manager import CachedClient, WatchManager

MTNC_RESOURCE = ResourceKind(group=constants.MTNC_GROUP,
                             version=constants.MTNC_VERSION,
                             plural=constants.MTNC_PLURAL,
                             kind=constants.MTNC_KIND)


class MultiTenantNCReconciler:
    """Creates, updates and deletes multi-tenant NCs in CNS"""

    def __init__(self, cached_client: Optional[CachedClient], sink,
                 node_name: str, log: logging.Logger):
        self.cached_client = cached_client
        self.sink = sink
        self.node_name = node_name
        self.log = log
        # key -> (NC id, applied request) for NCs handed to CNS
        self._applied: Dict[ObjectKey, tuple] = {}
        self._lock = threading.Lock()

    def reconcile(self, key: ObjectKey) -> None:
        try:
            obj = self.cached_client.get(key)
        except NotFoundError:
            self._forget(key)
            return

        nc = MultiTenantNetworkContainer.from_dict(obj)
        if nc.spec.node != self.node_name:
            # Rescheduled elsewhere; drop anything applied for this node
            self._forget(key)
            return

        if nc.status.state != constants.MTNC_STATE_SUCCEEDED:
            self.log.debug(f"[MT] NC {key} not ready "
                           f"(state={nc.status.state or '<none>'})")
            return

        request = multitenant_nc_to_request(nc)
        with self._lock:
            applied = self._applied.get(key)
        if applied is not None and applied[1] == request:
            return

        self.log.info("[MT] Creating or updating NC "
                      f"{request.network_container_id} for pod {key}")
        self.sink.create_or_update_network_container(request)
        with self._lock:
            self._applied[key] = (request.network_container_id, request)

    def tracked_keys(self) -> List[ObjectKey]:
        """Keys of NCs handed to CNS and not yet deleted from it."""
        with self._lock:
            return list(self._applied)

    def _forget(self, key: ObjectKey) -> None:
        with self._lock:
            applied = self._applied.get(key)
        if applied is None:
            return

        nc_id = applied[0]
        self.log.info(f"[MT] Deleting NC {nc_id} for pod {key}")
        self.sink.delete_network_container(nc_id)
        with self._lock:
            self._applied.pop(key, None)


class MultiTenantController(ReconcileController):
    """Watches MultiTenantNetworkContainers in all namespaces"""

    def __init__(self,
                 sink,
                 log: logging.Logger,
                 node_name: str,
                 custom_api: client.CustomObjectsApi,
                 namespace: str = constants.MTNC_NAMESPACE):
        if log is None:
            raise ConfigurationError(
                "a logger is required to construct the multi-tenant "
                "controller")
        if not node_name:
            raise ConfigurationError(
                f"Must declare {constants.NODE_NAME_ENV_VAR} environment "
                "variable.")
        for method in ('create_or_update_network_container',
                       'delete_network_container'):
            if not callable(getattr(sink, method, None)):
                raise ConfigurationError(f"CNS sink must provide {method}()")
        MTNC_RESOURCE.validate()

        self.node_name = node_name
        self.sink = sink

        reconciler = MultiTenantNCReconciler(None, sink, node_name, log)
        try:
            manager = WatchManager(custom_api, MTNC_RESOURCE, namespace,
                                   reconciler)
        except ValueError as e:
            log.error(f"[INIT] Error creating multi-tenant manager: {e}")
            raise ConfigurationError(
                f"Error creating multi-tenant manager: {e}") from e

        self.cached_client = CachedClient(manager, custom_api)
        reconciler.cached_client = self.cached_client
        self.reconciler = reconciler

        super().__init__("MultiTenantNetworkContainer controller",
                         manager,
                         log,
                         requires_init=False)


def new_multitenant_controller(sink,
                               log: logging.Logger,
                               api_client: Optional[client.ApiClient] = None,
                               environ: Optional[Mapping[str, str]] = None,
                               kubeconfig: Optional[str] = None
                               ) -> MultiTenantController:
    """Build a MultiTenantController for the node named by $NODENAME."""
    if log is None:
        raise ConfigurationError(
            "a logger is required to construct the multi-tenant controller")
    environ = os.environ if environ is None else environ
    node_name = environ.get(constants.NODE_NAME_ENV_VAR, "")
    if not node_name:
        raise ConfigurationError(
            f"Must declare {constants.NODE_NAME_ENV_VAR} environment variable.")

    if api_client is None:
        api_client = load_kube_client(kubeconfig)

    return MultiTenantController(sink,
                                 log,
                                 node_name,
                                 custom_api=client.CustomObjectsApi(api_client))
