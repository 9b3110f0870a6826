# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Direct (uncached) readers against the API server.

Used only during cold start, before any watch cache exists: an empty or
stale cache would hand CNS an incomplete picture of the node. Every failure
leaves this module already classified (see errors.py).
"""

import logging
from typing import Dict, Optional

import urllib3
from kubernetes import client, config

from errors import ConfigurationError, TransientError, from_api_exception
from models import ResourceKind

logger = logging.getLogger(__name__)


def load_kube_client(kubeconfig: Optional[str] = None) -> client.ApiClient:
    """
    Build an API client from a kubeconfig file, falling back to the
    in-cluster service account.
    """
    try:
        return config.new_client_from_config(config_file=kubeconfig)
    except config.ConfigException as e:
        if kubeconfig:
            raise ConfigurationError(
                f"Cannot load kubeconfig {kubeconfig}: {e}") from e
        logger.debug(f"No kubeconfig found ({e}), using in-cluster config")

    configuration = client.Configuration()
    try:
        config.load_incluster_config(client_configuration=configuration)
    except config.ConfigException as e:
        raise ConfigurationError(
            f"Cannot load in-cluster kubernetes config: {e}") from e
    return client.ApiClient(configuration)


class DirectPodLister:
    """Lists the pods scheduled to a node straight from the API server"""

    def __init__(self, core_api: client.CoreV1Api):
        self.core_api = core_api

    def list_pods(self, namespace: str, node_name: str) -> client.V1PodList:
        """
        List pods bound to node_name.

        Args:
            namespace: Namespace to list. Empty string = all namespaces.
            node_name: Node the pods are scheduled to.
        """
        field_selector = f"spec.nodeName={node_name}"
        try:
            if namespace == "":
                return self.core_api.list_pod_for_all_namespaces(
                    field_selector=field_selector)
            return self.core_api.list_namespaced_pod(
                namespace=namespace, field_selector=field_selector)
        except client.exceptions.ApiException as e:
            raise from_api_exception(
                e, f"listing pods on node {node_name}") from e
        except urllib3.exceptions.HTTPError as e:
            raise TransientError(
                f"listing pods on node {node_name}: {e}") from e


class DirectCRDGetter:
    """Reads single custom resources straight from the API server"""

    def __init__(self, custom_api: client.CustomObjectsApi):
        self.custom_api = custom_api

    def get(self, name: str, namespace: str, kind: ResourceKind) -> Dict:
        """
        Fetch one custom resource.

        Raises:
            NotFoundError: the instance does not exist
            KindUndefinedError: the kind is not served by the cluster
            TransientError: any other failure
        """
        context = f"getting {kind.kind} {namespace}/{name}"
        try:
            return self.custom_api.get_namespaced_custom_object(
                group=kind.group,
                version=kind.version,
                namespace=namespace,
                plural=kind.plural,
                name=name)
        except client.exceptions.ApiException as e:
            raise from_api_exception(e, context) from e
        except urllib3.exceptions.HTTPError as e:
            raise TransientError(f"{context}: {e}") from e
