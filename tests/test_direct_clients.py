from unittest.mock import MagicMock, patch

import pytest
import urllib3
from kubernetes import client, config

from direct_clients import DirectCRDGetter, DirectPodLister, load_kube_client
from errors import (
    ConfigurationError,
    KindUndefinedError,
    NotFoundError,
    TransientError,
)
from request_controller import NNC_RESOURCE

from .utils import (
    NODE_NAME,
    api_exception,
    kind_undefined_exception,
    make_nnc,
    make_pod,
    not_found_status,
)


def test_list_pods_all_namespaces_uses_node_field_selector(core_api):
    pods = client.V1PodList(items=[make_pod("a", "10.244.1.2")])
    core_api.list_pod_for_all_namespaces.return_value = pods

    assert DirectPodLister(core_api).list_pods("", NODE_NAME) is pods
    core_api.list_pod_for_all_namespaces.assert_called_once_with(
        field_selector=f"spec.nodeName={NODE_NAME}")
    core_api.list_namespaced_pod.assert_not_called()


def test_list_pods_single_namespace(core_api):
    DirectPodLister(core_api).list_pods("kube-system", NODE_NAME)
    core_api.list_namespaced_pod.assert_called_once_with(
        namespace="kube-system", field_selector=f"spec.nodeName={NODE_NAME}")


def test_list_pods_classifies_errors(core_api):
    core_api.list_pod_for_all_namespaces.side_effect = api_exception(
        500, "etcd timeout")
    with pytest.raises(TransientError) as excinfo:
        DirectPodLister(core_api).list_pods("", NODE_NAME)
    assert isinstance(excinfo.value.__cause__,
                      client.exceptions.ApiException)


def test_list_pods_transport_error(core_api):
    core_api.list_pod_for_all_namespaces.side_effect = \
        urllib3.exceptions.MaxRetryError(None, "/api/v1/pods")
    with pytest.raises(TransientError):
        DirectPodLister(core_api).list_pods("", NODE_NAME)


def test_get_custom_resource(custom_api):
    nnc = make_nnc()
    custom_api.get_namespaced_custom_object.return_value = nnc

    result = DirectCRDGetter(custom_api).get(NODE_NAME, "kube-system",
                                             NNC_RESOURCE)

    assert result is nnc
    custom_api.get_namespaced_custom_object.assert_called_once_with(
        group="acn.azure.com",
        version="v1alpha",
        namespace="kube-system",
        plural="nodenetworkconfigs",
        name=NODE_NAME)


def test_get_distinguishes_not_found_from_kind_undefined(custom_api):
    getter = DirectCRDGetter(custom_api)

    custom_api.get_namespaced_custom_object.side_effect = api_exception(
        404, not_found_status())
    with pytest.raises(NotFoundError) as excinfo:
        getter.get(NODE_NAME, "kube-system", NNC_RESOURCE)
    assert not isinstance(excinfo.value, KindUndefinedError)

    custom_api.get_namespaced_custom_object.side_effect = \
        kind_undefined_exception()
    with pytest.raises(KindUndefinedError):
        getter.get(NODE_NAME, "kube-system", NNC_RESOURCE)


def test_load_kube_client_prefers_kubeconfig():
    api_client = MagicMock()
    with patch("direct_clients.config.new_client_from_config",
               return_value=api_client) as new_client:
        assert load_kube_client("/tmp/kubeconfig") is api_client
    new_client.assert_called_once_with(config_file="/tmp/kubeconfig")


def test_load_kube_client_explicit_kubeconfig_failure():
    with patch("direct_clients.config.new_client_from_config",
               side_effect=config.ConfigException("bad file")):
        with pytest.raises(ConfigurationError):
            load_kube_client("/tmp/kubeconfig")


def test_load_kube_client_falls_back_to_in_cluster():
    with patch("direct_clients.config.new_client_from_config",
               side_effect=config.ConfigException("no config")), \
            patch("direct_clients.config.load_incluster_config") as incluster:
        api_client = load_kube_client()
    incluster.assert_called_once()
    assert isinstance(api_client, client.ApiClient)


def test_load_kube_client_without_any_config():
    with patch("direct_clients.config.new_client_from_config",
               side_effect=config.ConfigException("no config")), \
            patch("direct_clients.config.load_incluster_config",
                  side_effect=config.ConfigException("not in cluster")):
        with pytest.raises(ConfigurationError):
            load_kube_client()
