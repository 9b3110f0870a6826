import logging
import threading
from unittest.mock import MagicMock

import pytest

from controller import ControllerState
from errors import ConfigurationError, ControllerStateError, TranslationError
from models import ObjectKey
from multitenant_controller import (
    MultiTenantController,
    new_multitenant_controller,
)

from .utils import NODE_NAME, kind_undefined_exception, make_mtnc

KEY = ObjectKey(namespace="tenant-1", name="pod-a")


@pytest.fixture
def controller(sink, log, custom_api):
    return MultiTenantController(sink, log, NODE_NAME, custom_api)


def seed_cache(controller, *objects):
    controller.manager.cache.replace(
        {ObjectKey.from_object(obj): obj for obj in objects})


def test_constructor_validates_inputs(sink, log, custom_api):
    with pytest.raises(ConfigurationError):
        MultiTenantController(sink, None, NODE_NAME, custom_api)
    with pytest.raises(ConfigurationError, match="NODENAME"):
        MultiTenantController(sink, log, "", custom_api)

    partial_sink = MagicMock(spec=["create_or_update_network_container"])
    with pytest.raises(ConfigurationError, match="delete_network_container"):
        MultiTenantController(partial_sink, log, NODE_NAME, custom_api)


def test_watches_all_namespaces(controller):
    assert controller.manager.namespace == ""
    assert controller.manager.field_selector is None
    assert controller.manager.kind.plural == "multitenantnetworkcontainers"


def test_factory_requires_node_name(sink, log):
    with pytest.raises(ConfigurationError):
        new_multitenant_controller(sink,
                                   log,
                                   api_client=MagicMock(),
                                   environ={})

    controller = new_multitenant_controller(sink,
                                            log,
                                            api_client=MagicMock(),
                                            environ={"NODENAME": NODE_NAME})
    assert controller.node_name == NODE_NAME


def test_starts_without_init(controller, custom_api):
    custom_api.list_cluster_custom_object.return_value = {
        "items": [make_mtnc()],
        "metadata": {
            "resourceVersion": "10"
        }
    }
    with pytest.raises(ControllerStateError):
        controller.init()

    stop_event = threading.Event()
    stop_event.set()
    controller.start(stop_event)

    assert controller.state == ControllerState.STARTED
    controller.sink.create_or_update_network_container.assert_called_once()


def test_start_exits_when_kind_undefined(controller, custom_api):
    custom_api.list_cluster_custom_object.side_effect = \
        kind_undefined_exception()
    with pytest.raises(SystemExit):
        controller.start(threading.Event())


def test_reconcile_creates_succeeded_container(controller, sink):
    seed_cache(controller, make_mtnc())

    controller.reconciler.reconcile(KEY)

    request = sink.create_or_update_network_container.call_args.args[0]
    assert request.network_container_id == "mt-nc-1"
    assert request.network_container_type == "Kubernetes"
    assert request.ip_configuration.ip_subnet.ip_address == "192.168.0.4"
    assert request.ip_configuration.ip_subnet.prefix_length == 24
    assert request.orchestrator_context.pod_name == "pod-a"
    assert request.orchestrator_context.pod_namespace == "tenant-1"


def test_reconcile_skips_unready_and_foreign_containers(controller, sink):
    pending = make_mtnc(state="Pending")
    foreign = make_mtnc(name="pod-b", node="other-node")
    seed_cache(controller, pending, foreign)

    controller.reconciler.reconcile(KEY)
    controller.reconciler.reconcile(ObjectKey.from_object(foreign))

    sink.create_or_update_network_container.assert_not_called()
    sink.delete_network_container.assert_not_called()


def test_reconcile_is_idempotent_until_status_changes(controller, sink):
    seed_cache(controller, make_mtnc())
    controller.reconciler.reconcile(KEY)
    controller.reconciler.reconcile(KEY)
    assert sink.create_or_update_network_container.call_count == 1

    seed_cache(controller, make_mtnc(ip="192.168.0.9"))
    controller.reconciler.reconcile(KEY)
    assert sink.create_or_update_network_container.call_count == 2


def test_reconcile_deletes_removed_container(controller, sink):
    seed_cache(controller, make_mtnc())
    controller.reconciler.reconcile(KEY)

    seed_cache(controller)
    controller.reconciler.reconcile(KEY)
    controller.reconciler.reconcile(KEY)

    sink.delete_network_container.assert_called_once_with("mt-nc-1")


def test_reconcile_deletes_container_moved_off_node(controller, sink):
    seed_cache(controller, make_mtnc())
    controller.reconciler.reconcile(KEY)

    seed_cache(controller, make_mtnc(node="other-node"))
    controller.reconciler.reconcile(KEY)

    sink.delete_network_container.assert_called_once_with("mt-nc-1")


def test_reconcile_unknown_missing_key_is_noop(controller, sink):
    seed_cache(controller)
    controller.reconciler.reconcile(KEY)
    sink.delete_network_container.assert_not_called()


def test_reconcile_rejects_container_without_uuid(controller, sink):
    seed_cache(controller, make_mtnc(uuid=""))
    with pytest.raises(TranslationError):
        controller.reconciler.reconcile(KEY)
    sink.create_or_update_network_container.assert_not_called()


def test_failed_create_is_retried(controller, sink):
    seed_cache(controller, make_mtnc())
    sink.create_or_update_network_container.side_effect = [
        RuntimeError("cns busy"), None
    ]

    with pytest.raises(RuntimeError):
        controller.reconciler.reconcile(KEY)
    controller.reconciler.reconcile(KEY)
    assert sink.create_or_update_network_container.call_count == 2


def test_reconcile_rejects_malformed_container(controller, sink):
    obj = make_mtnc()
    obj["status"] = "Succeeded"
    seed_cache(controller, obj)

    with pytest.raises(TranslationError):
        controller.reconciler.reconcile(KEY)
    sink.create_or_update_network_container.assert_not_called()


def test_failed_delete_is_retried_on_next_relist(controller, sink,
                                                 custom_api):
    listings = [
        {"items": [make_mtnc()], "metadata": {"resourceVersion": "10"}},
        {"items": [], "metadata": {"resourceVersion": "11"}},
        {"items": [], "metadata": {"resourceVersion": "12"}},
        {"items": [], "metadata": {"resourceVersion": "13"}},
    ]
    custom_api.list_cluster_custom_object.side_effect = listings
    sink.delete_network_container.side_effect = [
        RuntimeError("cns busy"), None
    ]

    controller.manager._relist()
    sink.create_or_update_network_container.assert_called_once()

    controller.manager._relist()
    assert controller.reconciler.tracked_keys() == [KEY]

    controller.manager._relist()
    controller.manager._relist()

    assert sink.delete_network_container.call_count == 2
    sink.delete_network_container.assert_called_with("mt-nc-1")
    assert controller.reconciler.tracked_keys() == []


def test_reconcile_logs_rendered_messages(controller, caplog):
    seed_cache(controller, make_mtnc())
    with caplog.at_level(logging.INFO):
        controller.reconciler.reconcile(KEY)
        seed_cache(controller)
        controller.reconciler.reconcile(KEY)

    assert ("[MT] Creating or updating NC mt-nc-1 for pod tenant-1/pod-a"
            in caplog.text)
    assert "[MT] Deleting NC mt-nc-1 for pod tenant-1/pod-a" in caplog.text
