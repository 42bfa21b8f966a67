import pytest
from kubernetes.client import ApiException

from replica_control.errors import AccessDeniedError, ClusterConnectionError, NotConfiguredError

from conftest import T0, make_pod


NS = "team-a"


@pytest.fixture
def pods(cluster):
    cluster.core.add_pod(make_pod(NS, "web-1", {"app": "web", "tier": "fe"}, node="node-01"))
    cluster.core.add_pod(make_pod(NS, "web-2", {"app": "web"}, node="node-02"))
    cluster.core.add_pod(make_pod(NS, "api-1", {"app": "api"}, phase="Pending"))
    return cluster


def test_namespaces_are_sorted_without_system_ones(resources, cluster):
    cluster.core.namespaces = ["team-b", "kube-system", "openshift-monitoring", "team-a", "default"]

    assert resources.list_namespaces(1) == ["default", "team-a", "team-b"]


def test_forbidden_namespace_listing_falls_back_to_own_namespace(resources, cluster):
    cluster.core.namespaces = ["team-a"]
    cluster.core.errors["list_namespace"] = ApiException(status=403, reason="Forbidden")

    assert resources.list_namespaces(1) == ["team-a"]


def test_forbidden_fallback_namespace_missing(resources, cluster):
    cluster.core.errors["list_namespace"] = ApiException(status=403, reason="Forbidden")

    assert resources.list_namespaces(1) == []


def test_forbidden_fallback_when_namespace_cannot_be_read(resources, cluster):
    cluster.core.errors["list_namespace"] = ApiException(status=403, reason="Forbidden")
    cluster.core.errors[("read_namespace", "team-a")] = ApiException(status=403, reason="Forbidden")

    assert resources.list_namespaces(1) == ["team-a"]


def test_namespace_listing_other_failures_raise(resources, cluster):
    cluster.core.errors["list_namespace"] = ApiException(status=503, reason="Service Unavailable")

    with pytest.raises(ClusterConnectionError):
        resources.list_namespaces(1)


def test_simulated_namespaces(resources, factory):
    assert resources.list_namespaces(2) == ["test-project", "staging", "production", "development"]
    assert factory.created == []


def test_unknown_connection(resources):
    with pytest.raises(NotConfiguredError):
        resources.list_namespaces(42)
    with pytest.raises(NotConfiguredError):
        resources.list_pods(42, NS)


def test_list_and_get_pods(resources, pods):
    listed = resources.list_pods(1, NS)

    assert [p.name for p in listed] == ["web-1", "web-2", "api-1"]
    assert listed[0].node_name == "node-01"
    assert listed[0].created_at == T0
    assert listed[2].status == "Pending"
    assert listed[2].node_name is None
    assert listed[0].to_dict()["labels"] == {"app": "web", "tier": "fe"}

    assert resources.get_pod(1, NS, "web-2").node_name == "node-02"
    assert resources.get_pod(1, NS, "ghost") is None


def test_pods_by_label(resources, pods):
    assert [p.name for p in resources.list_pods_by_label(1, NS, "app=web")] == ["web-1", "web-2"]
    assert [p.name for p in resources.list_pods_by_label(1, NS, "app=web,tier=fe")] == ["web-1"]


def test_listing_pods_access_denied(resources, cluster):
    cluster.core.errors["list_namespaced_pod"] = ApiException(status=403, reason="Forbidden")

    with pytest.raises(AccessDeniedError) as info:
        resources.list_pods(1, NS)
    assert info.value.context == {"connection_id": 1, "namespace": NS}


def test_restart_pod(resources, pods):
    assert resources.restart_pod(1, NS, "web-1") is True
    assert resources.restart_pod(1, NS, "ghost") is False
    assert pods.core.deleted == [(NS, "web-1")]


def test_delete_pod(resources, pods):
    assert resources.delete_pod(1, NS, "api-1") is True
    assert resources.delete_pod(1, NS, "api-1") is False
    assert [p.name for p in resources.list_pods(1, NS)] == ["web-1", "web-2"]


def test_delete_pod_access_denied(resources, pods):
    pods.core.errors["delete_namespaced_pod"] = ApiException(status=403, reason="Forbidden")

    with pytest.raises(AccessDeniedError):
        resources.delete_pod(1, NS, "web-1")
    with pytest.raises(AccessDeniedError):
        resources.restart_pod(1, NS, "web-1")


def test_batch_pod_operations_isolate_failures(resources, pods):
    pods.core.errors[("delete_namespaced_pod", "web-2")] = ApiException(status=500, reason="boom")

    assert resources.delete_pods(1, NS, ["web-1", "web-2", "ghost", "web-1"]) == {
        "web-1": True,
        "web-2": False,
        "ghost": False,
    }
    assert resources.restart_pods(1, NS, ["api-1", "web-2"]) == {"api-1": True, "web-2": False}
    assert pods.core.deleted == [(NS, "web-1"), (NS, "api-1")]


def test_simulated_pods(resources, factory):
    staging = resources.list_pods(2, "staging")

    assert [p.name for p in staging] == ["staging-web-1", "staging-api-1", "staging-worker"]
    assert staging[2].status == "Pending"
    assert [p.name for p in resources.list_pods_by_label(2, "production", "role")] == ["prod-db-primary"]
    assert [p.name for p in resources.list_pods_by_label(2, "staging", "app=api")] == ["staging-api-1"]
    assert resources.get_pod(2, "staging", "staging-api-1").node_name == "node-01"
    assert resources.get_pod(2, "staging", "nope") is None
    assert resources.restart_pods(2, "staging", ["a", "b"]) == {"a": True, "b": True}
    assert resources.delete_pod(2, "staging", "a") is True
    assert factory.created == []
