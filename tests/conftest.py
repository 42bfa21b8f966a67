from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client import ApiException

from replica_control.cache import ClusterClientCache
from replica_control.config import ReplicaControlConfig
from replica_control.connections import ConnectionRecord, InMemoryConnectionDirectory
from replica_control.kube.clients import ClusterHandle
from replica_control.orchestrator import DeploymentOrchestrator
from replica_control.probe import StartupProbe
from replica_control.resources import ClusterResources
from replica_control.state.baselines import BaselineStore
from replica_control.state.db import dispose_engine
from replica_control.state.startup_times import StartupTimeStore


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_deployment(
    namespace: str,
    name: str,
    replicas: Optional[int],
    *,
    match_labels: Optional[Dict[str, str]] = None,
    available: Optional[int] = None,
    ready: Optional[int] = None,
    condition: Optional[str] = "Available",
) -> client.V1Deployment:
    if match_labels is None:
        match_labels = {"app": name}
    conditions = [client.V1DeploymentCondition(type=condition, status="True")] if condition else None
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(
            name=name, namespace=namespace, labels={"app": name}, creation_timestamp=T0
        ),
        spec=client.V1DeploymentSpec(
            replicas=replicas,
            selector=client.V1LabelSelector(match_labels=match_labels or None),
            template=client.V1PodTemplateSpec(),
        ),
        status=client.V1DeploymentStatus(
            available_replicas=available, ready_replicas=ready, conditions=conditions
        ),
    )


def make_pod(
    namespace: str,
    name: str,
    labels: Dict[str, str],
    *,
    phase: str = "Running",
    ready: bool = True,
    initialized_at: Optional[datetime] = None,
    ready_to_start_at: Optional[datetime] = None,
    node: Optional[str] = None,
) -> client.V1Pod:
    conditions = [
        client.V1PodCondition(type="Ready", status="True" if ready else "False", last_transition_time=T0)
    ]
    if initialized_at is not None:
        conditions.append(client.V1PodCondition(type="Initialized", status="True", last_transition_time=initialized_at))
    if ready_to_start_at is not None:
        conditions.append(
            client.V1PodCondition(
                type="PodReadyToStartContainers", status="True", last_transition_time=ready_to_start_at
            )
        )
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=dict(labels), creation_timestamp=T0),
        spec=client.V1PodSpec(containers=[client.V1Container(name="main")], node_name=node) if node else None,
        status=client.V1PodStatus(
            phase=phase,
            container_statuses=[
                client.V1ContainerStatus(
                    name="main", image="example/app:1", image_id="sha256:1", ready=ready, restart_count=0
                )
            ],
            conditions=conditions,
        ),
    )


def _matches(labels: Optional[Dict[str, str]], selector: str) -> bool:
    labels = labels or {}
    for part in filter(None, (selector or "").split(",")):
        key, _, value = part.partition("=")
        if labels.get(key) != value:
            return False
    return True


class FakeAppsApi:
    """In-memory stand-in for AppsV1Api."""

    def __init__(self) -> None:
        self.deployments: Dict[Tuple[str, str], client.V1Deployment] = {}
        self.errors: Dict[object, Exception] = {}
        self.restarts: List[Tuple[str, str]] = []
        self.scale_calls: List[Tuple[str, str, int]] = []

    def _maybe_fail(self, method: str, name: Optional[str] = None) -> None:
        exc = self.errors.get((method, name)) or self.errors.get(method)
        if exc is not None:
            raise exc

    def _get(self, name: str, namespace: str) -> client.V1Deployment:
        d = self.deployments.get((namespace, name))
        if d is None:
            raise ApiException(status=404, reason="Not Found")
        return d

    def list_namespaced_deployment(self, namespace, **kwargs):
        self._maybe_fail("list_namespaced_deployment")
        items = [d for (ns, _), d in sorted(self.deployments.items()) if ns == namespace]
        return client.V1DeploymentList(items=items)

    def read_namespaced_deployment(self, name, namespace, **kwargs):
        self._maybe_fail("read_namespaced_deployment", name)
        return self._get(name, namespace)

    def patch_namespaced_deployment_scale(self, name, namespace, body, **kwargs):
        self._maybe_fail("patch_namespaced_deployment_scale", name)
        d = self._get(name, namespace)
        d.spec.replicas = body["spec"]["replicas"]
        self.scale_calls.append((namespace, name, d.spec.replicas))
        return d

    def patch_namespaced_deployment(self, name, namespace, body, **kwargs):
        self._maybe_fail("patch_namespaced_deployment", name)
        self._get(name, namespace)
        self.restarts.append((namespace, name))
        return body


class FakeCoreApi:
    """In-memory stand-in for CoreV1Api.

    ``replacements[namespace]`` holds pods that appear once a pod of that
    namespace is deleted, the way a ReplicaSet recreates them.
    """

    def __init__(self) -> None:
        self.namespaces: List[str] = []
        self.pods: Dict[str, List[client.V1Pod]] = {}
        self.replacements: Dict[str, List[client.V1Pod]] = {}
        self.errors: Dict[object, Exception] = {}
        self.deleted: List[Tuple[str, str]] = []
        self.deleted_selectors: List[Tuple[str, str]] = []

    def add_pod(self, pod: client.V1Pod) -> None:
        self.pods.setdefault(pod.metadata.namespace, []).append(pod)

    def _maybe_fail(self, method: str, name: Optional[str] = None) -> None:
        exc = self.errors.get((method, name)) or self.errors.get(method)
        if exc is not None:
            raise exc

    def list_namespace(self, **kwargs):
        self._maybe_fail("list_namespace")
        items = [client.V1Namespace(metadata=client.V1ObjectMeta(name=n)) for n in self.namespaces]
        return client.V1NamespaceList(items=items)

    def read_namespace(self, name, **kwargs):
        self._maybe_fail("read_namespace", name)
        if name not in self.namespaces:
            raise ApiException(status=404, reason="Not Found")
        return client.V1Namespace(metadata=client.V1ObjectMeta(name=name))

    def list_namespaced_pod(self, namespace, label_selector="", **kwargs):
        self._maybe_fail("list_namespaced_pod")
        items = [p for p in self.pods.get(namespace, []) if _matches(p.metadata.labels, label_selector)]
        return client.V1PodList(items=items)

    def read_namespaced_pod(self, name, namespace, **kwargs):
        self._maybe_fail("read_namespaced_pod", name)
        for p in self.pods.get(namespace, []):
            if p.metadata.name == name:
                return p
        raise ApiException(status=404, reason="Not Found")

    def delete_namespaced_pod(self, name, namespace, **kwargs):
        self._maybe_fail("delete_namespaced_pod", name)
        pods = self.pods.get(namespace, [])
        for p in pods:
            if p.metadata.name == name:
                pods.remove(p)
                self.deleted.append((namespace, name))
                queued = self.replacements.get(namespace) or []
                if queued:
                    pods.append(queued.pop(0))
                return p
        raise ApiException(status=404, reason="Not Found")

    def delete_collection_namespaced_pod(self, namespace, label_selector="", **kwargs):
        self._maybe_fail("delete_collection_namespaced_pod")
        self.deleted_selectors.append((namespace, label_selector))
        pods = self.pods.get(namespace, [])
        self.pods[namespace] = [p for p in pods if not _matches(p.metadata.labels, label_selector)]


class FakeVersionApi:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error

    def get_code(self, **kwargs):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(major="1", minor="28", git_version="v1.28.3", platform="linux/amd64")


class FakeCluster:
    def __init__(self) -> None:
        self.apps = FakeAppsApi()
        self.core = FakeCoreApi()
        self.version = FakeVersionApi()

    def add_deployment(self, namespace: str, name: str, replicas: Optional[int], **kwargs) -> client.V1Deployment:
        d = make_deployment(namespace, name, replicas, **kwargs)
        self.apps.deployments[(namespace, name)] = d
        return d

    def replicas(self, namespace: str, name: str) -> Optional[int]:
        return self.apps.deployments[(namespace, name)].spec.replicas


class FakeHandleFactory:
    """Builds ClusterHandles over FakeClusters, keyed by connection id."""

    def __init__(self, clusters: Dict[int, FakeCluster]) -> None:
        self.clusters = clusters
        self.created: List[ClusterHandle] = []

    def __call__(self, connection: ConnectionRecord) -> ClusterHandle:
        cluster = self.clusters.get(connection.id)
        if cluster is None:
            raise RuntimeError(f"no cluster for connection {connection.id}")
        handle = ClusterHandle(
            connection_id=connection.id,
            api_client=MagicMock(name=f"api_client_{connection.id}"),
            core=cluster.core,
            apps=cluster.apps,
            version=cluster.version,
            request_timeout=5,
        )
        self.created.append(handle)
        return handle


@pytest.fixture
def db_url(tmp_path):
    url = f"sqlite:///{(tmp_path / 'state.db').as_posix()}"
    yield url
    dispose_engine(url)


@pytest.fixture
def config(db_url):
    return ReplicaControlConfig(
        database_url=db_url,
        verify_ssl=False,
        ca_file=None,
        request_timeout=5,
        probe_timeout_seconds=0,
        probe_interval_seconds=0.0,
        simulated_startup_seconds=5,
        log_level="DEBUG",
    )


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def directory():
    return InMemoryConnectionDirectory(
        [
            ConnectionRecord(
                id=1,
                name="prod-cluster",
                endpoint="https://api.prod.example.com:6443",
                credential="sha256~prod-token",
                namespace="team-a",
                group_id=10,
            ),
            ConnectionRecord(
                id=2,
                name="sim",
                endpoint="",
                credential="",
                namespace="staging",
                group_id=10,
                simulated=True,
            ),
        ]
    )


@pytest.fixture
def factory(cluster):
    return FakeHandleFactory({1: cluster})


@pytest.fixture
def cache(directory, config, factory):
    c = ClusterClientCache(directory, config=config, handle_factory=factory)
    yield c
    c.close()


@pytest.fixture
def baselines(db_url):
    return BaselineStore(db_url)


@pytest.fixture
def startup_times(db_url):
    return StartupTimeStore(db_url)


@pytest.fixture
def orchestrator(cache, baselines):
    return DeploymentOrchestrator(cache, baselines)


@pytest.fixture
def probe(directory, cache, startup_times, config):
    return StartupProbe(directory, cache, startup_times, config=config)


@pytest.fixture
def resources(directory, cache):
    return ClusterResources(directory, cache)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)
