"""Tests for the node reconciler."""

from __future__ import annotations

from datetime import timedelta

import pytest
from safir.testing.kubernetes import MockKubernetesApi
from safir.testing.slack import MockSlackWebhook

from nodeoperator.config import Config
from nodeoperator.constants import (
    NAD_API_GROUP,
    NAD_API_VERSION,
    NAD_PLURAL,
    NETWORKS_ANNOTATION,
    NODE_API_GROUP,
    NODE_API_VERSION,
    NODE_CONFIG_PLURAL,
    NODE_FINALIZER,
    REVISION_HASH_ANNOTATION,
)
from nodeoperator.factory import Factory
from nodeoperator.models.domain.kubernetes import ObjectKey
from nodeoperator.models.domain.reconcile import ReconcileResult
from nodeoperator.services.certificate import extract_certificate_bundle
from nodeoperator.services.driver.srlinux import build_bootstrap_script

from ..support.data import read_certificate_data
from ..support.device import MockDeviceSessionFactory
from ..support.kubernetes import (
    create_credentials,
    create_node,
    create_node_certificates,
    create_node_config,
    create_variants,
    mark_pod_ready,
    read_node,
    record_mutations,
)

NAMESPACE = "topo"
PROVIDER = "srlinux.nokia.com"
KEY = ObjectKey(NAMESPACE, "node-a")


async def _create_topology(
    mock_kubernetes: MockKubernetesApi,
    *,
    provider: str = PROVIDER,
    model: str = "ixrd3l",
) -> None:
    """Create a node with a default config and everything bootstrap needs."""
    await create_variants(mock_kubernetes, provider, NAMESPACE, ["ixrd3l"])
    spec = {"provider": provider, "model": model}
    await create_node_config(mock_kubernetes, "default", NAMESPACE, spec)
    await create_credentials(mock_kubernetes, provider, NAMESPACE)
    certificates = read_certificate_data()
    await create_node_certificates(
        mock_kubernetes, "node-a", NAMESPACE, certificates
    )
    await create_node(mock_kubernetes, "node-a", NAMESPACE, provider)


async def _get_condition(mock_kubernetes: MockKubernetesApi) -> dict:
    node = await read_node(mock_kubernetes, "node-a", NAMESPACE)
    conditions = node["status"]["conditions"]
    assert len(conditions) == 1
    return conditions[0]


@pytest.mark.asyncio
async def test_not_ready(
    factory: Factory, mock_kubernetes: MockKubernetesApi
) -> None:
    await _create_topology(mock_kubernetes)
    reconciler = factory.create_reconciler()

    result = await reconciler.reconcile(KEY)
    assert result == ReconcileResult(requeue_after=timedelta(seconds=5))
    node = await read_node(mock_kubernetes, "node-a", NAMESPACE)
    assert node["metadata"]["finalizers"] == [NODE_FINALIZER]
    pod = await mock_kubernetes.read_namespaced_pod("node-a", NAMESPACE)
    assert REVISION_HASH_ANNOTATION in pod.metadata.annotations
    assert NETWORKS_ANNOTATION not in pod.metadata.annotations
    assert pod.spec.volumes[0].config_map.items[0].key == "ixrd3l"
    condition = await _get_condition(mock_kubernetes)
    assert condition["status"] == "False"
    assert condition["reason"] == "Unknown"
    assert condition["message"] == "pod conditions empty"

    await mark_pod_ready(mock_kubernetes, "node-a", NAMESPACE, ready=False)
    result = await reconciler.reconcile(KEY)
    assert result == ReconcileResult(requeue_after=timedelta(seconds=5))
    condition = await _get_condition(mock_kubernetes)
    assert condition["message"] == "pod not ready empty"

    await mark_pod_ready(mock_kubernetes, "node-a", NAMESPACE)
    result = await reconciler.reconcile(KEY)
    assert result == ReconcileResult(requeue_after=timedelta(seconds=5))
    condition = await _get_condition(mock_kubernetes)
    assert condition["reason"] == "Unknown"
    assert condition["message"] == "no ip provided"


@pytest.mark.asyncio
async def test_bootstrap(
    factory: Factory,
    mock_device: MockDeviceSessionFactory,
    mock_kubernetes: MockKubernetesApi,
    mock_slack: MockSlackWebhook,
) -> None:
    await _create_topology(mock_kubernetes)
    reconciler = factory.create_reconciler()
    await reconciler.reconcile(KEY)
    await mark_pod_ready(
        mock_kubernetes, "node-a", NAMESPACE, addresses=["10.0.0.2"]
    )

    # A failed commit leaves the node failed and asks for a retry.
    mock_device.fail_on = "commit"
    mock_device.error = "Error: commit failed: validation error"
    result = await reconciler.reconcile(KEY)
    assert result == ReconcileResult(requeue=True)
    condition = await _get_condition(mock_kubernetes)
    assert condition["status"] == "False"
    assert condition["reason"] == "Failed"
    assert condition["message"] == "Error: commit failed: validation error"
    assert mock_device.sessions[0].closed
    assert len(mock_slack.messages) == 1

    # The same failure again is not reported a second time.
    await reconciler.reconcile(KEY)
    assert len(mock_slack.messages) == 1

    mock_device.fail_on = None
    result = await reconciler.reconcile(KEY)
    assert result == ReconcileResult()
    condition = await _get_condition(mock_kubernetes)
    assert condition["status"] == "True"
    assert condition["reason"] == "Ready"
    session = mock_device.sessions[-1]
    assert session.address == "10.0.0.2"
    assert session.credentials.username == "admin"
    certificates = extract_certificate_bundle(
        read_certificate_data(), "k8s-profile"
    )
    assert session.commands == build_bootstrap_script(certificates)


@pytest.mark.asyncio
async def test_unsupported_model(
    factory: Factory,
    mock_kubernetes: MockKubernetesApi,
    mock_slack: MockSlackWebhook,
) -> None:
    await _create_topology(mock_kubernetes, model="ixr-x")
    reconciler = factory.create_reconciler()

    result = await reconciler.reconcile(KEY)
    assert result == ReconcileResult()
    condition = await _get_condition(mock_kubernetes)
    assert condition["reason"] == "Failed"
    assert condition["message"] == (
        "cannot deploy pod, variant not provided in the configmap, got: ixr-x"
    )
    pods = await mock_kubernetes.list_namespaced_pod(NAMESPACE)
    assert pods.items == []
    assert len(mock_slack.messages) == 1


@pytest.mark.asyncio
async def test_unsupported_provider(
    factory: Factory, mock_kubernetes: MockKubernetesApi
) -> None:
    provider = "netos.example.com"
    await create_node(mock_kubernetes, "node-a", NAMESPACE, provider)
    reconciler = factory.create_reconciler()

    result = await reconciler.reconcile(KEY)
    assert result == ReconcileResult()
    condition = await _get_condition(mock_kubernetes)
    assert condition["reason"] == "Failed"
    assert condition["message"].startswith(
        'provider "netos.example.com" is not supported'
    )


@pytest.mark.asyncio
async def test_missing_credentials(
    factory: Factory, mock_kubernetes: MockKubernetesApi
) -> None:
    await create_variants(mock_kubernetes, PROVIDER, NAMESPACE, ["ixrd3l"])
    await create_node(mock_kubernetes, "node-a", NAMESPACE, PROVIDER)
    reconciler = factory.create_reconciler()
    await reconciler.reconcile(KEY)
    await mark_pod_ready(
        mock_kubernetes, "node-a", NAMESPACE, addresses=["10.0.0.2"]
    )

    result = await reconciler.reconcile(KEY)
    assert result == ReconcileResult(requeue=True)
    condition = await _get_condition(mock_kubernetes)
    assert condition["reason"] == "Failed"
    assert condition["message"] == (
        "Secret topo/srlinux.nokia.com does not exist"
    )

    # Missing certificates are retried the same way.
    await create_credentials(mock_kubernetes, PROVIDER, NAMESPACE)
    result = await reconciler.reconcile(KEY)
    assert result == ReconcileResult(requeue=True)
    condition = await _get_condition(mock_kubernetes)
    assert condition["reason"] == "Failed"
    assert condition["message"] == "Secret topo/node-a does not exist"


@pytest.mark.asyncio
async def test_idempotent(
    config: Config,
    factory: Factory,
    mock_device: MockDeviceSessionFactory,
    mock_kubernetes: MockKubernetesApi,
) -> None:
    config.enable_network_attachments = True
    await _create_topology(mock_kubernetes)
    reconciler = factory.create_reconciler()
    await reconciler.reconcile(KEY)
    await mark_pod_ready(
        mock_kubernetes, "node-a", NAMESPACE, addresses=["10.0.0.2"]
    )
    assert await reconciler.reconcile(KEY) == ReconcileResult()

    nads = await mock_kubernetes.list_namespaced_custom_object(
        NAD_API_GROUP, NAD_API_VERSION, NAMESPACE, NAD_PLURAL
    )
    names = sorted(n["metadata"]["name"] for n in nads["items"])
    assert names == ["node-a-e1-1", "node-a-e1-2"]
    pod = await mock_kubernetes.read_namespaced_pod("node-a", NAMESPACE)
    assert NETWORKS_ANNOTATION in pod.metadata.annotations

    with record_mutations(mock_kubernetes) as calls:
        assert await reconciler.reconcile(KEY) == ReconcileResult()
        assert await reconciler.reconcile(KEY) == ReconcileResult()
    assert calls == []
    assert len(mock_device.sessions) == 3


@pytest.mark.asyncio
async def test_config_change(
    factory: Factory, mock_kubernetes: MockKubernetesApi
) -> None:
    await _create_topology(mock_kubernetes)
    reconciler = factory.create_reconciler()
    await reconciler.reconcile(KEY)
    pod = await mock_kubernetes.read_namespaced_pod("node-a", NAMESPACE)
    old_hash = pod.metadata.annotations[REVISION_HASH_ANNOTATION]

    config = await mock_kubernetes.get_namespaced_custom_object(
        NODE_API_GROUP,
        NODE_API_VERSION,
        NAMESPACE,
        NODE_CONFIG_PLURAL,
        "default",
    )
    config["spec"]["image"] = "ghcr.io/nokia/srlinux:24.3.1"
    await mock_kubernetes.replace_namespaced_custom_object(
        NODE_API_GROUP,
        NODE_API_VERSION,
        NAMESPACE,
        NODE_CONFIG_PLURAL,
        "default",
        config,
    )

    await reconciler.reconcile(KEY)
    pod = await mock_kubernetes.read_namespaced_pod("node-a", NAMESPACE)
    assert pod.spec.containers[0].image == "ghcr.io/nokia/srlinux:24.3.1"
    assert pod.metadata.annotations[REVISION_HASH_ANNOTATION] != old_hash


@pytest.mark.asyncio
async def test_server(
    factory: Factory,
    mock_device: MockDeviceSessionFactory,
    mock_kubernetes: MockKubernetesApi,
) -> None:
    provider = "x.server.com"
    await create_variants(mock_kubernetes, provider, NAMESPACE, ["server1"])
    spec = {"provider": provider, "image": "docker.io/library/alpine:3"}
    await create_node_config(mock_kubernetes, "default", NAMESPACE, spec)
    await create_node(mock_kubernetes, "node-a", NAMESPACE, provider)
    reconciler = factory.create_reconciler()
    await reconciler.reconcile(KEY)
    await mark_pod_ready(
        mock_kubernetes, "node-a", NAMESPACE, addresses=["10.0.0.9"]
    )

    # Servers need no credentials and are never logged into.
    assert await reconciler.reconcile(KEY) == ReconcileResult()
    condition = await _get_condition(mock_kubernetes)
    assert condition["reason"] == "Ready"
    assert mock_device.sessions == []


@pytest.mark.asyncio
async def test_delete(
    factory: Factory, mock_kubernetes: MockKubernetesApi
) -> None:
    await create_node(
        mock_kubernetes,
        "node-a",
        NAMESPACE,
        PROVIDER,
        deleted=True,
        finalizers=[NODE_FINALIZER, "other.example.com/finalizer"],
    )
    reconciler = factory.create_reconciler()

    assert await reconciler.reconcile(KEY) == ReconcileResult()
    node = await read_node(mock_kubernetes, "node-a", NAMESPACE)
    assert node["metadata"]["finalizers"] == ["other.example.com/finalizer"]
    pods = await mock_kubernetes.list_namespaced_pod(NAMESPACE)
    assert pods.items == []

    with record_mutations(mock_kubernetes) as calls:
        assert await reconciler.reconcile(KEY) == ReconcileResult()
    assert calls == []


@pytest.mark.asyncio
async def test_missing_node(factory: Factory) -> None:
    reconciler = factory.create_reconciler()
    assert await reconciler.reconcile(KEY) == ReconcileResult()
