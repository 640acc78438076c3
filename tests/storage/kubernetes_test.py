"""Tests for the Kubernetes storage layer."""

from __future__ import annotations

from datetime import timedelta

import pytest
import structlog
from kubernetes_asyncio.client import (
    ApiClient,
    V1Container,
    V1ObjectMeta,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimSpec,
    V1Pod,
    V1PodSpec,
)
from safir.testing.kubernetes import MockKubernetesApi

from nodeoperator.storage.kubernetes.creator import (
    PersistentVolumeClaimStorage,
)
from nodeoperator.storage.kubernetes.pod import PodStorage
from nodeoperator.timeout import Timeout


def _pod(image: str) -> V1Pod:
    return V1Pod(
        metadata=V1ObjectMeta(name="node-a", namespace="topo"),
        spec=V1PodSpec(containers=[V1Container(name="node-a", image=image)]),
    )


@pytest.mark.asyncio
async def test_recreate(mock_kubernetes: MockKubernetesApi) -> None:
    timeout = Timeout("Test", timedelta(seconds=5))
    async with ApiClient() as api_client:
        storage = PodStorage(api_client, structlog.get_logger())
        await storage.create("topo", _pod("srl:1"), timeout)
        await storage.recreate(_pod("srl:2"), timeout)

        pod = await storage.read("node-a", "topo", timeout)
        assert pod
        assert pod.spec.containers[0].image == "srl:2"

        # Deleting an object that is already gone is not an error.
        await storage.delete("node-a", "topo", timeout, wait=True)
        assert await storage.read("node-a", "topo", timeout) is None
        await storage.delete("node-a", "topo", timeout, wait=True)


@pytest.mark.asyncio
async def test_ensure_claim(mock_kubernetes: MockKubernetesApi) -> None:
    timeout = Timeout("Test", timedelta(seconds=5))
    claim = V1PersistentVolumeClaim(
        metadata=V1ObjectMeta(name="node-a-cf3", namespace="topo"),
        spec=V1PersistentVolumeClaimSpec(access_modes=["ReadWriteOnce"]),
    )
    async with ApiClient() as api_client:
        storage = PersistentVolumeClaimStorage(
            api_client, structlog.get_logger()
        )
        assert await storage.ensure(claim, timeout)
        assert not await storage.ensure(claim, timeout)

    stored = await mock_kubernetes.read_namespaced_persistent_volume_claim(
        "node-a-cf3", "topo"
    )
    assert stored.spec.access_modes == ["ReadWriteOnce"]
