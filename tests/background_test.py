"""Tests for the background reconcile loop."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from safir.testing.kubernetes import MockKubernetesApi

from nodeoperator.config import Config
from nodeoperator.factory import Factory

from .support.kubernetes import (
    create_node,
    create_node_config,
    create_variants,
    mark_pod_ready,
    read_node,
)

NAMESPACE = "topo"
PROVIDER = "x.server.com"


async def _wait_for_condition(
    mock_kubernetes: MockKubernetesApi, name: str, reason: str
) -> dict[str, Any]:
    for _ in range(100):
        node = await read_node(mock_kubernetes, name, NAMESPACE)
        for condition in node.get("status", {}).get("conditions", []):
            if condition["reason"] == reason:
                return condition
        await asyncio.sleep(0.1)
    raise AssertionError(f"Node {name} never reached {reason}")


@pytest.mark.asyncio
async def test_reconcile_existing(
    config: Config, factory: Factory, mock_kubernetes: MockKubernetesApi
) -> None:
    config.namespace = NAMESPACE
    await create_variants(mock_kubernetes, PROVIDER, NAMESPACE, ["server1"])
    spec = {"provider": PROVIDER, "image": "docker.io/library/alpine:3"}
    await create_node_config(mock_kubernetes, "default", NAMESPACE, spec)
    await create_node(mock_kubernetes, "server-1", NAMESPACE, PROVIDER)
    await create_node(mock_kubernetes, "server-2", NAMESPACE, PROVIDER)

    await factory.start_background_services()
    for name in ("server-1", "server-2"):
        condition = await _wait_for_condition(
            mock_kubernetes, name, "Unknown"
        )
        assert condition["message"] == "pod conditions empty"

    # Nodes that aren't ready are checked again without any new event.
    await mark_pod_ready(
        mock_kubernetes, "server-1", NAMESPACE, addresses=["10.0.0.5"]
    )
    condition = await _wait_for_condition(mock_kubernetes, "server-1", "Ready")
    assert condition["status"] == "True"

    await factory.stop_background_services()
    await factory.stop_background_services()
