"""Tests for the node models."""

from __future__ import annotations

from datetime import UTC, datetime

from kubernetes_asyncio.client import (
    V1ContainerStatus,
    V1ObjectMeta,
    V1Pod,
    V1PodIP,
    V1PodStatus,
)

from nodeoperator.models.domain.node import (
    Condition,
    ConditionReason,
    NodeIntent,
    NodeStatus,
)
from nodeoperator.models.domain.reconcile import WorkloadStatus

from ..support.node import make_config, make_intent


def test_parse_intent() -> None:
    intent = NodeIntent.model_validate(
        {
            "apiVersion": "inv.nephio.org/v1alpha1",
            "kind": "Node",
            "metadata": {
                "name": "leaf1",
                "namespace": "topo",
                "uid": "1234",
                "finalizers": None,
                "deletionTimestamp": "2024-03-01T10:00:00Z",
                "managedFields": [{"manager": "kubectl"}],
            },
            "spec": {
                "provider": "srlinux.nokia.com",
                "parametersRef": {"name": "leaf", "kind": "NodeConfig"},
            },
            "status": None,
        }
    )
    assert intent.key.name == "leaf1"
    assert intent.is_deleted
    assert intent.metadata.finalizers == []
    assert intent.spec.parameters_ref
    assert intent.spec.parameters_ref.name == "leaf"
    assert intent.spec.parameters_ref.namespace is None
    assert intent.status.conditions == []

    owner = intent.owner_reference()
    assert owner.uid == "1234"
    assert owner.controller
    assert owner.block_owner_deletion


def test_set_condition() -> None:
    status = NodeStatus()
    assert status.set_condition(Condition.unknown("no ip provided"))
    assert not status.set_condition(Condition.unknown("no ip provided"))
    assert status.set_condition(Condition.failed("commit failed"))
    assert len(status.conditions) == 1
    condition = status.get_condition()
    assert condition
    assert condition.reason == ConditionReason.FAILED
    assert condition.status == "False"

    assert status.set_condition(Condition.ready())
    condition = status.get_condition()
    assert condition
    assert condition.status == "True"
    assert condition.message == ""


def test_status_to_dict() -> None:
    intent = make_intent()
    intent.status.conditions = [
        Condition(
            status="False",
            reason=ConditionReason.UNKNOWN,
            message="pod conditions empty",
            last_transition_time=datetime(2024, 3, 1, 10, 0, tzinfo=UTC),
        )
    ]
    status = intent.status_to_dict()
    assert status == {
        "conditions": [
            {
                "type": "Ready",
                "status": "False",
                "reason": "Unknown",
                "message": "pod conditions empty",
                "lastTransitionTime": "2024-03-01T10:00:00Z",
            }
        ]
    }

    # What was written is read back as the same condition.
    parsed = NodeStatus.model_validate(status)
    assert parsed.conditions == intent.status.conditions


def test_config_defaults() -> None:
    config = make_config()
    assert config.get_model("ixrd3l") == "ixrd3l"
    assert config.get_image("ghcr.io/nokia/srlinux") == "ghcr.io/nokia/srlinux"
    assert config.get_interfaces(["e1-1"]) == ["e1-1"]

    config = make_config(model="ixrd2", image="srl:1", interfaces=[])
    assert config.get_model("ixrd3l") == "ixrd2"
    assert config.get_image("ghcr.io/nokia/srlinux") == "srl:1"
    assert config.get_interfaces(["e1-1"]) == []


def test_get_resources() -> None:
    config = make_config(constraints={"cpu": "4", "gpu": "1"})
    resources = config.get_resources(
        {"cpu": "2", "memory": "4Gi"}, {"hugepages-1Gi": "8Gi"}
    )
    assert resources.requests == {"cpu": "4", "memory": "4Gi"}
    assert resources.limits == {"hugepages-1Gi": "8Gi"}

    resources = make_config().get_resources({}, {})
    assert resources.requests is None
    assert resources.limits is None

    resources = config.get_resources(
        {"cpu": "2", "memory": "4Gi"}, {}, request_all=True
    )
    assert resources.requests == {"cpu": "4", "memory": "4Gi", "gpu": "1"}
    assert resources.limits is None


def _pod(status: V1PodStatus | None) -> V1Pod:
    return V1Pod(metadata=V1ObjectMeta(name="node-a"), status=status)


def _container(*, ready: bool) -> V1ContainerStatus:
    return V1ContainerStatus(
        name="node-a", image="srl", image_id="", ready=ready, restart_count=0
    )


def test_workload_status() -> None:
    status = WorkloadStatus.from_pod(_pod(None))
    assert not status.ready
    assert status.message == "pod conditions empty"

    pod = _pod(V1PodStatus(container_statuses=[_container(ready=False)]))
    status = WorkloadStatus.from_pod(pod)
    assert not status.ready
    assert status.message == "pod not ready empty"

    pod = _pod(V1PodStatus(container_statuses=[_container(ready=True)]))
    status = WorkloadStatus.from_pod(pod)
    assert not status.ready
    assert status.message == "no ip provided"

    pod = _pod(
        V1PodStatus(
            container_statuses=[_container(ready=True)],
            pod_ips=[V1PodIP(ip="10.0.0.2"), V1PodIP(ip="fd00::2")],
        )
    )
    status = WorkloadStatus.from_pod(pod)
    assert status.ready
    assert status.addresses == ["10.0.0.2", "fd00::2"]
