"""Construction of node pods and their auxiliary objects.

Pods are immutable once created, so every pod carries a hash of its spec.
The reconciler compares that hash against the hash of a freshly built pod
and recreates the pod if they differ.
"""

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from kubernetes_asyncio.client import (
    V1Affinity,
    V1Container,
    V1EnvVar,
    V1LabelSelector,
    V1LabelSelectorRequirement,
    V1ObjectMeta,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimSpec,
    V1Pod,
    V1PodAffinityTerm,
    V1PodAntiAffinity,
    V1PodSpec,
    V1Probe,
    V1SecurityContext,
    V1Volume,
    V1VolumeMount,
    V1VolumeResourceRequirements,
    V1WeightedPodAffinityTerm,
)

from ...constants import (
    NETWORKS_ANNOTATION,
    REVISION_HASH_ANNOTATION,
    TOPOLOGY_LABEL,
    WIRING_ANNOTATION,
)
from ...exceptions import InvalidObjectError
from ...models.domain.kubernetes import PullPolicy
from ...models.domain.nad import (
    NetworkAttachment,
    NetworkAttachmentConfig,
    WirePlugin,
)
from ...models.domain.node import NodeConfig, NodeIntent

__all__ = [
    "FamilyDefaults",
    "PodExtras",
    "build_claims",
    "build_network_attachments",
    "build_pod",
    "claim_name",
    "compute_revision_hash",
]


@dataclass(frozen=True, slots=True)
class FamilyDefaults:
    """Constants shared by every node of one provider family.

    Built once per driver module and never modified.
    """

    provider: str
    """Provider identifier."""

    model: str
    """Device model used when the config doesn't name one."""

    image: str | None = None
    """Image used when the config doesn't name one."""

    command: tuple[str, ...] = ()
    """Container command."""

    args: tuple[str, ...] = ()
    """Container arguments."""

    env: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )
    """Container environment."""

    requests: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )
    """Resource requests, which constraints in the config may override."""

    limits: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )
    """Resource limits, which constraints in the config may override."""

    request_all_constraints: bool = False
    """Whether every constraint in the config becomes a resource request."""

    interfaces: tuple[str, ...] = ()
    """Interfaces to wire up when the config doesn't list any."""

    anti_affinity_key: str | None = None
    """Pod label spreading nodes of one topology across hosts, if any."""

    privileged: bool = False
    """Whether the container runs privileged as root."""

    termination_grace_period: int | None = None
    """Termination grace period in seconds, if not the Kubernetes default."""

    tty: bool = False
    """Whether the container gets a TTY and stdin."""

    @property
    def variants_config_map(self) -> str:
        """Name of the ``ConfigMap`` listing the supported models."""
        return f"{self.provider}-variants"


@dataclass
class PodExtras:
    """Family-specific parts of a pod that depend on the config."""

    volumes: list[V1Volume] = field(default_factory=list)
    """Volumes of the pod."""

    volume_mounts: list[V1VolumeMount] = field(default_factory=list)
    """Mounts of those volumes in the container."""

    readiness_probe: V1Probe | None = None
    """Readiness probe of the container."""

    startup_probe: V1Probe | None = None
    """Startup probe of the container."""

    liveness_probe: V1Probe | None = None
    """Liveness probe of the container."""


def claim_name(intent: NodeIntent, volume: str) -> str:
    """Name of the claim backing a persistent volume of a node."""
    return f"{intent.metadata.name}-{volume}"


def build_claims(
    intent: NodeIntent, config: NodeConfig
) -> list[V1PersistentVolumeClaim]:
    """Build the claims for the persistent volumes requested in the config.

    Parameters
    ----------
    intent
        Node being deployed.
    config
        Resolved config of the node.

    Returns
    -------
    list of kubernetes_asyncio.client.V1PersistentVolumeClaim
        One claim per requested volume.
    """
    return [
        V1PersistentVolumeClaim(
            api_version="v1",
            kind="PersistentVolumeClaim",
            metadata=V1ObjectMeta(
                name=claim_name(intent, pv.name),
                namespace=intent.metadata.namespace,
                owner_references=[intent.owner_reference()],
            ),
            spec=V1PersistentVolumeClaimSpec(
                access_modes=["ReadWriteOnce"],
                resources=V1VolumeResourceRequirements(
                    requests=pv.requests or None
                ),
            ),
        )
        for pv in config.spec.persistent_volumes
    ]


def build_network_attachments(
    intent: NodeIntent, interfaces: list[str]
) -> list[NetworkAttachment]:
    """Build one wire attachment per interface of a node.

    Parameters
    ----------
    intent
        Node being deployed.
    interfaces
        Interfaces to wire up, in order.

    Returns
    -------
    list of NetworkAttachment
        Attachments named ``{node}-{interface}``.
    """
    owner = intent.owner_reference()
    return [
        NetworkAttachment(
            name=f"{intent.metadata.name}-{interface}",
            namespace=intent.metadata.namespace,
            interface=interface,
            config=NetworkAttachmentConfig(
                plugins=[WirePlugin(interface_name=interface)]
            ),
            owner=owner,
        )
        for interface in interfaces
    ]


def build_pod(
    intent: NodeIntent,
    config: NodeConfig,
    defaults: FamilyDefaults,
    extras: PodExtras,
    *,
    attachments: list[NetworkAttachment],
    enable_network_attachments: bool,
) -> V1Pod:
    """Build the pod for a node.

    Parameters
    ----------
    intent
        Node being deployed.
    config
        Resolved config of the node.
    defaults
        Constants of the provider family.
    extras
        Family-specific volumes and probes.
    attachments
        Network attachments of the node.
    enable_network_attachments
        Whether to annotate the pod with its network attachments.

    Returns
    -------
    kubernetes_asyncio.client.V1Pod
        Pod, annotated with the hash of its spec.

    Raises
    ------
    InvalidObjectError
        Raised if neither the config nor the family provides an image.
    """
    name = intent.metadata.name
    namespace = intent.metadata.namespace
    image = config.get_image(defaults.image)
    if not image:
        msg = f"No image configured for {defaults.provider} node"
        raise InvalidObjectError(f"{msg} {namespace}/{name}")

    security_context = None
    if defaults.privileged:
        security_context = V1SecurityContext(privileged=True, run_as_user=0)
    container = V1Container(
        name=name,
        image=image,
        command=list(defaults.command) or None,
        args=list(defaults.args) or None,
        env=[V1EnvVar(name=k, value=v) for k, v in defaults.env.items()]
        or None,
        resources=config.get_resources(
            dict(defaults.requests),
            dict(defaults.limits),
            request_all=defaults.request_all_constraints,
        ),
        image_pull_policy=PullPolicy.IF_NOT_PRESENT.value,
        security_context=security_context,
        tty=defaults.tty or None,
        stdin=defaults.tty or None,
        volume_mounts=extras.volume_mounts or None,
        readiness_probe=extras.readiness_probe,
        startup_probe=extras.startup_probe,
        liveness_probe=extras.liveness_probe,
    )
    spec = V1PodSpec(
        containers=[container],
        termination_grace_period_seconds=defaults.termination_grace_period,
        affinity=_build_affinity(defaults.anti_affinity_key, namespace),
        volumes=extras.volumes or None,
    )

    annotations = {
        REVISION_HASH_ANNOTATION: compute_revision_hash(spec),
        WIRING_ANNOTATION: "true",
    }
    if enable_network_attachments:
        selections = [a.to_network_selection() for a in attachments]
        annotations[NETWORKS_ANNOTATION] = json.dumps(
            selections, sort_keys=True, separators=(",", ":")
        )
    return V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=V1ObjectMeta(
            name=name,
            namespace=namespace,
            annotations=annotations,
            labels={TOPOLOGY_LABEL: namespace},
            owner_references=[intent.owner_reference()],
        ),
        spec=spec,
    )


def compute_revision_hash(spec: V1PodSpec) -> str:
    """Hash a pod spec.

    Parameters
    ----------
    spec
        Pod spec.

    Returns
    -------
    str
        Hex SHA-256 digest of the spec serialized as JSON with sorted keys.
    """
    data = json.dumps(spec.to_dict(), sort_keys=True)
    return hashlib.sha256(data.encode()).hexdigest()


def _build_affinity(key: str | None, topology: str) -> V1Affinity | None:
    """Prefer not to place nodes of the same topology on one host."""
    if not key:
        return None
    selector = V1LabelSelector(
        match_expressions=[
            V1LabelSelectorRequirement(
                key=key, operator="In", values=[topology]
            )
        ]
    )
    term = V1PodAffinityTerm(
        label_selector=selector, topology_key="kubernetes.io/hostname"
    )
    return V1Affinity(
        pod_anti_affinity=V1PodAntiAffinity(
            preferred_during_scheduling_ignored_during_execution=[
                V1WeightedPodAffinityTerm(weight=100, pod_affinity_term=term)
            ]
        )
    )
