"""Models for the ``Node`` and ``NodeConfig`` custom resources."""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal, Self

from kubernetes_asyncio.client import V1OwnerReference, V1ResourceRequirements
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from safir.datetime import current_datetime

from ...constants import NODE_API_GROUP, NODE_API_VERSION, NODE_KIND
from .kubernetes import ObjectKey

__all__ = [
    "Condition",
    "ConditionReason",
    "CustomObjectModel",
    "NodeConfig",
    "NodeConfigSpec",
    "NodeIntent",
    "NodeSpec",
    "NodeStatus",
    "ObjectMetadata",
    "ObjectReference",
    "PersistentVolumeRequest",
]


class CustomObjectModel(BaseModel):
    """Base class for models parsed from custom objects.

    Custom objects come from the Kubernetes API as camel-case dicts that may
    contain fields this operator doesn't care about, so unknown fields are
    ignored rather than rejected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, extra="ignore", populate_by_name=True
    )


class ConditionReason(StrEnum):
    """Reason recorded in the ``Ready`` condition of a node."""

    READY = "Ready"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


class Condition(CustomObjectModel):
    """Status condition of a node.

    Only one condition, of type ``Ready``, is tracked. Each reconcile pass
    replaces it.
    """

    type: Annotated[str, Field(title="Type of condition")] = "Ready"

    status: Annotated[
        Literal["True", "False", "Unknown"],
        Field(title="Status of the condition"),
    ]

    reason: Annotated[
        ConditionReason, Field(title="Machine-readable reason for status")
    ]

    message: Annotated[
        str,
        Field(
            title="Human-readable message",
            description="Cause of the failure, or why the node is not ready",
        ),
    ] = ""

    last_transition_time: Annotated[
        datetime, Field(title="When the condition was last set")
    ]

    @classmethod
    def ready(cls) -> Self:
        """Condition for a node that is fully configured."""
        return cls(
            status="True",
            reason=ConditionReason.READY,
            last_transition_time=current_datetime(),
        )

    @classmethod
    def unknown(cls, message: str = "") -> Self:
        """Condition for a node whose workload is not ready yet."""
        return cls(
            status="False",
            reason=ConditionReason.UNKNOWN,
            message=message,
            last_transition_time=current_datetime(),
        )

    @classmethod
    def failed(cls, message: str) -> Self:
        """Condition for a node whose reconcile failed."""
        return cls(
            status="False",
            reason=ConditionReason.FAILED,
            message=message,
            last_transition_time=current_datetime(),
        )

    def is_equivalent(self, other: Self) -> bool:
        """Whether two conditions match apart from their transition time."""
        return (
            self.type == other.type
            and self.status == other.status
            and self.reason == other.reason
            and self.message == other.message
        )


class ObjectMetadata(CustomObjectModel):
    """Subset of Kubernetes object metadata used by the operator."""

    name: str
    namespace: str
    uid: str | None = None
    resource_version: str | None = None
    deletion_timestamp: datetime | None = None
    finalizers: list[str] = []
    labels: dict[str, str] = {}
    annotations: dict[str, str] = {}

    @field_validator("finalizers", mode="before")
    @classmethod
    def _null_finalizers(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def _null_mapping(cls, v: Any) -> Any:
        return {} if v is None else v


class ObjectReference(CustomObjectModel):
    """Reference from a node to its ``NodeConfig``."""

    name: Annotated[str, Field(title="Name of the referenced object")]

    namespace: Annotated[
        str | None,
        Field(
            title="Namespace of the referenced object",
            description="If unset, the operator's config namespace is used",
        ),
    ] = None

    api_version: Annotated[str | None, Field(title="API version")] = None

    kind: Annotated[str | None, Field(title="Kind")] = None


class NodeSpec(CustomObjectModel):
    """Spec of a ``Node`` object."""

    provider: Annotated[
        str,
        Field(
            title="Provider",
            description="Identifies the driver that deploys this node",
            examples=["srlinux.nokia.com"],
        ),
    ]

    parameters_ref: Annotated[
        ObjectReference | None,
        Field(
            title="Explicit NodeConfig reference",
            description=(
                "If not set, the NodeConfig is found by name or the default"
                " NodeConfig for the provider is used"
            ),
        ),
    ] = None


class NodeStatus(CustomObjectModel):
    """Status of a ``Node`` object."""

    conditions: list[Condition] = []

    @field_validator("conditions", mode="before")
    @classmethod
    def _null_conditions(cls, v: Any) -> Any:
        return [] if v is None else v

    def get_condition(self, condition_type: str = "Ready") -> Condition | None:
        """Return the condition of the given type, if present."""
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def set_condition(self, condition: Condition) -> bool:
        """Replace any condition of the same type with a new one.

        If the existing condition only differs in its transition time, it is
        kept as is.

        Parameters
        ----------
        condition
            New condition.

        Returns
        -------
        bool
            Whether the status changed.
        """
        current = self.get_condition(condition.type)
        if current and current.is_equivalent(condition):
            return False
        self.conditions = [
            c for c in self.conditions if c.type != condition.type
        ]
        self.conditions.append(condition)
        return True


class NodeIntent(CustomObjectModel):
    """Desired state of one network node (a ``Node`` object)."""

    api_version: str = f"{NODE_API_GROUP}/{NODE_API_VERSION}"
    kind: str = NODE_KIND
    metadata: ObjectMetadata
    spec: NodeSpec
    status: NodeStatus = Field(default_factory=NodeStatus)

    @field_validator("status", mode="before")
    @classmethod
    def _null_status(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def key(self) -> ObjectKey:
        """Namespace and name of the node."""
        return ObjectKey(self.metadata.namespace, self.metadata.name)

    @property
    def is_deleted(self) -> bool:
        """Whether the node has been marked for deletion."""
        return self.metadata.deletion_timestamp is not None

    def owner_reference(self) -> V1OwnerReference:
        """Build a controller owner reference pointing at this node.

        Objects carrying this reference are garbage-collected by Kubernetes
        when the node is deleted.
        """
        return V1OwnerReference(
            api_version=self.api_version,
            kind=self.kind,
            name=self.metadata.name,
            uid=self.metadata.uid or "",
            block_owner_deletion=True,
            controller=True,
        )

    def status_to_dict(self) -> dict[str, Any]:
        """Serialize the status for writing back to Kubernetes."""
        return self.status.model_dump(mode="json", by_alias=True)


class PersistentVolumeRequest(CustomObjectModel):
    """A persistent volume requested for a node."""

    name: Annotated[str, Field(title="Name of the volume")]

    mount_path: Annotated[str, Field(title="Mount path in the container")]

    requests: Annotated[
        dict[str, str],
        Field(
            title="Resource requests",
            description="Passed to the claim, such as ``storage: 10Gi``",
        ),
    ] = {}


class NodeConfigSpec(CustomObjectModel):
    """Spec of a ``NodeConfig`` object."""

    provider: Annotated[
        str | None, Field(title="Provider this config applies to")
    ] = None

    model: Annotated[
        str | None,
        Field(
            title="Device model",
            description="Must be a key in the provider's variant catalog",
        ),
    ] = None

    image: Annotated[str | None, Field(title="Container image")] = None

    constraints: Annotated[
        dict[str, str],
        Field(
            title="Resource constraints",
            description=(
                "Overrides of the provider's default requests and limits."
                " Only resources the provider already sets are overridden."
            ),
            examples=[{"cpu": "1", "memory": "2Gi"}],
        ),
    ] = {}

    license_key: Annotated[
        str | None,
        Field(title="Key of the device license in the license secret"),
    ] = None

    persistent_volumes: Annotated[
        list[PersistentVolumeRequest], Field(title="Persistent volumes")
    ] = []

    interfaces: Annotated[
        list[str] | None,
        Field(
            title="Physical interfaces",
            description=(
                "Interfaces to create network attachments for. If not set,"
                " the provider's default interfaces are used."
            ),
        ),
    ] = None


class NodeConfig(CustomObjectModel):
    """Provider-specific parameters for nodes (a ``NodeConfig`` object)."""

    metadata: ObjectMetadata
    spec: NodeConfigSpec = Field(default_factory=NodeConfigSpec)

    @classmethod
    def empty(cls, namespace: str) -> Self:
        """Config used when nothing matches, so every default applies."""
        return cls(metadata=ObjectMetadata(name="", namespace=namespace))

    def get_image(self, default: str | None) -> str | None:
        """Image to run, or the provider default."""
        return self.spec.image or default

    def get_interfaces(self, default: list[str]) -> list[str]:
        """Interfaces needing network attachments."""
        if self.spec.interfaces is None:
            return list(default)
        return list(self.spec.interfaces)

    def get_model(self, default: str) -> str:
        """Device model, or the provider default."""
        return self.spec.model or default

    def get_resources(
        self,
        requests: dict[str, str],
        limits: dict[str, str],
        *,
        request_all: bool = False,
    ) -> V1ResourceRequirements:
        """Merge resource constraints into the provider defaults.

        A constraint only replaces a default that the provider already sets
        and constraints for other resources are ignored, unless
        ``request_all`` is set, in which case every constraint becomes a
        request.

        Parameters
        ----------
        requests
            Default resource requests of the provider.
        limits
            Default resource limits of the provider.
        request_all
            Whether to request every constraint, not just those overriding
            a default.

        Returns
        -------
        kubernetes_asyncio.client.V1ResourceRequirements
            Merged requirements.
        """
        constraints = self.spec.constraints
        merged_requests = {
            k: constraints.get(k, v) for k, v in requests.items()
        }
        merged_limits = {k: constraints.get(k, v) for k, v in limits.items()}
        if request_all:
            merged_requests.update(constraints)
        return V1ResourceRequirements(
            requests=merged_requests or None, limits=merged_limits or None
        )
