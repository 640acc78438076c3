"""Data types for interacting with Kubernetes."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Self, override

from kubernetes_asyncio.client import V1ObjectMeta

__all__ = [
    "KubernetesModel",
    "ObjectKey",
    "PullPolicy",
    "WatchEventType",
]


class KubernetesModel(Protocol):
    """Protocol for Kubernetes object models.

    kubernetes-asyncio_ doesn't currently expose type information, so this
    tells mypy that all the object models we deal with will have a metadata
    attribute.
    """

    metadata: V1ObjectMeta

    def to_dict(self, *, serialize: bool = False) -> dict[str, Any]: ...


@dataclass(frozen=True, slots=True)
class ObjectKey:
    """Namespace and name identifying a namespaced Kubernetes object.

    This is the unit of work passed between the watch loops, the work queue,
    and the reconciler.
    """

    namespace: str
    """Namespace of the object."""

    name: str
    """Name of the object."""

    @classmethod
    def from_metadata(cls, metadata: V1ObjectMeta | dict[str, Any]) -> Self:
        """Build a key from object metadata.

        Parameters
        ----------
        metadata
            Metadata of a typed Kubernetes model or of a raw custom object.

        Returns
        -------
        ObjectKey
            Key for that object.
        """
        if isinstance(metadata, dict):
            return cls(namespace=metadata["namespace"], name=metadata["name"])
        return cls(namespace=metadata.namespace, name=metadata.name)

    @override
    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class PullPolicy(Enum):
    """Pull policy for container images in Kubernetes."""

    ALWAYS = "Always"
    IF_NOT_PRESENT = "IfNotPresent"
    NEVER = "Never"


class WatchEventType(Enum):
    """Possible values of the ``type`` field of Kubernetes watch events."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
