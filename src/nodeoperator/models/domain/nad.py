"""Models for CNI network attachments."""

import json
from dataclasses import dataclass
from typing import Any, Literal

from kubernetes_asyncio.client import V1OwnerReference
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ...constants import CNI_VERSION, NAD_API_GROUP, NAD_API_VERSION

__all__ = [
    "NetworkAttachment",
    "NetworkAttachmentConfig",
    "PluginConfig",
    "TuningPlugin",
    "WirePlugin",
]


class _Plugin(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )

    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the plugin, dropping unset and false fields."""
        data = self.model_dump(by_alias=True)
        return {k: v for k, v in data.items() if v}


class WirePlugin(_Plugin):
    """Plugin that connects an interface to a point-to-point wire."""

    type: Literal["wire"] = "wire"
    interface_name: str | None = None
    mtu: int | None = None


class TuningPlugin(_Plugin):
    """Plugin that allows tuning of the attached interface."""

    type: Literal["tuning"] = "tuning"
    ips: bool = False
    mac: bool = False


type PluginConfig = WirePlugin | TuningPlugin
"""Any of the supported CNI plugins."""


@dataclass
class NetworkAttachmentConfig:
    """CNI plugin chain for a network attachment."""

    plugins: list[PluginConfig]
    """Plugins, in chain order."""

    def to_json(self) -> str:
        """Serialize to the compact JSON string stored in the attachment.

        Keys are sorted so that the same chain always produces the same
        string.
        """
        config: dict[str, Any] = {"cniVersion": CNI_VERSION}
        if self.plugins:
            config["plugins"] = [p.to_dict() for p in self.plugins]
        return json.dumps(config, sort_keys=True, separators=(",", ":"))


@dataclass
class NetworkAttachment:
    """A ``NetworkAttachmentDefinition`` for one node interface."""

    name: str
    """Name of the attachment, ``{node}-{interface}``."""

    namespace: str
    """Namespace of the attachment (the namespace of the node)."""

    interface: str
    """Physical interface of the node this attachment wires up."""

    config: NetworkAttachmentConfig
    """CNI plugin chain."""

    owner: V1OwnerReference
    """Owner reference to the node."""

    def to_object(self) -> dict[str, Any]:
        """Build the custom object to store in Kubernetes."""
        owner = {
            "apiVersion": self.owner.api_version,
            "kind": self.owner.kind,
            "name": self.owner.name,
            "uid": self.owner.uid,
            "controller": self.owner.controller,
            "blockOwnerDeletion": self.owner.block_owner_deletion,
        }
        return {
            "apiVersion": f"{NAD_API_GROUP}/{NAD_API_VERSION}",
            "kind": "NetworkAttachmentDefinition",
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "ownerReferences": [
                    {k: v for k, v in owner.items() if v is not None}
                ],
            },
            "spec": {"config": self.config.to_json()},
        }

    def to_network_selection(self) -> dict[str, str]:
        """Entry for this attachment in the pod networks annotation."""
        return {
            "name": self.name,
            "namespace": self.namespace,
            "interface": self.interface,
        }
