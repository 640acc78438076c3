"""Driver for generic server nodes.

Servers are plain containers that request whatever resources their config
constrains. They get no network attachments and no volumes, and there is
nothing to configure once they are running.
"""

from kubernetes_asyncio.client import V1PersistentVolumeClaim, V1Pod

from ...models.domain.bootstrap import CertificateBundle, DeviceCredentials
from ...models.domain.nad import NetworkAttachment
from ...models.domain.node import NodeConfig, NodeIntent
from ...timeout import Timeout
from ..builder.workload import FamilyDefaults, PodExtras, build_pod
from ..registry import DriverRegistry
from .base import DriverContext, NodeConfigResolver

__all__ = ["SERVER_DEFAULTS", "ServerDriver", "register"]

SERVER_DEFAULTS = FamilyDefaults(
    provider="x.server.com", model="server1", request_all_constraints=True
)
"""Constants shared by every server node."""


class ServerDriver:
    """Deploys generic server nodes."""

    provider = SERVER_DEFAULTS.provider
    bootstraps_device = False

    def __init__(self, context: DriverContext) -> None:
        self._context = context
        self._resolver = NodeConfigResolver(
            context, self.provider, SERVER_DEFAULTS.model
        )

    async def resolve_config(
        self, intent: NodeIntent, timeout: Timeout
    ) -> NodeConfig:
        return await self._resolver.resolve(intent, timeout)

    async def validate_model(
        self, intent: NodeIntent, config: NodeConfig, timeout: Timeout
    ) -> None:
        await self._resolver.validate_model(intent, config, timeout)

    def build_network_attachments(
        self, intent: NodeIntent, config: NodeConfig
    ) -> list[NetworkAttachment]:
        return []

    def build_claims(
        self, intent: NodeIntent, config: NodeConfig
    ) -> list[V1PersistentVolumeClaim]:
        return []

    def build_workload(
        self,
        intent: NodeIntent,
        config: NodeConfig,
        attachments: list[NetworkAttachment],
    ) -> V1Pod:
        return build_pod(
            intent,
            config,
            SERVER_DEFAULTS,
            PodExtras(),
            attachments=attachments,
            enable_network_attachments=(
                self._context.enable_network_attachments
            ),
        )

    async def bootstrap(
        self,
        addresses: list[str],
        credentials: DeviceCredentials | None,
        certificates: CertificateBundle | None,
    ) -> None:
        return None


def register(registry: DriverRegistry) -> None:
    """Register the server driver."""
    registry.register(SERVER_DEFAULTS.provider, ServerDriver)
