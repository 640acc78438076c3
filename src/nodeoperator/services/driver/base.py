"""Interface of provider drivers and helpers shared between them."""

from dataclasses import dataclass
from typing import Protocol

from kubernetes_asyncio.client import V1PersistentVolumeClaim, V1Pod
from structlog.stdlib import BoundLogger

from ...constants import DEFAULT_NODE_CONFIG_NAME, NODE_CONFIG_KIND
from ...exceptions import MissingObjectError, UnsupportedModelError
from ...models.domain.bootstrap import CertificateBundle, DeviceCredentials
from ...models.domain.nad import NetworkAttachment
from ...models.domain.node import NodeConfig, NodeIntent
from ...storage.device import DeviceSessionFactory
from ...storage.kubernetes.creator import ConfigMapStorage
from ...storage.kubernetes.custom import NodeConfigStorage
from ...timeout import Timeout

__all__ = [
    "DriverContext",
    "NodeConfigResolver",
    "ProviderDriver",
    "build_management_commands",
]


@dataclass
class DriverContext:
    """Storage and settings a driver is bound to when built."""

    config_map_storage: ConfigMapStorage
    """Storage for variant catalogs."""

    node_config_storage: NodeConfigStorage
    """Storage for ``NodeConfig`` objects."""

    session_factory: DeviceSessionFactory
    """Opens command sessions to devices."""

    config_namespace: str | None
    """Namespace searched for ``NodeConfig`` objects, if not the node's."""

    enable_network_attachments: bool
    """Whether pods are annotated with their network attachments."""

    logger: BoundLogger
    """Logger to use."""


class ProviderDriver(Protocol):
    """Deploys and configures nodes of one provider family."""

    provider: str
    """Provider identifier the driver is registered under."""

    bootstraps_device: bool
    """Whether `bootstrap` talks to the device.

    If false, the reconciler does not fetch credentials or certificates.
    """

    async def resolve_config(
        self, intent: NodeIntent, timeout: Timeout
    ) -> NodeConfig:
        """Find the config that applies to a node."""

    async def validate_model(
        self, intent: NodeIntent, config: NodeConfig, timeout: Timeout
    ) -> None:
        """Check that the model of the config is a supported variant."""

    def build_network_attachments(
        self, intent: NodeIntent, config: NodeConfig
    ) -> list[NetworkAttachment]:
        """Build the network attachments of a node."""

    def build_claims(
        self, intent: NodeIntent, config: NodeConfig
    ) -> list[V1PersistentVolumeClaim]:
        """Build the persistent volume claims of a node."""

    def build_workload(
        self,
        intent: NodeIntent,
        config: NodeConfig,
        attachments: list[NetworkAttachment],
    ) -> V1Pod:
        """Build the pod of a node, annotated with its revision hash."""

    async def bootstrap(
        self,
        addresses: list[str],
        credentials: DeviceCredentials | None,
        certificates: CertificateBundle | None,
    ) -> None:
        """Push the initial configuration to a ready device."""


class NodeConfigResolver:
    """Finds the ``NodeConfig`` for a node and validates its model.

    Parameters
    ----------
    context
        Storage and settings shared by the drivers.
    provider
        Provider of the driver using this resolver.
    default_model
        Model used when the config doesn't name one.
    """

    def __init__(
        self, context: DriverContext, provider: str, default_model: str
    ) -> None:
        self._configs = context.node_config_storage
        self._config_maps = context.config_map_storage
        self._config_namespace = context.config_namespace
        self._provider = provider
        self._default_model = default_model
        self._logger = context.logger

    async def resolve(
        self, intent: NodeIntent, timeout: Timeout
    ) -> NodeConfig:
        """Find the config that applies to a node.

        The first match wins:

        #. The config named by ``spec.parametersRef``, which must exist.
        #. A config with the same name as the node and the same provider.
        #. A config named ``default`` with the same provider.
        #. An empty config, so that every family default applies.

        Parameters
        ----------
        intent
            Node being reconciled.
        timeout
            Timeout on Kubernetes calls.

        Returns
        -------
        NodeConfig
            Config for the node.

        Raises
        ------
        InvalidObjectError
            Raised if a config could not be parsed.
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        MissingObjectError
            Raised if the explicitly referenced config does not exist.
        """
        namespace = self._config_namespace or intent.metadata.namespace
        logger = self._logger.bind(node=str(intent.key))
        ref = intent.spec.parameters_ref
        if ref and ref.name:
            ref_namespace = ref.namespace or namespace
            config = await self._configs.get(ref.name, ref_namespace, timeout)
            if not config:
                msg = f"{NODE_CONFIG_KIND} {ref_namespace}/{ref.name} missing"
                raise MissingObjectError(
                    msg,
                    kind=NODE_CONFIG_KIND,
                    namespace=ref_namespace,
                    name=ref.name,
                )
            logger.debug("Using referenced config", config=ref.name)
            return config

        configs = await self._configs.list_configs(namespace, timeout)
        candidates = [c for c in configs if c.spec.provider == self._provider]
        for name in (intent.metadata.name, DEFAULT_NODE_CONFIG_NAME):
            for config in candidates:
                if config.metadata.name == name:
                    logger.debug("Using matching config", config=name)
                    return config
        logger.debug("No config found, using defaults")
        return NodeConfig.empty(namespace)

    async def validate_model(
        self, intent: NodeIntent, config: NodeConfig, timeout: Timeout
    ) -> None:
        """Check the model of a config against the variant catalog.

        The catalog is a ``ConfigMap`` named ``{provider}-variants`` in the
        namespace of the node, whose keys are the supported models. It is
        also mounted into the pod, which is why it lives with the node.

        Parameters
        ----------
        intent
            Node being reconciled.
        config
            Resolved config of the node.
        timeout
            Timeout on Kubernetes calls.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        MissingObjectError
            Raised if the catalog does not exist.
        UnsupportedModelError
            Raised if the model is not in the catalog.
        """
        name = f"{self._provider}-variants"
        namespace = intent.metadata.namespace
        variants = await self._config_maps.read(name, namespace, timeout)
        if not variants:
            msg = f"Variant catalog {namespace}/{name} not found"
            raise MissingObjectError(
                msg, kind="ConfigMap", namespace=namespace, name=name
            )
        model = config.get_model(self._default_model)
        if model not in (variants.data or {}):
            raise UnsupportedModelError(model, self._provider)


def build_management_commands(profile: str) -> list[str]:
    """Build the commands that enable the management-plane servers.

    Every server listens in the ``mgmt`` network instance and, where it
    supports TLS, serves with the given server profile.

    Parameters
    ----------
    profile
        Name of the TLS server profile.

    Returns
    -------
    list of str
        Commands in the order they must be sent.
    """
    gnmi = "set / system gnmi-server"
    gribi = "set / system gribi-server"
    jsonrpc = "set / system json-rpc-server"
    p4rt = "set / system p4rt-server"
    mgmt = "network-instance mgmt"
    return [
        "set / system lldp admin state enable",
        f"{gnmi} admin-state enable",
        f"{gnmi} rate-limit 65000",
        f"{gnmi} trace-options [ common request response ]",
        f"{gnmi} {mgmt} admin-state enable",
        f"{gnmi} {mgmt} tls-profile {profile}",
        f"{gnmi} {mgmt} unix-socket admin-state enable",
        f"{gribi} admin-state enable",
        f"{gribi} {mgmt} admin-state enable",
        f"{gribi} {mgmt} tls-profile {profile}",
        f"{jsonrpc} admin-state enable",
        f"{jsonrpc} {mgmt} http admin-state enable",
        f"{jsonrpc} {mgmt} https admin-state enable",
        f"{jsonrpc} {mgmt} https tls-profile {profile}",
        f"{p4rt} admin-state enable",
        f"{p4rt} {mgmt} admin-state enable",
        f"{p4rt} {mgmt} tls-profile {profile}",
    ]
