"""Driver for Nokia SR Linux nodes."""

from types import MappingProxyType

from kubernetes_asyncio.client import (
    V1ConfigMapVolumeSource,
    V1ExecAction,
    V1KeyToPath,
    V1PersistentVolumeClaim,
    V1Pod,
    V1Probe,
    V1SecretVolumeSource,
    V1Volume,
    V1VolumeMount,
)

from ...constants import TOPOLOGY_LABEL
from ...exceptions import BootstrapError
from ...models.domain.bootstrap import (
    CertificateBundle,
    CommandMode,
    DeviceCommand,
    DeviceCredentials,
)
from ...models.domain.nad import NetworkAttachment
from ...models.domain.node import NodeConfig, NodeIntent
from ...timeout import Timeout
from ..bootstrap import DeviceBootstrapper
from ..builder.workload import (
    FamilyDefaults,
    PodExtras,
    build_network_attachments,
    build_pod,
)
from ..registry import DriverRegistry
from .base import (
    DriverContext,
    NodeConfigResolver,
    build_management_commands,
)

__all__ = [
    "SRLINUX_DEFAULTS",
    "SRLinuxDriver",
    "build_bootstrap_script",
    "register",
]

SRLINUX_DEFAULTS = FamilyDefaults(
    provider="srlinux.nokia.com",
    model="ixrd3l",
    image="ghcr.io/nokia/srlinux:latest",
    command=("/tini", "--", "fixuid", "-q", "/k8s-entrypoint.sh"),
    args=(
        "sudo",
        "bash",
        "-c",
        "touch /.dockerenv && /opt/srlinux/bin/sr_linux",
    ),
    env=MappingProxyType({"SRLINUX": "1"}),
    requests=MappingProxyType({"cpu": "0.5", "memory": "1Gi"}),
    interfaces=("e1-1", "e1-2"),
    anti_affinity_key=TOPOLOGY_LABEL,
    privileged=True,
    termination_grace_period=0,
)
"""Constants shared by every SR Linux node."""

_LICENSE_SECRET = "licenses.srl.nokia.com"
_READINESS_FILE = (
    "/etc/opt/srlinux/devices/app_ephemeral.mgmt_server.ready_for_config"
)


def build_bootstrap_script(
    certificates: CertificateBundle,
) -> list[DeviceCommand]:
    """Build the commands that enable the management services of a device.

    The key, certificate and trust anchor are sent on their own in eager
    mode after the rest of the configuration, since the device echoes large
    quoted payloads too slowly to wait for the prompt.

    Parameters
    ----------
    certificates
        TLS material for the gNMI, gRIBI, JSON-RPC and P4Runtime servers.

    Returns
    -------
    list of DeviceCommand
        Commands in the order they must be sent.
    """
    profile = certificates.profile_name
    tls = f"set / system tls server-profile {profile}"
    bulk = [
        "enter candidate private",
        tls,
        f"{tls} authenticate-client false",
        *build_management_commands(profile),
    ]
    script = [DeviceCommand(c) for c in bulk]
    script.extend(
        DeviceCommand(f'{tls} {field} "{value}"', mode=CommandMode.EAGER)
        for field, value in (
            ("key", certificates.key),
            ("certificate", certificates.cert),
            ("trust-anchor", certificates.ca),
        )
    )
    script.append(DeviceCommand("commit save"))
    return script


class SRLinuxDriver:
    """Deploys and bootstraps SR Linux nodes.

    Parameters
    ----------
    context
        Storage and settings the driver is bound to.
    """

    provider = SRLINUX_DEFAULTS.provider
    bootstraps_device = True

    def __init__(self, context: DriverContext) -> None:
        self._context = context
        self._resolver = NodeConfigResolver(
            context, self.provider, SRLINUX_DEFAULTS.model
        )
        self._bootstrapper = DeviceBootstrapper(
            context.session_factory, context.logger
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
        interfaces = config.get_interfaces(list(SRLINUX_DEFAULTS.interfaces))
        return build_network_attachments(intent, interfaces)

    def build_claims(
        self, intent: NodeIntent, config: NodeConfig
    ) -> list[V1PersistentVolumeClaim]:
        """SR Linux keeps no state on persistent volumes."""
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
            SRLINUX_DEFAULTS,
            self._build_extras(config),
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
        if not credentials or not certificates:
            raise BootstrapError("Credentials and certificates are required")
        script = build_bootstrap_script(certificates)
        await self._bootstrapper.run(addresses, credentials, script)

    def _build_extras(self, config: NodeConfig) -> PodExtras:
        """Build the volumes and probe of an SR Linux pod."""
        provider = SRLINUX_DEFAULTS.provider
        model = config.get_model(SRLINUX_DEFAULTS.model)
        volumes = [
            V1Volume(
                name="variants",
                config_map=V1ConfigMapVolumeSource(
                    name=SRLINUX_DEFAULTS.variants_config_map,
                    items=[V1KeyToPath(key=model, path="topo-template.yml")],
                ),
            ),
            V1Volume(
                name="topomac-script",
                config_map=V1ConfigMapVolumeSource(
                    name=f"{provider}-topomac-script"
                ),
            ),
            V1Volume(
                name="k8s-entrypoint",
                config_map=V1ConfigMapVolumeSource(
                    name=f"{provider}-k8s-entrypoint", default_mode=0o777
                ),
            ),
        ]
        mounts = [
            V1VolumeMount(name="variants", mount_path="/tmp/topo"),
            V1VolumeMount(name="topomac-script", mount_path="/tmp/topomac"),
            V1VolumeMount(
                name="k8s-entrypoint",
                mount_path="/k8s-entrypoint.sh",
                sub_path="k8s-entrypoint.sh",
            ),
        ]
        if config.spec.license_key:
            volumes.append(
                V1Volume(
                    name="license",
                    secret=V1SecretVolumeSource(
                        secret_name=_LICENSE_SECRET,
                        items=[
                            V1KeyToPath(
                                key=config.spec.license_key,
                                path="license.key",
                            )
                        ],
                    ),
                )
            )
            mounts.append(
                V1VolumeMount(
                    name="license",
                    mount_path="/opt/srlinux/etc/license.key",
                    sub_path="license.key",
                )
            )
        readiness = V1Probe(
            _exec=V1ExecAction(command=["cat", _READINESS_FILE]),
            initial_delay_seconds=10,
            period_seconds=5,
            failure_threshold=10,
        )
        return PodExtras(
            volumes=volumes, volume_mounts=mounts, readiness_probe=readiness
        )


def register(registry: DriverRegistry) -> None:
    """Register the SR Linux driver."""
    registry.register(SRLINUX_DEFAULTS.provider, SRLinuxDriver)
