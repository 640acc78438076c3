"""Driver for Nokia SR OS nodes."""

from types import MappingProxyType

from kubernetes_asyncio.client import (
    V1EmptyDirVolumeSource,
    V1ExecAction,
    V1KeyToPath,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimVolumeSource,
    V1Pod,
    V1Probe,
    V1SecretVolumeSource,
    V1Volume,
    V1VolumeMount,
)

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
    build_claims,
    build_network_attachments,
    build_pod,
    claim_name,
)
from ..registry import DriverRegistry
from .base import (
    DriverContext,
    NodeConfigResolver,
    build_management_commands,
)

__all__ = [
    "SROS_BANNER",
    "SROS_DEFAULTS",
    "SROSDriver",
    "build_bootstrap_script",
    "register",
]

SROS_DEFAULTS = FamilyDefaults(
    provider="sros.nokia.com",
    model="ixrd3l",
    image="ghcr.io/nokia/srlinux:latest",
    command=("bin/tini",),
    env=MappingProxyType({"SRLINUX": "1"}),
    requests=MappingProxyType({"cpu": "2", "memory": "8Gi"}),
    limits=MappingProxyType(
        {"cpu": "2", "memory": "8Gi", "hugepages-1Gi": "8Gi"}
    ),
    anti_affinity_key="topo",
    privileged=True,
    tty=True,
)
"""Constants shared by every SR OS node."""

SROS_BANNER = (
    "................................................................\n"
    ":                  Welcome to Nokia SROS!                      :\n"
    "................................................................\n"
)
"""Login banner installed during bootstrap."""

_LICENSE_SECRET = "licenses.sros.nokia.com"


def build_bootstrap_script(
    certificates: CertificateBundle,
) -> list[DeviceCommand]:
    """Build the bootstrap script of an SR OS device.

    The whole script, TLS material included, is sent in eager mode.
    """
    profile = certificates.profile_name
    tls = f"set / system tls server-profile {profile}"
    commands = [
        "enter candidate private",
        tls,
        f"{tls} authenticate-client false",
        f'{tls} key "{certificates.key}"',
        f'{tls} certificate "{certificates.cert}"',
        f'{tls} trust-anchor "{certificates.ca}"',
        *build_management_commands(profile),
        f'set / system banner login-banner "{SROS_BANNER}"',
        "commit save",
    ]
    return [DeviceCommand(c, mode=CommandMode.EAGER) for c in commands]


class SROSDriver:
    """Deploys and bootstraps SR OS nodes.

    Parameters
    ----------
    context
        Storage and settings the driver is bound to.
    """

    provider = SROS_DEFAULTS.provider
    bootstraps_device = True

    def __init__(self, context: DriverContext) -> None:
        self._context = context
        self._resolver = NodeConfigResolver(
            context, self.provider, SROS_DEFAULTS.model
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
        interfaces = config.get_interfaces(list(SROS_DEFAULTS.interfaces))
        return build_network_attachments(intent, interfaces)

    def build_claims(
        self, intent: NodeIntent, config: NodeConfig
    ) -> list[V1PersistentVolumeClaim]:
        return build_claims(intent, config)

    def build_workload(
        self,
        intent: NodeIntent,
        config: NodeConfig,
        attachments: list[NetworkAttachment],
    ) -> V1Pod:
        return build_pod(
            intent,
            config,
            SROS_DEFAULTS,
            self._build_extras(intent, config),
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

    def _build_extras(
        self, intent: NodeIntent, config: NodeConfig
    ) -> PodExtras:
        volumes = [
            V1Volume(
                name="hugepages",
                empty_dir=V1EmptyDirVolumeSource(medium="HugePages"),
            )
        ]
        mounts = [V1VolumeMount(name="hugepages", mount_path="/dev/hugepages")]
        for pv in config.spec.persistent_volumes:
            source = V1PersistentVolumeClaimVolumeSource(
                claim_name=claim_name(intent, pv.name)
            )
            volumes.append(
                V1Volume(name=pv.name, persistent_volume_claim=source)
            )
            mounts.append(
                V1VolumeMount(name=pv.name, mount_path=pv.mount_path)
            )
        if config.spec.license_key:
            item = V1KeyToPath(key=config.spec.license_key, path="license.txt")
            volumes.append(
                V1Volume(
                    name="license",
                    secret=V1SecretVolumeSource(
                        secret_name=_LICENSE_SECRET, items=[item]
                    ),
                )
            )
            mounts.append(
                V1VolumeMount(name="license", mount_path="/nokia/license/")
            )
        startup = V1Probe(
            _exec=V1ExecAction(command=["/opt/nokia/bin/startup_probe"]),
            initial_delay_seconds=15,
            failure_threshold=3,
            period_seconds=5,
            success_threshold=1,
            timeout_seconds=1,
        )
        liveness = V1Probe(
            _exec=V1ExecAction(command=["/opt/nokia/bin/liveness_probe"]),
            initial_delay_seconds=3,
            failure_threshold=3,
            period_seconds=15,
            success_threshold=1,
            timeout_seconds=1,
        )
        return PodExtras(
            volumes=volumes,
            volume_mounts=mounts,
            startup_probe=startup,
            liveness_probe=liveness,
        )


def register(registry: DriverRegistry) -> None:
    """Register the SR OS driver."""
    registry.register(SROS_DEFAULTS.provider, SROSDriver)
