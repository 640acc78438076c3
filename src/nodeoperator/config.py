"""Global configuration parsing."""

from datetime import timedelta
from pathlib import Path
from typing import Annotated, Self

import yaml
from pydantic import AliasChoices, Field, SecretStr
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict
from safir.logging import LogLevel, Profile
from safir.pydantic import HumanTimedelta

from .constants import (
    DEVICE_SESSION_TIMEOUT,
    FAILURE_BACKOFF,
    RESYNC_INTERVAL,
)

__all__ = ["Config"]


class Config(BaseSettings):
    """Network node operator configuration."""

    model_config = SettingsConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )

    log_level: Annotated[
        LogLevel,
        Field(
            title="Log level",
            description="Python logging level",
            examples=[LogLevel.INFO],
        ),
    ] = LogLevel.INFO

    profile: Annotated[
        Profile,
        Field(
            title="Application logging profile",
            description=(
                "``production`` uses JSON logging. ``development`` uses"
                " logging that may be easier for humans to read but that"
                " cannot be easily parsed by computers."
            ),
            examples=[Profile.development],
        ),
    ] = Profile.production

    name: Annotated[
        str,
        Field(
            title="Name of application",
            description="Used as the logger name and when reporting to Slack",
        ),
    ] = "node-operator"

    slack_webhook: Annotated[
        SecretStr | None,
        Field(
            title="Slack webhook for alerts",
            description=(
                "If set, uncaught exceptions while reconciling nodes will be"
                " reported to Slack via this webhook"
            ),
            validation_alias=AliasChoices(
                "slackWebhook", "NODE_OPERATOR_SLACK_WEBHOOK"
            ),
        ),
    ] = None

    namespace: Annotated[
        str | None,
        Field(
            title="Namespace to watch",
            description=(
                "Only ``Node`` objects and pods in this namespace are"
                " reconciled. If not set, all namespaces are watched."
            ),
        ),
    ] = None

    node_config_namespace: Annotated[
        str | None,
        Field(
            title="Namespace of NodeConfig objects",
            description=(
                "Namespace searched for ``NodeConfig`` objects. Normally the"
                " namespace the operator runs in. If not set, the namespace"
                " of the node being reconciled is used."
            ),
            validation_alias=AliasChoices(
                "nodeConfigNamespace", "POD_NAMESPACE"
            ),
        ),
    ] = None

    enable_network_attachments: Annotated[
        bool,
        Field(
            title="Whether to create network attachments",
            description=(
                "If true, a ``NetworkAttachmentDefinition`` is created for"
                " each interface of a node and the node pod is annotated to"
                " use them. Requires Multus."
            ),
            validation_alias=AliasChoices(
                "enableNetworkAttachments", "ENABLE_NAD"
            ),
        ),
    ] = False

    workers: Annotated[
        int,
        Field(
            title="Number of reconcile workers",
            description="Maximum number of nodes reconciled concurrently",
            ge=1,
        ),
    ] = 4

    reconcile_timeout: Annotated[
        HumanTimedelta,
        Field(
            title="Timeout for one reconcile pass",
            description=(
                "Covers all Kubernetes calls and the device session made"
                " while reconciling one node"
            ),
        ),
    ] = timedelta(minutes=2)

    resync_interval: Annotated[
        HumanTimedelta,
        Field(
            title="Interval between full resyncs",
            description=(
                "How frequently every node is queued for reconciliation"
                " even if nothing about it changed"
            ),
        ),
    ] = RESYNC_INTERVAL

    failure_backoff: Annotated[
        HumanTimedelta,
        Field(
            title="Delay before retrying after an unexpected error",
            description=(
                "If reconciling a node raises an unexpected exception, the"
                " node is queued again after this delay"
            ),
        ),
    ] = FAILURE_BACKOFF

    device_timeout: Annotated[
        HumanTimedelta,
        Field(
            title="Device session timeout",
            description=(
                "Timeout for each operation (connect, login, each command)"
                " on a device command session"
            ),
        ),
    ] = DEVICE_SESSION_TIMEOUT

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Load the operator configuration from a YAML file.

        Parameters
        ----------
        path
            Path to the configuration file.
        """
        with path.open("r") as f:
            return cls.model_validate(yaml.safe_load(f) or {})
