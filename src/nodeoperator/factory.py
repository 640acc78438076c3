"""Component factory and process-wide context management."""

from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from typing import Self

import structlog
from kubernetes_asyncio.client.api_client import ApiClient
from safir.slack.webhook import SlackWebhookClient
from structlog.stdlib import BoundLogger

from .background import BackgroundTaskManager
from .config import Config
from .constants import ROOT_LOGGER
from .services.driver import server, srlinux, sros
from .services.driver.base import DriverContext
from .services.reconciler import NodeReconciler
from .services.registry import DriverRegistry
from .services.workqueue import WorkQueue
from .storage.device import DeviceSessionFactory, SSHSessionFactory
from .storage.kubernetes.creator import (
    ConfigMapStorage,
    PersistentVolumeClaimStorage,
    SecretStorage,
)
from .storage.kubernetes.custom import (
    NetworkAttachmentStorage,
    NodeConfigStorage,
    NodeIntentStorage,
)
from .storage.kubernetes.pod import PodStorage

__all__ = ["Factory", "ProcessContext", "build_driver_registry"]


def build_driver_registry() -> DriverRegistry:
    """Build a registry holding every built-in provider driver.

    Returns
    -------
    DriverRegistry
        Registry with the SR Linux, SR OS and server drivers.
    """
    registry = DriverRegistry()
    for module in (server, srlinux, sros):
        module.register(registry)
    return registry


@dataclass(frozen=True, slots=True)
class ProcessContext:
    """Per-process global operator state.

    This object holds all of the per-process singletons. It is used by the
    `Factory` class as a source of dependencies to inject into created
    service and storage objects.
    """

    config: Config
    """Operator configuration."""

    kubernetes_client: ApiClient
    """Shared Kubernetes client."""

    registry: DriverRegistry
    """Registry of provider drivers."""

    session_factory: DeviceSessionFactory
    """Opens command sessions to devices."""

    slack_client: SlackWebhookClient | None
    """Client for Slack alerts, if configured."""

    @classmethod
    async def from_config(
        cls,
        config: Config,
        *,
        session_factory: DeviceSessionFactory | None = None,
    ) -> Self:
        """Create a new process context from the operator configuration.

        Parameters
        ----------
        config
            Operator configuration.
        session_factory
            Opens command sessions to devices. Defaults to SSH. Used by the
            test suite to capture bootstrap scripts.

        Returns
        -------
        ProcessContext
            Shared context for an operator process.
        """
        logger = structlog.get_logger(ROOT_LOGGER)
        slack_client = None
        if config.slack_webhook:
            slack_client = SlackWebhookClient(
                config.slack_webhook.get_secret_value(), config.name, logger
            )
        if not session_factory:
            session_factory = SSHSessionFactory(config.device_timeout, logger)
        return cls(
            config=config,
            kubernetes_client=ApiClient(),
            registry=build_driver_registry(),
            session_factory=session_factory,
            slack_client=slack_client,
        )

    async def aclose(self) -> None:
        """Free allocated resources."""
        await self.kubernetes_client.close()


class Factory:
    """Build node operator components.

    Parameters
    ----------
    context
        Shared process context.
    logger
        Logger to use for messages.
    """

    @classmethod
    @asynccontextmanager
    async def standalone(
        cls,
        config: Config,
        *,
        session_factory: DeviceSessionFactory | None = None,
    ) -> AsyncIterator[Self]:
        """Async context manager for node operator components.

        Parameters
        ----------
        config
            Operator configuration.
        session_factory
            Opens command sessions to devices. Defaults to SSH.

        Yields
        ------
        Factory
            Newly-created factory. Must be used as a context manager.
        """
        logger = structlog.get_logger(ROOT_LOGGER)
        context = await ProcessContext.from_config(
            config, session_factory=session_factory
        )
        factory = cls(context, logger)
        async with aclosing(factory):
            yield factory

    def __init__(self, context: ProcessContext, logger: BoundLogger) -> None:
        self._context = context
        self._logger = logger
        self._background: BackgroundTaskManager | None = None

    async def aclose(self) -> None:
        """Shut down the factory.

        After this method is called, the factory object is no longer valid and
        must not be used.
        """
        await self.stop_background_services()
        await self._context.aclose()

    def create_background_manager(self) -> BackgroundTaskManager:
        """Create the manager for the operator's background tasks.

        Returns
        -------
        BackgroundTaskManager
            Newly-created background task manager.
        """
        config = self._context.config
        return BackgroundTaskManager(
            reconciler=self.create_reconciler(),
            queue=WorkQueue(),
            intent_storage=self.create_intent_storage(),
            pod_storage=PodStorage(
                self._context.kubernetes_client, self._logger
            ),
            namespace=config.namespace,
            workers=config.workers,
            resync_interval=config.resync_interval,
            failure_backoff=config.failure_backoff,
            slack_client=self._context.slack_client,
            logger=self._logger,
        )

    def create_driver_context(self) -> DriverContext:
        """Create the storage and settings drivers are bound to.

        Returns
        -------
        DriverContext
            Newly-created driver context.
        """
        client = self._context.kubernetes_client
        config = self._context.config
        return DriverContext(
            config_map_storage=ConfigMapStorage(client, self._logger),
            node_config_storage=NodeConfigStorage(client, self._logger),
            session_factory=self._context.session_factory,
            config_namespace=config.node_config_namespace,
            enable_network_attachments=config.enable_network_attachments,
            logger=self._logger,
        )

    def create_intent_storage(self) -> NodeIntentStorage:
        """Create storage for ``Node`` objects.

        Returns
        -------
        NodeIntentStorage
            Newly-created storage.
        """
        return NodeIntentStorage(self._context.kubernetes_client, self._logger)

    def create_reconciler(self) -> NodeReconciler:
        """Create a node reconciler.

        Returns
        -------
        NodeReconciler
            Newly-created reconciler.
        """
        client = self._context.kubernetes_client
        return NodeReconciler(
            registry=self._context.registry,
            driver_context=self.create_driver_context(),
            intent_storage=self.create_intent_storage(),
            attachment_storage=NetworkAttachmentStorage(client, self._logger),
            claim_storage=PersistentVolumeClaimStorage(client, self._logger),
            pod_storage=PodStorage(client, self._logger),
            secret_storage=SecretStorage(client, self._logger),
            reconcile_timeout=self._context.config.reconcile_timeout,
            slack_client=self._context.slack_client,
            logger=self._logger,
        )

    async def start_background_services(self) -> None:
        """Start the watches, resync loop and reconcile workers."""
        if self._background:
            return
        self._background = self.create_background_manager()
        await self._background.start()

    async def stop_background_services(self) -> None:
        """Stop the background tasks, if they are running."""
        if self._background:
            await self._background.stop()
            self._background = None
