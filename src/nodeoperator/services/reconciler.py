"""Reconciliation of ``Node`` objects."""

from datetime import timedelta

from safir.slack.blockkit import SlackException
from safir.slack.webhook import SlackWebhookClient
from structlog.stdlib import BoundLogger

from ..constants import (
    CERTIFICATE_PROFILE,
    CREDENTIAL_PASSWORD_KEY,
    CREDENTIAL_USERNAME_KEY,
    KUBERNETES_REQUEST_TIMEOUT,
    NOT_READY_REQUEUE_DELAY,
    REVISION_HASH_ANNOTATION,
)
from ..exceptions import (
    BootstrapError,
    KubernetesError,
    MissingSecretError,
    NotReadyError,
    OperationTimeoutError,
)
from ..models.domain.bootstrap import CertificateBundle, DeviceCredentials
from ..models.domain.kubernetes import ObjectKey
from ..models.domain.node import Condition, NodeIntent
from ..models.domain.reconcile import ReconcileResult, WorkloadStatus
from ..storage.kubernetes.creator import (
    PersistentVolumeClaimStorage,
    SecretStorage,
)
from ..storage.kubernetes.custom import (
    NetworkAttachmentStorage,
    NodeIntentStorage,
)
from ..storage.kubernetes.pod import PodStorage
from ..timeout import Timeout
from .certificate import extract_certificate_bundle
from .driver.base import DriverContext, ProviderDriver
from .registry import DriverRegistry

__all__ = ["NodeReconciler"]


class NodeReconciler:
    """Drives a ``Node`` towards a running, configured device.

    Each call to `reconcile` is one pass through the state machine. A pass
    stops at the first step that cannot complete, records the outcome in the
    ``Ready`` condition of the node, and tells the caller whether and when to
    try again. Every write is skipped if the stored object already matches,
    so repeated passes over an unchanged node write nothing.

    Parameters
    ----------
    registry
        Registry of provider drivers.
    driver_context
        Storage and settings drivers are bound to.
    intent_storage
        Storage for ``Node`` objects.
    attachment_storage
        Storage for network attachments.
    claim_storage
        Storage for persistent volume claims.
    pod_storage
        Storage for pods.
    secret_storage
        Storage for device credentials and certificates.
    reconcile_timeout
        Timeout for one reconcile pass.
    slack_client
        If given, failures are also reported to Slack.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        registry: DriverRegistry,
        driver_context: DriverContext,
        intent_storage: NodeIntentStorage,
        attachment_storage: NetworkAttachmentStorage,
        claim_storage: PersistentVolumeClaimStorage,
        pod_storage: PodStorage,
        secret_storage: SecretStorage,
        reconcile_timeout: timedelta,
        slack_client: SlackWebhookClient | None,
        logger: BoundLogger,
    ) -> None:
        self._registry = registry
        self._driver_context = driver_context
        self._intents = intent_storage
        self._attachments = attachment_storage
        self._claims = claim_storage
        self._pods = pod_storage
        self._secrets = secret_storage
        self._timeout = reconcile_timeout
        self._slack = slack_client
        self._logger = logger

    async def reconcile(self, key: ObjectKey) -> ReconcileResult:
        """Run one reconcile pass for a node.

        Parameters
        ----------
        key
            Key of the node.

        Returns
        -------
        ReconcileResult
            Whether and when the node should be reconciled again.

        Raises
        ------
        InvalidObjectError
            Raised if the node itself could not be parsed.
        KubernetesError
            Raised if the node could not be read or its status could not be
            written.
        OperationTimeoutError
            Raised if reading the node timed out.
        """
        logger = self._logger.bind(node=key.name, namespace=key.namespace)
        timeout = Timeout("Reconcile node", self._timeout, str(key))
        intent = await self._intents.get(key, timeout)
        if not intent:
            logger.debug("Node not found, nothing to do")
            return ReconcileResult()
        if intent.is_deleted:
            await self._finalize(intent, timeout, logger)
            return ReconcileResult()
        if await self._intents.add_finalizer(key, timeout):
            logger.debug("Added finalizer")

        try:
            driver = self._registry.resolve(
                intent.spec.provider, self._driver_context
            )
            await self._deploy(intent, driver, timeout, logger)
            status = await self._get_workload_status(intent, timeout)
        except NotReadyError as e:
            logger.info("Node not ready yet", reason=str(e))
            condition = Condition.unknown(str(e))
            await self._set_condition(intent, condition, logger)
            return ReconcileResult(requeue_after=NOT_READY_REQUEUE_DELAY)
        except (KubernetesError, OperationTimeoutError) as e:
            await self._fail(intent, e, logger)
            return ReconcileResult(requeue=True)
        except SlackException as e:
            await self._fail(intent, e, logger)
            return ReconcileResult()

        try:
            await self._bootstrap(intent, driver, status.addresses, timeout)
        except SlackException as e:
            await self._fail(intent, e, logger)
            return ReconcileResult(requeue=True)

        if await self._set_condition(intent, Condition.ready(), logger):
            logger.info("Node is ready", addresses=status.addresses)
        return ReconcileResult()

    async def _bootstrap(
        self,
        intent: NodeIntent,
        driver: ProviderDriver,
        addresses: list[str],
        timeout: Timeout,
    ) -> None:
        """Fetch the device secrets and push the initial configuration."""
        credentials = None
        certificates = None
        if driver.bootstraps_device:
            credentials = await self._get_credentials(intent, timeout)
            certificates = await self._get_certificates(intent, timeout)
        async with timeout.enforce():
            await driver.bootstrap(addresses, credentials, certificates)

    async def _deploy(
        self,
        intent: NodeIntent,
        driver: ProviderDriver,
        timeout: Timeout,
        logger: BoundLogger,
    ) -> None:
        """Resolve the config and converge the node's Kubernetes objects."""
        config = await driver.resolve_config(intent, timeout)
        await driver.validate_model(intent, config, timeout)

        attachments = driver.build_network_attachments(intent, config)
        if self._driver_context.enable_network_attachments:
            for attachment in attachments:
                if await self._attachments.apply(attachment, timeout):
                    logger.info(
                        "Applied network attachment", name=attachment.name
                    )

        for claim in driver.build_claims(intent, config):
            if await self._claims.ensure(claim, timeout):
                logger.info("Created claim", name=claim.metadata.name)

        pod = driver.build_workload(intent, config, attachments)
        wanted = pod.metadata.annotations[REVISION_HASH_ANNOTATION]
        name = intent.metadata.name
        namespace = intent.metadata.namespace
        current = await self._pods.read(name, namespace, timeout)
        if current:
            annotations = current.metadata.annotations or {}
            if annotations.get(REVISION_HASH_ANNOTATION) == wanted:
                return
            logger.info(
                "Pod spec changed, recreating pod",
                old_hash=annotations.get(REVISION_HASH_ANNOTATION),
                new_hash=wanted,
            )
            await self._pods.recreate(pod, timeout)
        else:
            logger.info("Creating pod", hash=wanted)
            await self._pods.create(namespace, pod, timeout)

    async def _fail(
        self, intent: NodeIntent, error: SlackException, logger: BoundLogger
    ) -> None:
        """Record a failure in the node status."""
        logger.warning("Reconcile failed", error=str(error))
        condition = Condition.failed(str(error))
        changed = await self._set_condition(intent, condition, logger)
        if changed and self._slack:
            await self._slack.post_exception(error)

    async def _finalize(
        self, intent: NodeIntent, timeout: Timeout, logger: BoundLogger
    ) -> None:
        """Release a deleted node.

        Everything the node created carries an owner reference to it, so
        Kubernetes garbage collection does the cleanup once the finalizer is
        gone.
        """
        if await self._intents.remove_finalizer(intent.key, timeout):
            logger.info("Removed finalizer from deleted node")

    async def _get_certificates(
        self, intent: NodeIntent, timeout: Timeout
    ) -> CertificateBundle:
        name = intent.metadata.name
        namespace = intent.metadata.namespace
        data = await self._secrets.read_data(name, namespace, timeout)
        if data is None:
            raise MissingSecretError(name, namespace)
        return extract_certificate_bundle(data, CERTIFICATE_PROFILE)

    async def _get_credentials(
        self, intent: NodeIntent, timeout: Timeout
    ) -> DeviceCredentials:
        name = intent.spec.provider
        namespace = intent.metadata.namespace
        data = await self._secrets.read_data(name, namespace, timeout)
        if data is None:
            raise MissingSecretError(name, namespace)
        for key in (CREDENTIAL_USERNAME_KEY, CREDENTIAL_PASSWORD_KEY):
            if key not in data:
                raise MissingSecretError(name, namespace, key)
        return DeviceCredentials(
            username=data[CREDENTIAL_USERNAME_KEY],
            password=data[CREDENTIAL_PASSWORD_KEY],
        )

    async def _get_workload_status(
        self, intent: NodeIntent, timeout: Timeout
    ) -> WorkloadStatus:
        """Check whether the pod of a node can be configured.

        Raises
        ------
        NotReadyError
            Raised if the pod is missing, not ready, or has no address.
        """
        name = intent.metadata.name
        namespace = intent.metadata.namespace
        pod = await self._pods.read(name, namespace, timeout)
        if not pod:
            raise NotReadyError("pod not found")
        status = WorkloadStatus.from_pod(pod)
        if not status.ready:
            raise NotReadyError(status.message)
        return status

    async def _set_condition(
        self, intent: NodeIntent, condition: Condition, logger: BoundLogger
    ) -> bool:
        """Store a new ``Ready`` condition if it differs from the current one.

        The write gets its own timeout so that a failure caused by the
        reconcile timeout can still be recorded.

        Returns
        -------
        bool
            Whether the status was written.
        """
        if not intent.status.set_condition(condition):
            return False
        timeout = Timeout(
            "Update node status", KUBERNETES_REQUEST_TIMEOUT, str(intent.key)
        )
        await self._intents.update_status(
            intent.key, intent.status_to_dict(), timeout
        )
        logger.debug(
            "Updated node status",
            reason=condition.reason.value,
            message=condition.message,
        )
        return True
