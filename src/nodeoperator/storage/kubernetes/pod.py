"""Storage layer for ``Pod`` objects."""

from collections.abc import AsyncIterator

from kubernetes_asyncio import client
from kubernetes_asyncio.client import ApiClient, V1Pod
from structlog.stdlib import BoundLogger

from ...constants import NODE_KIND
from ...models.domain.kubernetes import ObjectKey
from ...timeout import Timeout
from .deleter import KubernetesObjectDeleter
from .watcher import KubernetesWatcher

__all__ = ["PodStorage"]


class PodStorage(KubernetesObjectDeleter[V1Pod]):
    """Storage layer for ``Pod`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        self._api = client.CoreV1Api(api_client)
        super().__init__(
            create_method=self._api.create_namespaced_pod,
            delete_method=self._api.delete_namespaced_pod,
            list_method=self._api.list_namespaced_pod,
            read_method=self._api.read_namespaced_pod,
            object_type=V1Pod,
            kind="Pod",
            logger=logger,
        )

    async def recreate(self, pod: V1Pod, timeout: Timeout) -> None:
        """Replace any existing pod of the same name with a new one.

        Pods cannot be modified in place, so the old pod is deleted and the
        deletion is allowed to finish before the new pod is created.

        Parameters
        ----------
        pod
            New pod.
        timeout
            Timeout on operation.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        name = pod.metadata.name
        namespace = pod.metadata.namespace
        await self.delete(name, namespace, timeout, wait=True)
        await self.create(namespace, pod, timeout)

    async def watch_node_pods(
        self, namespace: str | None
    ) -> AsyncIterator[ObjectKey]:
        """Watch for changes to pods owned by nodes.

        This watch will continue forever until cancelled. It is meant to be
        run from a background task that triggers reconciliation of the
        owning node.

        Parameters
        ----------
        namespace
            Namespace to watch, or `None` to watch all namespaces.

        Yields
        ------
        ObjectKey
            Key of the node owning the pod that changed.

        Raises
        ------
        KubernetesError
            Raised if there is some failure in a Kubernetes API call.
        """
        logger = self._logger.bind(namespace=namespace)
        logger.debug("Watching for node pod changes")
        if namespace:
            method = self._api.list_namespaced_pod
        else:
            method = self._api.list_pod_for_all_namespaces
        watcher = KubernetesWatcher(
            method=method,
            object_type=V1Pod,
            kind="Pod",
            namespace=namespace,
            timeout=None,
            logger=logger,
        )
        try:
            async for event in watcher.watch():
                metadata = event.object.metadata
                for owner in metadata.owner_references or []:
                    if owner.kind == NODE_KIND and owner.controller:
                        yield ObjectKey(metadata.namespace, owner.name)
        finally:
            await watcher.close()
