"""Generic Kubernetes object storage including delete.

Node pods are replaced whenever their revision hash drifts, which means
deleting the old pod and waiting for it to go away before creating the new
one. This module provides the delete and wait half of that on top of the
create and read support of the superclass.
"""

from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from kubernetes_asyncio.client import ApiException
from structlog.stdlib import BoundLogger

from ...exceptions import KubernetesError, OperationTimeoutError
from ...models.domain.kubernetes import KubernetesModel, WatchEventType
from ...timeout import Timeout
from .creator import KubernetesObjectCreator
from .watcher import KubernetesWatcher

__all__ = ["KubernetesObjectDeleter"]


class KubernetesObjectDeleter[T: KubernetesModel](KubernetesObjectCreator[T]):
    """Generic Kubernetes object storage supporting delete.

    Parameters
    ----------
    create_method
        Method to create this type of object.
    delete_method
        Method to delete this type of object.
    list_method
        Method to list this type of object, used to watch for deletion.
    read_method
        Method to read this type of object.
    object_type
        Type of object being acted on.
    kind
        Kubernetes kind of object being acted on.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        create_method: Callable[..., Awaitable[Any]],
        delete_method: Callable[..., Awaitable[Any]],
        list_method: Callable[..., Awaitable[Any]],
        read_method: Callable[..., Awaitable[Any]],
        object_type: type[T],
        kind: str,
        logger: BoundLogger,
    ) -> None:
        super().__init__(
            create_method=create_method,
            read_method=read_method,
            object_type=object_type,
            kind=kind,
            logger=logger,
        )
        self._delete = delete_method
        self._list = list_method

    async def delete(
        self,
        name: str,
        namespace: str,
        timeout: Timeout,
        *,
        wait: bool = False,
    ) -> None:
        """Delete a Kubernetes object.

        If the object does not exist, this is silently treated as success.

        Parameters
        ----------
        name
            Name of the object.
        namespace
            Namespace of the object.
        timeout
            Timeout on operation.
        wait
            Whether to wait for the object to be deleted.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        msg = f"Deleting {self._kind}"
        self._logger.debug(msg, name=name, namespace=namespace)
        try:
            await self._delete(
                name, namespace, _request_timeout=timeout.left()
            )
        except ApiException as e:
            if e.status == 404:
                return
            raise KubernetesError.from_exception(
                "Error deleting object",
                e,
                kind=self._kind,
                namespace=namespace,
                name=name,
            ) from e
        if wait:
            await self.wait_for_deletion(name, namespace, timeout)

    async def wait_for_deletion(
        self, name: str, namespace: str, timeout: Timeout
    ) -> None:
        """Wait for an object deletion to complete.

        Parameters
        ----------
        name
            Name of the object.
        namespace
            Namespace of the object.
        timeout
            How long to wait for the object to be deleted.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        logger = self._logger.bind(name=name, namespace=namespace)
        obj = await self.read(name, namespace, timeout)
        if not obj:
            return

        watcher = KubernetesWatcher(
            method=self._list,
            object_type=self._type,
            kind=self._kind,
            name=name,
            namespace=namespace,
            resource_version=obj.metadata.resource_version,
            timeout=timeout,
            logger=logger,
        )
        try:
            async with timeout.enforce():
                async for event in watcher.watch():
                    if event.action == WatchEventType.DELETED:
                        return
        except OperationTimeoutError:
            # A restarted watch can miss the delete event, so check one last
            # time before giving up.
            read_timeout = Timeout("Check deletion", timedelta(seconds=2))
            if not await self.read(name, namespace, read_timeout):
                return
            raise
        finally:
            await watcher.close()

        # Only reachable if something stopped the watcher.
        raise RuntimeError(f"Watch for deletion of {self._kind} {name} ended")
