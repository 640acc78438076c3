"""Storage layer for Kubernetes custom objects."""

from collections.abc import AsyncIterator
from typing import Any

from kubernetes_asyncio import client
from kubernetes_asyncio.client import ApiClient, ApiException
from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from ...constants import (
    NAD_API_GROUP,
    NAD_API_VERSION,
    NAD_PLURAL,
    NODE_API_GROUP,
    NODE_API_VERSION,
    NODE_CONFIG_KIND,
    NODE_CONFIG_PLURAL,
    NODE_FINALIZER,
    NODE_KIND,
    NODE_PLURAL,
)
from ...exceptions import InvalidObjectError, KubernetesError
from ...models.domain.kubernetes import ObjectKey, WatchEventType
from ...models.domain.nad import NetworkAttachment
from ...models.domain.node import NodeConfig, NodeIntent
from ...timeout import Timeout
from .watcher import KubernetesWatcher

__all__ = [
    "CustomStorage",
    "NetworkAttachmentStorage",
    "NodeConfigStorage",
    "NodeIntentStorage",
]


class CustomStorage:
    """Storage layer for Kubernetes custom objects.

    Normally, this class should be subclassed to specialize it for a specific
    custom object type, which provides a slightly nicer API, but it can be
    used as-is if desired.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    group
        API group for the custom objects to handle.
    version
        API version for the custom objects to handle.
    plural
        API plural under which those custom objects are managed.
    kind
        Name of the custom object kind, used for error reporting.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        api_client: ApiClient,
        group: str,
        version: str,
        plural: str,
        kind: str,
        logger: BoundLogger,
    ) -> None:
        self._api = client.CustomObjectsApi(api_client)
        self._group = group
        self._version = version
        self._plural = plural
        self._kind = kind
        self._logger = logger

    async def create(
        self, namespace: str, body: dict[str, Any], timeout: Timeout
    ) -> None:
        """Create a new custom object.

        Parameters
        ----------
        namespace
            Namespace of the object.
        body
            Custom object to create.
        timeout
            Timeout on operation.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        name = body["metadata"]["name"]
        msg = f"Creating {self._kind}"
        self._logger.debug(msg, name=name, namespace=namespace)
        try:
            await self._api.create_namespaced_custom_object(
                self._group,
                self._version,
                namespace,
                self._plural,
                body,
                _request_timeout=timeout.left(),
            )
        except ApiException as e:
            raise KubernetesError.from_exception(
                "Error creating object",
                e,
                kind=self._kind,
                namespace=namespace,
                name=name,
            ) from e

    async def list(
        self, namespace: str | None, timeout: Timeout
    ) -> list[dict[str, Any]]:
        """List custom objects.

        Parameters
        ----------
        namespace
            Namespace in which to list custom objects, or `None` to list
            them in all namespaces.
        timeout
            Timeout on operation.

        Returns
        -------
        list of dict
            List of custom objects found.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        try:
            if namespace:
                objs = await self._api.list_namespaced_custom_object(
                    self._group,
                    self._version,
                    namespace,
                    self._plural,
                    _request_timeout=timeout.left(),
                )
            else:
                objs = await self._api.list_cluster_custom_object(
                    self._group,
                    self._version,
                    self._plural,
                    _request_timeout=timeout.left(),
                )
        except ApiException as e:
            raise KubernetesError.from_exception(
                "Error listing objects",
                e,
                kind=self._kind,
                namespace=namespace,
            ) from e
        return objs["items"]

    async def patch_status(
        self,
        name: str,
        namespace: str,
        status: dict[str, Any],
        timeout: Timeout,
    ) -> None:
        """Replace the status of a custom object.

        Parameters
        ----------
        name
            Name of the object.
        namespace
            Namespace of the object.
        status
            New status.
        timeout
            Timeout on operation.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        patch = [{"op": "replace", "path": "/status", "value": status}]
        try:
            await self._api.patch_namespaced_custom_object_status(
                self._group,
                self._version,
                namespace,
                self._plural,
                name,
                patch,
                _request_timeout=timeout.left(),
            )
        except ApiException as e:
            raise KubernetesError.from_exception(
                "Error updating object status",
                e,
                kind=self._kind,
                namespace=namespace,
                name=name,
            ) from e

    async def read(
        self, name: str, namespace: str, timeout: Timeout
    ) -> dict[str, Any] | None:
        """Read a custom object.

        Parameters
        ----------
        name
            Name of the custom object.
        namespace
            Namespace of the custom object.
        timeout
            Timeout on operation.

        Returns
        -------
        dict or None
            Custom object, or `None` if it does not exist.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        try:
            return await self._api.get_namespaced_custom_object(
                self._group,
                self._version,
                namespace,
                self._plural,
                name,
                _request_timeout=timeout.left(),
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise KubernetesError.from_exception(
                "Error reading object",
                e,
                kind=self._kind,
                namespace=namespace,
                name=name,
            ) from e

    async def replace(
        self, name: str, namespace: str, body: dict[str, Any], timeout: Timeout
    ) -> None:
        """Replace a custom object.

        Parameters
        ----------
        name
            Name of the object.
        namespace
            Namespace of the object.
        body
            New contents of the object. Include the resource version of the
            object this was derived from to detect conflicting writes.
        timeout
            Timeout on operation.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        msg = f"Replacing {self._kind}"
        self._logger.debug(msg, name=name, namespace=namespace)
        try:
            await self._api.replace_namespaced_custom_object(
                self._group,
                self._version,
                namespace,
                self._plural,
                name,
                body,
                _request_timeout=timeout.left(),
            )
        except ApiException as e:
            raise KubernetesError.from_exception(
                "Error replacing object",
                e,
                kind=self._kind,
                namespace=namespace,
                name=name,
            ) from e

    async def watch_keys(
        self, namespace: str | None
    ) -> AsyncIterator[tuple[WatchEventType, ObjectKey]]:
        """Watch for changes to custom objects of this kind.

        This watch will continue forever until cancelled.

        Parameters
        ----------
        namespace
            Namespace to watch, or `None` to watch all namespaces.

        Yields
        ------
        tuple of WatchEventType and ObjectKey
            Type of change and key of the object that changed.

        Raises
        ------
        KubernetesError
            Raised if there is some failure in a Kubernetes API call.
        """
        logger = self._logger.bind(namespace=namespace)
        logger.debug(f"Watching for {self._kind} changes")
        if namespace:
            method = self._api.list_namespaced_custom_object
        else:
            method = self._api.list_cluster_custom_object
        watcher = KubernetesWatcher(
            method=method,
            object_type=dict[str, Any],
            kind=self._kind,
            namespace=namespace,
            group=self._group,
            version=self._version,
            plural=self._plural,
            timeout=None,
            logger=logger,
        )
        try:
            async for event in watcher.watch():
                key = ObjectKey.from_metadata(event.object["metadata"])
                yield (event.action, key)
        finally:
            await watcher.close()


class NetworkAttachmentStorage(CustomStorage):
    """Storage layer for ``NetworkAttachmentDefinition`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        super().__init__(
            api_client=api_client,
            group=NAD_API_GROUP,
            version=NAD_API_VERSION,
            plural=NAD_PLURAL,
            kind="NetworkAttachmentDefinition",
            logger=logger,
        )

    async def apply(
        self, attachment: NetworkAttachment, timeout: Timeout
    ) -> bool:
        """Create or update a network attachment.

        Nothing is written if the stored attachment already has the desired
        configuration.

        Parameters
        ----------
        attachment
            Desired network attachment.
        timeout
            Timeout on operation.

        Returns
        -------
        bool
            Whether anything was written.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        body = attachment.to_object()
        name = attachment.name
        namespace = attachment.namespace
        current = await self.read(name, namespace, timeout)
        if current is None:
            await self.create(namespace, body, timeout)
            return True
        if current.get("spec") == body["spec"]:
            return False
        version = current["metadata"].get("resourceVersion")
        if version:
            body["metadata"]["resourceVersion"] = version
        await self.replace(name, namespace, body, timeout)
        return True


class NodeConfigStorage(CustomStorage):
    """Storage layer for ``NodeConfig`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        super().__init__(
            api_client=api_client,
            group=NODE_API_GROUP,
            version=NODE_API_VERSION,
            plural=NODE_CONFIG_PLURAL,
            kind=NODE_CONFIG_KIND,
            logger=logger,
        )

    async def get(
        self, name: str, namespace: str, timeout: Timeout
    ) -> NodeConfig | None:
        """Read and parse a ``NodeConfig``.

        Parameters
        ----------
        name
            Name of the config.
        namespace
            Namespace of the config.
        timeout
            Timeout on operation.

        Returns
        -------
        NodeConfig or None
            Parsed config, or `None` if it does not exist.

        Raises
        ------
        InvalidObjectError
            Raised if the object could not be parsed.
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        obj = await self.read(name, namespace, timeout)
        if obj is None:
            return None
        return self._parse(obj, namespace, name)

    async def list_configs(
        self, namespace: str, timeout: Timeout
    ) -> list[NodeConfig]:
        """List and parse all ``NodeConfig`` objects in a namespace.

        Parameters
        ----------
        namespace
            Namespace to list.
        timeout
            Timeout on operation.

        Returns
        -------
        list of NodeConfig
            Parsed configs.

        Raises
        ------
        InvalidObjectError
            Raised if any object could not be parsed.
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        objs = await self.list(namespace, timeout)
        return [
            self._parse(o, namespace, o["metadata"]["name"]) for o in objs
        ]

    def _parse(
        self, obj: dict[str, Any], namespace: str, name: str
    ) -> NodeConfig:
        try:
            return NodeConfig.model_validate(obj)
        except ValidationError as e:
            raise InvalidObjectError.from_exception(
                self._kind, namespace, name, e
            ) from e


class NodeIntentStorage(CustomStorage):
    """Storage layer for ``Node`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        super().__init__(
            api_client=api_client,
            group=NODE_API_GROUP,
            version=NODE_API_VERSION,
            plural=NODE_PLURAL,
            kind=NODE_KIND,
            logger=logger,
        )

    async def add_finalizer(self, key: ObjectKey, timeout: Timeout) -> bool:
        """Add the operator finalizer to a node if it is missing.

        Parameters
        ----------
        key
            Key of the node.
        timeout
            Timeout on operation.

        Returns
        -------
        bool
            Whether the node was modified.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        obj = await self.read(key.name, key.namespace, timeout)
        if obj is None:
            return False
        finalizers = obj["metadata"].get("finalizers") or []
        if NODE_FINALIZER in finalizers:
            return False
        obj["metadata"]["finalizers"] = [*finalizers, NODE_FINALIZER]
        await self.replace(key.name, key.namespace, obj, timeout)
        return True

    async def get(self, key: ObjectKey, timeout: Timeout) -> NodeIntent | None:
        """Read and parse a ``Node``.

        Parameters
        ----------
        key
            Key of the node.
        timeout
            Timeout on operation.

        Returns
        -------
        NodeIntent or None
            Parsed node, or `None` if it does not exist.

        Raises
        ------
        InvalidObjectError
            Raised if the object could not be parsed.
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        obj = await self.read(key.name, key.namespace, timeout)
        if obj is None:
            return None
        try:
            return NodeIntent.model_validate(obj)
        except ValidationError as e:
            raise InvalidObjectError.from_exception(
                self._kind, key.namespace, key.name, e
            ) from e

    async def list_keys(
        self, namespace: str | None, timeout: Timeout
    ) -> list[ObjectKey]:
        """List the keys of all nodes.

        Parameters
        ----------
        namespace
            Namespace to list, or `None` for all namespaces.
        timeout
            Timeout on operation.

        Returns
        -------
        list of ObjectKey
            Keys of all nodes found.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        objs = await self.list(namespace, timeout)
        return [ObjectKey.from_metadata(o["metadata"]) for o in objs]

    async def remove_finalizer(
        self, key: ObjectKey, timeout: Timeout
    ) -> bool:
        """Remove the operator finalizer from a node.

        Parameters
        ----------
        key
            Key of the node.
        timeout
            Timeout on operation.

        Returns
        -------
        bool
            Whether the node was modified.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        obj = await self.read(key.name, key.namespace, timeout)
        if obj is None:
            return False
        finalizers = obj["metadata"].get("finalizers") or []
        if NODE_FINALIZER not in finalizers:
            return False
        remaining = [f for f in finalizers if f != NODE_FINALIZER]
        obj["metadata"]["finalizers"] = remaining
        await self.replace(key.name, key.namespace, obj, timeout)
        return True

    async def update_status(
        self, key: ObjectKey, status: dict[str, Any], timeout: Timeout
    ) -> None:
        """Replace the status of a node.

        Parameters
        ----------
        key
            Key of the node.
        status
            Serialized status.
        timeout
            Timeout on operation.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        await self.patch_status(key.name, key.namespace, status, timeout)
