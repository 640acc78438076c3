"""Generic Kubernetes object storage supporting only create and read.

Provides a generic Kubernetes object management class and instantiations of
that class for Kubernetes object types the operator only ever reads or
creates. Storage classes for object types that also need delete support
are built on
`~nodeoperator.storage.kubernetes.deleter.KubernetesObjectDeleter`.
"""

import base64
import binascii
from collections.abc import Awaitable, Callable
from typing import Any

from kubernetes_asyncio import client
from kubernetes_asyncio.client import (
    ApiClient,
    ApiException,
    V1ConfigMap,
    V1PersistentVolumeClaim,
    V1Secret,
)
from structlog.stdlib import BoundLogger

from ...exceptions import InvalidObjectError, KubernetesError
from ...models.domain.kubernetes import KubernetesModel
from ...timeout import Timeout

__all__ = [
    "ConfigMapStorage",
    "KubernetesObjectCreator",
    "PersistentVolumeClaimStorage",
    "SecretStorage",
]


class KubernetesObjectCreator[T: KubernetesModel]:
    """Generic Kubernetes object storage supporting create and read.

    This class provides a wrapper around any Kubernetes object type that
    implements create and read operations with logging and exception
    conversion.

    This class is not meant to be used directly by code outside of the
    Kubernetes storage layer. Use one of the kind-specific storage classes
    built on top of it instead.

    Parameters
    ----------
    create_method
        Method to create this type of object.
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
        read_method: Callable[..., Awaitable[Any]],
        object_type: type[T],
        kind: str,
        logger: BoundLogger,
    ) -> None:
        self._create = create_method
        self._read = read_method
        self._type = object_type
        self._kind = kind
        self._logger = logger

    async def create(self, namespace: str, body: T, timeout: Timeout) -> None:
        """Create a new Kubernetes object.

        Parameters
        ----------
        namespace
            Namespace of the object.
        body
            New object.
        timeout
            Timeout on operation.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        msg = f"Creating {self._kind}"
        self._logger.debug(msg, name=body.metadata.name, namespace=namespace)
        try:
            await self._create(
                namespace, body, _request_timeout=timeout.left()
            )
        except ApiException as e:
            raise KubernetesError.from_exception(
                "Error creating object",
                e,
                kind=self._kind,
                namespace=namespace,
                name=body.metadata.name,
            ) from e

    async def read(
        self, name: str, namespace: str, timeout: Timeout
    ) -> T | None:
        """Read a Kubernetes object.

        Parameters
        ----------
        name
            Name of the object.
        namespace
            Namespace of the object.
        timeout
            Timeout on operation.

        Returns
        -------
        typing.Any or None
            Kubernetes object, or `None` if it does not exist.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        try:
            return await self._read(
                name, namespace, _request_timeout=timeout.left()
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


class ConfigMapStorage(KubernetesObjectCreator[V1ConfigMap]):
    """Storage layer for ``ConfigMap`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        api = client.CoreV1Api(api_client)
        super().__init__(
            create_method=api.create_namespaced_config_map,
            read_method=api.read_namespaced_config_map,
            object_type=V1ConfigMap,
            kind="ConfigMap",
            logger=logger,
        )


class SecretStorage(KubernetesObjectCreator[V1Secret]):
    """Storage layer for ``Secret`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        api = client.CoreV1Api(api_client)
        super().__init__(
            create_method=api.create_namespaced_secret,
            read_method=api.read_namespaced_secret,
            object_type=V1Secret,
            kind="Secret",
            logger=logger,
        )

    async def read_data(
        self, name: str, namespace: str, timeout: Timeout
    ) -> dict[str, str] | None:
        """Read a secret and decode its data.

        Parameters
        ----------
        name
            Name of the secret.
        namespace
            Namespace of the secret.
        timeout
            Timeout on operation.

        Returns
        -------
        dict of str or None
            Decoded secret data, or `None` if the secret does not exist.

        Raises
        ------
        InvalidObjectError
            Raised if a value in the secret is not valid base64-encoded UTF-8.
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        secret = await self.read(name, namespace, timeout)
        if secret is None:
            return None
        try:
            return {
                k: base64.b64decode(v).decode()
                for k, v in (secret.data or {}).items()
            }
        except (binascii.Error, UnicodeDecodeError) as e:
            msg = f"Unable to decode Secret {namespace}/{name}"
            raise InvalidObjectError(msg, str(e)) from e


class PersistentVolumeClaimStorage(
    KubernetesObjectCreator[V1PersistentVolumeClaim]
):
    """Storage layer for ``PersistentVolumeClaim`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        api = client.CoreV1Api(api_client)
        super().__init__(
            create_method=api.create_namespaced_persistent_volume_claim,
            read_method=api.read_namespaced_persistent_volume_claim,
            object_type=V1PersistentVolumeClaim,
            kind="PersistentVolumeClaim",
            logger=logger,
        )

    async def ensure(
        self, claim: V1PersistentVolumeClaim, timeout: Timeout
    ) -> bool:
        """Create a claim if it does not already exist.

        Claims are never modified once created, since most of their spec is
        immutable.

        Parameters
        ----------
        claim
            Claim to create.
        timeout
            Timeout on operation.

        Returns
        -------
        bool
            `True` if the claim was created, `False` if it already existed.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        name = claim.metadata.name
        namespace = claim.metadata.namespace
        if await self.read(name, namespace, timeout):
            return False
        await self.create(namespace, claim, timeout)
        return True
