"""Exceptions for the network node operator."""

from collections.abc import Iterable
from datetime import datetime
from typing import Self, override

from kubernetes_asyncio.client import ApiException
from pydantic import ValidationError
from safir.datetime import format_datetime_for_logging
from safir.slack.blockkit import (
    SlackBaseField,
    SlackCodeBlock,
    SlackException,
    SlackMessage,
    SlackTextBlock,
    SlackTextField,
)

__all__ = [
    "BootstrapError",
    "CertificateError",
    "InvalidObjectError",
    "KubernetesError",
    "MissingObjectError",
    "MissingSecretError",
    "NotReadyError",
    "NotSupportedError",
    "OperationTimeoutError",
    "UnsupportedModelError",
]


class BootstrapError(SlackException):
    """Pushing the initial configuration to a device failed.

    Parameters
    ----------
    message
        Summary of error, normally the error from the command session.
    address
        Address of the device being configured.
    command
        Command that was being sent when the failure happened, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        address: str | None = None,
        command: str | None = None,
    ) -> None:
        super().__init__(message)
        self.address = address
        self.command = command

    @override
    def to_slack(self) -> SlackMessage:
        """Convert to a Slack message for Slack alerting.

        Command text is deliberately left out since it may contain key
        material.

        Returns
        -------
        safir.slack.blockkit.SlackMessage
            Slack message suitable for posting as an alert.
        """
        message = super().to_slack()
        if self.address:
            field = SlackTextField(heading="Device", text=self.address)
            message.fields.append(field)
        return message


class CertificateError(BootstrapError):
    """A PEM payload needed for bootstrap could not be extracted."""


class InvalidObjectError(SlackException):
    """A Kubernetes object the operator depends on is malformed.

    Parameters
    ----------
    message
        Summary error message.
    error
        Detailed error message, possibly multi-line.
    """

    @classmethod
    def from_exception(
        cls, kind: str, namespace: str, name: str, exc: ValidationError
    ) -> Self:
        """Create an exception from a Pydantic parse failure.

        Parameters
        ----------
        kind
            Kind of the malformed object.
        namespace
            Namespace of the malformed object.
        name
            Name of the malformed object.
        exc
            Pydantic exception.

        Returns
        -------
        InvalidObjectError
            Constructed exception.
        """
        error = f"{type(exc).__name__}: {exc!s}"
        return cls(f"Unable to parse {kind} {namespace}/{name}", error)

    def __init__(self, message: str, error: str | None = None) -> None:
        super().__init__(message)
        self.error = error

    @override
    def to_slack(self) -> SlackMessage:
        """Convert to a Slack message for Slack alerting.

        Returns
        -------
        safir.slack.blockkit.SlackMessage
            Slack message suitable for posting as an alert.
        """
        message = super().to_slack()
        if self.error:
            block = SlackCodeBlock(heading="Error", code=self.error)
            message.blocks.append(block)
        return message


class KubernetesError(SlackException):
    """An API call to Kubernetes failed.

    Parameters
    ----------
    message
        Summary of error.
    kind
        Kind of object being acted on.
    namespace
        Namespace of object being acted on.
    name
        Name of object being acted on.
    status
        Status code of failure, if any.
    body
        Body of failure message, if any.
    """

    @classmethod
    def from_exception(
        cls,
        message: str,
        exc: ApiException,
        *,
        kind: str | None = None,
        namespace: str | None = None,
        name: str | None = None,
    ) -> Self:
        """Create an exception from a Kubernetes API exception.

        Parameters
        ----------
        message
            Brief explanation of what was being attempted.
        exc
            Kubernetes API exception.
        kind
            Kind of object being acted on.
        namespace
            Namespace of object being acted on.
        name
            Name of object being acted on.

        Returns
        -------
        KubernetesError
            Newly-created exception.
        """
        return cls(
            message,
            kind=kind,
            namespace=namespace,
            name=name,
            status=exc.status,
            body=exc.body if exc.body else exc.reason,
        )

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        namespace: str | None = None,
        name: str | None = None,
        status: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.status = status
        self.body = body

    @override
    def __str__(self) -> str:
        result = self._summary()
        if self.body:
            result += f": {self.body}"
        return result

    @override
    def to_slack(self) -> SlackMessage:
        """Convert to a Slack message for Slack alerting.

        Returns
        -------
        safir.slack.blockkit.SlackMessage
            Slack message suitable for posting as an alert.
        """
        message = super().to_slack()
        message.message = self._summary()
        if self.status:
            field = SlackTextField(heading="Status", text=str(self.status))
            message.fields.append(field)
        if self.body:
            code = SlackCodeBlock(heading="Error", code=self.body)
            message.blocks.append(code)
        return message

    def _summary(self) -> str:
        """Summarize the exception in a single line."""
        result = self.message
        if self.name or self.kind or self.status:
            details = []
            if self.name:
                kind = f"{self.kind} " if self.kind else ""
                if self.namespace:
                    details.append(f"{kind}{self.namespace}/{self.name}")
                else:
                    details.append(f"{kind}{self.name}")
            elif self.kind:
                details.append(self.kind)
            if self.status:
                details.append(f"status {self.status}")
            result += " (" + ", ".join(details) + ")"
        return result


class MissingObjectError(SlackException):
    """An expected Kubernetes object is missing.

    Parameters
    ----------
    message
        Summary of error.
    kind
        Kind of Kubernetes object that is missing.
    namespace
        Namespace of object being acted on.
    name
        Name of object being acted on.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: str,
        namespace: str | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.namespace = namespace
        self.name = name

    @override
    def to_slack(self) -> SlackMessage:
        """Convert to a Slack message for Slack alerting.

        Returns
        -------
        safir.slack.blockkit.SlackMessage
            Slack message suitable for posting as an alert.
        """
        message = super().to_slack()
        if self.name:
            if self.namespace:
                obj = f"{self.kind} {self.namespace}/{self.name}"
            else:
                obj = f"{self.kind} {self.name}"
        elif self.namespace:
            obj = f"{self.kind} (namespace: {self.namespace})"
        else:
            obj = self.kind
        message.blocks.append(SlackTextBlock(heading="Object", text=obj))
        return message


class MissingSecretError(MissingObjectError):
    """A secret needed to bootstrap a node was not found.

    Parameters
    ----------
    name
        Name of secret.
    namespace
        Namespace of secret.
    key
        If given, indicates the secret itself was found but the desired key
        within that secret was missing.
    """

    def __init__(
        self, name: str, namespace: str, key: str | None = None
    ) -> None:
        if key:
            message = f"No key {key} in secret {namespace}/{name}"
        else:
            message = f"Secret {namespace}/{name} does not exist"
        super().__init__(
            message, kind="Secret", namespace=namespace, name=name
        )


class NotReadyError(SlackException):
    """The workload for a node exists but cannot be configured yet.

    This is a transient condition. It is reported as an ``Unknown`` status
    and the node is checked again shortly.
    """


class NotSupportedError(SlackException):
    """No driver is registered for the requested provider.

    Parameters
    ----------
    provider
        Provider that was requested.
    supported
        Providers that are registered.
    """

    def __init__(self, provider: str, supported: Iterable[str]) -> None:
        self.provider = provider
        self.supported = sorted(supported)
        names = ", ".join(self.supported)
        msg = (
            f'provider "{provider}" is not supported. supported providers'
            f' are "{names}"'
        )
        super().__init__(msg)


class OperationTimeoutError(SlackException):
    """Wraps `TimeoutError` with additional context and Slack support.

    Parameters
    ----------
    operation
        Operation that timed out.
    node
        Node associated with operation, if any.
    started_at
        Start time of the operation.
    failed_at
        Time at which the operation timed out.
    """

    def __init__(
        self,
        operation: str,
        node: str | None = None,
        *,
        started_at: datetime,
        failed_at: datetime,
    ) -> None:
        self.started_at = started_at
        self.node = node
        elapsed = failed_at - started_at
        msg = f"{operation} timed out after {elapsed.total_seconds()}s"
        super().__init__(msg, failed_at=failed_at)

    @override
    def to_slack(self) -> SlackMessage:
        """Format the exception as a Slack message.

        Returns
        -------
        safir.slack.blockkit.SlackMessage
            Slack message suitable for posting with
            `~safir.slack.webhook.SlackWebhookClient`.
        """
        started_at = format_datetime_for_logging(self.started_at)
        failed_at = format_datetime_for_logging(self.failed_at)
        fields: list[SlackBaseField] = [
            SlackTextField(heading="Started at", text=started_at),
            SlackTextField(heading="Failed at", text=failed_at),
        ]
        if self.node:
            fields.append(SlackTextField(heading="Node", text=self.node))
        return SlackMessage(message=str(self), fields=fields)


class UnsupportedModelError(SlackException):
    """The requested device model is not in the provider's variant catalog.

    Parameters
    ----------
    model
        Model that was requested.
    provider
        Provider whose catalog was consulted.
    """

    def __init__(self, model: str, provider: str) -> None:
        self.model = model
        self.provider = provider
        msg = (
            "cannot deploy pod, variant not provided in the configmap,"
            f" got: {model}"
        )
        super().__init__(msg)
