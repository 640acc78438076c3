"""Global constants."""

from datetime import timedelta
from pathlib import Path

__all__ = [
    "CERTIFICATE_CA_KEY",
    "CERTIFICATE_CERT_KEY",
    "CERTIFICATE_KEY_KEY",
    "CERTIFICATE_PROFILE",
    "CNI_VERSION",
    "CONFIGURATION_PATH",
    "CREDENTIAL_PASSWORD_KEY",
    "CREDENTIAL_USERNAME_KEY",
    "DEFAULT_NODE_CONFIG_NAME",
    "DEVICE_SESSION_TIMEOUT",
    "FAILURE_BACKOFF",
    "KUBERNETES_DELETE_TIMEOUT",
    "KUBERNETES_REQUEST_TIMEOUT",
    "NAD_API_GROUP",
    "NAD_API_VERSION",
    "NAD_PLURAL",
    "NETWORKS_ANNOTATION",
    "NODE_API_GROUP",
    "NODE_API_VERSION",
    "NODE_CONFIG_KIND",
    "NODE_CONFIG_PLURAL",
    "NODE_FINALIZER",
    "NODE_KIND",
    "NODE_PLURAL",
    "NOT_READY_REQUEUE_DELAY",
    "RESYNC_INTERVAL",
    "REVISION_HASH_ANNOTATION",
    "ROOT_LOGGER",
    "TOPOLOGY_LABEL",
    "WIRING_ANNOTATION",
]

CERTIFICATE_CA_KEY = "ca.crt"
"""Key of the certificate authority in a node certificate secret."""

CERTIFICATE_CERT_KEY = "tls.crt"
"""Key of the serving certificate in a node certificate secret."""

CERTIFICATE_KEY_KEY = "tls.key"
"""Key of the private key in a node certificate secret."""

CERTIFICATE_PROFILE = "k8s-profile"
"""Name of the TLS server profile installed on devices during bootstrap."""

CNI_VERSION = "0.3.1"
"""CNI specification version written into network attachment configs."""

CONFIGURATION_PATH = Path("/etc/node-operator/config.yaml")
"""Default path to operator configuration."""

CREDENTIAL_PASSWORD_KEY = "password"
"""Key of the device password in a provider credential secret."""

CREDENTIAL_USERNAME_KEY = "username"
"""Key of the device username in a provider credential secret."""

DEFAULT_NODE_CONFIG_NAME = "default"
"""Name of the ``NodeConfig`` used when no better match exists."""

DEVICE_SESSION_TIMEOUT = timedelta(seconds=5)
"""Default timeout for each operation on a device command session."""

FAILURE_BACKOFF = timedelta(seconds=10)
"""How long to wait before retrying a node whose reconcile raised."""

KUBERNETES_DELETE_TIMEOUT = timedelta(minutes=1)
"""How long to wait for deletion of an object to finish."""

KUBERNETES_REQUEST_TIMEOUT = timedelta(seconds=30)
"""Timeout for a single Kubernetes API call made outside a reconcile."""

NAD_API_GROUP = "k8s.cni.cncf.io"
"""API group of ``NetworkAttachmentDefinition`` objects."""

NAD_API_VERSION = "v1"
"""API version of ``NetworkAttachmentDefinition`` objects."""

NAD_PLURAL = "network-attachment-definitions"
"""API plural of ``NetworkAttachmentDefinition`` objects."""

NETWORKS_ANNOTATION = "k8s.v1.cni.cncf.io/networks"
"""Pod annotation listing the network attachments to wire in."""

NODE_API_GROUP = "inv.nephio.org"
"""API group of the ``Node`` and ``NodeConfig`` custom resources."""

NODE_API_VERSION = "v1alpha1"
"""API version of the ``Node`` and ``NodeConfig`` custom resources."""

NODE_CONFIG_KIND = "NodeConfig"
"""Kind of the node parameters custom resource."""

NODE_CONFIG_PLURAL = "nodeconfigs"
"""API plural of the node parameters custom resource."""

NODE_FINALIZER = "nodedeployer.nephio.com/finalizer"
"""Finalizer that blocks deletion of a ``Node`` until it is cleaned up."""

NODE_KIND = "Node"
"""Kind of the node intent custom resource."""

NODE_PLURAL = "nodes"
"""API plural of the node intent custom resource."""

NOT_READY_REQUEUE_DELAY = timedelta(seconds=5)
"""How long to wait before checking a workload that is not yet ready."""

RESYNC_INTERVAL = timedelta(minutes=10)
"""How frequently to requeue every ``Node`` regardless of events."""

REVISION_HASH_ANNOTATION = "inv.nephio.org/revision-hash"
"""Pod annotation holding the hash of the pod spec it was created from.

Pods cannot be changed in place, so a pod whose hash differs from the hash of
the freshly built spec is deleted and recreated.
"""

ROOT_LOGGER = "nodeoperator"
"""Name of the root logger for the operator."""

TOPOLOGY_LABEL = "nephio.org/topology"
"""Pod label holding the topology (namespace) the node belongs to."""

WIRING_ANNOTATION = "nephio.org/wiring"
"""Pod annotation telling the wiring controller to connect this pod."""
