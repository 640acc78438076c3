"""Results of reconcile passes and observed workload state."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Self

from kubernetes_asyncio.client import V1Pod

__all__ = [
    "ReconcileResult",
    "WorkloadStatus",
]


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """What the work queue should do with a key after a reconcile pass."""

    requeue: bool = False
    """Whether to process the key again immediately."""

    requeue_after: timedelta | None = None
    """If set, process the key again after this delay."""


@dataclass(frozen=True, slots=True)
class WorkloadStatus:
    """Readiness of the pod backing a node."""

    ready: bool
    """Whether the pod can be bootstrapped."""

    addresses: list[str]
    """Pod IP addresses, in the order Kubernetes reports them."""

    message: str = ""
    """Why the pod is not ready, if it is not."""

    @classmethod
    def from_pod(cls, pod: V1Pod) -> Self:
        """Determine readiness from a pod.

        Only the first container status is considered, since node pods run a
        single container.

        Parameters
        ----------
        pod
            Pod to inspect.

        Returns
        -------
        WorkloadStatus
            Readiness of the pod.
        """
        status = pod.status
        if not status or not status.container_statuses:
            msg = "pod conditions empty"
            return cls(ready=False, addresses=[], message=msg)
        if not status.container_statuses[0].ready:
            msg = "pod not ready empty"
            return cls(ready=False, addresses=[], message=msg)
        if not status.pod_ips:
            return cls(ready=False, addresses=[], message="no ip provided")
        addresses = [p.ip for p in status.pod_ips if p.ip]
        return cls(ready=True, addresses=addresses)
