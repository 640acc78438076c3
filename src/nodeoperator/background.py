"""Node operator background processing."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import timedelta

from aiojobs import Scheduler
from safir.datetime import current_datetime
from safir.slack.webhook import SlackWebhookClient
from structlog.stdlib import BoundLogger

from .constants import KUBERNETES_REQUEST_TIMEOUT
from .models.domain.kubernetes import ObjectKey
from .services.reconciler import NodeReconciler
from .services.workqueue import WorkQueue
from .storage.kubernetes.custom import NodeIntentStorage
from .storage.kubernetes.pod import PodStorage
from .timeout import Timeout

__all__ = ["BackgroundTaskManager"]


class BackgroundTaskManager:
    """Manage node operator background tasks.

    While the operator is running, it performs several continuous background
    tasks:

    #. Watch ``Node`` objects and queue every node that changes.
    #. Watch pods owned by nodes and queue the owning node.
    #. Periodically queue every node, in case an event was missed.
    #. Run a pool of workers that take nodes from the queue and reconcile
       them.

    This class only does the task management. All of the work of these
    tasks is done by the reconciler and the storage layer.

    Parameters
    ----------
    reconciler
        Node reconciler.
    queue
        Queue of nodes to reconcile.
    intent_storage
        Storage for ``Node`` objects.
    pod_storage
        Storage for pods.
    namespace
        Namespace to watch, or `None` for all namespaces.
    workers
        Number of nodes to reconcile concurrently.
    resync_interval
        How often to queue every node.
    failure_backoff
        How long to wait before retrying after an uncaught exception.
    slack_client
        Optional Slack webhook client for alerts.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        reconciler: NodeReconciler,
        queue: WorkQueue,
        intent_storage: NodeIntentStorage,
        pod_storage: PodStorage,
        namespace: str | None,
        workers: int,
        resync_interval: timedelta,
        failure_backoff: timedelta,
        slack_client: SlackWebhookClient | None,
        logger: BoundLogger,
    ) -> None:
        self._reconciler = reconciler
        self._queue = queue
        self._intents = intent_storage
        self._pods = pod_storage
        self._namespace = namespace
        self._workers = workers
        self._resync_interval = resync_interval
        self._failure_backoff = failure_backoff
        self._slack = slack_client
        self._logger = logger

        self._scheduler: Scheduler | None = None

    async def start(self) -> None:
        """Start all background tasks.

        Every existing node is queued in the foreground first, so that the
        workers start with a complete view of the cluster.
        """
        if self._scheduler:
            msg = "Background tasks already running, cannot start"
            self._logger.warning(msg)
            return
        self._scheduler = Scheduler()

        self._logger.info("Queuing existing nodes")
        await self.resync()

        coros = [
            self._loop(self.resync, self._resync_interval, "resyncing nodes"),
            self._watch_loop(self._watch_nodes, "watching nodes"),
            self._watch_loop(
                lambda: self._pods.watch_node_pods(self._namespace),
                "watching node pods",
            ),
        ]
        coros.extend(self._worker(n) for n in range(self._workers))
        self._logger.info("Starting background tasks", workers=self._workers)
        for coro in coros:
            await self._scheduler.spawn(coro)

    async def stop(self) -> None:
        """Stop the background tasks."""
        if not self._scheduler:
            msg = "Background tasks were already stopped"
            self._logger.warning(msg)
            return
        self._logger.info("Stopping background tasks")
        self._queue.close()
        await self._scheduler.close()
        self._scheduler = None

    async def resync(self) -> None:
        """Queue every node."""
        timeout = Timeout("List nodes", KUBERNETES_REQUEST_TIMEOUT)
        keys = await self._intents.list_keys(self._namespace, timeout)
        for key in keys:
            self._queue.add(key)
        self._logger.debug("Queued all nodes", count=len(keys))

    async def _loop(
        self,
        call: Callable[[], Awaitable[None]],
        interval: timedelta,
        description: str,
    ) -> None:
        """Run a coroutine on every interval, after a first delay."""
        while True:
            await asyncio.sleep(interval.total_seconds())
            try:
                await call()
            except Exception as e:
                msg = f"Uncaught exception {description}"
                self._logger.exception(msg)
                if self._slack:
                    await self._slack.post_uncaught_exception(e)

    async def _watch_loop(
        self,
        watch: Callable[[], AsyncIterator[ObjectKey]],
        description: str,
    ) -> None:
        """Queue every key yielded by a watch, restarting it on failure."""
        while True:
            try:
                async for key in watch():
                    self._queue.add(key)
            except Exception as e:
                self._logger.exception(f"Uncaught exception {description}")
                if self._slack:
                    await self._slack.post_uncaught_exception(e)
            pause = self._failure_backoff.total_seconds()
            self._logger.warning(f"Pausing {description} for {pause}s")
            await asyncio.sleep(pause)

    async def _watch_nodes(self) -> AsyncIterator[ObjectKey]:
        async for _, key in self._intents.watch_keys(self._namespace):
            yield key

    async def _worker(self, number: int) -> None:
        """Reconcile nodes from the queue until cancelled."""
        logger = self._logger.bind(worker=number)
        while True:
            key = await self._queue.get()
            start = current_datetime(microseconds=True)
            try:
                result = await self._reconciler.reconcile(key)
            except Exception as e:
                elapsed = current_datetime(microseconds=True) - start
                logger.exception(
                    "Uncaught exception reconciling node",
                    node=key.name,
                    namespace=key.namespace,
                    elapsed=elapsed.total_seconds(),
                )
                if self._slack:
                    await self._slack.post_uncaught_exception(e)
                self._queue.add_after(key, self._failure_backoff)
            else:
                if result.requeue_after:
                    self._queue.forget(key)
                    self._queue.add_after(key, result.requeue_after)
                elif result.requeue:
                    delay = self._queue.add_rate_limited(key)
                    logger.debug(
                        "Retrying node",
                        node=key.name,
                        namespace=key.namespace,
                        delay=delay.total_seconds(),
                    )
                else:
                    self._queue.forget(key)
            finally:
                self._queue.done(key)
