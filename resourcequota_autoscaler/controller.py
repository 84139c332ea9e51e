"""Main controller logic for the ResourceQuota Autoscaler."""

import logging
import threading
import time
from typing import Optional, Set

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from .config import (
    DEFAULT_WORKERS,
    MANAGED_BY_LABEL,
    MANAGED_BY_VALUE,
    REQUEST_TIMEOUT_SECONDS,
    RESYNC_INTERVAL_SECONDS,
    WATCH_RETRY_SECONDS,
    WATCH_TIMEOUT_SECONDS,
)
from .crd_client import ManagedResourceQuotaClient
from .nodes import NodeCounter
from .reconciler import ReconcileResult, Reconciler
from .synchronizer import QuotaSynchronizer
from .utils import make_key, split_key
from .workqueue import WorkQueue

logger = logging.getLogger(__name__)


class ResourceQuotaAutoscaler:
    """
    Controller that watches ManagedResourceQuota objects, their
    ResourceQuotas and the cluster's nodes, and reconciles each
    ManagedResourceQuota whenever any of them may have changed.
    """

    def __init__(
        self,
        namespace: str = "",
        dry_run: bool = False,
        workers: int = DEFAULT_WORKERS,
        resync_interval: float = RESYNC_INTERVAL_SECONDS,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        core_v1: Optional[client.CoreV1Api] = None,
        custom_api: Optional[client.CustomObjectsApi] = None
    ):
        """
        Initialize the controller.

        Args:
            namespace: Namespace to watch ("" for all namespaces)
            dry_run: If True, ResourceQuota writes are not persisted
            workers: Number of reconcile worker threads
            resync_interval: Seconds between full resyncs
            request_timeout: Timeout for each API call in seconds
        """
        self.namespace = namespace
        self.dry_run = dry_run
        self.workers = workers
        self.resync_interval = resync_interval
        self.v1 = core_v1 or client.CoreV1Api()

        self._stop_event = threading.Event()
        self.queue = WorkQueue()

        self.quota_client = ManagedResourceQuotaClient(custom_api, request_timeout=request_timeout)
        self.reconciler = Reconciler(
            quota_client=self.quota_client,
            node_counter=NodeCounter(self.v1, request_timeout=request_timeout),
            synchronizer=QuotaSynchronizer(self.v1, dry_run=dry_run, request_timeout=request_timeout),
            stop_event=self._stop_event,
            update_status=not dry_run,
        )

        self._lock = threading.Lock()
        self._known_quotas: Set[str] = set()
        self._node_names: Set[str] = set()

    def known_quotas(self) -> Set[str]:
        with self._lock:
            return set(self._known_quotas)

    def enqueue_all(self) -> int:
        """Queue every known ManagedResourceQuota for reconciliation."""
        keys = self.known_quotas()
        for key in keys:
            self.queue.add(key)
        return len(keys)

    def load_existing_quotas(self) -> int:
        """
        Load and queue existing ManagedResourceQuota objects on startup.

        Returns:
            Number of objects found
        """
        logger.info("Loading existing ManagedResourceQuotas...")
        quotas = self.quota_client.list(self.namespace)

        with self._lock:
            self._known_quotas.update(mrq.key for mrq in quotas)
        for mrq in quotas:
            self.queue.add(mrq.key)

        logger.info(f"Loaded {len(quotas)} existing ManagedResourceQuotas")
        return len(quotas)

    def handle_quota_event(self, event_type: str, quota_obj: dict) -> None:
        """
        Handle a ManagedResourceQuota watch event.

        Args:
            event_type: ADDED, MODIFIED or DELETED
            quota_obj: The custom object from the event
        """
        metadata = quota_obj.get("metadata", {})
        key = make_key(metadata.get("namespace", "default"), metadata.get("name", ""))

        with self._lock:
            if event_type == "DELETED":
                self._known_quotas.discard(key)
            else:
                self._known_quotas.add(key)

        logger.debug(f"ManagedResourceQuota {event_type}: {key}")
        self.queue.add(key)

    def handle_resource_quota_event(self, event_type: str, resource_quota) -> None:
        """Queue the owner of a managed ResourceQuota that changed."""
        labels = resource_quota.metadata.labels or {}
        if labels.get(MANAGED_BY_LABEL) != MANAGED_BY_VALUE:
            return

        key = make_key(resource_quota.metadata.namespace, resource_quota.metadata.name)
        logger.debug(f"ResourceQuota {event_type}: {key}")
        self.queue.add(key)

    def handle_node_event(self, event_type: str, node) -> None:
        """Queue every ManagedResourceQuota when the set of nodes changes."""
        name = node.metadata.name

        with self._lock:
            if event_type == "DELETED":
                changed = name in self._node_names
                self._node_names.discard(name)
            else:
                changed = name not in self._node_names
                self._node_names.add(name)

        if changed:
            count = self.enqueue_all()
            logger.debug(f"Node {event_type}: {name}, queued {count} ManagedResourceQuota(s)")

    def _watch_loop(self, name: str, stream_factory, handler) -> None:
        logger.info(f"Starting {name} watcher...")

        while not self._stop_event.is_set():
            try:
                for event in stream_factory():
                    if self._stop_event.is_set():
                        break
                    handler(event["type"], event["object"])
            except ApiException as e:
                logger.error(f"{name} watch error: {e.status} {e.reason}")
                self._stop_event.wait(WATCH_RETRY_SECONDS)
            except Exception as e:
                logger.error(f"Unexpected error in {name} watcher: {e}")
                self._stop_event.wait(WATCH_RETRY_SECONDS)

    def watch_quotas(self) -> None:
        """Watch for ManagedResourceQuota events in a loop."""
        self._watch_loop(
            "ManagedResourceQuota",
            lambda: self.quota_client.watch(namespace=self.namespace, timeout=WATCH_TIMEOUT_SECONDS),
            self.handle_quota_event,
        )

    def _resource_quota_stream(self):
        w = watch.Watch()
        selector = f"{MANAGED_BY_LABEL}={MANAGED_BY_VALUE}"
        if self.namespace:
            return w.stream(
                self.v1.list_namespaced_resource_quota,
                namespace=self.namespace,
                label_selector=selector,
                timeout_seconds=WATCH_TIMEOUT_SECONDS
            )
        return w.stream(
            self.v1.list_resource_quota_for_all_namespaces,
            label_selector=selector,
            timeout_seconds=WATCH_TIMEOUT_SECONDS
        )

    def watch_resource_quotas(self) -> None:
        """Watch for changes to managed ResourceQuotas in a loop."""
        self._watch_loop("ResourceQuota", self._resource_quota_stream, self.handle_resource_quota_event)

    def watch_nodes(self) -> None:
        """Watch for Node events in a loop."""
        self._watch_loop(
            "Node",
            lambda: watch.Watch().stream(self.v1.list_node, timeout_seconds=WATCH_TIMEOUT_SECONDS),
            self.handle_node_event,
        )

    def periodic_resync(self) -> None:
        """Periodically queue all ManagedResourceQuotas."""
        logger.info(f"Starting periodic resync (interval: {self.resync_interval}s)")

        while not self._stop_event.wait(self.resync_interval):
            count = self.enqueue_all()
            logger.debug(f"Periodic resync queued {count} ManagedResourceQuota(s)")

    def process_next_item(self, timeout: Optional[float] = 1.0) -> bool:
        """
        Reconcile the next queued key.

        Returns:
            False if no key was available
        """
        key = self.queue.get(timeout=timeout)
        if key is None:
            return False

        try:
            namespace, name = split_key(key)
            try:
                result = self.reconciler.reconcile(namespace, name)
            except Exception as e:
                logger.exception(f"Unexpected error reconciling {key}: {e}")
                result = ReconcileResult(requeue=True, error=e)

            if result.failed:
                self.queue.add_rate_limited(key)
            elif result.requeue:
                self.queue.forget(key)
                self.queue.add(key)
            else:
                self.queue.forget(key)
        finally:
            self.queue.done(key)

        return True

    def run_worker(self) -> None:
        while not self._stop_event.is_set():
            self.process_next_item()

    def run(self) -> None:
        """Run the controller."""
        logger.info("=" * 60)
        logger.info("Starting ResourceQuota Autoscaler")
        logger.info("=" * 60)
        logger.info(f"Namespace: {self.namespace or 'all namespaces'}")
        logger.info(f"Dry run: {self.dry_run}")
        logger.info(f"Workers: {self.workers}")

        self.load_existing_quotas()

        threads = [
            threading.Thread(target=self.watch_quotas, name="quota-watcher", daemon=True),
            threading.Thread(target=self.watch_resource_quotas, name="resourcequota-watcher", daemon=True),
            threading.Thread(target=self.watch_nodes, name="node-watcher", daemon=True),
            threading.Thread(target=self.periodic_resync, name="periodic-resync", daemon=True),
        ]
        threads.extend(
            threading.Thread(target=self.run_worker, name=f"worker-{i}", daemon=True)
            for i in range(self.workers)
        )

        for thread in threads:
            thread.start()

        logger.info("Controller is running. Press Ctrl+C to stop.")

        # Keep main thread alive
        try:
            while not self._stop_event.is_set():
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Shutdown requested...")
            self.stop()

    def stop(self) -> None:
        """Stop the controller."""
        logger.info("Stopping controller...")
        self._stop_event.set()
        self.queue.shut_down()
