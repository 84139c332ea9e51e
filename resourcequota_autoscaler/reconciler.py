"""Reconciliation logic for the ResourceQuota Autoscaler."""

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Dict, Any

from kubernetes.client.rest import ApiException

from .config import PHASE_ERROR, PHASE_READY
from .crd_client import ManagedResourceQuotaClient
from .errors import ReconcileCancelled
from .models import ManagedResourceQuota
from .nodes import NodeCounter
from .renderer import Renderer
from .synchronizer import QuotaSynchronizer, SyncAction
from .utils import make_key, serialize_hard

logger = logging.getLogger(__name__)


def describe_error(error: Exception) -> str:
    """Short description of an error for logs and status messages."""
    if isinstance(error, ApiException):
        return f"{error.status} {error.reason}"
    return str(error)


@dataclass
class ReconcileResult:
    """Outcome of a single reconciliation cycle."""
    requeue: bool = False
    error: Optional[Exception] = None
    action: Optional[SyncAction] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class Reconciler:
    """
    Drives one ManagedResourceQuota towards its rendered ResourceQuota.

    Each call to reconcile() re-reads all state, so the reconciler can be
    shared by workers handling different objects concurrently.
    """

    def __init__(
        self,
        quota_client: ManagedResourceQuotaClient,
        node_counter: NodeCounter,
        synchronizer: QuotaSynchronizer,
        renderer: Optional[Renderer] = None,
        stop_event: Optional[threading.Event] = None,
        update_status: bool = True
    ):
        """
        Initialize the reconciler.

        Args:
            quota_client: Reads ManagedResourceQuota objects and writes status
            node_counter: Counts cluster nodes
            synchronizer: Converges the owned ResourceQuota
            renderer: Renders limit expressions
            stop_event: When set, in-flight cycles are cancelled between steps
            update_status: If False, status is never written
        """
        self.quota_client = quota_client
        self.node_counter = node_counter
        self.synchronizer = synchronizer
        self.renderer = renderer or Renderer()
        self.stop_event = stop_event or threading.Event()
        self.update_status = update_status

    def _check_cancelled(self, key: str) -> None:
        if self.stop_event.is_set():
            raise ReconcileCancelled(f"reconciliation of {key} cancelled")

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        """
        Run one reconciliation cycle for namespace/name.

        Never raises; failures are returned in the result with requeue set
        so the caller retries with backoff.
        """
        key = make_key(namespace, name)

        try:
            self._check_cancelled(key)
            mrq = self.quota_client.get(name, namespace)
        except Exception as e:
            return self._failed(key, None, "Failed to get ManagedResourceQuota", e)

        if mrq is None:
            logger.info(f"ManagedResourceQuota {key} not found. Ignoring since object must be deleted")
            return ReconcileResult()

        try:
            self._check_cancelled(key)
            node_count = self.node_counter.count()
        except Exception as e:
            return self._failed(key, mrq, "Failed to list Nodes", e)

        try:
            self._check_cancelled(key)
            rendered = self.renderer.render(mrq.hard, node_count)
        except Exception as e:
            return self._failed(key, mrq, "Failed to render hard limits", e)

        try:
            self._check_cancelled(key)
            action = self.synchronizer.sync(mrq, rendered)
        except Exception as e:
            return self._failed(key, mrq, "Failed to sync ResourceQuota", e)

        self._write_status(mrq, {
            "phase": PHASE_READY,
            "message": "ResourceQuota is in sync",
            "nodeCount": node_count,
            "hard": serialize_hard(rendered),
            "observedGeneration": mrq.generation,
        })

        if action in (SyncAction.CREATED, SyncAction.UPDATED):
            logger.info(f"ResourceQuota {key} {action.value} for {node_count} node(s)")
            return ReconcileResult(requeue=True, action=action)

        return ReconcileResult(action=action)

    def _failed(
        self,
        key: str,
        mrq: Optional[ManagedResourceQuota],
        message: str,
        error: Exception
    ) -> ReconcileResult:
        """Log a failed cycle, record it on the object and request a retry."""
        if isinstance(error, ReconcileCancelled):
            logger.info(f"Reconciliation of {key} cancelled")
            return ReconcileResult(requeue=True, error=error)

        logger.error(f"{message} for {key}: {describe_error(error)}")

        if mrq is not None:
            self._write_status(mrq, {
                "phase": PHASE_ERROR,
                "message": f"{message}: {describe_error(error)}",
                "nodeCount": None,
                "hard": None,
                "observedGeneration": mrq.generation,
            })

        return ReconcileResult(requeue=True, error=error)

    def _write_status(self, mrq: ManagedResourceQuota, status: Dict[str, Any]) -> None:
        if not self.update_status:
            return
        try:
            self.quota_client.update_status(mrq, status)
        except Exception as e:
            logger.warning(f"Failed to update status of {mrq.key}: {describe_error(e)}")
