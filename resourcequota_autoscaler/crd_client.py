"""Client for interacting with the ManagedResourceQuota CRD."""

import logging
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from .config import CRD_GROUP, CRD_VERSION, CRD_PLURAL, REQUEST_TIMEOUT_SECONDS
from .models import ManagedResourceQuota

logger = logging.getLogger(__name__)


class ManagedResourceQuotaClient:
    """Client for ManagedResourceQuota custom resources."""

    def __init__(
        self,
        custom_api: Optional[client.CustomObjectsApi] = None,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS
    ):
        """Initialize the CRD client."""
        self.custom_api = custom_api or client.CustomObjectsApi()
        self.request_timeout = request_timeout

    def list(self, namespace: str = "") -> List[ManagedResourceQuota]:
        """
        List all ManagedResourceQuota objects.

        Args:
            namespace: Namespace to list from ("" for all namespaces)

        Returns:
            List of parsed objects
        """
        if namespace:
            response = self.custom_api.list_namespaced_custom_object(
                group=CRD_GROUP,
                version=CRD_VERSION,
                namespace=namespace,
                plural=CRD_PLURAL,
                _request_timeout=self.request_timeout
            )
        else:
            response = self.custom_api.list_cluster_custom_object(
                group=CRD_GROUP,
                version=CRD_VERSION,
                plural=CRD_PLURAL,
                _request_timeout=self.request_timeout
            )
        return [ManagedResourceQuota.from_crd(item) for item in response.get("items", [])]

    def get(self, name: str, namespace: str) -> Optional[ManagedResourceQuota]:
        """
        Get a specific ManagedResourceQuota.

        Args:
            name: Object name
            namespace: Object namespace

        Returns:
            Parsed object or None if not found

        Raises:
            ApiException: for any error other than 404
        """
        try:
            obj = self.custom_api.get_namespaced_custom_object(
                group=CRD_GROUP,
                version=CRD_VERSION,
                namespace=namespace,
                plural=CRD_PLURAL,
                name=name,
                _request_timeout=self.request_timeout
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return ManagedResourceQuota.from_crd(obj)

    def update_status(self, mrq: ManagedResourceQuota, status: Dict[str, Any]) -> bool:
        """
        Merge-patch the status of a ManagedResourceQuota.

        The status is merge-patched, so keys set to None are removed from
        the object. The write is skipped when nothing but the transition
        time would change, so status updates do not trigger further
        reconciles.

        Args:
            mrq: The object whose status is written
            status: New status fields (phase, message, nodeCount, hard, ...)

        Returns:
            True if a status was written, False if unchanged or on error
        """
        current = {
            k: v for k, v in mrq.status.items()
            if k != "lastTransitionTime" and v is not None
        }
        if current == {k: v for k, v in status.items() if v is not None}:
            return False

        body = dict(status)
        body["lastTransitionTime"] = datetime.now(timezone.utc).isoformat()

        try:
            self.custom_api.patch_namespaced_custom_object_status(
                group=CRD_GROUP,
                version=CRD_VERSION,
                namespace=mrq.namespace,
                plural=CRD_PLURAL,
                name=mrq.name,
                body={"status": body},
                _request_timeout=self.request_timeout
            )
        except ApiException as e:
            logger.warning(f"Error updating status of {mrq.key}: {e.status} {e.reason}")
            return False

        logger.debug(f"Updated status for {mrq.key}: {status.get('phase')}")
        return True

    def watch(self, namespace: str = "", timeout: int = 300):
        """
        Create a watch stream for ManagedResourceQuota objects.

        Args:
            namespace: Namespace to watch ("" for all namespaces)
            timeout: Watch timeout in seconds

        Yields:
            Watch events with raw object dicts
        """
        w = watch.Watch()

        if namespace:
            stream = w.stream(
                self.custom_api.list_namespaced_custom_object,
                group=CRD_GROUP,
                version=CRD_VERSION,
                namespace=namespace,
                plural=CRD_PLURAL,
                timeout_seconds=timeout
            )
        else:
            stream = w.stream(
                self.custom_api.list_cluster_custom_object,
                group=CRD_GROUP,
                version=CRD_VERSION,
                plural=CRD_PLURAL,
                timeout_seconds=timeout
            )

        try:
            for event in stream:
                yield event
        finally:
            w.stop()
