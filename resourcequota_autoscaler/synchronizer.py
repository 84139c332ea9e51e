"""Convergence of live ResourceQuotas onto rendered limits."""

import enum
import logging
from typing import Dict, Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from .config import REQUEST_TIMEOUT_SECONDS
from .models import ManagedResourceQuota
from .utils import Quantity, hard_limits_equal, labels_for_resource_quota, serialize_hard

logger = logging.getLogger(__name__)


class SyncAction(enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    NOOP = "noop"


class QuotaSynchronizer:
    """Creates or updates the ResourceQuota owned by a ManagedResourceQuota."""

    def __init__(
        self,
        core_v1: Optional[client.CoreV1Api] = None,
        dry_run: bool = False,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS
    ):
        """
        Initialize the synchronizer.

        Args:
            core_v1: CoreV1Api used for ResourceQuota access
            dry_run: If True, writes are validated by the API server but not persisted
            request_timeout: Timeout for each API call in seconds
        """
        self.v1 = core_v1 or client.CoreV1Api()
        self.dry_run = dry_run
        self.request_timeout = request_timeout

    def _write_kwargs(self) -> dict:
        kwargs = {"_request_timeout": self.request_timeout}
        if self.dry_run:
            kwargs["dry_run"] = "All"
        return kwargs

    def build_resource_quota(
        self,
        owner: ManagedResourceQuota,
        rendered: Dict[str, Quantity]
    ) -> client.V1ResourceQuota:
        """
        Build a new ResourceQuota for the owner.

        Args:
            owner: The ManagedResourceQuota that owns the quota
            rendered: Rendered hard limits

        Returns:
            V1ResourceQuota with labels and a controller owner reference
        """
        return client.V1ResourceQuota(
            api_version="v1",
            kind="ResourceQuota",
            metadata=client.V1ObjectMeta(
                name=owner.name,
                namespace=owner.namespace,
                labels=labels_for_resource_quota(owner.name),
                owner_references=[
                    client.V1OwnerReference(
                        api_version=owner.api_version,
                        kind=owner.kind,
                        name=owner.name,
                        uid=owner.uid,
                        controller=True,
                        block_owner_deletion=True,
                    )
                ],
            ),
            spec=client.V1ResourceQuotaSpec(
                hard=serialize_hard(rendered),
                scopes=list(owner.scopes) or None,
                scope_selector=owner.scope_selector,
            ),
        )

    def sync(self, owner: ManagedResourceQuota, rendered: Dict[str, Quantity]) -> SyncAction:
        """
        Converge the owner's ResourceQuota onto the rendered limits.

        Args:
            owner: The ManagedResourceQuota being reconciled
            rendered: Rendered hard limits

        Returns:
            The action taken

        Raises:
            ApiException: for any read or write failure other than a missing quota
        """
        try:
            found = self.v1.read_namespaced_resource_quota(
                name=owner.name,
                namespace=owner.namespace,
                _request_timeout=self.request_timeout
            )
        except ApiException as e:
            if e.status != 404:
                raise
            found = None

        if found is None:
            quota = self.build_resource_quota(owner, rendered)
            logger.info(f"Creating ResourceQuota {owner.namespace}/{owner.name}")
            self.v1.create_namespaced_resource_quota(
                namespace=owner.namespace,
                body=quota,
                **self._write_kwargs()
            )
            return SyncAction.CREATED

        live_hard = found.spec.hard if found.spec else None
        if hard_limits_equal(live_hard, rendered):
            logger.debug(f"ResourceQuota {owner.namespace}/{owner.name} is up to date")
            return SyncAction.NOOP

        logger.info(
            f"Updating ResourceQuota {owner.namespace}/{owner.name}: "
            f"{live_hard or {}} -> {serialize_hard(rendered)}"
        )
        if found.spec is None:
            found.spec = client.V1ResourceQuotaSpec()
        found.spec.hard = serialize_hard(rendered)
        self.v1.replace_namespaced_resource_quota(
            name=owner.name,
            namespace=owner.namespace,
            body=found,
            **self._write_kwargs()
        )
        return SyncAction.UPDATED
