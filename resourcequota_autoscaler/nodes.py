"""Node counting for the ResourceQuota Autoscaler."""

import logging
from typing import Optional

from kubernetes import client

from .config import NODE_LIST_PAGE_SIZE, REQUEST_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class NodeCounter:
    """Counts the nodes registered in the cluster."""

    def __init__(
        self,
        core_v1: Optional[client.CoreV1Api] = None,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        page_size: int = NODE_LIST_PAGE_SIZE
    ):
        self.v1 = core_v1 or client.CoreV1Api()
        self.request_timeout = request_timeout
        self.page_size = page_size

    def count(self) -> int:
        """
        Return the number of Node objects in the cluster.

        Every registered node counts, regardless of readiness. API errors
        are raised unchanged.
        """
        total = 0
        continue_token = None

        while True:
            kwargs = {"limit": self.page_size, "_request_timeout": self.request_timeout}
            if continue_token:
                kwargs["_continue"] = continue_token

            node_list = self.v1.list_node(**kwargs)
            total += len(node_list.items or [])

            continue_token = node_list.metadata._continue if node_list.metadata else None
            if not continue_token:
                break

        logger.debug(f"Counted {total} node(s)")
        return total
