"""Shared fixtures for controller tests."""

import copy
from unittest.mock import MagicMock

import pytest
from kubernetes.client import (
    V1ListMeta,
    V1Node,
    V1NodeList,
    V1ObjectMeta,
    V1ResourceQuota,
    V1ResourceQuotaSpec,
)
from kubernetes.client.rest import ApiException

from resourcequota_autoscaler.models import ManagedResourceQuota


def api_error(status: int, reason: str = "") -> ApiException:
    return ApiException(status=status, reason=reason or f"HTTP {status}")


def make_crd(name="team-quota", namespace="team-a", hard=None, **template):
    """Build a ManagedResourceQuota custom object as the API returns it."""
    spec_template = {"hard": hard if hard is not None else {"pods": "{{.Nodes}}"}}
    spec_template.update(template)
    return {
        "apiVersion": "k8s-resourcequota-autoscaler.m21r.de/v1beta1",
        "kind": "ManagedResourceQuota",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": f"uid-{name}",
            "generation": 3,
        },
        "spec": {"template": spec_template},
    }


def merge_patch(target: dict, patch: dict) -> dict:
    """Apply a JSON merge patch (RFC 7386) to target in place."""
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            merge_patch(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


class FakeCustomObjectsApi:
    """In-memory CustomObjectsApi holding one custom object."""

    def __init__(self, obj: dict):
        self.obj = obj
        self.status_patches = []

    def get_namespaced_custom_object(self, group, version, namespace, plural, name, **kwargs):
        return copy.deepcopy(self.obj)

    def patch_namespaced_custom_object_status(self, group, version, namespace, plural, name, body, **kwargs):
        self.status_patches.append(copy.deepcopy(body))
        merge_patch(self.obj, body)
        return copy.deepcopy(self.obj)


def make_mrq(**kwargs) -> ManagedResourceQuota:
    return ManagedResourceQuota.from_crd(make_crd(**kwargs))


def make_resource_quota(name="team-quota", namespace="team-a", hard=None, labels=None):
    return V1ResourceQuota(
        metadata=V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels=labels,
            resource_version="42",
        ),
        spec=V1ResourceQuotaSpec(hard=hard),
    )


def make_node_list(count: int, continue_token=None) -> V1NodeList:
    return V1NodeList(
        items=[V1Node(metadata=V1ObjectMeta(name=f"node-{i}")) for i in range(count)],
        metadata=V1ListMeta(_continue=continue_token),
    )


@pytest.fixture
def mock_core_v1():
    """Mock CoreV1Api."""
    return MagicMock()


@pytest.fixture
def mock_custom_api():
    """Mock CustomObjectsApi."""
    return MagicMock()
