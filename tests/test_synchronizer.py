"""Tests for resourcequota_autoscaler.synchronizer."""

import pytest
from kubernetes.client.rest import ApiException

from resourcequota_autoscaler.synchronizer import QuotaSynchronizer, SyncAction
from resourcequota_autoscaler.utils import Quantity

from conftest import api_error, make_mrq, make_resource_quota


def q(text):
    return Quantity.parse(text)


class FakeResourceQuotaApi:
    """In-memory stand-in for the ResourceQuota calls of CoreV1Api."""

    def __init__(self, existing=None):
        self.quota = existing
        self.creates = []
        self.updates = []

    def read_namespaced_resource_quota(self, name, namespace, **kwargs):
        if self.quota is None:
            raise api_error(404, "Not Found")
        return self.quota

    def create_namespaced_resource_quota(self, namespace, body, **kwargs):
        self.creates.append(body)
        self.quota = body

    def replace_namespaced_resource_quota(self, name, namespace, body, **kwargs):
        self.updates.append(body)
        self.quota = body


class TestCreate:
    def test_creates_when_absent(self, mock_core_v1):
        mock_core_v1.read_namespaced_resource_quota.side_effect = api_error(404)
        owner = make_mrq(scopes=["NotTerminating"])

        action = QuotaSynchronizer(mock_core_v1).sync(owner, {"pods": q("5")})

        assert action is SyncAction.CREATED
        kwargs = mock_core_v1.create_namespaced_resource_quota.call_args.kwargs
        assert kwargs["namespace"] == "team-a"
        assert "dry_run" not in kwargs
        quota = kwargs["body"]
        assert quota.metadata.name == "team-quota"
        assert quota.metadata.namespace == "team-a"
        assert quota.metadata.labels == {
            "app.kubernetes.io/managed-by": "k8s-resourcequota-autoscaler",
            "app.kubernetes.io/name": "team-quota",
        }
        assert quota.spec.hard == {"pods": "5"}
        assert quota.spec.scopes == ["NotTerminating"]

    def test_owner_reference(self, mock_core_v1):
        owner = make_mrq()
        quota = QuotaSynchronizer(mock_core_v1).build_resource_quota(owner, {"pods": q("1")})

        (ref,) = quota.metadata.owner_references
        assert ref.api_version == "k8s-resourcequota-autoscaler.m21r.de/v1beta1"
        assert ref.kind == "ManagedResourceQuota"
        assert ref.name == "team-quota"
        assert ref.uid == "uid-team-quota"
        assert ref.controller is True
        assert ref.block_owner_deletion is True

    def test_copies_scope_selector(self, mock_core_v1):
        selector = {"matchExpressions": [{"scopeName": "PriorityClass", "operator": "In", "values": ["high"]}]}
        owner = make_mrq(scopeSelector=selector)
        quota = QuotaSynchronizer(mock_core_v1).build_resource_quota(owner, {})
        assert quota.spec.scope_selector == selector
        assert quota.spec.scopes is None

    def test_dry_run(self, mock_core_v1):
        mock_core_v1.read_namespaced_resource_quota.side_effect = api_error(404)
        QuotaSynchronizer(mock_core_v1, dry_run=True).sync(make_mrq(), {"pods": q("1")})
        assert mock_core_v1.create_namespaced_resource_quota.call_args.kwargs["dry_run"] == "All"

    def test_create_error_propagates(self, mock_core_v1):
        mock_core_v1.read_namespaced_resource_quota.side_effect = api_error(404)
        mock_core_v1.create_namespaced_resource_quota.side_effect = api_error(403)
        with pytest.raises(ApiException):
            QuotaSynchronizer(mock_core_v1).sync(make_mrq(), {"pods": q("1")})


class TestUpdate:
    def test_updates_divergent_value(self, mock_core_v1):
        live = make_resource_quota(hard={"cpu": "4", "pods": "10"}, labels={"keep": "me"})
        mock_core_v1.read_namespaced_resource_quota.return_value = live

        action = QuotaSynchronizer(mock_core_v1).sync(make_mrq(), {"cpu": q("5"), "pods": q("10")})

        assert action is SyncAction.UPDATED
        body = mock_core_v1.replace_namespaced_resource_quota.call_args.kwargs["body"]
        assert body.spec.hard == {"cpu": "5", "pods": "10"}
        assert body.metadata.labels == {"keep": "me"}
        assert body.metadata.resource_version == "42"

    def test_small_difference_is_detected(self, mock_core_v1):
        mock_core_v1.read_namespaced_resource_quota.return_value = make_resource_quota(hard={"cpu": "4"})
        action = QuotaSynchronizer(mock_core_v1).sync(make_mrq(), {"cpu": q("4001m")})
        assert action is SyncAction.UPDATED

    def test_removes_stale_keys(self, mock_core_v1):
        mock_core_v1.read_namespaced_resource_quota.return_value = make_resource_quota(
            hard={"cpu": "4", "services": "2"}
        )
        QuotaSynchronizer(mock_core_v1).sync(make_mrq(), {"cpu": q("4")})
        body = mock_core_v1.replace_namespaced_resource_quota.call_args.kwargs["body"]
        assert body.spec.hard == {"cpu": "4"}

    def test_update_conflict_propagates(self, mock_core_v1):
        mock_core_v1.read_namespaced_resource_quota.return_value = make_resource_quota(hard={"cpu": "1"})
        mock_core_v1.replace_namespaced_resource_quota.side_effect = api_error(409, "Conflict")
        with pytest.raises(ApiException):
            QuotaSynchronizer(mock_core_v1).sync(make_mrq(), {"cpu": q("2")})


class TestNoOp:
    def test_equal_limits(self, mock_core_v1):
        mock_core_v1.read_namespaced_resource_quota.return_value = make_resource_quota(
            hard={"pods": "5", "memory": "1Gi"}
        )
        action = QuotaSynchronizer(mock_core_v1).sync(make_mrq(), {"memory": q("1024Mi"), "pods": q("5")})

        assert action is SyncAction.NOOP
        mock_core_v1.replace_namespaced_resource_quota.assert_not_called()
        mock_core_v1.create_namespaced_resource_quota.assert_not_called()

    def test_read_error_propagates(self, mock_core_v1):
        mock_core_v1.read_namespaced_resource_quota.side_effect = api_error(500)
        with pytest.raises(ApiException):
            QuotaSynchronizer(mock_core_v1).sync(make_mrq(), {"pods": q("5")})
        mock_core_v1.create_namespaced_resource_quota.assert_not_called()


class TestIdempotence:
    def test_create_then_noop(self):
        api = FakeResourceQuotaApi()
        sync = QuotaSynchronizer(api)
        rendered = {"pods": q("5"), "memory": q("10Gi")}

        assert sync.sync(make_mrq(), rendered) is SyncAction.CREATED
        hard_after_first = dict(api.quota.spec.hard)
        assert sync.sync(make_mrq(), rendered) is SyncAction.NOOP
        assert api.quota.spec.hard == hard_after_first
        assert len(api.creates) == 1
        assert api.updates == []

    def test_update_then_noop(self):
        api = FakeResourceQuotaApi(make_resource_quota(hard={"pods": "3"}))
        sync = QuotaSynchronizer(api)

        assert sync.sync(make_mrq(), {"pods": q("5")}) is SyncAction.UPDATED
        assert sync.sync(make_mrq(), {"pods": q("5")}) is SyncAction.NOOP
        assert api.quota.spec.hard == {"pods": "5"}
        assert len(api.updates) == 1
