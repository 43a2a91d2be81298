"""Tests for windows_node_installer.cluster.kubeclient."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from windows_node_installer.cluster.kubeclient import (
    INFRASTRUCTURE_GROUP,
    INFRASTRUCTURE_PLURAL,
    INFRASTRUCTURE_VERSION,
    ClusterContext,
    OpenShiftClusterClient,
    connect,
    get_infrastructure,
)
from windows_node_installer.errors import (
    AmbiguousInfrastructureError,
    ClientBuildError,
    ConfigReadError,
    InfrastructureQueryError,
    NoInfrastructureFoundError,
)


def _infra(name="mycluster-x7k2p", platform="AWS", region="us-east-2"):
    status = {"infrastructureName": name, "platform": platform}
    if platform:
        status["platformStatus"] = {
            "type": platform,
            platform.lower(): {"region": region},
        }
    return {"metadata": {"name": "cluster"}, "status": status}


class _StaticSource:
    def __init__(self, items):
        self.items = items

    def list_infrastructures(self):
        return self.items


# ---------------------------------------------------------------------------
# ClusterContext
# ---------------------------------------------------------------------------


class TestClusterContext:
    def test_from_platform_status(self):
        ctx = ClusterContext.from_infrastructure(_infra())
        assert ctx == ClusterContext("mycluster-x7k2p", "AWS", "us-east-2")

    def test_legacy_platform_field(self):
        item = {"status": {"infrastructureName": "c-1", "platform": "AWS"}}
        ctx = ClusterContext.from_infrastructure(item)
        assert ctx.platform_type == "AWS"
        assert ctx.region == ""

    def test_missing_name_raises(self):
        with pytest.raises(InfrastructureQueryError):
            ClusterContext.from_infrastructure({"status": {"platform": "AWS"}})

    def test_empty_platform(self):
        ctx = ClusterContext.from_infrastructure({"status": {"infrastructureName": "c-1"}})
        assert ctx.platform_type == ""


# ---------------------------------------------------------------------------
# get_infrastructure
# ---------------------------------------------------------------------------


class TestGetInfrastructure:
    def test_exactly_one(self):
        ctx = get_infrastructure(_StaticSource([_infra()]))
        assert ctx.infrastructure_name == "mycluster-x7k2p"

    def test_none_present(self):
        with pytest.raises(NoInfrastructureFoundError):
            get_infrastructure(_StaticSource([]))

    def test_more_than_one(self):
        with pytest.raises(AmbiguousInfrastructureError) as info:
            get_infrastructure(_StaticSource([_infra("a"), _infra("b")]))
        assert info.value.count == 2
        assert "2" in str(info.value)


# ---------------------------------------------------------------------------
# OpenShiftClusterClient
# ---------------------------------------------------------------------------


class TestOpenShiftClusterClient:
    @patch("windows_node_installer.cluster.kubeclient.k8s_client.CustomObjectsApi")
    def test_lists_infrastructures(self, mock_api_cls):
        api = mock_api_cls.return_value
        api.list_cluster_custom_object.return_value = {"items": [_infra()]}
        client = OpenShiftClusterClient(MagicMock())
        assert client.list_infrastructures() == [_infra()]
        api.list_cluster_custom_object.assert_called_once_with(
            INFRASTRUCTURE_GROUP, INFRASTRUCTURE_VERSION, INFRASTRUCTURE_PLURAL,
        )

    @patch("windows_node_installer.cluster.kubeclient.k8s_client.CustomObjectsApi")
    def test_null_items(self, mock_api_cls):
        mock_api_cls.return_value.list_cluster_custom_object.return_value = {"items": None}
        assert OpenShiftClusterClient(MagicMock()).list_infrastructures() == []

    @patch("windows_node_installer.cluster.kubeclient.k8s_client.CustomObjectsApi")
    def test_api_error_wrapped(self, mock_api_cls):
        mock_api_cls.return_value.list_cluster_custom_object.side_effect = ApiException(
            status=403, reason="Forbidden",
        )
        with pytest.raises(InfrastructureQueryError, match="Forbidden"):
            OpenShiftClusterClient(MagicMock()).list_infrastructures()


# ---------------------------------------------------------------------------
# connect
# ---------------------------------------------------------------------------


class TestConnect:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigReadError, match="file not found"):
            connect(str(tmp_path / "kubeconfig"))

    @patch("windows_node_installer.cluster.kubeclient.k8s_config.load_kube_config")
    def test_unparseable_config(self, mock_load, tmp_path):
        cfg = tmp_path / "kubeconfig"
        cfg.write_text("not: a kubeconfig", encoding="utf-8")
        mock_load.side_effect = ConfigException("Invalid kube-config file")
        with pytest.raises(ConfigReadError, match="Invalid kube-config"):
            connect(str(cfg))

    @patch("windows_node_installer.cluster.kubeclient.k8s_client.ApiClient")
    @patch("windows_node_installer.cluster.kubeclient.k8s_config.load_kube_config")
    def test_client_build_failure(self, mock_load, mock_api_client, tmp_path):
        cfg = tmp_path / "kubeconfig"
        cfg.write_text("apiVersion: v1", encoding="utf-8")
        mock_api_client.side_effect = RuntimeError("boom")
        with pytest.raises(ClientBuildError, match="boom"):
            connect(str(cfg))

    @patch("windows_node_installer.cluster.kubeclient.k8s_client.CustomObjectsApi")
    @patch("windows_node_installer.cluster.kubeclient.k8s_client.ApiClient")
    @patch("windows_node_installer.cluster.kubeclient.k8s_config.load_kube_config")
    def test_success(self, mock_load, mock_api_client, mock_custom, tmp_path):
        cfg = tmp_path / "kubeconfig"
        cfg.write_text("apiVersion: v1", encoding="utf-8")
        client = connect(str(cfg))
        assert isinstance(client, OpenShiftClusterClient)
        assert mock_load.call_args.kwargs["config_file"] == str(cfg)
        mock_custom.assert_called_once_with(mock_api_client.return_value)
