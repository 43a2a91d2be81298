"""Cluster context resolution from the OpenShift ``Infrastructure`` resource.

Every OpenShift cluster publishes exactly one cluster-scoped
``infrastructures.config.openshift.io`` object (named ``cluster``) whose
status describes the infrastructure identity::

    status:
      infrastructureName: mycluster-x7k2p
      platform: AWS                      # legacy field
      platformStatus:
        type: AWS
        aws:
          region: us-east-2

The installer only ever reads from the cluster.  Exactly one infrastructure
resource is required; zero or several is fatal and never resolved by
picking one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Protocol

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError as TransportError

from windows_node_installer.errors import (
    AmbiguousInfrastructureError,
    ClientBuildError,
    ConfigReadError,
    InfrastructureQueryError,
    NoInfrastructureFoundError,
)

logger = logging.getLogger(__name__)

INFRASTRUCTURE_GROUP = "config.openshift.io"
INFRASTRUCTURE_VERSION = "v1"
INFRASTRUCTURE_PLURAL = "infrastructures"


# ---------------------------------------------------------------------------
# ClusterContext
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClusterContext:
    """Identity facts about the cluster, resolved once per invocation."""

    infrastructure_name: str
    platform_type: str
    region: str = ""

    @classmethod
    def from_infrastructure(cls, item: Dict[str, Any]) -> "ClusterContext":
        """Build from a raw ``Infrastructure`` object (as returned by the API)."""
        status = item.get("status") or {}
        platform_status = status.get("platformStatus") or {}
        platform_type = platform_status.get("type") or status.get("platform") or ""
        region = ""
        if platform_type:
            # platformStatus.aws.region, platformStatus.gcp.region, ...
            per_platform = platform_status.get(platform_type.lower()) or {}
            region = per_platform.get("region", "") or ""
        name = status.get("infrastructureName", "")
        if not name:
            raise InfrastructureQueryError(
                "infrastructure resource has no status.infrastructureName"
            )
        return cls(
            infrastructure_name=name,
            platform_type=platform_type,
            region=region,
        )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class InfrastructureSource(Protocol):
    """Anything that can list raw infrastructure objects."""

    def list_infrastructures(self) -> List[Dict[str, Any]]: ...


class OpenShiftClusterClient:
    """Read-only access to the cluster's ``config.openshift.io`` API."""

    def __init__(self, api_client: Any) -> None:
        self._custom = k8s_client.CustomObjectsApi(api_client)

    def list_infrastructures(self) -> List[Dict[str, Any]]:
        try:
            resp = self._custom.list_cluster_custom_object(
                INFRASTRUCTURE_GROUP,
                INFRASTRUCTURE_VERSION,
                INFRASTRUCTURE_PLURAL,
            )
        except (ApiException, TransportError) as exc:
            raise InfrastructureQueryError(
                f"error getting infrastructure, {exc}"
            ) from exc
        return list((resp or {}).get("items") or [])


def connect(kubeconfig_path: str) -> OpenShiftClusterClient:
    """Build a cluster client from *kubeconfig_path*.

    Raises:
        ConfigReadError: kubeconfig missing or not loadable.
        ClientBuildError: API client construction failed.
    """
    path = Path(kubeconfig_path).expanduser()
    logger.info("kubeconfig source: %s", path)
    if not path.is_file():
        raise ConfigReadError(f"failed to read kubeconfig from path '{path}': file not found")

    configuration = k8s_client.Configuration()
    try:
        k8s_config.load_kube_config(
            config_file=str(path), client_configuration=configuration,
        )
    except (ConfigException, OSError, ValueError) as exc:
        raise ConfigReadError(
            f"failed to read kubeconfig from path '{path}', {exc}"
        ) from exc

    try:
        api_client = k8s_client.ApiClient(configuration)
    except Exception as exc:  # noqa: BLE001
        raise ClientBuildError(
            f"error building OpenShift API client from '{path}', {exc}"
        ) from exc
    return OpenShiftClusterClient(api_client)


# ---------------------------------------------------------------------------
# Infrastructure lookup
# ---------------------------------------------------------------------------


def get_infrastructure(client: InfrastructureSource) -> ClusterContext:
    """Return the :class:`ClusterContext` for the single infrastructure resource.

    Raises:
        NoInfrastructureFoundError: no resource present.
        AmbiguousInfrastructureError: more than one resource present.
    """
    items = client.list_infrastructures()
    if len(items) < 1:
        raise NoInfrastructureFoundError(
            "error getting infrastructure, no infrastructure present"
        )
    if len(items) > 1:
        raise AmbiguousInfrastructureError(len(items))
    ctx = ClusterContext.from_infrastructure(items[0])
    logger.info(
        "Cluster infrastructure: name=%s platform=%s region=%s",
        ctx.infrastructure_name,
        ctx.platform_type or "<unknown>",
        ctx.region or "<unknown>",
    )
    return ctx
