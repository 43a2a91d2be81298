"""Platform-type registry of cloud provider backends.

Usage::

    provider = new_cloud_provider(settings)              # create: asks the cluster
    provider = provider_for_platform("AWS", settings)    # destroy: ledger only

Adding a cloud means implementing :class:`CloudProvider` and calling
:func:`register_provider`; nothing here needs to change.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from windows_node_installer.aws.provider import PLATFORM_AWS, build_aws_provider
from windows_node_installer.cloudprovider.base import CloudProvider
from windows_node_installer.cluster.kubeclient import (
    ClusterContext,
    InfrastructureSource,
    connect,
    get_infrastructure,
)
from windows_node_installer.config.models import InstallerSettings
from windows_node_installer.errors import ConfigReadError, UnsupportedPlatformError

logger = logging.getLogger(__name__)

#: ``builder(settings, cluster)`` → backend.  *cluster* is ``None`` for destroy.
ProviderBuilder = Callable[[InstallerSettings, Optional[ClusterContext]], CloudProvider]

_PROVIDERS: Dict[str, ProviderBuilder] = {}


def register_provider(platform_type: str, builder: ProviderBuilder) -> None:
    """Register *builder* for clusters reporting *platform_type*."""
    _PROVIDERS[platform_type] = builder


def unregister_provider(platform_type: str) -> None:
    """Remove a registration (used in tests)."""
    _PROVIDERS.pop(platform_type, None)


def registered_platforms() -> List[str]:
    return sorted(_PROVIDERS)


def provider_for_platform(
    platform_type: str,
    settings: InstallerSettings,
    *,
    cluster: Optional[ClusterContext] = None,
) -> CloudProvider:
    """Build the backend registered for *platform_type*.

    Raises :class:`UnsupportedPlatformError` when none is registered.
    """
    builder = _PROVIDERS.get(platform_type)
    if builder is None:
        raise UnsupportedPlatformError(platform_type, registered_platforms())
    logger.debug("Selected %s backend", platform_type)
    return builder(settings, cluster)


def new_cloud_provider(
    settings: InstallerSettings,
    *,
    cluster_client: Optional[InfrastructureSource] = None,
) -> CloudProvider:
    """Resolve the cluster's platform and build the matching backend.

    *cluster_client* defaults to a client built from ``settings.kubeconfig``.
    """
    if cluster_client is None:
        if not settings.kubeconfig:
            raise ConfigReadError("a kubeconfig is required to locate the cluster")
        cluster_client = connect(settings.kubeconfig)
    cluster = get_infrastructure(cluster_client)
    return provider_for_platform(cluster.platform_type, settings, cluster=cluster)


register_provider(PLATFORM_AWS, build_aws_provider)
