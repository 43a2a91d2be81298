"""Cloud provider capability and result types.

The platform registry lives in :mod:`windows_node_installer.cloudprovider.factory`;
it is not imported here so backends can depend on this package without
pulling in the registry.
"""

from windows_node_installer.cloudprovider.base import (
    CloudProvider,
    CreateResult,
    DestroyResult,
)

__all__ = ["CloudProvider", "CreateResult", "DestroyResult"]
