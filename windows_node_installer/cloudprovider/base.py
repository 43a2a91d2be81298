"""Cloud provider capability shared by every backend.

A backend provisions one Windows instance next to the cluster and tears down
everything recorded in the ledger.  Backends are registered per cluster
platform type in :mod:`windows_node_installer.cloudprovider.factory`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from windows_node_installer.config.models import InstanceSpec
from windows_node_installer.state.models import InstanceRecord, SecurityGroupRecord


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class CreateResult:
    """Outcome of :meth:`CloudProvider.create_instance`.

    ``warnings`` lists the degraded steps (IAM profile, ingress rules,
    public address) the operator has to fix by hand.
    """

    instance_id: str
    ledger_path: str
    public_ip: Optional[str] = None
    security_group: Optional[SecurityGroupRecord] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


@dataclass
class DestroyResult:
    """Outcome of :meth:`CloudProvider.destroy_instances`.

    ``remaining`` holds the records written back to the ledger because some
    part of their teardown failed.
    """

    ledger_path: str
    destroyed: List[str] = field(default_factory=list)
    remaining: List[InstanceRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def nothing_to_do(self) -> bool:
        return not self.destroyed and not self.remaining and not self.errors

    @property
    def success(self) -> bool:
        return not self.remaining and not self.errors


# ---------------------------------------------------------------------------
# CloudProvider
# ---------------------------------------------------------------------------


class CloudProvider(ABC):
    """Create and destroy Windows instances for one cloud platform."""

    #: Cluster platform type this backend serves (``Infrastructure.status.platformStatus.type``).
    platform_type: str = ""

    @abstractmethod
    def create_instance(self, spec: InstanceSpec) -> CreateResult:
        """Launch one instance and record it in the ledger.

        Raises :class:`~windows_node_installer.errors.InstallerError` when the
        instance cannot be created, and
        :class:`~windows_node_installer.errors.UnrecordedInstanceError` when
        it was created but could not be recorded.
        """

    @abstractmethod
    def destroy_instances(self) -> DestroyResult:
        """Tear down every ledger record, best-effort per record."""
