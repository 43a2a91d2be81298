"""Exception hierarchy for windows-node-installer.

Every error raised on purpose by this package derives from
:class:`InstallerError`.  The workflow layer maps these classes to exit
codes; everything else is considered a bug and propagates.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence


class InstallerError(RuntimeError):
    """Base class for all windows-node-installer failures."""


# ---------------------------------------------------------------------------
# Credentials / configuration
# ---------------------------------------------------------------------------


class CredentialsError(InstallerError):
    """AWS credentials file missing, profile unknown, or credentials rejected."""


# ---------------------------------------------------------------------------
# Cluster access
# ---------------------------------------------------------------------------


class ConfigReadError(InstallerError):
    """The kubeconfig could not be found or parsed."""


class ClientBuildError(InstallerError):
    """A cluster API client could not be built from a loaded kubeconfig."""


class InfrastructureQueryError(InstallerError):
    """Listing the cluster's infrastructure resources failed."""


class NoInfrastructureFoundError(InstallerError):
    """The cluster exposes no infrastructure resource."""


class AmbiguousInfrastructureError(InstallerError):
    """The cluster exposes more than one infrastructure resource."""

    def __init__(self, count: int) -> None:
        self.count = count
        super().__init__(
            "error getting infrastructure, more than 1 infrastructure present. "
            f"Existing number of infrastructures: {count}"
        )


class UnsupportedPlatformError(InstallerError):
    """No cloud backend is registered for the cluster's platform type."""

    def __init__(self, platform_type: str, supported: Sequence[str]) -> None:
        self.platform_type = platform_type
        self.supported = list(supported)
        super().__init__(
            f"Unsupported cluster platform '{platform_type or '<empty>'}'. "
            f"Supported platforms: {', '.join(self.supported) or '<none>'}"
        )


# ---------------------------------------------------------------------------
# Cloud resources
# ---------------------------------------------------------------------------


def _describe_filters(filters: Optional[Dict[str, str]]) -> str:
    if not filters:
        return ""
    return " (" + ", ".join(f"{k}={v}" for k, v in sorted(filters.items())) + ")"


class ResourceNotFoundError(InstallerError):
    """A required cloud resource matched no candidates."""

    def __init__(
        self,
        kind: str,
        filters: Optional[Dict[str, str]] = None,
        hint: str = "",
    ) -> None:
        self.kind = kind
        self.filters = dict(filters or {})
        msg = f"no {kind} found{_describe_filters(filters)}"
        if hint:
            msg = f"{msg}, {hint}"
        super().__init__(msg)


class AmbiguousResourceError(InstallerError):
    """A required cloud resource matched more than one candidate."""

    def __init__(
        self,
        kind: str,
        candidates: Sequence[str],
        filters: Optional[Dict[str, str]] = None,
    ) -> None:
        self.kind = kind
        self.candidates = list(candidates)
        self.filters = dict(filters or {})
        super().__init__(
            f"more than one {kind} found{_describe_filters(filters)}: "
            f"{', '.join(self.candidates)}; resolve manually"
        )


class CloudOperationError(InstallerError):
    """A cloud API call failed in a way that stops the workflow."""


class SecurityGroupError(CloudOperationError):
    """The Windows security group could neither be created nor found."""


class InstanceLaunchError(CloudOperationError):
    """``RunInstances`` failed; no instance exists."""


class PublicIPLookupError(InstallerError):
    """The caller's public IP address could not be determined."""


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class LedgerError(InstallerError):
    """Base class for ledger file failures."""

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class LedgerReadError(LedgerError):
    """The ledger file exists but cannot be read or parsed."""


class LedgerWriteError(LedgerError):
    """The ledger file could not be written or removed."""


class UnrecordedInstanceError(LedgerWriteError):
    """An instance was launched but could not be recorded in the ledger.

    This breaks the guarantee that every created instance can be destroyed
    from the ledger; the operator has to clean up by hand.
    """

    def __init__(
        self,
        instance_id: str,
        path: str,
        security_group_ids: Optional[List[str]] = None,
        cause: str = "",
    ) -> None:
        self.instance_id = instance_id
        self.security_group_ids = list(security_group_ids or [])
        msg = (
            f"instance {instance_id} was created but could not be recorded in "
            f"'{path}'; it will not be removed by 'destroy' and must be "
            "terminated manually"
        )
        if self.security_group_ids:
            msg += f" (owned security groups: {', '.join(self.security_group_ids)})"
        if cause:
            msg += f": {cause}"
        super().__init__(msg, path=path)
