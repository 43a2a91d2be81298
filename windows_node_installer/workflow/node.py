"""Create and destroy workflows behind the ``create`` / ``destroy`` commands.

Both workflows return an ``EXIT_*`` code instead of raising: typed
:class:`~windows_node_installer.errors.InstallerError` subclasses are
reported through :mod:`windows_node_installer.ui` and mapped to codes
here.  Anything else is a bug and propagates.
"""

from __future__ import annotations

import logging
from typing import Optional

from windows_node_installer import ui
from windows_node_installer.aws.provider import PLATFORM_AWS
from windows_node_installer.cloudprovider.base import CreateResult, DestroyResult
from windows_node_installer.cloudprovider.factory import (
    new_cloud_provider,
    provider_for_platform,
)
from windows_node_installer.cluster.kubeclient import InfrastructureSource
from windows_node_installer.config.models import InstallerSettings, InstanceSpec
from windows_node_installer.errors import (
    ConfigReadError,
    CredentialsError,
    InstallerError,
    LedgerReadError,
    UnrecordedInstanceError,
)

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_VALIDATION_FAILURE = 1
EXIT_CLOUD_FAILURE = 2
EXIT_DESTROY_INCOMPLETE = 3
EXIT_UNRECORDED_INSTANCE = 4

_PACKAGE_LOGGER = "windows_node_installer"


def configure_logging(debug: bool = False) -> None:
    """Send package logs to stderr; ``debug`` lowers the level to DEBUG."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(_PACKAGE_LOGGER).setLevel(level)


def exit_code_for(exc: InstallerError) -> int:
    """Map a workflow failure to its exit code."""
    if isinstance(exc, UnrecordedInstanceError):
        return EXIT_UNRECORDED_INSTANCE
    if isinstance(exc, (CredentialsError, ConfigReadError, LedgerReadError)):
        return EXIT_VALIDATION_FAILURE
    return EXIT_CLOUD_FAILURE


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


def run_create(
    settings: InstallerSettings,
    spec: InstanceSpec,
    *,
    cluster_client: Optional[InfrastructureSource] = None,
) -> int:
    """Provision one Windows instance in the cluster's VPC."""
    ui.phase("CREATE")
    ui.step(f"Locating cluster from {settings.kubeconfig or '<no kubeconfig>'}")
    try:
        provider = new_cloud_provider(settings, cluster_client=cluster_client)
        ui.ok(f"Cluster platform: {provider.platform_type}")
        ui.step(f"Launching {spec.instance_type} from {spec.image_id}")
        result = provider.create_instance(spec)
    except UnrecordedInstanceError as exc:
        logger.critical("%s", exc)
        ui.error_panel("INSTANCE NOT RECORDED", str(exc))
        return exit_code_for(exc)
    except InstallerError as exc:
        logger.error("Create failed: %s", exc)
        ui.fail(str(exc))
        return exit_code_for(exc)

    _print_rdp_banner(result, spec.key_name)
    return EXIT_SUCCESS


def _print_rdp_banner(result: CreateResult, key_name: str) -> None:
    """Show how to reach the new instance, plus any steps left to the operator."""
    ui.ok(f"Instance {result.instance_id} recorded in {result.ledger_path}")
    if result.security_group is not None:
        ui.detail("Security group", f"{result.security_group.group_name} ({result.security_group.group_id})")
    ui.warnings(result.warnings)

    if result.public_ip:
        body = (
            f"Instance   : {result.instance_id}\n"
            f"Public IP  : {result.public_ip}\n"
            f"Key pair   : {key_name}\n"
            "\n"
            "Retrieve the Administrator password:\n"
            f"  aws ec2 get-password-data --instance-id {result.instance_id} "
            f"--priv-launch-key {key_name}.pem\n"
            "\n"
            "Connect:\n"
            f"  xfreerdp /u:Administrator /v:{result.public_ip} /h:1080 /w:1920 /p:'<password>'"
        )
    else:
        body = (
            f"Instance   : {result.instance_id}\n"
            f"Key pair   : {key_name}\n"
            "\n"
            "No public IP address is associated with the instance.\n"
            "Allocate and associate an Elastic IP before connecting over RDP."
        )
    title = "WINDOWS NODE CREATED (DEGRADED)" if result.degraded else "WINDOWS NODE CREATED"
    ui.success_panel(title, body)


# ---------------------------------------------------------------------------
# destroy
# ---------------------------------------------------------------------------


def run_destroy(settings: InstallerSettings) -> int:
    """Tear down every instance recorded in the ledger.

    Needs no cluster access: the ledger alone says what to delete.
    """
    ui.phase("DESTROY")
    try:
        provider = provider_for_platform(PLATFORM_AWS, settings)
        result = provider.destroy_instances()
    except InstallerError as exc:
        logger.error("Destroy failed: %s", exc)
        ui.fail(str(exc))
        return exit_code_for(exc)

    return _report_destroy(result)


def _report_destroy(result: DestroyResult) -> int:
    if result.nothing_to_do:
        ui.ok(f"Nothing to destroy: no instances recorded in {result.ledger_path}")
        return EXIT_SUCCESS

    for instance_id in result.destroyed:
        ui.ok(f"Deleted instance {instance_id}")
    ui.warnings(result.warnings)
    for msg in result.errors:
        ui.fail(msg)

    if result.success:
        ui.ok(f"Ledger {result.ledger_path} removed")
        return EXIT_SUCCESS

    lines = [f"{r.instance_id} ({len(r.security_groups)} security groups)" for r in result.remaining]
    ui.error_panel(
        "DESTROY INCOMPLETE",
        f"{len(result.remaining)} record(s) kept in {result.ledger_path}:\n  "
        + "\n  ".join(lines)
        + "\n\nFix the errors above and run destroy again.",
    )
    return EXIT_DESTROY_INCOMPLETE
