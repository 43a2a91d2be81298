"""CLI entry point for windows-node-installer, built on cli-core-yo.

Provides ``create`` and ``destroy`` for a Windows worker instance next to
an OpenShift cluster on AWS.

Usage::

    windows-node-installer create --credentials ~/.aws/credentials \\
        --kubeconfig ~/cluster/auth/kubeconfig \\
        --image-id ami-0123456789abcdef0 --key-name my-key
    windows-node-installer destroy --credentials ~/.aws/credentials
"""

from __future__ import annotations

import os
import sys
from typing import Optional

import typer
from cli_core_yo import output
from cli_core_yo.app import create_app
from cli_core_yo.runtime import _reset, initialize
from cli_core_yo.spec import CliSpec, XdgSpec
from pydantic import ValidationError

from windows_node_installer.config.models import (
    DEFAULT_INSTANCE_TYPE,
    DEFAULT_PROFILE,
    InstallerSettings,
    InstanceSpec,
)
from windows_node_installer.workflow.node import (
    EXIT_VALIDATION_FAILURE,
    configure_logging,
    run_create,
    run_destroy,
)

# ── App specification ────────────────────────────────────────────────────────

spec = CliSpec(
    prog_name="windows-node-installer",
    app_display_name="Windows Node Installer",
    dist_name="windows-node-installer",
    root_help=(
        "Create and destroy Windows worker instances inside an OpenShift "
        "cluster's cloud network."
    ),
    xdg=XdgSpec(app_dir_name="windows-node-installer"),
)

app = create_app(spec)


# ── Root callback ────────────────────────────────────────────────────────────


@app.callback()
def _root_callback() -> None:
    """Windows node installer."""
    _reset()
    debug = os.environ.get("CLI_CORE_YO_DEBUG") == "1"
    xdg_paths = app._cli_core_yo_xdg_paths  # type: ignore[attr-defined]
    initialize(spec, xdg_paths, json_mode=False, debug=debug)


# ── Shared options ───────────────────────────────────────────────────────────

_CREDENTIALS = typer.Option(
    ...,
    "--credentials",
    envvar="AWS_SHARED_CREDENTIALS_FILE",
    help="AWS shared credentials file.",
)
_PROFILE = typer.Option(
    DEFAULT_PROFILE,
    "--profile",
    envvar="AWS_PROFILE",
    help="Profile inside the credentials file.",
)
_REGION = typer.Option(
    None,
    "--region",
    envvar=["AWS_DEFAULT_REGION", "AWS_REGION"],
    help="AWS region. On create the cluster's own region takes precedence.",
)
_DIR = typer.Option(
    None,
    "--dir",
    help=(
        "Directory holding the instance ledger. "
        "Default: ~/.config/windows-node-installer"
    ),
)
_DEBUG = typer.Option(False, "--debug", help="Enable debug logging.")


def _settings(**kwargs: Optional[str]) -> InstallerSettings:
    try:
        return InstallerSettings(**kwargs)
    except ValidationError as exc:
        output.error(f"Invalid options: {exc}")
        raise typer.Exit(EXIT_VALIDATION_FAILURE) from exc


# ── create command ───────────────────────────────────────────────────────────


@app.command()
def create(
    credentials: str = _CREDENTIALS,
    profile: str = _PROFILE,
    region: Optional[str] = _REGION,
    ledger_dir: Optional[str] = _DIR,
    kubeconfig: str = typer.Option(
        ...,
        "--kubeconfig",
        envvar="KUBECONFIG",
        help="Kubeconfig of the target OpenShift cluster.",
    ),
    image_id: str = typer.Option(
        ...,
        "--image-id",
        help="Windows AMI id (ami-...).",
    ),
    instance_type: str = typer.Option(
        DEFAULT_INSTANCE_TYPE,
        "--instance-type",
        help="EC2 instance type.",
    ),
    key_name: str = typer.Option(
        ...,
        "--key-name",
        help="EC2 key pair used to decrypt the Administrator password.",
    ),
    debug: bool = _DEBUG,
) -> None:
    """Create a Windows instance in the cluster VPC and record it.

    Exit codes: 0 = created, 1 = invalid input, 2 = cloud/cluster error,
    4 = instance created but not recorded in the ledger.
    """
    configure_logging(debug)
    settings = _settings(
        credentials_path=credentials,
        profile=profile,
        region=region,
        ledger_dir=ledger_dir,
        kubeconfig=kubeconfig,
    )
    try:
        instance = InstanceSpec(
            image_id=image_id, instance_type=instance_type, key_name=key_name,
        )
    except ValidationError as exc:
        output.error(f"Invalid options: {exc}")
        raise typer.Exit(EXIT_VALIDATION_FAILURE) from exc

    output.action(f"Creating Windows instance from {image_id} ...")
    rc = run_create(settings, instance)
    raise typer.Exit(rc)


# ── destroy command ──────────────────────────────────────────────────────────


@app.command()
def destroy(
    credentials: str = _CREDENTIALS,
    profile: str = _PROFILE,
    region: Optional[str] = _REGION,
    ledger_dir: Optional[str] = _DIR,
    debug: bool = _DEBUG,
) -> None:
    """Delete every instance and security group recorded in the ledger.

    Exit codes: 0 = done (or nothing to do), 1 = invalid input or unreadable
    ledger, 2 = cloud error, 3 = some resources could not be deleted.
    """
    configure_logging(debug)
    settings = _settings(
        credentials_path=credentials,
        profile=profile,
        region=region,
        ledger_dir=ledger_dir,
    )
    output.action("Destroying recorded Windows instances ...")
    rc = run_destroy(settings)
    raise typer.Exit(rc)


# ── Entry point ──────────────────────────────────────────────────────────────


def main() -> int:
    """Run the CLI and return an exit code."""
    try:
        app()
        return 0
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 0


if __name__ == "__main__":
    sys.exit(main())
