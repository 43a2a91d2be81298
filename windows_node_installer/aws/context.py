"""AWS context: session and identity from a shared credentials file.

Wraps boto3 session creation and STS ``get-caller-identity`` into a single
:class:`AWSContext` that the provisioning backend depends on.  There is no
module-level session; every caller builds (or is handed) its own context.

Region resolution precedence:
1. Region reported by the cluster (``create`` only)
2. Explicit ``--region`` CLI flag
3. ``AWS_DEFAULT_REGION`` / ``AWS_REGION`` env vars
4. Hardcoded fallback (``us-east-1``)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import boto3
import botocore.session
from botocore.exceptions import BotoCoreError, ClientError, ProfileNotFound

from windows_node_installer.config.models import DEFAULT_REGION
from windows_node_installer.errors import CredentialsError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Resolution helpers
# ---------------------------------------------------------------------------


def resolve_region(region: Optional[str] = None) -> str:
    """Return the AWS region string.

    Precedence: *region* → ``AWS_DEFAULT_REGION`` → ``AWS_REGION`` → fallback.
    """
    if region:
        return region
    return (
        os.environ.get("AWS_DEFAULT_REGION")
        or os.environ.get("AWS_REGION")
        or DEFAULT_REGION
    )


def resolve_credentials_path(credentials_path: str) -> Path:
    """Expand *credentials_path* and check that it exists.

    Raises :class:`CredentialsError` if the file is missing.
    """
    path = Path(credentials_path).expanduser()
    if not path.is_file():
        raise CredentialsError(
            f"failed to find AWS credentials from path '{credentials_path}'"
        )
    return path


# ---------------------------------------------------------------------------
# AWSContext
# ---------------------------------------------------------------------------


@dataclass
class AWSContext:
    """Bag of AWS identity + session factory.

    Attributes:
        credentials_path: Shared credentials file the session reads.
        profile: Profile name inside *credentials_path*.
        region: AWS region (e.g. ``us-east-2``).
        account_id: 12-digit AWS account ID.
        caller_arn: Full ARN from ``sts:GetCallerIdentity``.
    """

    credentials_path: str
    profile: str
    region: str
    account_id: str = ""
    caller_arn: str = ""
    _session: Any = field(default=None, repr=False, compare=False)

    # -- factory ----------------------------------------------------------

    @classmethod
    def build(
        cls,
        credentials_path: str,
        profile: str,
        region: Optional[str] = None,
    ) -> "AWSContext":
        """Construct an :class:`AWSContext` and validate it by calling STS.

        Raises :class:`CredentialsError` on missing files, unknown profiles,
        or credentials AWS rejects.
        """
        path = resolve_credentials_path(credentials_path)
        resolved_region = resolve_region(region)

        session = _new_session(str(path), profile, resolved_region)

        try:
            identity = session.client("sts").get_caller_identity()
        except (BotoCoreError, ClientError) as exc:
            raise CredentialsError(
                f"AWS credentials invalid or inaccessible in region "
                f"{resolved_region}: {exc}"
            ) from exc

        logger.debug(
            "AWS identity: account=%s arn=%s", identity["Account"], identity["Arn"],
        )
        return cls(
            credentials_path=str(path),
            profile=profile,
            region=resolved_region,
            account_id=identity["Account"],
            caller_arn=identity["Arn"],
            _session=session,
        )

    # -- session accessor -------------------------------------------------

    @property
    def session(self) -> boto3.Session:
        """Return the cached :class:`boto3.Session`."""
        if self._session is None:
            self._session = _new_session(
                self.credentials_path, self.profile, self.region,
            )
        return self._session

    def client(self, service: str, **kwargs: Any) -> Any:
        """Create a boto3 client for *service*."""
        return self.session.client(service, **kwargs)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _new_session(credentials_path: str, profile: str, region: str) -> boto3.Session:
    """Build a boto3 session bound to one credentials file and profile."""
    core = botocore.session.Session()
    core.set_config_variable("credentials_file", credentials_path)
    core.set_config_variable("profile", profile)
    try:
        return boto3.Session(botocore_session=core, region_name=region)
    except ProfileNotFound as exc:
        raise CredentialsError(
            f"profile '{profile}' not found in '{credentials_path}'"
        ) from exc
