"""IAM instance profile lookup for the Windows worker."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from windows_node_installer.errors import ResourceNotFoundError

logger = logging.getLogger(__name__)


def get_instance_profile_arn(iam_client: Any, profile_name: str) -> str:
    """Return the ARN of instance profile *profile_name*.

    Raises :class:`ResourceNotFoundError` if the profile cannot be read.
    Callers treat this as non-fatal: the instance is launched without a
    profile and the operator attaches it by hand.
    """
    try:
        resp = iam_client.get_instance_profile(InstanceProfileName=profile_name)
    except (BotoCoreError, ClientError) as exc:
        raise ResourceNotFoundError(
            "IAM instance profile",
            {"InstanceProfileName": profile_name},
            hint=f"please attach manually ({exc})",
        ) from exc
    arn = resp.get("InstanceProfile", {}).get("Arn", "")
    if not arn:
        raise ResourceNotFoundError(
            "IAM instance profile",
            {"InstanceProfileName": profile_name},
            hint="response carried no ARN, please attach manually",
        )
    logger.debug("Worker instance profile %s: %s", profile_name, arn)
    return arn
