"""Pydantic models for installer configuration.

Values arrive from CLI options (with environment fallbacks applied by the
CLI layer) and are validated here once, before any cloud or cluster call.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_REGION = "us-east-1"
DEFAULT_PROFILE = "default"
DEFAULT_INSTANCE_TYPE = "m4.large"


class InstallerSettings(BaseModel):
    """Connection and bookkeeping settings shared by ``create`` and ``destroy``.

    Attributes:
        credentials_path: AWS shared credentials file.
        profile: Profile name inside *credentials_path*.
        region: Requested AWS region.  The cluster's own region wins on
            ``create``; ``None`` falls back to the environment, then
            ``us-east-1``.
        ledger_dir: Directory holding the ledger file.  ``None`` selects the
            XDG config directory.
        kubeconfig: Cluster kubeconfig; required for ``create`` only.
    """

    model_config = ConfigDict(frozen=True)

    credentials_path: str = Field(min_length=1)
    profile: str = DEFAULT_PROFILE
    region: Optional[str] = None
    ledger_dir: Optional[str] = None
    kubeconfig: Optional[str] = None

    @field_validator("profile")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("region")
    @classmethod
    def _blank_region_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class InstanceSpec(BaseModel):
    """What to launch: image, size and SSH key pair."""

    model_config = ConfigDict(frozen=True)

    image_id: str = Field(min_length=1)
    instance_type: str = Field(default=DEFAULT_INSTANCE_TYPE, min_length=1)
    key_name: str = Field(min_length=1)

    @field_validator("image_id")
    @classmethod
    def _looks_like_ami(cls, value: str) -> str:
        if not value.startswith("ami-"):
            raise ValueError(f"'{value}' is not an AMI id (expected 'ami-...')")
        return value
