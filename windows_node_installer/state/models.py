"""Ledger record models.

The ledger is a JSON array written to ``<ledger dir>/windows-node-installer.json``::

    [
      {
        "Instanceid": "i-0123456789abcdef0",
        "SG": [
          {"Groupid": "sg-0123456789abcdef0", "Groupname": "mycluster-x7k2p-winc-sg"}
        ]
      }
    ]

Field names are kept for compatibility with ledgers written by earlier
releases of the installer.  ``"SG": null`` and entries with an empty
``Groupid`` (both produced when an existing security group was reused) are
accepted on read.
"""

from __future__ import annotations

import json
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


# ---------------------------------------------------------------------------
# SecurityGroupRecord
# ---------------------------------------------------------------------------


class SecurityGroupRecord(BaseModel):
    """A security group created by the installer and owned by one instance."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    group_id: str = Field(default="", alias="Groupid")
    group_name: str = Field(default="", alias="Groupname")

    @property
    def owned(self) -> bool:
        """Only groups with an id are eligible for deletion."""
        return bool(self.group_id)


# ---------------------------------------------------------------------------
# InstanceRecord
# ---------------------------------------------------------------------------


class InstanceRecord(BaseModel):
    """One provisioned instance and the security groups it owns."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    instance_id: str = Field(alias="Instanceid", min_length=1)
    security_groups: List[SecurityGroupRecord] = Field(
        default_factory=list, alias="SG",
    )

    @field_validator("security_groups", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def owned_security_groups(self) -> List[SecurityGroupRecord]:
        return [sg for sg in self.security_groups if sg.owned]


# ---------------------------------------------------------------------------
# Ledger (de)serialisation
# ---------------------------------------------------------------------------

_LEDGER_ADAPTER: TypeAdapter[List[InstanceRecord]] = TypeAdapter(List[InstanceRecord])


def parse_ledger(payload: str) -> List[InstanceRecord]:
    """Parse ledger JSON text.  Blank text is an empty ledger."""
    if not payload.strip():
        return []
    return _LEDGER_ADAPTER.validate_json(payload)


def dump_ledger(records: List[InstanceRecord], indent: int = 2) -> str:
    """Serialise with sorted keys for deterministic, diff-friendly output."""
    return json.dumps(
        [r.model_dump(mode="json", by_alias=True) for r in records],
        indent=indent,
        sort_keys=True,
    )
