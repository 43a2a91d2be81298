"""Persistent storage for the instance ledger.

The ledger file is the single artifact of truth for what the installer has
created.  Default location is ``~/.config/windows-node-installer/``
(``XDG_CONFIG_HOME`` / windows-node-installer); ``--dir`` overrides it.

Writes go to a sibling temp file followed by :func:`os.replace`, so a crash
mid-write leaves either the old or the new ledger, never a truncated one.
Read-merge-write is still not atomic across processes: two installers
running against the same ledger directory can lose each other's records.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from windows_node_installer.errors import LedgerReadError, LedgerWriteError
from windows_node_installer.state.models import (
    InstanceRecord,
    dump_ledger,
    parse_ledger,
)

logger = logging.getLogger(__name__)

_APP_DIR = "windows-node-installer"

LEDGER_FILENAME = "windows-node-installer.json"

PathLike = Union[str, Path]


# ---------------------------------------------------------------------------
# Directory resolution
# ---------------------------------------------------------------------------


def config_dir() -> Path:
    """Return the XDG config directory for the installer.

    Uses ``XDG_CONFIG_HOME`` if set, otherwise ``~/.config``.
    Creates the directory if it does not exist.
    """
    base = os.environ.get("XDG_CONFIG_HOME", "")
    if not base:
        base = str(Path.home() / ".config")
    path = Path(base) / _APP_DIR
    path.mkdir(parents=True, exist_ok=True)
    return path


def ledger_path(ledger_dir: Optional[PathLike] = None) -> Path:
    """Return the ledger file path inside *ledger_dir* (default: :func:`config_dir`)."""
    directory = Path(ledger_dir).expanduser() if ledger_dir else config_dir()
    return directory / LEDGER_FILENAME


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


def load_ledger(path: PathLike) -> List[InstanceRecord]:
    """Return the records stored at *path*.

    A missing file is an empty ledger.  An unreadable or malformed file raises
    :class:`LedgerReadError`; it is never silently treated as empty because
    rewriting it would drop the records it holds.
    """
    p = Path(path)
    if not p.exists():
        logger.debug("No ledger at %s", p)
        return []
    try:
        payload = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise LedgerReadError(
            f"failed to read ledger at '{p}': {exc}", path=str(p),
        ) from exc
    try:
        return parse_ledger(payload)
    except ValidationError as exc:
        raise LedgerReadError(
            f"ledger at '{p}' is not valid: {exc}", path=str(p),
        ) from exc


# ---------------------------------------------------------------------------
# Write helpers
# ---------------------------------------------------------------------------


def write_ledger(path: PathLike, records: List[InstanceRecord]) -> Path:
    """Replace the ledger at *path* with *records* and return the path."""
    p = Path(path)
    payload = dump_ledger(records) + "\n"
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{p.name}.", suffix=".tmp", dir=str(p.parent),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, p)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise LedgerWriteError(
            f"failed to write ledger to '{p}': {exc}", path=str(p),
        ) from exc
    logger.debug("Ledger written to %s (%d records)", p, len(records))
    return p


def record_instance(path: PathLike, record: InstanceRecord) -> List[InstanceRecord]:
    """Prepend *record* to the stored records and rewrite the ledger.

    Returns the full list that was written.
    """
    records = [record] + load_ledger(path)
    write_ledger(path, records)
    logger.info("Recorded instance %s in %s", record.instance_id, path)
    return records


def delete_ledger(path: PathLike) -> bool:
    """Remove the ledger file.  Returns *False* if it did not exist."""
    p = Path(path)
    try:
        p.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise LedgerWriteError(
            f"failed to delete ledger at '{p}': {exc}", path=str(p),
        ) from exc
    logger.info("Ledger %s removed", p)
    return True


def save_remaining(path: PathLike, records: List[InstanceRecord]) -> Optional[Path]:
    """Persist the records that still need teardown.

    With no records left the ledger is deleted and ``None`` is returned.
    """
    if not records:
        delete_ledger(path)
        return None
    return write_ledger(path, records)
