"""Serialization, change detection and writing of target snapshots."""

import hashlib
import json
import logging
import os
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from .discovery.models import Snapshot, TargetGroup
from .interfaces import NetworkInterface

logger = logging.getLogger(__name__)

STDOUT = "-"


def serialize(groups: list[TargetGroup]) -> str:
    """Serialize target groups to file_sd JSON in their total output order."""
    ordered = sorted(groups, key=lambda group: group.sort_key)
    return json.dumps([group.to_dict() for group in ordered], indent="\t")


def fingerprint(data: str) -> int:
    """64-bit hash of serialized output, used only for change detection."""
    digest = hashlib.blake2b(data.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big")


@dataclass
class RefreshState:
    """State carried between refresh cycles.

    ``last_fingerprint`` is None until the first emission and is only written
    by :class:`ChangeFilter`.
    """

    interval_seconds: float = 10.0
    interfaces: list[NetworkInterface] = field(default_factory=list)
    last_fingerprint: int | None = None
    emissions: int = 0


class TargetWriter:
    """Writes serialized snapshots to a file or standard output."""

    def __init__(self, path: str = STDOUT, stream: TextIO | None = None):
        """Initialize the writer.

        Args:
            path: Destination file, or "-" for standard output.
            stream: Stream used for "-" (defaults to sys.stdout).
        """
        self.path = path
        self._stream = stream

    @property
    def is_stdout(self) -> bool:
        return self.path == STDOUT

    def write(self, data: str) -> None:
        """Write one serialized snapshot.

        Files are replaced as a whole so readers never see partial output.

        Raises:
            OSError: If the destination cannot be written.
        """
        if self.is_stdout:
            stream = self._stream or sys.stdout
            stream.write(data + "\n")
            stream.flush()
            return

        target = Path(self.path)
        fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, target)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


class ChangeFilter:
    """Emits a snapshot only when its serialized form changed."""

    def __init__(self, state: RefreshState, writer: TargetWriter):
        self.state = state
        self.writer = writer

    def process(self, snapshot: Snapshot) -> bool:
        """Write the snapshot if it differs from the last emitted one.

        Returns:
            True if the snapshot was written, False if it was suppressed.

        Raises:
            OSError: If writing fails; the stored fingerprint is left unchanged.
        """
        data = serialize(snapshot.groups)
        new_fingerprint = fingerprint(data)

        if new_fingerprint == self.state.last_fingerprint:
            logger.debug(f"Targets unchanged ({len(snapshot.groups)} groups), skipping write")
            return False

        self.writer.write(data)
        self.state.last_fingerprint = new_fingerprint
        self.state.emissions += 1
        logger.info(
            f"Wrote {len(snapshot.groups)} target groups to "
            f"{'stdout' if self.writer.is_stdout else self.writer.path}"
        )
        return True
