"""Deployment history persisted as JSON lines under the data directory.

Each script run appends one line. The file lives on the data volume, so the
history survives restarts of both the dispatcher and the webhook server.
"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional

from pydantic import ValidationError

from .logging import get_logger
from .models import DeploymentRecord

logger = get_logger(__name__)


class DeploymentHistory:
    """Append-only store of :class:`DeploymentRecord` entries."""

    def __init__(self, path: Path, block_size: int = 64 * 1024):
        self.path = Path(path)
        self.block_size = block_size
        self._lock = threading.Lock()

    def append(self, record: DeploymentRecord) -> None:
        """Persist a record.

        The line is written with a single ``write`` call in append mode and
        fsynced, so concurrent writers never interleave partial lines.
        """
        line = record.model_dump_json() + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line)
                fh.flush()
                os.fsync(fh.fileno())
        logger.debug(
            "deployment recorded",
            project=record.project,
            status=record.status.value,
            path=str(self.path),
        )

    def read(self, project: Optional[str] = None, limit: Optional[int] = None) -> List[DeploymentRecord]:
        """Return records newest first.

        The file is scanned backwards from its end, so a bounded ``limit``
        only parses the most recent lines however long the history grows.

        Args:
            project: Only return records for this project
            limit: Maximum number of records to return

        Returns:
            Matching records, most recent first
        """
        if not self.path.exists():
            return []

        records: List[DeploymentRecord] = []
        with self.path.open("rb") as fh:
            for raw in self._lines_reversed(fh):
                if limit is not None and len(records) >= limit:
                    break
                if not raw.strip():
                    continue
                record = self._parse_line(raw)
                if record is None:
                    continue
                if project is None or record.project == project:
                    records.append(record)
        return records

    def _parse_line(self, raw: bytes) -> Optional[DeploymentRecord]:
        try:
            return DeploymentRecord.model_validate_json(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValidationError):
            # A torn final line from a crashed writer ends up here too.
            logger.warning(
                "skipping malformed history line",
                path=str(self.path),
                line_bytes=len(raw),
            )
            return None

    def _lines_reversed(self, fh: BinaryIO) -> Iterator[bytes]:
        """Yield the raw lines of ``fh`` from last to first."""
        fh.seek(0, os.SEEK_END)
        position = fh.tell()
        remainder = b""
        while position > 0:
            size = min(self.block_size, position)
            position -= size
            fh.seek(position)
            lines = (fh.read(size) + remainder).split(b"\n")
            remainder = lines.pop(0)
            yield from reversed(lines)
        yield remainder

    def last(self, project: str) -> Optional[DeploymentRecord]:
        records = self.read(project=project, limit=1)
        return records[0] if records else None

    def export(self, project: Optional[str] = None, limit: Optional[int] = None) -> str:
        """Render records as a JSON array for the CLI."""
        return json.dumps(
            [record.model_dump(mode="json") for record in self.read(project, limit)],
            indent=2,
        )
