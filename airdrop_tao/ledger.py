"""
Result ledger: the audit trail of transfers that reached confirmation depth.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

log = logging.getLogger(__name__)

RESULT_HEADER = ("address", "amount", "transaction_hash")


class ResultWriteError(OSError):
    """The result file could not be written."""


@dataclass(frozen=True)
class CompletedTransfer:
    address: str
    amount: int
    transaction_hash: str


class ResultLedger:
    """
    Append-only list of CompletedTransfer entries for one run.

    Entries keep the order they were recorded in (batch order, then the
    order inside each batch). flush() is a pure function of the entries,
    so flushing twice with nothing recorded in between gives the same text.
    """

    def __init__(self) -> None:
        self._entries: list[CompletedTransfer] = []

    def record(self, entries: Iterable[CompletedTransfer]) -> None:
        new_entries = list(entries)
        for entry in new_entries:
            if not isinstance(entry, CompletedTransfer):
                raise TypeError(f"expected CompletedTransfer, got {type(entry).__name__}")
        self._entries.extend(new_entries)

    @property
    def entries(self) -> tuple[CompletedTransfer, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def total_amount(self) -> int:
        return sum((e.amount for e in self._entries), 0)

    def flush(self) -> str:
        """Render the ledger as CSV text: a header row, then one row per entry."""
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(RESULT_HEADER)
        for e in self._entries:
            writer.writerow((e.address, str(e.amount), e.transaction_hash))
        return buf.getvalue()


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def write_results(ledger: ResultLedger, path: str | Path) -> Path:
    """
    Replace `path` with the ledger's contents.

    The text goes to a temporary file next to the target which is then
    renamed over it, so a previous run's file is never appended to or left
    half-written. On failure every completed transfer is logged before
    ResultWriteError is raised.
    """
    path = Path(path)
    content = ledger.flush()
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        with os.fdopen(fd, "w", newline="") as f:
            f.write(content)
        # mkstemp creates 0600; give the result the mode a plain open() would
        os.chmod(tmp_name, 0o666 & ~_current_umask())
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        log.error("Could not write results to %s: %s", path, e)
        log.error("Completed transfers (%d) follow:", len(ledger))
        for entry in ledger.entries:
            log.error("%s,%s,%s", entry.address, entry.amount, entry.transaction_hash)
        raise ResultWriteError(f"Could not write results to {path}: {e}") from e

    log.info("Wrote %d completed transfers to %s", len(ledger), path)
    return path
