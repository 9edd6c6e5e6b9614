"""
Recipient lists and batch planning for airdrop-tao.

A recipient list is parsed into Transfer records, then partitioned into
contiguous Batches. Every Batch is later submitted as one
Utility.batch_all extrinsic, so either all of its transfers land or none
of them do.

Amounts are token base units (RAO for TAO) held as Python ints. They are
never converted to float.
"""

from __future__ import annotations

import csv
import re
import time
from dataclasses import dataclass
from decimal import Decimal, localcontext
from pathlib import Path
from typing import Callable, Iterable, Sequence

from airdrop_tao.config import ConfigurationError

DEFAULT_BATCH_SIZE = 10

_AMOUNT_RE = re.compile(r"^[0-9]+$")


@dataclass(frozen=True)
class Transfer:
    """A single recipient and the amount (in base units) it should receive."""

    address: str
    amount: int

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(f"amount must be an int, got {type(self.amount).__name__}")
        if self.amount < 0:
            raise ValueError(f"amount must not be negative, got {self.amount}")

    def to_dict(self) -> dict[str, str]:
        return {"address": self.address, "amount": str(self.amount)}


@dataclass(frozen=True)
class Batch:
    """A contiguous, non-empty slice of the recipient list."""

    index: int
    transfers: tuple[Transfer, ...]

    def __post_init__(self) -> None:
        if not self.transfers:
            raise ValueError("a batch must contain at least one transfer")

    def __len__(self) -> int:
        return len(self.transfers)

    def __iter__(self):
        return iter(self.transfers)

    @property
    def number(self) -> int:
        """1-based position, for display."""
        return self.index + 1

    @property
    def total_amount(self) -> int:
        return sum(t.amount for t in self.transfers)


@dataclass(frozen=True)
class RunSummary:
    """Totals shown to the operator before anything is sent."""

    total_amount: int
    recipient_count: int
    batch_count: int

    @classmethod
    def from_transfers(
        cls, transfers: Sequence[Transfer], batch_size: int = DEFAULT_BATCH_SIZE
    ) -> "RunSummary":
        return cls(
            total_amount=total_amount(transfers),
            recipient_count=len(transfers),
            batch_count=-(-len(transfers) // batch_size),
        )

    def summary(self, decimals: int = 9, symbol: str = "TAO") -> str:
        return "\n".join([
            f"> About to distribute {format_amount(self.total_amount, decimals)} {symbol}"
            f" ({self.total_amount} base units)",
            f"> In {self.recipient_count} airdrops across {self.batch_count} batches",
        ])


def format_amount(base_units: int, decimals: int = 9) -> str:
    """Render base units as a decimal token amount, e.g. 1500000000 -> '1.5'."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(str(abs(base_units))) + decimals)
        value = Decimal(base_units).scaleb(-decimals)
    text = f"{value:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def total_amount(transfers: Iterable[Transfer]) -> int:
    return sum((t.amount for t in transfers), 0)


def _is_header(fields: list[str]) -> bool:
    return [f.lower() for f in fields] == ["address", "amount"]


def parse_transfer_lines(lines: Iterable[str], delimiter: str = ",") -> list[Transfer]:
    """
    Parse delimited `address,amount` records.

    Blank lines are skipped, as is a leading `address,amount` header. A
    single trailing empty field (`addr, 100,`) is accepted. Anything else
    that is not exactly two fields with an integer amount raises
    ConfigurationError.
    """
    transfers = []
    reader = csv.reader(lines, delimiter=delimiter)

    for fields in reader:
        line_num = reader.line_num
        fields = [f.strip() for f in fields]
        if not any(fields):
            continue
        if len(fields) == 3 and fields[2] == "":
            fields = fields[:2]

        if not transfers and _is_header(fields):
            continue

        if len(fields) != 2:
            raise ConfigurationError(
                f"Line {line_num}: expected 2 fields (address, amount), got {len(fields)}"
            )

        address, amount_str = fields
        if not address:
            raise ConfigurationError(f"Line {line_num}: missing address")
        if not _AMOUNT_RE.match(amount_str):
            raise ConfigurationError(
                f"Line {line_num}: invalid amount '{amount_str}', "
                "expected a non-negative integer in base units"
            )

        try:
            amount = int(amount_str)
        except ValueError as e:
            # int() refuses strings beyond sys.get_int_max_str_digits()
            raise ConfigurationError(f"Line {line_num}: invalid amount: {e}") from e

        transfers.append(Transfer(address=address, amount=amount))

    return transfers


def parse_transfers(filepath: str | Path, delimiter: str = ",") -> list[Transfer]:
    """Parse a recipient list file. See parse_transfer_lines for the format."""
    filepath = Path(filepath)
    try:
        with open(filepath, "r", newline="") as f:
            return parse_transfer_lines(f, delimiter=delimiter)
    except FileNotFoundError:
        raise ConfigurationError(f"Distribution file not found: {filepath}")
    except UnicodeDecodeError as e:
        raise ConfigurationError(f"Distribution file {filepath} is not text: {e}")


def find_duplicate_addresses(transfers: Sequence[Transfer]) -> list[str]:
    """Describe every address that appears more than once."""
    seen: dict[str, int] = {}
    duplicates = []
    for i, t in enumerate(transfers):
        if t.address in seen:
            duplicates.append(
                f"Duplicate address at positions {seen[t.address] + 1} and {i + 1}: {t.address}"
            )
        else:
            seen[t.address] = i
    return duplicates


def plan_batches(
    transfers: Sequence[Transfer], batch_size: int = DEFAULT_BATCH_SIZE
) -> list[Batch]:
    """
    Split transfers into contiguous batches of at most batch_size.

    Batch i holds transfers[i * batch_size:(i + 1) * batch_size], so the
    concatenation of all batches is the original list.
    """
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
        raise ConfigurationError(f"batch_size must be a positive integer, got {batch_size!r}")

    return [
        Batch(index=i, transfers=tuple(transfers[start: start + batch_size]))
        for i, start in enumerate(range(0, len(transfers), batch_size))
    ]


def preflight_gate(
    summary: RunSummary,
    pause_seconds: float,
    decimals: int = 9,
    symbol: str = "TAO",
    emit: Callable[[str], None] = print,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Show the run totals and pause so the operator can abort with CTRL+C.

    KeyboardInterrupt raised during the pause propagates to the caller.
    """
    emit(summary.summary(decimals=decimals, symbol=symbol))
    emit(f"> Sleeping for {pause_seconds:g}s while you ponder that.")
    emit("")
    emit("> You should CTRL+C the program *NOW* if the numbers do not look correct!")
    if pause_seconds > 0:
        sleep(pause_seconds)
