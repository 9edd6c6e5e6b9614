"""
Ledger client boundary.

The executor only talks to the network through the LedgerClient protocol
below, so it can be driven by the Subtensor adapter in production and by
an in-memory fake in tests.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence


class LedgerError(Exception):
    """Base class for errors raised by a ledger client."""


class SubmissionError(LedgerError):
    """The batch transaction could not be built, signed or accepted."""


class ConfirmationError(LedgerError):
    """The batch transaction was dropped or reverted after submission."""


class ConfirmationTimeout(ConfirmationError, TimeoutError):
    """The required confirmation depth was not reached in time."""


class LedgerClient(Protocol):
    def resolve_sender_address(self) -> str:
        ...

    def build_transfer_call(self, sender: str, recipient: str, amount: int) -> Any:
        ...

    def submit(self, calls: Sequence[Any]) -> str:
        """Submit calls as one atomic transaction. Returns its hash."""
        ...

    def await_confirmations(self, transaction_hash: str, depth: int) -> None:
        """Block until `depth` confirmations, or raise ConfirmationError."""
        ...
