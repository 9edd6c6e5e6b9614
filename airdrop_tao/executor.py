"""
Sequential batch execution.

Each planned batch moves through

    PLANNED -> SUBMITTING -> SUBMITTED -> CONFIRMING -> CONFIRMED

or ends in FAILED from any non-terminal state. Batches run strictly one
after another: batch i + 1 is not built until batch i is CONFIRMED or
FAILED, since every transfer is signed by the same account and its nonce
must advance predictably.

A FAILED batch records nothing in the result ledger and does not stop the
run. Failed batches are never resubmitted automatically; they are logged
with their full contents for manual reconciliation.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

from airdrop_tao.batch import Batch
from airdrop_tao.client import LedgerClient
from airdrop_tao.ledger import CompletedTransfer, ResultLedger

log = logging.getLogger(__name__)

DEFAULT_CONFIRMATIONS = 3

FAILURE_RULE = "-" * 47


class BatchState(Enum):
    PLANNED = "planned"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (BatchState.CONFIRMED, BatchState.FAILED)


@dataclass(frozen=True)
class SubmittedTransaction:
    """A batch whose transaction was accepted by the network, not yet confirmed."""

    batch: Batch
    transaction_hash: str


@dataclass(frozen=True)
class BatchFailure:
    """Everything needed to reconcile a failed batch by hand."""

    index: int
    batch: Batch
    state: BatchState  # state the batch was in when it failed
    error: str
    transaction_hash: Optional[str] = None

    def summary(self) -> str:
        lines = [
            FAILURE_RULE,
            f"Error in batch {self.batch.number}: {self.error}",
            f"Failed while {self.state.value}",
        ]
        if self.transaction_hash:
            lines.append(f"Transaction hash: {self.transaction_hash}")
        lines.extend([
            f"Batch {self.batch.number} dump:",
            json.dumps([t.to_dict() for t in self.batch]),
            "Please verify on chain whether this batch succeeded.",
            FAILURE_RULE,
        ])
        return "\n".join(lines)


@dataclass
class BatchOutcome:
    batch: Batch
    state: BatchState = BatchState.PLANNED
    transaction_hash: Optional[str] = None
    error: Optional[str] = None
    history: list[BatchState] = field(default_factory=lambda: [BatchState.PLANNED])

    def advance(self, state: BatchState) -> None:
        if self.state.terminal:
            raise RuntimeError(
                f"batch {self.batch.number} is already {self.state.value}"
            )
        self.state = state
        self.history.append(state)

    @property
    def success(self) -> bool:
        return self.state is BatchState.CONFIRMED

    def in_flight_summary(self) -> str:
        """Dump of a batch whose outcome is unknown, for manual reconciliation."""
        return BatchFailure(
            index=self.batch.index,
            batch=self.batch,
            state=self.state,
            error="interrupted before reaching a terminal state",
            transaction_hash=self.transaction_hash,
        ).summary()


@dataclass(frozen=True)
class ExecutionReport:
    completed: tuple[CompletedTransfer, ...]
    failures: tuple[BatchFailure, ...]
    outcomes: tuple[BatchOutcome, ...]

    @property
    def all_confirmed(self) -> bool:
        return not self.failures


class BatchExecutor:
    """
    Submits planned batches through a LedgerClient and records the results.

    The sender address is resolved once, when the executor is created, and
    used for every transfer call of the run.
    """

    def __init__(
        self,
        client: LedgerClient,
        confirmations: int = DEFAULT_CONFIRMATIONS,
        ledger: Optional[ResultLedger] = None,
        on_outcome: Optional[Callable[[BatchOutcome], None]] = None,
    ) -> None:
        if isinstance(confirmations, bool) or not isinstance(confirmations, int) or confirmations < 1:
            raise ValueError(f"confirmations must be a positive integer, got {confirmations!r}")
        self.client = client
        self.confirmations = confirmations
        self.ledger = ledger if ledger is not None else ResultLedger()
        self.on_outcome = on_outcome
        self.sender = client.resolve_sender_address()
        # batch being driven right now; stays set if execution is interrupted
        self.current: Optional[BatchOutcome] = None

    def execute(self, batches: Sequence[Batch]) -> ExecutionReport:
        outcomes = []
        failures = []

        for batch in batches:
            log.info("Processing batch %d of %d", batch.number, len(batches))
            outcome = self.execute_batch(batch)
            outcomes.append(outcome)

            if outcome.success:
                log.info("Batch %d confirmed", batch.number)
            else:
                failure = BatchFailure(
                    index=batch.index,
                    batch=batch,
                    state=outcome.history[-2],
                    error=outcome.error or "unknown error",
                    transaction_hash=outcome.transaction_hash,
                )
                failures.append(failure)
                log.error("\n%s", failure.summary())

            if self.on_outcome is not None:
                self.on_outcome(outcome)

        return ExecutionReport(
            completed=self.ledger.entries,
            failures=tuple(failures),
            outcomes=tuple(outcomes),
        )

    def execute_batch(self, batch: Batch) -> BatchOutcome:
        """Drive one batch to CONFIRMED or FAILED. Never raises for ledger errors."""
        outcome = BatchOutcome(batch=batch)
        self.current = outcome
        try:
            outcome.advance(BatchState.SUBMITTING)
            submitted = self._submit(batch)

            outcome.transaction_hash = submitted.transaction_hash
            outcome.advance(BatchState.SUBMITTED)
            log.info(
                "Sent in hash %s. Waiting for %d confirmation(s).",
                submitted.transaction_hash,
                self.confirmations,
            )

            outcome.advance(BatchState.CONFIRMING)
            self.client.await_confirmations(submitted.transaction_hash, self.confirmations)
        except Exception as e:
            outcome.error = f"{type(e).__name__}: {e}"
            outcome.advance(BatchState.FAILED)
            self.current = None
            return outcome

        self.ledger.record(
            CompletedTransfer(
                address=t.address,
                amount=t.amount,
                transaction_hash=submitted.transaction_hash,
            )
            for t in batch
        )
        outcome.advance(BatchState.CONFIRMED)
        self.current = None
        return outcome

    def _submit(self, batch: Batch) -> SubmittedTransaction:
        calls = [
            self.client.build_transfer_call(self.sender, t.address, t.amount)
            for t in batch
        ]
        transaction_hash = self.client.submit(calls)
        return SubmittedTransaction(batch=batch, transaction_hash=transaction_hash)
