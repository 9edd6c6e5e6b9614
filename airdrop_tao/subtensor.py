"""
LedgerClient implementation over a Bittensor Subtensor connection.

Transfers are Balances pallet calls (native TAO) or Assets pallet calls
(asset id), wrapped in a single Utility.batch_all extrinsic so a batch
either fully applies or fully reverts.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Sequence

import bittensor as bt
from bittensor.core.extrinsics.pallets import Balances
from bittensor.utils import is_valid_bittensor_address_or_public_key
from bittensor_wallet import Keypair

from airdrop_tao.client import (
    ConfirmationError,
    ConfirmationTimeout,
    SubmissionError,
)
from airdrop_tao.config import ConfigurationError

log = logging.getLogger(__name__)

# Substrate produces a block roughly every 12 seconds on finney.
DEFAULT_POLL_INTERVAL = 6.0
DEFAULT_CONFIRMATION_TIMEOUT = 600.0


def keypair_from_secret(secret: str) -> Keypair:
    """
    Build a signing keypair.

    A `0x`-prefixed value is treated as a hex seed; anything else as a
    mnemonic or SURI (e.g. `//Alice`).
    """
    try:
        if secret.startswith("0x"):
            return Keypair.create_from_seed(secret)
        return Keypair.create_from_uri(secret)
    except Exception as e:
        raise ConfigurationError(f"Invalid signing key: {e}") from e


class SubtensorLedgerClient:
    def __init__(
        self,
        subtensor: "bt.Subtensor",
        keypair: Keypair,
        asset_id: Optional[int] = None,
        keep_alive: bool = True,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.subtensor = subtensor
        self.keypair = keypair
        self.asset_id = asset_id
        self.keep_alive = keep_alive
        self.poll_interval = poll_interval
        self.confirmation_timeout = confirmation_timeout
        self._sleep = sleep
        self._clock = clock
        # extrinsic hash -> receipt, for transactions submitted by this client
        self._receipts: dict[str, Any] = {}

    @classmethod
    def connect(
        cls, network: str, keypair: Keypair, **kwargs: Any
    ) -> "SubtensorLedgerClient":
        return cls(bt.Subtensor(network=network), keypair, **kwargs)

    def resolve_sender_address(self) -> str:
        return self.keypair.ss58_address

    @staticmethod
    def is_valid_address(address: str) -> bool:
        return bool(is_valid_bittensor_address_or_public_key(address))

    def get_balance(self, address: str) -> int:
        """Native balance in RAO."""
        return int(self.subtensor.get_balance(address).rao)

    def build_transfer_call(self, sender: str, recipient: str, amount: int) -> Any:
        if sender != self.keypair.ss58_address:
            raise SubmissionError(
                f"Sender {sender} does not match signing account {self.keypair.ss58_address}"
            )
        if not self.is_valid_address(recipient):
            raise SubmissionError(f"Invalid ss58 address: {recipient}")

        try:
            if self.asset_id is None:
                transfer_fn = "transfer_keep_alive" if self.keep_alive else "transfer_allow_death"
                return getattr(Balances(self.subtensor), transfer_fn)(
                    dest=recipient,
                    value=amount,
                )
            return self.subtensor.compose_call(
                call_module="Assets",
                call_function="transfer_keep_alive" if self.keep_alive else "transfer",
                call_params={"id": self.asset_id, "target": recipient, "amount": amount},
            )
        except Exception as e:
            raise SubmissionError(f"Could not build transfer to {recipient}: {e}") from e

    def _build_batch_call(self, calls: Sequence[Any]) -> Any:
        return self.subtensor.compose_call(
            call_module="Utility",
            call_function="batch_all",
            call_params={"calls": list(calls)},
        )

    def estimate_fee(self, calls: Sequence[Any]) -> int:
        """Network fee, in RAO, of submitting `calls` as one batch_all."""
        fee_info = self.subtensor.substrate.get_payment_info(
            call=self._build_batch_call(calls),
            keypair=self.keypair,
        )
        return int(fee_info["partial_fee"]) if fee_info else 0

    def submit(self, calls: Sequence[Any]) -> str:
        if not calls:
            raise SubmissionError("Refusing to submit an empty batch")
        try:
            extrinsic = self.subtensor.substrate.create_signed_extrinsic(
                call=self._build_batch_call(calls),
                keypair=self.keypair,
            )
            receipt = self.subtensor.substrate.submit_extrinsic(
                extrinsic,
                wait_for_inclusion=True,
                wait_for_finalization=False,
            )
        except Exception as e:
            raise SubmissionError(str(e)) from e

        tx_hash = getattr(receipt, "extrinsic_hash", None)
        if not tx_hash:
            raise SubmissionError("Node accepted the extrinsic but returned no hash")
        self._receipts[tx_hash] = receipt
        return tx_hash

    def _inclusion_block(self, receipt: Any) -> int:
        block_number = getattr(receipt, "block_number", None)
        if block_number is None:
            block_number = self.subtensor.substrate.get_block_number(receipt.block_hash)
        return int(block_number)

    def await_confirmations(self, transaction_hash: str, depth: int) -> None:
        """
        Wait until the inclusion block has `depth` confirmations.

        The inclusion block itself counts as the first confirmation.
        """
        receipt = self._receipts.pop(transaction_hash, None)
        if receipt is None:
            raise ConfirmationError(f"Unknown transaction {transaction_hash}")

        try:
            succeeded = receipt.is_success
            included = self._inclusion_block(receipt) if succeeded else None
        except Exception as e:
            raise ConfirmationError(f"Could not read receipt for {transaction_hash}: {e}") from e
        if not succeeded:
            raise ConfirmationError(
                f"Transaction {transaction_hash} reverted: {receipt.error_message}"
            )

        target = included + depth - 1
        deadline = self._clock() + self.confirmation_timeout

        while True:
            try:
                head = self.subtensor.get_current_block()
            except Exception as e:
                raise ConfirmationError(f"Could not read chain head: {e}") from e
            log.debug("Block %d, waiting for %d (tx %s)", head, target, transaction_hash)
            if head >= target:
                break
            if self._clock() >= deadline:
                raise ConfirmationTimeout(
                    f"Transaction {transaction_hash} reached "
                    f"{max(head - included + 1, 0)}/{depth} confirmations "
                    f"in {self.confirmation_timeout:g}s"
                )
            self._sleep(self.poll_interval)

        canonical = self.subtensor.substrate.get_block_hash(included)
        if canonical != receipt.block_hash:
            raise ConfirmationError(
                f"Transaction {transaction_hash} dropped: block {included} "
                f"is now {canonical}, was {receipt.block_hash}"
            )
