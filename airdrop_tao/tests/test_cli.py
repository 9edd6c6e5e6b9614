"""Smoke tests for the airdrop-tao CLI."""

import os
import tempfile
import unittest
from contextlib import redirect_stdout
from io import StringIO
from pathlib import Path
from unittest import mock

import cli
from airdrop_tao.batch import Transfer
from airdrop_tao.config import DistributionConfig
from airdrop_tao.tests.fakes import FakeLedgerClient

RECIPIENTS = [
    Transfer("A", 100),
    Transfer("B", 200),
    Transfer("C", 300),
    Transfer("D", 400),
    Transfer("E", 500),
]


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.dir = Path(self.tmp.name)
        self.recipients = self.dir / "airdrop.csv"
        self.recipients.write_text("A,100\nB,200\nC,300\nD,400\nE,500\n")
        self.output = self.dir / "completed_airdrops.csv"

    def _run(self, args):
        buf = StringIO()
        with redirect_stdout(buf):
            code = cli.main(args)
        return code, buf.getvalue()

    def _distribute(self, client, confirm=None, sleep=lambda _s: None):
        config = DistributionConfig(
            distribution_file=str(self.recipients),
            batch_size=2,
            pause_seconds=120,
            decimals=0,
            output_file=str(self.output),
        )
        buf = StringIO()
        with redirect_stdout(buf):
            code = cli.run_distribution(config, RECIPIENTS, client, sleep=sleep, confirm=confirm)
        return code, buf.getvalue()

    def test_plan_outputs_batches(self) -> None:
        code, output = self._run(
            ["plan", "--file", str(self.recipients), "--batch-size", "2", "--decimals", "0"]
        )
        self.assertEqual(code, 0)
        self.assertIn("1500 TAO", output)
        self.assertIn("Batch 3: 1 transfers", output)

    def test_plan_rejects_malformed_amount(self) -> None:
        self.recipients.write_text("A,100\nB,abc\n")
        code, output = self._run(["plan", "--file", str(self.recipients)])
        self.assertEqual(code, cli.EXIT_CONFIG)
        self.assertIn("Line 2", output)

    def test_plan_rejects_zero_batch_size(self) -> None:
        code, _ = self._run(["plan", "--file", str(self.recipients), "--batch-size", "0"])
        self.assertEqual(code, cli.EXIT_CONFIG)

    def test_plan_rejects_wrongly_typed_config(self) -> None:
        config = self.dir / "airdrop.toml"
        config.write_text('[distribution]\npause_seconds = "120"\n')
        code, output = self._run(
            ["plan", "--config", str(config), "--file", str(self.recipients)]
        )
        self.assertEqual(code, cli.EXIT_CONFIG)
        self.assertIn("pause_seconds", output)

    def test_validate(self) -> None:
        with mock.patch.object(cli.SubtensorLedgerClient, "is_valid_address", return_value=True):
            code, output = self._run(["validate", "--file", str(self.recipients)])
        self.assertEqual(code, 0)
        self.assertIn("All 5 recipients are valid", output)

    def test_validate_reports_bad_addresses(self) -> None:
        with mock.patch.object(cli.SubtensorLedgerClient, "is_valid_address", return_value=False):
            code, output = self._run(["validate", "--file", str(self.recipients)])
        self.assertEqual(code, 1)
        self.assertIn("invalid ss58 address: A", output)

    def test_generate_template_is_parseable(self) -> None:
        target = self.dir / "template.csv"
        code, _ = self._run(["generate-template", "--output", str(target), "--count", "3"])
        self.assertEqual(code, 0)

        code, output = self._run(["plan", "--file", str(target)])
        self.assertEqual(code, 0)
        self.assertIn("In 3 airdrops", output)

    def test_distribute_without_key_fails_before_network(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True), \
                mock.patch.object(cli.SubtensorLedgerClient, "connect") as connect, \
                mock.patch.object(cli, "setup_logging"):
            code, output = self._run(
                ["distribute", "--file", str(self.recipients), "--yes", "--pause", "0"]
            )
        self.assertEqual(code, cli.EXIT_CONFIG)
        self.assertIn("AIRDROP_PRIVATE_KEY", output)
        connect.assert_not_called()

    def test_distribute_with_malformed_file_submits_nothing(self) -> None:
        self.recipients.write_text("A,100\nB,abc\n")
        with mock.patch.object(cli, "_connect") as connect, \
                mock.patch.object(cli, "setup_logging"):
            code, _ = self._run(["distribute", "--file", str(self.recipients), "--yes"])
        self.assertEqual(code, cli.EXIT_CONFIG)
        connect.assert_not_called()

    def test_run_distribution_records_partial_success(self) -> None:
        client = FakeLedgerClient(revert={2})
        code, output = self._distribute(client)

        self.assertEqual(code, cli.EXIT_FAILED)
        self.assertEqual(
            self.output.read_text(),
            "address,amount,transaction_hash\nA,100,h1\nB,200,h1\nE,500,h3\n",
        )
        self.assertIn("Requested: 1500", output)
        self.assertIn("Recorded:  1200", output)
        self.assertIn("1/3 batches failed", output)

    def test_run_distribution_all_confirmed(self) -> None:
        code, output = self._distribute(FakeLedgerClient())
        self.assertEqual(code, cli.EXIT_OK)
        self.assertIn("All 3 batches confirmed", output)
        self.assertEqual(len(self.output.read_text().splitlines()), 6)

    def test_rerun_replaces_output(self) -> None:
        self._distribute(FakeLedgerClient())
        self._distribute(FakeLedgerClient(fail_submit={1, 2, 3}))
        self.assertEqual(self.output.read_text(), "address,amount,transaction_hash\n")

    def test_interrupt_during_pause_submits_nothing(self) -> None:
        def interrupt(_seconds):
            raise KeyboardInterrupt

        client = FakeLedgerClient()
        code, output = self._distribute(client, sleep=interrupt)

        self.assertEqual(code, cli.EXIT_INTERRUPTED)
        self.assertEqual(client.submitted, [])
        self.assertFalse(self.output.exists())

    def test_declined_prompt_submits_nothing(self) -> None:
        client = FakeLedgerClient()
        code, output = self._distribute(client, confirm=lambda _prompt: "n")

        self.assertEqual(code, cli.EXIT_OK)
        self.assertIn("Aborted.", output)
        self.assertEqual(client.submitted, [])

    def test_pause_always_applies(self) -> None:
        slept = []
        self._distribute(FakeLedgerClient(), confirm=lambda _prompt: "y", sleep=slept.append)
        self.assertEqual(slept, [120])

    def test_interrupt_mid_run_writes_recorded_entries(self) -> None:
        class InterruptingClient(FakeLedgerClient):
            def submit(self, calls):
                if len(self.submitted) == 1:
                    raise KeyboardInterrupt
                return super().submit(calls)

        code, _ = self._distribute(InterruptingClient())
        self.assertEqual(code, cli.EXIT_INTERRUPTED)
        self.assertEqual(
            self.output.read_text(),
            "address,amount,transaction_hash\nA,100,h1\nB,200,h1\n",
        )

    def test_interrupt_while_confirming_dumps_batch_in_flight(self) -> None:
        class InterruptingClient(FakeLedgerClient):
            def await_confirmations(self, transaction_hash, depth):
                if transaction_hash == "h2":
                    raise KeyboardInterrupt
                return super().await_confirmations(transaction_hash, depth)

        code, output = self._distribute(InterruptingClient())

        self.assertEqual(code, cli.EXIT_INTERRUPTED)
        self.assertIn("Transaction hash: h2", output)
        self.assertIn("Batch 2 dump:", output)
        self.assertIn('"address": "C", "amount": "300"', output)
        self.assertIn('"address": "D", "amount": "400"', output)

    def test_sender_resolved_once_per_run(self) -> None:
        client = FakeLedgerClient()
        self._distribute(client)
        self.assertEqual(client.sender_lookups, 1)


if __name__ == "__main__":
    unittest.main()
