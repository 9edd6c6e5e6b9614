"""Parsing and planning tests for recipient lists."""

import sys
import tempfile
import unittest
from pathlib import Path

from airdrop_tao.batch import (
    Batch,
    RunSummary,
    Transfer,
    find_duplicate_addresses,
    format_amount,
    parse_transfer_lines,
    parse_transfers,
    plan_batches,
    preflight_gate,
)
from airdrop_tao.config import ConfigurationError


def _transfers(n):
    return [Transfer(address=f"addr{i}", amount=(i + 1) * 100) for i in range(n)]


class PlanBatchesTests(unittest.TestCase):
    def test_example_partition(self) -> None:
        transfers = [
            Transfer("A", 100),
            Transfer("B", 200),
            Transfer("C", 300),
            Transfer("D", 400),
            Transfer("E", 500),
        ]
        batches = plan_batches(transfers, 2)

        self.assertEqual(
            [[t.address for t in b] for b in batches],
            [["A", "B"], ["C", "D"], ["E"]],
        )
        self.assertEqual([b.index for b in batches], [0, 1, 2])
        self.assertEqual([b.number for b in batches], [1, 2, 3])

    def test_partition_properties_for_many_sizes(self) -> None:
        for n in range(0, 26):
            transfers = _transfers(n)
            for capacity in range(1, 12):
                with self.subTest(n=n, capacity=capacity):
                    batches = plan_batches(transfers, capacity)
                    self.assertEqual(len(batches), -(-n // capacity))
                    self.assertTrue(all(1 <= len(b) <= capacity for b in batches))
                    flattened = [t for b in batches for t in b]
                    self.assertEqual(flattened, transfers)
                    self.assertEqual(
                        sum(b.total_amount for b in batches),
                        sum(t.amount for t in transfers),
                    )

    def test_only_last_batch_is_short(self) -> None:
        batches = plan_batches(_transfers(23), 10)
        self.assertEqual([len(b) for b in batches], [10, 10, 3])

    def test_empty_list_gives_no_batches(self) -> None:
        self.assertEqual(plan_batches([], 10), [])

    def test_non_positive_capacity_rejected(self) -> None:
        for capacity in (0, -1, True, 2.5):
            with self.subTest(capacity=capacity):
                with self.assertRaises(ConfigurationError):
                    plan_batches(_transfers(3), capacity)

    def test_batch_must_not_be_empty(self) -> None:
        with self.assertRaises(ValueError):
            Batch(index=0, transfers=())


class TransferTests(unittest.TestCase):
    def test_float_amount_rejected(self) -> None:
        with self.assertRaises(TypeError):
            Transfer("A", 1.5)

    def test_negative_amount_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Transfer("A", -1)

    def test_large_amounts_stay_exact(self) -> None:
        big = 10**30 + 1
        summary = RunSummary.from_transfers([Transfer("A", big), Transfer("B", big)], 10)
        self.assertEqual(summary.total_amount, 2 * 10**30 + 2)


class ParseTransfersTests(unittest.TestCase):
    def test_parses_trimmed_records(self) -> None:
        lines = ["5Alice , 100\n", " 5Bob,200 \n"]
        self.assertEqual(
            parse_transfer_lines(lines),
            [Transfer("5Alice", 100), Transfer("5Bob", 200)],
        )

    def test_skips_blank_lines_and_header(self) -> None:
        lines = ["Address, Amount\n", "\n", "5Alice,100\n", "   \n", "5Bob,200\n", ""]
        self.assertEqual(len(parse_transfer_lines(lines)), 2)

    def test_trailing_delimiter_is_tolerated(self) -> None:
        self.assertEqual(parse_transfer_lines(["5Alice, 100,\n"]), [Transfer("5Alice", 100)])

    def test_custom_delimiter(self) -> None:
        self.assertEqual(
            parse_transfer_lines(["5Alice;7\n"], delimiter=";"),
            [Transfer("5Alice", 7)],
        )

    def test_non_numeric_amount_is_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            parse_transfer_lines(["5Alice,100\n", "5Bob,abc\n"])
        self.assertIn("Line 2", str(ctx.exception))

    def test_decimal_and_negative_amounts_rejected(self) -> None:
        for amount in ("1.5", "-3", "1e9", ""):
            with self.subTest(amount=amount):
                with self.assertRaises(ConfigurationError):
                    parse_transfer_lines([f"5Alice,{amount}\n"])

    def test_amount_beyond_int_digit_limit_is_configuration_error(self) -> None:
        if sys.get_int_max_str_digits() == 0:
            self.skipTest("int digit limit disabled in this interpreter")
        huge = "9" * (sys.get_int_max_str_digits() + 1)
        with self.assertRaises(ConfigurationError) as ctx:
            parse_transfer_lines(["5Alice,1\n", f"5Bob,{huge}\n"])
        self.assertIn("Line 2", str(ctx.exception))

    def test_wrong_field_count_rejected(self) -> None:
        for line in ("5Alice\n", "5Alice,1,2,3\n"):
            with self.subTest(line=line):
                with self.assertRaises(ConfigurationError):
                    parse_transfer_lines([line])

    def test_header_only_allowed_first(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_transfer_lines(["5Alice,1\n", "address,amount\n"])

    def test_parse_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "airdrop.csv"
            path.write_text("5Alice,100\n5Bob,200\n")
            self.assertEqual(len(parse_transfers(path)), 2)

    def test_missing_file_is_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_transfers("/nonexistent/airdrop.csv")


class SummaryTests(unittest.TestCase):
    def test_run_summary(self) -> None:
        summary = RunSummary.from_transfers(_transfers(5), 2)
        self.assertEqual(summary, RunSummary(total_amount=1500, recipient_count=5, batch_count=3))

    def test_format_amount(self) -> None:
        self.assertEqual(format_amount(1_500_000_000, 9), "1.5")
        self.assertEqual(format_amount(0, 9), "0")
        self.assertEqual(format_amount(1, 9), "0.000000001")
        self.assertEqual(format_amount(1500, 0), "1500")
        self.assertEqual(
            format_amount(123456789012345678901234567890123, 9),
            "123456789012345678901234.567890123",
        )

    def test_duplicates_reported(self) -> None:
        transfers = [Transfer("A", 1), Transfer("B", 1), Transfer("A", 2)]
        duplicates = find_duplicate_addresses(transfers)
        self.assertEqual(len(duplicates), 1)
        self.assertIn("positions 1 and 3", duplicates[0])


class PreflightGateTests(unittest.TestCase):
    def test_displays_totals_and_pauses(self) -> None:
        out = []
        slept = []
        summary = RunSummary(total_amount=1500, recipient_count=5, batch_count=3)

        preflight_gate(summary, 120, decimals=0, emit=out.append, sleep=slept.append)

        self.assertEqual(slept, [120])
        text = "\n".join(out)
        self.assertIn("1500", text)
        self.assertIn("5 airdrops", text)
        self.assertIn("CTRL+C", text)

    def test_interrupt_during_pause_propagates(self) -> None:
        def interrupt(_seconds):
            raise KeyboardInterrupt

        summary = RunSummary(total_amount=1, recipient_count=1, batch_count=1)
        with self.assertRaises(KeyboardInterrupt):
            preflight_gate(summary, 5, emit=lambda _line: None, sleep=interrupt)


if __name__ == "__main__":
    unittest.main()
