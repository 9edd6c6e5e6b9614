#!/usr/bin/env python3
"""
airdrop-tao — CLI for token airdrops on the Bittensor network.

Usage:
    airdrop-tao distribute --file <path> [--network <net>] [--batch-size <n>] [--yes]
    airdrop-tao estimate --file <path> [--network <net>]
    airdrop-tao validate --file <path>
    airdrop-tao plan --file <path> [--batch-size <n>]
    airdrop-tao generate-template --output <path> [--count <n>]

The signing key is read from the AIRDROP_PRIVATE_KEY environment variable
(mnemonic, SURI such as //Alice, or 0x-prefixed hex seed).

Examples:
    # Airdrop to recipients from a CSV file (testnet), 10 per batch
    airdrop-tao distribute --file airdrop.csv --network test

    # Same, with settings from a TOML file ([distribution] table)
    airdrop-tao distribute --config airdrop.toml

    # Check a recipient list without touching the network
    airdrop-tao validate --file airdrop.csv
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

from airdrop_tao import __version__
from airdrop_tao.batch import (
    RunSummary,
    Transfer,
    find_duplicate_addresses,
    format_amount,
    parse_transfers,
    plan_batches,
    preflight_gate,
)
from airdrop_tao.client import LedgerClient
from airdrop_tao.config import (
    SIGNING_KEY_ENV,
    ConfigurationError,
    DistributionConfig,
    load_signing_secret,
)
from airdrop_tao.executor import BatchExecutor, BatchOutcome, ExecutionReport
from airdrop_tao.ledger import ResultLedger, ResultWriteError, write_results
from airdrop_tao.logging_config import setup_logging
from airdrop_tao.subtensor import SubtensorLedgerClient, keypair_from_secret


BANNER = r"""
     _    _         _                  _____  _    ___
    / \  (_)_ __ __| |_ __ ___  _ __  |_   _|/_\  / _ \
   / _ \ | | '__/ _` | '__/ _ \| '_ \   | | / _ \| (_) |
  /_/ \_\|_|_|  \__,_|_|  \___/| .__/   |_|/_/ \_\\___/
                               |_|
  Batched token airdrops for Bittensor
"""

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def _load_config(args: argparse.Namespace) -> DistributionConfig:
    config = DistributionConfig.from_toml(args.config) if args.config else DistributionConfig()
    return config.with_overrides(
        distribution_file=args.file,
        network=getattr(args, "network", None),
        token=getattr(args, "token", None),
        batch_size=getattr(args, "batch_size", None),
        confirmations=getattr(args, "confirmations", None),
        pause_seconds=getattr(args, "pause", None),
        output_file=getattr(args, "output", None),
        delimiter=getattr(args, "delimiter", None),
        decimals=getattr(args, "decimals", None),
        symbol=getattr(args, "symbol", None),
        confirmation_timeout=getattr(args, "timeout", None),
        keep_alive=False if getattr(args, "allow_death", False) else None,
    ).validate()


def _connect(config: DistributionConfig) -> SubtensorLedgerClient:
    keypair = keypair_from_secret(load_signing_secret())
    return SubtensorLedgerClient.connect(
        config.network,
        keypair,
        asset_id=config.token,
        keep_alive=config.keep_alive,
        poll_interval=config.poll_interval,
        confirmation_timeout=config.confirmation_timeout,
    )


def _print_outcome(outcome: BatchOutcome) -> None:
    status = "Confirmed!" if outcome.success else f"FAILED ({outcome.error})"
    print(f">> Batch {outcome.batch.number}: {status}")


def run_distribution(
    config: DistributionConfig,
    transfers: Sequence[Transfer],
    client: LedgerClient,
    sleep: Callable[[float], None] = time.sleep,
    confirm: Optional[Callable[[str], str]] = None,
) -> int:
    """
    Pre-flight, execute and record one airdrop run. Returns an exit code.

    `confirm` is an input()-style prompt; None skips the y/N question but
    never the pre-flight pause.
    """
    ledger = ResultLedger()
    executor = BatchExecutor(
        client, config.confirmations, ledger=ledger, on_outcome=_print_outcome
    )
    sender = executor.sender
    token = config.symbol if config.token is None else f"asset {config.token} ({config.symbol})"
    print(f"> Parsing file: {config.distribution_file}")
    print(f"> Using network: {config.network}")
    print(f"> Deploying from: {sender}")
    print(f"> Token: {token}")
    if config.token is None and hasattr(client, "get_balance"):
        try:
            balance = client.get_balance(sender)
            print(f"> Sender balance: {format_amount(balance, config.decimals)} {config.symbol}")
        except Exception as e:
            print(f"> Sender balance: unavailable ({e})")
    print()

    summary = RunSummary.from_transfers(transfers, config.batch_size)
    batches = plan_batches(transfers, config.batch_size)

    try:
        if confirm is not None:
            total = format_amount(summary.total_amount, config.decimals)
            response = confirm(f"Proceed with airdrop of {total} {config.symbol}? [y/N]: ")
            if response.strip().lower() not in ("y", "yes"):
                print("Aborted.")
                return EXIT_OK
        preflight_gate(
            summary,
            config.pause_seconds,
            decimals=config.decimals,
            symbol=config.symbol,
            sleep=sleep,
        )
    except KeyboardInterrupt:
        print("\nAborted. Nothing was submitted.")
        return EXIT_INTERRUPTED

    print()

    try:
        report = executor.execute(batches)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        if executor.current is not None:
            print("The batch in flight may still land; verify it on chain:")
            print(executor.current.in_flight_summary())
        print("> Writing results recorded so far.")
        try:
            write_results(ledger, config.output_file)
        except ResultWriteError as e:
            print(f"Error: {e}")
        return EXIT_INTERRUPTED

    print("> Writing results.")
    try:
        write_results(ledger, config.output_file)
    except ResultWriteError as e:
        print(f"Error: {e}")
        print("Completed transfers were written to the log instead.")
        return EXIT_FAILED
    print(f"> Written to {config.output_file}")
    print()

    _print_report(report, summary, config)
    return EXIT_OK if report.all_confirmed else EXIT_FAILED


def _print_report(
    report: ExecutionReport, summary: RunSummary, config: DistributionConfig
) -> None:
    recorded = sum(c.amount for c in report.completed)
    print(
        f"Requested: {format_amount(summary.total_amount, config.decimals)} {config.symbol}"
        f" to {summary.recipient_count} recipients"
    )
    print(
        f"Recorded:  {format_amount(recorded, config.decimals)} {config.symbol}"
        f" to {len(report.completed)} recipients"
    )
    if report.all_confirmed:
        print(f"All {len(report.outcomes)} batches confirmed.")
    else:
        numbers = ", ".join(str(f.batch.number) for f in report.failures)
        print(
            f"WARNING: {len(report.failures)}/{len(report.outcomes)} batches failed "
            f"(batch {numbers}). Verify them manually; they were not retried."
        )


def cmd_distribute(args: argparse.Namespace) -> int:
    """Run an airdrop."""
    print(BANNER)
    setup_logging(args.log_level)

    try:
        config = _load_config(args)
        transfers = parse_transfers(config.distribution_file, config.delimiter)
        client = _connect(config)
    except ConfigurationError as e:
        print(f"Fatal: {e}")
        return EXIT_CONFIG
    except Exception as e:
        print(f"Could not connect to {args.network or 'network'}: {e}")
        return EXIT_FAILED

    return run_distribution(
        config,
        transfers,
        client,
        confirm=None if args.yes else input,
    )


def cmd_estimate(args: argparse.Namespace) -> int:
    """Estimate network fees for every batch without submitting."""
    print(BANNER)

    try:
        config = _load_config(args)
        transfers = parse_transfers(config.distribution_file, config.delimiter)
        client = _connect(config)
    except ConfigurationError as e:
        print(f"Fatal: {e}")
        return EXIT_CONFIG
    except Exception as e:
        print(f"Could not connect: {e}")
        return EXIT_FAILED

    batches = plan_batches(transfers, config.batch_size)
    sender = client.resolve_sender_address()
    print(f"Estimating fees for {len(transfers)} recipients in {len(batches)} batches...")

    total_fee = 0
    try:
        for batch in batches:
            calls = [client.build_transfer_call(sender, t.address, t.amount) for t in batch]
            fee = client.estimate_fee(calls)
            total_fee += fee
            print(f"  Batch {batch.number}: {format_amount(fee, 9)} TAO")
        balance = client.get_balance(sender)
    except Exception as e:
        print(f"Fee estimation error: {e}")
        return EXIT_FAILED

    summary = RunSummary.from_transfers(transfers, config.batch_size)
    print()
    print(summary.summary(decimals=config.decimals, symbol=config.symbol))
    print(f"> Network fees (est.): {format_amount(total_fee, 9)} TAO")
    print(f"> Sender balance: {format_amount(balance, 9)} TAO")
    return EXIT_OK


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a recipient list."""
    print(BANNER)

    try:
        config = _load_config(args)
        transfers = parse_transfers(config.distribution_file, config.delimiter)
    except ConfigurationError as e:
        print(f"Error parsing file: {e}")
        return EXIT_CONFIG

    print(f"Loaded {len(transfers)} recipients from {config.distribution_file}")

    errors = [
        f"Recipient {i + 1}: invalid ss58 address: {t.address}"
        for i, t in enumerate(transfers)
        if not SubtensorLedgerClient.is_valid_address(t.address)
    ]
    warnings = find_duplicate_addresses(transfers)
    for w in warnings:
        print(f"  ! {w}")

    if errors:
        print(f"\n✗ Found {len(errors)} validation errors:")
        for err in errors:
            print(f"  ✗ {err}")
        return EXIT_FAILED

    summary = RunSummary.from_transfers(transfers, config.batch_size)
    print(f"\n✓ All {len(transfers)} recipients are valid")
    print(f"  Total amount: {format_amount(summary.total_amount, config.decimals)} {config.symbol}")
    if transfers:
        print(f"  Min: {format_amount(min(t.amount for t in transfers), config.decimals)}")
        print(f"  Max: {format_amount(max(t.amount for t in transfers), config.decimals)}")

        print(f"\nPreview (first 5):")
        for t in transfers[:5]:
            print(f"  {t.address[:16]}...{t.address[-8:]} → {format_amount(t.amount, config.decimals)}")
        if len(transfers) > 5:
            print(f"  ... and {len(transfers) - 5} more")
    return EXIT_OK


def cmd_plan(args: argparse.Namespace) -> int:
    """Show how the recipient list will be split into batches."""
    try:
        config = _load_config(args)
        transfers = parse_transfers(config.distribution_file, config.delimiter)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return EXIT_CONFIG

    batches = plan_batches(transfers, config.batch_size)
    summary = RunSummary.from_transfers(transfers, config.batch_size)
    print(summary.summary(decimals=config.decimals, symbol=config.symbol))
    for batch in batches:
        print(
            f"  Batch {batch.number}: {len(batch)} transfers, "
            f"{format_amount(batch.total_amount, config.decimals)} {config.symbol}"
        )
        if args.verbose:
            for t in batch:
                print(f"    {t.address},{t.amount}")
    return EXIT_OK


def cmd_generate_template(args: argparse.Namespace) -> int:
    """Generate a template recipient file."""
    print(BANNER)

    output = Path(args.output)

    # Well-known Substrate development accounts
    sample_addresses = [
        "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY",  # Alice
        "5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty",  # Bob
        "5FLSigC9HGRKVhB9FiEo4Y3koPsNmBmLJbpXg2mp1hXcS59Y",  # Charlie
        "5DAAnrj7VHTznn2AWBemMuyBwZWs6FNFjdyVXUeYum3PTXFy",  # Dave
        "5HGjWAeFDfFCWPsjFQdVV2Msvz2XtMktvgocEZcCj68kUMaw",  # Eve
    ]

    with open(output, "w", newline="") as f:
        f.write("address,amount\n")
        for i in range(args.count):
            addr = sample_addresses[i % len(sample_addresses)]
            f.write(f"{addr},{(i + 1) * 100_000_000}\n")

    print(f"Generated template with {args.count} recipients: {output}")
    print("Amounts are in RAO (1 TAO = 1,000,000,000 RAO).")
    print(f"\nEdit the file with your actual recipient addresses and amounts,")
    print(f"then run: airdrop-tao validate --file {output}")
    return EXIT_OK


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="TOML file with a [distribution] table")
    parser.add_argument("--file", "-f", help="Recipient list (address,amount per line)")
    parser.add_argument(
        "--batch-size", "-b", type=int, help="Transfers per batch transaction. Default: 10"
    )
    parser.add_argument("--delimiter", help="Field delimiter. Default: ','")
    parser.add_argument("--decimals", type=int, help="Token decimals for display. Default: 9")
    parser.add_argument("--symbol", help="Token symbol for display. Default: TAO")


def _add_network_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--network", "-n", help="Bittensor network (finney, test, local, or ws:// URL). Default: finney"
    )
    parser.add_argument(
        "--token", help="'TAO' for native transfers or a numeric Assets pallet id. Default: TAO"
    )
    parser.add_argument(
        "--allow-death", action="store_true",
        help="Allow transfers that may reduce accounts below existential deposit"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="airdrop-tao",
        description="airdrop-tao — batched token airdrops for Bittensor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"The signing key is read from ${SIGNING_KEY_ENV}.",
    )
    parser.add_argument(
        "--version", action="version", version=f"airdrop-tao {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    distribute_parser = subparsers.add_parser(
        "distribute", help="Submit the airdrop in batches"
    )
    _add_config_arguments(distribute_parser)
    _add_network_arguments(distribute_parser)
    distribute_parser.add_argument(
        "--confirmations", "-c", type=int,
        help="Blocks to wait for (inclusion block counts as 1). Default: 3"
    )
    distribute_parser.add_argument(
        "--timeout", type=float, help="Seconds to wait for confirmations per batch. Default: 600"
    )
    distribute_parser.add_argument(
        "--pause", type=float, help="Pre-flight pause in seconds. Default: 120"
    )
    distribute_parser.add_argument(
        "--output", "-o", help="Result CSV, replaced on every run. Default: completed_airdrops.csv"
    )
    distribute_parser.add_argument(
        "--yes", "-y", action="store_true",
        help="Skip the confirmation prompt (the pre-flight pause still applies)"
    )
    distribute_parser.add_argument("--log-level", help="Log level. Default: $LOG_LEVEL or INFO")

    estimate_parser = subparsers.add_parser(
        "estimate", help="Estimate network fees for the airdrop"
    )
    _add_config_arguments(estimate_parser)
    _add_network_arguments(estimate_parser)

    validate_parser = subparsers.add_parser(
        "validate", help="Validate a recipient list"
    )
    _add_config_arguments(validate_parser)

    plan_parser = subparsers.add_parser(
        "plan", help="Show the batch partition without touching the network"
    )
    _add_config_arguments(plan_parser)
    plan_parser.add_argument(
        "--verbose", "-v", action="store_true", help="List every transfer in every batch"
    )

    template_parser = subparsers.add_parser(
        "generate-template", help="Generate a template recipient file"
    )
    template_parser.add_argument(
        "--output", "-o", default="airdrop.csv", help="Output file path"
    )
    template_parser.add_argument(
        "--count", "-c", type=int, default=5, help="Number of sample recipients"
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    commands = {
        "distribute": cmd_distribute,
        "estimate": cmd_estimate,
        "validate": cmd_validate,
        "plan": cmd_plan,
        "generate-template": cmd_generate_template,
    }

    try:
        return commands[args.command](args)
    except ConfigurationError as e:
        print(f"Fatal: {e}")
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())
