"""CLI entry point for rest-processor.

Handles argument parsing and dispatches to run or parse mode.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from rest_processor.block_parser import BlockParseError, parse_test_block
from rest_processor.config_loader import ConfigError, expand_properties, load_runtime_config
from rest_processor.models import Request, RuntimeConfig
from rest_processor.processor import RestTestProcessor

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


@dataclass
class RunArgs:
    """Parsed arguments for run mode."""

    endpoint: str
    block: Path
    config: Path | None
    timeout: float | None
    verify_tls: bool
    verbose: bool


@dataclass
class ParseArgs:
    """Parsed arguments for parse mode."""

    block: Path
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with run and parse subcommands."""
    parser = argparse.ArgumentParser(
        prog="rest-processor",
        description="Execute a tagged REST test block against an endpoint.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log at DEBUG level to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Execution mode")

    # Run subcommand
    run_parser = subparsers.add_parser(
        "run",
        help="Send the test block to the endpoint and print the response as JSON",
    )
    run_parser.add_argument(
        "--endpoint",
        required=True,
        help="Target URL; ${name} references are expanded from config properties",
    )
    run_parser.add_argument(
        "--block",
        type=Path,
        required=True,
        help="Path to the test block file ('-' reads stdin)",
    )
    run_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to runtime config YAML",
    )
    run_parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help="Request timeout in seconds (overrides config; default: none)",
    )
    run_parser.add_argument(
        "--verify-tls",
        action="store_true",
        help="Verify server certificates and hostnames",
    )

    # Parse subcommand
    parse_parser = subparsers.add_parser(
        "parse",
        help="Parse the test block and print its fields as JSON",
    )
    parse_parser.add_argument(
        "--block",
        type=Path,
        required=True,
        help="Path to the test block file ('-' reads stdin)",
    )

    return parser


def parse_args(args: list[str] | None = None) -> RunArgs | ParseArgs:
    """Parse command line arguments.

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)

    if namespace.command == "run":
        return RunArgs(
            endpoint=namespace.endpoint,
            block=namespace.block,
            config=namespace.config,
            timeout=namespace.timeout,
            verify_tls=namespace.verify_tls,
            verbose=namespace.verbose,
        )
    return ParseArgs(block=namespace.block, verbose=namespace.verbose)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def read_block(path: Path) -> str:
    if str(path) == "-":
        return sys.stdin.read()
    return path.read_text(encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        parsed = parse_args(argv)
        configure_logging(parsed.verbose)

        if isinstance(parsed, RunArgs):
            return run_block(parsed)
        return run_parse(parsed)

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def run_block(args: RunArgs) -> int:
    """Run mode: execute the block and print the Response.

    Returns 1 when the Response is empty (the step failed), else 0.
    """
    try:
        config = load_runtime_config(args.config) if args.config else RuntimeConfig()
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    try:
        test_block = read_block(args.block)
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error reading test block: {e}", file=sys.stderr)
        return 1

    processor_config = config.processor.model_copy()
    if args.timeout is not None:
        processor_config.timeout = args.timeout
    if args.verify_tls:
        processor_config.insecure_tls = False

    request = Request(
        endpoint=expand_properties(args.endpoint, config.properties),
        test_block=test_block,
    )
    response = RestTestProcessor(processor_config).execute_test(request)

    print(json.dumps(response.to_dict(), indent=2))
    return 1 if response.is_empty else 0


def run_parse(args: ParseArgs) -> int:
    """Parse mode: print the parsed test block."""
    try:
        test_block = read_block(args.block)
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error reading test block: {e}", file=sys.stderr)
        return 1

    try:
        parsed = parse_test_block(test_block)
    except BlockParseError as e:
        print(f"Error parsing test block: {e}", file=sys.stderr)
        return 1

    print(parsed.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
