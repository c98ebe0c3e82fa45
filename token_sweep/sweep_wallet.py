#!/usr/bin/env python3
"""
Discover a wallet's tokens and build a sweep batch across EVM chains.

Lists every verified, non-dust fungible token the wallet holds on each
requested chain as a CSV report. With --destination, also builds the batch of
transfer calls that moves everything to that address, ready for atomic
submission by the wallet.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from token_sweep.lib.cache import BalanceCache
from token_sweep.lib.chain_client import Web3ChainClient
from token_sweep.lib.chains import CHAINS, ChainConfig, resolve_chain
from token_sweep.lib.config import Settings, load_settings
from token_sweep.lib.discovery import TokenDiscoveryPipeline
from token_sweep.lib.errors import (
    ConfigurationError,
    SweepError,
    UnsupportedChainError,
    describe_error,
)
from token_sweep.lib.fetcher import KeyRotatingFetcher
from token_sweep.lib.formatters import combine_results, write_calls_json, write_csv
from token_sweep.lib.models import DiscoveryResult
from token_sweep.lib.moralis_client import MoralisClient
from token_sweep.lib.session import WalletSession
from token_sweep.lib.transfer_builder import TransferCallBuilder, validate_destination
from token_sweep.lib.verified_registry import VerifiedTokenRegistry


SUPPORTED_CHAINS = [chain.provider_name for chain in CHAINS.values()]


def log(chain: str, message: str) -> None:
    """Log a message with chain prefix."""
    print(f"[{chain}] {message}", file=sys.stderr)


def validate_chains(chains: List[str]) -> List[ChainConfig]:
    """
    Resolve chain ids, names and aliases, dropping duplicates.

    Raises:
        UnsupportedChainError: If any chain is not supported
    """
    resolved: List[ChainConfig] = []
    for value in chains:
        try:
            chain = resolve_chain(value)
        except UnsupportedChainError:
            raise UnsupportedChainError(
                f"Unsupported chain: {value}. Supported: {', '.join(SUPPORTED_CHAINS)}"
            ) from None
        if chain not in resolved:
            resolved.append(chain)
    return resolved


def chain_output_path(base_path: str, chain: ChainConfig) -> str:
    """Per-chain variant of an output path, e.g. calls.json -> calls_base.json."""
    path = Path(base_path)
    suffix = path.suffix or ".json"
    return str(path.parent / f"{path.stem}_{chain.provider_name}{suffix}")


def build_session(settings: Settings, api_keys: List[str], min_value: float, rpc_override: Optional[str]):
    """Wire the fetcher, registry, cache and pipeline into a WalletSession."""
    fetcher = KeyRotatingFetcher()
    client = MoralisClient(
        fetcher, api_keys, settings.moralis_base_url, verified_url=settings.verified_tokens_url
    )
    registry = VerifiedTokenRegistry(client, ttl=settings.verified_ttl)
    pipeline = TokenDiscoveryPipeline(
        client,
        registry,
        balance_cache=BalanceCache(settings.cache_dir, settings.balance_ttl),
        min_value_usd=min_value,
        enrich_native_price=True,
    )

    def builder_factory(wallet: str, chain_id: int) -> TransferCallBuilder:
        rpc_url = rpc_override or settings.rpc_url_for(chain_id)
        if not rpc_url:
            raise ConfigurationError(f"No RPC URL configured for chain {chain_id}")
        return TransferCallBuilder(
            wallet, Web3ChainClient(rpc_url, chain_id), native_reserves=settings.native_reserves
        )

    return WalletSession(pipeline, builder_factory), registry


def scan_chain(session: WalletSession, chain: ChainConfig, wallet: str, use_cache: bool) -> DiscoveryResult:
    """
    Discover tokens for one chain and log a summary.

    Returns:
        DiscoveryResult for the chain
    """
    log(chain.provider_name, "Starting token discovery...")

    session.select(wallet, chain.chain_id)
    result = session.refresh(use_cache=use_cache)

    if result.error:
        log(chain.provider_name, f"ERROR: {result.message}")
        if result.tokens:
            log(chain.provider_name, f"Using {len(result.tokens)} tokens from a stale cached snapshot")
        else:
            log(chain.provider_name, "Skipping chain.")
        return result

    if result.notice:
        log(chain.provider_name, result.notice)
        return result

    natives = sum(1 for t in result.tokens if t.is_native)
    source = " (cached)" if result.from_cache else ""
    if natives:
        log(chain.provider_name, f"Found native balance ({chain.native_symbol}){source}")
    log(chain.provider_name, f"Found {len(result.tokens) - natives} ERC-20 tokens{source}")
    return result


def sweep_chain(
    session: WalletSession, chain: ChainConfig, wallet: str, destination: str, output: Optional[str]
) -> bool:
    """
    Build and write the sweep batch for the chain currently selected.

    Returns:
        True if a batch was written
    """
    try:
        result = session.build_sweep(destination)
    except SweepError as e:
        log(chain.provider_name, f"ERROR: {e}")
        return False

    if result is None:
        return False

    precheck = result.precheck
    log(
        chain.provider_name,
        f"Pre-check: {precheck.valid_count}/{precheck.total_candidates} token transfers passed",
    )
    for call in result.calls:
        log(chain.provider_name, call.description)

    path = chain_output_path(output, chain) if output else None
    written = write_calls_json(result, chain.chain_id, wallet, path)
    if written:
        log(chain.provider_name, f"Calls written to: {written}")
    return True


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Discover wallet tokens across EVM chains and build sweep transfer batches.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List tokens on Base and Ethereum, output to stdout
  %(prog)s --wallet 0x... --chains base eth

  # Save a report and build a sweep batch for Base
  %(prog)s --wallet 0x... --chains 8453 --output report.csv \\
    --destination 0x... --rpc-url https://mainnet.base.org --calls-output calls.json
        """,
    )

    parser.add_argument(
        "--wallet",
        required=True,
        help="Wallet address to query",
    )
    parser.add_argument(
        "--chains",
        nargs="+",
        required=True,
        help=f"Chain ids or names to query. Supported: {', '.join(SUPPORTED_CHAINS)}",
    )
    parser.add_argument(
        "--api-key",
        action="append",
        help="Moralis API key, repeatable in priority order (default: from environment)",
    )
    parser.add_argument(
        "--min-value",
        type=float,
        help="Dust floor in USD for priced tokens (default: 0.01)",
    )
    parser.add_argument(
        "--output",
        help="Output file path (timestamp auto-appended). If not specified, outputs to stdout.",
    )
    parser.add_argument(
        "--destination",
        help="Address to sweep every token to. Builds a transfer batch per chain.",
    )
    parser.add_argument(
        "--rpc-url",
        help="RPC endpoint for pre-checks (default: RPC_URL_<chain id> from environment)",
    )
    parser.add_argument(
        "--calls-output",
        help="Output path for call batches (chain and timestamp auto-appended). Required with --destination.",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Ignore cached balances and query the provider",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    parsed_args = parser.parse_args(args)
    if parsed_args.destination and not parsed_args.calls_output:
        parser.error("--destination requires --calls-output; stdout carries the token report")

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        chains = validate_chains(parsed_args.chains)
        settings = load_settings()
    except SweepError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    api_keys = parsed_args.api_key or settings.api_keys
    if not api_keys:
        print(f"Error: {describe_error(ConfigurationError('missing API keys'))}", file=sys.stderr)
        return 1

    destination = None
    if parsed_args.destination:
        try:
            destination = validate_destination(parsed_args.destination, parsed_args.wallet)
        except SweepError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    min_value = settings.min_value_usd if parsed_args.min_value is None else parsed_args.min_value
    session, registry = build_session(settings, api_keys, min_value, parsed_args.rpc_url)

    results: List[DiscoveryResult] = []
    exit_code = 0
    try:
        for chain in chains:
            result = scan_chain(session, chain, parsed_args.wallet, not parsed_args.no_cache)
            results.append(result)
            if destination and not sweep_chain(
                session, chain, parsed_args.wallet, destination, parsed_args.calls_output
            ):
                exit_code = 1
    finally:
        registry.shutdown(wait=False)

    report_file = write_csv(combine_results(results), parsed_args.output)
    if report_file:
        print(f"\nResults written to: {report_file}", file=sys.stderr)

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
