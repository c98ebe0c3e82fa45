"""
Output formatters for token sweep reports.

Handles the CSV token report with timestamp-based filenames and the JSON
call batch handed to the wallet for atomic submission.
"""

import csv
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Tuple

from .chains import get_chain
from .models import CSV_COLUMNS, BuildResult, DiscoveryResult, Token

# (chain name, token) pairs in report order
ReportRows = List[Tuple[str, Token]]


def generate_timestamp() -> str:
    """
    Generate a timestamp string for filenames.

    Returns:
        Timestamp in YYYYMMDD_HHMMSS format
    """
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def generate_filename(base_path: str, timestamp: Optional[str] = None) -> str:
    """
    Generate a timestamped filename for a report.

    Examples:
        generate_filename("sweep_report.csv", "20241214_153022")
        -> "sweep_report_20241214_153022.csv"
    """
    if timestamp is None:
        timestamp = generate_timestamp()

    path = Path(base_path)
    suffix = path.suffix or ".csv"
    return str(path.parent / f"{path.stem}_{timestamp}{suffix}")


def write_csv_to_stream(rows: ReportRows, stream: TextIO) -> None:
    writer = csv.writer(stream)
    writer.writerow(CSV_COLUMNS)

    for chain_name, token in rows:
        writer.writerow(token.to_csv_row(chain_name))


def write_csv(rows: ReportRows, output_path: Optional[str] = None) -> Optional[str]:
    """
    Write the token report to a timestamped CSV file or stdout.

    Args:
        rows: (chain name, token) pairs
        output_path: Base output path. If None, writes to stdout.

    Returns:
        Path of the written file, or None when writing to stdout
    """
    if output_path is None:
        write_csv_to_stream(rows, sys.stdout)
        return None

    report_file = generate_filename(output_path)
    with open(report_file, "w", newline="", encoding="utf-8") as f:
        write_csv_to_stream(rows, f)
    return report_file


def combine_results(results: List[DiscoveryResult]) -> ReportRows:
    """
    Flatten per-chain discovery results into report rows.

    Results that failed without a cached fallback contribute nothing.
    """
    rows: ReportRows = []
    for result in results:
        chain_name = get_chain(result.chain_id).name
        rows.extend((chain_name, token) for token in result.tokens)
    return rows


def calls_payload(result: BuildResult, chain_id: int, sender: str) -> Dict[str, Any]:
    """JSON document describing a batch for wallet submission."""
    return {
        "chainId": chain_id,
        "from": sender,
        "calls": [call.to_dict() for call in result.calls],
        "descriptions": [call.description for call in result.calls],
        "precheck": {
            "totalCandidates": result.precheck.total_candidates,
            "validCount": result.precheck.valid_count,
            "failedCount": result.precheck.failed_count,
        },
    }


def write_calls_json(
    result: BuildResult, chain_id: int, sender: str, output_path: Optional[str] = None
) -> Optional[str]:
    """
    Write a call batch as JSON to a timestamped file or stdout.

    Returns:
        Path of the written file, or None when writing to stdout
    """
    payload = calls_payload(result, chain_id, sender)

    if output_path is None:
        json.dump(payload, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return None

    calls_file = generate_filename(output_path)
    with open(calls_file, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    return calls_file
