"""
Command-line access to the transaction sync and report polling.

Runs the same orchestrators the API uses against an access token given
on the command line, without starting the server.
"""

import asyncio
import json
import sys
from typing import Any, Dict

import structlog

from finbridge.core.config import get_settings
from finbridge.plaid.client import PlaidClient
from finbridge.polling.config import get_poll_config, get_sync_config
from finbridge.polling.metrics import get_poll_metrics
from finbridge.reports.orchestrators import get_asset_report
from finbridge.transactions.aggregator import get_latest_transactions

logger = structlog.get_logger()


def print_transactions(result: Dict[str, Any]):
    """Pretty print the latest transactions."""
    transactions = result["latest_transactions"]
    print(f"\n=== Latest Transactions ({len(transactions)}) ===\n")
    for tx in transactions:
        print(f"{tx['date']}  {tx['amount']:>12.2f}  {tx.get('name') or ''}")
    print()


def print_sessions():
    """Pretty print the sessions recorded during this run."""
    summary = get_poll_metrics().summary()
    agg = summary["aggregate"]
    print("--- Poll Sessions ---")
    print(f"Sessions: {agg['total_sessions']}")
    print(f"Attempts: {agg['total_attempts']}")
    print(f"Avg Duration: {agg['avg_duration_seconds']:.2f}s")
    for session in summary["recent_sessions"]:
        print(
            f"{session['started_at']}: {session['operation']} {session['status']} "
            f"after {session['attempts']} attempts"
        )
    print()


async def latest_command(access_token: str):
    """Sync transactions and print the most recent ones."""
    settings = get_settings()
    client = PlaidClient.from_settings(settings)
    try:
        result = await get_latest_transactions(
            client,
            access_token,
            config=get_sync_config(settings),
            exclude_removed=settings.SYNC_EXCLUDE_REMOVED,
        )
    finally:
        await client.aclose()

    print_transactions(result)
    print_sessions()
    return 0


async def assets_command(access_token: str, output_path: str = ""):
    """Generate an asset report and optionally write it to a JSON file."""
    settings = get_settings()
    client = PlaidClient.from_settings(settings)
    print("Creating asset report...")
    try:
        result = await get_asset_report(client, access_token, get_poll_config(settings))
    finally:
        await client.aclose()

    print("Asset report ready.")
    print(f"PDF size (base64): {len(result['pdf'])} chars")
    if output_path:
        with open(output_path, "w") as f:
            json.dump(result, f, indent=2)
        print(f"Written to {output_path}")
    print_sessions()
    return 0


def main():
    """Main CLI entry point."""
    if len(sys.argv) < 3:
        print("Usage: python -m finbridge.transactions.cli <command> <access_token> [options]")
        print("\nCommands:")
        print("  latest <access_token>           Sync and show the latest transactions")
        print("  assets <access_token> [file]    Generate an asset report")
        print("\nExamples:")
        print("  python -m finbridge.transactions.cli latest access-sandbox-123")
        print("  python -m finbridge.transactions.cli assets access-sandbox-123 report.json")
        return 1

    command = sys.argv[1]
    access_token = sys.argv[2]

    try:
        if command == "latest":
            return asyncio.run(latest_command(access_token))
        elif command == "assets":
            output_path = sys.argv[3] if len(sys.argv) > 3 else ""
            return asyncio.run(assets_command(access_token, output_path))
        else:
            print(f"Unknown command: {command}")
            return 1
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except Exception as e:
        print(f"Error: {str(e)}")
        logger.exception("cli_error", command=command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
