"""
Command-line interface for Codora.

Provides commands for:
- Explaining a snippet
- Previewing routing decisions
- Usage, budget and cache maintenance
- Exporting usage history
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from codora.errors import GatewayError
from codora.gateway import Gateway
from codora.metrics import configure_logging
from codora.schemas import ResetMode
from codora.validation import ValidationError


def _read_code(args) -> str:
    if args.file:
        return Path(args.file).read_text(encoding="utf-8")
    if args.code and args.code != "-":
        return args.code
    return sys.stdin.read()


def cmd_explain(args, gateway: Gateway):
    """Explain a snippet and print the answer."""
    result = gateway.explain_detailed(
        _read_code(args),
        context=args.context,
        language=args.language,
        tier=args.tier,
    )
    print(result.text)

    if args.verbose:
        print()
        print("-" * 60)
        if result.cached:
            print("Served from cache")
        else:
            print(f"Tier: {result.tier.value}")
            print(f"Model: {result.provider}/{result.model}")
            print(f"Cost: ${result.cost:.6f} ({result.total_tokens} tokens)")
            if result.complexity_score is not None:
                print(f"Complexity: {result.complexity_score:.2f}")


def cmd_plan(args, gateway: Gateway):
    """Show which tier would serve a snippet, without calling it."""
    decision = gateway.plan(
        _read_code(args),
        context=args.context,
        language=args.language,
        tier=args.tier,
    )

    print("\n" + "=" * 60)
    print("CODORA ROUTING PLAN")
    print("=" * 60)
    print(f"Tier: {decision.tier.value}")
    print(f"Provider: {decision.provider}")
    print(f"Model: {decision.model}")
    if decision.complexity_score is not None:
        print(f"Complexity: {decision.complexity_score:.2f} (threshold {decision.threshold:.2f})")
    print()
    print(f"WHY: {decision.why}")
    print("=" * 60)


def cmd_usage(args, gateway: Gateway):
    """Print usage and budget statistics."""
    stats = gateway.get_usage_stats()

    print("\n" + "=" * 60)
    print("CODORA USAGE")
    print("=" * 60)
    print(f"Total Requests: {stats.total_requests}")
    print(f"Total Tokens: {stats.total_tokens}")
    print(f"Total Cost: ${stats.total_cost:.4f}")
    print(f"Avg Cost/Request: ${stats.average_cost_per_request:.6f}")
    print()
    print(f"Today: ${stats.daily_cost:.4f}")
    print(f"Last 7 days: ${stats.weekly_cost:.4f}")
    print(f"Last 30 days: ${stats.monthly_cost:.4f}")
    print()
    print("-" * 60)
    print("BUDGET")
    print("-" * 60)
    print(f"Period: {stats.budget_period.value}")
    print(f"Used: ${stats.budget_used:.4f} of ${stats.budget_limit:.2f}")
    print(f"Remaining: ${stats.budget_remaining:.4f}")

    if stats.by_provider:
        print()
        print("-" * 60)
        print("BY PROVIDER")
        print("-" * 60)
        for row in stats.by_provider:
            print(f"  {row.name:20} ${row.cost:.4f} ({row.requests} requests)")

    if stats.by_model:
        print()
        print("-" * 60)
        print("BY MODEL")
        print("-" * 60)
        for row in stats.by_model:
            print(f"  {row.name:30} ${row.cost:.4f} ({row.requests} requests)")

    if args.days:
        print()
        print("-" * 60)
        print(f"DAILY (last {args.days} days)")
        print("-" * 60)
        for day in gateway.ledger.cost_breakdown(days=args.days):
            print(f"  {day.date}  ${day.cost:.4f} ({day.requests} requests)")

    print("=" * 60)


def cmd_cache(args, gateway: Gateway):
    """Show cache statistics or clear the cache."""
    if args.action == "clear":
        gateway.clear_cache()
        print("Cache cleared")
        return

    stats = gateway.get_cache_stats()
    print(f"Entries: {stats.entries}")
    print(f"Hit rate: {stats.hit_rate:.1%} ({stats.hits} hits, {stats.misses} misses)")
    print(f"Size: {stats.size_bytes} bytes")
    if stats.oldest:
        print(f"Oldest: {stats.oldest.isoformat()}")
    if stats.newest:
        print(f"Newest: {stats.newest.isoformat()}")


def cmd_budget_reset(args, gateway: Gateway):
    """Reset the budget by clearing or archiving usage history."""
    mode = ResetMode.ARCHIVE if args.archive else None
    archive_key = gateway.reset_budget(mode)
    if archive_key:
        print(f"Usage history archived to {archive_key}")
    else:
        print("Usage history cleared")


def cmd_providers(args, gateway: Gateway):
    """List tiers and whether their providers are usable."""
    status = gateway.get_provider_status()
    if not status:
        print("No providers configured")
        return
    for tier, info in status.items():
        state = "ready" if info["configured"] else "missing credentials"
        print(f"  {tier:10} {info['provider']:10} {info['model']:30} {state}")


def cmd_export(args, gateway: Gateway):
    """Export usage history as JSON."""
    data = gateway.ledger.export_usage()
    if args.output:
        output_path = Path(args.output)
        output_path.write_text(data, encoding="utf-8")
        print(f"Usage exported to: {output_path}")
    else:
        print(data)


def _add_snippet_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("code", nargs="?", default="-",
                        help="Code to explain, or '-' to read stdin")
    parser.add_argument("--file", "-f", help="Read code from a file")
    parser.add_argument("--context", "-c", default="",
                        help="What the snippet is, e.g. 'function'")
    parser.add_argument("--language", "-l", default="plaintext",
                        help="Language tag, e.g. 'python'")
    parser.add_argument("--tier", "-t", choices=["economy", "premium"],
                        help="Force a tier instead of routing by complexity")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codora",
        description="Codora: cost-aware code explanations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Explain a file
  codora explain --file utils.py --language python --context module

  # See which tier would serve a snippet
  echo 'fn main() {}' | codora plan --language rust

  # Check spend against the budget
  codora usage --days 7

  # Archive history and start a fresh budget period
  codora budget reset --archive
""",
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show routing details and debug logs")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    explain_parser = subparsers.add_parser("explain", help="Explain a code snippet")
    _add_snippet_args(explain_parser)

    plan_parser = subparsers.add_parser("plan", help="Preview routing without a provider call")
    _add_snippet_args(plan_parser)

    usage_parser = subparsers.add_parser("usage", help="Show usage and budget")
    usage_parser.add_argument("--days", "-d", type=int, default=0,
                              help="Also print a daily breakdown for this many days")

    cache_parser = subparsers.add_parser("cache", help="Cache statistics and maintenance")
    cache_parser.add_argument("action", choices=["stats", "clear"], nargs="?", default="stats")

    budget_parser = subparsers.add_parser("budget", help="Budget maintenance")
    budget_sub = budget_parser.add_subparsers(dest="budget_command")
    reset_parser = budget_sub.add_parser("reset", help="Reset usage history")
    reset_parser.add_argument("--archive", action="store_true",
                              help="Archive history before clearing it")

    subparsers.add_parser("providers", help="Show provider status per tier")

    export_parser = subparsers.add_parser("export", help="Export usage history as JSON")
    export_parser.add_argument("--output", "-o", help="Path to write the JSON export")

    return parser


def main(argv: Optional[list[str]] = None, gateway: Optional[Gateway] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None or (args.command == "budget" and args.budget_command is None):
        parser.print_help()
        return 1

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING, stream=sys.stderr)

    commands = {
        "explain": cmd_explain,
        "plan": cmd_plan,
        "usage": cmd_usage,
        "cache": cmd_cache,
        "budget": cmd_budget_reset,
        "providers": cmd_providers,
        "export": cmd_export,
    }

    try:
        gateway = gateway or Gateway()
        commands[args.command](args, gateway)
    except (GatewayError, ValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
