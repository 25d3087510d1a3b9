"""Command-line interface for read-only cooperative queries."""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import sys
from typing import Any

from .chains.cosmwasm import CosmWasmClient
from .config import load_config
from .errors import AjorError
from .logging_setup import configure_logging
from .services import CooperativeClient


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="ajor",
        description="Query Ajor cooperative lending contracts",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--deployment",
        default=None,
        help="Contract deployment to use (default: default_deployment from config)",
    )

    sub = parser.add_subparsers(dest="command")

    list_parser = sub.add_parser("cooperatives", help="List cooperative names")
    list_parser.add_argument("--min", default=None, help="Lower name bound")
    list_parser.add_argument("--max", default=None, help="Upper name bound")

    coop_parser = sub.add_parser("cooperative", help="Show a cooperative")
    coop_parser.add_argument("name")

    tokens_parser = sub.add_parser("tokens", help="Whitelisted tokens of a cooperative")
    tokens_parser.add_argument("name")

    token_id_parser = sub.add_parser("token-id", help="Token-id of a denom or CW20 address")
    token_id_parser.add_argument("token")

    member_parser = sub.add_parser("member", help="Member record")
    member_parser.add_argument("name")
    member_parser.add_argument("address")

    contribution_parser = sub.add_parser(
        "contribution", help="Member contributions, shares and loans"
    )
    contribution_parser.add_argument("name")
    contribution_parser.add_argument("address")

    proposal_parser = sub.add_parser("proposal", help="Show a governance proposal")
    proposal_parser.add_argument("proposal_id", type=int)

    return parser


def _to_json(value: Any) -> Any:
    if value is None:
        return None
    if hasattr(value, "to_wire"):
        return value.to_wire()
    if dataclasses.is_dataclass(value):
        return dataclasses.asdict(value)
    if isinstance(value, list):
        return [_to_json(item) for item in value]
    return value


async def _query(client: CooperativeClient, args: argparse.Namespace) -> Any:
    if args.command == "cooperatives":
        return await client.list_cooperatives(args.min, args.max)
    if args.command == "cooperative":
        return await client.get_cooperative(args.name)
    if args.command == "tokens":
        return await client.get_whitelisted_tokens(args.name)
    if args.command == "token-id":
        return await client.get_token_id(args.token)
    if args.command == "member":
        return await client.get_member_info(args.name, args.address)
    if args.command == "contribution":
        return await client.get_member_contribution_and_share(args.name, args.address)
    if args.command == "proposal":
        return await client.get_proposal(args.proposal_id)
    raise ValueError(f"Unknown command: {args.command}")


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    client = CooperativeClient.from_config(
        CosmWasmClient(config.chain), config, args.deployment
    )

    try:
        result = await _query(client, args)
    except AjorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(_to_json(result), indent=2, default=str))
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))
