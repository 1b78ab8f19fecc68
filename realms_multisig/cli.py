"""realms-multisig command line interface."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from realms_multisig.config import MultisigConfig
from realms_multisig.errors import MultisigError
from realms_multisig.logging_config import setup_logging
from realms_multisig.multisig import MultiSig
from realms_multisig.rpc import connect
from realms_multisig.wallet import load_keypair, load_pubkey

logger = logging.getLogger(__name__)

Operation = Callable[[MultiSig, argparse.Namespace], Awaitable[Dict[str, Any]]]


def _tag(level: str) -> str:
    return f"[{level}]"


def _print_status(level: str, message: str) -> None:
    print(f"{_tag(level)} {message}")


def _emit(args: argparse.Namespace, payload: Dict[str, Any]) -> None:
    if args.json:
        print(json.dumps(payload, indent=2))
        return
    for key, value in payload.items():
        if isinstance(value, list):
            print(f"{key}:")
            for item in value:
                print(f"  - {json.dumps(item)}")
        else:
            print(f"{key}: {value}")


def _load_config(args: argparse.Namespace) -> MultisigConfig:
    config = MultisigConfig.from_env()
    overrides: Dict[str, Any] = {}
    if args.rpc:
        overrides["rpc_url"] = args.rpc
    if args.keypair:
        overrides["keypair_path"] = args.keypair
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    return dataclasses.replace(config, **overrides) if overrides else config


async def _with_multisig(config: MultisigConfig, args: argparse.Namespace, operation: Operation) -> Dict[str, Any]:
    payer = load_keypair(config.keypair_path or None)
    client = await connect(config)
    try:
        multisig = MultiSig(client, payer, config.program_id, config)
        return await operation(multisig, args)
    finally:
        await client.close()


def _run(args: argparse.Namespace, operation: Operation) -> int:
    try:
        config = _load_config(args)
        setup_logging(config.log_level, json_format=config.log_json)
        payload = asyncio.run(_with_multisig(config, args, operation))
    except MultisigError as exc:
        if args.json:
            print(json.dumps({"error": exc.to_dict()}, indent=2))
        else:
            _print_status("ERROR", f"{exc.code}: {exc.message}")
        return 1
    _emit(args, payload)
    return 0


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _create(multisig: MultiSig, args: argparse.Namespace) -> Dict[str, Any]:
    signers = [load_pubkey(value, "signer") for value in args.signer]
    result = await multisig.create_multisig(args.threshold, signers, args.vote_duration)
    return result.to_dict()


async def _propose_sol(multisig: MultiSig, args: argparse.Namespace) -> Dict[str, Any]:
    multisig_key = load_pubkey(args.multisig, "multisig")
    recipient = load_pubkey(args.recipient, "recipient")
    ix = multisig.get_sol_transfer_instruction(multisig_key, args.amount, recipient)
    title = args.title or f"Transfer {args.amount} SOL to {recipient}"
    result = await multisig.create_transaction(multisig_key, title, [ix])
    return result.to_dict()


async def _propose_token(multisig: MultiSig, args: argparse.Namespace) -> Dict[str, Any]:
    multisig_key = load_pubkey(args.multisig, "multisig")
    mint = load_pubkey(args.mint, "mint")
    recipient = load_pubkey(args.recipient, "recipient")
    ixs = await multisig.get_token_transfer_instructions(multisig_key, mint, args.amount, recipient)
    title = args.title or f"Transfer {args.amount} of {mint} to {recipient}"
    result = await multisig.create_transaction(multisig_key, title, ixs)
    return result.to_dict()


async def _approve(multisig: MultiSig, args: argparse.Namespace) -> Dict[str, Any]:
    signature = await multisig.approve_transaction(
        load_pubkey(args.multisig, "multisig"), load_pubkey(args.transaction, "transaction")
    )
    return {"tx_signature": signature}


async def _reject(multisig: MultiSig, args: argparse.Namespace) -> Dict[str, Any]:
    signature = await multisig.reject_transaction(
        load_pubkey(args.multisig, "multisig"), load_pubkey(args.transaction, "transaction")
    )
    return {"tx_signature": signature}


async def _execute(multisig: MultiSig, args: argparse.Namespace) -> Dict[str, Any]:
    signature = await multisig.execute_transaction(load_pubkey(args.transaction, "transaction"))
    return {"tx_signature": signature}


async def _show(multisig: MultiSig, args: argparse.Namespace) -> Dict[str, Any]:
    transaction = await multisig.get_transaction(load_pubkey(args.transaction, "transaction"))
    return transaction.to_dict()


async def _list(multisig: MultiSig, args: argparse.Namespace) -> Dict[str, Any]:
    multisig_key = load_pubkey(args.multisig, "multisig")
    transactions = await multisig.get_transactions_for_multisig(multisig_key)
    return {
        "multisig_key": str(multisig_key),
        "wallet": str(multisig.wallet_address(multisig_key)),
        "transactions": [tx.to_dict() for tx in transactions],
    }


def cmd_create(args: argparse.Namespace) -> int:
    return _run(args, _create)


def cmd_propose_sol(args: argparse.Namespace) -> int:
    return _run(args, _propose_sol)


def cmd_propose_token(args: argparse.Namespace) -> int:
    return _run(args, _propose_token)


def cmd_approve(args: argparse.Namespace) -> int:
    return _run(args, _approve)


def cmd_reject(args: argparse.Namespace) -> int:
    return _run(args, _reject)


def cmd_execute(args: argparse.Namespace) -> int:
    return _run(args, _execute)


def cmd_show(args: argparse.Namespace) -> int:
    return _run(args, _show)


def cmd_list(args: argparse.Namespace) -> int:
    return _run(args, _list)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="realms-multisig", description="M-of-N multisig on SPL Governance.")
    parser.add_argument("--rpc", help="RPC URL (overrides MULTISIG_RPC_URL).")
    parser.add_argument("--keypair", help="Payer keypair JSON file (overrides MULTISIG_KEYPAIR_PATH).")
    parser.add_argument("--json", action="store_true", help="Print results as JSON.")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], type=str.upper)
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser("create", help="Create an M-of-N multisig.")
    create_parser.add_argument("--threshold", type=int, required=True, help="Approvals needed to execute.")
    create_parser.add_argument("--signer", action="append", required=True, help="Member address (repeatable).")
    create_parser.add_argument("--vote-duration", type=int, default=None, help="Voting window in seconds.")
    create_parser.set_defaults(func=cmd_create)

    sol_parser = subparsers.add_parser("propose-sol", help="Propose a SOL transfer from the multisig wallet.")
    sol_parser.add_argument("multisig")
    sol_parser.add_argument("recipient")
    sol_parser.add_argument("amount", help="Amount in SOL.")
    sol_parser.add_argument("--title", default=None)
    sol_parser.set_defaults(func=cmd_propose_sol)

    token_parser = subparsers.add_parser("propose-token", help="Propose an SPL token transfer.")
    token_parser.add_argument("multisig")
    token_parser.add_argument("mint")
    token_parser.add_argument("recipient")
    token_parser.add_argument("amount", help="Amount in whole tokens.")
    token_parser.add_argument("--title", default=None)
    token_parser.set_defaults(func=cmd_propose_token)

    approve_parser = subparsers.add_parser("approve", help="Vote to approve a transaction.")
    approve_parser.add_argument("multisig")
    approve_parser.add_argument("transaction")
    approve_parser.set_defaults(func=cmd_approve)

    reject_parser = subparsers.add_parser("reject", help="Vote to reject a transaction.")
    reject_parser.add_argument("multisig")
    reject_parser.add_argument("transaction")
    reject_parser.set_defaults(func=cmd_reject)

    execute_parser = subparsers.add_parser("execute", help="Execute an approved transaction.")
    execute_parser.add_argument("transaction")
    execute_parser.set_defaults(func=cmd_execute)

    show_parser = subparsers.add_parser("show", help="Show one transaction.")
    show_parser.add_argument("transaction")
    show_parser.set_defaults(func=cmd_show)

    list_parser = subparsers.add_parser("list", help="List the transactions of a multisig.")
    list_parser.add_argument("multisig")
    list_parser.set_defaults(func=cmd_list)

    return parser


def run(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    exit_code = args.func(args)
    raise SystemExit(exit_code)
