#!/usr/bin/env python3
"""
Tyron CLI

Command-line interface for Tyron guardian-recoverable accounts. Account
commands operate on a state file; every command reloads the file, applies one
operation and writes the new state back.

Usage:
    tyron <command> [subcommand] [options]

Commands:
    keygen      Generate an Ed25519 key file
    identity    Show the identity, did:key and guardian id of a principal
    account     Create, inspect and operate an account state file
    recovery    Compute and sign guardian recovery digests
    config      Configuration management

Copyright (c) 2026 Tyron. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import pathlib
import sys
from enum import Enum
from typing import Any, List, Optional

import yaml

from tyron import __version__
from tyron.config import ConfigError
from tyron.hardening import AccountError
from tyron.identity import GuardianId, Identity
from tyron.keys import KeyPair, load_keypair, save_keypair
from tyron.observability import configure_logging


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def parse_principal(value: str) -> Identity:
    """An identity given as a key file path, did:key or hex."""
    path = pathlib.Path(value)
    if path.is_file():
        return load_keypair(path).identity
    try:
        return Identity.parse(value)
    except AccountError as e:
        raise CLIError(f"Not a key file or identity: {value}") from e


def parse_vote(value: str) -> tuple:
    guardian, sep, signature = value.rpartition(":")
    if not sep or not signature:
        raise CLIError(f"Vote must be GUARDIAN:SIGNATURE_HEX, got {value!r}")
    return parse_principal(guardian), signature


class TyronCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="tyron",
            description="Tyron guardian-recoverable account CLI",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"tyron {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error output",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Configuration file (YAML)",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        self._register_key_commands()
        self._register_account_commands()
        self._register_recovery_commands()
        self._register_config_commands()

    def _register_key_commands(self) -> None:
        keygen = self.subparsers.add_parser("keygen", help="Generate an Ed25519 key file")
        keygen.add_argument("--out", "-o", required=True, help="Key file to write")
        keygen.add_argument("--kid", default="key-1", help="Key id recorded in the JWK")
        keygen.add_argument("--force", action="store_true", help="Overwrite an existing file")

        identity = self.subparsers.add_parser("identity", help="Describe a principal")
        identity.add_argument("principal", help="Key file, did:key or hex identity")

    def _register_account_commands(self) -> None:
        account = self.subparsers.add_parser("account", help="Account state file operations")
        account_sub = account.add_subparsers(dest="subcommand")

        def with_state(p: argparse.ArgumentParser) -> argparse.ArgumentParser:
            p.add_argument("--state", "-s", required=True, help="Account state file")
            return p

        create = with_state(account_sub.add_parser("create", help="Create a new account"))
        create.add_argument("--owner", required=True, help="Owner key file or identity")
        create.add_argument("--guardian", "-g", action="append", default=[], help="Guardian (repeatable)")
        create.add_argument("--environment", help="Execution environment identity")
        create.add_argument("--account", help="Account identity (derived when omitted)")
        create.add_argument("--force", action="store_true", help="Overwrite an existing state file")

        with_state(account_sub.add_parser("show", help="Show account state"))
        with_state(account_sub.add_parser("params", help="Show guardian count and threshold"))

        add = with_state(account_sub.add_parser("add-guardians", help="Register guardians"))
        add.add_argument("--caller", required=True, help="Owner or environment")
        add.add_argument("--guardian", "-g", action="append", required=True, help="Guardian (repeatable)")

        remove = with_state(account_sub.add_parser("remove-guardians", help="Deregister guardians"))
        remove.add_argument("--caller", required=True, help="Owner or environment")
        remove.add_argument("--guardian", "-g", action="append", default=[], help="Guardian identity (repeatable)")
        remove.add_argument("--guardian-id", action="append", default=[], help="Guardian id (repeatable)")

        is_guardian = with_state(account_sub.add_parser("is-guardian", help="Check guardian membership"))
        group = is_guardian.add_mutually_exclusive_group(required=True)
        group.add_argument("--guardian", "-g", help="Guardian identity")
        group.add_argument("--guardian-id", help="Guardian id")

        propose = with_state(account_sub.add_parser("propose", help="Propose an ownership transfer"))
        propose.add_argument("--caller", required=True, help="Owner or environment")
        propose.add_argument("--new-owner", required=True, help="Proposed owner")

        accept = with_state(account_sub.add_parser("accept", help="Accept a pending transfer"))
        accept.add_argument("--caller", required=True, help="Pending owner")

        recover = with_state(account_sub.add_parser("recover", help="Recover with guardian votes"))
        recover.add_argument("--new-owner", required=True, help="New owner")
        recover.add_argument("--vote", action="append", default=[], help="GUARDIAN:SIGNATURE_HEX (repeatable)")
        recover.add_argument("--votes-file", help="JSON list of {guardian, signature} objects")

        check = with_state(account_sub.add_parser("check-signature", help="Check an owner signature"))
        check.add_argument("--digest", required=True, help="32-byte digest (hex)")
        check.add_argument("--signature", required=True, help="Signature (hex)")

    def _register_recovery_commands(self) -> None:
        recovery = self.subparsers.add_parser("recovery", help="Guardian recovery digests")
        recovery_sub = recovery.add_subparsers(dest="subcommand")

        digest = recovery_sub.add_parser("digest", help="Digest guardians sign for a new owner")
        digest.add_argument("--state", "-s", required=True, help="Account state file")
        digest.add_argument("--new-owner", required=True, help="New owner")

        sign = recovery_sub.add_parser("sign", help="Sign a recovery vote")
        sign.add_argument("--state", "-s", required=True, help="Account state file")
        sign.add_argument("--key", "-k", required=True, help="Guardian key file")
        sign.add_argument("--new-owner", required=True, help="New owner")

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., domain.chain_id)")

        config_sub.add_parser("show", help="Show all configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            self._configure(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except (AccountError, ConfigError, ValueError, OSError) as e:
            if not parsed.quiet:
                print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
            return 1

    def _configure(self, args: argparse.Namespace) -> None:
        from tyron.config import get_config_manager
        mgr = get_config_manager()
        if args.config:
            mgr.load_from_file(args.config)
        obs = mgr.config.observability
        configure_logging(obs.log_level.get(), obs.log_format.get())

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name.replace("-", "_"), None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}")

        return handler(args)

    # Account helpers
    def _load_account(self, args: argparse.Namespace) -> Any:
        from tyron.account import SSIAccount
        from tyron.hardening import InvariantViolation
        from tyron.storage import StateFileError, load_state
        try:
            return SSIAccount.from_state(load_state(args.state))
        except InvariantViolation as e:
            raise StateFileError(args.state, [str(e)]) from e

    def _save_account(self, args: argparse.Namespace, account: Any) -> None:
        from tyron.storage import save_state
        save_state(args.state, account.snapshot())

    @staticmethod
    def _summary(account: Any) -> Any:
        state = account.snapshot()
        count, threshold = account.get_guardian_params()
        return {
            "account": state.account.hex,
            "owner": state.owner.hex,
            "pending_owner": state.pending_owner.hex if state.pending_owner else None,
            "guardian_count": count,
            "threshold": threshold,
            "recovery_enabled": account.recovery_enabled,
            "version": state.version,
        }

    # Key handlers
    def _handle_keygen(self, args: argparse.Namespace) -> Any:
        out = pathlib.Path(args.out)
        if out.exists() and not args.force:
            raise CLIError(f"Refusing to overwrite {out} (use --force)")
        pair = KeyPair.generate(args.kid)
        doc = save_keypair(out, pair)
        return {"path": str(out), "identity": doc["identity"], "did": doc["did"]}

    def _handle_identity(self, args: argparse.Namespace) -> Any:
        identity = parse_principal(args.principal)
        return {
            "identity": identity.hex,
            "did": identity.to_did_key(),
            "guardian_id": GuardianId.of(identity).hex,
        }

    # Account handlers
    def _handle_account_create(self, args: argparse.Namespace) -> Any:
        from tyron.account import SSIAccount
        state_path = pathlib.Path(args.state)
        if state_path.exists() and not args.force:
            raise CLIError(f"Refusing to overwrite {state_path} (use --force)")
        account = SSIAccount.create(
            parse_principal(args.owner),
            guardians=[parse_principal(g) for g in args.guardian],
            environment=parse_principal(args.environment) if args.environment else None,
            account=parse_principal(args.account) if args.account else None,
        )
        self._save_account(args, account)
        return self._summary(account)

    def _handle_account_show(self, args: argparse.Namespace) -> Any:
        return self._load_account(args).snapshot().to_dict()

    def _handle_account_params(self, args: argparse.Namespace) -> Any:
        account = self._load_account(args)
        count, threshold = account.get_guardian_params()
        return {"guardian_count": count, "threshold": threshold, "recovery_enabled": account.recovery_enabled}

    def _handle_account_add_guardians(self, args: argparse.Namespace) -> Any:
        account = self._load_account(args)
        added = account.add_guardians(parse_principal(args.caller), [parse_principal(g) for g in args.guardian])
        self._save_account(args, account)
        return {"added": [g.hex for g in added], **self._summary(account)}

    def _handle_account_remove_guardians(self, args: argparse.Namespace) -> Any:
        ids = [GuardianId.of(parse_principal(g)) for g in args.guardian]
        ids += [GuardianId.from_hex(g) for g in args.guardian_id]
        if not ids:
            raise CLIError("Nothing to remove: pass --guardian or --guardian-id")
        account = self._load_account(args)
        removed = account.remove_guardians(parse_principal(args.caller), ids)
        self._save_account(args, account)
        return {"removed": [g.hex for g in removed], **self._summary(account)}

    def _handle_account_is_guardian(self, args: argparse.Namespace) -> Any:
        account = self._load_account(args)
        if args.guardian:
            gid = GuardianId.of(parse_principal(args.guardian))
        else:
            gid = GuardianId.from_hex(args.guardian_id)
        return {"guardian_id": gid.hex, "is_guardian": account.is_guardian(gid)}

    def _handle_account_propose(self, args: argparse.Namespace) -> Any:
        account = self._load_account(args)
        account.propose_transfer(parse_principal(args.caller), parse_principal(args.new_owner))
        self._save_account(args, account)
        return self._summary(account)

    def _handle_account_accept(self, args: argparse.Namespace) -> Any:
        account = self._load_account(args)
        account.accept_ownership(parse_principal(args.caller))
        self._save_account(args, account)
        return self._summary(account)

    def _handle_account_recover(self, args: argparse.Namespace) -> Any:
        votes = [parse_vote(v) for v in args.vote]
        if args.votes_file:
            entries = json.loads(pathlib.Path(args.votes_file).read_text(encoding="utf-8"))
            if not isinstance(entries, list):
                raise CLIError("Votes file must contain a JSON list")
            for entry in entries:
                if not isinstance(entry, dict) or not all(isinstance(entry.get(k), str) for k in ("guardian", "signature")):
                    raise CLIError("Votes file entries need 'guardian' and 'signature'")
                votes.append((parse_principal(entry["guardian"]), entry["signature"]))
        if not votes:
            raise CLIError("No votes given: pass --vote or --votes-file")

        account = self._load_account(args)
        outcome = account.recover(
            parse_principal(args.new_owner),
            [g for g, _ in votes],
            [s for _, s in votes],
        )
        self._save_account(args, account)
        return {"votes": outcome.votes, **self._summary(account)}

    def _handle_account_check_signature(self, args: argparse.Namespace) -> Any:
        account = self._load_account(args)
        return {"valid": account.check_signature(args.digest, args.signature)}

    # Recovery handlers
    def _handle_recovery_digest(self, args: argparse.Namespace) -> Any:
        account = self._load_account(args)
        new_owner = parse_principal(args.new_owner)
        return {"new_owner": new_owner.hex, "digest": "0x" + account.recovery_digest(new_owner).hex()}

    def _handle_recovery_sign(self, args: argparse.Namespace) -> Any:
        account = self._load_account(args)
        pair = load_keypair(args.key)
        digest = account.recovery_digest(parse_principal(args.new_owner))
        return {
            "guardian": pair.identity.hex,
            "signature": "0x" + pair.sign(digest).hex(),
            "digest": "0x" + digest.hex(),
        }

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from tyron.config import get_config_manager
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from tyron.config import get_config_manager
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from tyron.config import get_config_manager
        errors = get_config_manager().validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from tyron.config import get_config_manager
        return get_config_manager().export_schema()


def main() -> int:
    """CLI entry point."""
    cli = TyronCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
