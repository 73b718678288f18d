"""Command-line entry point for signature synchronization."""
from __future__ import annotations
import argparse
import json
import logging
import sys
from typing import List, Optional

from sigsync.audit import AuditTrail
from sigsync.config.settings import SyncSettings, load_settings
from sigsync.core.diagnostics import Capabilities, live_probes, run_diagnostics
from sigsync.core.exceptions import ConfigurationError, SignatureSyncError
from sigsync.core.models import SyncResult
from sigsync.core.service import build_service, build_template_store


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(name)s] %(levelname)s %(message)s",
        stream=sys.stderr,
    )


def _print_result(result: SyncResult, dry_run: bool) -> None:
    label = "would be updated" if dry_run else "updated"
    print(f"Users {label}: {len(result.processed)}")
    print(f"Users skipped: {len(result.skipped)}")
    print(f"Users failed: {len(result.failed)}")
    if dry_run:
        for email in result.processed:
            print(f"  • {email}")
    for email, reason in result.failed.items():
        print(f"  ✗ {email}: {reason}")
    if result.partial:
        print("Partial result: run deadline reached before every user was processed")


def _cmd_sync(settings: SyncSettings, args: argparse.Namespace, dry_run: bool) -> int:
    users = args.user or None
    if args.test_user:
        if not settings.test_user_email:
            raise ConfigurationError("Missing required config: test_user_email")
        users = [settings.test_user_email]
    service = build_service(settings, operator=args.operator)
    result = service.sync(dry_run=dry_run, users=users, timeout=args.timeout)
    _print_result(result, dry_run)
    return 1 if result.failed else 0


def _cmd_list_templates(settings: SyncSettings) -> int:
    store = build_template_store(settings)
    print("Available template IDs:")
    for template_id, preview in store.list_templates().items():
        print(f"- {template_id}: {preview}...")
    return 0


def _cmd_diagnose(settings: SyncSettings, args: argparse.Namespace) -> int:
    probes = {}
    if not args.offline:
        try:
            probes = live_probes(settings)
        except ConfigurationError:
            probes = {}
    report = run_diagnostics(settings, Capabilities.from_settings(settings), probes)
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.status == "SUCCESS" else 1


def _cmd_verify_audit(settings: SyncSettings) -> int:
    total, valid = AuditTrail(settings.audit_log_dir, settings.audit_log_signing_key).verify()
    print(f"Audit log: {valid}/{total} events with valid signatures")
    return 0 if total == valid else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sigsync", description="Google Workspace email signature sync")
    parser.add_argument("--config", help="JSON settings file (overrides SIGSYNC_CONFIG_FILE)")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--operator", default="cli", help="Operator identifier for audit logs (default: cli)")

    sub = parser.add_subparsers(dest="cmd")

    sp = sub.add_parser("sync", help="Update signatures for every eligible user")
    sp.add_argument("--dry-run", action="store_true", help="Classify users without writing signatures")
    sp.add_argument("--user", action="append", help="Only process this email (repeatable)")
    sp.add_argument("--test-user", action="store_true", help="Only process the configured test_user_email")
    sp.add_argument("--timeout", type=float, default=None, help="Stop starting new batches after N seconds")

    dr = sub.add_parser("dry-run", help="Alias for 'sync --dry-run'")
    dr.add_argument("--user", action="append", help="Only process this email (repeatable)")
    dr.add_argument("--test-user", action="store_true", help="Only process the configured test_user_email")
    dr.add_argument("--timeout", type=float, default=None)

    sub.add_parser("list-templates", help="List built-in and local templates")

    dg = sub.add_parser("diagnose", help="Check configuration, key, scopes and API access")
    dg.add_argument("--offline", action="store_true", help="Skip live API probes")

    sub.add_parser("verify-audit", help="Verify audit log signatures")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return 0

    _configure_logging(args.verbose)

    try:
        settings = load_settings(config_file=args.config)
        if args.verbose:
            settings = settings.with_overrides(verbose=True)

        if args.cmd == "sync":
            return _cmd_sync(settings, args, dry_run=args.dry_run or settings.dry_run)
        if args.cmd == "dry-run":
            return _cmd_sync(settings, args, dry_run=True)
        if args.cmd == "list-templates":
            return _cmd_list_templates(settings)
        if args.cmd == "diagnose":
            return _cmd_diagnose(settings, args)
        if args.cmd == "verify-audit":
            return _cmd_verify_audit(settings)
    except SignatureSyncError as e:
        print(f"[{args.cmd}] Error: {e}", file=sys.stderr)
        return 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
