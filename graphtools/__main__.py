"""
GraphTools: Entitlement Removal CLI

Usage:
    python -m graphtools remove-entitlements alice@contoso.com --all --dry-run
    python -m graphtools remove-entitlements alice@contoso.com bob@contoso.com \\
        --group-memberships --licenses --profile contoso-prod
    python -m graphtools remove-entitlements alice@contoso.com --all --delegated --reconnect

Profile management:
    python -m graphtools profile add <name> --tenant-id ... --client-id ...
    python -m graphtools profile list
    python -m graphtools profile remove <name>
    python -m graphtools profile set-default <name>

Exit codes: 0 when the run completed (per-resource failures are reported as
rows), 1 on configuration or authentication failure, 2 when a precondition
(UPN format, granted scopes) is not met.

This tool MODIFIES the tenant unless --dry-run is given.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from . import __version__
from .config import (
    EngineConfig,
    CertificateAuth,
    DelegatedAuth,
    required_scopes_for,
)
from .safety.guardian import SafetyGuardian
from .safety.validation import InvalidFormatError, validate_upn
from .auth.authenticator import Authenticator, AuthenticationError
from .auth.scope_gate import MissingScopesError, ScopeGate
from .graph.client import GraphClient
from .removal import ALL_REMOVERS
from .removal.models import RemovalResult
from .removal.orchestrator import EntitlementOrchestrator, RemovalSelection, summarize
from .reporting import export_json, export_csv
from .profiles import AUTH_MODES, ProfileStore, TenantProfile, resolve_profile

logger = logging.getLogger("graphtools.cli")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PRECONDITION = 2


class ConfigurationError(Exception):
    """Raised when no usable tenant credentials can be assembled."""
    pass


# ---------------------------------------------------------------------------
# profile add | list | remove | set-default
# ---------------------------------------------------------------------------

def _profile_list(store: ProfileStore, args: argparse.Namespace) -> int:
    profiles = store.list_profiles()
    if not profiles:
        print("No tenant profiles saved yet. Create one with:\n")
        print("  graphtools profile add <name> --tenant-id <GUID> --client-id <GUID> [--delegated]")
        return EXIT_OK

    header = f"  {'Name':<24s} {'Tenant ID':<38s} {'Client ID':<38s} {'Auth':<12s} Default"
    print("\n" + header)
    print("  " + "-" * (len(header) - 2))
    for p in profiles:
        label = f"{p.name} ({p.tenant_display_name})" if p.tenant_display_name else p.name
        star = "  *" if p.name == store.default_profile else ""
        print(f"  {label:<24s} {p.tenant_id:<38s} {p.client_id:<38s} {p.auth_mode:<12s}{star}")
    print()
    return EXIT_OK


def _profile_add(store: ProfileStore, args: argparse.Namespace) -> int:
    if store.get(args.profile_name):
        print(f"  Replacing existing profile '{args.profile_name}'.")
    make_default = args.set_default or not store.profiles
    profile = TenantProfile(
        name=args.profile_name,
        tenant_id=args.tenant_id,
        client_id=args.client_id,
        auth_mode="delegated" if args.delegated else "certificate",
        cert_path=args.cert_path,
        tenant_display_name=args.display_name or "",
        notes=args.notes or "",
    )
    store.add(profile, set_default=make_default)
    print(f"  Saved profile '{profile.name}' ({profile.auth_mode})" + (" as default." if make_default else "."))
    return EXIT_OK


def _profile_remove(store: ProfileStore, args: argparse.Namespace) -> int:
    if not store.remove(args.profile_name):
        print(f"  No profile named '{args.profile_name}'.")
        return EXIT_FAILURE
    print(f"  Removed profile '{args.profile_name}'.")
    return EXIT_OK


def _profile_set_default(store: ProfileStore, args: argparse.Namespace) -> int:
    if not store.set_default(args.profile_name):
        print(f"  No profile named '{args.profile_name}'.")
        return EXIT_FAILURE
    print(f"  '{args.profile_name}' is now the default profile.")
    return EXIT_OK


_PROFILE_ACTIONS = {
    "list": _profile_list,
    "add": _profile_add,
    "remove": _profile_remove,
    "set-default": _profile_set_default,
}


def _cmd_profile(args: argparse.Namespace) -> int:
    handler = _PROFILE_ACTIONS.get(args.profile_action)
    if handler is None:
        print("Usage: graphtools profile {add|list|remove|set-default}")
        return EXIT_OK
    return handler(ProfileStore.load(), args)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _flag(key: str) -> str:
    return "--" + key.replace("_", "-")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="graphtools",
        description="GraphTools: remove Entra ID entitlements from user accounts",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    profile = subparsers.add_parser("profile", help="Save, list and select tenant profiles")
    actions = profile.add_subparsers(dest="profile_action")

    add = actions.add_parser("add", help="Save a tenant profile (replaces one with the same name)")
    add.add_argument("profile_name", help="Profile name, e.g. contoso-prod")
    add.add_argument("--tenant-id", required=True, help="Entra tenant ID")
    add.add_argument("--client-id", required=True, help="App registration client ID")
    add.add_argument("--delegated", action="store_true", help="Sign in with device code instead of a certificate")
    add.add_argument("--cert-path", default="./base64.txt", help="Base64-encoded PFX for certificate sign-in")
    add.add_argument("--display-name", help="Tenant display name shown by 'profile list'")
    add.add_argument("--notes", help="Free-form notes")
    add.add_argument("--set-default", action="store_true", help="Make this the default profile")

    actions.add_parser("list", help="Show saved profiles")
    for name, text in (("remove", "Delete a saved profile"), ("set-default", "Choose the default profile")):
        actions.add_parser(name, help=text).add_argument("profile_name")

    # --- remove-entitlements ---
    rem = subparsers.add_parser(
        "remove-entitlements",
        help="Remove entitlements from one or more users",
    )
    rem.add_argument("upns", nargs="+", metavar="UPN", help="User principal name(s)")

    what = rem.add_argument_group("entitlements")
    for cls in ALL_REMOVERS:
        what.add_argument(_flag(cls.key), dest=cls.key, action="store_true", help=cls.description)
    what.add_argument("--all", action="store_true", help="Run every remover")

    run = rem.add_argument_group("run control")
    run.add_argument("--dry-run", action="store_true", default=None,
                     help="Enumerate and report only; every write is blocked")
    run.add_argument("--reconnect", action="store_true", default=None,
                     help="Re-authenticate (delegated only) to pick up missing scopes")
    run.add_argument("--max-concurrency", type=int, default=None,
                     help="Users processed in parallel (default: 1)")
    run.add_argument("--timeout", type=float, default=None,
                     help="Stop starting new work after this many seconds")
    run.add_argument("--request-timeout", type=float, default=None,
                     help="Per-request Graph timeout in seconds")

    out = rem.add_argument_group("output")
    out.add_argument("--output-dir", "-o", type=Path, default=None,
                     help="Output directory (default: ./graphtools_removal_<timestamp>)")
    out.add_argument("--formats", nargs="+", choices=["json", "csv"], default=None,
                     help="Output formats to generate (default: json csv)")
    out.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    auth = rem.add_argument_group("tenant")
    auth.add_argument("--profile", "-p", default=None,
                      help="Tenant profile name (run 'profile list' to see available)")
    auth.add_argument("--config", "-c", type=Path, help="Path to JSON configuration file")
    auth.add_argument("--delegated", action="store_true",
                      help="Use delegated (device-code) authentication instead of certificate")
    auth.add_argument("--tenant-id", default=None, help="Tenant ID (overrides profile)")
    auth.add_argument("--client-id", default=None, help="Client ID (overrides profile)")
    auth.add_argument("--cert-path", type=Path, help="Path to base64-encoded certificate (overrides profile)")

    return parser.parse_args(argv)


def selection_from_args(args: argparse.Namespace) -> RemovalSelection:
    keys = [cls.key for cls in ALL_REMOVERS if getattr(args, cls.key, False)]
    selection = RemovalSelection.from_keys(keys)
    selection.all = bool(args.all)
    return selection


def build_config(args: argparse.Namespace, scopes: list[str]) -> EngineConfig:
    """
    Build configuration from a JSON file, a profile and CLI flags.
    CLI flags override the profile, which overrides the config file.
    """
    if args.config:
        if not args.config.exists():
            raise ConfigurationError(f"Config file not found: {args.config}")
        config = EngineConfig.from_file(args.config)
    else:
        config = EngineConfig()

    profile: Optional[TenantProfile] = None
    if args.profile:
        profile = resolve_profile(args.profile)
        if not profile:
            raise ConfigurationError(
                f"Profile '{args.profile}' not found. Use 'profile list' to see available profiles."
            )
    elif not args.config and not args.tenant_id:
        profile = resolve_profile()

    if profile and profile.auth_mode in AUTH_MODES:
        config.auth.mode = profile.auth_mode
    if args.delegated:
        config.auth.mode = "delegated"

    # --- Tenant identity ---
    existing = config.auth.certificate or config.auth.delegated
    if profile:
        tenant_id = args.tenant_id or profile.tenant_id
        client_id = args.client_id or profile.client_id
        cert_path = str(args.cert_path) if args.cert_path else profile.resolve_cert_path()
    elif args.tenant_id and args.client_id:
        tenant_id, client_id = args.tenant_id, args.client_id
        cert_path = str(args.cert_path) if args.cert_path else "./base64.txt"
    elif existing:
        tenant_id = args.tenant_id or existing.tenant_id
        client_id = args.client_id or existing.client_id
        cert_path = (
            str(args.cert_path) if args.cert_path
            else getattr(config.auth.certificate, "certificate_path", "./base64.txt")
        )
    else:
        raise ConfigurationError(
            "No tenant credentials found. Use --profile <name>, "
            "--tenant-id X --client-id Y, or --config config.json"
        )

    if config.auth.mode == "delegated":
        config.auth.delegated = DelegatedAuth(tenant_id=tenant_id, client_id=client_id, scopes=scopes)
    else:
        password = config.auth.certificate.certificate_password if config.auth.certificate else ""
        config.auth.certificate = CertificateAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            certificate_path=cert_path,
            certificate_password=password,
        )

    # --- Run control ---
    if args.dry_run is not None:
        config.removal.dry_run = args.dry_run
    if args.reconnect is not None:
        config.removal.reconnect = args.reconnect
    if args.max_concurrency is not None:
        config.removal.max_concurrency = max(1, args.max_concurrency)
    if args.timeout is not None:
        config.removal.run_timeout = args.timeout
    if args.request_timeout is not None:
        config.removal.request_timeout = args.request_timeout

    if args.output_dir is not None:
        config.output.base_dir = str(args.output_dir)
    if args.formats:
        config.output.formats = list(args.formats)
    config.verbose = config.verbose or args.verbose
    return config


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def write_reports(
    results: list[RemovalResult],
    guardian: SafetyGuardian,
    config: EngineConfig,
    run_id: str,
) -> list[Path]:
    """Generate all requested output formats."""
    created = []
    output_dir = config.output.run_dir

    if "json" in config.output.formats:
        path = export_json(results, guardian.get_audit_record(), output_dir, run_id,
                           dry_run=config.removal.dry_run)
        created.append(path)
        print(f"  JSON: {path}")

    if "csv" in config.output.formats:
        path = export_csv(results, output_dir, run_id)
        created.append(path)
        print(f"  CSV:  {path}")

    return created


def _install_cancel_handler(cancel: asyncio.Event):
    """Ctrl+C stops new work; rows gathered so far are still written."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handler support
        pass


# ---------------------------------------------------------------------------
# remove-entitlements
# ---------------------------------------------------------------------------

async def remove_entitlements(args: argparse.Namespace) -> int:
    selection = selection_from_args(args)
    scopes = required_scopes_for(selection.selected_keys())

    try:
        config = build_config(args, scopes)
    except (ConfigurationError, ValueError, KeyError) as e:
        print(f"\nConfiguration error: {e}")
        return EXIT_FAILURE
    configure_logging(config.verbose)

    # Fail fast, before any sign-in prompt
    try:
        for upn in args.upns:
            validate_upn(upn)
    except InvalidFormatError as e:
        print(f"\n{e}")
        return EXIT_PRECONDITION

    guardian = SafetyGuardian(dry_run=config.removal.dry_run)
    guardian.print_banner()

    run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]
    print(f"\n GraphTools v{__version__}  |  Run ID: {run_id}")
    print(f" Users:     {', '.join(args.upns)}")
    print(f" Removers:  {', '.join(selection.selected_keys()) or 'none'}")
    print(f" Output:    {config.output.run_dir.resolve()}\n")

    # --- Authentication ---
    authenticator = Authenticator(config.auth)
    try:
        token = await authenticator.acquire_token()
    except AuthenticationError as e:
        print(f"Authentication failed: {e}")
        return EXIT_FAILURE

    cancel = asyncio.Event()
    _install_cancel_handler(cancel)

    async with GraphClient(
        access_token=token,
        guardian=guardian,
        request_timeout=config.removal.request_timeout,
    ) as client:
        orchestrator = EntitlementOrchestrator(client, ScopeGate(authenticator), config.removal)
        try:
            results = await orchestrator.run(args.upns, selection, cancel=cancel)
        except (InvalidFormatError, MissingScopesError) as e:
            print(f"\n{e}")
            return EXIT_PRECONDITION
        except AuthenticationError as e:
            print(f"Reconnect failed: {e}")
            return EXIT_FAILURE
        stats = client.get_stats()

    # --- Output ---
    print()
    created = write_reports(results, guardian, config, run_id)

    counts = summarize(results)
    print("\n" + "=" * 70)
    print(" RUN COMPLETE" + (" (DRY RUN)" if config.removal.dry_run else ""))
    print("=" * 70)
    print(f"  Rows:      {counts['total']}")
    print(f"  Success:   {counts['Success']}")
    print(f"  Failed:    {counts['Failed']}")
    print(f"  Skipped:   {counts['Skipped']}")
    print(f"  Dry run:   {counts['DryRun']}")
    print(f"  Requests:  {stats['total_requests']} ({stats['throttle_events']} throttled)")
    print(f"  Files:     {len(created)}")
    if cancel.is_set():
        print("  Run was cancelled before all work finished.")
    print()
    return EXIT_OK


async def main_async(argv: Optional[list[str]] = None) -> int:
    """Async entry point."""
    args = parse_args(argv)

    if args.command == "profile":
        return _cmd_profile(args)
    if args.command == "remove-entitlements":
        return await remove_entitlements(args)

    parse_args(["--help"])
    return EXIT_OK


def main():
    """Synchronous entry point for `python -m graphtools`."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
