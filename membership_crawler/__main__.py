"""
Tenant Membership Crawler — Command line entry point

Usage:
    python -m membership_crawler --users alice@contoso.com,bob@contoso.com \\
        --tenant-id <GUID> --client-id <GUID> --cert-path ./base64.txt
    python -m membership_crawler --users-file seeds.txt --config config.json
    python -m membership_crawler --users alice@contoso.com --token eyJ0eXAi...
    python -m membership_crawler --users alice@contoso.com --delegated \\
        --tenant-id <GUID> --client-id <GUID>

Output: <tenant>_users.txt, <tenant>_groups.txt, <tenant>_groups_membership.txt,
<tenant>_roles.txt, <tenant>_roles_membership.txt, <tenant>_administrativeunits.txt,
<tenant>_errors.txt and <tenant>_summary.json in --output-dir.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from . import __mode__, __version__
from .auth.authenticator import Authenticator, AuthenticationError
from .config import (
    CertificateAuth,
    DelegatedAuth,
    EngineConfig,
    TokenAuth,
)
from .crawler import MembershipCrawler, parse_seeds
from .graph.client import GraphClient
from .graph.directory import GraphDirectoryClient
from .reporting import CsvRecordSink, export_summary
from .safety.guardian import SafetyGuardian


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="membership_crawler",
        description="Export the membership graph reachable from seed users (READ-ONLY)",
    )

    seeds = parser.add_argument_group("seeds")
    seeds.add_argument(
        "--users", "-u",
        type=str,
        default="",
        help="Comma separated object ids or user principal names to start from",
    )
    seeds.add_argument(
        "--users-file",
        type=Path,
        help="File with one object id or user principal name per line",
    )

    auth = parser.add_argument_group("authentication")
    auth.add_argument("--config", "-c", type=Path, help="Path to JSON configuration file")
    auth.add_argument("--tenant-id", type=str, default=None, help="Tenant ID (GUID)")
    auth.add_argument("--client-id", type=str, default=None, help="App registration client ID")
    auth.add_argument("--cert-path", type=Path, help="Path to base64-encoded PFX certificate")
    auth.add_argument(
        "--delegated",
        action="store_true",
        help="Use delegated (device-code) authentication instead of certificate",
    )
    auth.add_argument("--token", type=str, default=None, help="Use an existing Graph access token")

    parser.add_argument(
        "--output-dir", "-o",
        type=Path,
        default=None,
        help="Directory for the output files (default: current directory)",
    )
    parser.add_argument(
        "--max-parallel",
        type=int,
        default=None,
        help="Concurrent expansions per phase (default: 20)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> EngineConfig:
    """Build configuration from a config file and CLI overrides."""
    if args.config:
        config = EngineConfig.from_file(str(args.config))
    else:
        config = EngineConfig()

    if args.token:
        config.auth.mode = "token"
        config.auth.token = TokenAuth(access_token=args.token, tenant_id=args.tenant_id or "")
    elif args.delegated:
        config.auth.mode = "delegated"
        if args.tenant_id and args.client_id:
            config.auth.delegated = DelegatedAuth(tenant_id=args.tenant_id, client_id=args.client_id)
    elif args.tenant_id and args.client_id:
        config.auth.mode = "certificate"
        config.auth.certificate = CertificateAuth(
            tenant_id=args.tenant_id,
            client_id=args.client_id,
            certificate_path=str(args.cert_path) if args.cert_path else "./base64.txt",
        )
    elif args.cert_path and config.auth.certificate:
        config.auth.certificate.certificate_path = str(args.cert_path)

    if args.output_dir:
        config.output.base_dir = str(args.output_dir)
    if args.max_parallel:
        config.crawl.max_parallel = args.max_parallel
    if args.verbose:
        config.verbose = True
    return config


def read_seeds(args: argparse.Namespace) -> list[str]:
    seeds = parse_seeds(args.users or "")
    if args.users_file:
        seeds.extend(parse_seeds(args.users_file.read_text(encoding="utf-8")))
    return seeds


async def run_crawl(config: EngineConfig, seeds: list[str]) -> int:
    """Authenticate, crawl and write outputs. Returns the process exit code."""
    print("\n🔐 Authenticating...")
    authenticator = Authenticator(config.auth)
    try:
        token = await authenticator.acquire_token()
    except AuthenticationError as e:
        print(f"❌ Authentication failed: {e}")
        print("   The application needs these Graph permissions:")
        for permission, purpose in Authenticator.list_required_permissions().items():
            print(f"     {permission:<22} {purpose}")
        return 1
    print(f"✅ Authenticated to tenant {authenticator.tenant_id}")

    prefix = config.output.prefix or authenticator.tenant_id
    config.output.create_directories()
    output_dir = config.output.output_dir

    guardian = SafetyGuardian()
    try:
        sink = CsvRecordSink(output_dir, prefix)
    except OSError as e:
        print(f"❌ Unable to open output files in {output_dir}: {e}")
        return 1

    async with GraphClient(
        access_token=token,
        guardian=guardian,
        max_concurrent_requests=config.crawl.max_concurrent_requests,
        page_size=config.crawl.page_size,
    ) as client:
        with sink:
            crawler = MembershipCrawler(GraphDirectoryClient(client), sink, config.crawl)
            _stop_on_interrupt(crawler)
            print(f"\n📋 {len(seeds)} user(s) to proceed")
            stats = await crawler.run(seeds)
        client_stats = client.get_stats()

    summary_path = export_summary(
        stats,
        output_dir,
        prefix,
        output_files=sink.paths,
        client_stats=client_stats,
        safety_audit=guardian.get_audit_record(),
    )

    if stats.no_input:
        print("\n❌ No user found to start the analysis")
        return 1

    print("\n" + "=" * 70)
    print(" CRAWL COMPLETE")
    print("=" * 70)
    print(f"  Waves:                 {stats.waves}")
    print(f"  Users:                 {stats.users_recorded}")
    print(f"  Groups:                {stats.groups_recorded}")
    print(f"  Roles:                 {stats.roles_recorded}")
    print(f"  Administrative units:  {stats.administrative_units_recorded}")
    print(f"  Errors:                {stats.errors}")
    print(f"  Requests:              {client_stats['total_requests']} "
          f"({client_stats['throttle_events']} throttled)")
    print(f"  Summary:               {summary_path}")
    print()
    return 0


def _stop_on_interrupt(crawler: MembershipCrawler):
    """First Ctrl-C stops launching new expansions; in-flight ones finish."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, crawler.stop)
    except (NotImplementedError, RuntimeError):
        # No signal handlers on Windows loops or outside the main thread
        pass


def main(argv: Optional[list[str]] = None):
    """Synchronous entry point for `python -m membership_crawler`."""
    args = parse_args(argv)
    config = build_config(args)

    logging.basicConfig(
        level=logging.DEBUG if config.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    seeds = read_seeds(args)
    if not seeds:
        print("❌ No seed users. Use --users or --users-file.")
        sys.exit(2)

    print("=" * 70)
    print(f" Tenant Membership Crawler v{__version__}")
    print(f" Mode: {__mode__} — No tenant modifications will be made")
    print("=" * 70)

    sys.exit(asyncio.run(run_crawl(config, seeds)))


if __name__ == "__main__":
    main()
