"""Command line entry point for iurl."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from datetime import datetime, timezone
from typing import Optional

from .api.rate_limiter import RateLimiterRegistry
from .api.server import ApiServer
from .config import Config, load_config, validate_config
from .errors import IurlError
from .pipeline.service import ScanService
from .scanner import AIRiskAdapter, DetectorBank, ScoreAggregator, UrlScanner
from .storage import AllowlistStore, Database

logger = logging.getLogger(__name__)

EXIT_CLEAN = 0
EXIT_FLAGGED = 1
EXIT_USAGE = 2


def _configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


class IurlApp:
    """Wires configuration, storage and the scanner together."""

    def __init__(self, config: Config):
        self.config = config
        self.database = Database(config.db_path)
        self.allowlist = AllowlistStore(self.database, config.extra_allowlist)
        self.scanner = UrlScanner(
            detectors=DetectorBank(
                suspicious_tlds=config.suspicious_tlds,
                brands=config.brands,
                shorteners=config.shorteners,
            ),
            aggregator=ScoreAggregator(config.scoring),
            ai_adapter=AIRiskAdapter(
                endpoint=config.ai_endpoint or None,
                api_key=config.ai_api_key or None,
                timeout=config.ai_timeout,
                cache_ttl_seconds=config.ai_cache_ttl_seconds,
            ),
            allowlist=self.allowlist,
            ai_timeout=config.ai_timeout,
        )
        self.service = ScanService(self.scanner, self.database, history_limit=config.history_limit)

    async def __aenter__(self) -> "IurlApp":
        await self.database.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.database.close()

    def api_server(self) -> ApiServer:
        return ApiServer(
            self.service,
            self.allowlist,
            self.database,
            host=self.config.api_host,
            port=self.config.api_port,
            tokens=self.config.api_tokens,
            rate_limiters=RateLimiterRegistry(
                requests_per_minute=self.config.scan_rate_limit_per_minute,
                burst_size=self.config.scan_rate_limit_burst,
            ),
            history_limit=self.config.history_limit,
            trusted_proxies=self.config.api_trusted_proxies,
        )


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2))


async def _cmd_scan(app: IurlApp, args: argparse.Namespace) -> int:
    result = await app.service.scan(args.url, user_id=args.user, use_ai=not args.no_ai)
    if args.json:
        _print_json(result.to_dict())
    else:
        print(f"{result.verdict.value.upper()}  safety score {result.score}/100  {result.url}")
        for reason in result.reasons:
            print(f"  - {reason}")
    return EXIT_CLEAN if result.safe else EXIT_FLAGGED


async def _cmd_serve(app: IurlApp, args: argparse.Namespace) -> int:
    server = app.api_server()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await server.start()
    try:
        await stop_event.wait()
    finally:
        await server.stop()
        logger.info("API server stopped")
    return EXIT_CLEAN


def _site_allowlist(app: IurlApp, args: argparse.Namespace) -> int:
    """Edit config/allowlist.txt (extra built-in domains, applied on next start)."""
    site = app.config.site_allowlist
    if args.action == "list":
        for domain in site.domains():
            print(domain)
        return EXIT_CLEAN

    if args.action == "add":
        domain, created = site.add(args.domain)
        print(f"Trusted {domain} site-wide" if created else f"{domain} is already trusted site-wide")
        return EXIT_CLEAN

    if site.remove(args.domain):
        print(f"Removed {args.domain} from {site.path}")
        return EXIT_CLEAN
    print(f"{args.domain} is not in {site.path}", file=sys.stderr)
    return EXIT_FLAGGED


async def _cmd_allowlist(app: IurlApp, args: argparse.Namespace) -> int:
    if args.site:
        return _site_allowlist(app, args)

    if args.action == "list":
        entries = await app.allowlist.get_allowlist(args.user)
        if args.json:
            _print_json([entry.to_dict() for entry in entries])
        else:
            for entry in entries:
                print(f"{entry.domain}{'' if entry.user_added else '  (built-in)'}")
        return EXIT_CLEAN

    if args.action == "add":
        entry = await app.allowlist.add(args.user, args.domain)
        print(f"Trusted {entry.domain}")
        return EXIT_CLEAN

    if await app.allowlist.remove(args.user, args.domain):
        print(f"Removed {args.domain}")
        return EXIT_CLEAN
    print(f"{args.domain} is not in the allowlist", file=sys.stderr)
    return EXIT_FLAGGED


async def _cmd_history(app: IurlApp, args: argparse.Namespace) -> int:
    if args.clear:
        removed = await app.database.clear_history(args.user)
        print(f"Cleared {removed} history entries")
        return EXIT_CLEAN

    entries = await app.database.list_history(args.user, limit=args.limit, safe_only=args.safe_only)
    if args.json:
        _print_json([entry.to_dict() for entry in entries])
        return EXIT_CLEAN
    for entry in entries:
        when = entry.last_scanned_at.isoformat() if entry.last_scanned_at else "-"
        print(f"{when}  {entry.verdict:<10} {entry.score:>3}  x{entry.scan_count}  {entry.url}")
    return EXIT_CLEAN


async def _cmd_stats(app: IurlApp, args: argparse.Namespace) -> int:
    day = args.day or datetime.now(timezone.utc).date().isoformat()
    stats = await app.database.get_daily_stats(args.user, day)
    if args.json:
        _print_json(stats.to_dict())
    else:
        print(f"{stats.day}: {stats.links_checked} links checked, {stats.threats_blocked} threats blocked")
    return EXIT_CLEAN


COMMANDS = {
    "scan": _cmd_scan,
    "serve": _cmd_serve,
    "allowlist": _cmd_allowlist,
    "history": _cmd_history,
    "stats": _cmd_stats,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="iurl", description="Score URLs for phishing and malware risk.")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="scan a URL")
    scan.add_argument("url")
    scan.add_argument("--json", action="store_true", help="print the full result as JSON")
    scan.add_argument("--no-ai", action="store_true", help="skip the AI risk endpoint")
    scan.add_argument("--user", help="user whose allowlist and history apply")

    sub.add_parser("serve", help="run the HTTP API")

    allowlist = sub.add_parser("allowlist", help="manage trusted domains")
    allowlist.add_argument("action", choices=["list", "add", "remove"])
    allowlist.add_argument("domain", nargs="?")
    allowlist.add_argument("--user", help="user whose allowlist to edit")
    allowlist.add_argument("--site", action="store_true", help="edit config/allowlist.txt instead")
    allowlist.add_argument("--json", action="store_true")

    history = sub.add_parser("history", help="show recent scans")
    history.add_argument("--user")
    history.add_argument("--limit", type=int, default=20)
    history.add_argument("--safe-only", action="store_true")
    history.add_argument("--clear", action="store_true", help="delete the history instead")
    history.add_argument("--json", action="store_true")

    stats = sub.add_parser("stats", help="show daily scan counters")
    stats.add_argument("--user")
    stats.add_argument("--day", help="YYYY-MM-DD (default: today, UTC)")
    stats.add_argument("--json", action="store_true")

    return parser


async def run_command(config: Config, args: argparse.Namespace) -> int:
    async with IurlApp(config) as app:
        return await COMMANDS[args.command](app, args)


def cli(argv: Optional[list[str]] = None) -> int:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "allowlist" and args.action != "list" and not args.domain:
        parser.error("allowlist add/remove needs a domain")

    _configure_logging(args.verbose)

    config = load_config()
    validation_errors = validate_config(config)
    if validation_errors:
        for err in validation_errors:
            logger.error(err)
        return EXIT_USAGE

    try:
        return asyncio.run(run_command(config, args))
    except IurlError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(cli())
