"""
Agency Hub: command line entry point.

    python -m agencyhub.main load
    python -m agencyhub.main export --output backup.json
    python -m agencyhub.main validate-import backup.json
    python -m agencyhub.main generate-payments 202604
    python -m agencyhub.main generate-expenses
"""

import sys
import logging
import argparse
from pathlib import Path


def setup_logging(level: int = logging.INFO):
    """Configure application logging with rotating file handler."""
    from logging.handlers import RotatingFileHandler
    from agencyhub import config

    config.LOG_PATH.parent.mkdir(parents=True, exist_ok=True)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Rotating file handler: 5 MB x 3 backups
    file_handler = RotatingFileHandler(
        str(config.LOG_PATH),
        maxBytes=config.LOG_MAX_BYTES,
        backupCount=config.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(fmt)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(fmt)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(file_handler)
    root.addHandler(console_handler)
    root.setLevel(level)

    # Suppress noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agencyhub", description="Agency Hub data sync")
    parser.add_argument("--tenant", help="Tenant id (defaults to AGENCY_TENANT_ID)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("load", help="Load every collection and print counts")

    export = sub.add_parser("export", help="Export all data as JSON")
    export.add_argument("--output", "-o", help="Write to FILE instead of stdout")

    imp = sub.add_parser("validate-import",
                         help="Check an export file can be imported (writes nothing)")
    imp.add_argument("file")

    for name, help_text in (("generate-payments", "Create this month's retainer payments"),
                            ("generate-expenses", "Copy recurring expenses into a month")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("month", nargs="?", help="YYYYMM (defaults to the current month)")
    return parser


def run(args, engine) -> int:
    """Execute one parsed command against a ready engine. Returns the exit code."""
    from agencyhub import transfer
    from agencyhub.errors import AgencyError

    try:
        if args.command == "load":
            engine.load_all()
            for name, items in engine.store.snapshot().items():
                if isinstance(items, list):
                    print(f"{name}: {len(items)}")
        elif args.command == "export":
            engine.load_all()
            text = engine.export_data()
            if args.output:
                Path(args.output).write_text(text, encoding="utf-8")
                print(f"Exported to {args.output}")
            else:
                print(text)
        elif args.command == "validate-import":
            text = Path(args.file).read_text(encoding="utf-8")
            try:
                data = transfer.parse_import(text)
            except ValueError as e:
                print(f"Import rejected: {e}", file=sys.stderr)
                return 1
            print(f"Valid export: {len(data['clients'])} clients, "
                  f"{len(data['leads'])} leads (nothing was written)")
        elif args.command == "generate-payments":
            engine.load_all()
            print(f"Created {engine.generate_monthly_payments(args.month)} payments")
        elif args.command == "generate-expenses":
            engine.load_all()
            print(f"Created {engine.generate_monthly_expenses(args.month)} expenses")
    except AgencyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def main(argv=None) -> int:
    """Application entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    logger = logging.getLogger("agency.main")

    from agencyhub import config
    from agencyhub.background import BackgroundQueue
    from agencyhub.functions import EdgeFunctions
    from agencyhub.remote import get_client
    from agencyhub.sync import SyncEngine

    logger.info("%s %s: %s", config.APP_NAME, config.APP_VERSION, args.command)
    logger.info("Supabase configured: %s", "Yes" if config.USE_SUPABASE else "No")

    engine = SyncEngine(get_client(), tenant_id=args.tenant or config.TENANT_ID,
                        background=BackgroundQueue(inline=True),
                        functions=EdgeFunctions() if config.USE_SUPABASE else None)
    try:
        return run(args, engine)
    finally:
        engine.close()


if __name__ == "__main__":
    sys.exit(main())
