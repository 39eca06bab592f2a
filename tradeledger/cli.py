# tradeledger/cli.py
import argparse
import json
import sys
from typing import List, Optional

from .config import configure_logging, load_settings
from .errors import LedgerError
from .importer import ImportOrchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tradeledger", description="Broker export ledger and portfolio exposure")
    parser.add_argument("--store-dir", default=None, help="Ledger directory (default: TRADELEDGER_STORE_DIR)")
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Import a broker export into the ledger")
    p_import.add_argument("file", help="Export CSV path")
    p_import.add_argument(
        "--format",
        choices=["JP", "US", "INVST"],
        default=None,
        help="Export layout (detected from headers when omitted)",
    )

    for name, help_text in (("positions", "Show positions"), ("exposure", "Show sector/region exposure")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--from", dest="date_from", default=None, help="First trade date (YYYY-MM-DD)")
        p.add_argument("--to", dest="date_to", default=None, help="Last trade date (YYYY-MM-DD)")
        p.add_argument("--all", action="store_true", help="Include closed positions")

    p_export = sub.add_parser("export", help="Write the ledger to CSV")
    p_export.add_argument("out", help="Output CSV path")

    sub.add_parser("stats", help="Ledger counts")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    if args.store_dir:
        settings.store_dir = args.store_dir
    configure_logging(args.log_level or settings.log_level)

    orchestrator = ImportOrchestrator.from_settings(settings)

    try:
        if args.command == "import":
            report = orchestrator.import_file(args.file, args.format)
            print(report.model_dump_json(indent=2))
        elif args.command in ("positions", "exposure"):
            analysis = orchestrator.analyze(args.date_from, args.date_to, active_only=not args.all)
            if args.command == "positions":
                out = [p.to_dict() for p in analysis.positions]
                print(json.dumps(out, indent=2, ensure_ascii=False))
            else:
                print(analysis.exposure.model_dump_json(indent=2))
        elif args.command == "export":
            df = orchestrator.ledger.to_frame()
            df.to_csv(args.out, index=False, encoding="utf-8-sig")
            print(f"wrote {len(df)} transactions to {args.out}")
        elif args.command == "stats":
            print(orchestrator.ledger.stats().model_dump_json(indent=2))
    except (LedgerError, FileNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
