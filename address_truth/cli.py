from __future__ import annotations

import argparse
import logging
from pathlib import Path

from .app import AddressTruthApp
from .commands import doctor as cmd_doctor
from .commands import facilities as cmd_facilities
from .commands import review as cmd_review
from .commands import sweep as cmd_sweep
from .commands import truth as cmd_truth
from .config import load_settings
from .facilities import FORMAT_JSONL, FORMATS
from .models import Decision, InvalidDecisionError, MissingInputError

LOG_FORMAT = "%(levelname).1s | %(name)s | %(message)s"

C_RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",  # Cyan
    logging.INFO: "\033[37m",  # Light gray
    logging.WARNING: "\033[33m",  # Yellow
    logging.ERROR: "\033[31m",  # Red
    logging.CRITICAL: "\033[35m",  # Magenta
}


class ShortPathFormatter(logging.Formatter):
    """Drop the data root prefix from messages so document names stay readable."""

    def __init__(self, fmt: str, roots: list[Path]) -> None:
        super().__init__(fmt)
        self.roots = [str(root) for root in roots if root]

    def _shorten(self, message: str) -> str:
        for root in self.roots:
            if not message:
                break
            message = message.replace(f"{root}/", "")
        return message

    def format(self, record: logging.LogRecord) -> str:
        return self._shorten(super().format(record))


class ColorFormatter(ShortPathFormatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if not color:
            return message
        return f"{color}{message}{C_RESET}"


class WarningBufferHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.records: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:  # pragma: no cover
            msg = record.getMessage()
        self.records.append(msg)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Address identity resolution and classification")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--log-level", default="INFO", help="Python logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("build-truth", help="Aggregate source rows into address and city truth")

    tabs_parser = subparsers.add_parser("tabs", help="Show city counts per rollup tab")
    tabs_parser.add_argument("--tab", default=None, help="List the cities of one tab (e.g. CAND, FRANCHISE)")
    tabs_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON to stdout")

    facilities_parser = subparsers.add_parser("facilities", help="Operator facility seed import")
    facility_actions = facilities_parser.add_subparsers(dest="facilities_command", required=True)
    for action, help_text in (
        ("preview", "Classify input rows against known facilities without writing"),
        ("commit", "Append new rows to a seed log and rebuild the facility directory"),
    ):
        action_parser = facility_actions.add_parser(action, help=help_text)
        action_parser.add_argument("file", type=Path, help="Seed input file")
        action_parser.add_argument("--format", choices=FORMATS, default=FORMAT_JSONL, help="Input format")
        action_parser.add_argument("--brand", default=None, help="Brand applied to rows without one")
        action_parser.add_argument("--category", default=None, help="Category applied to rows without one")
        action_parser.add_argument("--source", default=None, help="Source tag applied to rows without one")
        if action == "preview":
            action_parser.add_argument("--json", action="store_true", help="Emit the full preview as JSON")
        else:
            action_parser.add_argument("--seed-log", default=None, help="Seed log file name under the seeds directory")
            action_parser.add_argument("--note", default=None, help="Operator note recorded in the receipt")
    facility_actions.add_parser("rebuild", help="Rebuild the facility directory from every seed log")

    sweep_parser = subparsers.add_parser("sweep", help="Discover, score and classify addresses")
    sweep_parser.add_argument(
        "--address-key",
        action="append",
        dest="address_keys",
        default=None,
        help="Sweep only this address key (repeatable)",
    )
    sweep_parser.add_argument("--limit", type=int, default=None, help="Sweep at most N addresses")

    decide_parser = subparsers.add_parser("decide", help="Record a human decision for one address")
    decide_parser.add_argument("address_key", help="Address key (STREET | CITY | ST | ZIP)")
    decide_parser.add_argument("decision", choices=[d.value for d in Decision])
    decide_parser.add_argument("--place-id", default=None, help="Selected candidate place id")
    decide_parser.add_argument("--name", default=None, help="Selected candidate name")
    decide_parser.add_argument("--note", default=None, help="Free-text note")

    bulk_parser = subparsers.add_parser("bulk-reject", help="Reject every swept row of one kind")
    bulk_parser.add_argument("action", choices=sorted(cmd_review.BULK_ACTIONS))

    subparsers.add_parser("materialize", help="Merge adjudications into the effective sweep view")

    doctor_parser = subparsers.add_parser("doctor", help="Run basic config/data/provider checks")
    doctor_parser.add_argument(
        "--providers",
        action="store_true",
        help="Also validate the places provider with a network call",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = load_settings(args.config)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    display_roots = [settings.data.root]

    color_handler = logging.StreamHandler()
    color_handler.setFormatter(ColorFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(color_handler)

    warn_buffer = WarningBufferHandler()
    warn_buffer.setFormatter(ShortPathFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(warn_buffer)

    warn_log_path = Path.cwd() / "address-truth-warnings.log"
    file_handler = logging.FileHandler(warn_log_path, mode="w", encoding="utf-8")
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(ShortPathFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(file_handler)

    app: AddressTruthApp | None = None
    if args.command != "doctor":
        app = AddressTruthApp.create(settings)

    try:
        match args.command:
            case "build-truth":
                cmd_truth.build(app)
            case "tabs":
                cmd_truth.tabs(app, tab=args.tab, json_output=args.json)
            case "facilities":
                match args.facilities_command:
                    case "preview":
                        cmd_facilities.preview(
                            app,
                            args.file,
                            fmt=args.format,
                            brand=args.brand,
                            category=args.category,
                            source=args.source,
                            json_output=args.json,
                        )
                    case "commit":
                        cmd_facilities.commit(
                            app,
                            args.file,
                            fmt=args.format,
                            brand=args.brand,
                            category=args.category,
                            source=args.source,
                            seed_log=args.seed_log,
                            note=args.note,
                        )
                    case "rebuild":
                        cmd_facilities.rebuild(app)
            case "sweep":
                cmd_sweep.run(app, address_keys=args.address_keys, limit=args.limit)
            case "decide":
                cmd_review.decide(
                    app,
                    args.address_key,
                    args.decision,
                    place_id=args.place_id,
                    name=args.name,
                    note=args.note,
                )
            case "bulk-reject":
                cmd_review.bulk_reject(app, args.action)
            case "materialize":
                cmd_review.materialize(app)
            case "doctor":
                report = cmd_doctor.run(
                    settings,
                    validate_providers_online=getattr(args, "providers", False),
                )
                for line in report.checks:
                    print(line)
                if not report.ok:
                    raise SystemExit(1)
            case _:
                parser.error("Unknown command")
    except (MissingInputError, InvalidDecisionError) as exc:
        print(f"error: {exc}")
        raise SystemExit(1) from exc
    except ValueError as exc:
        # Unknown tab names and unsupported seed formats.
        print(f"error: {exc}")
        raise SystemExit(2) from exc
    finally:
        if app:
            app.close()
        file_handler.close()
        if warn_buffer.records:
            print("\n\033[33mWarnings/Errors summary:\033[0m")
            for line in warn_buffer.records:
                print(f" - {line}")
            print(f"\nFull warning log: {warn_log_path}")


if __name__ == "__main__":
    main()
