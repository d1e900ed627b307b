import argparse
import logging
import sys
from pathlib import Path

import http.client as http_client

from .config import RetrievalMode, load_job
from .core.coordinator import MigrationCoordinator
from .errors import JobAbortedError
from .prompts import ConsolePrompter, StaticPrompter


def configure_logging(debug: bool, log_file: Path | None) -> None:
    level = logging.DEBUG if debug else logging.INFO
    handlers = []
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    else:
        handlers.append(logging.StreamHandler(sys.stderr))

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        handlers=handlers,
    )

    if debug:
        http_client.HTTPConnection.debuglevel = 1  # type: ignore[attr-defined]
        for noisy in ("urllib3", "requests"):
            logging.getLogger(noisy).setLevel(logging.DEBUG)
            logging.getLogger(noisy).propagate = True


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="relmigrate",
                                description="Migrate related records between a CSV folder and a record service")
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a migration job")
    run.add_argument("job", type=Path, help="Path to the JSON job file")
    run.add_argument("--base-path", type=Path, default=None,
                     help="Folder holding the CSV files (default: the job file's folder)")
    run.add_argument("--validate-only", action="store_true",
                     help="Validate and repair the source CSV files, then stop.")
    run.add_argument("--yes", action="store_true",
                     help="Answer every continue/abort prompt with 'continue'.")
    run.add_argument("--iterative", action="store_true",
                     help="Repeat the backward retrieval passes until no new records appear.")
    run.add_argument("--debug", action="store_true",
                     help="Enable verbose debug logging (incl. HTTP wire logs).")
    run.add_argument("--log-file", type=Path, default=None,
                     help="Write logs to this file instead of stderr.")
    return p


def main() -> None:
    args = build_parser().parse_args()
    configure_logging(args.debug, args.log_file)

    log = logging.getLogger("cli")
    log.debug("Parsed args: %s", vars(args))

    try:
        settings = load_job(args.job, args.base_path)
        if args.validate_only:
            settings.validate_csv_files_only = True
        if args.iterative:
            settings.retrieval_mode = RetrievalMode.ITERATIVE

        prompter = StaticPrompter(True) if args.yes else ConsolePrompter()
        MigrationCoordinator(settings, prompter=prompter).run()
        log.info("Done.")
    except JobAbortedError as err:
        log.error("Job aborted: %s", err)
        sys.exit(2)
    except KeyboardInterrupt:
        log.warning("Interrupted by user.")
        sys.exit(130)
    except Exception:
        log.exception("Unhandled error during execution")
        sys.exit(1)


if __name__ == "__main__":
    main()
