"""Command-line entrypoint for representation sharing statistics."""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import NoReturn, TextIO

from rep_stats.backends import build_backend_registry, ensure_supported
from rep_stats.cancel import (
    CancellationToken,
    install_signal_handlers,
    restore_signal_handlers,
)
from rep_stats.config import CliOverrides, StatsConfig, load_effective_config
from rep_stats.errors import (
    CorruptionAssertion,
    ExperimentalGateError,
    RepStatsError,
    RunLogError,
    UsageError,
)
from rep_stats.logging import JsonlRunLogger, RunEvent, new_run_id, run_metadata, utc_timestamp
from rep_stats.stats import (
    MismatchPolicy,
    ScanSummary,
    TallySet,
    print_report,
    summarize,
    walk_revisions,
)

__version__ = "0.1.0"

PROG = "rep-sharing-stats"
EXPERIMENTAL_ENV_VAR = "REP_SHARING_STATS_IS_EXPERIMENTAL"
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        raise UsageError(message)


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for a statistics run."""
    parser = _ArgumentParser(
        prog=PROG,
        description=(
            "Prints the reference count statistics for representations in an FSFS "
            "repository. At least one of the options --data/--prop/--both must be "
            "specified."
        ),
    )
    parser.add_argument("repos_path", metavar="REPOS_PATH")
    parser.add_argument("--data", action="store_true", help="display data reps stats")
    parser.add_argument("--prop", action="store_true", help="display prop reps stats")
    parser.add_argument(
        "--both", action="store_true", help="display combined (data+prop) reps stats"
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=None,
        help="no progress (only errors) to stderr",
    )
    parser.add_argument("--config", required=False, default=None)
    parser.add_argument("--audit-log", required=False, default=None)
    parser.add_argument(
        "--on-checksum-mismatch",
        choices=tuple(policy.value for policy in MismatchPolicy),
        required=False,
        default=None,
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def experimental_gate_enabled(environ: Mapping[str, str]) -> bool:
    """Return True when the experimental environment gate is set to a truthy value."""
    return environ.get(EXPERIMENTAL_ENV_VAR, "").strip().lower() in {"1", "true", "yes"}


def check_experimental(environ: Mapping[str, str]) -> None:
    """Raise ExperimentalGateError unless the experimental gate is set."""
    if not experimental_gate_enabled(environ):
        raise ExperimentalGateError(
            "This code is experimental and should not be used on live data."
        )


def parse_args(parser: argparse.ArgumentParser, argv: list[str] | None) -> argparse.Namespace:
    """Parse and validate arguments, raising UsageError on bad input."""
    args = parser.parse_args(argv)
    if not (args.data or args.prop or args.both):
        parser.error("at least one of --data/--prop/--both must be specified")
    return args


class StatsRun:
    """One scan-and-report pass over a store."""

    def __init__(
        self,
        store_location: Path,
        config: StatsConfig,
        *,
        data: bool,
        prop: bool,
        cancel: CancellationToken | None = None,
    ) -> None:
        self._store_location = store_location
        self._config = config
        self._cancel = cancel or CancellationToken()
        self._tallies = TallySet.for_categories(
            data=data, prop=prop, policy=config.scan.on_checksum_mismatch
        )
        self._logger = (
            JsonlRunLogger(config.audit.path) if config.audit.path is not None else None
        )
        self._run_id = new_run_id()
        self._store_format: str | None = None
        self._scan: ScanSummary | None = None

    def execute(self, out_stream: TextIO, err_stream: TextIO) -> int:
        """Scan, print the report, and return the process exit code."""
        progress = None if self._config.scan.quiet else err_stream
        try:
            registry = build_backend_registry()
            store = registry.open(self._store_location)
            ensure_supported(store, self._config.backend.supported_formats)
            self._store_format = store.store_format()
            self._scan = walk_revisions(store, self._tallies, self._cancel, progress=progress)
            print_report(self._tallies, out_stream, self._cancel)
        except RepStatsError as error:
            err_stream.write(f"{PROG}: {error.message}\n")
            self._log(err_stream, ok=False, error_code=error.code)
            return EXIT_FAILURE
        except CorruptionAssertion as error:
            err_stream.write(f"{PROG}: assertion failed: {error}\n")
            self._log(err_stream, ok=False, error_code=CorruptionAssertion.code)
            return EXIT_FAILURE

        for failure in self._tallies.failures.values():
            err_stream.write(f"{PROG}: {failure.message}\n")
        if self._tallies.failures:
            self._log(err_stream, ok=False, error_code="STORE_INCONSISTENCY")
            return EXIT_FAILURE
        if not self._log(err_stream, ok=True, error_code=None):
            return EXIT_FAILURE
        return EXIT_SUCCESS

    def _log(self, err_stream: TextIO, ok: bool, error_code: str | None) -> bool:
        if self._logger is None:
            return True
        event = RunEvent(
            timestamp=utc_timestamp(),
            run_id=self._run_id,
            store=str(self._store_location),
            store_format=self._store_format,
            ok=ok,
            error_code=error_code,
            metadata={
                **run_metadata(
                    categories=self._tallies.requested(),
                    scan=self._scan,
                    summaries=summarize(self._tallies) if self._scan is not None else [],
                    failed_categories=tuple(sorted(self._tallies.failures)),
                ),
                "config": self._config.to_public_dict(),
            },
        )
        try:
            self._logger.append(event)
        except RunLogError as error:
            err_stream.write(f"{PROG}: {error.message}\n")
            return False
        return True


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for the rep-sharing-stats process."""
    try:
        exit_code = _sub_main(argv, sys.stdout, sys.stderr, os.environ)
    finally:
        try:
            sys.stdout.flush()
        except OSError as error:
            sys.stderr.write(f"{PROG}: Write error: {error}\n")
            exit_code = EXIT_FAILURE
    return exit_code


def _sub_main(
    argv: list[str] | None,
    out_stream: TextIO,
    err_stream: TextIO,
    environ: Mapping[str, str],
) -> int:
    try:
        check_experimental(environ)
    except ExperimentalGateError as error:
        err_stream.write(f"{PROG}: {error.message}\n")
        return EXIT_FAILURE
    parser = build_arg_parser()
    try:
        args = parse_args(parser, argv)
    except UsageError as error:
        parser.print_usage(err_stream)
        err_stream.write(f"{PROG}: error: {error.message}\n")
        return EXIT_USAGE
    overrides = CliOverrides(
        quiet=args.quiet,
        on_checksum_mismatch=(
            MismatchPolicy(args.on_checksum_mismatch)
            if args.on_checksum_mismatch is not None
            else None
        ),
        audit_path=Path(args.audit_log) if args.audit_log is not None else None,
    )
    try:
        config = load_effective_config(
            config_path=Path(args.config) if args.config is not None else None,
            overrides=overrides,
        )
    except ValueError as error:
        err_stream.write(f"{PROG}: {error}\n")
        return EXIT_FAILURE

    token = CancellationToken()
    previous_handlers = install_signal_handlers(token)
    try:
        run = StatsRun(
            Path(args.repos_path),
            config,
            data=args.data or args.both,
            prop=args.prop or args.both,
            cancel=token,
        )
        return run.execute(out_stream, err_stream)
    finally:
        restore_signal_handlers(previous_handlers)


if __name__ == "__main__":
    raise SystemExit(main())
