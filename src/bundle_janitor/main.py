"""!
@brief Command-line entry point for Bundle Janitor.
@details With no arguments the built-in teardown sequence runs against the
local host. Options select dry-run mode, an alternative JSON step file, the
log directory, and whether failed steps change the exit status.
"""
from __future__ import annotations

import argparse
import logging
import os
import pathlib
import sys
from typing import Iterable, List, Optional

from . import constants, elevation, executor, fs_tools, logging_ext, sequence, version


def build_arg_parser() -> argparse.ArgumentParser:
    """!
    @brief Create the top-level argument parser.
    """

    parser = argparse.ArgumentParser(
        prog="bundle-janitor",
        description="Remove the AT data-acquisition suite and its Mosquitto broker from this host.",
    )
    metadata = version.build_info()
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"{metadata['version']} ({metadata['build']})",
    )
    parser.add_argument("--dry-run", action="store_true", help="Report what would be removed without changing anything.")
    parser.add_argument("--steps", metavar="FILE", help="Run the steps listed in a JSON file instead of the built-in sequence.")
    parser.add_argument("--plan", metavar="OUT", help="Write the resolved step list to a JSON file.")
    parser.add_argument("--list", action="store_true", help="Print the resolved steps and exit.")
    parser.add_argument("--logdir", metavar="DIR", help="Directory for the text and JSONL logs.")
    parser.add_argument(
        "--strict-exit",
        action="store_true",
        help="Exit with status 1 when any step failed (default: always 0).",
    )
    parser.add_argument("--no-elevate", action="store_true", help="Do not request administrative rights.")
    parser.add_argument("--json", action="store_true", help="Mirror structured events to stdout.")
    parser.add_argument("--quiet", action="store_true", help="Do not echo status lines to the console.")
    parser.add_argument("--verbose", action="store_true", help="Include debug detail in the logs.")
    return parser


def _resolve_log_directory(candidate: Optional[str]) -> pathlib.Path:
    if candidate:
        return pathlib.Path(candidate).expanduser().resolve()
    return fs_tools.get_default_log_directory().expanduser()


def _load_steps(args: argparse.Namespace) -> List[sequence.StepDescriptor]:
    if args.steps:
        return sequence.load_steps(args.steps)
    return sequence.build_sequence()


def _child_arguments(args: argparse.Namespace) -> List[str]:
    """!
    @brief Rebuild the command line for the elevated copy.
    @details Path options are made absolute so the child resolves them the
    same way, and ``--no-elevate`` stops it from relaunching again.
    """

    arguments: List[str] = []
    for option, value in (("--steps", args.steps), ("--plan", args.plan), ("--logdir", args.logdir)):
        if value:
            arguments.extend([option, str(pathlib.Path(value).expanduser().resolve())])
    for option, enabled in (
        ("--strict-exit", args.strict_exit),
        ("--json", args.json),
        ("--quiet", args.quiet),
        ("--verbose", args.verbose),
    ):
        if enabled:
            arguments.append(option)
    arguments.append("--no-elevate")
    return arguments


def _relaunch_elevated(args: argparse.Namespace) -> Optional[int]:
    """!
    @brief Relaunch elevated when needed.
    @returns The elevated run's exit code, or ``None`` when this process should
    carry on by itself.
    """

    if args.dry_run or args.no_elevate or not elevation.can_relaunch() or elevation.is_admin():
        return None
    return elevation.relaunch_as_admin(_child_arguments(args), directory=os.getcwd())


def main(argv: Optional[Iterable[str]] = None) -> int:
    """!
    @brief Entry point for the console script and ``python -m bundle_janitor``.
    @returns Process exit code.
    """

    arguments = list(argv) if argv is not None else None
    parser = build_arg_parser()
    args = parser.parse_args(arguments)

    try:
        steps = _load_steps(args)
    except sequence.SequenceError as exc:
        print(f"bundle-janitor: {exc}", file=sys.stderr)
        return constants.EXIT_USAGE

    if args.list:
        for index, step in enumerate(steps, start=1):
            print(f"{index:3d}. {step.describe()}")
        return constants.EXIT_OK

    child_exit = _relaunch_elevated(args)
    if child_exit is not None:
        return child_exit

    logdir = _resolve_log_directory(args.logdir)
    human_log, machine_log = logging_ext.setup_logging(
        logdir,
        console=None if args.quiet else sys.stdout,
        json_to_stdout=args.json,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )
    if not args.dry_run and not elevation.is_admin():
        human_log.warning("Not running elevated; machine-wide removals will likely be denied.")

    if args.plan:
        plan_path = pathlib.Path(args.plan).expanduser()
        plan_path.write_text(sequence.dump_steps(steps), encoding="utf-8")
        human_log.info("Wrote step list to %s", plan_path)

    machine_log.info(
        "startup",
        extra={
            "event": "startup",
            "data": {
                "dry_run": args.dry_run,
                "step_source": args.steps or "built-in",
                "strict_exit": args.strict_exit,
            },
        },
    )

    report = executor.execute_sequence(steps, dry_run=args.dry_run)
    exit_code = report.exit_code(strict=args.strict_exit)
    machine_log.info("run_complete", extra={"event": "run_complete", "exit_code": exit_code})
    return exit_code


if __name__ == "__main__":  # pragma: no cover - for manual execution
    sys.exit(main())
