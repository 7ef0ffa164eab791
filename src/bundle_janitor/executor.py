"""!
@brief Run a teardown sequence step by step.
@details The executor interprets :class:`~bundle_janitor.sequence.StepDescriptor`
records in order, dispatching each to its primitive and recording the outcome
in a :class:`~bundle_janitor.outcomes.RunReport`. Steps never branch on earlier
results and a failing step never stops the run. The run always ends with a
summary line and the restart advisory.
"""
from __future__ import annotations

from typing import Iterable

from . import constants, logging_ext, primitives
from .host import Host, default_host
from .outcomes import ErrorKind, OutcomeStatus, RunReport, StepOutcome
from .sequence import StepDescriptor


def execute_step(step: StepDescriptor, *, host: Host, dry_run: bool = False) -> StepOutcome:
    """!
    @brief Dispatch one descriptor to its primitive.
    @details Primitives report their own failures; this wrapper only guards
    against unexpected exceptions escaping one, turning them into a failed
    outcome so the sequence continues.
    """

    primitive = primitives.PRIMITIVES[step.kind]
    try:
        return primitive(step.target, host=host, dry_run=dry_run, **dict(step.options))
    except Exception as exc:
        logging_ext.get_human_logger().exception("Unexpected error in %s %s", step.kind, step.target)
        return StepOutcome(
            kind=step.kind,
            target=step.target,
            status=OutcomeStatus.FAILED,
            message=f"Unexpected error: {exc}",
            error_kind=ErrorKind.PLATFORM_ERROR,
        )


def execute_sequence(
    steps: Iterable[StepDescriptor],
    *,
    host: Host | None = None,
    dry_run: bool = False,
) -> RunReport:
    """!
    @brief Execute ``steps`` sequentially and return the accumulated report.
    @param steps Validated descriptors, see :func:`sequence.build_sequence`.
    @param host Collaborators; defaults to the real Windows implementations.
    @param dry_run Check targets and report, without mutating anything.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    step_list = list(steps)
    active_host = host if host is not None else default_host()
    report = RunReport(dry_run=dry_run)

    machine_logger.info(
        "sequence_start",
        extra={"event": "sequence_start", "step_count": len(step_list), "dry_run": dry_run},
    )
    if dry_run:
        human_logger.info("Running in dry-run mode; no changes will be made.")

    total = len(step_list)
    for index, step in enumerate(step_list, start=1):
        human_logger.debug("Step %d/%d: %s", index, total, step.describe())
        machine_logger.info(
            "step_start",
            extra={"event": "step_start", "index": index, "step": step.to_dict()},
        )
        outcome = report.record(execute_step(step, host=active_host, dry_run=dry_run))
        level = "warning" if outcome.failed else "info"
        getattr(machine_logger, level)(
            "step_result",
            extra={"event": "step_result", "index": index, **outcome.to_dict()},
        )

    summary = report.summary()
    human_logger.info(
        "Summary: %d succeeded, %d not found, %d failed, %d skipped",
        summary["succeeded"],
        summary["not_found"],
        summary["failed"],
        summary["skipped"],
    )
    machine_logger.info(
        "sequence_complete",
        extra={
            "event": "sequence_complete",
            "report": report.to_dict(),
        },
    )
    if not dry_run:
        human_logger.info(constants.RESTART_ADVISORY)
    return report


__all__ = ["execute_sequence", "execute_step"]
