"""!
@brief Tests for :mod:`bundle_janitor.outcomes`.
"""
from __future__ import annotations

import subprocess

import pytest

from bundle_janitor import constants, exec_utils
from bundle_janitor.outcomes import ErrorKind, OutcomeStatus, RunReport, StepOutcome, classify_error


def _command_error(
    returncode: int, *, timed_out: bool = False, win32: bool = True, program: str = "sc.exe"
) -> exec_utils.CommandError:
    result = exec_utils.CommandResult(
        command=[program, "stop", "mosquitto"],
        returncode=returncode,
        stdout="",
        stderr="",
        duration=0.0,
        timed_out=timed_out,
        error="timeout" if timed_out else None,
    )
    return exec_utils.CommandError(result, win32_exit_code=win32)


@pytest.mark.parametrize(
    "exc, expected",
    [
        (PermissionError("denied"), ErrorKind.ACCESS_DENIED),
        (_command_error(5), ErrorKind.ACCESS_DENIED),
        (_command_error(1051), ErrorKind.RESOURCE_BUSY),
        (_command_error(1618, program="msiexec.exe"), ErrorKind.RESOURCE_BUSY),
        (_command_error(5, win32=False, program="Uninstall.exe"), ErrorKind.PLATFORM_ERROR),
        (_command_error(32, win32=False, program="Uninstall.exe"), ErrorKind.PLATFORM_ERROR),
        (_command_error(1, timed_out=True), ErrorKind.RESOURCE_BUSY),
        (subprocess.TimeoutExpired(["x"], 5), ErrorKind.RESOURCE_BUSY),
        (TimeoutError("slow"), ErrorKind.RESOURCE_BUSY),
        (FileNotFoundError("missing"), ErrorKind.PLATFORM_ERROR),
        (ValueError("bad"), ErrorKind.PLATFORM_ERROR),
    ],
)
def test_classify_error(exc, expected) -> None:
    """!
    @brief Exceptions map onto the access-denied/busy/platform taxonomy.
    """

    assert classify_error(exc) is expected


def _outcome(status: OutcomeStatus, *, reboot: bool = False) -> StepOutcome:
    return StepOutcome(kind="remove-folder", target="C:\\x", status=status, message="", reboot_required=reboot)


def test_run_report_summary_and_exit_codes() -> None:
    """!
    @brief The summary counts each status and strict mode surfaces failures.
    """

    report = RunReport()
    for status in (
        OutcomeStatus.REMOVED,
        OutcomeStatus.REMOVED,
        OutcomeStatus.NOT_FOUND,
        OutcomeStatus.FAILED,
        OutcomeStatus.SKIPPED,
    ):
        report.record(_outcome(status))

    assert report.summary() == {"total": 5, "succeeded": 2, "not_found": 1, "failed": 1, "skipped": 1}
    assert report.exit_code() == constants.EXIT_OK
    assert report.exit_code(strict=True) == constants.EXIT_STEP_FAILURES


def test_run_report_without_failures_exits_zero_in_strict_mode() -> None:
    report = RunReport()
    report.record(_outcome(OutcomeStatus.NOT_FOUND))
    report.record(_outcome(OutcomeStatus.REMOVED, reboot=True))

    assert report.exit_code(strict=True) == constants.EXIT_OK
    assert report.reboot_required is True
    assert report.to_dict()["steps"][1]["reboot_required"] is True
