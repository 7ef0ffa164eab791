"""!
@brief Step outcomes, error taxonomy, and the run accumulator.
@details Every primitive reports a :class:`StepOutcome`; the executor collects
them in a :class:`RunReport` whose summary feeds the end-of-run report and,
when requested, the process exit code.
"""
from __future__ import annotations

import enum
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Mapping

from . import constants, exec_utils


class OutcomeStatus(str, enum.Enum):
    REMOVED = "removed"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    SKIPPED = "skipped"


class ErrorKind(str, enum.Enum):
    """!
    @brief Failure classes surfaced by primitives.
    @details ``NOT_FOUND`` is deliberately absent: a missing target is a
    benign :attr:`OutcomeStatus.NOT_FOUND`, never an error.
    """

    ACCESS_DENIED = "access_denied"
    RESOURCE_BUSY = "resource_busy"
    PLATFORM_ERROR = "platform_error"


@dataclass
class StepOutcome:
    """!
    @brief Result of one primitive invocation.
    @details ``details`` holds per-item information for bulk operations
    (matched programs, process ids, skipped locked files) and free-form
    diagnostics such as uninstaller exit codes.
    """

    kind: str
    target: str
    status: OutcomeStatus
    message: str
    error_kind: ErrorKind | None = None
    details: Dict[str, object] = field(default_factory=dict)
    reboot_required: bool = False

    @property
    def failed(self) -> bool:
        return self.status is OutcomeStatus.FAILED

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "kind": self.kind,
            "target": self.target,
            "status": self.status.value,
            "message": self.message,
        }
        if self.error_kind is not None:
            payload["error_kind"] = self.error_kind.value
        if self.details:
            payload["details"] = dict(self.details)
        if self.reboot_required:
            payload["reboot_required"] = True
        return payload


def classify_error(exc: BaseException) -> ErrorKind:
    """!
    @brief Map an exception raised by a collaborator onto :class:`ErrorKind`.
    @details ``PermissionError`` and Win32 error 5 mean access denied. Sharing
    and lock violations, service-control refusals, timeouts, and
    ``BlockingIOError`` mean the resource is busy. Anything else is a platform
    error.
    """

    if isinstance(exc, exec_utils.CommandError) and exc.result.timed_out:
        return ErrorKind.RESOURCE_BUSY
    if isinstance(exc, (subprocess.TimeoutExpired, BlockingIOError, TimeoutError)):
        return ErrorKind.RESOURCE_BUSY
    if isinstance(exc, PermissionError):
        return ErrorKind.ACCESS_DENIED

    winerror = getattr(exc, "winerror", None)
    if winerror == constants.ERROR_ACCESS_DENIED:
        return ErrorKind.ACCESS_DENIED
    if winerror in constants.BUSY_WINERRORS:
        return ErrorKind.RESOURCE_BUSY
    return ErrorKind.PLATFORM_ERROR


@dataclass
class RunReport:
    """!
    @brief Ordered accumulator of step outcomes for one run.
    """

    outcomes: List[StepOutcome] = field(default_factory=list)
    dry_run: bool = False

    def record(self, outcome: StepOutcome) -> StepOutcome:
        self.outcomes.append(outcome)
        return outcome

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def has_failures(self) -> bool:
        return any(outcome.failed for outcome in self.outcomes)

    @property
    def reboot_required(self) -> bool:
        return any(outcome.reboot_required for outcome in self.outcomes)

    def summary(self) -> Mapping[str, int]:
        """!
        @brief Count outcomes per status.
        @details ``succeeded`` counts steps that removed something, ``not_found``
        steps whose target was already absent.
        """

        return {
            "total": len(self.outcomes),
            "succeeded": self.count(OutcomeStatus.REMOVED),
            "not_found": self.count(OutcomeStatus.NOT_FOUND),
            "failed": self.count(OutcomeStatus.FAILED),
            "skipped": self.count(OutcomeStatus.SKIPPED),
        }

    def exit_code(self, *, strict: bool = False) -> int:
        """!
        @brief Resolve the process exit status.
        @details Without ``strict`` the run always exits ``0``, matching
        unattended fire-and-forget deployments.
        """

        if strict and self.has_failures:
            return constants.EXIT_STEP_FAILURES
        return constants.EXIT_OK

    def to_dict(self) -> Dict[str, object]:
        return {
            "dry_run": self.dry_run,
            "summary": dict(self.summary()),
            "reboot_required": self.reboot_required,
            "steps": [outcome.to_dict() for outcome in self.outcomes],
        }


__all__ = ["ErrorKind", "OutcomeStatus", "RunReport", "StepOutcome", "classify_error"]
