"""!
@brief Shared subprocess execution helpers.
@details Wraps :func:`subprocess.run` so every Windows utility invoked during
teardown (``sc.exe``, ``taskkill.exe``, ``reg.exe``, ``msiexec.exe`` and vendor
uninstallers) records the same ``*_plan``/``*_result`` telemetry. Failures are
returned as data; :func:`ensure_success` converts a result into
:class:`CommandError` for callers that treat a non-zero exit as an error.
"""
from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass
from typing import Collection, Mapping, MutableMapping, Sequence

from . import logging_ext

MISSING_RETURN_CODE = 127


@dataclass
class CommandResult:
    """!
    @brief Outcome metadata returned by :func:`run_command`.
    @details ``timed_out`` is ``True`` when the command exceeded the requested
    timeout; ``error`` carries the launch failure text when the process never
    ran.
    """

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    duration: float
    timed_out: bool = False
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and not self.error


class CommandError(OSError):
    """!
    @brief Raised when a command exits with an unexpected status.
    @details Subclasses :class:`OSError` so the error classifier treats command
    failures like any other OS-level failure. ``winerror`` carries the exit code
    only for tools whose exit codes are Win32 error numbers (``sc.exe``,
    ``msiexec.exe``); it is ``None`` otherwise.
    """

    def __init__(
        self,
        result: CommandResult,
        message: str | None = None,
        *,
        win32_exit_code: bool = False,
    ) -> None:
        text = message or _describe(result)
        super().__init__(text)
        self.result = result
        self.winerror = result.returncode if win32_exit_code else None

    def __str__(self) -> str:
        return self.args[0]


def _describe(result: CommandResult) -> str:
    program = result.command[0] if result.command else "<empty>"
    if result.timed_out:
        return f"{program} timed out after {result.duration:.1f}s"
    if result.error:
        return f"{program} failed to start: {result.error}"
    detail = (result.stderr or result.stdout or "").strip()
    suffix = f": {detail}" if detail else ""
    return f"{program} exited with {result.returncode}{suffix}"


def run_command(
    command: Sequence[str],
    *,
    event: str,
    timeout: int | float | None = None,
    capture: bool = True,
    extra: Mapping[str, object] | None = None,
) -> CommandResult:
    """!
    @brief Execute ``command`` while emitting structured telemetry records.
    @details A ``<event>_plan`` record is written before invocation and a
    ``<event>_result`` record afterwards, or ``<event>_missing``,
    ``<event>_timeout`` or ``<event>_error`` when the process could not run to
    completion.
    @param command Command sequence to execute.
    @param event Base event identifier recorded in machine logs.
    @param timeout Optional timeout in seconds; ``None`` waits indefinitely.
    @param capture When ``False`` the child inherits the console streams, which
    vendor uninstallers need to show their own progress.
    @param extra Mapping merged into every machine log payload.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    command_list = [str(part) for part in command]

    def _emit(level: str, suffix: str, **payload: object) -> None:
        metadata: MutableMapping[str, object] = {
            "event": f"{event}_{suffix}",
            "command": command_list,
        }
        metadata.update(payload)
        if extra:
            metadata.update(extra)
        getattr(machine_logger, level)(f"{event}_{suffix}", extra=dict(metadata))

    _emit("info", "plan", timeout=timeout)

    start = time.monotonic()
    try:
        completed = subprocess.run(  # noqa: S603 - intentional command execution
            command_list,
            capture_output=capture,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        duration = time.monotonic() - start
        human_logger.debug("Command not found: %s", command_list[0])
        _emit("error", "missing", duration=duration, error=str(exc))
        return CommandResult(
            command=command_list,
            returncode=MISSING_RETURN_CODE,
            stdout="",
            stderr="",
            duration=duration,
            error=str(exc),
        )
    except subprocess.TimeoutExpired as exc:
        duration = time.monotonic() - start
        stdout = _as_text(exc.stdout)
        stderr = _as_text(exc.stderr)
        _emit("error", "timeout", duration=duration, stdout=stdout, stderr=stderr)
        return CommandResult(
            command=command_list,
            returncode=1,
            stdout=stdout,
            stderr=stderr,
            duration=duration,
            timed_out=True,
            error="timeout",
        )
    except OSError as exc:
        duration = time.monotonic() - start
        _emit("error", "error", duration=duration, error=str(exc))
        return CommandResult(
            command=command_list,
            returncode=1,
            stdout="",
            stderr="",
            duration=duration,
            error=str(exc),
        )

    duration = time.monotonic() - start
    stdout = completed.stdout or ""
    stderr = completed.stderr or ""
    _emit(
        "info",
        "result",
        return_code=completed.returncode,
        stdout=stdout,
        stderr=stderr,
        duration=duration,
    )
    return CommandResult(
        command=command_list,
        returncode=completed.returncode,
        stdout=stdout,
        stderr=stderr,
        duration=duration,
    )


def ensure_success(
    result: CommandResult,
    *,
    allowed: Collection[int] = (0,),
    win32_exit_code: bool = False,
) -> CommandResult:
    """!
    @brief Raise :class:`CommandError` unless ``result`` exited with an allowed code.
    @param win32_exit_code Set for tools whose exit code is a Win32 error, so
    the raised error exposes it as ``winerror``.
    """

    if result.timed_out:
        raise CommandError(result)
    if result.error:
        if result.returncode == MISSING_RETURN_CODE:
            raise FileNotFoundError(result.error)
        raise CommandError(result)
    if result.returncode not in allowed:
        raise CommandError(result, win32_exit_code=win32_exit_code)
    return result


def _as_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


__all__ = ["CommandError", "CommandResult", "ensure_success", "run_command"]
