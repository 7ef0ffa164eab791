"""!
@brief The eight remove-if-present teardown primitives.
@details Every primitive runs the same triad: check whether the target exists,
act when it does, and report the result. A missing target is logged once at
INFO level and returned as :attr:`OutcomeStatus.NOT_FOUND` without touching
the host. Failures of any class are caught here, logged, classified, and
returned; nothing propagates to the caller. Bulk primitives (program
uninstall, process kill) continue past a failing item and report ``failed``
when any item failed.

In dry-run mode the existence check still runs and a present target is
reported as :attr:`OutcomeStatus.SKIPPED`.
"""
from __future__ import annotations

from typing import Callable, Dict, List

from . import constants, fs_tools, logging_ext
from .host import Host
from .outcomes import ErrorKind, OutcomeStatus, StepOutcome, classify_error

UNINSTALL_PROGRAM = "uninstall-program"
REMOVE_ENV_VAR = "remove-env-var"
REMOVE_REGISTRY_KEY = "remove-registry-key"
REMOVE_FOLDER = "remove-folder"
REMOVE_FILE = "remove-file"
KILL_PROCESS = "kill-process"
STOP_SERVICE = "stop-service"
RUN_UNINSTALLER = "run-uninstaller"


def _not_found(kind: str, target: str, message: str) -> StepOutcome:
    logging_ext.get_human_logger().info(message)
    return StepOutcome(kind=kind, target=target, status=OutcomeStatus.NOT_FOUND, message=message)


def _removed(kind: str, target: str, message: str, **details: object) -> StepOutcome:
    logging_ext.get_human_logger().info(message)
    return StepOutcome(
        kind=kind,
        target=target,
        status=OutcomeStatus.REMOVED,
        message=message,
        details=dict(details),
    )


def _dry_run(kind: str, target: str, description: str) -> StepOutcome:
    message = f"Dry-run: would {description}"
    logging_ext.get_human_logger().info(message)
    return StepOutcome(kind=kind, target=target, status=OutcomeStatus.SKIPPED, message=message)


def _failed(kind: str, target: str, action: str, exc: BaseException) -> StepOutcome:
    error_kind = classify_error(exc)
    message = f"Failed to {action}: {exc}"
    logging_ext.get_human_logger().error("%s [%s]", message, error_kind.value)
    return StepOutcome(
        kind=kind,
        target=target,
        status=OutcomeStatus.FAILED,
        message=message,
        error_kind=error_kind,
    )


def uninstall_matching_programs(pattern: str, *, host: Host, dry_run: bool = False) -> StepOutcome:
    """!
    @brief Uninstall every catalog entry whose display name contains ``pattern``.
    @details Each match is uninstalled independently; a failing entry is
    logged and the remaining matches are still attempted.
    """

    human_logger = logging_ext.get_human_logger()
    kind = UNINSTALL_PROGRAM
    try:
        matches = host.programs.find(pattern)
    except Exception as exc:
        return _failed(kind, pattern, f"query installed programs matching {pattern}", exc)

    if not matches:
        return _not_found(kind, pattern, f"Program not installed: {pattern}")

    names = [program.display_name for program in matches]
    if dry_run:
        return _dry_run(kind, pattern, "uninstall " + ", ".join(names))

    uninstalled: List[str] = []
    failures: Dict[str, str] = {}
    error_kinds: List[ErrorKind] = []
    reboot_required = False
    for program in matches:
        try:
            return_code = host.programs.uninstall(program)
        except Exception as exc:
            error_kind = classify_error(exc)
            error_kinds.append(error_kind)
            failures[program.display_name] = str(exc)
            human_logger.error(
                "Failed to uninstall %s: %s [%s]", program.display_name, exc, error_kind.value
            )
            continue
        uninstalled.append(program.display_name)
        if return_code in constants.MSI_REBOOT_RETURN_CODES:
            reboot_required = True
            human_logger.info("Program uninstalled (restart required): %s", program.display_name)
        else:
            human_logger.info("Program uninstalled: %s", program.display_name)

    details: Dict[str, object] = {"matched": names, "uninstalled": uninstalled}
    if failures:
        details["failures"] = failures
        return StepOutcome(
            kind=kind,
            target=pattern,
            status=OutcomeStatus.FAILED,
            message=f"Uninstalled {len(uninstalled)} of {len(names)} programs matching {pattern}",
            error_kind=error_kinds[0],
            details=details,
            reboot_required=reboot_required,
        )
    return StepOutcome(
        kind=kind,
        target=pattern,
        status=OutcomeStatus.REMOVED,
        message=f"Uninstalled {len(uninstalled)} programs matching {pattern}",
        details=details,
        reboot_required=reboot_required,
    )


def remove_environment_variable(name: str, *, host: Host, dry_run: bool = False) -> StepOutcome:
    """!
    @brief Delete a machine-scope environment variable.
    @details Requires administrative rights; access denied is reported as a
    failed step.
    """

    kind = REMOVE_ENV_VAR
    try:
        if not host.environment.exists(name):
            return _not_found(kind, name, f"Environment variable not found: {name}")
        if dry_run:
            return _dry_run(kind, name, f"remove environment variable {name}")
        host.environment.remove(name)
    except Exception as exc:
        return _failed(kind, name, f"remove environment variable {name}", exc)
    return _removed(kind, name, f"Environment variable removed: {name}")


def remove_registry_key(path: str, *, host: Host, dry_run: bool = False) -> StepOutcome:
    """!
    @brief Delete a registry key together with all subkeys and values.
    """

    kind = REMOVE_REGISTRY_KEY
    try:
        if not host.registry.exists(path):
            return _not_found(kind, path, f"Registry key not found: {path}")
        if dry_run:
            return _dry_run(kind, path, f"remove registry key {path}")
        host.registry.remove(path)
    except Exception as exc:
        return _failed(kind, path, f"remove registry key {path}", exc)
    return _removed(kind, path, f"Registry key removed: {path}")


def remove_folder(path: str, *, host: Host, dry_run: bool = False, relaxed: bool = False) -> StepOutcome:
    """!
    @brief Delete a directory tree.
    @details ``path`` is used verbatim, no token expansion. Locked entries never
    abort the walk. With ``relaxed`` a partial removal counts as success and
    the leftovers are listed in ``details``; otherwise leftovers make the step
    fail as busy.
    """

    kind = REMOVE_FOLDER
    try:
        if not host.filesystem.folder_exists(path):
            return _not_found(kind, path, f"Folder not found: {path}")
        if dry_run:
            return _dry_run(kind, path, f"remove folder {path}")
        leftovers = host.filesystem.remove_folder(path)
    except Exception as exc:
        return _failed(kind, path, f"remove folder {path}", exc)

    if not leftovers:
        return _removed(kind, path, f"Folder removed: {path}")

    human_logger = logging_ext.get_human_logger()
    if relaxed:
        message = f"Folder removed with {len(leftovers)} locked entries left: {path}"
        human_logger.warning(message)
        return StepOutcome(
            kind=kind,
            target=path,
            status=OutcomeStatus.REMOVED,
            message=message,
            details={"locked": leftovers},
            reboot_required=True,
        )

    message = f"Folder only partially removed ({len(leftovers)} locked entries): {path}"
    human_logger.error(message)
    return StepOutcome(
        kind=kind,
        target=path,
        status=OutcomeStatus.FAILED,
        message=message,
        error_kind=ErrorKind.RESOURCE_BUSY,
        details={"locked": leftovers},
        reboot_required=True,
    )


def remove_file_with_env_path(path: str, *, host: Host, dry_run: bool = False) -> StepOutcome:
    """!
    @brief Expand ``%NAME%`` tokens in ``path`` and delete the resulting file.
    """

    kind = REMOVE_FILE
    expanded = fs_tools.expand_environment_tokens(path)
    try:
        if not host.filesystem.file_exists(expanded):
            return _not_found(kind, expanded, f"File not found: {expanded}")
        if dry_run:
            return _dry_run(kind, expanded, f"remove file {expanded}")
        host.filesystem.remove_file(expanded)
    except Exception as exc:
        return _failed(kind, expanded, f"remove file {expanded}", exc)
    return _removed(kind, expanded, f"File removed: {expanded}")


def kill_process(name: str, *, host: Host, dry_run: bool = False) -> StepOutcome:
    """!
    @brief Forcibly terminate every running instance of ``name``.
    @details Instances are terminated one at a time; a failure on one instance
    does not stop attempts on the others.
    """

    human_logger = logging_ext.get_human_logger()
    kind = KILL_PROCESS
    try:
        instances = host.processes.find(name)
    except Exception as exc:
        return _failed(kind, name, f"enumerate processes named {name}", exc)

    if not instances:
        return _not_found(kind, name, f"Process not found: {name}")
    if dry_run:
        pids = ", ".join(str(item.pid) for item in instances)
        return _dry_run(kind, name, f"terminate {name} (PID {pids})")

    terminated: List[int] = []
    failures: Dict[str, str] = {}
    error_kinds: List[ErrorKind] = []
    for instance in instances:
        try:
            host.processes.terminate(instance)
        except Exception as exc:
            error_kind = classify_error(exc)
            error_kinds.append(error_kind)
            failures[str(instance.pid)] = str(exc)
            human_logger.error(
                "Failed to terminate %s (PID %d): %s [%s]", name, instance.pid, exc, error_kind.value
            )
            continue
        terminated.append(instance.pid)
        human_logger.info("Process terminated: %s (PID %d)", name, instance.pid)

    details: Dict[str, object] = {"terminated": terminated}
    if failures:
        details["failures"] = failures
        return StepOutcome(
            kind=kind,
            target=name,
            status=OutcomeStatus.FAILED,
            message=f"Terminated {len(terminated)} of {len(instances)} instances of {name}",
            error_kind=error_kinds[0],
            details=details,
        )
    return StepOutcome(
        kind=kind,
        target=name,
        status=OutcomeStatus.REMOVED,
        message=f"Terminated {len(terminated)} instances of {name}",
        details=details,
    )


def stop_service(name: str, *, host: Host, dry_run: bool = False) -> StepOutcome:
    """!
    @brief Stop a service unless it is missing or already stopped.
    @details The Service Control Manager call lives on the injected
    controller as ``request_stop``. A service already in ``STOP_PENDING`` is
    only waited on.
    """

    kind = STOP_SERVICE
    try:
        status = host.services.query_status(name)
        if status is None:
            return _not_found(kind, name, f"Service not found: {name}")
        if status == "STOPPED":
            return _not_found(kind, name, f"Service already stopped: {name}")
        if dry_run:
            return _dry_run(kind, name, f"stop service {name} ({status})")
        if status == "STOP_PENDING":
            host.services.wait_until_stopped(name)
        else:
            host.services.request_stop(name)
    except Exception as exc:
        outcome = _failed(kind, name, f"stop service {name}", exc)
        outcome.reboot_required = outcome.error_kind is ErrorKind.RESOURCE_BUSY
        return outcome
    return _removed(kind, name, f"Service stopped: {name}", previous_status=status)


def run_exe_uninstaller(
    path: str,
    *,
    host: Host,
    dry_run: bool = False,
    silent_flag: str = constants.DEFAULT_SILENT_FLAG,
) -> StepOutcome:
    """!
    @brief Run a vendor uninstaller silently and wait for it to exit.
    @details A non-zero exit code is logged as a warning and kept in
    ``details`` but does not fail the step.
    """

    kind = RUN_UNINSTALLER
    try:
        if not host.filesystem.file_exists(path):
            return _not_found(kind, path, f"Uninstaller not found: {path}")
        if dry_run:
            return _dry_run(kind, path, f"run {path} {silent_flag}".rstrip())
        return_code = host.launcher.launch(path, silent_flag)
    except Exception as exc:
        return _failed(kind, path, f"run uninstaller {path}", exc)

    if return_code != 0:
        message = f"Uninstaller finished with exit code {return_code}: {path}"
        logging_ext.get_human_logger().warning(message)
        return StepOutcome(
            kind=kind,
            target=path,
            status=OutcomeStatus.REMOVED,
            message=message,
            details={"exit_code": return_code},
        )
    return _removed(kind, path, f"Uninstaller finished: {path}", exit_code=return_code)


Primitive = Callable[..., StepOutcome]

PRIMITIVES: Dict[str, Primitive] = {
    UNINSTALL_PROGRAM: uninstall_matching_programs,
    REMOVE_ENV_VAR: remove_environment_variable,
    REMOVE_REGISTRY_KEY: remove_registry_key,
    REMOVE_FOLDER: remove_folder,
    REMOVE_FILE: remove_file_with_env_path,
    KILL_PROCESS: kill_process,
    STOP_SERVICE: stop_service,
    RUN_UNINSTALLER: run_exe_uninstaller,
}
"""!
@brief Step kind to primitive dispatch table used by the executor.
"""

PRIMITIVE_OPTIONS: Dict[str, frozenset[str]] = {
    REMOVE_FOLDER: frozenset({"relaxed"}),
    RUN_UNINSTALLER: frozenset({"silent_flag"}),
}
"""!
@brief Keyword options each primitive accepts from a step descriptor.
"""


__all__ = [
    "KILL_PROCESS",
    "PRIMITIVES",
    "PRIMITIVE_OPTIONS",
    "REMOVE_ENV_VAR",
    "REMOVE_FILE",
    "REMOVE_FOLDER",
    "REMOVE_REGISTRY_KEY",
    "RUN_UNINSTALLER",
    "STOP_SERVICE",
    "UNINSTALL_PROGRAM",
    "kill_process",
    "remove_environment_variable",
    "remove_file_with_env_path",
    "remove_folder",
    "remove_registry_key",
    "run_exe_uninstaller",
    "stop_service",
    "uninstall_matching_programs",
]
