"""!
@brief Tests for the remove-if-present primitives.
@details Every primitive runs against in-memory collaborators so the
check/act/report behaviour, idempotence, and per-item failure isolation can be
asserted without touching the host.
"""
from __future__ import annotations

import pytest

from bundle_janitor import primitives
from bundle_janitor.outcomes import ErrorKind, OutcomeStatus
from bundle_janitor.processes import ProcessInstance
from bundle_janitor.programs import InstalledProgram

from conftest import FakeEnvironment, FakeFileSystem


ABSENT_CASES = [
    (primitives.uninstall_matching_programs, "AT Data Suite", "Program not installed: AT Data Suite"),
    (primitives.remove_environment_variable, "ATHome", "Environment variable not found: ATHome"),
    (primitives.remove_registry_key, r"HKLM\SOFTWARE\ATSuite", r"Registry key not found: HKLM\SOFTWARE\ATSuite"),
    (primitives.remove_folder, r"C:\ATData", r"Folder not found: C:\ATData"),
    (primitives.remove_file_with_env_path, r"C:\ATData\at.ini", r"File not found: C:\ATData\at.ini"),
    (primitives.kill_process, "ATServer", "Process not found: ATServer"),
    (primitives.stop_service, "ATServerService", "Service not found: ATServerService"),
    (primitives.run_exe_uninstaller, r"C:\mosquitto\Uninstall.exe", r"Uninstaller not found: C:\mosquitto\Uninstall.exe"),
]


def _mutating_calls(host) -> int:
    return sum(
        len(collaborator.calls)
        for collaborator in (
            host.programs,
            host.environment,
            host.registry,
            host.filesystem,
            host.processes,
            host.services,
            host.launcher,
        )
    )


@pytest.mark.parametrize("primitive, target, message", ABSENT_CASES)
def test_absent_target_logs_once_and_does_not_mutate(primitive, target, message, fake_host, human_log) -> None:
    """!
    @brief Missing targets produce one not-found line and no mutating call.
    """

    outcome = primitive(target, host=fake_host)

    assert outcome.status is OutcomeStatus.NOT_FOUND
    assert outcome.message == message
    assert _mutating_calls(fake_host) == 0
    assert len(human_log.matching(message)) == 1


def test_environment_variable_removed_scenario(fake_host, human_log) -> None:
    """!
    @brief ``ATDataPath`` is gone afterwards and logged exactly once.
    """

    fake_host.environment = FakeEnvironment({"ATDataPath": r"C:\data"})

    outcome = primitives.remove_environment_variable("ATDataPath", host=fake_host)

    assert outcome.status is OutcomeStatus.REMOVED
    assert fake_host.environment.exists("ATDataPath") is False
    assert len(human_log.matching("Environment variable removed: ATDataPath")) == 1


def test_missing_mosquitto_folder_scenario(fake_host, human_log) -> None:
    """!
    @brief An absent folder yields one log line and zero filesystem calls.
    """

    outcome = primitives.remove_folder(r"C:\Program Files\mosquitto", host=fake_host)

    assert outcome.status is OutcomeStatus.NOT_FOUND
    assert fake_host.filesystem.calls == []
    assert len(human_log.matching(r"Folder not found: C:\Program Files\mosquitto")) == 1


def test_primitives_are_idempotent(fake_host, human_log) -> None:
    """!
    @brief A second call after a successful removal reports the target absent.
    """

    fake_host.registry.keys = {r"HKLM\SOFTWARE\ATSuite", r"HKLM\SOFTWARE\ATSuite\Config"}
    fake_host.filesystem = FakeFileSystem(folders=[r"C:\ATData"], files=[r"C:\at.ini"])
    fake_host.services.statuses["mosquitto"] = "RUNNING"

    first = [
        primitives.remove_registry_key(r"HKLM\SOFTWARE\ATSuite", host=fake_host),
        primitives.remove_folder(r"C:\ATData", host=fake_host),
        primitives.remove_file_with_env_path(r"C:\at.ini", host=fake_host),
        primitives.stop_service("mosquitto", host=fake_host),
    ]
    second = [
        primitives.remove_registry_key(r"HKLM\SOFTWARE\ATSuite", host=fake_host),
        primitives.remove_folder(r"C:\ATData", host=fake_host),
        primitives.remove_file_with_env_path(r"C:\at.ini", host=fake_host),
        primitives.stop_service("mosquitto", host=fake_host),
    ]

    assert [outcome.status for outcome in first] == [OutcomeStatus.REMOVED] * 4
    assert [outcome.status for outcome in second] == [OutcomeStatus.NOT_FOUND] * 4
    assert fake_host.registry.keys == set()


def test_kill_process_attempts_every_instance(fake_host, human_log) -> None:
    """!
    @brief One un-killable instance does not prevent attempts on the others.
    """

    fake_host.processes.instances = [
        ProcessInstance("ATServer.exe", 100),
        ProcessInstance("ATServer.exe", 200),
        ProcessInstance("ATServer.exe", 300),
    ]
    fake_host.processes.unkillable[100] = PermissionError("Access is denied")

    outcome = primitives.kill_process("ATServer", host=fake_host)

    assert fake_host.processes.calls == [100, 200, 300]
    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.error_kind is ErrorKind.ACCESS_DENIED
    assert outcome.details["terminated"] == [200, 300]
    assert "100" in outcome.details["failures"]
    assert len(human_log.matching("Process terminated: ATServer")) == 2


def test_stop_service_already_stopped_does_not_stop(fake_host, human_log) -> None:
    """!
    @brief A stopped service only produces the already-stopped event.
    """

    fake_host.services.statuses["mosquitto"] = "STOPPED"

    outcome = primitives.stop_service("mosquitto", host=fake_host)

    assert fake_host.services.calls == []
    assert outcome.status is OutcomeStatus.NOT_FOUND
    assert len(human_log.matching("Service already stopped: mosquitto")) == 1
    assert human_log.matching("Service stopped:") == []


def test_stop_service_timeout_is_busy_and_requests_reboot(fake_host, human_log) -> None:
    """!
    @brief A service that will not settle is reported busy.
    """

    fake_host.services.statuses["ATServerService"] = "RUNNING"
    fake_host.services.error = TimeoutError("still STOP_PENDING")

    outcome = primitives.stop_service("ATServerService", host=fake_host)

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.error_kind is ErrorKind.RESOURCE_BUSY
    assert outcome.reboot_required is True


def test_uninstall_continues_after_failed_entry(fake_host, human_log) -> None:
    """!
    @brief Every match is attempted even when an earlier one fails.
    """

    suite = InstalledProgram("AT Data Suite", r"HKLM\...\{A}")
    suite_sdk = InstalledProgram("AT Data Suite SDK", r"HKLM\...\{B}")
    other = InstalledProgram("Unrelated Tool", r"HKLM\...\{C}")
    fake_host.programs.programs = [suite, suite_sdk, other]
    fake_host.programs.failing["AT Data Suite"] = OSError("msiexec exited with 1603")

    outcome = primitives.uninstall_matching_programs("at data suite", host=fake_host)

    assert fake_host.programs.calls == ["AT Data Suite", "AT Data Suite SDK"]
    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.error_kind is ErrorKind.PLATFORM_ERROR
    assert outcome.details["uninstalled"] == ["AT Data Suite SDK"]
    assert len(human_log.matching("Program uninstalled: AT Data Suite SDK")) == 1


def test_uninstall_records_reboot_codes(fake_host, human_log) -> None:
    """!
    @brief ``3010`` from msiexec counts as success with a pending restart.
    """

    fake_host.programs.programs = [InstalledProgram("Eclipse Mosquitto", r"HKLM\...\mosquitto")]
    fake_host.programs.return_codes["Eclipse Mosquitto"] = 3010

    outcome = primitives.uninstall_matching_programs("Mosquitto", host=fake_host)

    assert outcome.status is OutcomeStatus.REMOVED
    assert outcome.reboot_required is True
    assert fake_host.programs.find("Mosquitto") == []


def test_environment_access_denied_is_swallowed(fake_host, human_log) -> None:
    """!
    @brief Permission failures become a failed outcome rather than an exception.
    """

    fake_host.environment = FakeEnvironment({"ATHome": r"C:\AT"})
    fake_host.environment.error = PermissionError("[WinError 5] Access is denied")

    outcome = primitives.remove_environment_variable("ATHome", host=fake_host)

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.error_kind is ErrorKind.ACCESS_DENIED
    assert fake_host.environment.exists("ATHome")
    assert len(human_log.matching("Failed to remove environment variable ATHome")) == 1


def test_remove_file_expands_environment_tokens(fake_host, human_log, monkeypatch) -> None:
    """!
    @brief ``%SYSTEMROOT%`` resolves before the existence check.
    """

    monkeypatch.setenv("SYSTEMROOT", r"C:\Windows")
    fake_host.filesystem = FakeFileSystem(files=[r"C:\Windows\atsuite.ini"])

    outcome = primitives.remove_file_with_env_path(r"%SystemRoot%\atsuite.ini", host=fake_host)

    assert outcome.status is OutcomeStatus.REMOVED
    assert outcome.target == r"C:\Windows\atsuite.ini"
    assert fake_host.filesystem.calls == [("remove_file", r"C:\Windows\atsuite.ini")]


def test_remove_folder_relaxed_tolerates_locked_entries(fake_host, human_log) -> None:
    """!
    @brief Relaxed mode reports success and lists what stayed locked.
    """

    fake_host.filesystem = FakeFileSystem(folders=[r"C:\ProgramData\ATSuite"])
    fake_host.filesystem.locked = [r"C:\ProgramData\ATSuite\db.lock"]

    relaxed = primitives.remove_folder(r"C:\ProgramData\ATSuite", host=fake_host, relaxed=True)
    strict = primitives.remove_folder(r"C:\ProgramData\ATSuite", host=fake_host)

    assert relaxed.status is OutcomeStatus.REMOVED
    assert relaxed.details["locked"] == [r"C:\ProgramData\ATSuite\db.lock"]
    assert strict.status is OutcomeStatus.FAILED
    assert strict.error_kind is ErrorKind.RESOURCE_BUSY


def test_run_uninstaller_passes_silent_flag_and_keeps_exit_code(fake_host, human_log) -> None:
    """!
    @brief Non-zero exit codes are surfaced as warnings without failing the step.
    """

    path = r"C:\Program Files\mosquitto\Uninstall.exe"
    fake_host.filesystem = FakeFileSystem(files=[path])
    fake_host.launcher.return_code = 2

    outcome = primitives.run_exe_uninstaller(path, host=fake_host, silent_flag="/quiet")

    assert fake_host.launcher.calls == [(path, "/quiet")]
    assert outcome.status is OutcomeStatus.REMOVED
    assert outcome.details == {"exit_code": 2}
    assert any("WARNING" in line for line in human_log.matching("exit code 2"))


def test_dry_run_checks_but_never_acts(fake_host, human_log) -> None:
    """!
    @brief Present targets are reported as skipped in dry-run mode.
    """

    fake_host.environment = FakeEnvironment({"ATDataPath": r"C:\data"})
    fake_host.processes.instances = [ProcessInstance("mosquitto.exe", 42)]

    env_outcome = primitives.remove_environment_variable("ATDataPath", host=fake_host, dry_run=True)
    kill_outcome = primitives.kill_process("mosquitto", host=fake_host, dry_run=True)

    assert env_outcome.status is OutcomeStatus.SKIPPED
    assert kill_outcome.status is OutcomeStatus.SKIPPED
    assert _mutating_calls(fake_host) == 0
    assert fake_host.environment.exists("ATDataPath")


def test_query_failure_is_reported_not_raised(fake_host, human_log) -> None:
    """!
    @brief A failing existence check is still caught at the primitive boundary.
    """

    def broken_find(name):
        raise FileNotFoundError("tasklist.exe")

    fake_host.processes.find = broken_find

    outcome = primitives.kill_process("ATServer", host=fake_host)

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.error_kind is ErrorKind.PLATFORM_ERROR


def test_stop_service_waits_for_pending_stop(fake_host, human_log) -> None:
    """!
    @brief A service already stopping is waited on without a second stop request.
    """

    fake_host.services.statuses["ATDataLoggerService"] = "STOP_PENDING"

    outcome = primitives.stop_service("ATDataLoggerService", host=fake_host)

    assert fake_host.services.calls == []
    assert fake_host.services.waits == ["ATDataLoggerService"]
    assert outcome.status is OutcomeStatus.REMOVED
    assert len(human_log.matching("Service stopped: ATDataLoggerService")) == 1
