"""!
@brief Service control collaborator.
@details Wraps ``sc.exe`` to query status, request stops, and poll until a
service settles. A stop refused because dependent services are running is
retried after stopping the dependents first, which is what a forced stop
means for the Service Control Manager.
"""
from __future__ import annotations

import time
from typing import Callable, List

from . import constants, exec_utils, logging_ext


def _parse_service_state(output: str) -> str:
    """!
    @brief Extract the status token from ``sc query`` output.
    @returns Uppercase status (``RUNNING``, ``STOPPED``...) or ``""``.
    """

    for line in output.splitlines():
        stripped = line.strip()
        if stripped.upper().startswith("STATE"):
            _, _, remainder = stripped.partition(":")
            tokens = remainder.strip().split()
            if tokens:
                return tokens[-1].upper()
    return ""


def _parse_dependents(output: str) -> List[str]:
    names: List[str] = []
    for line in output.splitlines():
        key, _, value = line.strip().partition(":")
        if key.strip().upper() == "SERVICE_NAME" and value.strip():
            names.append(value.strip())
    return names


class ServiceController:
    """!
    @brief Collaborator for the stop-service primitive.
    @param sleep Injected for tests so polling does not wait in real time.
    """

    def __init__(
        self,
        *,
        stop_timeout: float = constants.SERVICE_STOP_TIMEOUT,
        poll_interval: float = constants.SERVICE_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._stop_timeout = stop_timeout
        self._poll_interval = poll_interval
        self._sleep = sleep

    def query_status(self, name: str) -> str | None:
        """!
        @brief Return the service status, or ``None`` when no such service exists.
        """

        result = exec_utils.run_command(
            ["sc.exe", "query", name],
            event="service_query",
            timeout=constants.COMMAND_TIMEOUT,
            extra={"service": name},
        )
        if result.returncode == constants.SERVICE_DOES_NOT_EXIST:
            return None
        exec_utils.ensure_success(result, win32_exit_code=True)
        return _parse_service_state(result.stdout) or "UNKNOWN"

    def request_stop(self, name: str) -> None:
        """!
        @brief Stop ``name`` and wait until the SCM reports it stopped.
        @throws exec_utils.CommandError When ``sc.exe`` refuses the stop; the
        exit code is the Win32 error.
        @throws TimeoutError When the service does not settle in time.
        """

        result = self._send_stop(name)
        if result.returncode == constants.ERROR_DEPENDENT_SERVICES_RUNNING:
            for dependent in self.dependents(name):
                logging_ext.get_human_logger().info("Stopping dependent service %s", dependent)
                self._send_stop(dependent)
            result = self._send_stop(name)

        if result.returncode == constants.SERVICE_NOT_ACTIVE:
            return
        exec_utils.ensure_success(result, win32_exit_code=True)
        self.wait_until_stopped(name)

    def dependents(self, name: str) -> List[str]:
        result = exec_utils.run_command(
            ["sc.exe", "enumdepend", name],
            event="service_enumdepend",
            timeout=constants.COMMAND_TIMEOUT,
            extra={"service": name},
        )
        if not result.succeeded:
            return []
        return _parse_dependents(result.stdout)

    def _send_stop(self, name: str) -> exec_utils.CommandResult:
        return exec_utils.run_command(
            ["sc.exe", "stop", name],
            event="service_stop",
            timeout=constants.COMMAND_TIMEOUT,
            extra={"service": name},
        )

    def wait_until_stopped(self, name: str) -> None:
        """!
        @brief Poll until ``name`` is stopped or gone.
        @throws TimeoutError When the service does not settle in time.
        """

        deadline = time.monotonic() + self._stop_timeout
        while True:
            status = self.query_status(name)
            if status in (None, "STOPPED"):
                return
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Service {name} still {status} after {self._stop_timeout:.0f}s")
            self._sleep(self._poll_interval)


__all__ = ["ServiceController"]
