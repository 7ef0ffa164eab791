"""!
@brief Process table collaborator.
@details Running instances are enumerated with ``tasklist`` filtered on the
image name and terminated one PID at a time with ``taskkill /F`` so a single
protected instance cannot hide the others.
"""
from __future__ import annotations

import csv
from dataclasses import dataclass
from typing import List

from . import constants, exec_utils


@dataclass(frozen=True)
class ProcessInstance:
    name: str
    pid: int


def image_name(name: str) -> str:
    """!
    @brief Normalise a process name to its image form (``mosquitto.exe``).
    """

    cleaned = str(name).strip()
    if not cleaned.lower().endswith(".exe"):
        cleaned = f"{cleaned}.exe"
    return cleaned


def parse_tasklist_csv(output: str) -> List[ProcessInstance]:
    """!
    @brief Parse ``tasklist /FO CSV /NH`` output.
    @details Informational lines such as ``INFO: No tasks are running ...`` do
    not start with a quote and are ignored, as are rows whose PID column is
    not numeric (header rows when ``/NH`` was not honoured).
    """

    rows = [line.strip().lstrip("\ufeff") for line in output.splitlines()]
    instances: List[ProcessInstance] = []
    for row in csv.reader(line for line in rows if line.startswith('"')):
        if len(row) < 2:
            continue
        try:
            pid = int(row[1].strip())
        except ValueError:
            continue
        instances.append(ProcessInstance(name=row[0].strip(), pid=pid))
    return instances


class ProcessTable:
    """!
    @brief Collaborator for the kill-process primitive.
    """

    def find(self, name: str) -> List[ProcessInstance]:
        image = image_name(name)
        result = exec_utils.run_command(
            ["tasklist.exe", "/FI", f"IMAGENAME eq {image}", "/FO", "CSV", "/NH"],
            event="process_query",
            timeout=constants.COMMAND_TIMEOUT,
            extra={"process_name": image},
        )
        exec_utils.ensure_success(result)
        wanted = image.lower()
        return [item for item in parse_tasklist_csv(result.stdout) if item.name.lower() == wanted]

    def terminate(self, instance: ProcessInstance) -> None:
        result = exec_utils.run_command(
            ["taskkill.exe", "/PID", str(instance.pid), "/F"],
            event="process_terminate",
            timeout=constants.COMMAND_TIMEOUT,
            extra={"process_name": instance.name, "pid": instance.pid},
        )
        try:
            exec_utils.ensure_success(result)
        except exec_utils.CommandError as exc:
            if "access is denied" in (result.stderr + result.stdout).lower():
                raise PermissionError(str(exc)) from exc
            raise


__all__ = ["ProcessInstance", "ProcessTable", "image_name", "parse_tasklist_csv"]
