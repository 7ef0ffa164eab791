"""!
@brief Installed program catalog.
@details Enumerates the ``Uninstall`` registry roots (64-bit, WOW6432Node and
per-user) and resolves each entry into an unattended uninstall command.
Windows Installer products are removed with ``msiexec /x {code} /qn
/norestart``; other entries use ``QuietUninstallString`` when the vendor
publishes one and fall back to ``UninstallString``.
"""
from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from . import constants, exec_utils, logging_ext, registry_tools

_GUID_PATTERN = re.compile(r"^\{[0-9A-Fa-f]{8}(-[0-9A-Fa-f]{4}){3}-[0-9A-Fa-f]{12}\}$")


@dataclass(frozen=True)
class InstalledProgram:
    """!
    @brief One entry of the uninstall catalog.
    """

    display_name: str
    handle: str
    uninstall_string: str = ""
    quiet_uninstall_string: str = ""
    product_code: str | None = None
    windows_installer: bool = False


def split_command_line(text: str) -> List[str]:
    """!
    @brief Split an ``UninstallString`` into arguments.
    @details Vendors frequently leave the executable path unquoted even when it
    contains spaces; in that case everything up to the first ``.exe`` is taken
    as the program.
    """

    stripped = text.strip()
    if not stripped:
        return []
    if stripped.startswith('"'):
        closing = stripped.find('"', 1)
        if closing > 0:
            program = stripped[1:closing]
            return [program, *_split_arguments(stripped[closing + 1 :])]
    lowered = stripped.lower()
    index = lowered.find(".exe")
    if index >= 0:
        program = stripped[: index + 4]
        return [program, *_split_arguments(stripped[index + 4 :])]
    return _split_arguments(stripped)


def _split_arguments(text: str) -> List[str]:
    try:
        parts = shlex.split(text, posix=False)
    except ValueError:
        parts = text.split()
    return [part[1:-1] if len(part) > 1 and part[0] == part[-1] == '"' else part for part in parts]


def _entry_from_values(handle: str, key_name: str, values: dict) -> InstalledProgram | None:
    display_name = str(values.get("DisplayName") or "").strip()
    if not display_name:
        return None
    product_code = key_name if _GUID_PATTERN.match(key_name) else None
    return InstalledProgram(
        display_name=display_name,
        handle=handle,
        uninstall_string=str(values.get("UninstallString") or "").strip(),
        quiet_uninstall_string=str(values.get("QuietUninstallString") or "").strip(),
        product_code=product_code.upper() if product_code else None,
        windows_installer=bool(values.get("WindowsInstaller")),
    )


def _is_msiexec(command: Sequence[str]) -> bool:
    program = command[0].replace("/", "\\").rsplit("\\", 1)[-1].lower() if command else ""
    return program in ("msiexec", "msiexec.exe")


def build_uninstall_command(program: InstalledProgram) -> List[str]:
    """!
    @brief Compose the unattended uninstall command for ``program``.
    @throws ValueError When the entry publishes no usable uninstall command.
    """

    uninstall = program.uninstall_string
    if program.product_code and (program.windows_installer or "msiexec" in uninstall.lower()):
        return ["msiexec.exe", "/x", program.product_code, *constants.MSIEXEC_ADDITIONAL_ARGS]
    if program.quiet_uninstall_string:
        return split_command_line(program.quiet_uninstall_string)
    if uninstall:
        return split_command_line(uninstall)
    raise ValueError(f"No uninstall command registered for {program.display_name}")


class ProgramCatalog:
    """!
    @brief Collaborator for the uninstall-by-pattern primitive.
    @param roots Registry roots enumerated; overridable for tests.
    """

    def __init__(self, roots: Sequence[Tuple[int, str]] = constants.UNINSTALL_ROOTS) -> None:
        self._roots = tuple(roots)

    def entries(self) -> Iterable[InstalledProgram]:
        seen: set[Tuple[str, str]] = set()
        for hive, base in self._roots:
            try:
                subkeys = list(registry_tools.iter_subkeys(hive, base))
            except OSError:
                continue
            for key_name in subkeys:
                path = f"{base}\\{key_name}"
                entry = _entry_from_values(
                    registry_tools.compose_handle(hive, path),
                    key_name,
                    registry_tools.read_values(hive, path),
                )
                if entry is None:
                    continue
                identity = (entry.display_name.lower(), entry.product_code or entry.handle.lower())
                if identity in seen:
                    continue
                seen.add(identity)
                yield entry

    def find(self, pattern: str) -> List[InstalledProgram]:
        """!
        @brief Return every entry whose display name contains ``pattern``.
        @details Matching is a case-insensitive substring test.
        """

        needle = pattern.strip().lower()
        if not needle:
            raise ValueError("Program pattern must not be empty")
        return [entry for entry in self.entries() if needle in entry.display_name.lower()]

    def uninstall(self, program: InstalledProgram) -> int:
        """!
        @brief Run the uninstall command for ``program`` and wait for it.
        @returns The exit code: ``0``, a reboot-pending code, or for Windows
        Installer commands the unknown-product code.
        @throws exec_utils.CommandError For any other exit code.
        """

        command = build_uninstall_command(program)
        logging_ext.get_human_logger().debug("Uninstalling %s: %s", program.display_name, " ".join(command))
        result = exec_utils.run_command(
            command,
            event="program_uninstall",
            timeout=constants.UNINSTALL_TIMEOUT,
            extra={"display_name": program.display_name, "handle": program.handle},
        )
        if _is_msiexec(command):
            exec_utils.ensure_success(
                result,
                allowed={0, constants.MSI_UNKNOWN_PRODUCT_RETURN_CODE, *constants.MSI_REBOOT_RETURN_CODES},
                win32_exit_code=True,
            )
        else:
            exec_utils.ensure_success(result, allowed={0, *constants.MSI_REBOOT_RETURN_CODES})
        return result.returncode


__all__ = [
    "InstalledProgram",
    "ProgramCatalog",
    "build_uninstall_command",
    "split_command_line",
]
