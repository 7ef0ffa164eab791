"""!
@brief Machine-scope environment variable store.
@details Machine variables live as values under
``HKLM\\SYSTEM\\CurrentControlSet\\Control\\Session Manager\\Environment``.
Removing one deletes the value and broadcasts ``WM_SETTINGCHANGE`` so newly
started processes stop inheriting it.
"""
from __future__ import annotations

import ctypes
import os

from . import constants, logging_ext, registry_tools

HWND_BROADCAST = 0xFFFF
WM_SETTINGCHANGE = 0x001A
SMTO_ABORTIFHUNG = 0x0002


def broadcast_environment_change(timeout_ms: int = 5000) -> bool:
    """!
    @brief Notify top-level windows that the environment block changed.
    @returns ``True`` when the broadcast was delivered.
    """

    if os.name != "nt":  # pragma: no cover - Windows behaviour only
        return False
    try:
        user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        result = ctypes.c_ulong()
        delivered = user32.SendMessageTimeoutW(
            HWND_BROADCAST,
            WM_SETTINGCHANGE,
            0,
            "Environment",
            SMTO_ABORTIFHUNG,
            timeout_ms,
            ctypes.byref(result),
        )
    except (AttributeError, OSError) as exc:  # pragma: no cover - depends on host
        logging_ext.get_human_logger().debug("Environment broadcast failed: %s", exc)
        return False
    return bool(delivered)


class EnvironmentStore:
    """!
    @brief Collaborator for the remove-environment-variable primitive.
    """

    def __init__(self, root: int = constants.HKLM, path: str = constants.MACHINE_ENVIRONMENT_KEY) -> None:
        self._root = root
        self._path = path

    def exists(self, name: str) -> bool:
        values = registry_tools.read_values(self._root, self._path)
        wanted = name.lower()
        return any(key.lower() == wanted for key in values)

    def remove(self, name: str) -> None:
        """!
        @brief Delete ``name`` from the machine environment.
        @throws PermissionError Without administrative rights.
        @throws FileNotFoundError When the value vanished in the meantime.
        """

        registry_tools.delete_value(self._root, self._path, name)
        broadcast_environment_change()


__all__ = ["EnvironmentStore", "broadcast_environment_change"]
