"""!
@brief Launcher for vendor uninstaller executables.
"""
from __future__ import annotations

from . import exec_utils


class UninstallerLauncher:
    """!
    @brief Collaborator for the run-uninstaller primitive.
    @details The child inherits the console and is waited on without a
    timeout; vendor uninstallers may legitimately run for a long time.
    """

    def launch(self, path: str, silent_flag: str) -> int:
        command = [path, silent_flag] if silent_flag else [path]
        result = exec_utils.run_command(
            command,
            event="uninstaller_run",
            timeout=None,
            capture=False,
            extra={"uninstaller": path},
        )
        if result.error:
            exec_utils.ensure_success(result)
        return result.returncode


__all__ = ["UninstallerLauncher"]
