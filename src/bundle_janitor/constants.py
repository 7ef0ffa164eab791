"""!
@brief Static data shared by the teardown modules.
@details Registry roots, uninstall catalog locations, timeouts, and exit codes
live here so the collaborators and the CLI read from a single source.
"""
from __future__ import annotations

from typing import Dict, FrozenSet, Tuple

try:  # pragma: no cover - Windows registry handles are optional on test hosts.
    import winreg
except ImportError:  # pragma: no cover - non-Windows CI.
    winreg = None  # type: ignore[assignment]


if winreg is not None:  # pragma: no branch - deterministic assignments.
    HKLM = winreg.HKEY_LOCAL_MACHINE
    HKCU = winreg.HKEY_CURRENT_USER
    HKCR = winreg.HKEY_CLASSES_ROOT
    HKU = winreg.HKEY_USERS
else:  # pragma: no cover - exercised implicitly in non-Windows CI.
    HKLM = 0x80000002
    HKCU = 0x80000001
    HKCR = 0x80000000
    HKU = 0x80000003


REGISTRY_ROOTS: Dict[str, int] = {
    "HKLM": HKLM,
    "HKEY_LOCAL_MACHINE": HKLM,
    "HKCU": HKCU,
    "HKEY_CURRENT_USER": HKCU,
    "HKCR": HKCR,
    "HKEY_CLASSES_ROOT": HKCR,
    "HKU": HKU,
    "HKEY_USERS": HKU,
}
"""!
@brief Accepted hive prefixes, including the long ``HKEY_*`` spellings.
"""

UNINSTALL_ROOTS: Tuple[Tuple[int, str], ...] = (
    (HKLM, r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"),
    (HKLM, r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall"),
    (HKCU, r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"),
)
"""!
@brief Registry locations enumerated to build the installed program catalog.
"""

MACHINE_ENVIRONMENT_KEY = r"SYSTEM\CurrentControlSet\Control\Session Manager\Environment"
"""!
@brief Machine-scope environment variable store.
"""

DEFAULT_SILENT_FLAG = "/S"
"""!
@brief Unattended switch passed to vendor uninstallers (NSIS convention).
"""

MSIEXEC_ADDITIONAL_ARGS = ("/qn", "/norestart")

MSI_REBOOT_RETURN_CODES: FrozenSet[int] = frozenset({1641, 3010})
"""!
@brief ``msiexec`` exit codes that mean success with a pending reboot.
"""

MSI_UNKNOWN_PRODUCT_RETURN_CODE = 1605

UNINSTALL_TIMEOUT = 3600
"""!
@brief Maximum seconds to wait for a catalog uninstall command.
"""

COMMAND_TIMEOUT = 60
SERVICE_STOP_TIMEOUT = 30
SERVICE_POLL_INTERVAL = 1.0

SERVICE_DOES_NOT_EXIST = 1060
"""!
@brief ``sc.exe`` exit code for an unknown service name.
"""

SERVICE_NOT_ACTIVE = 1062

# Win32 error codes used to classify OS failures.
ERROR_ACCESS_DENIED = 5
ERROR_SHARING_VIOLATION = 32
ERROR_LOCK_VIOLATION = 33
ERROR_SERVICE_REQUEST_TIMEOUT = 1053
ERROR_DEPENDENT_SERVICES_RUNNING = 1051
ERROR_SERVICE_CANNOT_ACCEPT_CTRL = 1061
ERROR_INSTALL_ALREADY_RUNNING = 1618
BUSY_WINERRORS: FrozenSet[int] = frozenset(
    {
        ERROR_SHARING_VIOLATION,
        ERROR_LOCK_VIOLATION,
        ERROR_DEPENDENT_SERVICES_RUNNING,
        ERROR_SERVICE_REQUEST_TIMEOUT,
        ERROR_SERVICE_CANNOT_ACCEPT_CTRL,
        ERROR_INSTALL_ALREADY_RUNNING,
    }
)

EXIT_OK = 0
EXIT_STEP_FAILURES = 1
EXIT_USAGE = 2

HUMAN_LOG_FILENAME = "bundle-janitor.log"
MACHINE_LOG_FILENAME = "bundle-janitor.jsonl"
LOGDIR_ENV_VAR = "BUNDLE_JANITOR_LOGDIR"

RESTART_ADVISORY = "Cleanup complete. Please restart the computer to finish removing locked components."
