"""!
@brief Elevation helpers.
@details Removing machine environment variables, ``HKLM`` keys, services and
``Program Files`` folders needs an elevated token. The CLI checks for one and,
when it is missing, relaunches itself through the ``runas`` verb and waits for
the elevated copy so its exit code becomes the caller's.
"""
from __future__ import annotations

import ctypes
import os
import subprocess
import sys
from typing import Optional, Sequence

SEE_MASK_NOCLOSEPROCESS = 0x00000040
INFINITE = 0xFFFFFFFF
SW_SHOWNORMAL = 1


def is_admin() -> bool:
    """!
    @brief Determine whether the current process token has administrative rights.
    """

    if os.name != "nt":
        geteuid = getattr(os, "geteuid", None)
        return bool(callable(geteuid) and geteuid() == 0)
    try:
        shell32 = ctypes.windll.shell32  # type: ignore[attr-defined]
        return bool(shell32.IsUserAnAdmin())
    except (AttributeError, OSError):
        return False


def can_relaunch() -> bool:
    """!
    @brief ``True`` where a ``runas`` relaunch is possible.
    """

    return os.name == "nt"


def _shell_execute_info_type():
    from ctypes import wintypes

    class ShellExecuteInfo(ctypes.Structure):
        _fields_ = [
            ("cbSize", wintypes.DWORD),
            ("fMask", ctypes.c_ulong),
            ("hwnd", wintypes.HWND),
            ("lpVerb", wintypes.LPCWSTR),
            ("lpFile", wintypes.LPCWSTR),
            ("lpParameters", wintypes.LPCWSTR),
            ("lpDirectory", wintypes.LPCWSTR),
            ("nShow", ctypes.c_int),
            ("hInstApp", wintypes.HINSTANCE),
            ("lpIDList", ctypes.c_void_p),
            ("lpClass", wintypes.LPCWSTR),
            ("hkeyClass", wintypes.HKEY),
            ("dwHotKey", wintypes.DWORD),
            ("hIconOrMonitor", wintypes.HANDLE),
            ("hProcess", wintypes.HANDLE),
        ]

    return ShellExecuteInfo


def relaunch_as_admin(argv: Sequence[str], *, directory: Optional[str] = None) -> Optional[int]:
    """!
    @brief Run ``python -m bundle_janitor`` elevated and wait for it.
    @details Uses ``ShellExecuteExW`` with the ``runas`` verb, which shows the
    UAC prompt. The child starts in ``directory`` (the current directory by
    default).
    @returns The elevated child's exit code, or ``None`` when no child was
    started (UAC declined, or not on Windows).
    """

    if not can_relaunch():
        return None

    from ctypes import wintypes

    try:
        shell32 = ctypes.WinDLL("shell32", use_last_error=True)  # type: ignore[attr-defined]
        kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)  # type: ignore[attr-defined]
    except (AttributeError, OSError):
        return None

    info_type = _shell_execute_info_type()
    shell32.ShellExecuteExW.argtypes = [ctypes.POINTER(info_type)]
    shell32.ShellExecuteExW.restype = wintypes.BOOL
    kernel32.WaitForSingleObject.argtypes = [wintypes.HANDLE, wintypes.DWORD]
    kernel32.WaitForSingleObject.restype = wintypes.DWORD
    kernel32.GetExitCodeProcess.argtypes = [wintypes.HANDLE, ctypes.POINTER(wintypes.DWORD)]
    kernel32.GetExitCodeProcess.restype = wintypes.BOOL
    kernel32.CloseHandle.argtypes = [wintypes.HANDLE]

    info = info_type()
    info.cbSize = ctypes.sizeof(info)
    info.fMask = SEE_MASK_NOCLOSEPROCESS
    info.lpVerb = "runas"
    info.lpFile = sys.executable
    info.lpParameters = subprocess.list2cmdline(["-m", "bundle_janitor", *argv])
    info.lpDirectory = directory or os.getcwd()
    info.nShow = SW_SHOWNORMAL

    if not shell32.ShellExecuteExW(ctypes.byref(info)) or not info.hProcess:
        return None
    try:
        kernel32.WaitForSingleObject(info.hProcess, INFINITE)
        exit_code = wintypes.DWORD()
        if not kernel32.GetExitCodeProcess(info.hProcess, ctypes.byref(exit_code)):
            raise ctypes.WinError(ctypes.get_last_error())  # type: ignore[attr-defined]
        return int(exit_code.value)
    finally:
        kernel32.CloseHandle(info.hProcess)


__all__ = ["can_relaunch", "is_admin", "relaunch_as_admin"]
