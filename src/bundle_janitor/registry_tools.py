"""!
@brief Registry access helpers.
@details Thin ``winreg`` utilities used by the program catalog and the
environment store, plus :class:`RegistryStore`, the collaborator that checks
for and recursively deletes registry keys named by ``HIVE\\path`` handles.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Tuple

from . import constants, exec_utils, logging_ext

try:  # pragma: no cover - exercised through mocks on non-Windows platforms.
    import winreg
except ImportError:  # pragma: no cover - handled gracefully during tests.
    winreg = None  # type: ignore[assignment]


def _ensure_winreg() -> None:
    """!
    @brief Raise an informative error when ``winreg`` is unavailable.
    """

    if winreg is None:  # pragma: no cover - simplifies non-Windows test runs.
        raise FileNotFoundError("Windows registry APIs are unavailable on this platform")


@contextmanager
def open_key(root: int, path: str, access: int | None = None) -> Iterator[Any]:
    """!
    @brief Context manager around ``winreg.OpenKey`` that always closes the handle.
    """

    _ensure_winreg()
    access_mask = access if access is not None else winreg.KEY_READ  # type: ignore[union-attr]
    handle = winreg.OpenKey(root, path, 0, access_mask)  # type: ignore[union-attr]
    try:
        yield handle
    finally:
        winreg.CloseKey(handle)  # type: ignore[union-attr]


def iter_subkeys(root: int, path: str) -> Iterator[str]:
    _ensure_winreg()
    with open_key(root, path) as handle:
        subkey_count, _, _ = winreg.QueryInfoKey(handle)  # type: ignore[union-attr]
        for index in range(subkey_count):
            yield winreg.EnumKey(handle, index)  # type: ignore[union-attr]


def read_values(root: int, path: str) -> Dict[str, Any]:
    """!
    @brief Read all values beneath ``root``/``path`` into a dictionary.
    @details Missing or unreadable keys yield an empty mapping.
    """

    data: Dict[str, Any] = {}
    try:
        _ensure_winreg()
        with open_key(root, path) as handle:
            _, value_count, _ = winreg.QueryInfoKey(handle)  # type: ignore[union-attr]
            for index in range(value_count):
                name, value, _ = winreg.EnumValue(handle, index)  # type: ignore[union-attr]
                data[name] = value
    except OSError:
        return {}
    return data


def key_exists(root: int, path: str) -> bool:
    try:
        _ensure_winreg()
        with open_key(root, path):
            return True
    except OSError:
        return False


def delete_value(root: int, path: str, name: str) -> None:
    """!
    @brief Delete the value ``name`` beneath ``root``/``path``.
    """

    _ensure_winreg()
    with open_key(root, path, winreg.KEY_SET_VALUE) as handle:  # type: ignore[union-attr]
        winreg.DeleteValue(handle, name)  # type: ignore[union-attr]


def hive_name(root: int) -> str:
    """!
    @brief Provide the short identifier (``HKLM`` etc.) for a registry hive.
    """

    mapping = {
        constants.HKLM: "HKLM",
        constants.HKCU: "HKCU",
        constants.HKU: "HKU",
        constants.HKCR: "HKCR",
    }
    return mapping.get(root, hex(root))


def parse_handle(handle: str) -> Tuple[int, str]:
    """!
    @brief Split ``HKLM\\SOFTWARE\\Vendor`` style handles into hive and path.
    @details Accepts the short and long hive spellings as well as the
    PowerShell drive form ``HKLM:\\SOFTWARE\\Vendor``. Forward slashes are
    normalised to backslashes.
    @throws ValueError When the hive is unknown or the path is empty.
    """

    cleaned = str(handle).strip().replace("/", "\\")
    prefix, _, path = cleaned.partition("\\")
    hive = constants.REGISTRY_ROOTS.get(prefix.rstrip(":").upper())
    path = path.strip("\\")
    if hive is None or not path:
        raise ValueError(f"Unsupported registry path: {handle!r}")
    return hive, path


def compose_handle(root: int, path: str) -> str:
    return f"{hive_name(root)}\\{path}"


class RegistryStore:
    """!
    @brief Registry collaborator used by the remove-registry-key primitive.
    @details Existence checks open the key through ``winreg``; deletion runs
    ``reg.exe delete <key> /f`` which removes the key with all subkeys and
    values in one call.
    """

    def exists(self, handle: str) -> bool:
        hive, path = parse_handle(handle)
        return key_exists(hive, path)

    def remove(self, handle: str) -> None:
        hive, path = parse_handle(handle)
        key = compose_handle(hive, path)
        logging_ext.get_human_logger().debug("Deleting registry tree %s", key)
        result = exec_utils.run_command(
            ["reg.exe", "delete", key, "/f"],
            event="registry_delete",
            timeout=constants.COMMAND_TIMEOUT,
            extra={"key": key},
        )
        try:
            exec_utils.ensure_success(result)
        except exec_utils.CommandError as exc:
            if "access is denied" in result.stderr.lower():
                raise PermissionError(str(exc)) from exc
            raise


__all__ = [
    "RegistryStore",
    "compose_handle",
    "delete_value",
    "hive_name",
    "iter_subkeys",
    "key_exists",
    "open_key",
    "parse_handle",
    "read_values",
]
