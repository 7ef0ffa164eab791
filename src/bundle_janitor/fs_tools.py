"""!
@brief Filesystem helpers for teardown.
@details Provides ``%NAME%`` token expansion, the default log directory, and
:class:`FileSystem`, the collaborator behind the folder and file removal
primitives. Recursive deletion clears read-only attributes and keeps going
past entries that stay locked, handing the leftovers back to the caller.
"""
from __future__ import annotations

import os
import re
import shutil
import stat
import sys
from pathlib import Path
from typing import Callable, List, Mapping

from . import constants, logging_ext

_TOKEN_PATTERN = re.compile(r"%([^%]+)%")


def expand_environment_tokens(text: str, env: Mapping[str, str] | None = None) -> str:
    """!
    @brief Expand Windows-style ``%NAME%`` tokens in ``text``.
    @details Lookups are case-insensitive like on Windows. Tokens without a
    matching variable are left untouched, which is how ``cmd.exe`` and
    ``ExpandEnvironmentStrings`` treat them.
    @param env Variables to resolve against; defaults to :data:`os.environ`.
    """

    source = os.environ if env is None else env
    folded = {str(key).upper(): str(value) for key, value in source.items()}

    def _replace(match: re.Match[str]) -> str:
        value = folded.get(match.group(1).upper())
        return match.group(0) if value is None else value

    return _TOKEN_PATTERN.sub(_replace, text)


def get_default_log_directory(
    *, env: Mapping[str, str] | None = None, platform: str | None = None
) -> Path:
    """!
    @brief Resolve where run logs go when ``--logdir`` is not supplied.
    @details ``BUNDLE_JANITOR_LOGDIR`` wins. On Windows the default is
    ``%ProgramData%\\BundleJanitor\\logs``; elsewhere ``$XDG_STATE_HOME`` or
    ``~/.local/state`` hosts ``bundle-janitor/logs``.
    """

    environment = os.environ if env is None else env
    override = environment.get(constants.LOGDIR_ENV_VAR)
    if override:
        return Path(override)

    system = platform if platform is not None else os.name
    if system == "nt":
        program_data = environment.get("ProgramData") or environment.get("PROGRAMDATA") or r"C:\ProgramData"
        return Path(program_data) / "BundleJanitor" / "logs"

    state_home = environment.get("XDG_STATE_HOME")
    base = Path(state_home) if state_home else Path.home() / ".local" / "state"
    return base / "bundle-janitor" / "logs"


def _rmtree(path: Path, callback: Callable[[Callable[..., object], str, BaseException], None]) -> None:
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=callback)
    else:  # pragma: no cover - interpreter dependent
        shutil.rmtree(path, onerror=lambda func, name, info: callback(func, name, info[1]))


def _is_directory_link(path: Path) -> bool:
    """!
    @brief ``True`` for symbolic links and NTFS junctions.
    """

    if os.path.islink(path):
        return True
    isjunction = getattr(os.path, "isjunction", None)
    return bool(isjunction is not None and isjunction(path))


def _remove_link(path: Path) -> None:
    # Directory links are removed with rmdir on Windows and unlink elsewhere.
    if os.name == "nt":
        os.rmdir(path)
    else:
        os.unlink(path)


class FileSystem:
    """!
    @brief Collaborator for the folder, file, and uninstaller-path primitives.
    """

    def folder_exists(self, path: str) -> bool:
        return Path(path).is_dir() or _is_directory_link(Path(path))

    def file_exists(self, path: str) -> bool:
        return Path(path).is_file()

    def remove_folder(self, path: str) -> List[str]:
        """!
        @brief Delete ``path`` recursively.
        @details A symbolic link or junction is removed as a link; the tree it
        points at is left alone. Entries refusing deletion are retried once
        after clearing the read-only attribute. Entries that still fail are
        skipped so the rest of the tree is removed.
        @returns Paths left behind; empty when the tree is gone.
        """

        human_logger = logging_ext.get_human_logger()
        target = Path(path)
        if _is_directory_link(target):
            human_logger.debug("Removing directory link %s", target)
            _remove_link(target)
            return []

        leftovers: List[str] = []

        def _on_error(function: Callable[..., object], name: str, exc: BaseException) -> None:
            if isinstance(exc, FileNotFoundError):
                return
            if isinstance(exc, PermissionError) and function in (os.unlink, os.remove, os.rmdir):
                try:
                    os.chmod(name, stat.S_IWRITE)
                    function(name)
                    return
                except OSError as retry_exc:
                    exc = retry_exc
            human_logger.debug("Skipping locked entry %s: %s", name, exc)
            leftovers.append(str(name))

        _rmtree(target, _on_error)
        if leftovers and not target.exists():
            return []
        return leftovers

    def remove_file(self, path: str) -> None:
        target = Path(path)
        try:
            target.unlink()
        except PermissionError:
            os.chmod(target, stat.S_IWRITE)
            target.unlink()


__all__ = ["FileSystem", "expand_environment_tokens", "get_default_log_directory"]
