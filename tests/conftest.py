"""!
@brief Shared fixtures for the Bundle Janitor test-suite.
@details Puts ``src`` on ``sys.path``, resets the logging channels between
tests, and provides in-memory collaborators so primitives can be exercised
without touching the host.
"""
from __future__ import annotations

import logging
import pathlib
import sys
from typing import Dict, List

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from bundle_janitor import constants, logging_ext  # noqa: E402
from bundle_janitor.host import Host  # noqa: E402
from bundle_janitor.processes import ProcessInstance  # noqa: E402
from bundle_janitor.programs import InstalledProgram  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_logging_state():
    """!
    @brief Reset logging between tests to avoid handler leakage.
    """

    yield
    for name in (logging_ext.HUMAN_LOGGER_NAME, logging_ext.MACHINE_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        for flt in list(logger.filters):
            logger.removeFilter(flt)


class LogReader:
    """!
    @brief Read back the human log written during a test.
    """

    def __init__(self, root: pathlib.Path) -> None:
        self.root = root

    def lines(self) -> List[str]:
        for handler in logging_ext.get_human_logger().handlers:
            handler.flush()
        path = self.root / constants.HUMAN_LOG_FILENAME
        return path.read_text(encoding="utf-8").splitlines()

    def matching(self, text: str) -> List[str]:
        return [line for line in self.lines() if text in line]


@pytest.fixture
def human_log(tmp_path) -> LogReader:
    root = tmp_path / "logs"
    logging_ext.setup_logging(root)
    return LogReader(root)


class FakeProgramCatalog:
    def __init__(self, programs: List[InstalledProgram] | None = None) -> None:
        self.programs = list(programs or [])
        self.failing: Dict[str, Exception] = {}
        self.return_codes: Dict[str, int] = {}
        self.calls: List[str] = []

    def find(self, pattern: str) -> List[InstalledProgram]:
        needle = pattern.lower()
        return [item for item in self.programs if needle in item.display_name.lower()]

    def uninstall(self, program: InstalledProgram) -> int:
        self.calls.append(program.display_name)
        if program.display_name in self.failing:
            raise self.failing[program.display_name]
        self.programs.remove(program)
        return self.return_codes.get(program.display_name, 0)


class FakeEnvironment:
    def __init__(self, values: Dict[str, str] | None = None) -> None:
        self.values = dict(values or {})
        self.error: Exception | None = None
        self.calls: List[str] = []

    def exists(self, name: str) -> bool:
        return name in self.values

    def remove(self, name: str) -> None:
        self.calls.append(name)
        if self.error is not None:
            raise self.error
        del self.values[name]


class FakeRegistry:
    def __init__(self, keys: List[str] | None = None) -> None:
        self.keys = set(keys or [])
        self.error: Exception | None = None
        self.calls: List[str] = []

    def exists(self, handle: str) -> bool:
        return any(key == handle or key.startswith(handle + "\\") for key in self.keys)

    def remove(self, handle: str) -> None:
        self.calls.append(handle)
        if self.error is not None:
            raise self.error
        self.keys = {key for key in self.keys if not (key == handle or key.startswith(handle + "\\"))}


class FakeFileSystem:
    def __init__(self, folders: List[str] | None = None, files: List[str] | None = None) -> None:
        self.folders = set(folders or [])
        self.files = set(files or [])
        self.locked: List[str] = []
        self.error: Exception | None = None
        self.calls: List[tuple] = []

    def folder_exists(self, path: str) -> bool:
        return path in self.folders

    def file_exists(self, path: str) -> bool:
        return path in self.files

    def remove_folder(self, path: str) -> List[str]:
        self.calls.append(("remove_folder", path))
        if self.error is not None:
            raise self.error
        if self.locked:
            return list(self.locked)
        self.folders.discard(path)
        return []

    def remove_file(self, path: str) -> None:
        self.calls.append(("remove_file", path))
        if self.error is not None:
            raise self.error
        self.files.discard(path)


class FakeProcessTable:
    def __init__(self, instances: List[ProcessInstance] | None = None) -> None:
        self.instances = list(instances or [])
        self.unkillable: Dict[int, Exception] = {}
        self.calls: List[int] = []

    def find(self, name: str) -> List[ProcessInstance]:
        image = name.lower() if name.lower().endswith(".exe") else f"{name.lower()}.exe"
        return [item for item in self.instances if item.name.lower() == image]

    def terminate(self, instance: ProcessInstance) -> None:
        self.calls.append(instance.pid)
        if instance.pid in self.unkillable:
            raise self.unkillable[instance.pid]
        self.instances.remove(instance)


class FakeServiceController:
    def __init__(self, statuses: Dict[str, str] | None = None) -> None:
        self.statuses = dict(statuses or {})
        self.error: Exception | None = None
        self.calls: List[str] = []
        self.waits: List[str] = []

    def query_status(self, name: str) -> str | None:
        return self.statuses.get(name)

    def request_stop(self, name: str) -> None:
        self.calls.append(name)
        if self.error is not None:
            raise self.error
        self.statuses[name] = "STOPPED"

    def wait_until_stopped(self, name: str) -> None:
        self.waits.append(name)
        if self.error is not None:
            raise self.error
        self.statuses[name] = "STOPPED"


class FakeLauncher:
    def __init__(self, return_code: int = 0) -> None:
        self.return_code = return_code
        self.calls: List[tuple] = []

    def launch(self, path: str, silent_flag: str) -> int:
        self.calls.append((path, silent_flag))
        return self.return_code


@pytest.fixture
def fake_host() -> Host:
    """!
    @brief Host wired to empty in-memory collaborators.
    """

    return Host(
        programs=FakeProgramCatalog(),
        environment=FakeEnvironment(),
        registry=FakeRegistry(),
        filesystem=FakeFileSystem(),
        processes=FakeProcessTable(),
        services=FakeServiceController(),
        launcher=FakeLauncher(),
    )
