"""!
@brief Bundle of OS collaborators injected into the primitives.
@details Each field exposes an existence check and a removal action for one
resource kind. Tests build a :class:`Host` from fakes; the CLI uses
:func:`default_host`.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from .environment import EnvironmentStore
from .fs_tools import FileSystem
from .installers import UninstallerLauncher
from .processes import ProcessTable
from .programs import ProgramCatalog
from .registry_tools import RegistryStore
from .services import ServiceController


@dataclass
class Host:
    programs: ProgramCatalog = field(default_factory=ProgramCatalog)
    environment: EnvironmentStore = field(default_factory=EnvironmentStore)
    registry: RegistryStore = field(default_factory=RegistryStore)
    filesystem: FileSystem = field(default_factory=FileSystem)
    processes: ProcessTable = field(default_factory=ProcessTable)
    services: ServiceController = field(default_factory=ServiceController)
    launcher: UninstallerLauncher = field(default_factory=UninstallerLauncher)


def default_host() -> Host:
    return Host()


__all__ = ["Host", "default_host"]
