"""!
@brief Bundle Janitor package root.
@details Scripted, best-effort teardown of the AT data-acquisition suite and
its bundled Mosquitto broker on Windows hosts: processes, services, installed
programs, machine environment variables, registry keys, folders and files.
"""

__all__ = [
    "constants",
    "elevation",
    "environment",
    "exec_utils",
    "executor",
    "fs_tools",
    "host",
    "installers",
    "logging_ext",
    "main",
    "outcomes",
    "primitives",
    "processes",
    "programs",
    "registry_tools",
    "sequence",
    "services",
    "version",
]
