"""!
@brief Release identifiers shown by ``--version`` and the run-start log record.
@details The release number comes from the installed distribution metadata;
a source checkout without metadata reads the ``VERSION`` file shipped next to
this module. Release builds set ``BUNDLE_JANITOR_BUILD`` to tag the run logs.
"""
from __future__ import annotations

import os
from importlib import metadata, resources
from typing import Dict

DISTRIBUTION_NAME = "bundle-janitor"


def _release() -> str:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        packaged = resources.files(__package__).joinpath("VERSION")
        return packaged.read_text(encoding="utf-8").strip()


__version__ = _release()
__build__ = os.environ.get("BUNDLE_JANITOR_BUILD", "dev")


def build_info() -> Dict[str, str]:
    return {"version": __version__, "build": __build__}


__all__ = ["__build__", "__version__", "build_info"]
