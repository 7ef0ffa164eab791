"""!
@brief Declarative teardown steps.
@details A run is an ordered list of :class:`StepDescriptor` records, each
naming a primitive kind, its target, and optional keyword options. The
built-in :data:`DEFAULT_SEQUENCE` removes the AT data-acquisition suite and
its bundled Mosquitto broker. Alternative lists can be loaded from JSON so a
sequence can be reviewed and diffed without touching the executor.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from . import primitives as p


class SequenceError(ValueError):
    """!
    @brief Raised for malformed step descriptors or step files.
    """


@dataclass(frozen=True)
class StepDescriptor:
    kind: str
    target: str
    options: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"kind": self.kind, "target": self.target}
        if self.options:
            payload["options"] = dict(self.options)
        return payload

    def describe(self) -> str:
        suffix = ""
        if self.options:
            suffix = " (" + ", ".join(f"{key}={value}" for key, value in sorted(self.options.items())) + ")"
        return f"{self.kind} {self.target}{suffix}"


def _step(kind: str, target: str, **options: Any) -> StepDescriptor:
    return StepDescriptor(kind=kind, target=target, options=options)


_PROGRAM_FILES = r"C:\Program Files"
_PROGRAM_FILES_X86 = r"C:\Program Files (x86)"

DEFAULT_SEQUENCE: Tuple[StepDescriptor, ...] = (
    # Running binaries keep files and services locked.
    _step(p.KILL_PROCESS, "ATMonitor"),
    _step(p.KILL_PROCESS, "ATClient"),
    _step(p.KILL_PROCESS, "ATServer"),
    _step(p.KILL_PROCESS, "ATDataLogger"),
    _step(p.KILL_PROCESS, "mosquitto"),
    _step(p.STOP_SERVICE, "ATServerService"),
    _step(p.STOP_SERVICE, "ATDataLoggerService"),
    _step(p.STOP_SERVICE, "mosquitto"),
    _step(p.RUN_UNINSTALLER, _PROGRAM_FILES + r"\mosquitto\Uninstall.exe"),
    _step(p.UNINSTALL_PROGRAM, "AT Data Suite"),
    _step(p.UNINSTALL_PROGRAM, "AT Monitor"),
    _step(p.UNINSTALL_PROGRAM, "AT Data Logger"),
    _step(p.UNINSTALL_PROGRAM, "Eclipse Mosquitto"),
    _step(p.REMOVE_ENV_VAR, "ATDataPath"),
    _step(p.REMOVE_ENV_VAR, "ATHome"),
    _step(p.REMOVE_ENV_VAR, "ATLicenseServer"),
    _step(p.REMOVE_ENV_VAR, "MOSQUITTO_DIR"),
    _step(p.REMOVE_REGISTRY_KEY, r"HKLM\SOFTWARE\ATSuite"),
    _step(p.REMOVE_REGISTRY_KEY, r"HKLM\SOFTWARE\WOW6432Node\ATSuite"),
    _step(p.REMOVE_REGISTRY_KEY, r"HKCU\SOFTWARE\ATSuite"),
    _step(p.REMOVE_REGISTRY_KEY, r"HKLM\SOFTWARE\mosquitto"),
    _step(p.REMOVE_REGISTRY_KEY, r"HKLM\SOFTWARE\WOW6432Node\mosquitto"),
    _step(p.REMOVE_FOLDER, _PROGRAM_FILES + r"\ATSuite", relaxed=True),
    _step(p.REMOVE_FOLDER, _PROGRAM_FILES_X86 + r"\ATSuite", relaxed=True),
    _step(p.REMOVE_FOLDER, _PROGRAM_FILES + r"\mosquitto", relaxed=True),
    _step(p.REMOVE_FOLDER, r"C:\ProgramData\ATSuite", relaxed=True),
    _step(p.REMOVE_FOLDER, r"C:\ATData"),
    _step(p.REMOVE_FILE, r"%PUBLIC%\Desktop\AT Monitor.lnk"),
    _step(p.REMOVE_FILE, r"%PUBLIC%\Desktop\AT Data Suite.lnk"),
    _step(p.REMOVE_FILE, r"%ProgramData%\Microsoft\Windows\Start Menu\Programs\AT Data Suite.lnk"),
    _step(p.REMOVE_FILE, r"%SystemRoot%\atsuite.ini"),
    _step(p.REMOVE_FILE, r"%TEMP%\atsuite_setup.log"),
)
"""!
@brief Built-in teardown order: stop what runs, uninstall, then scrub residue.
"""


def validate_step(step: StepDescriptor) -> StepDescriptor:
    """!
    @brief Check that ``step`` names a known primitive with supported options.
    @throws SequenceError On an unknown kind, empty target, or unknown option.
    """

    if step.kind not in p.PRIMITIVES:
        known = ", ".join(sorted(p.PRIMITIVES))
        raise SequenceError(f"Unknown step kind {step.kind!r}; expected one of {known}")
    if not str(step.target).strip():
        raise SequenceError(f"Step {step.kind} requires a non-empty target")
    allowed = p.PRIMITIVE_OPTIONS.get(step.kind, frozenset())
    unexpected = sorted(set(step.options) - allowed)
    if unexpected:
        raise SequenceError(f"Step {step.kind} does not accept options: {', '.join(unexpected)}")
    return step


def build_sequence(steps: Iterable[StepDescriptor] | None = None) -> List[StepDescriptor]:
    """!
    @brief Return a validated copy of ``steps`` or of :data:`DEFAULT_SEQUENCE`.
    """

    source = DEFAULT_SEQUENCE if steps is None else steps
    return [validate_step(step) for step in source]


def steps_from_data(data: object) -> List[StepDescriptor]:
    """!
    @brief Build descriptors from decoded JSON.
    @details Accepts either a list of ``{"kind", "target", "options"}`` objects
    or a mapping with such a list under ``"steps"``.
    """

    if isinstance(data, Mapping):
        data = data.get("steps")
    if not isinstance(data, list):
        raise SequenceError("Step file must contain a list of steps")

    steps: List[StepDescriptor] = []
    for index, raw in enumerate(data, start=1):
        if not isinstance(raw, Mapping):
            raise SequenceError(f"Step {index} must be an object")
        options = raw.get("options") or {}
        if not isinstance(options, Mapping):
            raise SequenceError(f"Step {index} options must be an object")
        try:
            step = StepDescriptor(kind=str(raw["kind"]), target=str(raw["target"]), options=dict(options))
        except KeyError as exc:
            raise SequenceError(f"Step {index} is missing {exc.args[0]!r}") from exc
        steps.append(validate_step(step))
    return steps


def load_steps(path: Path | str) -> List[StepDescriptor]:
    """!
    @brief Read a JSON step file.
    @throws SequenceError When the file cannot be read or parsed.
    """

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SequenceError(f"Unable to read step file {path}: {exc}") from exc
    return steps_from_data(data)


def dump_steps(steps: Sequence[StepDescriptor]) -> str:
    return json.dumps({"steps": [step.to_dict() for step in steps]}, indent=2)


__all__ = [
    "DEFAULT_SEQUENCE",
    "SequenceError",
    "StepDescriptor",
    "build_sequence",
    "dump_steps",
    "load_steps",
    "steps_from_data",
    "validate_step",
]
