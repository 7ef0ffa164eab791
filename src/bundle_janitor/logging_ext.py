"""!
@brief Logging pipeline for teardown runs.
@details Two channels are configured once per process. The human channel
appends ``[ISO-8601 timestamp] LEVEL message`` lines to a rotating text file
and mirrors them to the console as the per-step status output. The machine
channel writes one JSON object per event so runs can be audited after the
fact. Handlers serialize writes internally, which keeps appends safe should
steps ever run concurrently.
"""
from __future__ import annotations

import datetime as _dt
import json
import logging
import sys
import uuid
from logging import handlers
from pathlib import Path
from typing import Dict, Iterable, Mapping, TextIO, Tuple

from . import constants, version

HUMAN_LOGGER_NAME = "bundle_janitor.human"
MACHINE_LOGGER_NAME = "bundle_janitor.machine"

_STANDARD_RECORD_KEYS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "channel"}

_CURRENT_LOG_DIRECTORY: Path | None = None
_RUN_METADATA: Dict[str, object] | None = None


def _utc_iso(created: float) -> str:
    moment = _dt.datetime.fromtimestamp(created, tz=_dt.timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _ChannelFilter(logging.Filter):
    """!
    @brief Stamp a fixed ``channel`` attribute on every record.
    """

    def __init__(self, channel: str) -> None:
        super().__init__()
        self._channel = channel

    def filter(self, record: logging.LogRecord) -> bool:
        record.channel = self._channel
        return True


class _IsoFormatter(logging.Formatter):
    """!
    @brief Text formatter rendering ``asctime`` as a local ISO-8601 timestamp.
    """

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        moment = _dt.datetime.fromtimestamp(record.created).astimezone()
        return moment.isoformat(timespec="seconds")


class _JsonLineFormatter(logging.Formatter):
    """!
    @brief Format records as single-line JSON objects.
    @details Standard metadata (timestamp, level, logger, message, channel) is
    merged with any ``extra`` attributes supplied by the caller. Values that
    cannot be serialized are replaced by their ``repr``.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - concise override
        payload: Dict[str, object] = {
            "timestamp": _utc_iso(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", "machine"),
        }
        payload.update(_extract_extras(record))
        try:
            return json.dumps(payload, ensure_ascii=False)
        except TypeError:
            sanitized = {key: _coerce_json(value) for key, value in payload.items()}
            return json.dumps(sanitized, ensure_ascii=False)


def _extract_extras(record: logging.LogRecord) -> Dict[str, object]:
    return {
        key: value for key, value in record.__dict__.items() if key not in _STANDARD_RECORD_KEYS
    }


def _coerce_json(value: object) -> object:
    try:
        json.dumps(value)
    except TypeError:
        return repr(value)
    return value


def _configure_logger(
    logger: logging.Logger,
    formatter: logging.Formatter,
    handlers_to_add: Iterable[logging.Handler],
    channel: str,
) -> None:
    """!
    @brief Reset ``logger`` and attach the supplied handlers.
    """

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for flt in list(logger.filters):
        logger.removeFilter(flt)
    for handler in handlers_to_add:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.addFilter(_ChannelFilter(channel))
    logger.propagate = False


def setup_logging(
    root_dir: Path,
    *,
    console: TextIO | None = None,
    json_to_stdout: bool = False,
    level: int = logging.INFO,
) -> Tuple[logging.Logger, logging.Logger]:
    """!
    @brief Configure the human and machine loggers for one run.
    @param root_dir Directory receiving the text and JSONL log files. Created
    when missing.
    @param console Stream mirroring the human channel, usually ``sys.stdout``.
    ``None`` keeps console output off (tests).
    @param json_to_stdout Mirror machine events to ``sys.stdout``.
    @param level Threshold applied to both channels.
    @returns ``(human_logger, machine_logger)``.
    """

    global _CURRENT_LOG_DIRECTORY

    root_dir = Path(root_dir)
    root_dir.mkdir(parents=True, exist_ok=True)
    _CURRENT_LOG_DIRECTORY = root_dir

    human_logger = logging.getLogger(HUMAN_LOGGER_NAME)
    machine_logger = logging.getLogger(MACHINE_LOGGER_NAME)
    human_logger.setLevel(level)
    machine_logger.setLevel(level)

    human_handlers: list[logging.Handler] = [
        handlers.RotatingFileHandler(
            root_dir / constants.HUMAN_LOG_FILENAME,
            maxBytes=1_048_576,
            backupCount=5,
            encoding="utf-8",
        )
    ]
    if console is not None:
        human_handlers.append(logging.StreamHandler(stream=console))

    machine_handlers: list[logging.Handler] = [
        handlers.RotatingFileHandler(
            root_dir / constants.MACHINE_LOG_FILENAME,
            maxBytes=1_048_576,
            backupCount=5,
            encoding="utf-8",
        )
    ]
    if json_to_stdout:
        machine_handlers.append(logging.StreamHandler(stream=sys.stdout))

    _configure_logger(
        human_logger,
        _IsoFormatter("[%(asctime)s] %(levelname)-8s %(message)s"),
        human_handlers,
        "human",
    )
    _configure_logger(machine_logger, _JsonLineFormatter(), machine_handlers, "machine")

    _emit_run_metadata(human_logger, machine_logger)
    return human_logger, machine_logger


def get_human_logger() -> logging.Logger:
    """!
    @brief Retrieve the human-readable logger configured by :func:`setup_logging`.
    """

    return logging.getLogger(HUMAN_LOGGER_NAME)


def get_machine_logger() -> logging.Logger:
    """!
    @brief Retrieve the JSONL event logger configured by :func:`setup_logging`.
    """

    return logging.getLogger(MACHINE_LOGGER_NAME)


def get_log_directory() -> Path | None:
    return _CURRENT_LOG_DIRECTORY


def get_run_metadata() -> Mapping[str, object] | None:
    """!
    @brief Return the metadata recorded when logging was last configured.
    @details Contains ``run_id`` (UUID4 hex), ``timestamp`` (UTC ISO-8601),
    ``version``, ``build``, ``python`` and ``logdir``.
    """

    return dict(_RUN_METADATA) if _RUN_METADATA is not None else None


def _emit_run_metadata(human_logger: logging.Logger, machine_logger: logging.Logger) -> None:
    global _RUN_METADATA

    _RUN_METADATA = {
        "run_id": uuid.uuid4().hex,
        "timestamp": _utc_iso(_dt.datetime.now(tz=_dt.timezone.utc).timestamp()),
        "version": version.__version__,
        "build": version.__build__,
        "python": sys.version.split()[0],
        "logdir": str(_CURRENT_LOG_DIRECTORY) if _CURRENT_LOG_DIRECTORY else None,
    }

    human_logger.info(
        "Bundle Janitor %s (%s) starting, run %s",
        version.__version__,
        version.__build__,
        _RUN_METADATA["run_id"],
    )
    if _CURRENT_LOG_DIRECTORY is not None:
        human_logger.info("Logs directory: %s", _CURRENT_LOG_DIRECTORY)

    machine_logger.info("run_start", extra={"event": "run_start", "run": dict(_RUN_METADATA)})


__all__ = [
    "HUMAN_LOGGER_NAME",
    "MACHINE_LOGGER_NAME",
    "get_human_logger",
    "get_log_directory",
    "get_machine_logger",
    "get_run_metadata",
    "setup_logging",
]
