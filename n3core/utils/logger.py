import atexit
import json as json_module
import sys
import traceback
from pathlib import Path

# Global logger instance
_LOGGER = None
_JSON_LOGGING = False

NO_BOLD = "\033[22m"
RESET = "\033[0m"


def build_log_entry(record) -> dict:
    """Build a flat JSON log entry from a loguru record."""
    extra = record["extra"]
    log_entry = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["module"],
        "function": record["function"],
        "line": record["line"],
    }
    if record["exception"] is not None:
        exc = record["exception"]
        log_entry["exception"] = "".join(traceback.format_exception(exc.type, exc.value, exc.traceback))
    # `tag` comes from setup_logger, `model` is bound by the compiler per compilation
    if extra:
        for key in ("tag", "model"):
            if key in extra:
                log_entry[key] = extra[key]
        extra = {k: v for k, v in extra.items() if k not in ("tag", "model")}
        if extra:
            log_entry["extra"] = extra
    return log_entry


def json_sink(message) -> None:
    """Sink that outputs flat JSON to stdout for log aggregation."""
    log_entry = build_log_entry(message.record)
    sys.stdout.write(json_module.dumps(log_entry, default=str) + "\n")
    sys.stdout.flush()


class JsonFileSink:
    """File sink that keeps the handle open and writes flat JSON lines."""

    def __init__(self, log_file: Path):
        log_file.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(log_file, "a")
        atexit.register(self._close)

    def _close(self):
        if self._file and not self._file.closed:
            self._file.close()

    def write(self, message) -> None:
        log_entry = build_log_entry(message.record)
        self._file.write(json_module.dumps(log_entry, default=str) + "\n")
        self._file.flush()


def setup_logger(
    log_level: str = "info",
    log_file: Path | None = None,
    append: bool = False,
    tag: str | None = None,
    json_logging: bool = False,
):
    global _LOGGER, _JSON_LOGGING
    _JSON_LOGGING = json_logging

    # Clean up old logger instance to prevent resource leaks
    if _LOGGER is not None:
        _LOGGER.remove()

    tag_prefix = f"[{tag}] " if tag else ""
    message = "".join(
        [
            " <level>{level: >7}</level>",
            f" <level>{NO_BOLD}",
            f"{tag_prefix}{{message}}",
            f"{RESET}</level>",
        ]
    )
    time = "<dim>{time:HH:mm:ss}</dim>"
    if log_level.upper() != "DEBUG":
        debug = ""
    else:
        debug = "".join([f"<level>{NO_BOLD}", " [{file}::{line}]", f"{RESET}</level>"])
    format = time + message + debug

    # NOTE: A private loguru instance, so that code embedding the compiler cannot reconfigure or silence it
    # loguru does not publicly expose the logger class; this relies on its internals
    from loguru._logger import Core as _Core
    from loguru._logger import Logger as _Logger

    logger = _Logger(
        core=_Core(),
        exception=None,
        depth=0,
        record=False,
        lazy=False,
        colors=False,
        raw=False,
        capture=True,
        patchers=[],
        extra={},
    )

    if json_logging and tag:
        logger = logger.bind(tag=tag)

    if json_logging:
        logger.add(json_sink, level=log_level.upper(), enqueue=True)
    else:
        logger.add(sys.stderr, format=format, level=log_level.upper(), colorize=True)

    if log_file is not None:
        log_file = Path(log_file)
        if not append and log_file.exists():
            log_file.unlink()
        if json_logging:
            file_sink = JsonFileSink(log_file)
            logger.add(file_sink.write, level=log_level.upper(), enqueue=True)
        else:
            logger.add(log_file, format=format, level=log_level.upper(), colorize=False)

    _LOGGER = logger

    return logger


def get_logger():
    global _LOGGER
    if _LOGGER is None:
        _LOGGER = setup_logger(log_level="warning")
    return _LOGGER


def reset_logger():
    """Reset the logger. Useful mainly in tests."""
    global _LOGGER, _JSON_LOGGING
    if _LOGGER is not None:
        _LOGGER.remove()
    _LOGGER = None
    _JSON_LOGGING = False
