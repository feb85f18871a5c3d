import logging
from logging import Logger
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, List, Optional

import structlog

from projecthub.core.config import get_settings
from projecthub.core.utils import ifnone

ROOT_LOGGER = "projecthub"
STRUCTLOG_KEY_ORDER = ("timestamp", "event", "operation", "level", "logger")


def default_formatter(fmt: Optional[str] = None) -> logging.Formatter:
    return logging.Formatter(fmt or "[%(asctime)s] %(levelname)s: %(name)s: %(message)s")


def _log_file(name: str, log_dir: Optional[Path], use_structlog: bool) -> Path:
    """``<dir>/projecthub.log`` for the package logger, ``<dir>/modules/<name>.log`` for component loggers."""
    if log_dir is None:
        dirs = get_settings().PROJECTHUB_DIR_PATHS
        log_dir = dirs.STRUCT_LOGGER_DIR if use_structlog else dirs.LOGGER_DIR
    relative = Path(f"{name}.log") if name == ROOT_LOGGER else Path("modules") / f"{name}.log"
    return Path(log_dir) / relative


def _handlers(
    log_file: Path,
    formatter: logging.Formatter,
    *,
    stream_level: int,
    file_level: int,
    add_stream_handler: bool,
    add_file_handler: bool,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if add_stream_handler:
        handlers.append(logging.StreamHandler())
        handlers[-1].setLevel(stream_level)
    if add_file_handler:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(str(log_file), maxBytes=max_bytes, backupCount=backup_count))
        handlers[-1].setLevel(file_level)
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def _ordered_keys(key_order: Iterable[str]):
    key_order = tuple(key_order)

    def processor(_logger, _method_name, event_dict):
        ordered = {key: event_dict.pop(key) for key in key_order if key in event_dict}
        ordered.update(sorted(event_dict.items()))
        return ordered

    return processor


def _configure_structlog(json: bool):
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.contextvars.merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _ordered_keys(STRUCTLOG_KEY_ORDER),
            structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_logger(
    name: str = ROOT_LOGGER,
    *,
    log_dir: Optional[Path] = None,
    logger_level: int = logging.DEBUG,
    stream_level: int = logging.ERROR,
    file_level: int = logging.DEBUG,
    add_stream_handler: bool = True,
    add_file_handler: bool = True,
    propagate: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    use_structlog: Optional[bool] = None,
    structlog_json: bool = True,
) -> Logger | structlog.BoundLogger:
    """Attach console and rotating file handlers to a named logger, replacing any it already has.

    Log files go under ``PROJECTHUB_DIR_PATHS.LOGGER_DIR`` (or ``STRUCT_LOGGER_DIR`` for structlog) unless ``log_dir``
    is given.

    Args:
        name: Logger name.
        log_dir: Directory to write the log file under instead of the configured one.
        logger_level: Level of the logger itself.
        stream_level: Level of the console handler.
        file_level: Level of the file handler.
        add_stream_handler: Attach a console handler.
        add_file_handler: Attach a rotating file handler.
        propagate: Whether records also reach ancestor loggers.
        max_bytes: File size that triggers rotation.
        backup_count: Number of rotated files to keep.
        use_structlog: Return a structlog ``BoundLogger``. Defaults to ``PROJECTHUB_LOGGER.USE_STRUCTLOG``.
        structlog_json: Render structlog events as JSON rather than for the console.

    Returns:
        The stdlib logger, or a structlog ``BoundLogger`` wrapping it.
    """
    use_structlog = ifnone(use_structlog, get_settings().PROJECTHUB_LOGGER.USE_STRUCTLOG)

    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.setLevel(logger_level)
    logger.propagate = propagate

    formatter = logging.Formatter("%(message)s") if use_structlog else default_formatter()
    for handler in _handlers(
        _log_file(name, log_dir, use_structlog),
        formatter,
        stream_level=stream_level,
        file_level=file_level,
        add_stream_handler=add_stream_handler,
        add_file_handler=add_file_handler,
        max_bytes=max_bytes,
        backup_count=backup_count,
    ):
        logger.addHandler(handler)

    if not use_structlog:
        return logger
    _configure_structlog(structlog_json)
    return structlog.get_logger(name)


def get_logger(
    name: str | None = ROOT_LOGGER, use_structlog: bool | None = None, **kwargs
) -> logging.Logger | structlog.BoundLogger:
    """
    Create or retrieve a logger under the ``projecthub`` namespace.

    Component loggers propagate to the package logger and have no console handler of their own.

    Args:
        name (str): Logger name. Names outside the namespace are prefixed with ``projecthub.``.
        use_structlog (bool): Whether to use structured logging. If None, uses the configured default.
        **kwargs: Passed through to `setup_logger`.

    Example:
        .. code-block:: python

            from projecthub.core.logging.logger import get_logger

            logger = get_logger("tracker.graph")
            logger.info("Project created")
    """
    name = name or ROOT_LOGGER
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    kwargs.setdefault("propagate", True)
    kwargs.setdefault("add_stream_handler", False)
    return setup_logger(name, use_structlog=use_structlog, **kwargs)
