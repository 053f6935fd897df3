"""Logging setup for applications embedding the client."""

import logging
import logging.handlers
from pathlib import Path
from typing import Any

PACKAGE_LOGGER = "pubsub_client"

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _file_handler(project_root: Path, cfg: dict[str, Any], level: int) -> logging.Handler:
    log_path = project_root / cfg["file"]
    max_bytes = int(cfg.get("max_bytes", 10 * 1024 * 1024))
    backup_count = int(cfg.get("backup_count", 3))
    log_path.parent.mkdir(parents=True, exist_ok=True)
    h = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    h.setLevel(level)
    return h


def _console_handler(level: int) -> logging.Handler:
    h = logging.StreamHandler()
    h.setLevel(level)
    return h


def setup_logging(settings: dict[str, Any], project_root: Path | None = None) -> None:
    """Configure the root logger from settings["logging"].

    Console output is on by default; a rotating file handler is added when
    `file` is set (relative to project_root, default cwd).
    """
    cfg = settings.get("logging", {})
    level_name = str(cfg.get("level") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = logging.Formatter(_FORMAT, datefmt=_DATEFMT)
    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)
    handlers: list[logging.Handler] = []
    if cfg.get("log_to_console", True):
        handlers.append(_console_handler(level))
    if cfg.get("file"):
        handlers.append(_file_handler(project_root or Path.cwd(), cfg, level))
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)


def enable_debug(target: bool | str = True) -> logging.Logger:
    """Turn on DEBUG for the package logger, or for one submodule when target is a name."""
    name = PACKAGE_LOGGER
    if isinstance(target, str) and target not in ("", "*"):
        name = f"{PACKAGE_LOGGER}.{target}"
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    return logger
