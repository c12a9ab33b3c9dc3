"""日志配置：控制台输出，另在可写目录中保留滚动日志文件。"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from . import config

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def default_log_directory() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent / "logs"
    return Path.home() / ".transmute" / "logs"


def resolve_level(level: Optional[str] = None) -> int:
    name = (level or os.environ.get(config.LOG_LEVEL_ENV) or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: Optional[str] = None, log_directory: Optional[Path] = None) -> Optional[Path]:
    """配置 `transmute` 日志器。

    返回日志文件路径；目录无法创建时只输出到控制台并返回 None。
    重复调用会先移除之前添加的处理器。
    """
    root = logging.getLogger("transmute")
    root.setLevel(resolve_level(level))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    logs_dir = Path(log_directory) if log_directory else default_log_directory()
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        root.warning("无法创建日志目录 %s: %s", logs_dir, exc)
        return None

    log_file = logs_dir / "transmute.log"
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=config.LOG_FILE_MAX_BYTES,
        backupCount=config.LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    return log_file
