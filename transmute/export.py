from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Callable, Optional, Sequence

from . import config
from .model import FileStatus, TrackedFile
from .utils.ffmpeg import copy_file

logger = logging.getLogger(__name__)

# 保存对话框：(建议文件名, 格式) -> 路径；目录对话框：() -> 目录。取消时返回 None 或空串
AskSavePath = Callable[[str, str], Optional[str]]
AskDirectory = Callable[[], Optional[str]]


class ExportError(RuntimeError):
    """导出过程中复制失败，作为一次整体错误展示给用户。"""


@dataclass(frozen=True)
class ExportItem:
    source: str
    destination: str


def export_name(tracked: TrackedFile, target_format: str) -> str:
    stem = PurePath(tracked.display_name).stem
    return f"{config.EXPORT_PREFIX}{stem}.{target_format.lower()}"


class ExportManager:
    """把完成批次中的转换产物复制到用户选择的位置。"""

    def __init__(self, copy: Callable[[str, str], None] = copy_file) -> None:
        self._copy = copy

    def plan(
        self,
        files: Sequence[TrackedFile],
        target_format: str,
        ask_save_path: AskSavePath,
        ask_directory: AskDirectory,
    ) -> list[ExportItem]:
        """询问目标位置并生成复制清单；用户取消时返回空清单。"""
        if len(files) == 1:
            only = files[0]
            if only.status is not FileStatus.DONE or not only.result_path:
                return []
            destination = ask_save_path(export_name(only, target_format), target_format)
            if not destination:
                return []
            return [ExportItem(only.result_path, str(destination))]

        if len(files) > 1:
            directory = ask_directory()
            if not directory:
                return []
            items: list[ExportItem] = []
            used: set[str] = set()
            for tracked in files:
                if tracked.status is not FileStatus.DONE or not tracked.result_path:
                    continue
                name = _unique_name(export_name(tracked, target_format), used)
                items.append(ExportItem(tracked.result_path, str(Path(directory) / name)))
            return items
        return []

    def execute(self, items: Sequence[ExportItem]) -> list[str]:
        """依次复制；遇到第一个失败即抛出 `ExportError`，已完成的复制不回滚。"""
        copied: list[str] = []
        for item in items:
            try:
                self._copy(item.source, item.destination)
            except OSError as exc:
                logger.error("复制失败 %s -> %s: %s", item.source, item.destination, exc)
                message = "Failed to save file" if len(items) == 1 else "Failed to save files"
                raise ExportError(f"{message}: {Path(item.destination).name}") from exc
            copied.append(item.destination)
        logger.info("已导出 %d 个文件", len(copied))
        return copied

    def export(
        self,
        files: Sequence[TrackedFile],
        target_format: str,
        ask_save_path: AskSavePath,
        ask_directory: AskDirectory,
    ) -> list[str]:
        return self.execute(self.plan(files, target_format, ask_save_path, ask_directory))


def _unique_name(name: str, used: set[str]) -> str:
    # 同一次导出中重名时追加 (n)
    candidate = name
    path = PurePath(name)
    counter = 1
    while candidate in used:
        candidate = f"{path.stem} ({counter}){path.suffix}"
        counter += 1
    used.add(candidate)
    return candidate
