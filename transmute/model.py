from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .classifier import FileCategory, classify, display_name


class FileStatus(str, Enum):
    PENDING = "pending"
    CONVERTING = "converting"
    DONE = "done"
    ERROR = "error"


class InvalidStatusTransition(RuntimeError):
    """文件状态只能前进：pending → converting → done | error。"""


@dataclass
class TrackedFile:
    """批次中的一个文件。

    - `source_path`: 源文件绝对路径，创建后不再改变。
    - `display_name`: 仅用于展示的文件名。
    - `category`: 创建时由分类器给出，之后不再重新计算。
    - `status`: 'pending' | 'converting' | 'done' | 'error'。
    - `result_path`: 转换产物路径，仅在 `status == done` 时存在。
    - `error_message`: 失败原因，只写入日志，不逐条展示给用户。
    """

    source_path: str
    display_name: str = ""
    category: FileCategory = FileCategory.UNKNOWN
    status: FileStatus = FileStatus.PENDING
    result_path: Optional[str] = None
    error_message: str = field(default="", compare=False)

    @classmethod
    def from_path(cls, path: str) -> "TrackedFile":
        name = display_name(path)
        return cls(source_path=path, display_name=name, category=classify(name))

    def mark_converting(self) -> None:
        self._advance(FileStatus.PENDING, FileStatus.CONVERTING)

    def mark_done(self, result_path: str) -> None:
        self._advance(FileStatus.CONVERTING, FileStatus.DONE)
        self.result_path = result_path

    def mark_error(self, message: str = "") -> None:
        self._advance(FileStatus.CONVERTING, FileStatus.ERROR)
        self.error_message = message

    def fresh_copy(self) -> "TrackedFile":
        return TrackedFile(
            source_path=self.source_path,
            display_name=self.display_name,
            category=self.category,
        )

    def _advance(self, expected: FileStatus, target: FileStatus) -> None:
        if self.status is not expected:
            raise InvalidStatusTransition(
                f"{self.display_name}: 无法从 {self.status.value} 变为 {target.value}"
            )
        self.status = target


@dataclass(frozen=True)
class RunResult:
    """一次批量转换的结果。`finish_delay` 为进入完成状态前的展示停顿（秒）。"""

    files: tuple[TrackedFile, ...]
    elapsed: float
    finish_delay: float = 0.0

    @property
    def done_count(self) -> int:
        return sum(1 for f in self.files if f.status is FileStatus.DONE)

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.files if f.status is FileStatus.ERROR)
