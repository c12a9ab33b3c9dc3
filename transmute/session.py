"""会话状态机。

`Session` 是不可变快照，所有状态变化都通过纯函数 `transition(session, event)`
产生新的快照以及需要由控制器执行的副作用（effects）。这样状态机可以脱离
界面与进程边界单独测试。

状态：IDLE → SELECTING → PROCESSING → FINISHED，另有
SELECTING/FINISHED --reset--> IDLE 与 PROCESSING --批次级失败--> SELECTING。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Sequence, Union

from .classifier import FALLBACK_FORMAT, FileCategory, allowed_formats, default_format
from .model import FileStatus, RunResult, TrackedFile

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    PROCESSING = "processing"
    FINISHED = "finished"


@dataclass(frozen=True)
class Session:
    state: SessionState = SessionState.IDLE
    files: tuple[TrackedFile, ...] = ()
    target_format: str = FALLBACK_FORMAT
    error: Optional[str] = None
    progress: float = 0.0

    @property
    def done_count(self) -> int:
        return sum(1 for f in self.files if f.status is FileStatus.DONE)

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.files if f.status is FileStatus.ERROR)

    @property
    def ready_files(self) -> list[TrackedFile]:
        return [f for f in self.files if f.status is FileStatus.DONE]

    @property
    def format_options(self) -> tuple[str, ...]:
        if not self.files:
            return allowed_formats(FileCategory.VIDEO)
        return allowed_formats(self.files[0].category)

    @property
    def summary(self) -> str:
        if not self.files:
            return ""
        first = self.files[0].display_name
        return first if len(self.files) == 1 else f"{first}..."


# ========== 事件 ==========
@dataclass(frozen=True)
class FilesAdded:
    paths: tuple[str, ...] = ()


@dataclass(frozen=True)
class FormatSelected:
    fmt: str


@dataclass(frozen=True)
class ConvertRequested:
    pass


@dataclass(frozen=True)
class ProgressTicked:
    value: float


@dataclass(frozen=True)
class RunCompleted:
    result: RunResult


@dataclass(frozen=True)
class RunFailed:
    message: str


@dataclass(frozen=True)
class FinishShown:
    pass


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class ExportFailed:
    message: str


@dataclass(frozen=True)
class ErrorDismissed:
    pass


Event = Union[
    FilesAdded, FormatSelected, ConvertRequested, ProgressTicked, RunCompleted,
    RunFailed, FinishShown, Reset, ExportFailed, ErrorDismissed,
]


# ========== 副作用 ==========
@dataclass(frozen=True)
class StartConversion:
    files: tuple[TrackedFile, ...]
    target_format: str


@dataclass(frozen=True)
class ScheduleFinish:
    delay: float


@dataclass(frozen=True)
class DiscardArtifacts:
    """已完成的批次被丢弃，其转换产物可以删除。"""


Effect = Union[StartConversion, ScheduleFinish, DiscardArtifacts]


@dataclass(frozen=True)
class _Outcome:
    session: Session
    effects: list = field(default_factory=list)


def transition(session: Session, event: Event) -> tuple[Session, list[Effect]]:
    """根据事件计算下一个会话快照与副作用；不合法的事件原样返回当前会话。"""
    handler = _HANDLERS.get(type(event))
    outcome = handler(session, event) if handler else None
    if outcome is None:
        logger.debug("忽略事件 %s（当前状态 %s）", type(event).__name__, session.state.value)
        return session, []
    return outcome.session, list(outcome.effects)


def _on_files_added(session: Session, event: FilesAdded) -> Optional[_Outcome]:
    if not event.paths:
        return None
    if session.state is SessionState.PROCESSING:
        # 处理中拖入的文件直接丢弃，不排队也不合并
        return None
    new_files = tuple(TrackedFile.from_path(p) for p in event.paths)
    if session.state is SessionState.SELECTING and session.files:
        return _Outcome(replace(session, files=session.files + new_files))
    # IDLE 或 FINISHED：开始新的批次，按第一个文件的类别自动选择格式
    fresh = Session(
        state=SessionState.SELECTING,
        files=new_files,
        target_format=default_format(new_files[0].category),
    )
    return _Outcome(fresh, _discard_if_finished(session))


def _on_format_selected(session: Session, event: FormatSelected) -> Optional[_Outcome]:
    if session.state is not SessionState.SELECTING:
        return None
    fmt = event.fmt.upper()
    if fmt not in session.format_options:
        return None
    return _Outcome(replace(session, target_format=fmt))


def _on_convert_requested(session: Session, event: ConvertRequested) -> Optional[_Outcome]:
    if session.state is not SessionState.SELECTING or not session.files:
        return None
    started = replace(session, state=SessionState.PROCESSING, error=None, progress=0.0)
    return _Outcome(started, [StartConversion(started.files, started.target_format)])


def _on_progress_ticked(session: Session, event: ProgressTicked) -> Optional[_Outcome]:
    if session.state is not SessionState.PROCESSING:
        return None
    progress = min(100.0, max(session.progress, float(event.value)))
    return _Outcome(replace(session, progress=progress))


def _on_run_completed(session: Session, event: RunCompleted) -> Optional[_Outcome]:
    if session.state is not SessionState.PROCESSING:
        return None
    result = event.result
    completed = replace(session, files=tuple(result.files), progress=100.0)
    if result.finish_delay <= 0:
        return _Outcome(replace(completed, state=SessionState.FINISHED))
    return _Outcome(completed, [ScheduleFinish(result.finish_delay)])


def _on_finish_shown(session: Session, event: FinishShown) -> Optional[_Outcome]:
    if session.state is not SessionState.PROCESSING:
        return None
    return _Outcome(replace(session, state=SessionState.FINISHED))


def _on_run_failed(session: Session, event: RunFailed) -> Optional[_Outcome]:
    if session.state is not SessionState.PROCESSING:
        return None
    # 批次级失败：回到选择状态，文件重建为待处理以便重试
    return _Outcome(
        replace(
            session,
            state=SessionState.SELECTING,
            files=tuple(f.fresh_copy() for f in session.files),
            error=event.message or "Conversion failed",
            progress=0.0,
        )
    )


def _on_reset(session: Session, event: Reset) -> Optional[_Outcome]:
    if session.state is SessionState.PROCESSING:
        return None
    return _Outcome(Session(), _discard_if_finished(session))


def _discard_if_finished(session: Session) -> list[Effect]:
    return [DiscardArtifacts()] if session.state is SessionState.FINISHED else []


def _on_export_failed(session: Session, event: ExportFailed) -> Optional[_Outcome]:
    if session.state is not SessionState.FINISHED:
        return None
    return _Outcome(replace(session, error=event.message or "Failed to save files"))


def _on_error_dismissed(session: Session, event: ErrorDismissed) -> Optional[_Outcome]:
    if session.error is None:
        return None
    return _Outcome(replace(session, error=None))


_HANDLERS = {
    FilesAdded: _on_files_added,
    FormatSelected: _on_format_selected,
    ConvertRequested: _on_convert_requested,
    ProgressTicked: _on_progress_ticked,
    RunCompleted: _on_run_completed,
    FinishShown: _on_finish_shown,
    RunFailed: _on_run_failed,
    Reset: _on_reset,
    ExportFailed: _on_export_failed,
    ErrorDismissed: _on_error_dismissed,
}


def replay(events: Sequence[Event], session: Optional[Session] = None) -> Session:
    """依次应用一组事件（忽略副作用），便于测试与调试。"""
    current = session or Session()
    for event in events:
        current, _ = transition(current, event)
    return current
