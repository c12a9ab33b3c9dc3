from __future__ import annotations

import logging
import queue
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from .export import ExportError, ExportItem, ExportManager
from .model import TrackedFile
from .orchestrator import BatchOrchestrator
from .session import (
    ConvertRequested,
    DiscardArtifacts,
    Effect,
    ErrorDismissed,
    Event,
    ExportFailed,
    FilesAdded,
    FinishShown,
    FormatSelected,
    ProgressTicked,
    Reset,
    RunCompleted,
    RunFailed,
    ScheduleFinish,
    Session,
    SessionState,
    StartConversion,
    transition,
)
from .utils.ffmpeg import ConversionEngine, FFmpegEngine

if TYPE_CHECKING:
    from .view import AppView

logger = logging.getLogger(__name__)


class AppController:
    """应用控制器：持有会话快照，把视图事件交给状态机，并执行其副作用。

    会话只在 UI 线程上变更；转换与复制在单工作线程中顺序执行，
    结果以事件形式放入 `ui_queue`，由视图轮询后在 UI 线程上处理。
    """

    def __init__(
        self,
        view: "AppView",
        engine: Optional[ConversionEngine] = None,
        exporter: Optional[ExportManager] = None,
        executor: Optional[Executor] = None,
        orchestrator: Optional[BatchOrchestrator] = None,
    ) -> None:
        self.view = view
        self.session = Session()
        self.ui_queue: "queue.Queue[Event]" = queue.Queue()
        self.engine = engine if engine is not None else FFmpegEngine()
        self.orchestrator = orchestrator or BatchOrchestrator(self.engine)
        self.exporter = exporter or ExportManager()
        # 单个工作线程：文件严格按顺序转换，不并行
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="transmute")

    # ========== 视图调用的接口 ==========
    def handle_file_drop(self, file_paths: Iterable[str]) -> None:
        # 处理中拖入的文件由状态机丢弃
        self.dispatch(FilesAdded(tuple(file_paths)))

    def handle_files_selected(self, file_paths: Iterable[str]) -> None:
        self.dispatch(FilesAdded(tuple(file_paths)))

    def select_format(self, fmt: str) -> None:
        self.dispatch(FormatSelected(fmt))

    def request_convert(self) -> None:
        self.dispatch(ConvertRequested())

    def request_reset(self) -> None:
        self.dispatch(Reset())

    def dismiss_error(self) -> None:
        self.dispatch(ErrorDismissed())

    def request_export(self) -> None:
        session = self.session
        if session.state is not SessionState.FINISHED:
            return
        items = self.exporter.plan(
            session.files,
            session.target_format,
            self.view.ask_save_path,
            self.view.ask_directory,
        )
        if not items:
            return
        self.executor.submit(self._worker_export, items)

    # ========== 状态机 ==========
    def dispatch(self, event: Event, render: bool = True) -> None:
        self.session, effects = transition(self.session, event)
        for effect in effects:
            self._apply(effect)
        if render:
            self.view.render(self.session)

    def process_ui_queue(self) -> bool:
        """在 UI 线程上处理工作线程投递的事件，返回是否有更新。"""
        updated = False
        while True:
            try:
                event = self.ui_queue.get_nowait()
            except queue.Empty:
                break
            self.dispatch(event, render=False)
            updated = True
        if updated:
            self.view.render(self.session)
        return updated

    def shutdown(self) -> None:
        # 不等待进行中的转换；引擎关闭后剩余文件直接失败
        self.executor.shutdown(wait=False)
        cleanup = getattr(self.engine, "cleanup", None)
        if callable(cleanup):
            cleanup()

    def _apply(self, effect: Effect) -> None:
        if isinstance(effect, StartConversion):
            logger.info("开始转换 %d 个文件 -> %s", len(effect.files), effect.target_format)
            try:
                self.executor.submit(self._worker_run_batch, effect.files, effect.target_format)
            except RuntimeError as exc:
                logger.exception("无法启动转换")
                self._enqueue(RunFailed(f"Conversion failed: {exc}"))
        elif isinstance(effect, ScheduleFinish):
            self.view.schedule(int(effect.delay * 1000), lambda: self.dispatch(FinishShown()))
        elif isinstance(effect, DiscardArtifacts):
            discard = getattr(self.engine, "discard_batch", None)
            if not callable(discard):
                return
            # 排在已提交的复制任务之后执行
            try:
                self.executor.submit(discard)
            except RuntimeError:
                logger.debug("执行器已关闭，跳过产物清理")

    # ========== 工作线程 ==========
    def _worker_run_batch(self, files: Sequence[TrackedFile], target_format: str) -> None:
        start_batch = getattr(self.engine, "start_batch", None)
        try:
            if callable(start_batch):
                start_batch()
            result = self.orchestrator.run(
                files,
                target_format,
                on_progress=lambda p: self._enqueue(ProgressTicked(p)),
            )
        except Exception as exc:  # noqa: BLE001 - 批次级失败，回到选择状态
            logger.exception("批次转换失败")
            self._enqueue(RunFailed(f"Conversion failed: {exc}"))
        else:
            self._enqueue(RunCompleted(result))

    def _worker_export(self, items: Sequence[ExportItem]) -> None:
        try:
            self.exporter.execute(items)
        except ExportError as exc:
            self._enqueue(ExportFailed(str(exc)))
        except Exception:  # noqa: BLE001 - 工作线程中的异常不会自行浮现
            logger.exception("导出失败")
            self._enqueue(ExportFailed("Failed to save files"))

    # ========== 辅助 ==========
    def _enqueue(self, event: Event) -> None:
        self.ui_queue.put(event)
