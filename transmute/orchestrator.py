from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable, Optional, Sequence

from . import config
from .model import RunResult, TrackedFile
from .utils.ffmpeg import ConversionEngine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class BatchError(RuntimeError):
    """批次整体无法运行（区别于单个文件的转换失败）。"""


class ProgressTicker:
    """模拟进度：按固定间隔随机递增，封顶于 `ceiling`。

    引擎不提供真实进度，这里只是视觉反馈。必须显式 `stop()`，
    `stop()` 会等待后台线程退出，不会留下仍在运行的定时器。
    """

    def __init__(
        self,
        on_tick: Optional[ProgressCallback] = None,
        interval: float = config.PROGRESS_TICK_SECONDS,
        max_step: float = config.PROGRESS_MAX_STEP,
        ceiling: float = config.PROGRESS_CEILING,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.on_tick = on_tick
        self.interval = interval
        self.max_step = max_step
        self.ceiling = ceiling
        self.value = 0.0
        self._rng = rng or random.Random()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("ProgressTicker 只能启动一次")
        self._thread = threading.Thread(target=self._loop, name="progress-ticker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()

    def advance(self) -> float:
        self.value = min(self.value + self._rng.uniform(0, self.max_step), self.ceiling)
        if self.on_tick is not None:
            self.on_tick(self.value)
        return self.value

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.advance()


def finish_delay(elapsed: float) -> float:
    """耗时低于阈值时立即完成，否则留出短暂停顿让 100% 可见。"""
    if elapsed < config.INSTANT_FINISH_THRESHOLD:
        return 0.0
    return config.FINISH_PACING_DELAY


class BatchOrchestrator:
    """按批次顺序逐个调用转换引擎，单个失败不会中断整个批次。"""

    def __init__(
        self,
        engine: ConversionEngine,
        clock: Callable[[], float] = time.monotonic,
        ticker_factory: Callable[..., ProgressTicker] = ProgressTicker,
    ) -> None:
        self.engine = engine
        self._clock = clock
        self._ticker_factory = ticker_factory

    def run(
        self,
        files: Sequence[TrackedFile],
        target_format: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RunResult:
        if not files:
            raise BatchError("No files to convert")

        started = self._clock()
        ticker = self._ticker_factory(on_tick=on_progress)
        ticker.start()
        try:
            for tracked in files:
                self._convert_one(tracked, target_format)
        finally:
            ticker.stop()

        if on_progress is not None:
            on_progress(100.0)
        elapsed = self._clock() - started
        result = RunResult(files=tuple(files), elapsed=elapsed, finish_delay=finish_delay(elapsed))
        logger.info(
            "批次完成: %d 成功, %d 失败, 耗时 %.2fs",
            result.done_count,
            result.error_count,
            elapsed,
        )
        return result

    def _convert_one(self, tracked: TrackedFile, target_format: str) -> None:
        tracked.mark_converting()
        try:
            result_path = self.engine.convert(tracked.source_path, target_format)
        except Exception as exc:  # noqa: BLE001 - 单个文件失败不影响后续文件
            tracked.mark_error(str(exc))
            logger.warning("转换失败 %s: %s", tracked.display_name, exc)
        else:
            tracked.mark_done(result_path)
            logger.debug("转换完成 %s -> %s", tracked.display_name, result_path)
