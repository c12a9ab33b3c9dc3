"""共享的测试替身：脚本化引擎、同步执行器、不启动线程的进度器。"""

from __future__ import annotations

from concurrent.futures import Executor, Future
from pathlib import PurePath

import pytest

from transmute.model import TrackedFile
from transmute.utils.ffmpeg import ConversionError


class ScriptedEngine:
    """按源路径决定成功或失败的假引擎。"""

    def __init__(self, failures: tuple[str, ...] = ()) -> None:
        self.failures = set(failures)
        self.calls: list[tuple[str, str]] = []

    def convert(self, source_path: str, output_format: str) -> str:
        self.calls.append((source_path, output_format))
        if source_path in self.failures:
            raise ConversionError(f"FFmpeg failed: {source_path}")
        return f"/tmp/work/{PurePath(source_path).stem}.{output_format.lower()}"


class InlineExecutor(Executor):
    """在调用线程内立即执行任务。"""

    def submit(self, fn, *args, **kwargs):
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:  # noqa: BLE001
            future.set_exception(exc)
        return future


class StubTicker:
    instances: list["StubTicker"] = []

    def __init__(self, on_tick=None) -> None:
        self.on_tick = on_tick
        self.started = False
        self.stopped = False
        StubTicker.instances.append(self)

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True


def make_clock(*values: float):
    it = iter(values)
    return lambda: next(it)


def settled(path: str, ok: bool, result: str | None = None) -> TrackedFile:
    tracked = TrackedFile.from_path(path)
    tracked.mark_converting()
    if ok:
        tracked.mark_done(result or f"/tmp/work/{PurePath(path).stem}.out")
    else:
        tracked.mark_error("boom")
    return tracked


@pytest.fixture(autouse=True)
def _reset_stub_ticker():
    StubTicker.instances.clear()
    yield
    StubTicker.instances.clear()
