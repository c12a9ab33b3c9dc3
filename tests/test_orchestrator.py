"""批量转换编排与模拟进度测试。"""

from __future__ import annotations

import logging
import random
import threading

import pytest

from transmute import config
from transmute.model import FileStatus, TrackedFile
from transmute.orchestrator import BatchError, BatchOrchestrator, ProgressTicker, finish_delay

from conftest import ScriptedEngine, StubTicker, make_clock


def batch(*paths: str) -> list[TrackedFile]:
    return [TrackedFile.from_path(p) for p in paths]


class TestRun:
    def test_partial_failure_does_not_abort(self) -> None:
        engine = ScriptedEngine(failures=("/in/a.mp4",))
        orchestrator = BatchOrchestrator(engine, clock=make_clock(0.0, 1.0), ticker_factory=StubTicker)
        files = batch("/in/a.mp4", "/in/b.mp4", "/in/c.mp4")

        result = orchestrator.run(files, "MKV")

        assert [f.status for f in result.files] == [FileStatus.ERROR, FileStatus.DONE, FileStatus.DONE]
        assert [c[0] for c in engine.calls] == ["/in/a.mp4", "/in/b.mp4", "/in/c.mp4"]
        assert all(fmt == "MKV" for _, fmt in engine.calls)
        assert result.files[0].result_path is None
        assert result.files[1].result_path == "/tmp/work/b.mkv"
        assert result.done_count == 2
        assert result.error_count == 1

    def test_files_convert_strictly_in_order(self) -> None:
        seen: list[tuple[str, list[FileStatus]]] = []
        files = batch("/in/1.wav", "/in/2.wav", "/in/3.wav")

        class OrderEngine:
            def convert(self, source_path: str, output_format: str) -> str:
                seen.append((source_path, [f.status for f in files]))
                return source_path + ".mp3"

        BatchOrchestrator(OrderEngine(), ticker_factory=StubTicker).run(files, "MP3")

        assert seen[0][1] == [FileStatus.CONVERTING, FileStatus.PENDING, FileStatus.PENDING]
        assert seen[1][1] == [FileStatus.DONE, FileStatus.CONVERTING, FileStatus.PENDING]
        assert seen[2][1] == [FileStatus.DONE, FileStatus.DONE, FileStatus.CONVERTING]

    def test_any_engine_exception_is_contained(self) -> None:
        class BrokenEngine:
            def convert(self, source_path: str, output_format: str) -> str:
                raise FileNotFoundError("ffmpeg")

        result = BatchOrchestrator(BrokenEngine(), ticker_factory=StubTicker).run(batch("/in/a.png"), "JPG")
        assert result.files[0].status is FileStatus.ERROR
        assert "ffmpeg" in result.files[0].error_message

    def test_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        engine = ScriptedEngine(failures=("/in/bad.mov",))
        with caplog.at_level(logging.WARNING, logger="transmute.orchestrator"):
            BatchOrchestrator(engine, ticker_factory=StubTicker).run(batch("/in/bad.mov"), "MP4")
        assert "bad.mov" in caplog.text

    def test_ticker_stopped_and_progress_snaps_to_100(self) -> None:
        progress: list[float] = []
        orchestrator = BatchOrchestrator(ScriptedEngine(), ticker_factory=StubTicker)

        orchestrator.run(batch("/in/a.mp4"), "GIF", on_progress=progress.append)

        (ticker,) = StubTicker.instances
        assert ticker.started and ticker.stopped
        assert ticker.on_tick == progress.append
        assert progress[-1] == 100.0

    def test_ticker_stopped_when_run_breaks(self) -> None:
        class ExplodingFile(TrackedFile):
            def mark_converting(self) -> None:
                raise RuntimeError("state corrupted")

        orchestrator = BatchOrchestrator(ScriptedEngine(), ticker_factory=StubTicker)
        with pytest.raises(RuntimeError):
            orchestrator.run([ExplodingFile(source_path="/in/a.mp4")], "MP4")
        assert StubTicker.instances[0].stopped

    def test_empty_batch_is_batch_error(self) -> None:
        with pytest.raises(BatchError):
            BatchOrchestrator(ScriptedEngine(), ticker_factory=StubTicker).run([], "MP4")
        assert StubTicker.instances == []

    @pytest.mark.parametrize(
        "end, delay",
        [(0.5, 0.0), (2.999, 0.0), (3.0, config.FINISH_PACING_DELAY), (12.0, config.FINISH_PACING_DELAY)],
    )
    def test_elapsed_and_pacing(self, end: float, delay: float) -> None:
        orchestrator = BatchOrchestrator(ScriptedEngine(), clock=make_clock(10.0, 10.0 + end), ticker_factory=StubTicker)
        result = orchestrator.run(batch("/in/a.mp4"), "MP4")
        assert result.elapsed == pytest.approx(end)
        assert result.finish_delay == delay


class TestFinishDelay:
    def test_threshold(self) -> None:
        assert finish_delay(0.0) == 0.0
        assert finish_delay(config.INSTANT_FINISH_THRESHOLD - 0.001) == 0.0
        assert finish_delay(config.INSTANT_FINISH_THRESHOLD) == config.FINISH_PACING_DELAY


class TestProgressTicker:
    def test_advance_is_clamped(self) -> None:
        ticks: list[float] = []
        ticker = ProgressTicker(on_tick=ticks.append, max_step=40.0, ceiling=90.0, rng=random.Random(7))
        for _ in range(20):
            ticker.advance()
        assert ticks == sorted(ticks)
        assert max(ticks) <= 90.0
        assert ticker.value == pytest.approx(90.0)

    def test_thread_ticks_and_stops(self) -> None:
        ticked = threading.Event()
        ticker = ProgressTicker(on_tick=lambda _v: ticked.set(), interval=0.01)
        ticker.start()
        try:
            assert ticked.wait(2.0)
            assert ticker.running
        finally:
            ticker.stop()
        assert not ticker.running
        value = ticker.value
        assert 0.0 <= value <= config.PROGRESS_CEILING

    def test_start_twice_is_an_error(self) -> None:
        ticker = ProgressTicker(interval=10.0)
        ticker.start()
        try:
            with pytest.raises(RuntimeError):
                ticker.start()
        finally:
            ticker.stop()

    def test_stop_without_start(self) -> None:
        ticker = ProgressTicker()
        ticker.stop()
        assert not ticker.running
