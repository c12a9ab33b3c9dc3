from __future__ import annotations

import base64
import logging
import os
import shutil
import subprocess
import sys
import tempfile
import threading
from pathlib import Path
from typing import Optional, Protocol

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


class ConversionError(RuntimeError):
    """单个文件转换失败（编码器不支持、找不到 ffmpeg、非零退出码等）。"""


class ConversionEngine(Protocol):
    def convert(self, source_path: str, output_format: str) -> str:
        """把 `source_path` 转为 `output_format`，返回产物路径；失败时抛出异常。"""
        ...


def _is_windows() -> bool:
    return os.name == "nt" or sys.platform.startswith("win")


def _binary_name(base: str) -> str:
    return f"{base}.exe" if _is_windows() else base


def _no_window_kwargs() -> dict:
    if not _is_windows():
        return {}
    try:
        startupinfo = subprocess.STARTUPINFO()
        startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
        return {"creationflags": subprocess.CREATE_NO_WINDOW, "startupinfo": startupinfo}
    except AttributeError:
        return {}


def resolve_ffmpeg_binary() -> str:
    """解析 ffmpeg 的可执行路径。

    优先级：
    1. 环境变量 `FFMPEG_BIN_DIR`
    2. PyInstaller `_MEIPASS` 下的 `ffmpeg/`
    3. 项目根目录下的 `ffmpeg/`
    4. `PATH` 中可执行文件
    5. 回退为命令名（期望已在 PATH）
    """

    candidates: list[Path] = []
    env_dir = os.environ.get("FFMPEG_BIN_DIR")
    if env_dir:
        candidates.append(Path(env_dir))

    meipass_dir = getattr(sys, "_MEIPASS", None)
    if meipass_dir:
        candidates.append(Path(meipass_dir) / "ffmpeg")

    project_root = Path(__file__).resolve().parent.parent.parent
    candidates.append(project_root / "ffmpeg")

    exe = _binary_name("ffmpeg")
    for base in candidates:
        if (base / exe).exists():
            return str(base / exe)
    return shutil.which(exe) or exe


# 输出格式 → 额外参数
_FORMAT_ARGS: dict[str, list[str]] = {
    "ico": ["-vf", "scale='min(256,iw)':'min(256,ih)':force_original_aspect_ratio=decrease"],
    "mp3": ["-vn", "-acodec", "libmp3lame", "-b:a", "192k"],
    "wav": ["-vn", "-acodec", "pcm_s16le"],
    "aac": ["-vn", "-acodec", "aac", "-b:a", "192k"],
}
_AUDIO_ONLY = {"m4a", "ogg", "flac", "wma", "aiff", "alac", "opus"}

_SVG_MIME = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "gif": "image/gif",
}

_SVG_TEMPLATE = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="{w}" height="{h}" viewBox="0 0 {w} {h}">\n'
    '    <image href="data:{mime};base64,{data}" width="{w}" height="{h}" />\n'
    "</svg>"
)


def format_args(output_format: str) -> list[str]:
    fmt = output_format.lower()
    if fmt in _FORMAT_ARGS:
        return list(_FORMAT_ARGS[fmt])
    if fmt in _AUDIO_ONLY:
        return ["-vn"]
    return []


class FFmpegEngine:
    """通过外部 ffmpeg 进程逐个转换文件，产物写入私有临时目录。

    每个批次的产物放在工作目录下独立的子目录中：`start_batch()` 开启新批次并
    删除上一批次的产物，`discard_batch()` 在批次被丢弃时释放产物。
    `cleanup()` 之后引擎不可再用，`convert()` 会抛出 `ConversionError`。
    """

    def __init__(self, work_dir: Optional[Path] = None, ffmpeg_path: Optional[str] = None) -> None:
        self._work_dir = Path(work_dir) if work_dir else None
        self._owns_work_dir = work_dir is None
        self._ffmpeg_path = ffmpeg_path
        self._batch_dir: Optional[Path] = None
        self._used_names: set[str] = set()
        self._closed = False
        # 关闭窗口时 cleanup 在 UI 线程上执行，转换仍可能在工作线程中进行
        self._lock = threading.Lock()

    @property
    def ffmpeg(self) -> str:
        if self._ffmpeg_path is None:
            self._ffmpeg_path = resolve_ffmpeg_binary()
        return self._ffmpeg_path

    @property
    def work_dir(self) -> Path:
        with self._lock:
            return self._ensure_work_dir()

    def start_batch(self) -> Path:
        with self._lock:
            self._check_open()
            self._drop_batch_dir()
            return self._ensure_batch_dir()

    def discard_batch(self) -> None:
        with self._lock:
            self._drop_batch_dir()

    def convert(self, source_path: str, output_format: str) -> str:
        source = Path(source_path)
        fmt = output_format.lower()
        output = self._output_path(source, fmt)
        if fmt == "svg":
            self._embed_svg(source, output)
        else:
            self._run_ffmpeg(source, output, format_args(fmt))
        return str(output)

    def build_command(self, source: Path, output: Path, extra_args: list[str]) -> list[str]:
        return [self.ffmpeg, "-v", "error", "-i", str(source), "-y", *extra_args, str(output)]

    def cleanup(self) -> None:
        with self._lock:
            self._closed = True
            self._drop_batch_dir()
            if self._owns_work_dir and self._work_dir is not None:
                shutil.rmtree(self._work_dir, ignore_errors=True)
                logger.debug("已删除工作目录: %s", self._work_dir)

    # ========== 内部 ==========
    def _check_open(self) -> None:
        if self._closed:
            raise ConversionError("转换引擎已关闭")

    def _ensure_work_dir(self) -> Path:
        if self._work_dir is None:
            self._check_open()
            self._work_dir = Path(tempfile.mkdtemp(prefix="transmute-"))
            logger.debug("转换工作目录: %s", self._work_dir)
        return self._work_dir

    def _ensure_batch_dir(self) -> Path:
        if self._batch_dir is None:
            work_dir = self._ensure_work_dir()
            work_dir.mkdir(parents=True, exist_ok=True)
            self._batch_dir = Path(tempfile.mkdtemp(prefix="batch-", dir=work_dir))
        return self._batch_dir

    def _drop_batch_dir(self) -> None:
        if self._batch_dir is not None:
            shutil.rmtree(self._batch_dir, ignore_errors=True)
            self._batch_dir = None
        self._used_names.clear()

    def _output_path(self, source: Path, fmt: str) -> Path:
        # 处理重名：追加 (n)，避免同一批次中同名源文件的产物互相覆盖
        with self._lock:
            self._check_open()
            batch_dir = self._ensure_batch_dir()
            ext = f".{fmt}"
            out_name = f"{source.stem}{ext}"
            counter = 1
            while out_name in self._used_names:
                out_name = f"{source.stem} ({counter}){ext}"
                counter += 1
            self._used_names.add(out_name)
            return batch_dir / out_name

    def _run_ffmpeg(self, source: Path, output: Path, extra_args: list[str]) -> None:
        cmd = self.build_command(source, output, extra_args)
        logger.debug("执行: %s", " ".join(cmd))
        try:
            completed = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                **_no_window_kwargs(),
            )
        except OSError as exc:
            raise ConversionError(f"无法启动 ffmpeg: {exc}") from exc
        if completed.returncode != 0:
            raise ConversionError(f"FFmpeg failed: {completed.stderr.strip()}")

    def _embed_svg(self, source: Path, output: Path) -> None:
        # ffmpeg 无法把位图矢量化，这里把原图以 base64 嵌入 SVG
        try:
            with Image.open(source) as img:
                width, height = img.size
            data = source.read_bytes()
        except (OSError, UnidentifiedImageError) as exc:
            raise ConversionError(f"Failed to open image for SVG conversion: {exc}") from exc
        mime = _SVG_MIME.get(source.suffix.lower().lstrip("."), "image/png")
        svg = _SVG_TEMPLATE.format(
            w=width,
            h=height,
            mime=mime,
            data=base64.b64encode(data).decode("ascii"),
        )
        try:
            output.write_text(svg, encoding="utf-8")
        except OSError as exc:
            raise ConversionError(f"无法写入 SVG: {exc}") from exc


def copy_file(source: str, destination: str) -> None:
    """把转换产物复制到用户选择的位置，失败时抛出 `OSError`。"""
    shutil.copyfile(source, destination)
