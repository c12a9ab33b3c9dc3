from __future__ import annotations

import re
from enum import Enum


class FileCategory(str, Enum):
    VIDEO = "video"
    IMAGE = "image"
    AUDIO = "audio"
    UNKNOWN = "unknown"


_EXTENSIONS: dict[FileCategory, frozenset[str]] = {
    FileCategory.VIDEO: frozenset(
        ["mp4", "mov", "avi", "mkv", "webm", "ogv", "flv", "wmv", "3gp", "mpg", "vob", "ts", "m2ts"]
    ),
    FileCategory.IMAGE: frozenset(
        ["png", "jpg", "jpeg", "webp", "gif", "avif", "bmp", "tiff", "ico", "tga", "svg"]
    ),
    FileCategory.AUDIO: frozenset(
        ["mp3", "wav", "m4a", "ogg", "flac", "aac", "wma", "aiff", "alac", "opus"]
    ),
}

FORMATS: dict[FileCategory, tuple[str, ...]] = {
    FileCategory.VIDEO: (
        "MP4", "GIF", "MKV", "AVI", "MOV", "WEBM", "OGV", "FLV", "WMV", "3GP", "MPG", "VOB", "TS", "M2TS",
    ),
    FileCategory.IMAGE: ("PNG", "JPG", "WEBP", "AVIF", "BMP", "TIFF", "ICO", "TGA", "SVG"),
    FileCategory.AUDIO: ("MP3", "WAV", "M4A", "OGG", "FLAC", "AAC", "WMA", "AIFF", "ALAC", "OPUS"),
}

_DEFAULT_FORMATS = {
    FileCategory.IMAGE: "PNG",
    FileCategory.AUDIO: "MP3",
}
FALLBACK_FORMAT = "MP4"


def classify(name: str) -> FileCategory:
    """按扩展名（不区分大小写）判断文件类别，无扩展名或未知扩展名返回 UNKNOWN。"""
    base = display_name(name)
    if "." not in base:
        return FileCategory.UNKNOWN
    ext = base.rsplit(".", 1)[1].lower()
    for category, extensions in _EXTENSIONS.items():
        if ext in extensions:
            return category
    return FileCategory.UNKNOWN


def allowed_formats(category: FileCategory) -> tuple[str, ...]:
    # 未知类别回退到视频格式集合
    return FORMATS.get(category, FORMATS[FileCategory.VIDEO])


def default_format(category: FileCategory) -> str:
    return _DEFAULT_FORMATS.get(category, FALLBACK_FORMAT)


def display_name(path: str) -> str:
    """取路径最后一段作为显示名，兼容 `/` 与 `\\` 两种分隔符。"""
    name = re.split(r"[/\\]", path)[-1]
    return name or "Unknown File"
