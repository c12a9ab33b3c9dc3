"""Transmute 的集中配置常量。

没有配置文件，也不持久化任何状态；运行期唯一的外部输入是环境变量
`FFMPEG_BIN_DIR`（见 `utils/ffmpeg.py`）与 `TRANSMUTE_LOG_LEVEL`（见 `logging_setup.py`）。
"""

APP_NAME = "Transmute"
APP_VERSION = "0.1.0"

# --- 界面 ---
THEME = "darkly"
WINDOW_GEOMETRY = "720x560"
UI_POLL_INTERVAL_MS = 100  # 视图轮询控制器事件队列的间隔
MESSAGE_ROTATE_MS = 2000  # 处理中提示语的切换间隔

# --- 模拟进度 ---
PROGRESS_TICK_SECONDS = 0.2
PROGRESS_MAX_STEP = 5.0  # 每次递增的随机上限
PROGRESS_CEILING = 90.0  # 转换结束前进度不会超过该值

# --- 完成节奏 ---
INSTANT_FINISH_THRESHOLD = 3.0  # 秒；耗时低于该值时直接进入完成状态
FINISH_PACING_DELAY = 0.5  # 秒；否则先展示 100% 再切换

# --- 导出 ---
EXPORT_PREFIX = "converted_"

# --- 日志 ---
LOG_LEVEL_ENV = "TRANSMUTE_LOG_LEVEL"
LOG_FILE_MAX_BYTES = 1_000_000
LOG_FILE_BACKUPS = 3
