from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, List, Optional

import tkinter as tk
from tkinter import ttk, filedialog

from . import config
from .session import Session, SessionState

if TYPE_CHECKING:
    from .controller import AppController

try:
    import ttkbootstrap as tb
except Exception:  # noqa: BLE001 - 允许在无 ttkbootstrap 时回退到 ttk
    tb = None  # type: ignore

try:
    from tkinterdnd2 import DND_FILES, TkinterDnD
except Exception:  # noqa: BLE001 - 若无拖拽库，使用普通 Tk
    DND_FILES = None  # type: ignore
    TkinterDnD = None  # type: ignore

logger = logging.getLogger(__name__)

MESSAGES = [
    "Dividing by zero (just kidding)...",
    "Convincing the bits to cooperate...",
    "Spinning up the flux capacitor...",
    "Asking AI for permission...",
    "Reticulating splines...",
    "Downloading more RAM...",
    "Calculating the meaning of life...",
    "Brewing virtual coffee...",
]


class AppView:
    """视图层：按会话状态切换页面、转发事件、渲染控制器给出的快照。"""

    def __init__(self, theme: str = config.THEME) -> None:
        if tb is not None:
            self.root = tb.Window(themename=theme)
            if TkinterDnD is not None:
                TkinterDnD._require(self.root)
        elif TkinterDnD is not None:
            self.root = TkinterDnD.Tk()
        else:
            self.root = tk.Tk()
        self.root.title(config.APP_NAME)
        self.root.geometry(config.WINDOW_GEOMETRY)

        self.controller: Optional["AppController"] = None

        self.format_var = tk.StringVar(value="")
        self.summary_var = tk.StringVar(value="")
        self.count_var = tk.StringVar(value="")
        self.progress_var = tk.DoubleVar(value=0.0)
        self.message_var = tk.StringVar(value=MESSAGES[0])
        self.ready_var = tk.StringVar(value="")
        self.error_var = tk.StringVar(value="")

        self._poll_interval_ms = config.UI_POLL_INTERVAL_MS
        self._message_job: Optional[str] = None
        self._message_index = 0
        self._shown_state: Optional[SessionState] = None

        self._build_widgets()

    # ========= 控制器绑定 =========
    def bind_controller(self, controller: "AppController") -> None:
        self.controller = controller
        self.render(controller.session)

    # ========= UI 构建 =========
    def _build_widgets(self) -> None:
        container = ttk.Frame(self.root)
        container.pack(side=tk.TOP, fill=tk.BOTH, expand=True, padx=24, pady=24)

        self.pages: dict[SessionState, ttk.Frame] = {
            SessionState.IDLE: self._build_idle(container),
            SessionState.SELECTING: self._build_selecting(container),
            SessionState.PROCESSING: self._build_processing(container),
            SessionState.FINISHED: self._build_finished(container),
        }
        for widget in (container, *self.pages.values()):
            self._register_drop_target(widget)

        # 错误提示条，可关闭
        self.error_bar = ttk.Frame(self.root)
        ttk.Label(self.error_bar, textvariable=self.error_var, foreground="#f87171").pack(
            side=tk.LEFT, fill=tk.X, expand=True, padx=10, pady=6
        )
        ttk.Button(self.error_bar, text="✕", width=3, command=self._dismiss_error).pack(side=tk.RIGHT, padx=6)

    def _build_idle(self, parent: ttk.Frame) -> ttk.Frame:
        page = ttk.Frame(parent)
        drop_target = ttk.Label(page, text="⇪", font=("", 48), anchor=tk.CENTER, cursor="hand2")
        drop_target.pack(pady=(60, 10))
        drop_target.bind("<Button-1>", lambda _e: self._choose_files())
        ttk.Label(page, text=config.APP_NAME, font=("", 24)).pack()
        ttk.Label(page, text="CLICK OR DROP").pack(pady=6)
        if not DND_FILES:
            ttk.Button(page, text="Choose files...", command=self._choose_files).pack(pady=12)
        return page

    def _build_selecting(self, parent: ttk.Frame) -> ttk.Frame:
        page = ttk.Frame(parent)
        ttk.Label(page, textvariable=self.count_var).pack(pady=(40, 4))
        ttk.Label(page, textvariable=self.summary_var, font=("", 14), wraplength=520).pack(pady=(0, 24))

        self.format_box = ttk.Combobox(page, textvariable=self.format_var, state="readonly", width=12)
        self.format_box.pack(pady=6)
        self.format_box.bind("<<ComboboxSelected>>", self._on_format_selected)

        ttk.Button(page, text="Convert", command=self._convert).pack(fill=tk.X, padx=160, pady=(18, 6))
        ttk.Button(page, text="Add files...", command=self._choose_files).pack(pady=4)
        ttk.Button(page, text="Cancel", command=self._reset).pack(pady=4)
        return page

    def _build_processing(self, parent: ttk.Frame) -> ttk.Frame:
        page = ttk.Frame(parent)
        ttk.Label(page, text="Transmuting...", font=("", 18)).pack(pady=(80, 20))
        ttk.Progressbar(page, variable=self.progress_var, maximum=100, mode="determinate").pack(
            fill=tk.X, padx=60
        )
        ttk.Label(page, textvariable=self.message_var).pack(pady=16)
        return page

    def _build_finished(self, parent: ttk.Frame) -> ttk.Frame:
        page = ttk.Frame(parent)
        ttk.Label(page, text="✓", font=("", 40), foreground="#22c55e").pack(pady=(50, 6))
        ttk.Label(page, text="Complete", font=("", 22)).pack()
        ttk.Label(page, textvariable=self.ready_var).pack(pady=(4, 24))
        self.download_button = ttk.Button(page, text="Download", command=self._export)
        self.download_button.pack(fill=tk.X, padx=160, pady=6)
        ttk.Button(page, text="Start New", command=self._reset).pack(fill=tk.X, padx=160, pady=6)
        return page

    def _register_drop_target(self, widget: tk.Misc) -> None:
        if not DND_FILES:
            return
        widget.drop_target_register(DND_FILES)
        widget.dnd_bind("<<Drop>>", self._on_drop_event)

    # ========= 公共接口（供控制器调用） =========
    def render(self, session: Session) -> None:
        if session.state is not self._shown_state:
            self._show_page(session.state)
        self.summary_var.set(session.summary)
        self.count_var.set(f"{len(session.files)} files" if len(session.files) > 1 else "")
        options = session.format_options
        self.format_box.configure(values=list(options))
        self.format_var.set(session.target_format)
        self.progress_var.set(session.progress)
        self.ready_var.set(f"{session.done_count} files ready to save.")
        self.download_button.configure(text="Save All Files" if len(session.files) > 1 else "Download")
        if session.error:
            self.error_var.set(session.error)
            self.error_bar.pack(side=tk.BOTTOM, fill=tk.X, padx=10, pady=10)
        else:
            self.error_bar.pack_forget()

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> None:
        self.root.after(delay_ms, callback)

    def ask_save_path(self, suggested_name: str, fmt: str) -> Optional[str]:
        ext = fmt.lower()
        try:
            path = filedialog.asksaveasfilename(
                title="Save converted file",
                initialfile=suggested_name,
                defaultextension=f".{ext}",
                filetypes=[(fmt, f"*.{ext}")],
            )
        except tk.TclError:
            logger.exception("保存对话框失败")
            return None
        return path or None

    def ask_directory(self) -> Optional[str]:
        try:
            directory = filedialog.askdirectory(title="Choose destination folder")
        except tk.TclError:
            logger.exception("目录对话框失败")
            return None
        return directory or None

    # ========= 事件回调 =========
    def _choose_files(self) -> None:
        try:
            paths = filedialog.askopenfilenames(title="Choose media files")
        except tk.TclError:
            # 选择失败只记录日志，不提示用户
            logger.exception("文件对话框失败")
            return
        if paths and self.controller:
            self.controller.handle_files_selected(list(paths))

    def _on_drop_event(self, event: Any) -> None:
        if not self.controller:
            return
        paths = self._parse_dnd_paths(event.data)
        if paths:
            self.controller.handle_file_drop(paths)

    def _on_format_selected(self, _event: Any) -> None:
        if self.controller:
            self.controller.select_format(self.format_var.get())

    def _convert(self) -> None:
        if self.controller:
            self.controller.request_convert()

    def _reset(self) -> None:
        if self.controller:
            self.controller.request_reset()

    def _export(self) -> None:
        if self.controller:
            self.controller.request_export()

    def _dismiss_error(self) -> None:
        if self.controller:
            self.controller.dismiss_error()

    # ========= 页面切换 =========
    def _show_page(self, state: SessionState) -> None:
        for page in self.pages.values():
            page.pack_forget()
        self.pages[state].pack(fill=tk.BOTH, expand=True)
        if state is SessionState.PROCESSING:
            self._start_messages()
        else:
            self._stop_messages()
        self._shown_state = state

    def _start_messages(self) -> None:
        self._stop_messages()
        self._message_index = 0
        self.message_var.set(MESSAGES[0])
        self._message_job = self.root.after(config.MESSAGE_ROTATE_MS, self._rotate_message)

    def _rotate_message(self) -> None:
        self._message_index = (self._message_index + 1) % len(MESSAGES)
        self.message_var.set(MESSAGES[self._message_index])
        self._message_job = self.root.after(config.MESSAGE_ROTATE_MS, self._rotate_message)

    def _stop_messages(self) -> None:
        if self._message_job is not None:
            self.root.after_cancel(self._message_job)
            self._message_job = None

    # ========= 轮询 UI 队列 =========
    def start_ui_update_loop(self) -> None:
        self.root.after(self._poll_interval_ms, self._poll_queue)

    def _poll_queue(self) -> None:
        if self.controller:
            self.controller.process_ui_queue()
        self.root.after(self._poll_interval_ms, self._poll_queue)

    # ========= 运行 =========
    def run(self) -> None:
        self.root.protocol("WM_DELETE_WINDOW", self._on_close)
        self.root.mainloop()

    def _on_close(self) -> None:
        self._stop_messages()
        if self.controller:
            self.controller.shutdown()
        self.root.destroy()

    # ========= 工具 =========
    @staticmethod
    def _parse_dnd_paths(dnd_data: str) -> List[str]:
        # 兼容带空格文件名，tk 的 DND 会使用大括号包裹
        parts: List[str] = []
        current: List[str] = []
        in_brace = False
        for ch in dnd_data:
            if ch == "{" and not in_brace:
                in_brace = True
                current = []
                continue
            if ch == "}" and in_brace:
                in_brace = False
                parts.append("".join(current))
                current = []
                continue
            if ch == " " and not in_brace:
                if current:
                    parts.append("".join(current))
                    current = []
                continue
            current.append(ch)
        if current:
            parts.append("".join(current))
        return [p for p in (x.strip() for x in parts) if p]
