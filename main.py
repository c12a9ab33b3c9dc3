from __future__ import annotations

import logging

from transmute.controller import AppController
from transmute.logging_setup import setup_logging
from transmute.view import AppView

logger = logging.getLogger("transmute.main")


def main() -> None:
    """应用入口：配置日志、构建 MVC 并启动主循环。"""
    log_file = setup_logging()
    if log_file:
        logger.info("日志文件: %s", log_file)
    view = AppView()
    controller = AppController(view=view)
    view.bind_controller(controller)
    view.start_ui_update_loop()
    view.run()


if __name__ == "__main__":
    try:
        main()
    except Exception:  # noqa: BLE001 - 顶层保护，记录异常
        logger.exception("程序异常退出")
        raise
