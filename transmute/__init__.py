"""Transmute 包：批量媒体格式转换。

采用 MVC 架构：模型（model）、视图（view）、控制器（controller），
核心逻辑位于 classifier / session / orchestrator / export。
"""

__all__ = [
    "classifier",
    "model",
    "session",
    "orchestrator",
    "export",
    "view",
    "controller",
]
