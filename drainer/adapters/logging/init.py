from __future__ import annotations

"""
日志适配器（adapters.logging）：统一的结构化日志输出
- JsonFormatter/TextFormatter：控制输出格式（文件默认 JSON，控制台默认文本）
- init_logging(level, log_file)：按已解析配置中的 log-level / log-file 初始化根日志

设计要点：
- 事件名与字段通过 extra={"event": ..., "extra": {...}} 传入
- 日志级别沿用 drainer 的写法：debug, info, warn, error, fatal
"""


import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict

# drainer 日志级别 → logging 级别
LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


def _now_str(ts_fmt: str | None) -> str:
    if ts_fmt:
        try:
            return datetime.now(UTC).strftime(ts_fmt)
        except ValueError:
            pass
    return datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


class JsonFormatter(logging.Formatter):
    """JSON 格式化器：用于结构化落盘与控制台回显。
    - 支持自定义时间戳格式与消息最大长度（截断）
    """

    def __init__(
        self,
        timestamp_format: str | None = None,
        max_message_length: int | None = None,
    ) -> None:
        super().__init__()
        self.ts_fmt = timestamp_format
        self.max_len = max(0, int((max_message_length or 0)))

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self.max_len and len(msg) > self.max_len:
            msg = msg[: self.max_len] + "…"
        payload: Dict[str, Any] = {
            "timestamp": _now_str(self.ts_fmt),
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", None),
            "message": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(
            payload, ensure_ascii=False, separators=(",", ":"), default=str
        )


class TextFormatter(logging.Formatter):
    def __init__(
        self, timestamp_format: str | None = None, max_message_length: int | None = None
    ) -> None:
        super().__init__()
        self.ts_fmt = timestamp_format
        self.max_len = max(0, int((max_message_length or 0)))

    def format(self, record: logging.LogRecord) -> str:
        parts = [record.levelname, f"ts={_now_str(self.ts_fmt)}", f"logger={record.name}"]
        event = getattr(record, "event", None)
        if event:
            parts.append(f"event={event}")
        msg = record.getMessage()
        if self.max_len and len(msg) > self.max_len:
            msg = msg[: self.max_len] + "…"
        if msg:
            parts.append(f"msg={msg}")
        return " ".join(parts)


def resolve_level(level: str) -> int:
    """drainer 日志级别名 → logging 级别；未知名称按 INFO 处理"""
    return LEVELS.get((level or "info").strip().lower(), logging.INFO)


def init_logging(
    level: str = "info",
    log_file: str | None = None,
    *,
    fmt: str = "json",
    quiet: bool = False,
) -> None:
    """
    初始化根日志。

    参数：
        level: drainer 日志级别名
        log_file: 日志文件路径，留空只输出到控制台
        fmt: 文件日志格式 json|text
        quiet: 安静模式（控制台仅 WARNING 及以上）
    """
    root = logging.getLogger()
    root_level = resolve_level(level)
    root.setLevel(root_level)
    # 清理旧 handler，避免重复添加
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler()
    console.setLevel(logging.WARNING if quiet else root_level)
    console.setFormatter(TextFormatter())
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(root_level)
        file_handler.setFormatter(
            JsonFormatter() if fmt.lower() == "json" else TextFormatter()
        )
        root.addHandler(file_handler)
