import logging
from pathlib import Path

import pytest
import yaml

from drainer.adapters.logging.init import JsonFormatter, TextFormatter


@pytest.fixture(autouse=True)
def _restore_root_logging():
    # init_logging 会替换根日志 handler，测试结束后移除并还原级别
    root = logging.getLogger()
    level = root.level
    yield
    for h in list(root.handlers):
        if isinstance(h.formatter, (JsonFormatter, TextFormatter)):
            root.removeHandler(h)
            h.close()
    root.setLevel(level)


@pytest.fixture
def write_config(tmp_path: Path):
    """把字典写成 YAML 配置文件并返回路径"""

    def _write(data, name: str = "drainer.yaml") -> Path:
        p = tmp_path / name
        p.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
        return p

    return _write
