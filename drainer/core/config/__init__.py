"""
配置包（drainer.core.config）

对外入口：
- load_config / load_config_with_sources：解析并校验完整配置
- render_config：诊断输出
- ResolvedConfig / SyncPolicy / SqlTarget / BrokerTarget / FileTarget：配置模型
"""

from .loader import config_to_dict, load_config, load_config_with_sources, render_config
from .models import (
    BrokerTarget,
    FileTarget,
    ResolvedConfig,
    SecurityConfig,
    SqlTarget,
    SyncPolicy,
    TableName,
)

__all__ = [
    "BrokerTarget",
    "FileTarget",
    "ResolvedConfig",
    "SecurityConfig",
    "SqlTarget",
    "SyncPolicy",
    "TableName",
    "config_to_dict",
    "load_config",
    "load_config_with_sources",
    "render_config",
]
