"""drainer 配置解析与校验引擎"""

__version__ = "0.1.0"
