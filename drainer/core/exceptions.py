"""
统一异常定义和错误处理机制（drainer.core.exceptions）

本模块定义了配置解析引擎使用的标准异常类型和错误处理装饰器，确保：
- 异常信息结构化和标准化
- 致命错误与"提前退出"信号明确区分
- 日志记录的一致性

错误分类：
1. UsageError：命令行参数错误（退出码 2，附带用法说明）
2. ConfigParseError / ConfigFileError：配置值或配置文件解析失败
3. SecurityConfigError：TLS 上下文构建失败
4. DiscoveryError：通过发现服务解析 Kafka 地址失败
5. ConfigValidationError：校验失败（不支持的压缩算法、非法地址等）
6. EarlyExit：-V / -h 请求，属于正常终止，不是错误

使用方式：
1. 业务异常继承对应的基础异常类
2. 使用 @error_handler 装饰器包装关键函数
3. 在边界层（CLI）进行统一异常捕获并映射为退出码
"""

from __future__ import annotations

import logging
import time
from functools import wraps
from typing import Any, Callable, Dict, Optional, TypeVar

# 类型变量定义
F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger(__name__)

# 退出码
EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2


class BaseAppException(Exception):
    """
    应用程序基础异常类

    所有业务异常都应该继承此类，提供：
    - 结构化的错误信息
    - 错误代码支持
    - 上下文信息记录
    """

    exit_code: int = EXIT_FATAL

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.cause = cause
        self.timestamp = time.time()

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """将异常信息转换为字典格式，便于日志记录"""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(BaseAppException):
    """配置相关错误"""

    pass


class UsageError(ConfigurationError):
    """命令行用法错误：未知参数、多余的位置参数、非法的参数值"""

    exit_code = EXIT_USAGE

    def __init__(self, message: str, usage: str = "", **kwargs: Any):
        super().__init__(message, **kwargs)
        self.usage = usage


class ConfigParseError(ConfigurationError):
    """配置值解析错误（类型不符、格式不合法）"""

    pass


class ConfigFileError(ConfigParseError):
    """配置文件错误：不存在、YAML 非法、包含未声明的配置项"""

    pass


class SecurityConfigError(ConfigurationError):
    """TLS 配置错误"""

    pass


class DiscoveryError(ConfigurationError):
    """发现服务查询失败"""

    pass


class ConfigValidationError(ConfigurationError):
    """配置校验失败，result 保存完整的校验结果"""

    def __init__(self, message: str, result: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.result = result


class EarlyExit(Exception):
    """
    提前退出信号

    用户请求了版本信息（-V）或帮助（-h），引擎不会产出配置。
    与错误终止区分：exit_code 为 0，output 为需要打印的内容。
    """

    def __init__(self, output: str, exit_code: int = EXIT_OK):
        super().__init__(output)
        self.output = output
        self.exit_code = exit_code


def error_handler(
    logger_name: Optional[str] = None,
    log_level: int = logging.ERROR,
    reraise: bool = True,
    context_fields: Optional[list[str]] = None,
) -> Callable[[F], F]:
    """
    统一错误处理装饰器

    功能：
    - 自动记录异常信息到日志
    - 提供结构化的上下文信息
    - EarlyExit 直接透传，不记录为错误

    参数：
        logger_name: 自定义日志记录器名称，默认使用被装饰函数的模块名
        log_level: 日志级别，默认为 ERROR
        reraise: 是否重新抛出异常，默认为 True
        context_fields: 从函数参数中提取的上下文字段列表
    """

    def decorator(func: F) -> F:
        func_logger = logging.getLogger(logger_name or func.__module__)

        @wraps(func)
        def wrapper(*args, **kwargs):
            context: Dict[str, Any] = {
                "function": func.__name__,
                "module": func.__module__,
            }

            if context_fields:
                import inspect

                sig = inspect.signature(func)
                bound_args = sig.bind_partial(*args, **kwargs)
                bound_args.apply_defaults()

                for field in context_fields:
                    if field in bound_args.arguments:
                        context[field] = bound_args.arguments[field]

            try:
                return func(*args, **kwargs)
            except EarlyExit:
                raise
            except BaseAppException as e:
                context.update(e.context)
                func_logger.log(
                    log_level,
                    f"应用异常: {e}",
                    extra={
                        "event": "app.error",
                        "extra": {**context, **e.to_dict()},
                    },
                )
                if reraise:
                    raise
                return None

        return wrapper  # type: ignore

    return decorator
