"""
配置验证模块（drainer.core.config.validation）

按固定顺序检查合并后的配置，遇到第一个错误即停止：
1. 监听地址与公布地址必须是 host:port；host 无法被 pump 访问时仅告警
2. PD 地址列表至少包含一个合法 URL
3. 压缩算法必须在支持列表中
4. sql-mode 必须可以解析

下游可达性等领域检查由使用方负责，不在此处进行。
"""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple
from urllib.parse import urlsplit

from drainer.core.exceptions import ConfigValidationError

from .models import ResolvedConfig
from .sql_mode import InvalidSQLModeError, parse_sql_mode

logger = logging.getLogger(__name__)

SUPPORTED_COMPRESSORS = ("gzip",)
SUPPORTED_URL_SCHEMES = ("http", "https", "unix", "unixs")

_HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9_-]{1,63}(?<!-)$")


@dataclass
class ValidationError:
    """
    配置验证错误

    属性：
        field: 错误字段
        value: 错误值
        message: 错误消息
        severity: 错误严重程度 ("error" | "warning")
        cause: 原始异常
    """

    field: str
    value: Any
    message: str
    severity: str = "error"
    cause: Optional[BaseException] = None


@dataclass
class ValidationResult:
    """
    验证结果

    属性：
        is_valid: 是否验证通过
        errors: 错误列表
        warnings: 警告列表
    """

    is_valid: bool = True
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[ValidationError] = field(default_factory=list)

    def add_error(
        self, field: str, value: Any, message: str, cause: Optional[BaseException] = None
    ) -> None:
        """添加错误"""
        self.errors.append(ValidationError(field, value, message, "error", cause))
        self.is_valid = False

    def add_warning(self, field: str, value: Any, message: str) -> None:
        """添加警告"""
        self.warnings.append(ValidationError(field, value, message, "warning"))

    def has_issues(self) -> bool:
        """是否存在问题（错误或警告）"""
        return len(self.errors) > 0 or len(self.warnings) > 0


def split_host_port(addr: str) -> Tuple[str, int]:
    """
    拆分 host:port，IPv6 需要方括号，如 [::1]:8249。

    异常：
        ValueError: 缺少端口、端口非法或方括号不匹配
    """
    if addr.startswith("["):
        end = addr.find("]")
        if end < 0 or not addr[end + 1:].startswith(":"):
            raise ValueError(f"missing port in address {addr!r}")
        host, port_str = addr[1:end], addr[end + 2:]
    else:
        host, sep, port_str = addr.rpartition(":")
        if not sep:
            raise ValueError(f"missing port in address {addr!r}")
        if ":" in host:
            raise ValueError(f"too many colons in address {addr!r}")
    if not (port_str.isascii() and port_str.isdigit()) or int(port_str) > 65535:
        raise ValueError(f"invalid port {port_str!r} in address {addr!r}")
    return host, int(port_str)


def is_valid_host_syntax(host: str) -> bool:
    if host == "":
        return True
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        pass
    if len(host) > 253:
        return False
    return all(_HOSTNAME_LABEL.match(label) for label in host.rstrip(".").split("."))


def is_listenable_host(host: str) -> bool:
    """pump 能否通过该 host 访问 drainer：非空、且解析出至少一个非回环地址"""
    if not host:
        return False
    try:
        return not ipaddress.ip_address(host).is_loopback
    except ValueError:
        pass
    try:
        infos = socket.getaddrinfo(host, None)
    except OSError as e:
        logger.warning(f"解析主机名失败 {host}: {e}")
        return False
    for info in infos:
        addr = info[4][0]
        if not ipaddress.ip_address(addr.split("%", 1)[0]).is_loopback:
            return True
    return False


def _check_addr(result: ValidationResult, field_name: str, addr: str) -> None:
    try:
        host, _port = split_host_port(addr)
    except ValueError as e:
        result.add_error(field_name, addr, f"非法地址 {addr}: {e}", e)
        return
    if not is_valid_host_syntax(host):
        result.add_error(field_name, addr, f"非法主机名 {host!r}")
        return
    if not is_listenable_host(host):
        result.add_warning(
            field_name, addr, "pump 可能无法通过该地址访问 drainer"
        )


def parse_urls(value: str) -> List[str]:
    """
    解析逗号分隔的 URL 列表。

    异常：
        ValueError: 列表为空或存在非法 URL
    """
    urls = []
    for item in value.split(","):
        text = item.strip()
        if not text:
            continue
        parts = urlsplit(text)
        if parts.scheme not in SUPPORTED_URL_SCHEMES:
            raise ValueError(
                f"URL scheme must be one of {list(SUPPORTED_URL_SCHEMES)} (e.g. http://host:port): {text}"
            )
        if parts.scheme in ("http", "https"):
            split_host_port(parts.netloc)
        if parts.path:
            raise ValueError(f"URL must not contain a path: {text}")
        urls.append(text)
    if not urls:
        raise ValueError("no valid URLs given")
    return urls


def validate_config(cfg: ResolvedConfig) -> ValidationResult:
    """
    验证完整配置，遇到第一个错误即返回。

    参数：
        cfg: 调整后的配置

    返回：
        ValidationResult: 验证结果（警告不影响 is_valid）
    """
    result = ValidationResult()

    _check_addr(result, "addr", cfg.listen_addr)
    if not result.is_valid:
        return result
    _check_addr(result, "advertise-addr", cfg.advertise_addr)
    if not result.is_valid:
        return result

    try:
        parse_urls(cfg.pd_urls)
    except ValueError as e:
        result.add_error("pd-urls", cfg.pd_urls, f"解析 PD 地址失败: {e}", e)
        return result

    if cfg.compressor and cfg.compressor not in SUPPORTED_COMPRESSORS:
        result.add_error(
            "compressor",
            cfg.compressor,
            f"Invalid compressor: {cfg.compressor}, must be one of these: {list(SUPPORTED_COMPRESSORS)}",
        )
        return result

    if cfg.syncer.sql_mode_str is not None:
        try:
            parse_sql_mode(cfg.syncer.sql_mode_str)
        except InvalidSQLModeError as e:
            result.add_error(
                "syncer.sql-mode",
                cfg.syncer.sql_mode_str,
                "invalid config: `sql-mode` must be a valid SQL_MODE",
                e,
            )
            return result

    return result


def ensure_valid(cfg: ResolvedConfig) -> ValidationResult:
    """验证并记录结果；存在错误时抛出 ConfigValidationError"""
    result = validate_config(cfg)
    log_validation_result(result, logger)
    if not result.is_valid:
        first = result.errors[0]
        raise ConfigValidationError(
            f"配置验证失败 [{first.field}]: {first.message}",
            result=result,
            context={"field": first.field, "value": first.value},
            cause=first.cause,
        )
    return result


def log_validation_result(
    result: ValidationResult, logger: Optional[logging.Logger] = None
) -> None:
    """
    记录验证结果日志

    参数：
        result: 验证结果
        logger: 日志记录器，默认使用模块日志记录器
    """
    if logger is None:
        logger = globals()["logger"]

    if result.is_valid and not result.warnings:
        logger.info("配置验证通过")
        return

    for error in result.errors:
        logger.error(
            f"配置错误 [{error.field}]: {error.message}, 当前值: {error.value}"
        )

    for warning in result.warnings:
        logger.warning(
            f"配置警告 [{warning.field}]: {warning.message}, 当前值: {warning.value}",
            extra={
                "event": "config.validate.warning",
                "extra": {"field": warning.field, "value": warning.value},
            },
        )

    if not result.is_valid:
        logger.error(
            f"配置验证失败: {len(result.errors)} 个错误, {len(result.warnings)} 个警告"
        )
    else:
        logger.info(f"配置验证通过: {len(result.warnings)} 个警告")
