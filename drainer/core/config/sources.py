"""
多来源配置合并（drainer.core.config.sources）

按固定优先级把四个来源合并为一份 RawSettingSet：
1. 默认值（schema 声明）
2. 配置文件（YAML，严格模式：出现未声明的键即整体拒绝）
3. 命令行参数（总是覆盖配置文件）
4. 环境变量 <前缀>_<FLAG>（仅对允许覆盖的配置项生效，覆盖以上所有来源）

-V / -h 不产出配置，而是抛出 EarlyExit。
"""

from __future__ import annotations

import argparse
import logging
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import yaml  # type: ignore[import-untyped]

from drainer import __version__
from drainer.core.exceptions import (
    ConfigFileError,
    ConfigParseError,
    EarlyExit,
    UsageError,
)

from .schema import ENV_PREFIX, OptionSpec, build_schema, file_sections

logger = logging.getLogger(__name__)

# 来源标注
SOURCE_DEFAULT = "DEFAULT"
SOURCE_FILE = "FILE"
SOURCE_CLI = "CLI"
SOURCE_ENV = "ENV"


@dataclass
class RawSettingSet:
    """
    合并中的原始配置

    属性：
        values: 规范名称 → 已解析的值
        sources: 规范名称 → 来源（DEFAULT/FILE/CLI/ENV）
    """

    values: Dict[str, Any] = field(default_factory=dict)
    sources: Dict[str, str] = field(default_factory=dict)

    def set(self, name: str, value: Any, source: str) -> None:
        self.values[name] = value
        self.sources[name] = source

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    def section(self, prefix: str) -> Dict[str, Any]:
        """取出某个段下的直接子键，如 section("syncer.to") → {"host": ..., ...}"""
        head = prefix + "."
        return {
            name[len(head):]: value
            for name, value in self.values.items()
            if name.startswith(head) and "." not in name[len(head):]
        }


class _FlagParser(argparse.ArgumentParser):
    """参数错误不直接退出进程，转为 UsageError 交给调用方处理"""

    def error(self, message: str):  # type: ignore[override]
        raise UsageError(message, usage=self.format_help())


def build_flag_parser(schema: Mapping[str, OptionSpec]) -> argparse.ArgumentParser:
    parser = _FlagParser(
        prog="drainer",
        description="Usage of drainer:",
        add_help=False,
        allow_abbrev=False,
        argument_default=argparse.SUPPRESS,
    )
    for spec in schema.values():
        if spec.flag is None:
            continue
        if spec.is_bool:
            # 布尔参数只接受 --safe-mode 与 --safe-mode=false 两种写法，见 _explicit_bool_args
            parser.add_argument(
                *spec.option_strings,
                dest=spec.name,
                metavar="BOOL",
                help=spec.help,
            )
        else:
            parser.add_argument(
                *spec.option_strings,
                dest=spec.name,
                help=f"{spec.help} (default {spec.default!r})",
            )
    return parser


def _explicit_bool_args(
    schema: Mapping[str, OptionSpec], args: Sequence[str]
) -> list[str]:
    """裸写的布尔参数改写为 -flag=true，其后的参数不会被当作它的值"""
    bool_flags = {
        option
        for spec in schema.values()
        if spec.is_bool
        for option in spec.option_strings
    }
    return [f"{arg}=true" if arg in bool_flags else arg for arg in args]


def version_info() -> str:
    return f"Release Version: {__version__}\nPython Version: {platform.python_version()}"


def parse_flags(
    schema: Mapping[str, OptionSpec], args: Sequence[str]
) -> Dict[str, Any]:
    """
    解析命令行参数，只返回显式给出的配置项。

    异常：
        UsageError: 未知参数、多余的位置参数或非法的值
    """
    parser = build_flag_parser(schema)
    namespace, extras = parser.parse_known_args(_explicit_bool_args(schema, args))
    if extras:
        raise UsageError(
            f"'{extras[0]}' is not a valid flag",
            usage=parser.format_help(),
            context={"args": list(extras)},
        )

    parsed: Dict[str, Any] = {}
    for name, raw in vars(namespace).items():
        spec = schema[name]
        try:
            parsed[name] = spec.parser(raw)
        except (TypeError, ValueError) as e:
            raise UsageError(
                f"invalid value {raw!r} for flag -{spec.flag}",
                usage=parser.format_help(),
                context={"flag": spec.flag, "value": raw},
                cause=e,
            ) from e

    if parsed.get("help"):
        raise EarlyExit(parser.format_help())
    if parsed.get("version"):
        raise EarlyExit(version_info())
    if "log-rotate" in parsed:
        logger.warning(
            "参数 -log-rotate 已废弃，将被忽略",
            extra={"event": "config.flag.deprecated", "extra": {"flag": "log-rotate"}},
        )
    return parsed


def decode_config_file(
    path: Path, schema: Mapping[str, OptionSpec]
) -> Dict[str, Any]:
    """
    严格模式解码配置文件。

    - 顶层必须是映射；syncer / syncer.to / security 等段必须是映射
    - 任意未在 schema 中声明的键都会导致整份文件被拒绝，错误中列出全部未知键

    返回：
        Dict: 规范名称 → 已解析的值（仅包含文件中出现的配置项）
    """
    if not path.is_file():
        raise ConfigFileError(
            f"配置文件不存在: {path}", context={"file_path": str(path)}
        )
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigFileError(
            f"配置文件不是合法的 YAML: {path}",
            context={"file_path": str(path)},
            cause=e,
        ) from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigFileError(
            f"配置文件顶层必须是映射: {path}", context={"file_path": str(path)}
        )

    by_key = {spec.file_key: spec for spec in schema.values() if spec.file_key}
    sections = file_sections(schema)
    found: Dict[str, Any] = {}
    unknown: list[str] = []

    def walk(mapping: Dict[Any, Any], prefix: str) -> None:
        for key, value in mapping.items():
            key_path = f"{prefix}{key}"
            if key_path in by_key:
                found[key_path] = value
            elif key_path in sections:
                if not isinstance(value, dict):
                    raise ConfigFileError(
                        f"配置段 [{key_path}] 必须是映射: {path}",
                        context={"file_path": str(path), "section": key_path},
                    )
                walk(value, key_path + ".")
            else:
                unknown.append(key_path)

    walk(data, "")
    if unknown:
        raise ConfigFileError(
            f"配置文件 {path} 包含未声明的配置项: {', '.join(sorted(unknown))}",
            context={"file_path": str(path), "unknown_keys": sorted(unknown)},
        )

    values: Dict[str, Any] = {}
    for key_path, raw in found.items():
        spec = by_key[key_path]
        # 字符串配置项只接受 YAML 字符串：未加引号的 0123 / 1.10 会被读成数字并改写
        if spec.is_string and raw is not None and not isinstance(raw, str):
            raise ConfigParseError(
                f"配置项 {key_path} 必须是字符串，实际为 {type(raw).__name__}: {raw!r}（请加引号）",
                context={"file_path": str(path), "field": key_path, "value": raw},
            )
        try:
            values[spec.name] = spec.parser(raw)
        except (TypeError, ValueError) as e:
            raise ConfigParseError(
                f"配置项 {key_path} 的值非法: {raw!r}",
                context={"file_path": str(path), "field": key_path, "value": raw},
                cause=e,
            ) from e
    logger.info(
        f"成功加载配置文件: {path}",
        extra={
            "event": "config.file.loaded",
            "extra": {"file_path": str(path), "keys": len(values)},
        },
    )
    return values


def env_overrides(
    schema: Mapping[str, OptionSpec],
    prefix: str,
    environ: Mapping[str, str],
) -> Dict[str, Any]:
    """读取允许覆盖的配置项对应的环境变量；空值视为未设置"""
    values: Dict[str, Any] = {}
    for spec in schema.values():
        env_key = spec.env_key(prefix)
        if env_key is None:
            continue
        raw = environ.get(env_key)
        if not raw:
            continue
        try:
            values[spec.name] = spec.parser(raw)
        except (TypeError, ValueError) as e:
            raise ConfigParseError(
                f"环境变量 {env_key} 的值非法: {raw!r}",
                context={"env": env_key, "field": spec.name, "value": raw},
                cause=e,
            ) from e
    return values


def resolve_settings(
    cli_args: Sequence[str],
    config_file: Optional[str | Path] = None,
    env_prefix: str = ENV_PREFIX,
    environ: Optional[Mapping[str, str]] = None,
    schema: Optional[Mapping[str, OptionSpec]] = None,
) -> RawSettingSet:
    """
    合并默认值 → 配置文件 → 命令行 → 环境变量。

    参数：
        cli_args: 命令行参数（不含程序名）
        config_file: 配置文件路径；为 None 时使用命令行中的 -config
        env_prefix: 环境变量前缀
        environ: 环境变量映射，默认 os.environ
        schema: 配置项声明，默认 build_schema()

    返回：
        RawSettingSet: 合并结果与来源标注

    异常：
        EarlyExit: 请求了 -V 或 -h
        UsageError: 命令行参数错误
        ConfigFileError / ConfigParseError: 配置文件或环境变量解析失败
    """
    schema = schema if schema is not None else build_schema()
    environ = environ if environ is not None else os.environ

    raw = RawSettingSet()
    for spec in schema.values():
        raw.set(spec.name, spec.default, SOURCE_DEFAULT)

    flags = parse_flags(schema, cli_args)

    path = config_file if config_file is not None else flags.get("config", "")
    if path:
        for name, value in decode_config_file(Path(path), schema).items():
            raw.set(name, value, SOURCE_FILE)

    for name, value in flags.items():
        raw.set(name, value, SOURCE_CLI)

    for name, value in env_overrides(schema, env_prefix, environ).items():
        raw.set(name, value, SOURCE_ENV)

    return raw
