"""
配置项声明（drainer.core.config.schema）

集中声明 drainer 可识别的全部配置项：名称、默认值、解析器、命令行参数名、
配置文件键以及是否允许环境变量覆盖。声明与任何一次解析结果无关，
build_schema() 每次返回一份新的映射，合并器只按此映射工作。

配置项来源：
- flag：命令行参数名（-name / --name），同时决定环境变量名
- file_key：配置文件中的键路径（点号分隔，如 syncer.to.host）
- env：是否允许 <前缀>_<FLAG> 环境变量覆盖（仅对有 flag 的配置项有效）
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from .models import TableName

DEFAULT_LISTEN_PORT = 8249
DEFAULT_LISTEN_ADDR = f"0.0.0.0:{DEFAULT_LISTEN_PORT}"
DEFAULT_DATA_DIR = "data.drainer"
DEFAULT_DETECT_INTERVAL = 10
DEFAULT_ETCD_URLS = "http://127.0.0.1:2379"
# 连接或请求 etcd 的超时（秒）
DEFAULT_ETCD_TIMEOUT = 5.0
DEFAULT_SYNCED_CHECK_TIME = 5  # 分钟
DEFAULT_BINLOG_ITEM_COUNT = 16 << 12
DEFAULT_IGNORE_SCHEMAS = "INFORMATION_SCHEMA,PERFORMANCE_SCHEMA,mysql"

ENV_PREFIX = "BINLOG_SERVER"

_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}


# ================================
# 解析器：同时接受字符串（命令行/环境变量）和 YAML 原生值
# ================================


def parse_str(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        raise TypeError(f"期望字符串，实际为 {value!r}")
    if isinstance(value, (str, int, float)):
        return str(value)
    raise TypeError(f"期望字符串，实际为 {type(value).__name__}")


def parse_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return parse_str(value)


def parse_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError(f"期望整数，实际为 {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"期望整数，实际为 {type(value).__name__}")


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
    raise ValueError(f"无法解析为布尔值: {value!r}")


def parse_name_list(value: Any) -> Tuple[str, ...]:
    """逗号分隔字符串或字符串列表 → 去空白后的名称元组"""
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [parse_str(v) for v in value]
    else:
        raise TypeError(f"期望字符串或列表，实际为 {type(value).__name__}")
    return tuple(item.strip() for item in items if item.strip())


def parse_int_list(value: Any) -> Tuple[int, ...]:
    if not isinstance(value, (list, tuple)):
        raise TypeError(f"期望整数列表，实际为 {type(value).__name__}")
    return tuple(parse_int(v) for v in value)


def parse_table_list(value: Any) -> Tuple[TableName, ...]:
    """[{db-name: x, tbl-name: y}, ...] → TableName 元组；条目中不允许出现其他键"""
    if not isinstance(value, (list, tuple)):
        raise TypeError(f"期望表列表，实际为 {type(value).__name__}")
    tables = []
    for item in value:
        if not isinstance(item, dict):
            raise TypeError(f"表条目必须是映射，实际为 {item!r}")
        unknown = sorted(str(k) for k in item if k not in ("db-name", "tbl-name"))
        if unknown:
            raise ValueError(f"表条目包含未声明的键: {', '.join(unknown)}")
        tables.append(
            TableName(
                schema=parse_str(item.get("db-name", "")),
                table=parse_str(item.get("tbl-name", "")),
            )
        )
    return tuple(tables)


@dataclass(frozen=True)
class OptionSpec:
    """
    单个配置项声明

    属性：
        name: 规范名称（有配置文件键时等于 file_key）
        default: 默认值
        parser: 值解析器
        help: 命令行帮助
        flag: 命令行参数名，None 表示不可由命令行设置
        file_key: 配置文件键路径，None 表示不可由配置文件设置
        env: 是否允许环境变量覆盖
        aliases: 额外的命令行参数名
    """

    name: str
    default: Any
    parser: Callable[[Any], Any]
    help: str = ""
    flag: Optional[str] = None
    file_key: Optional[str] = None
    env: bool = True
    aliases: Tuple[str, ...] = ()

    @property
    def is_bool(self) -> bool:
        return self.parser is parse_bool

    @property
    def is_string(self) -> bool:
        return self.parser in (parse_str, parse_optional_str)

    @property
    def option_strings(self) -> Tuple[str, ...]:
        """命令行写法：单字母仅 -X，其余 -name 与 --name 均可"""
        names = []
        for flag in (self.flag, *self.aliases):
            if flag is None:
                continue
            if len(flag) == 1:
                names.append(f"-{flag}")
            else:
                names.extend([f"--{flag}", f"-{flag}"])
        return tuple(names)

    def env_key(self, prefix: str) -> Optional[str]:
        if not self.env or self.flag is None:
            return None
        return f"{prefix}_{self.flag.upper().replace('-', '_')}"


def _opt(
    name: str,
    default: Any,
    parser: Callable[[Any], Any],
    help: str = "",
    *,
    flag: Optional[str] = None,
    file: bool = True,
    env: bool = True,
    aliases: Tuple[str, ...] = (),
) -> OptionSpec:
    return OptionSpec(
        name=name,
        default=default,
        parser=parser,
        help=help,
        flag=flag,
        file_key=name if file else None,
        env=env and flag is not None,
        aliases=aliases,
    )


def _declarations() -> Tuple[OptionSpec, ...]:
    return (
        # 顶层
        _opt("node-id", "", parse_str, "drainer 节点 ID；未指定时由主机名和监听端口生成", flag="node-id"),
        _opt("addr", DEFAULT_LISTEN_ADDR, parse_str, "监听地址（host:port）", flag="addr"),
        _opt("advertise-addr", "", parse_str, "对外公布的地址（host:port），默认同 -addr", flag="advertise-addr"),
        _opt("data-dir", DEFAULT_DATA_DIR, parse_str, "drainer 数据目录", flag="data-dir"),
        _opt("detect-interval", DEFAULT_DETECT_INTERVAL, parse_int, "探测 pump 状态的间隔（秒）", flag="detect-interval"),
        _opt("pd-urls", DEFAULT_ETCD_URLS, parse_str, "逗号分隔的 PD 地址列表", flag="pd-urls"),
        _opt("log-level", "info", parse_str, "日志级别：debug, info, warn, error, fatal", flag="L"),
        _opt("log-file", "", parse_str, "日志文件路径", flag="log-file"),
        _opt("metrics-addr", "", parse_str, "prometheus pushgateway 地址，留空关闭推送", flag="metrics-addr"),
        _opt("metrics-interval", 15, parse_int, "prometheus 推送间隔（秒），0 关闭推送", flag="metrics-interval"),
        _opt("initial-commit-ts", 0, parse_int, "无 checkpoint 时用于初始化的 commit ts", flag="initial-commit-ts"),
        _opt("compressor", "", parse_str, "pump 与 drainer 之间的负载压缩算法，目前仅支持 gzip", flag="compressor"),
        _opt("synced-check-time", DEFAULT_SYNCED_CHECK_TIME, parse_int, "超过该分钟数未检测到新 binlog 即认为已同步完成", flag="synced-check-time"),
        _opt("cache-binlog-count", DEFAULT_BINLOG_ITEM_COUNT, parse_int, "缓存中 binlog 的大致数量，用于限制缓存大小", flag="cache-binlog-count"),
        # 仅命令行
        _opt("config", "", parse_str, "配置文件路径", flag="config", file=False, env=False),
        _opt("version", False, parse_bool, "打印版本信息并退出", flag="V", file=False, env=False),
        _opt("help", False, parse_bool, "打印帮助并退出", flag="h", file=False, env=False, aliases=("help",)),
        _opt("log-rotate", "", parse_str, "DEPRECATED", flag="log-rotate", file=False, env=False),
        # syncer 段
        _opt("syncer.txn-batch", 20, parse_int, "每个事务批次中的 binlog 数", flag="txn-batch"),
        _opt("syncer.ignore-schemas", parse_name_list(DEFAULT_IGNORE_SCHEMAS), parse_name_list, "不同步的库", flag="ignore-schemas"),
        _opt("syncer.worker-count", 16, parse_int, "并发 worker 数", flag="c"),
        _opt("syncer.db-type", "mysql", parse_str, "下游类型：mysql, tidb, file, kafka", flag="dest-db-type"),
        _opt("syncer.disable-dispatch", False, parse_bool, "禁止拆分同一 binlog 中的 SQL；开启后 worker-count 与 txn-batch 无效", flag="disable-dispatch"),
        _opt("syncer.safe-mode", False, parse_bool, "开启 safe mode 使同步可重入", flag="safe-mode"),
        _opt("syncer.disable-detect", False, parse_bool, "关闭因果检测", flag="disable-detect"),
        # syncer 段，仅配置文件
        _opt("syncer.sql-mode", None, parse_optional_str),
        _opt("syncer.ignore-txn-commit-ts", (), parse_int_list),
        _opt("syncer.ignore-table", (), parse_table_list),
        _opt("syncer.replicate-do-table", (), parse_table_list),
        _opt("syncer.replicate-do-db", (), parse_name_list),
        # syncer.to 段
        _opt("syncer.to.host", "", parse_str),
        _opt("syncer.to.user", "", parse_str),
        _opt("syncer.to.password", "", parse_str),
        _opt("syncer.to.port", 0, parse_int),
        _opt("syncer.to.dir", "", parse_str),
        _opt("syncer.to.zookeeper-addrs", "", parse_str),
        _opt("syncer.to.kafka-addrs", "", parse_str),
        _opt("syncer.to.kafka-version", "", parse_str),
        _opt("syncer.to.kafka-max-messages", 0, parse_int),
        _opt("syncer.to.topic-name", "", parse_str),
        # security 段
        _opt("security.ssl-ca", "", parse_str),
        _opt("security.ssl-cert", "", parse_str),
        _opt("security.ssl-key", "", parse_str),
    )


def build_schema() -> Dict[str, OptionSpec]:
    """返回 规范名称 → OptionSpec 的新映射（保持声明顺序）"""
    return {spec.name: spec for spec in _declarations()}


def file_sections(schema: Dict[str, OptionSpec]) -> set[str]:
    """配置文件中合法的段路径，如 {"syncer", "syncer.to", "security"}"""
    sections = set()
    for spec in schema.values():
        if not spec.file_key:
            continue
        parts = spec.file_key.split(".")[:-1]
        for i in range(1, len(parts) + 1):
            sections.add(".".join(parts[:i]))
    return sections
