"""
配置数据模型（drainer.core.config.models）

本模块定义解析引擎产出的配置对象，所有对象均为 frozen dataclass，
一次构建、全程只读。包括：
- TableName：库表名对
- SqlTarget / BrokerTarget / FileTarget：下游目标（三选一）
- SyncPolicy：同步策略（syncer 段）
- SecurityConfig：TLS 证书路径
- ResolvedConfig：完整配置快照
"""

from __future__ import annotations

import ssl
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple, Union

from .sql_mode import SQLMode, parse_sql_mode

# 下游类型
KIND_MYSQL = "mysql"
KIND_TIDB = "tidb"
KIND_FILE = "file"
KIND_KAFKA = "kafka"
KIND_PB = "pb"  # 已废弃，等同 file

SQL_KINDS = (KIND_MYSQL, KIND_TIDB)
SEQUENTIAL_KINDS = (KIND_FILE, KIND_KAFKA)


def normalize_kind(kind: str) -> str:
    """pb 是 file 的旧名称，统一为 file。"""
    if kind == KIND_PB:
        return KIND_FILE
    return kind


@dataclass(frozen=True)
class TableName:
    """
    库表名

    属性：
        schema: 库名（配置文件键 db-name）
        table: 表名（配置文件键 tbl-name）
    """

    schema: str = ""
    table: str = ""

    def lower(self) -> "TableName":
        return TableName(self.schema.lower(), self.table.lower())

    def __str__(self) -> str:
        return f"{self.schema}.{self.table}"


@dataclass(frozen=True)
class SqlTarget:
    """MySQL/TiDB 下游"""

    host: str = ""
    port: int = 0
    user: str = ""
    password: str = ""


@dataclass(frozen=True)
class BrokerTarget:
    """
    Kafka 下游

    属性：
        addrs: broker 地址列表（逗号分隔）
        version: Kafka 协议版本
        max_messages: 最大在途消息数
        zookeeper_addrs: 发现服务地址，设置后从中解析 addrs
        topic_name: 目标 topic，留空由下游按集群名生成
    """

    addrs: str = ""
    version: str = ""
    max_messages: int = 0
    zookeeper_addrs: str = ""
    topic_name: str = ""


@dataclass(frozen=True)
class FileTarget:
    """文件下游"""

    dir: str = ""


DestinationTarget = Union[SqlTarget, BrokerTarget, FileTarget]

# syncer.to 段中各目标形态读取的键
TARGET_FILE_KEYS = {
    SqlTarget: {
        "host": "host",
        "port": "port",
        "user": "user",
        "password": "password",
    },
    BrokerTarget: {
        "addrs": "kafka-addrs",
        "version": "kafka-version",
        "max_messages": "kafka-max-messages",
        "zookeeper_addrs": "zookeeper-addrs",
        "topic_name": "topic-name",
    },
    FileTarget: {"dir": "dir"},
}


def build_target(kind: str, to: Mapping[str, Any]) -> Optional[DestinationTarget]:
    """
    根据下游类型从 syncer.to 段构建目标。

    只读取所选形态对应的键，其余键忽略；未知类型返回 None。
    """
    kind = normalize_kind(kind)
    if kind in SQL_KINDS:
        cls: type = SqlTarget
    elif kind == KIND_KAFKA:
        cls = BrokerTarget
    elif kind == KIND_FILE:
        cls = FileTarget
    else:
        return None
    keys = TARGET_FILE_KEYS[cls]
    return cls(**{attr: to[key] for attr, key in keys.items() if key in to})


@dataclass(frozen=True)
class SyncPolicy:
    """
    同步策略（syncer 段）

    属性：
        kind: 下游类型 mysql|tidb|file|kafka
        target: 下游目标，形态由 kind 决定；未知类型为 None
        txn_batch: 每个事务的 binlog 数
        worker_count: 并发 worker 数
        disable_dispatch: 禁止拆分同一 binlog 内的 SQL
        safe_mode: 可重入模式
        disable_causality: 关闭因果检测
        ignore_schemas: 忽略的库
        ignore_tables: 忽略的表
        do_tables: 只同步的表
        do_dbs: 只同步的库
        ignore_txn_commit_ts: 跳过的事务 commit ts
        sql_mode_str: 原始 sql-mode 字符串，None 表示未设置
    """

    kind: str = KIND_MYSQL
    target: Optional[DestinationTarget] = None
    txn_batch: int = 20
    worker_count: int = 16
    disable_dispatch: bool = False
    safe_mode: bool = False
    disable_causality: bool = False
    ignore_schemas: Tuple[str, ...] = ()
    ignore_tables: Tuple[TableName, ...] = ()
    do_tables: Tuple[TableName, ...] = ()
    do_dbs: Tuple[str, ...] = ()
    ignore_txn_commit_ts: Tuple[int, ...] = ()
    sql_mode_str: Optional[str] = None

    @property
    def sql_mode(self) -> SQLMode:
        """由 sql_mode_str 派生的位掩码；未设置时为 NONE。"""
        if self.sql_mode_str is None:
            return SQLMode.NONE
        return parse_sql_mode(self.sql_mode_str)


@dataclass(frozen=True)
class SecurityConfig:
    ssl_ca: str = ""
    ssl_cert: str = ""
    ssl_key: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.ssl_ca or self.ssl_cert or self.ssl_key)


@dataclass(frozen=True)
class ResolvedConfig:
    """
    drainer 完整配置快照

    由 load_config 构建，校验通过后不再修改，进程内按引用共享。
    tls 为派生字段，不参与比较、repr 和渲染。

    使用示例：
        cfg = load_config(sys.argv[1:])
        kind = cfg.syncer.kind
        workers = cfg.syncer.worker_count
    """

    log_level: str = "info"
    node_id: str = ""
    listen_addr: str = ""
    advertise_addr: str = ""
    data_dir: str = ""
    detect_interval: int = 10
    pd_urls: str = ""
    log_file: str = ""
    initial_commit_ts: int = 0
    syncer: SyncPolicy = SyncPolicy()
    security: SecurityConfig = SecurityConfig()
    synced_check_time: int = 5
    compressor: str = ""
    etcd_timeout: float = 5.0
    metrics_addr: str = ""
    metrics_interval: int = 15
    binlog_cache_item_count: int = 16 << 12
    tls: Optional[ssl.SSLContext] = field(default=None, compare=False, repr=False)

    @property
    def listen_url(self) -> str:
        return "http://" + self.listen_addr

    @property
    def advertise_url(self) -> str:
        return "http://" + self.advertise_addr
