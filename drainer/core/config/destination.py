"""
下游目标调整（drainer.core.config.destination）

根据下游类型补齐各目标的默认值，并推导相关的同步参数：
- pb 在所有规则之前统一为 file
- BrokerTarget：发现服务解析地址、协议版本、地址兜底、在途消息上限
- FileTarget：输出目录默认为数据目录
- SqlTarget：host/port/user/password 依次取 环境变量 → 固定默认值
- 未知类型不做任何调整（也不拒绝）；已知类型缺少目标时按类型补齐，目标形态与类型不一致时报错
之后统一执行 worker 数收敛与库表名小写化。

除 Kafka 发现服务查询外，本模块不做任何 I/O。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from functools import singledispatch
from typing import Mapping, Optional

from drainer.adapters.discovery.zookeeper import BrokerDiscovery, ZookeeperBrokerDiscovery
from drainer.core.exceptions import ConfigurationError

from .models import (
    SEQUENTIAL_KINDS,
    BrokerTarget,
    DestinationTarget,
    FileTarget,
    SqlTarget,
    SyncPolicy,
    build_target,
    normalize_kind,
)
from .schema import DEFAULT_DATA_DIR, DEFAULT_ETCD_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_KAFKA_ADDRS = "127.0.0.1:9092"
DEFAULT_KAFKA_VERSION = "0.8.2.0"
DEFAULT_KAFKA_MAX_MESSAGES = 1024

DEFAULT_MYSQL_HOST = "localhost"
DEFAULT_MYSQL_PORT = 3306
DEFAULT_MYSQL_USER = "root"

ENV_KAFKA_ADDRS = "KAFKA_ADDRS"
ENV_MYSQL_HOST = "MYSQL_HOST"
ENV_MYSQL_PORT = "MYSQL_PORT"
ENV_MYSQL_USER = "MYSQL_USER"
ENV_MYSQL_PASSWORD = "MYSQL_PSWD"


@dataclass(frozen=True)
class AdjustContext:
    """
    调整所需的外部输入

    属性：
        data_dir: 已解析的数据目录（文件下游的默认输出目录）
        environ: 环境变量映射
        discovery: Kafka broker 发现客户端
        discovery_timeout: 发现服务查询超时（秒）
    """

    data_dir: str = DEFAULT_DATA_DIR
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)
    discovery: Optional[BrokerDiscovery] = None
    discovery_timeout: float = DEFAULT_ETCD_TIMEOUT


@singledispatch
def adjust_target(target: DestinationTarget, ctx: AdjustContext) -> DestinationTarget:
    raise TypeError(f"未知的下游目标类型: {type(target).__name__}")


@adjust_target.register
def _(target: BrokerTarget, ctx: AdjustContext) -> BrokerTarget:
    addrs = target.addrs
    if target.zookeeper_addrs:
        discovery = ctx.discovery
        if discovery is None:
            discovery = ZookeeperBrokerDiscovery()
        addrs = discovery.kafka_urls(target.zookeeper_addrs, ctx.discovery_timeout)
        logger.info(
            "从 ZooKeeper 获取 Kafka 地址",
            extra={
                "event": "config.adjust.kafka_addrs",
                "extra": {"zookeeper_addrs": target.zookeeper_addrs, "kafka_urls": addrs},
            },
        )

    if not addrs:
        addrs = ctx.environ.get(ENV_KAFKA_ADDRS) or DEFAULT_KAFKA_ADDRS

    return replace(
        target,
        addrs=addrs,
        version=target.version or DEFAULT_KAFKA_VERSION,
        max_messages=(
            target.max_messages
            if target.max_messages > 0
            else DEFAULT_KAFKA_MAX_MESSAGES
        ),
    )


@adjust_target.register
def _(target: FileTarget, ctx: AdjustContext) -> FileTarget:
    if target.dir:
        return target
    logger.info(
        f"使用默认的下游文件目录: {ctx.data_dir}",
        extra={"event": "config.adjust.file_dir", "extra": {"directory": ctx.data_dir}},
    )
    return replace(target, dir=ctx.data_dir)


def _env_port(environ: Mapping[str, str]) -> int:
    try:
        return int(environ.get(ENV_MYSQL_PORT, ""))
    except ValueError:
        return 0


@adjust_target.register
def _(target: SqlTarget, ctx: AdjustContext) -> SqlTarget:
    env = ctx.environ
    return replace(
        target,
        host=target.host or env.get(ENV_MYSQL_HOST) or DEFAULT_MYSQL_HOST,
        port=target.port or _env_port(env) or DEFAULT_MYSQL_PORT,
        user=target.user or env.get(ENV_MYSQL_USER) or DEFAULT_MYSQL_USER,
        password=target.password or env.get(ENV_MYSQL_PASSWORD, ""),
    )


def collapse_worker_count(policy: SyncPolicy) -> SyncPolicy:
    """file/kafka 下游或禁用 dispatch 时只能单 worker 顺序执行"""
    if policy.kind in SEQUENTIAL_KINDS:
        return replace(policy, disable_dispatch=True, worker_count=1)
    if policy.disable_dispatch:
        return replace(policy, worker_count=1)
    return policy


def lower_names(policy: SyncPolicy) -> SyncPolicy:
    return replace(
        policy,
        do_tables=tuple(t.lower() for t in policy.do_tables),
        do_dbs=tuple(db.lower() for db in policy.do_dbs),
        ignore_tables=tuple(t.lower() for t in policy.ignore_tables),
        ignore_schemas=tuple(s.lower() for s in policy.ignore_schemas),
    )


def adjust_sync_policy(policy: SyncPolicy, ctx: AdjustContext) -> SyncPolicy:
    """
    按下游类型补齐默认值并推导同步参数。

    参数：
        policy: 合并后的同步策略
        ctx: 调整所需的外部输入

    返回：
        SyncPolicy: 调整后的新策略（入参不被修改）

    异常：
        ConfigurationError: 目标形态与下游类型不一致
        DiscoveryError: Kafka 发现服务查询失败
    """
    policy = replace(policy, kind=normalize_kind(policy.kind))
    expected = build_target(policy.kind, {})

    if expected is None:
        # 未知类型：保持原样，由下游消费方决定是否支持
        logger.warning(
            f"未知的下游类型 {policy.kind!r}，跳过目标默认值调整",
            extra={"event": "config.adjust.unknown_kind", "extra": {"kind": policy.kind}},
        )
    else:
        target = policy.target if policy.target is not None else expected
        if type(target) is not type(expected):
            raise ConfigurationError(
                f"下游类型 {policy.kind} 与目标 {type(target).__name__} 不匹配",
                context={"kind": policy.kind, "target": type(target).__name__},
            )
        policy = replace(policy, target=adjust_target(target, ctx))

    return lower_names(collapse_worker_count(policy))
