"""
配置加载模块（drainer.core.config.loader）

串联配置解析的完整流程，产出一份不可变的 ResolvedConfig：

    Option Schema → 多来源合并 → 构建配置 → TLS 上下文 → 下游目标调整 → 校验

核心功能：
- load_config：完整流程，任一步失败即整体失败，不存在"部分有效"的配置
- load_config_with_sources：同时返回每个配置项的来源（DEFAULT/FILE/CLI/ENV）
- render_config：诊断输出（缩进 JSON，结构与配置文件一致）

配置优先级：
1. ENV > CLI > 配置文件 > 默认值（ENV 仅对允许覆盖的配置项生效）
2. syncer.to / security / 库表过滤列表只能来自配置文件
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

from drainer.adapters.discovery.zookeeper import BrokerDiscovery
from drainer.adapters.security.tls import build_tls_context
from drainer.core.exceptions import error_handler

from .destination import AdjustContext, adjust_sync_policy
from .models import (
    BrokerTarget,
    FileTarget,
    ResolvedConfig,
    SecurityConfig,
    SqlTarget,
    SyncPolicy,
    TableName,
    build_target,
)
from .schema import (
    DEFAULT_DATA_DIR,
    DEFAULT_DETECT_INTERVAL,
    DEFAULT_ETCD_TIMEOUT,
    DEFAULT_LISTEN_ADDR,
    ENV_PREFIX,
)
from .sources import RawSettingSet, resolve_settings
from .validation import ensure_valid

# 模块日志记录器
logger = logging.getLogger(__name__)


def build_sync_policy(raw: RawSettingSet) -> SyncPolicy:
    kind = raw["syncer.db-type"]
    return SyncPolicy(
        kind=kind,
        target=build_target(kind, raw.section("syncer.to")),
        txn_batch=raw["syncer.txn-batch"],
        worker_count=raw["syncer.worker-count"],
        disable_dispatch=raw["syncer.disable-dispatch"],
        safe_mode=raw["syncer.safe-mode"],
        disable_causality=raw["syncer.disable-detect"],
        ignore_schemas=raw["syncer.ignore-schemas"],
        ignore_tables=raw["syncer.ignore-table"],
        do_tables=raw["syncer.replicate-do-table"],
        do_dbs=raw["syncer.replicate-do-db"],
        ignore_txn_commit_ts=raw["syncer.ignore-txn-commit-ts"],
        sql_mode_str=raw["syncer.sql-mode"],
    )


def build_config(raw: RawSettingSet) -> ResolvedConfig:
    """
    由合并结果构建配置，并补齐顶层默认值：
    - addr 为空 → 0.0.0.0:8249；advertise-addr 为空 → addr
    - data-dir 为空 → data.drainer；detect-interval <= 0 → 10
    """
    listen_addr = raw["addr"] or DEFAULT_LISTEN_ADDR
    detect_interval = raw["detect-interval"]
    return ResolvedConfig(
        log_level=raw["log-level"],
        node_id=raw["node-id"],
        listen_addr=listen_addr,
        advertise_addr=raw["advertise-addr"] or listen_addr,
        data_dir=raw["data-dir"] or DEFAULT_DATA_DIR,
        detect_interval=detect_interval if detect_interval > 0 else DEFAULT_DETECT_INTERVAL,
        pd_urls=raw["pd-urls"],
        log_file=raw["log-file"],
        initial_commit_ts=raw["initial-commit-ts"],
        syncer=build_sync_policy(raw),
        security=SecurityConfig(
            ssl_ca=raw["security.ssl-ca"],
            ssl_cert=raw["security.ssl-cert"],
            ssl_key=raw["security.ssl-key"],
        ),
        synced_check_time=raw["synced-check-time"],
        compressor=raw["compressor"],
        etcd_timeout=DEFAULT_ETCD_TIMEOUT,
        metrics_addr=raw["metrics-addr"],
        metrics_interval=raw["metrics-interval"],
        binlog_cache_item_count=raw["cache-binlog-count"],
    )


@error_handler(context_fields=["cli_args"])
def load_config_with_sources(
    cli_args: Sequence[str],
    *,
    environ: Optional[Mapping[str, str]] = None,
    env_prefix: str = ENV_PREFIX,
    discovery: Optional[BrokerDiscovery] = None,
    config_file: Optional[str | Path] = None,
    configure_logging: Optional[Callable[[str, str], None]] = None,
) -> Tuple[ResolvedConfig, Dict[str, str]]:
    """
    加载配置并返回配置来源信息。

    参数：
        cli_args: 命令行参数（不含程序名）
        environ: 环境变量映射，默认 os.environ
        env_prefix: 配置项环境变量前缀
        discovery: Kafka broker 发现客户端，默认使用 ZooKeeper
        config_file: 配置文件路径，默认取命令行 -config
        configure_logging: 合并完成后以 (log-level, log-file) 调用，
            使后续调整与校验阶段的日志按已解析的配置输出

    返回：
        Tuple[ResolvedConfig, Dict]: 配置对象和 规范名称 → 来源

    异常：
        EarlyExit: 请求了 -V / -h
        ConfigurationError 及其子类：任一步骤失败
    """
    raw = resolve_settings(
        cli_args, config_file=config_file, env_prefix=env_prefix, environ=environ
    )
    if configure_logging is not None:
        configure_logging(raw["log-level"], raw["log-file"])
    cfg = build_config(raw)

    cfg = replace(cfg, tls=build_tls_context(cfg.security))

    ctx = AdjustContext(
        data_dir=cfg.data_dir,
        discovery=discovery,
        discovery_timeout=cfg.etcd_timeout,
        environ=environ if environ is not None else os.environ,
    )
    cfg = replace(cfg, syncer=adjust_sync_policy(cfg.syncer, ctx))

    ensure_valid(cfg)

    logger.info(
        f"配置加载完成，下游类型: {cfg.syncer.kind}, worker 数: {cfg.syncer.worker_count}, "
        f"数据目录: {cfg.data_dir}",
        extra={
            "event": "config.loaded",
            "extra": {"kind": cfg.syncer.kind, "worker_count": cfg.syncer.worker_count},
        },
    )
    return cfg, dict(raw.sources)


def load_config(
    cli_args: Sequence[str],
    *,
    environ: Optional[Mapping[str, str]] = None,
    env_prefix: str = ENV_PREFIX,
    discovery: Optional[BrokerDiscovery] = None,
    config_file: Optional[str | Path] = None,
    configure_logging: Optional[Callable[[str, str], None]] = None,
) -> ResolvedConfig:
    """
    解析、调整并校验 drainer 配置。

    使用示例：
        cfg = load_config(sys.argv[1:])
        print(render_config(cfg))
    """
    cfg, _sources = load_config_with_sources(
        cli_args,
        environ=environ,
        env_prefix=env_prefix,
        discovery=discovery,
        config_file=config_file,
        configure_logging=configure_logging,
    )
    return cfg


# ================================
# 诊断输出
# ================================


def _tables(tables: Sequence[TableName]) -> list[Dict[str, str]]:
    return [{"db-name": t.schema, "tbl-name": t.table} for t in tables]


def _target_dict(policy: SyncPolicy) -> Dict[str, Any]:
    target = policy.target
    if isinstance(target, SqlTarget):
        return {
            "host": target.host,
            "port": target.port,
            "user": target.user,
            "password": target.password,
        }
    if isinstance(target, BrokerTarget):
        return {
            "kafka-addrs": target.addrs,
            "kafka-version": target.version,
            "kafka-max-messages": target.max_messages,
            "zookeeper-addrs": target.zookeeper_addrs,
            "topic-name": target.topic_name,
        }
    if isinstance(target, FileTarget):
        return {"dir": target.dir}
    return {}


def config_to_dict(cfg: ResolvedConfig) -> Dict[str, Any]:
    """
    按配置文件结构导出配置。

    不包含派生字段（TLS 上下文、sql-mode 位掩码）；
    导出结果作为配置文件重新解析，可以得到相同的 ResolvedConfig。
    """
    syncer = cfg.syncer
    syncer_dict: Dict[str, Any] = {
        "sql-mode": syncer.sql_mode_str,
        "ignore-txn-commit-ts": list(syncer.ignore_txn_commit_ts),
        "ignore-schemas": ",".join(syncer.ignore_schemas),
        "ignore-table": _tables(syncer.ignore_tables),
        "txn-batch": syncer.txn_batch,
        "worker-count": syncer.worker_count,
        "to": _target_dict(syncer),
        "replicate-do-table": _tables(syncer.do_tables),
        "replicate-do-db": list(syncer.do_dbs),
        "db-type": syncer.kind,
        "disable-dispatch": syncer.disable_dispatch,
        "safe-mode": syncer.safe_mode,
        "disable-detect": syncer.disable_causality,
    }
    return {
        "log-level": cfg.log_level,
        "node-id": cfg.node_id,
        "addr": cfg.listen_addr,
        "advertise-addr": cfg.advertise_addr,
        "data-dir": cfg.data_dir,
        "detect-interval": cfg.detect_interval,
        "pd-urls": cfg.pd_urls,
        "log-file": cfg.log_file,
        "initial-commit-ts": cfg.initial_commit_ts,
        "syncer": syncer_dict,
        "security": {
            "ssl-ca": cfg.security.ssl_ca,
            "ssl-cert": cfg.security.ssl_cert,
            "ssl-key": cfg.security.ssl_key,
        },
        "synced-check-time": cfg.synced_check_time,
        "compressor": cfg.compressor,
        "metrics-addr": cfg.metrics_addr,
        "metrics-interval": cfg.metrics_interval,
        "cache-binlog-count": cfg.binlog_cache_item_count,
    }


def render_config(cfg: ResolvedConfig) -> str:
    """缩进 JSON 形式的诊断输出（JSON 同时也是合法的 YAML 配置文件）"""
    return json.dumps(config_to_dict(cfg), ensure_ascii=False, indent=2)
