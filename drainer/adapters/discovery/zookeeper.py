"""
Kafka broker 发现（drainer.adapters.discovery.zookeeper）

通过 ZooKeeper 连接串解析 Kafka broker 地址：读取 /brokers/ids 下每个 broker
的注册信息，拼接为逗号分隔的 host:port 列表。
查询为阻塞调用，受超时约束；失败时抛出 DiscoveryError，本层不做重试。
"""

from __future__ import annotations

import json
import logging
from typing import List, Protocol

from drainer.core.exceptions import DiscoveryError

logger = logging.getLogger(__name__)

BROKER_IDS_PATH = "/brokers/ids"


class BrokerDiscovery(Protocol):
    def kafka_urls(self, connection_string: str, timeout: float) -> str:
        """返回逗号分隔的 broker 地址"""
        ...


def _broker_addr(raw: bytes) -> str:
    info = json.loads(raw.decode("utf-8"))
    host = info.get("host")
    port = info.get("port")
    if host and port and int(port) > 0:
        return f"{host}:{port}"
    # 新版本 broker 只注册 endpoints，如 ["PLAINTEXT://host:9092"]
    endpoints = info.get("endpoints") or []
    if not endpoints:
        raise ValueError(f"broker 注册信息缺少地址: {info}")
    return str(endpoints[0]).split("://", 1)[-1]


class ZookeeperBrokerDiscovery:
    """
    基于 kazoo 的 broker 发现

    属性：
        session_timeout: ZooKeeper 会话超时（秒）
    """

    def __init__(self, session_timeout: float = 60.0) -> None:
        self.session_timeout = session_timeout

    def kafka_urls(self, connection_string: str, timeout: float) -> str:
        try:
            from kazoo.client import KazooClient
            from kazoo.exceptions import KazooException
            from kazoo.handlers.threading import KazooTimeoutError
        except ImportError as e:
            raise DiscoveryError(
                "配置了 zookeeper-addrs 但未安装 kazoo，请安装 kafka 扩展: pip install 'drainer-config[kafka]'",
                context={"zookeeper_addrs": connection_string},
                cause=e,
            ) from e

        client = KazooClient(hosts=connection_string, timeout=self.session_timeout)
        addrs: List[str] = []
        try:
            client.start(timeout=timeout)
            for broker_id in sorted(client.get_children(BROKER_IDS_PATH)):
                data, _stat = client.get(f"{BROKER_IDS_PATH}/{broker_id}")
                addrs.append(_broker_addr(data))
        except (KazooException, KazooTimeoutError, OSError, ValueError) as e:
            raise DiscoveryError(
                f"从 ZooKeeper 获取 Kafka 地址失败: {connection_string}",
                context={"zookeeper_addrs": connection_string, "timeout": timeout},
                cause=e,
            ) from e
        finally:
            client.stop()
            client.close()

        if not addrs:
            raise DiscoveryError(
                f"ZooKeeper 中没有已注册的 Kafka broker: {connection_string}",
                context={"zookeeper_addrs": connection_string},
            )
        return ",".join(addrs)
