import json
import sys

import pytest

from drainer.adapters.discovery.zookeeper import ZookeeperBrokerDiscovery, _broker_addr
from drainer.core.exceptions import DiscoveryError


def test_host_and_port():
    raw = json.dumps({"host": "k1", "port": 9092}).encode()
    assert _broker_addr(raw) == "k1:9092"


def test_endpoints_fallback():
    raw = json.dumps(
        {"host": None, "port": -1, "endpoints": ["PLAINTEXT://k2:9093"]}
    ).encode()
    assert _broker_addr(raw) == "k2:9093"


def test_missing_address():
    with pytest.raises(ValueError):
        _broker_addr(json.dumps({"version": 4}).encode())


class FakeKazooClient:
    """替代 KazooClient：brokers 为 broker id → 注册信息，start_error 模拟连接失败"""

    instances: list = []
    brokers: dict = {}
    start_error = None

    def __init__(self, hosts, timeout):
        self.hosts = hosts
        self.timeout = timeout
        self.start_timeout = None
        self.stopped = False
        self.closed = False
        FakeKazooClient.instances.append(self)

    def start(self, timeout):
        self.start_timeout = timeout
        if self.start_error is not None:
            raise self.start_error

    def get_children(self, path):
        assert path == "/brokers/ids"
        return list(self.brokers)

    def get(self, path):
        broker_id = path.rsplit("/", 1)[-1]
        return json.dumps(self.brokers[broker_id]).encode(), None

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True


@pytest.fixture
def fake_kazoo(monkeypatch):
    pytest.importorskip("kazoo.client")
    monkeypatch.setattr("kazoo.client.KazooClient", FakeKazooClient)
    monkeypatch.setattr(FakeKazooClient, "instances", [])
    monkeypatch.setattr(FakeKazooClient, "brokers", {})
    monkeypatch.setattr(FakeKazooClient, "start_error", None)
    return FakeKazooClient


def test_kafka_urls_joins_brokers(fake_kazoo):
    fake_kazoo.brokers = {
        "2": {"host": "k2", "port": 9092},
        "1": {"endpoints": ["PLAINTEXT://k1:9092"]},
    }
    urls = ZookeeperBrokerDiscovery(session_timeout=30.0).kafka_urls("zk1:2181,zk2:2181", 3.0)
    assert urls == "k1:9092,k2:9092"
    (client,) = fake_kazoo.instances
    assert client.hosts == "zk1:2181,zk2:2181"
    assert client.timeout == 30.0
    assert client.start_timeout == 3.0
    assert client.stopped and client.closed


def test_kafka_urls_wraps_connection_failure(fake_kazoo):
    from kazoo.handlers.threading import KazooTimeoutError

    fake_kazoo.start_error = KazooTimeoutError("Connection time-out")
    with pytest.raises(DiscoveryError) as ei:
        ZookeeperBrokerDiscovery().kafka_urls("zk:2181", 1.0)
    assert isinstance(ei.value.cause, KazooTimeoutError)
    assert ei.value.context["zookeeper_addrs"] == "zk:2181"
    (client,) = fake_kazoo.instances
    assert client.stopped and client.closed


def test_kafka_urls_wraps_bad_registration(fake_kazoo):
    fake_kazoo.brokers = {"1": {"version": 4}}
    with pytest.raises(DiscoveryError) as ei:
        ZookeeperBrokerDiscovery().kafka_urls("zk:2181", 1.0)
    assert isinstance(ei.value.cause, ValueError)
    assert fake_kazoo.instances[0].closed


def test_kafka_urls_without_brokers(fake_kazoo):
    with pytest.raises(DiscoveryError) as ei:
        ZookeeperBrokerDiscovery().kafka_urls("zk:2181", 1.0)
    assert "没有已注册的 Kafka broker" in str(ei.value)
    (client,) = fake_kazoo.instances
    assert client.stopped and client.closed


def test_missing_kazoo_is_discovery_error(monkeypatch):
    monkeypatch.setitem(sys.modules, "kazoo.client", None)
    with pytest.raises(DiscoveryError) as ei:
        ZookeeperBrokerDiscovery().kafka_urls("zk:2181", 1.0)
    assert "drainer-config[kafka]" in str(ei.value)
    assert isinstance(ei.value.cause, ImportError)
